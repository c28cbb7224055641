"""Static data tables — package managers and per-family package plans."""

from hostprep.core.data.profiles import PACKAGE_MANAGERS, get_profile, render_template

__all__ = ["PACKAGE_MANAGERS", "get_profile", "render_template"]
