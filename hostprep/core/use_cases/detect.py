"""
Detect use case — which distribution is this, and what would we install?
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from hostprep.core.config.loader import ConfigError
from hostprep.core.models.distro import DistroInfo, DistroProfile
from hostprep.core.services.distro_detect import UnsupportedDistro
from hostprep.core.services.provision import build_setup_steps, plan_packages
from hostprep.core.use_cases.session import open_session


@dataclass
class DetectResult:
    distro: DistroInfo | None = None
    profile: DistroProfile | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "distro": self.distro.model_dump() if self.distro else None,
            "profile": self.profile.model_dump() if self.profile else None,
        }


def run_detect(
    config_path: Path | None = None,
    os_release: Path | None = None,
    variant: str | None = None,
) -> DetectResult:
    result = DetectResult()
    try:
        ctx = open_session(config_path, os_release=os_release, variant=variant)
    except (ConfigError, UnsupportedDistro, ValueError) as e:
        result.error = str(e)
        return result

    result.distro = ctx.distro
    result.profile = ctx.profile
    return result


@dataclass
class PlanResult:
    """The step list and package plan ``setup`` would run."""

    distro: DistroInfo | None = None
    variant: str = ""
    steps: list[dict] = field(default_factory=list)
    packages: list[str] = field(default_factory=list)
    repositories: list[str] = field(default_factory=list)
    flatpaks: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "family": self.distro.family if self.distro else None,
            "variant": self.variant,
            "steps": self.steps,
            "packages": self.packages,
            "repositories": self.repositories,
            "flatpaks": self.flatpaks,
        }


def run_plan(
    config_path: Path | None = None,
    os_release: Path | None = None,
    variant: str | None = None,
) -> PlanResult:
    result = PlanResult()
    try:
        ctx = open_session(config_path, os_release=os_release, variant=variant)
    except (ConfigError, UnsupportedDistro, ValueError) as e:
        result.error = str(e)
        return result

    assert ctx.profile is not None
    result.distro = ctx.distro
    result.variant = ctx.profile.variant
    result.steps = [
        {"name": s.name, "fatal": s.fatal, "description": s.description}
        for s in build_setup_steps()
    ]
    result.packages = plan_packages(ctx, ctx.profile)
    result.repositories = [r.name for r in ctx.profile.repositories]
    result.flatpaks = list(ctx.profile.flatpaks)
    return result
