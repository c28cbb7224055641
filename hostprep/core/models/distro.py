"""
Distribution models — detected identity and the package plan for it.

A DistroInfo is built once from the OS-release file; a DistroProfile is
looked up from the static registry by the detected family. Both are
frozen: nothing changes them after startup.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Family = Literal["arch", "debian", "fedora", "alpine"]
Variant = Literal["desktop", "server"]


class DistroInfo(BaseModel):
    """What the OS-release file says about this machine."""

    model_config = ConfigDict(frozen=True)

    family: Family
    id: str = ""
    id_like: str = ""
    version_id: str = ""
    version_codename: str = ""
    pretty_name: str = ""

    @property
    def template_vars(self) -> dict[str, str]:
        """Values available to repository URL templates."""
        distro = self.id if self.id in ("debian", "ubuntu") else "debian"
        return {
            "codename": self.version_codename,
            "distro": distro,
            "version_id": self.version_id,
        }


class ExtraRepository(BaseModel):
    """A third-party package source the profile needs.

    kind:
        apt       — signing key fetched to ``keyring``, source written to
                    ``list_file`` (either ``source_line`` or fetched from
                    ``list_url``).
        rpm       — release package installed straight from ``url``.
        dnf-repo  — ``.repo`` file registered from ``url``.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: Literal["apt", "rpm", "dnf-repo"]
    url: str = ""
    key_url: str = ""
    keyring: str = ""
    dearmor: bool = False
    list_file: str = ""
    source_line: str = ""
    list_url: str = ""


class PackageManager(BaseModel):
    """argv templates for one package manager (run through sudo)."""

    model_config = ConfigDict(frozen=True)

    name: str
    refresh: tuple[str, ...] = ()
    upgrade: tuple[str, ...] = ()
    install: tuple[str, ...]


class DistroProfile(BaseModel):
    """Everything provisioning needs to know about one family/variant."""

    model_config = ConfigDict(frozen=True)

    family: Family
    variant: Variant = "desktop"
    package_manager: PackageManager
    bootstrap_packages: tuple[str, ...] = ()
    packages: tuple[str, ...] = ()
    repositories: tuple[ExtraRepository, ...] = ()
    flatpaks: tuple[str, ...] = ()
    # package → command; package is left out when the command already exists
    skip_if_command: dict[str, str] = Field(default_factory=dict)
