"""
HostprepConfig — the user's provisioning preferences.

Loaded from hostprep.yml. Every field has a default, so an empty or
missing file reproduces the stock workstation setup.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from hostprep.core.models.distro import Variant


class DotfileRepo(BaseModel):
    """A repository cloned into the home directory.

    on_conflict:
        backup — existing target is renamed to ``<dest>.bak.<stamp>``
        skip   — existing target is left alone and the clone is skipped
    """

    repo: str
    dest: str
    method: Literal["gh", "git"] = "gh"
    on_conflict: Literal["backup", "skip"] = "backup"


def _default_dotfiles() -> list[DotfileRepo]:
    return [
        DotfileRepo(repo="JevonThompsonx/alacritty", dest="~/.config/alacritty"),
        # After the config repo, so its backup does not swallow the themes
        DotfileRepo(
            repo="https://github.com/alacritty/alacritty-theme.git",
            dest="~/.config/alacritty/themes/alacritty-theme",
            method="git",
            on_conflict="skip",
        ),
        DotfileRepo(repo="JevonThompsonx/fish", dest="~/.config/fish"),
        DotfileRepo(repo="JevonThompsonx/WPs", dest="~/Pictures/WPs"),
    ]


class ClamavSettings(BaseModel):
    """Scan targets, logs and notification credentials."""

    scan_dir: str = "/home"
    log_dir: str = "~/.clamav-logs"
    fast_targets: list[str] = Field(
        default_factory=lambda: [
            "~/Documents",
            "~/Downloads",
            "~/Desktop",
            "~/scripts",
        ]
    )
    use_clamdscan: bool = False
    credentials_file: str | None = None
    retention_days: int = 30

    @field_validator("retention_days")
    @classmethod
    def _positive_retention(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retention_days must be at least 1")
        return v


class LanRule(BaseModel):
    """An extra ufw allow rule for a local network range."""

    source: str
    port: int
    proto: Literal["tcp", "udp"] = "tcp"
    comment: str = ""

    @field_validator("port")
    @classmethod
    def _valid_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError(f"port out of range: {v}")
        return v


class FirewallSettings(BaseModel):
    tailscale: bool = True
    docker_fix: bool = True
    lan_rules: list[LanRule] = Field(default_factory=list)


class HostprepConfig(BaseModel):
    """Root configuration — loaded from hostprep.yml."""

    version: int = 1

    variant: Variant = "desktop"
    extra_packages: list[str] = Field(default_factory=list)
    npm_globals: list[str] = Field(
        default_factory=lambda: ["neovim", "tree-sitter-cli", "@tailwindcss/language-server"]
    )
    cargo_crates: list[str] = Field(default_factory=lambda: ["selene", "atuin"])
    dotfiles: list[DotfileRepo] = Field(default_factory=_default_dotfiles)
    default_shell: str | None = "fish"
    tailscale: bool = True
    neovim_sync: bool = True
    install_go: bool = False
    go_version: str | None = None
    omarchy_link_wallpapers: bool = False

    clamav: ClamavSettings = Field(default_factory=ClamavSettings)
    firewall: FirewallSettings = Field(default_factory=FirewallSettings)
