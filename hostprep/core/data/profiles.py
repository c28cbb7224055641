"""
L0 Data — package plans per distribution family and variant.

Adding a distribution means adding a table entry here, not new logic.
Repository URLs are templates; ``{codename}``, ``{distro}`` and
``{version_id}`` are filled from the detected DistroInfo.
"""

from __future__ import annotations

from hostprep.core.models.distro import (
    DistroProfile,
    ExtraRepository,
    PackageManager,
)

# ── Package managers ───────────────────────────────────────────

PACKAGE_MANAGERS: dict[str, PackageManager] = {
    "pacman": PackageManager(
        name="pacman",
        upgrade=("pacman", "-Syu", "--noconfirm"),
        install=("pacman", "-S", "--noconfirm", "--needed", "--ask", "20"),
    ),
    "apt": PackageManager(
        name="apt",
        refresh=("apt", "update"),
        upgrade=("apt", "upgrade", "-y"),
        install=("apt", "install", "-y"),
    ),
    "dnf": PackageManager(
        name="dnf",
        upgrade=("dnf", "upgrade", "--refresh", "-y"),
        install=("dnf", "install", "-y"),
    ),
    "apk": PackageManager(
        name="apk",
        refresh=("apk", "update"),
        upgrade=("apk", "upgrade"),
        install=("apk", "add"),
    ),
}

# ── Third-party repositories ───────────────────────────────────

_EZA_APT = ExtraRepository(
    name="eza",
    kind="apt",
    key_url="https://raw.githubusercontent.com/eza-community/eza/main/deb.asc",
    keyring="/etc/apt/keyrings/gierens.gpg",
    dearmor=True,
    list_file="/etc/apt/sources.list.d/gierens.list",
    source_line=(
        "deb [signed-by=/etc/apt/keyrings/gierens.gpg] http://deb.gierens.de stable main"
    ),
)

_TAILSCALE_APT = ExtraRepository(
    name="tailscale",
    kind="apt",
    key_url="https://pkgs.tailscale.com/stable/{distro}/{codename}.noarmor.gpg",
    keyring="/usr/share/keyrings/tailscale-archive-keyring.gpg",
    list_file="/etc/apt/sources.list.d/tailscale.list",
    list_url="https://pkgs.tailscale.com/stable/{distro}/{codename}.tailscale-keyring.list",
)

_RPMFUSION_FREE = ExtraRepository(
    name="rpmfusion-free",
    kind="rpm",
    url=(
        "https://download1.rpmfusion.org/free/fedora/"
        "rpmfusion-free-release-{version_id}.noarch.rpm"
    ),
)

_RPMFUSION_NONFREE = ExtraRepository(
    name="rpmfusion-nonfree",
    kind="rpm",
    url=(
        "https://download1.rpmfusion.org/nonfree/fedora/"
        "rpmfusion-nonfree-release-{version_id}.noarch.rpm"
    ),
)

_GH_CLI_DNF = ExtraRepository(
    name="gh-cli",
    kind="dnf-repo",
    url="https://cli.github.com/packages/rpm/gh-cli.repo",
)

# ── Package lists ──────────────────────────────────────────────

_ARCH_COMMON = (
    "tree", "git", "curl", "wget", "gnupg", "unzip", "ffmpeg", "github-cli",
    "neovim", "npm", "zoxide", "fastfetch", "fish", "eza", "tailscale",
    "python", "python-pip", "go", "ripgrep", "lazygit", "luarocks", "ruby",
    "php", "jdk-openjdk", "xsel", "xclip",
)

_DEBIAN_COMMON = (
    "extrepo", "gh", "neovim", "nodejs", "npm", "zoxide", "fastfetch", "fish",
    "ffmpeg", "eza", "tailscale", "python3", "python3-pip", "python3-venv",
    "python3-pynvim", "golang-go", "ripgrep", "lazygit", "luarocks",
    "ruby-full", "php", "openjdk-17-jdk", "xsel", "xclip",
)

_FEDORA_COMMON = (
    "git", "curl", "wget", "unzip", "fish", "fzf", "zoxide", "ripgrep", "eza",
    "fastfetch", "lazygit", "neovim", "nodejs", "npm", "golang", "go", "gh",
    "tailscale", "ffmpeg", "python3-pip", "python3-virtualenv",
    "python3-neovim", "luarocks", "ruby", "php", "java-17-openjdk-devel",
    "xsel", "xclip",
)

_ALPINE_COMMON = (
    "bash", "git", "curl", "wget", "unzip", "github-cli", "neovim", "nodejs",
    "npm", "zoxide", "fastfetch", "fish", "eza", "tailscale", "python3",
    "py3-pip", "go", "ripgrep", "lazygit", "luarocks", "ruby", "php",
    "openjdk17", "xsel", "xclip",
)

_FLATPAKS = (
    "md.obsidian.Obsidian",
    "net.localsend.localsend",
    "io.freetubeapp.FreeTube",
    "com.librewolf.Librewolf",
    "com.nextcloud.desktopclient",
)

FLATHUB_REMOTE = ("flathub", "https://flathub.org/repo/flathub.flatpakrepo")

# ── Profiles ───────────────────────────────────────────────────

_PROFILES: dict[tuple[str, str], DistroProfile] = {
    ("arch", "desktop"): DistroProfile(
        family="arch",
        variant="desktop",
        package_manager=PACKAGE_MANAGERS["pacman"],
        packages=_ARCH_COMMON + ("nodejs", "calibre", "foot", "ttf-fira-code"),
    ),
    ("arch", "server"): DistroProfile(
        family="arch",
        variant="server",
        package_manager=PACKAGE_MANAGERS["pacman"],
        packages=_ARCH_COMMON + ("nodejs",),
        # An existing node (nvm, asdf) conflicts with the distro package
        skip_if_command={"nodejs": "node"},
    ),
    ("debian", "desktop"): DistroProfile(
        family="debian",
        variant="desktop",
        package_manager=PACKAGE_MANAGERS["apt"],
        bootstrap_packages=("curl", "wget", "gpg", "git", "lsb-release"),
        packages=_DEBIAN_COMMON + (
            "calibre", "foot", "variety", "fonts-firacode", "gnome-calendar",
        ),
        repositories=(_EZA_APT, _TAILSCALE_APT),
    ),
    ("debian", "server"): DistroProfile(
        family="debian",
        variant="server",
        package_manager=PACKAGE_MANAGERS["apt"],
        bootstrap_packages=(
            "curl", "wget", "gpg", "git", "lsb-release", "software-properties-common",
        ),
        packages=_DEBIAN_COMMON,
        repositories=(_EZA_APT, _TAILSCALE_APT),
    ),
    ("fedora", "desktop"): DistroProfile(
        family="fedora",
        variant="desktop",
        package_manager=PACKAGE_MANAGERS["dnf"],
        bootstrap_packages=("dnf-plugins-core",),
        packages=_FEDORA_COMMON + (
            "foot", "variety", "calibre", "gnome-calendar", "fira-code-fonts",
        ),
        repositories=(_RPMFUSION_FREE, _RPMFUSION_NONFREE, _GH_CLI_DNF),
        flatpaks=_FLATPAKS,
    ),
    ("fedora", "server"): DistroProfile(
        family="fedora",
        variant="server",
        package_manager=PACKAGE_MANAGERS["dnf"],
        bootstrap_packages=("dnf-plugins-core",),
        packages=_FEDORA_COMMON,
        repositories=(_RPMFUSION_FREE, _RPMFUSION_NONFREE, _GH_CLI_DNF),
    ),
    ("alpine", "desktop"): DistroProfile(
        family="alpine",
        variant="desktop",
        package_manager=PACKAGE_MANAGERS["apk"],
        packages=_ALPINE_COMMON + ("foot", "font-fira-code"),
    ),
    ("alpine", "server"): DistroProfile(
        family="alpine",
        variant="server",
        package_manager=PACKAGE_MANAGERS["apk"],
        packages=_ALPINE_COMMON,
    ),
}

FAMILIES: tuple[str, ...] = ("arch", "debian", "fedora", "alpine")
VARIANTS: tuple[str, ...] = ("desktop", "server")


def get_profile(family: str, variant: str = "desktop") -> DistroProfile:
    """Look up the package plan for a family and variant.

    Raises:
        UnsupportedDistro: ``family`` has no table entry.
        ValueError: ``variant`` is not desktop or server.
    """
    from hostprep.core.services.distro_detect import UnsupportedDistro

    if family not in FAMILIES:
        raise UnsupportedDistro(family)
    if variant not in VARIANTS:
        raise ValueError(f"Unknown variant: {variant!r} (expected one of {', '.join(VARIANTS)})")
    return _PROFILES[(family, variant)]


def render_template(template: str, values: dict[str, str]) -> str:
    """Replace ``{key}`` tokens; unknown tokens are left as they are."""
    result = template
    for key, value in values.items():
        result = result.replace(f"{{{key}}}", value)
    return result
