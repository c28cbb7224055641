"""
Provisioning steps — the workstation / server setup sequence.

``build_setup_steps`` returns the same named list on every distribution;
steps that do not apply to the current variant, family or config skip
themselves, so ``hostprep plan`` always shows the full sequence.

Only the two precondition checks are fatal. Everything else fails
softly and ends up on the follow-up list in the run report.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from hostprep.adapters.shell.filesystem import next_backup_path
from hostprep.core.data.profiles import FLATHUB_REMOTE, render_template
from hostprep.core.engine.context import StepContext
from hostprep.core.models.distro import DistroProfile, ExtraRepository
from hostprep.core.models.step import Step, StepResult
from hostprep.core.services.dotfiles import STEP_NAME as CLONE_STEP
from hostprep.core.services.dotfiles import clone_dotfiles

logger = logging.getLogger(__name__)

REQUIRED_COMMANDS = ("curl", "git")

RUSTUP_SCRIPT = "curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh -s -- -y"
BUN_SCRIPT = "curl -fsSL https://bun.sh/install | bash"

GO_VERSION_URL = "https://go.dev/VERSION?m=text"
GO_DOWNLOAD_URL = "https://go.dev/dl/{version}.linux-{arch}.tar.gz"
GO_ROOT = Path("/usr/local/go")
GO_ARCHES = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "arm64": "arm64"}

# Lines appended to ~/.profile (at most once each)
CARGO_PATH_LINE = 'export PATH="$HOME/.cargo/bin:$PATH"'
BUN_PATH_LINE = 'export PATH="$HOME/.bun/bin:$PATH"'
NPM_PATH_LINE = 'export PATH="$HOME/.npm-global/bin:$PATH"'
GO_PATH_LINES = (
    'export PATH="$PATH:/usr/local/go/bin"',
    'export GOPATH="$HOME/go"',
    'export PATH="$PATH:$GOPATH/bin"',
)

NPM_PREFIX = "~/.npm-global"
NEOVIM_SYNC = "nvim --headless '+Lazy sync' '+qa!'"


# ── Helpers ─────────────────────────────────────────────────────


def _profile(ctx: StepContext, step: str) -> DistroProfile | StepResult:
    if ctx.profile is None:
        return StepResult.failure(step, error="No distribution profile (detection did not run)")
    return ctx.profile


def _find_tool(ctx: StepContext, name: str, *fallbacks: str) -> str | None:
    """Locate ``name`` on PATH, then in user-local install dirs.

    Installers run earlier in the same invocation do not update our
    PATH, so a fresh cargo or bun is found through its fallback path.
    """
    found = ctx.shell.which(name)
    if found:
        return found
    for fallback in fallbacks:
        candidate = ctx.expand(fallback)
        if candidate.is_file():
            return str(candidate)
    return None


def _add_path_line(ctx: StepContext, line: str) -> str | None:
    """Append a PATH export to ~/.profile once. Returns an error or None."""
    receipt = ctx.fs.append_line_once(ctx.home / ".profile", line)
    if receipt.failed:
        return receipt.error
    if receipt.metadata.get("changed"):
        logger.info("Added to ~/.profile: %s", line)
    return None


def plan_packages(ctx: StepContext, profile: DistroProfile) -> list[str]:
    """Profile packages minus satisfied ``skip_if_command`` entries, plus extras."""
    packages: list[str] = []
    for package in [*profile.packages, *ctx.config.extra_packages]:
        command = profile.skip_if_command.get(package)
        if command and ctx.shell.has(command):
            logger.info("%s already provides %s, leaving it out", command, package)
            continue
        if package not in packages:
            packages.append(package)
    return packages


# ── Preconditions ───────────────────────────────────────────────


def check_not_root(ctx: StepContext) -> StepResult:
    if ctx.shell.is_root():
        return StepResult.fatal_error(
            "check-not-root",
            error="This must not be run as root. sudo is used internally where needed.",
        )
    return StepResult.success("check-not-root", output="Running as a regular user")


def check_dependencies(ctx: StepContext) -> StepResult:
    missing = [cmd for cmd in REQUIRED_COMMANDS if not ctx.shell.has(cmd)]
    if missing:
        return StepResult.failure(
            "check-dependencies",
            error=f"Missing essential dependencies: {', '.join(missing)}. Install them and re-run.",
            metadata={"missing": missing},
        )
    return StepResult.success("check-dependencies", output="Essential dependencies found")


# ── Distribution packages ───────────────────────────────────────


def system_upgrade(ctx: StepContext) -> StepResult:
    profile = _profile(ctx, "system-upgrade")
    if isinstance(profile, StepResult):
        return profile
    pm = profile.package_manager

    for cmd in (pm.refresh, pm.upgrade):
        if not cmd:
            continue
        receipt = ctx.shell.run(cmd, sudo=True)
        if receipt.failed:
            return StepResult.failure("system-upgrade", error=receipt.error or "upgrade failed")
    return StepResult.success("system-upgrade", output=f"System upgraded with {pm.name}")


def bootstrap_packages(ctx: StepContext) -> StepResult:
    profile = _profile(ctx, "bootstrap-packages")
    if isinstance(profile, StepResult):
        return profile
    if not profile.bootstrap_packages:
        return StepResult.skip("bootstrap-packages", "Nothing to bootstrap")

    receipt = ctx.shell.run(
        [*profile.package_manager.install, *profile.bootstrap_packages], sudo=True
    )
    if receipt.failed:
        return StepResult.failure("bootstrap-packages", error=receipt.error or "install failed")
    return StepResult.success(
        "bootstrap-packages", output=" ".join(profile.bootstrap_packages)
    )


def _add_apt_repository(ctx: StepContext, repo: ExtraRepository, values: dict) -> str | None:
    key_url = render_template(repo.key_url, values)
    keyring = repo.keyring

    mkdir = ctx.shell.run(["mkdir", "-p", str(Path(keyring).parent)], sudo=True)
    if mkdir.failed:
        return mkdir.error

    if repo.dearmor:
        key = ctx.shell.run(["curl", "-fsSL", key_url], timeout=60)
        if key.failed:
            return f"Cannot fetch signing key {key_url}: {key.error}"
        receipt = ctx.shell.run(
            ["gpg", "--dearmor", "--yes", "-o", keyring], sudo=True, input_text=key.output
        )
    else:
        receipt = ctx.shell.run(["curl", "-fsSL", "-o", keyring, key_url], sudo=True, timeout=60)
    if receipt.failed:
        return f"Cannot install keyring {keyring}: {receipt.error}"

    if repo.list_url:
        list_url = render_template(repo.list_url, values)
        receipt = ctx.shell.run(
            ["curl", "-fsSL", "-o", repo.list_file, list_url], sudo=True, timeout=60
        )
    else:
        receipt = ctx.fs.write_system_file(repo.list_file, repo.source_line + "\n")
    if receipt.failed:
        return f"Cannot write {repo.list_file}: {receipt.error}"
    return None


def add_repositories(ctx: StepContext) -> StepResult:
    profile = _profile(ctx, "add-repositories")
    if isinstance(profile, StepResult):
        return profile
    if not profile.repositories:
        return StepResult.skip("add-repositories", "No extra repositories for this family")

    values = ctx.distro.template_vars if ctx.distro else {}
    errors: list[str] = []
    added: list[str] = []

    for repo in profile.repositories:
        if repo.kind == "apt":
            error = _add_apt_repository(ctx, repo, values)
            if error:
                errors.append(f"{repo.name}: {error}")
            else:
                added.append(repo.name)

    rpm_repos = [r for r in profile.repositories if r.kind == "rpm"]
    if rpm_repos:
        urls = [render_template(r.url, values) for r in rpm_repos]
        receipt = ctx.shell.run([*profile.package_manager.install, *urls], sudo=True)
        if receipt.failed:
            errors.append(f"{', '.join(r.name for r in rpm_repos)}: {receipt.error}")
        else:
            added.extend(r.name for r in rpm_repos)

    for repo in profile.repositories:
        if repo.kind != "dnf-repo":
            continue
        receipt = ctx.shell.run(
            ["dnf", "config-manager", "--add-repo", render_template(repo.url, values)],
            sudo=True,
        )
        if receipt.failed:
            errors.append(f"{repo.name}: {receipt.error}")
        else:
            added.append(repo.name)

    # New apt sources are only visible after a refresh
    if profile.package_manager.refresh and any(r.kind == "apt" for r in profile.repositories):
        refresh = ctx.shell.run(profile.package_manager.refresh, sudo=True)
        if refresh.failed:
            errors.append(f"refresh: {refresh.error}")

    metadata = {"added": added}
    if errors:
        return StepResult.failure("add-repositories", error="; ".join(errors), metadata=metadata)
    return StepResult.success(
        "add-repositories", output=f"Added {', '.join(added)}", metadata=metadata
    )


def install_packages(ctx: StepContext) -> StepResult:
    profile = _profile(ctx, "install-packages")
    if isinstance(profile, StepResult):
        return profile

    packages = plan_packages(ctx, profile)
    if not packages:
        return StepResult.skip("install-packages", "No packages to install")

    receipt = ctx.shell.run([*profile.package_manager.install, *packages], sudo=True)
    if receipt.failed:
        return StepResult.failure("install-packages", error=receipt.error or "install failed")
    return StepResult.success(
        "install-packages",
        output=f"Installed {len(packages)} package(s)",
        metadata={"packages": packages},
    )


def flatpak_apps(ctx: StepContext) -> StepResult:
    profile = _profile(ctx, "flatpak-apps")
    if isinstance(profile, StepResult):
        return profile
    if not profile.flatpaks:
        return StepResult.skip("flatpak-apps", "No Flatpak apps for this profile")
    if not ctx.shell.has("flatpak"):
        return StepResult.failure("flatpak-apps", error="flatpak not found")

    remote, url = FLATHUB_REMOTE
    receipt = ctx.shell.run(["flatpak", "remote-add", "--if-not-exists", remote, url])
    if receipt.failed:
        return StepResult.failure("flatpak-apps", error=receipt.error or "remote-add failed")

    receipt = ctx.shell.run(["flatpak", "install", remote, "-y", *profile.flatpaks])
    if receipt.failed:
        return StepResult.failure("flatpak-apps", error=receipt.error or "install failed")
    return StepResult.success("flatpak-apps", output=f"Installed {len(profile.flatpaks)} app(s)")


# ── Toolchains ──────────────────────────────────────────────────


def install_rust(ctx: StepContext) -> StepResult:
    if _find_tool(ctx, "cargo", "~/.cargo/bin/cargo"):
        return StepResult.skip("install-rust", "Rust is already installed")

    receipt = ctx.shell.run_script(RUSTUP_SCRIPT)
    if receipt.failed:
        return StepResult.failure("install-rust", error=receipt.error or "rustup failed")

    error = _add_path_line(ctx, CARGO_PATH_LINE)
    if error:
        return StepResult.failure("install-rust", error=error)
    return StepResult.success("install-rust", output="Rust installed")


def install_bun(ctx: StepContext) -> StepResult:
    if _find_tool(ctx, "bun", "~/.bun/bin/bun"):
        return StepResult.skip("install-bun", "Bun is already installed")

    receipt = ctx.shell.run_script(BUN_SCRIPT)
    if receipt.failed:
        return StepResult.failure("install-bun", error=receipt.error or "bun installer failed")

    error = _add_path_line(ctx, BUN_PATH_LINE)
    if error:
        return StepResult.failure("install-bun", error=error)
    return StepResult.success("install-bun", output="Bun installed")


def install_go(ctx: StepContext) -> StepResult:
    """Official Go tarball into /usr/local/go.

    A previous tree is moved to ``go.bak.<stamp>`` rather than deleted.
    """
    if not ctx.config.install_go:
        return StepResult.skip("install-go", "Disabled in config")

    machine = ctx.shell.run(["uname", "-m"])
    arch = GO_ARCHES.get(machine.output.strip()) if machine.ok else None
    if arch is None:
        return StepResult.failure(
            "install-go", error=f"Unsupported architecture: {machine.output.strip() or 'unknown'}"
        )

    version = ctx.config.go_version
    if not version:
        latest = ctx.shell.run(["curl", "-fsSL", GO_VERSION_URL], timeout=30)
        lines = latest.output.split() if latest.ok else []
        if not lines:
            return StepResult.failure(
                "install-go", error=latest.error or "Could not look up the latest Go version"
            )
        version = lines[0]
    if not version.startswith("go"):
        version = f"go{version}"

    url = GO_DOWNLOAD_URL.format(version=version, arch=arch)
    tarball = Path(tempfile.gettempdir()) / url.rsplit("/", 1)[1]
    download = ctx.shell.run(["curl", "-fsSL", "-o", str(tarball), url], timeout=600)
    if download.failed:
        return StepResult.failure("install-go", error=download.error or f"Download failed: {url}")

    backup = None
    if ctx.fs.exists(GO_ROOT):
        backup = next_backup_path(GO_ROOT)
        moved = ctx.shell.run(["mv", str(GO_ROOT), str(backup)], sudo=True)
        if moved.failed:
            return StepResult.failure(
                "install-go", error=f"Cannot back up {GO_ROOT}: {moved.error}"
            )
        logger.info("Backed up %s → %s", GO_ROOT, backup)

    extract = ctx.shell.run(["tar", "-C", str(GO_ROOT.parent), "-xzf", str(tarball)], sudo=True)
    try:
        tarball.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove %s: %s", tarball, e)
    if extract.failed:
        return StepResult.failure("install-go", error=extract.error or "Extraction failed")

    for line in GO_PATH_LINES:
        error = _add_path_line(ctx, line)
        if error:
            return StepResult.failure("install-go", error=error)
    return StepResult.success(
        "install-go",
        output=f"{version} installed in {GO_ROOT}",
        metadata={"version": version, "backup": str(backup) if backup else None},
    )


def npm_globals(ctx: StepContext) -> StepResult:
    packages = ctx.config.npm_globals
    if not packages:
        return StepResult.skip("npm-globals", "No global npm packages configured")

    npm = _find_tool(ctx, "npm")
    if not npm:
        return StepResult.failure("npm-globals", error="npm not found")

    # User-local prefix so global installs never need sudo
    prefix = ctx.expand(NPM_PREFIX)
    made = ctx.fs.ensure_dir(prefix)
    if made.failed:
        return StepResult.failure("npm-globals", error=made.error or "")

    receipt = ctx.shell.run([npm, "config", "set", "prefix", str(prefix)])
    if receipt.failed:
        return StepResult.failure("npm-globals", error=receipt.error or "npm config failed")

    error = _add_path_line(ctx, NPM_PATH_LINE)
    if error:
        return StepResult.failure("npm-globals", error=error)

    receipt = ctx.shell.run([npm, "install", "-g", *packages])
    if receipt.failed:
        return StepResult.failure("npm-globals", error=receipt.error or "npm install failed")
    return StepResult.success("npm-globals", output=" ".join(packages))


def cargo_crates(ctx: StepContext) -> StepResult:
    crates = ctx.config.cargo_crates
    if not crates:
        return StepResult.skip("cargo-crates", "No cargo crates configured")

    cargo = _find_tool(ctx, "cargo", "~/.cargo/bin/cargo")
    if not cargo:
        return StepResult.skip("cargo-crates", "cargo not found, skipping Rust tools")

    receipt = ctx.shell.run([cargo, "install", *crates])
    if receipt.failed:
        return StepResult.failure("cargo-crates", error=receipt.error or "cargo install failed")
    return StepResult.success("cargo-crates", output=" ".join(crates))


# ── Services and desktop ────────────────────────────────────────


def tailscale(ctx: StepContext) -> StepResult:
    if not ctx.config.tailscale:
        return StepResult.skip("tailscale", "Disabled in config")
    if not ctx.shell.has("tailscale"):
        return StepResult.failure("tailscale", error="tailscale not installed")

    receipt = ctx.shell.run(["systemctl", "enable", "--now", "tailscaled"], sudo=True)
    if receipt.failed:
        return StepResult.failure("tailscale", error=receipt.error or "cannot start tailscaled")

    # Prints a login URL the user has to open
    receipt = ctx.shell.run(["tailscale", "up"], sudo=True, interactive=True)
    if receipt.failed:
        return StepResult.failure("tailscale", error=receipt.error or "tailscale up failed")
    return StepResult.success("tailscale", output="tailscaled enabled and connected")


def font_cache(ctx: StepContext) -> StepResult:
    if ctx.profile is None or ctx.profile.variant != "desktop":
        return StepResult.skip("font-cache", "Server variant, no fonts installed")

    receipt = ctx.shell.run(["fc-cache", "-fv"], sudo=True)
    if receipt.failed:
        return StepResult.failure("font-cache", error=receipt.error or "fc-cache failed")
    return StepResult.success("font-cache", output="Font cache rebuilt")


def default_shell(ctx: StepContext) -> StepResult:
    shell = ctx.config.default_shell
    if not shell:
        return StepResult.skip("default-shell", "No default shell configured")

    path = ctx.shell.which(shell)
    if not path:
        return StepResult.failure("default-shell", error=f"{shell} not found")
    if ctx.login_shell == path or Path(ctx.login_shell).name == shell:
        return StepResult.skip("default-shell", f"{shell} is already the login shell")

    receipt = ctx.shell.run(["chsh", "-s", path], interactive=True)
    if receipt.failed:
        return StepResult.failure(
            "default-shell",
            error=f"Failed to change shell. Run it manually: chsh -s {path}",
        )
    return StepResult.success(
        "default-shell", output=f"Login shell set to {path} (log out to apply)"
    )


def neovim_sync(ctx: StepContext) -> StepResult:
    if not ctx.config.neovim_sync:
        return StepResult.skip("neovim-sync", "Disabled in config")
    if not (ctx.shell.has("fish") and ctx.shell.has("nvim")):
        return StepResult.skip("neovim-sync", "fish or nvim not found")

    # Through fish, so the freshly cloned fish config sets up PATH
    receipt = ctx.shell.run(["fish", "-c", NEOVIM_SYNC])
    if receipt.failed:
        return StepResult.failure("neovim-sync", error=receipt.error or "Lazy sync failed")
    return StepResult.success("neovim-sync", output="Neovim plugins synced")


def omarchy_wallpapers(ctx: StepContext) -> StepResult:
    """Point every Omarchy theme's ``backgrounds`` at ~/Pictures/WPs."""
    if not ctx.config.omarchy_link_wallpapers:
        return StepResult.skip("omarchy-wallpapers", "Disabled in config")
    if ctx.distro is None or ctx.distro.id != "omarchy":
        return StepResult.skip("omarchy-wallpapers", "Not an Omarchy system")

    themes_dir = ctx.home / ".config" / "omarchy" / "themes"
    if not themes_dir.is_dir():
        return StepResult.skip("omarchy-wallpapers", f"{themes_dir} not found")

    wallpapers = ctx.home / "Pictures" / "WPs"
    linked: list[str] = []
    errors: list[str] = []

    for theme in sorted(p for p in themes_dir.iterdir() if p.is_dir()):
        backgrounds = theme / "backgrounds"
        if backgrounds.is_symlink() and backgrounds.resolve() == wallpapers.resolve():
            continue
        moved = ctx.fs.backup_existing(backgrounds)
        if moved.failed:
            errors.append(moved.error or str(backgrounds))
            continue
        link = ctx.fs.symlink(wallpapers, backgrounds)
        if link.failed:
            errors.append(link.error or str(backgrounds))
            continue
        linked.append(theme.name)

    if errors:
        return StepResult.failure(
            "omarchy-wallpapers", error="; ".join(errors), metadata={"linked": linked}
        )
    return StepResult.success(
        "omarchy-wallpapers",
        output=f"Linked wallpapers for {len(linked)} theme(s)",
        metadata={"linked": linked},
    )


# ── Step list ───────────────────────────────────────────────────


def build_setup_steps() -> list[Step]:
    """The full provisioning sequence, in run order."""
    return [
        Step("check-not-root", check_not_root, fatal=True,
             description="Refuse to run as root"),
        Step("check-dependencies", check_dependencies, fatal=True,
             description="curl and git must be installed"),
        Step("system-upgrade", system_upgrade,
             description="Refresh and upgrade installed packages"),
        Step("bootstrap-packages", bootstrap_packages,
             description="Tools needed to add repositories"),
        Step("add-repositories", add_repositories,
             description="Vendor repositories and signing keys"),
        Step("install-packages", install_packages,
             description="Distribution packages plus configured extras"),
        Step("flatpak-apps", flatpak_apps,
             description="Desktop apps from Flathub"),
        Step("install-rust", install_rust,
             description="rustup toolchain"),
        Step("install-bun", install_bun,
             description="Bun JavaScript runtime"),
        Step("install-go", install_go,
             description="Go toolchain in /usr/local/go (opt-in)"),
        Step("npm-globals", npm_globals,
             description="Global npm packages under ~/.npm-global"),
        Step("cargo-crates", cargo_crates,
             description="Rust command-line tools"),
        Step("tailscale", tailscale,
             description="Enable tailscaled and log in"),
        Step("font-cache", font_cache,
             description="Rebuild the font cache (desktop)"),
        Step(CLONE_STEP, clone_dotfiles,
             description="Clone dotfile repositories"),
        Step("default-shell", default_shell,
             description="Make the configured shell the login shell"),
        Step("neovim-sync", neovim_sync,
             description="Headless Lazy plugin sync"),
        Step("omarchy-wallpapers", omarchy_wallpapers,
             description="Link wallpapers into Omarchy themes"),
    ]