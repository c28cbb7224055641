"""
Tests for the provisioning sequence, run end to end on the mock shell.
"""

import shlex
from pathlib import Path

import pytest

from hostprep.adapters.mock import MockShellAdapter
from hostprep.core.data.profiles import get_profile
from hostprep.core.engine.runner import StepRunner
from hostprep.core.models.config import HostprepConfig
from hostprep.core.services import provision
from hostprep.core.services.provision import (
    CARGO_PATH_LINE,
    GO_PATH_LINES,
    GO_VERSION_URL,
    NPM_PATH_LINE,
    build_setup_steps,
    default_shell,
    install_go,
    omarchy_wallpapers,
    plan_packages,
)


def _run(ctx):
    return StepRunner(ctx).run(build_setup_steps())


# ── Preconditions ────────────────────────────────────────────────────


class TestPreconditions:
    def test_root_aborts_everything(self, make_ctx):
        shell = MockShellAdapter(root=True)
        report = _run(make_ctx(shell=shell))
        assert report.status == "failed"
        assert report.exit_code == 1
        assert report.get("check-not-root").is_fatal
        assert len(report.not_run) == len(build_setup_steps()) - 1
        assert shell.calls == []

    def test_missing_curl_aborts(self, make_ctx):
        shell = MockShellAdapter(programs=["git", "fish"])
        report = _run(make_ctx(shell=shell))
        result = report.get("check-dependencies")
        assert result.is_fatal
        assert result.metadata["missing"] == ["curl"]
        assert "system-upgrade" in report.not_run
        assert not shell.ran("apt")

    def test_no_profile_issues_no_package_commands(self, make_ctx, mock_shell):
        report = _run(make_ctx(family=None))
        assert report.get("system-upgrade").status == "recoverable"
        assert report.get("install-packages").status == "recoverable"
        for manager in ("apt", "pacman", "dnf", "apk"):
            assert not mock_shell.ran(manager)


# ── Full Run Tests ───────────────────────────────────────────────────


class TestDebianRun:
    def test_all_steps_succeed(self, make_ctx):
        report = _run(make_ctx(version_codename="bookworm"))
        assert report.status == "ok"
        assert report.not_run == []
        assert [r.step for r in report.results] == [s.name for s in build_setup_steps()]

    def test_package_manager_commands(self, make_ctx, mock_shell):
        _run(make_ctx(version_codename="bookworm"))
        assert mock_shell.ran("apt update")
        assert mock_shell.ran("apt upgrade -y")
        assert mock_shell.ran("apt install -y curl wget gpg git lsb-release")
        install = next(c for c in mock_shell.calls if c[1:4] == ["apt", "install", "-y"] and "fish" in c)
        assert "calibre" in install

    def test_repositories(self, make_ctx, mock_shell):
        _run(make_ctx(distro_id="ubuntu", version_codename="noble"))
        assert mock_shell.ran("gpg --dearmor --yes -o /etc/apt/keyrings/gierens.gpg")
        assert mock_shell.ran("tee /etc/apt/sources.list.d/gierens.list")
        assert mock_shell.ran(
            "curl -fsSL -o /usr/share/keyrings/tailscale-archive-keyring.gpg "
            "https://pkgs.tailscale.com/stable/ubuntu/noble.noarmor.gpg"
        )
        # Refresh after new sources, before the package install
        commands = mock_shell.commands
        updates = [i for i, c in enumerate(commands) if c == "apt update"]
        assert len(updates) == 2
        assert updates[1] > commands.index("tee /etc/apt/sources.list.d/gierens.list")

    def test_repository_failure_is_recoverable(self, make_ctx, mock_shell):
        mock_shell.set_failure("curl -fsSL https://raw.githubusercontent.com")
        report = _run(make_ctx(version_codename="bookworm"))
        result = report.get("add-repositories")
        assert result.status == "recoverable"
        assert result.metadata["added"] == ["tailscale"]
        assert report.get("install-packages").ok
        assert report.status == "partial"
        assert "add-repositories" in [r.step for r in report.recoverable]

    def test_user_tooling(self, make_ctx, mock_shell, home: Path):
        _run(make_ctx(version_codename="bookworm"))
        npm_prefix = str(home / ".npm-global")
        assert mock_shell.ran(f"/usr/bin/npm config set prefix {npm_prefix}")
        assert mock_shell.ran("/usr/bin/npm install -g neovim")
        assert mock_shell.ran("/usr/bin/cargo install selene atuin")
        assert NPM_PATH_LINE in (home / ".profile").read_text()
        assert (home / ".npm-global").is_dir()

    def test_rust_installed_when_missing(self, make_ctx, home: Path):
        shell = MockShellAdapter(programs=["curl", "git", "npm", "fish"])
        report = _run(make_ctx(shell=shell, version_codename="bookworm"))
        assert report.get("install-rust").ok
        assert shell.ran("sh -c")
        assert CARGO_PATH_LINE in (home / ".profile").read_text()
        # cargo is still not on PATH in this invocation
        assert report.get("cargo-crates").status == "skipped"


class TestFedoraRun:
    def test_repositories(self, make_ctx, mock_shell):
        _run(make_ctx(family="fedora", version_id="40"))
        rpm = next(c for c in mock_shell.calls if any("rpmfusion-free-release" in a for a in c))
        assert rpm[1:4] == ["dnf", "install", "-y"]
        assert rpm[-1].endswith("rpmfusion-nonfree-release-40.noarch.rpm")
        assert mock_shell.ran(
            "dnf config-manager --add-repo https://cli.github.com/packages/rpm/gh-cli.repo"
        )

    def test_flatpaks(self, make_ctx, mock_shell):
        _run(make_ctx(family="fedora", version_id="40"))
        assert mock_shell.ran("flatpak remote-add --if-not-exists flathub")
        assert mock_shell.ran("flatpak install flathub -y md.obsidian.Obsidian")

    def test_server_skips_desktop_steps(self, make_ctx):
        report = _run(make_ctx(family="fedora", variant="server", version_id="40"))
        assert report.get("flatpak-apps").status == "skipped"
        assert report.get("font-cache").status == "skipped"


# ── Package Planning ─────────────────────────────────────────────────


class TestPlanPackages:
    def test_skip_if_command(self, make_ctx):
        profile = get_profile("arch", "server")
        with_node = plan_packages(make_ctx(family="arch", variant="server"), profile)
        assert "nodejs" not in with_node

        shell = MockShellAdapter(programs=["curl", "git"])
        without = plan_packages(make_ctx(family="arch", variant="server", shell=shell), profile)
        assert "nodejs" in without

    def test_extras_appended_once(self, make_ctx):
        config = HostprepConfig(extra_packages=["htop", "fish", "htop"])
        ctx = make_ctx(config=config)
        packages = plan_packages(ctx, ctx.profile)
        assert packages[-1] == "htop"
        assert packages.count("fish") == 1
        assert packages.count("htop") == 1


# ── Individual Steps ─────────────────────────────────────────────────


class TestDefaultShell:
    def test_changes_login_shell(self, make_ctx, mock_shell):
        result = default_shell(make_ctx())
        assert result.ok
        assert mock_shell.ran("chsh -s /usr/bin/fish")

    def test_already_set(self, make_ctx, mock_shell):
        ctx = make_ctx()
        ctx.login_shell = "/usr/bin/fish"
        assert default_shell(ctx).status == "skipped"
        assert not mock_shell.ran("chsh")

    def test_shell_missing(self, make_ctx):
        shell = MockShellAdapter(programs=["curl", "git"])
        result = default_shell(make_ctx(shell=shell))
        assert result.status == "recoverable"
        assert "fish not found" in result.error

    def test_chsh_failure_gives_manual_hint(self, make_ctx, mock_shell):
        mock_shell.set_failure("chsh")
        result = default_shell(make_ctx())
        assert "chsh -s /usr/bin/fish" in result.error


class TestOmarchyWallpapers:
    def _ctx(self, make_ctx, home: Path):
        for theme in ("tokyo-night", "nord"):
            (home / ".config" / "omarchy" / "themes" / theme / "backgrounds").mkdir(parents=True)
        (home / "Pictures" / "WPs").mkdir(parents=True)
        config = HostprepConfig(omarchy_link_wallpapers=True)
        return make_ctx(family="arch", distro_id="omarchy", config=config)

    def test_links_every_theme(self, make_ctx, home: Path):
        result = omarchy_wallpapers(self._ctx(make_ctx, home))
        assert result.ok
        assert result.metadata["linked"] == ["nord", "tokyo-night"]
        link = home / ".config" / "omarchy" / "themes" / "nord" / "backgrounds"
        assert link.is_symlink()
        assert link.resolve() == (home / "Pictures" / "WPs").resolve()
        backups = list(link.parent.glob("backgrounds.bak.*"))
        assert len(backups) == 1

    def test_second_run_changes_nothing(self, make_ctx, home: Path):
        ctx = self._ctx(make_ctx, home)
        omarchy_wallpapers(ctx)
        again = omarchy_wallpapers(ctx)
        assert again.ok
        assert again.metadata["linked"] == []

    def test_not_omarchy(self, make_ctx):
        config = HostprepConfig(omarchy_link_wallpapers=True)
        result = omarchy_wallpapers(make_ctx(family="arch", config=config))
        assert result.status == "skipped"

    def test_disabled_by_default(self, make_ctx):
        assert omarchy_wallpapers(make_ctx(distro_id="omarchy")).status == "skipped"


# ── Go Toolchain Tests ───────────────────────────────────────────────

VERSION_LOOKUP = shlex.join(["curl", "-fsSL", GO_VERSION_URL])


class TestInstallGo:
    @pytest.fixture
    def go_root(self, tmp_path: Path, monkeypatch) -> Path:
        root = tmp_path / "usr-local" / "go"
        monkeypatch.setattr(provision, "GO_ROOT", root)
        return root

    def _ctx(self, make_ctx, mock_shell, **config):
        mock_shell.set_output("uname -m", "x86_64\n")
        mock_shell.set_output(VERSION_LOOKUP, "go1.22.3\ntime 2024-05-01T00:00:00Z\n")
        return make_ctx(config=HostprepConfig(install_go=True, **config))

    def test_disabled_by_default(self, make_ctx, mock_shell):
        result = install_go(make_ctx())
        assert result.status == "skipped"
        assert mock_shell.calls == []

    def test_fresh_install(self, make_ctx, mock_shell, go_root: Path, home: Path):
        result = install_go(self._ctx(make_ctx, mock_shell))
        assert result.ok
        assert result.metadata == {"version": "go1.22.3", "backup": None}
        download = next(c for c in mock_shell.commands if c.startswith("curl -fsSL -o"))
        assert download.endswith("https://go.dev/dl/go1.22.3.linux-amd64.tar.gz")
        assert mock_shell.ran(f"tar -C {go_root.parent} -xzf")
        assert not mock_shell.ran("mv")
        profile = (home / ".profile").read_text()
        for line in GO_PATH_LINES:
            assert profile.count(line) == 1

    def test_existing_tree_is_backed_up(self, make_ctx, mock_shell, go_root: Path):
        (go_root / "bin").mkdir(parents=True)
        result = install_go(self._ctx(make_ctx, mock_shell))
        assert result.ok
        backup = result.metadata["backup"]
        assert backup.startswith(f"{go_root}.bak.")
        assert ["sudo", "mv", str(go_root), backup] in mock_shell.calls
        mv = mock_shell.commands.index(f"mv {go_root} {backup}")
        tar = next(i for i, c in enumerate(mock_shell.commands) if c.startswith("tar "))
        assert mv < tar

    def test_backup_failure_keeps_old_tree(self, make_ctx, mock_shell, go_root: Path):
        go_root.mkdir(parents=True)
        ctx = self._ctx(make_ctx, mock_shell)
        mock_shell.set_failure("mv", error="Permission denied")
        result = install_go(ctx)
        assert result.status == "recoverable"
        assert "Cannot back up" in result.error
        assert not mock_shell.ran("tar")

    def test_pinned_version(self, make_ctx, mock_shell, go_root: Path):
        result = install_go(self._ctx(make_ctx, mock_shell, go_version="1.21.0"))
        assert result.metadata["version"] == "go1.21.0"
        assert not mock_shell.ran(VERSION_LOOKUP)
        assert any(c.endswith("go1.21.0.linux-amd64.tar.gz") for c in mock_shell.commands)

    def test_arm64(self, make_ctx, mock_shell, go_root: Path):
        ctx = self._ctx(make_ctx, mock_shell)
        mock_shell.set_output("uname -m", "aarch64\n")
        install_go(ctx)
        assert any(c.endswith("linux-arm64.tar.gz") for c in mock_shell.commands)

    def test_unsupported_architecture(self, make_ctx, mock_shell, go_root: Path):
        ctx = self._ctx(make_ctx, mock_shell)
        mock_shell.set_output("uname -m", "riscv64\n")
        result = install_go(ctx)
        assert result.status == "recoverable"
        assert "riscv64" in result.error
        assert not mock_shell.ran("curl")

    def test_download_failure(self, make_ctx, mock_shell, go_root: Path):
        ctx = self._ctx(make_ctx, mock_shell)
        mock_shell.set_failure("curl -fsSL -o", error="404 Not Found")
        result = install_go(ctx)
        assert result.status == "recoverable"
        assert not mock_shell.ran("tar")

    def test_listed_after_bun(self):
        names = [step.name for step in build_setup_steps()]
        assert names.index("install-go") == names.index("install-bun") + 1
