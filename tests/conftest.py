"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from hostprep.adapters.mock import MockShellAdapter
from hostprep.core.data.profiles import get_profile
from hostprep.core.engine.context import StepContext
from hostprep.core.models.config import HostprepConfig
from hostprep.core.models.distro import DistroInfo

OS_RELEASES = {
    "arch": """\
        NAME="Arch Linux"
        PRETTY_NAME="Arch Linux"
        ID=arch
        BUILD_ID=rolling
    """,
    "ubuntu": """\
        PRETTY_NAME="Ubuntu 24.04 LTS"
        NAME="Ubuntu"
        VERSION_ID="24.04"
        VERSION_CODENAME=noble
        ID=ubuntu
        ID_LIKE=debian
        UBUNTU_CODENAME=noble
    """,
    "debian": """\
        PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"
        NAME="Debian GNU/Linux"
        VERSION_ID="12"
        VERSION_CODENAME=bookworm
        ID=debian
    """,
    "fedora": """\
        NAME="Fedora Linux"
        VERSION_ID=40
        ID=fedora
        PRETTY_NAME="Fedora Linux 40 (Workstation Edition)"
    """,
    "gentoo": """\
        NAME=Gentoo
        ID=gentoo
        PRETTY_NAME="Gentoo Linux"
    """,
}


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """A throwaway home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def mock_shell() -> MockShellAdapter:
    """Mock shell where every program is installed and we are not root."""
    return MockShellAdapter()


@pytest.fixture
def os_release(tmp_path: Path):
    """Factory: write a named os-release fixture and return its path."""

    def _write(name: str) -> Path:
        path = tmp_path / f"os-release-{name}"
        path.write_text(textwrap.dedent(OS_RELEASES[name]))
        return path

    return _write


@pytest.fixture
def make_ctx(home: Path, mock_shell: MockShellAdapter):
    """Factory: StepContext on the mock shell for a family and variant."""

    def _make(
        family: str | None = "debian",
        variant: str = "desktop",
        config: HostprepConfig | None = None,
        shell: MockShellAdapter | None = None,
        distro_id: str | None = None,
        **distro_fields,
    ) -> StepContext:
        config = config or HostprepConfig(variant=variant)
        distro = profile = None
        if family is not None:
            distro = DistroInfo(family=family, id=distro_id or family, **distro_fields)
            profile = get_profile(family, config.variant)
        return StepContext(
            config=config,
            shell=shell or mock_shell,
            home=home,
            distro=distro,
            profile=profile,
            login_shell="/bin/bash",
        )

    return _make
