"""
Session — build the StepContext every command runs against.

Loads config, detects the distribution (when the command needs it) and
picks the shell adapter: real, dry-run, or the recording mock.
"""

from __future__ import annotations

import atexit
import logging
import shutil
import tempfile
from pathlib import Path

from hostprep.adapters.mock import MockShellAdapter
from hostprep.adapters.shell.command import ShellCommandAdapter
from hostprep.core.config.loader import load_config
from hostprep.core.data.profiles import get_profile
from hostprep.core.engine.context import StepContext
from hostprep.core.services.distro_detect import detect_distro, read_os_release

logger = logging.getLogger(__name__)


def make_shell(dry_run: bool = False, mock: bool = False) -> ShellCommandAdapter:
    if mock:
        return MockShellAdapter()
    return ShellCommandAdapter(dry_run=dry_run)


def scratch_home() -> Path:
    """Temporary home directory, removed when the process exits."""
    home = Path(tempfile.mkdtemp(prefix="hostprep-mock-home-"))
    atexit.register(shutil.rmtree, home, ignore_errors=True)
    logger.info("Mock run using scratch home %s", home)
    return home


def open_session(
    config_path: Path | None = None,
    *,
    dry_run: bool = False,
    mock: bool = False,
    detect: bool = True,
    variant: str | None = None,
    os_release: Path | None = None,
    home: Path | None = None,
    shell: ShellCommandAdapter | None = None,
) -> StepContext:
    """Assemble a StepContext.

    Raises:
        ConfigError: Invalid config file.
        UnsupportedDistro: Detection requested and no family matched.
        ValueError: Unknown variant.
    """
    config = load_config(config_path)
    if variant:
        config = config.model_copy(update={"variant": variant})

    if mock and home is None:
        # Mock runs still touch files in-process; keep them out of the real home
        home = scratch_home()

    distro = profile = None
    if detect:
        distro = detect_distro(read_os_release(os_release))
        profile = get_profile(distro.family, config.variant)

    ctx = StepContext(
        config=config,
        shell=shell or make_shell(dry_run=dry_run, mock=mock),
        home=home or Path.home(),
        distro=distro,
        profile=profile,
    )
    logger.debug(
        "Session: family=%s variant=%s dry_run=%s mock=%s",
        distro.family if distro else None, config.variant, dry_run, mock,
    )
    return ctx
