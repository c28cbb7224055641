"""
Setup use case — provision this machine end to end.

Loads config, detects the distribution, builds the step list and runs
it. Detection failure is fatal before any step (and any package-manager
command) runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from hostprep.adapters.shell.command import ShellCommandAdapter
from hostprep.core.config.loader import ConfigError
from hostprep.core.engine.runner import RunReport, StepRunner
from hostprep.core.models.distro import DistroInfo
from hostprep.core.services.distro_detect import UnsupportedDistro
from hostprep.core.services.provision import build_setup_steps
from hostprep.core.use_cases.session import open_session

logger = logging.getLogger(__name__)


@dataclass
class SetupResult:
    report: RunReport | None = None
    distro: DistroInfo | None = None
    variant: str = ""
    mode: str = "live"
    commands: list[str] | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return 1
        return self.report.exit_code if self.report else 1

    def to_dict(self) -> dict:
        result: dict = {"mode": self.mode}
        if self.error:
            result["error"] = self.error
            return result
        result["family"] = self.distro.family if self.distro else None
        result["variant"] = self.variant
        if self.report:
            result["report"] = self.report.to_dict()
        if self.commands is not None:
            result["commands"] = self.commands
        return result


def run_setup(
    config_path: Path | None = None,
    variant: str | None = None,
    dry_run: bool = False,
    mock: bool = False,
    os_release: Path | None = None,
    home: Path | None = None,
    shell: ShellCommandAdapter | None = None,
) -> SetupResult:
    """Run the provisioning sequence.

    Args:
        config_path: Explicit hostprep.yml path.
        variant: ``desktop`` / ``server`` override.
        dry_run: Log commands instead of running them.
        mock: Run against the recording mock adapter.
        os_release: Alternate OS-release file.
        home: Alternate home directory.
        shell: Pre-built shell adapter (tests).
    """
    result = SetupResult(mode="mock" if mock else "dry-run" if dry_run else "live")

    try:
        ctx = open_session(
            config_path,
            dry_run=dry_run,
            mock=mock,
            variant=variant,
            os_release=os_release,
            home=home,
            shell=shell,
        )
    except (ConfigError, UnsupportedDistro, ValueError) as e:
        logger.error("%s", e)
        result.error = str(e)
        return result

    result.distro = ctx.distro
    result.variant = ctx.config.variant

    report = StepRunner(ctx).run(build_setup_steps())
    result.report = report

    if mock or dry_run:
        result.commands = [" ".join(argv) for argv in ctx.shell.history]
    return result
