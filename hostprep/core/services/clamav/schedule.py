"""
Scan scheduling — the user's crontab entries for automated scans.

Entries we own carry a trailing ``# hostprep-clamav`` tag, so a rerun
replaces them and leaves every other crontab line alone.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from hostprep.core.engine.context import StepContext
from hostprep.core.engine.runner import RunReport, StepRunner
from hostprep.core.models.step import Step, StepResult

logger = logging.getLogger(__name__)

CRON_TAG = "# hostprep-clamav"

DEFAULT_SINGLE = "0 2 * * *"
DEFAULT_FAST = "0 5 * * *"
DEFAULT_DEEP = "0 20 * * *"

ScheduleMode = Literal["single", "dual"]


def validate_cron(expr: str) -> str:
    """Five whitespace-separated fields, or ``@daily`` style shortcuts."""
    expr = " ".join(expr.split())
    if expr.startswith("@"):
        return expr
    if len(expr.split(" ")) != 5:
        raise ValueError(f"Invalid cron schedule (expected 5 fields): {expr!r}")
    return expr


def _entry(schedule: str, command: list[str], log_file: Path) -> str:
    return f"{schedule} {shlex.join(command)} >> {shlex.quote(str(log_file))} 2>&1 {CRON_TAG}"


def render_crontab(
    existing: str,
    executable: str,
    log_file: Path,
    mode: ScheduleMode = "single",
    deep_schedule: str | None = None,
    fast_schedule: str | None = None,
) -> str:
    """New crontab text: ``existing`` minus our old entries, plus fresh ones."""
    kept = [line for line in existing.splitlines() if CRON_TAG not in line]
    while kept and not kept[-1].strip():
        kept.pop()

    deep_cmd = [executable, "clamav", "scan"]
    fast_cmd = [executable, "clamav", "scan", "--fast"]

    if mode == "dual":
        fast = validate_cron(fast_schedule or DEFAULT_FAST)
        deep = validate_cron(deep_schedule or DEFAULT_DEEP)
        ours = [
            f"# ClamAV dual scan: fast (morning) and deep (evening) {CRON_TAG}",
            _entry(fast, fast_cmd, log_file),
            _entry(deep, deep_cmd, log_file),
        ]
    else:
        deep = validate_cron(deep_schedule or DEFAULT_SINGLE)
        ours = [
            f"# ClamAV deep scan {CRON_TAG}",
            _entry(deep, deep_cmd, log_file),
        ]

    lines = [*kept, "", *ours] if kept else ours
    return "\n".join(lines) + "\n"


@dataclass
class ScheduleRequest:
    executable: str
    mode: ScheduleMode = "single"
    deep_schedule: str | None = None
    fast_schedule: str | None = None

    # ── Steps ───────────────────────────────────────────────────

    def check_scanner(self, ctx: StepContext) -> StepResult:
        if not ctx.shell.has("clamscan"):
            return StepResult.failure(
                "check-scanner", error="ClamAV is not installed (clamscan not found)"
            )
        return StepResult.success("check-scanner")

    def definitions_service(self, ctx: StepContext) -> StepResult:
        """Debian runs a freshclam service; elsewhere, fetch once now."""
        family = ctx.distro.family if ctx.distro else None
        if family == "debian":
            receipt = ctx.shell.run(
                ["systemctl", "enable", "--now", "clamav-freshclam"], sudo=True
            )
        else:
            receipt = ctx.shell.run(["freshclam"], sudo=True)
        if receipt.failed:
            return StepResult.failure("definitions", error=receipt.error or "")
        return StepResult.success("definitions")

    def install_crontab(self, ctx: StepContext) -> StepResult:
        log_file = ctx.expand(ctx.config.clamav.log_dir) / "cron.log"
        ctx.fs.ensure_dir(log_file.parent)

        current = ctx.shell.run(["crontab", "-l"])
        # "no crontab for <user>" exits 1; treat as empty
        if current.ok:
            existing = current.output
        elif current.return_code == 1 and "no crontab" in (current.error or ""):
            existing = ""
        else:
            return StepResult.failure(
                "install-crontab",
                error=f"Could not read current crontab: {current.error}",
            )

        try:
            content = render_crontab(
                existing,
                self.executable,
                log_file,
                mode=self.mode,
                deep_schedule=self.deep_schedule,
                fast_schedule=self.fast_schedule,
            )
        except ValueError as e:
            return StepResult.failure("install-crontab", error=str(e))

        receipt = ctx.shell.run(["crontab", "-"], input_text=content)
        if receipt.failed:
            return StepResult.failure("install-crontab", error=receipt.error or "")
        entries = [
            line for line in content.splitlines()
            if CRON_TAG in line and not line.startswith("#")
        ]
        return StepResult.success(
            "install-crontab",
            output="\n".join(entries),
            metadata={"crontab": content},
        )

    def steps(self) -> list[Step]:
        return [
            Step("check-scanner", self.check_scanner, fatal=True),
            Step("definitions", self.definitions_service),
            Step("install-crontab", self.install_crontab),
        ]


def install_schedule(ctx: StepContext, request: ScheduleRequest) -> RunReport:
    """Run the scheduling steps."""
    return StepRunner(ctx).run(request.steps())
