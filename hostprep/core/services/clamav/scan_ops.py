"""
Scan workflow — update definitions, scan, log, notify, prune.

Expressed as named steps on the shared runner so one unreachable bot
API or a rate-limited freshclam never loses a scan result:

    notify-start → update-definitions → scan (fatal) → write-logs
        → notify-result → prune-logs

Exit code: the scanner's own code for deep scans (0 clean, 1 threats,
2 errors), 0 for fast scans, 1 when the scan could not run at all.
"""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from hostprep.core.config.credentials import Credentials
from hostprep.core.engine.context import StepContext
from hostprep.core.engine.runner import RunReport, StepRunner
from hostprep.core.models.config import ClamavSettings
from hostprep.core.models.scan import ScanReport
from hostprep.core.models.step import Step, StepResult
from hostprep.core.services.clamav import messages
from hostprep.core.services.clamav.notify import TelegramNotifier
from hostprep.core.services.clamav.scan_parse import combine_reports, parse_scan_output

logger = logging.getLogger(__name__)

DEEP_EXCLUDES = ("^/sys", "^/dev", "^/proc", "^/run")

FAST_EXCLUDES = (
    r"\.cache",
    "node_modules",
    r"\.cargo/registry",
    r"\.npm",
    r"\.rustup",
    r"\.git",
    r"\.local/share/Steam",
    r"\.local/share/Trash",
)

FRESHCLAM_SERVICE = "clamav-freshclam"
STAMP_FMT = "%Y%m%d_%H%M%S"

# clamscan: 0 clean, 1 virus found, 2 some error (partial results)
_SCANNER_NOT_RUN = (None, 126, 127)


def apply_overrides(settings: ClamavSettings, env: dict[str, str]) -> ClamavSettings:
    """Credentials-file keys (SCAN_DIR, LOG_DIR, ...) override the config."""
    update: dict = {}
    if env.get("SCAN_DIR"):
        update["scan_dir"] = env["SCAN_DIR"]
    if env.get("LOG_DIR"):
        update["log_dir"] = env["LOG_DIR"]
    if env.get("FAST_SCAN_TARGETS"):
        update["fast_targets"] = env["FAST_SCAN_TARGETS"].split()
    if env.get("USE_CLAMDSCAN"):
        update["use_clamdscan"] = env["USE_CLAMDSCAN"].strip().lower() == "true"
    return settings.model_copy(update=update) if update else settings


def resolve_hostname(ctx: StepContext) -> str:
    receipt = ctx.shell.run(["hostname", "-f"], timeout=5)
    name = receipt.output.strip() if receipt.ok else ""
    return name or socket.gethostname() or "unknown"


@dataclass
class ScanJob:
    """State shared by the steps of one scan run."""

    settings: ClamavSettings
    notifier: TelegramNotifier
    fast: bool = False
    host: str = "unknown"
    started: datetime = field(default_factory=datetime.now)

    output: str = ""
    scanner_exit: int = 0
    report: ScanReport | None = None
    scan_log: Path | None = None
    infected_log: Path | None = None

    @property
    def stamp(self) -> str:
        return self.started.strftime(STAMP_FMT)

    def log_dir(self, ctx: StepContext) -> Path:
        return ctx.expand(self.settings.log_dir)

    # ── Steps ───────────────────────────────────────────────────

    def notify_start(self, ctx: StepContext) -> StepResult:
        text = messages.start_message(
            self.host, self.settings.scan_dir, fast=self.fast, now=self.started
        )
        if not self.notifier.send_message(text):
            return StepResult.failure("notify-start", error="Start notification not delivered")
        return StepResult.success("notify-start")

    def update_definitions(self, ctx: StepContext) -> StepResult:
        if self.fast:
            return StepResult.skip(
                "update-definitions", "Fast scan mode, definitions updated by deep scans"
            )

        active = ctx.shell.run(
            ["systemctl", "is-active", "--quiet", FRESHCLAM_SERVICE], timeout=10
        )
        if active.ok and not active.dry_run:
            self.notifier.send_message(messages.definitions_message(self.host, True))
            return StepResult.skip(
                "update-definitions", f"{FRESHCLAM_SERVICE} service keeps definitions current"
            )

        receipt = ctx.shell.run(["freshclam"], sudo=True)
        ctx.fs.write_text(
            self.log_dir(ctx) / f"freshclam_{self.stamp}.log",
            receipt.output + (receipt.error or ""),
        )
        if receipt.failed:
            # Usually "too soon since last update"; the old database still works
            return StepResult.failure(
                "update-definitions", error=f"freshclam failed: {receipt.error}"
            )
        self.notifier.send_message(messages.definitions_message(self.host, False))
        return StepResult.success("update-definitions", output="Virus database updated")

    def scan(self, ctx: StepContext) -> StepResult:
        start = time.monotonic()
        if self.fast:
            result = self._scan_fast(ctx)
        else:
            result = self._scan_deep(ctx)
        if result is not None:
            return result

        elapsed = int(time.monotonic() - start)
        if self.report is not None:
            self.report = self.report.model_copy(update={"duration_seconds": elapsed})
        else:
            self.report = parse_scan_output(self.output, "deep", duration_seconds=elapsed)
        return StepResult.success(
            "scan",
            output=(
                f"{self.report.scanned_files} file(s), "
                f"{self.report.infected} infected"
            ),
            metadata={"exit_code": self.scanner_exit},
        )

    def _scan_deep(self, ctx: StepContext) -> StepResult | None:
        scan_dir = self.settings.scan_dir
        if self.settings.use_clamdscan and ctx.shell.has("clamdscan"):
            logger.info("Using clamdscan (daemon mode)")
            receipt = ctx.shell.run(["clamdscan", "--multiscan", scan_dir])
        else:
            excludes = [f"--exclude-dir={d}" for d in DEEP_EXCLUDES]
            receipt = ctx.shell.run(["clamscan", "-r", *excludes, scan_dir], sudo=True)

        if receipt.return_code in _SCANNER_NOT_RUN and not receipt.ok:
            return StepResult.fatal_error("scan", error=f"Scanner did not run: {receipt.error}")

        self.scanner_exit = receipt.return_code or 0
        self.output = receipt.output
        return None

    def _scan_fast(self, ctx: StepContext) -> StepResult | None:
        targets = [ctx.expand(t) for t in self.settings.fast_targets]
        existing = [t for t in targets if t.is_dir()]
        for missing in set(targets) - set(existing):
            logger.warning("Fast scan target not found, skipping: %s", missing)
        if not existing:
            return StepResult.fatal_error("scan", error="None of the fast scan targets exist")

        excludes = [f"--exclude-dir={d}" for d in FAST_EXCLUDES]
        outputs: list[str] = []
        reports: list[ScanReport] = []
        for target in existing:
            logger.info("Scanning %s", target)
            receipt = ctx.shell.run(["clamscan", "-r", "-i", *excludes, str(target)], sudo=True)
            if receipt.return_code in _SCANNER_NOT_RUN and not receipt.ok:
                return StepResult.fatal_error(
                    "scan", error=f"Scanner did not run: {receipt.error}"
                )
            outputs.append(receipt.output)
            reports.append(parse_scan_output(receipt.output, "fast"))

        self.output = "\n".join(outputs)
        self.report = combine_reports(reports)
        return None

    def write_logs(self, ctx: StepContext) -> StepResult:
        log_dir = self.log_dir(ctx)
        prefix = "fast_scan" if self.fast else "scan"
        self.scan_log = log_dir / f"{prefix}_{self.stamp}.log"

        receipt = ctx.fs.write_text(self.scan_log, self.output)
        if receipt.failed:
            return StepResult.failure("write-logs", error=receipt.error or "")

        if self.report and not self.report.clean:
            name = f"infected_fast_{self.stamp}.log" if self.fast else f"infected_{self.stamp}.log"
            self.infected_log = log_dir / name
            receipt = ctx.fs.write_text(
                self.infected_log, "\n".join(self.report.infected_lines) + "\n"
            )
            if receipt.failed:
                return StepResult.failure("write-logs", error=receipt.error or "")
        return StepResult.success("write-logs", output=str(self.scan_log))

    def notify_result(self, ctx: StepContext) -> StepResult:
        if self.report is None:
            return StepResult.skip("notify-result", "No scan report")

        text = messages.summary_message(self.report, self.host, self.settings.scan_dir)
        if not self.notifier.send_message(text):
            return StepResult.failure("notify-result", error="Result notification not delivered")

        if not self.report.clean and self.infected_log is not None and self.infected_log.is_file():
            caption = messages.infected_caption(self.host, fast=self.fast)
            if not self.notifier.send_document(self.infected_log, caption):
                return StepResult.failure("notify-result", error="Infected log not delivered")
        return StepResult.success("notify-result")

    def prune_logs(self, ctx: StepContext) -> StepResult:
        receipt = ctx.fs.prune_older_than(
            self.log_dir(ctx), "*.log", self.settings.retention_days
        )
        removed = receipt.metadata.get("removed", [])
        return StepResult.success(
            "prune-logs",
            output=f"Removed {len(removed)} log(s) older than {self.settings.retention_days} days",
        )

    def steps(self) -> list[Step]:
        return [
            Step("notify-start", self.notify_start),
            Step("update-definitions", self.update_definitions),
            Step("scan", self.scan, fatal=True),
            Step("write-logs", self.write_logs),
            Step("notify-result", self.notify_result),
            Step("prune-logs", self.prune_logs),
        ]


@dataclass
class ScanOutcome:
    run: RunReport
    report: ScanReport | None
    scan_log: Path | None
    exit_code: int

    def to_dict(self) -> dict:
        return {
            "exit_code": self.exit_code,
            "scan_log": str(self.scan_log) if self.scan_log else None,
            "report": self.report.model_dump(mode="json") if self.report else None,
            "run": self.run.to_dict(),
        }


def run_scan(
    ctx: StepContext,
    credentials: Credentials,
    fast: bool = False,
    notifier: TelegramNotifier | None = None,
    now: datetime | None = None,
) -> ScanOutcome:
    """Run one deep or fast scan end to end."""
    settings = apply_overrides(ctx.config.clamav, credentials.extra)
    if notifier is None:
        notifier = TelegramNotifier(
            credentials.bot_token, credentials.chat_id, dry_run=ctx.dry_run
        )

    made = ctx.fs.ensure_dir(ctx.expand(settings.log_dir))
    if made.failed:
        logger.warning("Cannot create log directory: %s", made.error)

    job = ScanJob(
        settings=settings,
        notifier=notifier,
        fast=fast,
        host=resolve_hostname(ctx),
        started=now or datetime.now(),
    )
    run = StepRunner(ctx).run(job.steps())

    if run.aborted:
        exit_code = 1
    elif fast:
        exit_code = 0
    else:
        exit_code = job.scanner_exit

    return ScanOutcome(run=run, report=job.report, scan_log=job.scan_log, exit_code=exit_code)
