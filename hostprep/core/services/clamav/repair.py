"""
Notification repair — re-send results for scans whose report went out wrong.

Earlier scan versions sent "Unknown" counts when the summary could not
be parsed. The logs are still on disk, so the numbers can be recovered
and sent again as a clearly marked corrected report.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from hostprep.core.models.scan import ScanReport
from hostprep.core.services.clamav import messages
from hostprep.core.services.clamav.notify import TelegramNotifier
from hostprep.core.services.clamav.scan_parse import parse_scan_output

logger = logging.getLogger(__name__)

_STAMP_RE = re.compile(r"(\d{4})(\d{2})(\d{2})_(\d{2})(\d{2})(\d{2})")
DEFAULT_LIMIT = 10


@dataclass
class RepairCandidate:
    path: Path
    scan_date: str
    report: ScanReport

    @property
    def incomplete(self) -> bool:
        return self.report.incomplete

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "scan_kind": self.report.scan_kind,
            "scan_date": self.scan_date,
            "scanned_files": self.report.scanned_files,
            "scanned_dirs": self.report.scanned_dirs,
            "infected": self.report.infected,
            "duration": messages.format_duration(self.report),
            "incomplete": self.incomplete,
        }


def scan_date_for(path: Path) -> tuple[str, datetime]:
    """Scan date from the ``YYYYmmdd_HHMMSS`` name stamp, else the file mtime."""
    match = _STAMP_RE.search(path.name)
    if match:
        y, mo, d, h, mi, s = (int(g) for g in match.groups())
        try:
            when = datetime(y, mo, d, h, mi, s)
            return when.strftime("%Y-%m-%d %H:%M:%S"), when
        except ValueError:
            pass
    when = datetime.fromtimestamp(path.stat().st_mtime)
    return when.strftime("%Y-%m-%d %H:%M:%S"), when


def find_repairable_logs(log_dir: Path, limit: int = DEFAULT_LIMIT) -> list[RepairCandidate]:
    """Newest ``limit`` deep and fast scan logs, parsed, newest first."""
    if not log_dir.is_dir():
        return []

    dated: list[tuple[datetime, Path, str]] = []
    for pattern in ("scan_*.log", "fast_scan_*.log"):
        for path in log_dir.glob(pattern):
            if not path.is_file():
                continue
            label, when = scan_date_for(path)
            dated.append((when, path, label))

    dated.sort(key=lambda item: (item[0], item[1].name), reverse=True)

    candidates: list[RepairCandidate] = []
    for _, path, label in dated[:limit]:
        kind = "fast" if path.name.startswith("fast_scan_") else "deep"
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Cannot read %s: %s", path, e)
            continue
        report = parse_scan_output(text, kind)
        candidates.append(RepairCandidate(path=path, scan_date=label, report=report))
    return candidates


def send_corrected_report(
    candidate: RepairCandidate, notifier: TelegramNotifier, host: str
) -> bool:
    """Send the corrected report. Incomplete logs are never sent."""
    if candidate.incomplete:
        logger.warning("%s has incomplete data, cannot repair", candidate.path.name)
        return False
    text = messages.corrected_message(candidate.report, host, candidate.scan_date)
    return notifier.send_message(text)
