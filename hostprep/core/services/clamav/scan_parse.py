"""
Scanner output parsing — clamscan / clamdscan text → ScanReport.

The summary block looks like::

    ----------- SCAN SUMMARY -----------
    Known viruses: 8697438
    Scanned directories: 1207
    Scanned files: 10845
    Infected files: 1
    Time: 95.112 sec (1 m 35 s)

Each number is tried with a field split of the last matching line first,
then a regex over the whole text. Logs cut short (no summary) fall back
to counting per-file result lines.
"""

from __future__ import annotations

import re

from hostprep.core.models.scan import ScanKind, ScanReport

_FILES_RE = re.compile(r"Scanned files: (\d+)")
_DIRS_RE = re.compile(r"Scanned directories: (\d+)")
_SECONDS_RE = re.compile(r"([\d.]+)\s*sec")
_RESULT_LINE_RE = re.compile(r": (?:OK|.+ FOUND)$")


def _last_line(text: str, label: str) -> str | None:
    found = None
    for line in text.splitlines():
        if label in line:
            found = line
    return found


def _field_count(text: str, label: str) -> int | None:
    """Third whitespace field of the last ``label`` line, if numeric."""
    line = _last_line(text, label)
    if line is None:
        return None
    parts = line.split()
    if len(parts) >= 3 and parts[2].isdigit():
        return int(parts[2])
    return None


def _regex_count(text: str, pattern: re.Pattern[str]) -> int | None:
    matches = pattern.findall(text)
    if matches:
        return int(matches[-1])
    return None


def _elapsed(text: str) -> tuple[str, int | None]:
    """Elapsed text and whole seconds from ``Elapsed time:`` or ``Time:``."""
    line = _last_line(text, "Elapsed time:")
    if line is not None:
        parts = line.split()
        elapsed = " ".join(parts[2:4])
    else:
        line = next(
            (l for l in reversed(text.splitlines()) if l.strip().startswith("Time:")), None
        )
        if line is None:
            return "", None
        elapsed = " ".join(line.split()[1:3])

    match = _SECONDS_RE.search(elapsed)
    seconds = int(float(match.group(1))) if match else None
    return elapsed, seconds


def parse_scan_output(
    text: str,
    scan_kind: ScanKind = "deep",
    duration_seconds: int | None = None,
) -> ScanReport:
    """Parse scanner output into a ScanReport.

    Args:
        text: Full scanner output (or a saved scan log).
        scan_kind: ``deep`` or ``fast``.
        duration_seconds: Measured wall time; when None, the time the
            scanner printed is used instead.
    """
    infected_lines = [line for line in text.splitlines() if "FOUND" in line]

    files = _field_count(text, "Scanned files:")
    if files is None:
        files = _regex_count(text, _FILES_RE)
    if files is None:
        # clamdscan without -i prints one result line per file
        files = sum(1 for line in text.splitlines() if _RESULT_LINE_RE.search(line))

    dirs = _field_count(text, "Scanned directories:")
    if dirs is None:
        dirs = _regex_count(text, _DIRS_RE) or 0

    elapsed_text, parsed_seconds = _elapsed(text)

    return ScanReport(
        scan_kind=scan_kind,
        scanned_files=files,
        scanned_dirs=dirs,
        infected=len(infected_lines),
        infected_lines=infected_lines,
        duration_seconds=duration_seconds if duration_seconds is not None else parsed_seconds,
        elapsed_text=elapsed_text,
    )


def combine_reports(reports: list[ScanReport], duration_seconds: int | None = None) -> ScanReport:
    """Sum per-target fast scan reports into one."""
    lines = [line for r in reports for line in r.infected_lines]
    return ScanReport(
        scan_kind="fast",
        scanned_files=sum(r.scanned_files for r in reports),
        scanned_dirs=sum(r.scanned_dirs for r in reports),
        infected=sum(r.infected for r in reports),
        infected_lines=lines,
        duration_seconds=duration_seconds,
    )
