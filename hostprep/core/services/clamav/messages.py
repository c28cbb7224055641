"""
Notification texts (Telegram HTML parse mode).
"""

from __future__ import annotations

import html
from datetime import datetime

from hostprep.core.models.scan import ScanReport

_TIME_FMT = "%Y-%m-%d %H:%M:%S"


def _now(now: datetime | None) -> str:
    return (now or datetime.now()).strftime(_TIME_FMT)


def format_duration(report: ScanReport) -> str:
    if report.duration_seconds is None:
        return report.elapsed_text or "Unknown"
    return f"{report.duration_minutes} minutes"


def start_message(host: str, scan_dir: str, fast: bool = False, now: datetime | None = None) -> str:
    if fast:
        return (
            "⚡ <b>ClamAV Fast Scan Started</b>\n"
            f"Host: {html.escape(host)}\n"
            "Scan Type: Quick scan (critical directories only)\n"
            f"Time: {_now(now)}"
        )
    return (
        "🔍 <b>ClamAV Scan Started</b>\n"
        f"Host: {html.escape(host)}\n"
        f"Scan Directory: {html.escape(scan_dir)}\n"
        f"Time: {_now(now)}"
    )


def definitions_message(host: str, service_managed: bool) -> str:
    if service_managed:
        return f"ℹ️  Using automatic database updates on {html.escape(host)}"
    return f"✅ Virus database updated on {html.escape(host)}"


def summary_message(report: ScanReport, host: str, scan_dir: str) -> str:
    """Result message: clean or threats found, deep or fast."""
    fast = report.scan_kind == "fast"
    title = "ClamAV Fast Scan Complete" if fast else "ClamAV Scan Complete"
    if fast:
        where = "Scan Type: Fast Scan (critical directories)"
    else:
        where = f"Scan Directory: {html.escape(scan_dir)}"

    if report.clean:
        header = f"✅ <b>{title} - {'Clean' if fast else 'System Clean'}</b>"
        verdict = "✅ No threats detected"
    else:
        header = f"🚨 <b>{title} - THREATS FOUND</b>"
        verdict = f"⚠️ <b>Infected Files: {report.infected}</b>"

    lines = [
        header,
        "",
        f"Host: {html.escape(host)}",
        where,
        f"Duration: {format_duration(report)}",
        "",
        "📊 <b>Results:</b>",
        f"Files Scanned: {report.scanned_files}",
        f"Directories Scanned: {report.scanned_dirs}",
        verdict,
        "",
        f"Time: {report.timestamp.strftime(_TIME_FMT)}",
    ]

    if not report.clean and not fast:
        lines += ["", "Check the attached log for details."]
    elif not report.clean:
        lines += ["", "⚡ This was a fast scan - consider running a deep scan."]
    elif fast:
        lines += ["", "⚡ Fast scan mode - excludes caches and build artifacts"]
    return "\n".join(lines)


def infected_caption(host: str, fast: bool = False) -> str:
    if fast:
        return f"Infected files found in fast scan on {host}"
    return f"Infected files on {host}"


def corrected_message(report: ScanReport, host: str, scan_date: str) -> str:
    """Re-send of an earlier scan whose notification went out wrong."""
    if report.scan_kind == "fast":
        icon, label = "⚡", "Fast Scan"
    else:
        icon, label = "🔍", "Deep Scan"

    if report.clean:
        status = "✅ <b>Clean</b>"
        verdict = "✅ No threats detected"
    else:
        status = "🚨 <b>THREATS FOUND</b>"
        verdict = f"⚠️ <b>Infected Files: {report.infected}</b>"

    return "\n".join([
        f"{icon} <b>{label} - CORRECTED REPORT</b>",
        status,
        "",
        f"Host: {html.escape(host)}",
        f"Scan Date: {scan_date}",
        "",
        "📊 <b>Corrected Results:</b>",
        f"Files Scanned: {report.scanned_files}",
        f"Directories Scanned: {report.scanned_dirs}",
        verdict,
        "",
        f"Duration: {format_duration(report)}",
        "",
        "ℹ️ This is a corrected notification for a previous scan",
    ])
