"""
Tests for notification repair — re-parsing old logs and re-sending.
"""

import os
from datetime import datetime
from pathlib import Path

import pytest

from hostprep.core.services.clamav.repair import (
    find_repairable_logs,
    scan_date_for,
    send_corrected_report,
)
from hostprep.core.services.clamav.notify import TelegramNotifier

SUMMARY = (
    "----------- SCAN SUMMARY -----------\n"
    "Scanned directories: 12\nScanned files: 340\nInfected files: 0\n"
    "Time: 61.000 sec (1 m 1 s)\n"
)


class _Recorder(TelegramNotifier):
    def __init__(self):
        super().__init__("T", "1")

    def send_message(self, text: str) -> bool:
        self.sent.append(text)
        return True


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    path = tmp_path / ".clamav-logs"
    path.mkdir()
    (path / "scan_20240501_020000.log").write_text(SUMMARY)
    (path / "fast_scan_20240502_050000.log").write_text(SUMMARY)
    (path / "scan_20240430_020000.log").write_text("")
    (path / "infected_20240501_020000.log").write_text("/a: X FOUND\n")
    return path


class TestScanDate:
    def test_from_stamp(self, tmp_path: Path):
        path = tmp_path / "scan_20240501_020304.log"
        path.write_text("")
        label, when = scan_date_for(path)
        assert label == "2024-05-01 02:03:04"
        assert when == datetime(2024, 5, 1, 2, 3, 4)

    def test_from_mtime(self, tmp_path: Path):
        path = tmp_path / "scan_manual.log"
        path.write_text("")
        stamp = datetime(2023, 1, 2, 3, 4, 5).timestamp()
        os.utime(path, (stamp, stamp))
        assert scan_date_for(path)[0] == "2023-01-02 03:04:05"


class TestFindRepairableLogs:
    def test_newest_first(self, log_dir: Path):
        found = find_repairable_logs(log_dir)
        assert [c.path.name for c in found] == [
            "fast_scan_20240502_050000.log",
            "scan_20240501_020000.log",
            "scan_20240430_020000.log",
        ]
        assert found[0].report.scan_kind == "fast"
        assert found[1].report.scan_kind == "deep"
        assert found[1].report.scanned_files == 340

    def test_limit(self, log_dir: Path):
        assert len(find_repairable_logs(log_dir, limit=1)) == 1

    def test_missing_dir(self, tmp_path: Path):
        assert find_repairable_logs(tmp_path / "nope") == []

    def test_incomplete_flagged(self, log_dir: Path):
        found = {c.path.name: c for c in find_repairable_logs(log_dir)}
        assert found["scan_20240430_020000.log"].incomplete
        assert not found["scan_20240501_020000.log"].incomplete

    def test_to_dict(self, log_dir: Path):
        data = find_repairable_logs(log_dir)[1].to_dict()
        assert data["scan_date"] == "2024-05-01 02:00:00"
        assert data["scanned_dirs"] == 12
        assert data["incomplete"] is False


class TestSendCorrectedReport:
    def test_sends_marked_report(self, log_dir: Path):
        notifier = _Recorder()
        candidate = find_repairable_logs(log_dir)[1]
        assert send_corrected_report(candidate, notifier, "box")
        assert "CORRECTED REPORT" in notifier.sent[0]
        assert "Scan Date: 2024-05-01 02:00:00" in notifier.sent[0]

    def test_incomplete_never_sent(self, log_dir: Path):
        notifier = _Recorder()
        candidate = find_repairable_logs(log_dir)[2]
        assert not send_corrected_report(candidate, notifier, "box")
        assert notifier.sent == []
