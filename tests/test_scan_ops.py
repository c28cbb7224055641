"""
Tests for the scan workflow — steps, logs, notifications, exit codes.
"""

from datetime import datetime
from pathlib import Path

import pytest

from hostprep.core.config.credentials import Credentials
from hostprep.core.models.config import ClamavSettings, HostprepConfig
from hostprep.core.services.clamav.notify import TelegramNotifier
from hostprep.core.services.clamav.scan_ops import apply_overrides, run_scan

NOW = datetime(2024, 5, 1, 2, 0, 0)

CLEAN = "----------- SCAN SUMMARY -----------\nScanned directories: 5\nScanned files: 50\nInfected files: 0\n"
INFECTED = (
    "/home/u/x.exe: Win.Test.EICAR_HDB-1 FOUND\n"
    "/home/u/y.exe: Win.Test.EICAR_HDB-1 FOUND\n"
    "----------- SCAN SUMMARY -----------\nScanned directories: 5\nScanned files: 50\nInfected files: 2\n"
)


class RecordingNotifier(TelegramNotifier):
    """Notifier that records instead of posting."""

    def __init__(self, deliver: bool = True):
        super().__init__("T", "1")
        self.deliver = deliver
        self.documents: list[tuple[Path, str]] = []

    def send_message(self, text: str) -> bool:
        if self.deliver:
            self.sent.append(text)
        return self.deliver

    def send_document(self, path: Path, caption: str = "") -> bool:
        self.documents.append((path, caption))
        return self.deliver


@pytest.fixture
def creds(home: Path) -> Credentials:
    return Credentials(bot_token="T", chat_id="1", source=home / ".clamav-telegram.env")


@pytest.fixture
def scan_ctx(make_ctx, mock_shell):
    mock_shell.set_output("hostname -f", "box.lan\n")
    return make_ctx(family=None)


# ── Deep Scan Tests ──────────────────────────────────────────────────


class TestDeepScan:
    def test_clean_scan(self, scan_ctx, mock_shell, creds, home: Path):
        mock_shell.set_output("clamscan", CLEAN)
        notifier = RecordingNotifier()
        outcome = run_scan(scan_ctx, creds, notifier=notifier, now=NOW)

        assert outcome.exit_code == 0
        assert outcome.report.scanned_files == 50
        assert outcome.report.infected == 0
        assert outcome.scan_log == home / ".clamav-logs" / "scan_20240501_020000.log"
        assert outcome.scan_log.read_text() == CLEAN
        assert "ClamAV Scan Started" in notifier.sent[0]
        assert "System Clean" in notifier.sent[-1]
        assert notifier.documents == []

    def test_scan_command(self, scan_ctx, mock_shell, creds):
        mock_shell.set_output("clamscan", CLEAN)
        run_scan(scan_ctx, creds, notifier=RecordingNotifier(), now=NOW)
        argv = next(a for a in mock_shell.calls if "clamscan" in a)
        assert argv[:3] == ["sudo", "clamscan", "-r"]
        assert "--exclude-dir=^/sys" in argv
        assert argv[-1] == "/home"

    def test_infected_scan(self, scan_ctx, mock_shell, creds, home: Path):
        mock_shell.set_output("clamscan", INFECTED, return_code=1)
        notifier = RecordingNotifier()
        outcome = run_scan(scan_ctx, creds, notifier=notifier, now=NOW)

        assert outcome.exit_code == 1
        assert outcome.report.infected == 2
        infected_log = home / ".clamav-logs" / "infected_20240501_020000.log"
        assert infected_log.read_text().count("FOUND") == 2
        assert "THREATS FOUND" in notifier.sent[-1]
        assert notifier.documents == [(infected_log, "Infected files on box.lan")]

    def test_freshclam_service_skips_update(self, scan_ctx, mock_shell, creds):
        mock_shell.set_output("clamscan", CLEAN)
        outcome = run_scan(scan_ctx, creds, notifier=RecordingNotifier(), now=NOW)
        assert outcome.run.get("update-definitions").status == "skipped"
        assert not mock_shell.ran("freshclam")

    def test_freshclam_runs_without_service(self, scan_ctx, mock_shell, creds, home: Path):
        mock_shell.set_failure("systemctl is-active", return_code=3)
        mock_shell.set_output("clamscan", CLEAN)
        outcome = run_scan(scan_ctx, creds, notifier=RecordingNotifier(), now=NOW)
        assert mock_shell.ran("freshclam")
        assert outcome.run.get("update-definitions").ok
        assert (home / ".clamav-logs" / "freshclam_20240501_020000.log").exists()

    def test_freshclam_failure_is_recoverable(self, scan_ctx, mock_shell, creds):
        mock_shell.set_failure("systemctl is-active", return_code=3)
        mock_shell.set_failure("freshclam", error="too soon")
        mock_shell.set_output("clamscan", CLEAN)
        outcome = run_scan(scan_ctx, creds, notifier=RecordingNotifier(), now=NOW)
        assert outcome.run.get("update-definitions").status == "recoverable"
        assert outcome.run.get("scan").ok
        assert outcome.exit_code == 0

    def test_scanner_missing_is_fatal(self, scan_ctx, mock_shell, creds):
        mock_shell.set_failure("clamscan", error="Command not found: clamscan", return_code=127)
        notifier = RecordingNotifier()
        outcome = run_scan(scan_ctx, creds, notifier=notifier, now=NOW)
        assert outcome.exit_code == 1
        assert outcome.run.aborted
        assert outcome.run.not_run == ["write-logs", "notify-result", "prune-logs"]
        assert "Scan Started" in notifier.sent[0]
        assert not any("Scan Complete" in text for text in notifier.sent)

    def test_scanner_error_code_propagates(self, scan_ctx, mock_shell, creds):
        mock_shell.set_output("clamscan", CLEAN, return_code=2)
        outcome = run_scan(scan_ctx, creds, notifier=RecordingNotifier(), now=NOW)
        assert outcome.exit_code == 2

    def test_clamdscan_when_enabled(self, make_ctx, mock_shell, creds):
        config = HostprepConfig(clamav=ClamavSettings(use_clamdscan=True))
        mock_shell.set_output("clamdscan", CLEAN)
        run_scan(make_ctx(family=None, config=config), creds, notifier=RecordingNotifier(), now=NOW)
        assert mock_shell.ran("clamdscan --multiscan /home")
        assert not mock_shell.ran("clamscan")

    def test_undelivered_notification_does_not_fail_scan(self, scan_ctx, mock_shell, creds):
        mock_shell.set_output("clamscan", CLEAN)
        outcome = run_scan(scan_ctx, creds, notifier=RecordingNotifier(deliver=False), now=NOW)
        assert outcome.run.get("notify-result").status == "recoverable"
        assert outcome.scan_log.exists()
        assert outcome.exit_code == 0

    def test_to_dict(self, scan_ctx, mock_shell, creds):
        mock_shell.set_output("clamscan", CLEAN)
        data = run_scan(scan_ctx, creds, notifier=RecordingNotifier(), now=NOW).to_dict()
        assert data["exit_code"] == 0
        assert data["report"]["scanned_files"] == 50
        assert data["run"]["status"] == "ok"


# ── Fast Scan Tests ──────────────────────────────────────────────────


class TestFastScan:
    def test_scans_existing_targets(self, scan_ctx, mock_shell, creds, home: Path):
        (home / "Downloads").mkdir()
        (home / "Documents").mkdir()
        mock_shell.set_output("clamscan", INFECTED, return_code=1)
        notifier = RecordingNotifier()
        outcome = run_scan(scan_ctx, creds, fast=True, notifier=notifier, now=NOW)

        scans = [c for c in mock_shell.commands if c.startswith("clamscan")]
        assert len(scans) == 2
        assert all(" -i " in c for c in scans)
        assert outcome.report.infected == 4
        assert outcome.report.scanned_files == 100
        assert outcome.exit_code == 0
        assert outcome.scan_log.name == "fast_scan_20240501_020000.log"
        assert (home / ".clamav-logs" / "infected_fast_20240501_020000.log").exists()
        assert "Fast Scan Started" in notifier.sent[0]
        assert outcome.run.get("update-definitions").status == "skipped"

    def test_no_targets_is_fatal(self, scan_ctx, creds):
        outcome = run_scan(scan_ctx, creds, fast=True, notifier=RecordingNotifier(), now=NOW)
        assert outcome.run.aborted
        assert outcome.exit_code == 1


# ── Overrides Tests ──────────────────────────────────────────────────


class TestApplyOverrides:
    def test_env_keys(self):
        settings = apply_overrides(
            ClamavSettings(),
            {"SCAN_DIR": "/srv", "FAST_SCAN_TARGETS": "~/a ~/b", "USE_CLAMDSCAN": "true"},
        )
        assert settings.scan_dir == "/srv"
        assert settings.fast_targets == ["~/a", "~/b"]
        assert settings.use_clamdscan is True

    def test_no_keys(self):
        base = ClamavSettings()
        assert apply_overrides(base, {}) is base

    def test_scan_dir_from_credentials(self, scan_ctx, mock_shell, home: Path):
        creds = Credentials("T", "1", home / "x.env", extra={"SCAN_DIR": "/srv/data"})
        mock_shell.set_output("clamscan", CLEAN)
        run_scan(scan_ctx, creds, notifier=RecordingNotifier(), now=NOW)
        assert any(c.endswith("/srv/data") for c in mock_shell.commands if c.startswith("clamscan"))
