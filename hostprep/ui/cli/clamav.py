"""
CLI commands for ClamAV scanning and notifications.

Thin wrappers over ``core.services.clamav``.
"""

from __future__ import annotations

import shutil
import sys
from pathlib import Path

import click

from hostprep.ui.cli.output import echo_json, echo_report, mode_label, open_session_or_exit


@click.group()
def clamav() -> None:
    """ClamAV — scheduled scans with Telegram notifications."""


def _credentials_or_exit(session):
    from hostprep.core.config.credentials import (
        CredentialsError,
        credential_candidates,
        load_credentials,
    )

    candidates = credential_candidates(session.config.clamav.credentials_file, session.home)
    try:
        return load_credentials(candidates)
    except CredentialsError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


# ── Scan ────────────────────────────────────────────────────────


@clamav.command("scan")
@click.option("--fast", is_flag=True, help="Scan only the fast targets (Documents, Downloads, ...).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Print commands and messages instead of running them.")
@click.pass_context
def scan(ctx: click.Context, fast: bool, as_json: bool, dry_run: bool) -> None:
    """Run a deep (or --fast) scan and send the summary.

    Exit code follows clamscan: 0 clean, 1 infected, 2 errors. A fast
    scan exits 0 whenever it ran.
    """
    from hostprep.core.services.clamav.scan_ops import run_scan

    session = open_session_or_exit(ctx, dry_run=dry_run, detect=False)
    credentials = _credentials_or_exit(session)
    outcome = run_scan(session, credentials, fast=fast)

    if as_json:
        echo_json(outcome.to_dict())
        sys.exit(outcome.exit_code)

    kind = "fast scan" if fast else "deep scan"
    echo_report(outcome.run, f"{mode_label(dry_run)}clamav {kind}", ctx.obj.get("verbose", False))

    report = outcome.report
    if report is not None:
        color = "green" if report.clean else "red"
        click.secho(
            f"   Files: {report.scanned_files}  Dirs: {report.scanned_dirs}  "
            f"Infected: {report.infected}",
            fg=color,
            bold=True,
        )
        if outcome.scan_log:
            click.echo(f"   📄 {outcome.scan_log}")
        click.echo()

    sys.exit(outcome.exit_code)


# ── Repair ──────────────────────────────────────────────────────


@clamav.command("repair")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Send every complete report without asking.")
@click.option("--limit", default=10, show_default=True, help="How many recent logs to consider.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="List candidates as JSON and exit.")
@click.pass_context
def repair(ctx: click.Context, assume_yes: bool, limit: int, as_json: bool) -> None:
    """Re-send corrected summaries parsed from saved scan logs."""
    from hostprep.core.services.clamav.notify import TelegramNotifier
    from hostprep.core.services.clamav.repair import find_repairable_logs, send_corrected_report
    from hostprep.core.services.clamav.scan_ops import apply_overrides, resolve_hostname

    session = open_session_or_exit(ctx, detect=False)
    credentials = _credentials_or_exit(session)
    settings = apply_overrides(session.config.clamav, credentials.extra)
    log_dir = session.expand(settings.log_dir)

    candidates = find_repairable_logs(log_dir, limit=limit)

    if as_json:
        echo_json({"log_dir": str(log_dir), "candidates": [c.to_dict() for c in candidates]})
        return

    if not candidates:
        click.secho(f"⊘ No scan logs found in {log_dir}", fg="yellow")
        return

    notifier = TelegramNotifier(credentials.bot_token, credentials.chat_id)
    host = resolve_hostname(session)
    sent = failed = 0

    click.secho(f"\n🔧 Scan logs in {log_dir}", fg="cyan", bold=True)
    for candidate in candidates:
        info = candidate.to_dict()
        click.echo()
        click.secho(f"   {candidate.path.name}", fg="white", bold=True)
        click.echo(f"     Date:     {info['scan_date']}")
        click.echo(f"     Files:    {info['scanned_files']}")
        click.echo(f"     Dirs:     {info['scanned_dirs']}")
        click.echo(f"     Infected: {info['infected']}")
        click.echo(f"     Duration: {info['duration']}")

        if candidate.incomplete:
            click.secho("     ⚠️  Incomplete data, cannot repair", fg="yellow")
            continue
        if not assume_yes and not click.confirm("     Send corrected report?", default=False):
            continue

        if send_corrected_report(candidate, notifier, host):
            sent += 1
            click.secho("     ✓ Sent", fg="green")
        else:
            failed += 1
            click.secho("     ✗ Send failed", fg="red")

    click.echo()
    click.secho(f"   Sent {sent} corrected report(s)", fg="green" if not failed else "yellow", bold=True)
    click.echo()
    if failed:
        sys.exit(1)


# ── Schedule ────────────────────────────────────────────────────


@clamav.command("schedule")
@click.option("--mode", type=click.Choice(["single", "dual"]), default="single", show_default=True,
              help="single: one daily deep scan. dual: fast morning plus deep evening scans.")
@click.option("--deep", "deep_schedule", default=None, help="Cron expression for the deep scan.")
@click.option("--fast-schedule", default=None, help="Cron expression for the fast scan (dual mode).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Print commands instead of running them.")
@click.pass_context
def schedule(
    ctx: click.Context,
    mode: str,
    deep_schedule: str | None,
    fast_schedule: str | None,
    as_json: bool,
    dry_run: bool,
) -> None:
    """Install cron entries that run 'hostprep clamav scan'."""
    from hostprep.core.services.clamav.schedule import ScheduleRequest, install_schedule

    executable = shutil.which("hostprep") or str(Path(sys.argv[0]).resolve())
    session = open_session_or_exit(ctx, dry_run=dry_run, require_distro=False)
    request = ScheduleRequest(
        executable=executable,
        mode=mode,  # type: ignore[arg-type]
        deep_schedule=deep_schedule,
        fast_schedule=fast_schedule,
    )
    report = install_schedule(session, request)

    if as_json:
        echo_json(report.to_dict())
        sys.exit(report.exit_code)

    echo_report(report, f"{mode_label(dry_run)}clamav schedule ({mode})", ctx.obj.get("verbose", False))
    crontab = report.get("install-crontab")
    if crontab is not None and crontab.ok and crontab.output:
        click.secho("   Cron entries:", fg="white", bold=True)
        for line in crontab.output.splitlines():
            click.echo(f"     {line}")
        click.echo()
    if report.aborted or report.recoverable:
        sys.exit(1)


# ── Sudoers ─────────────────────────────────────────────────────


@clamav.command("sudoers")
@click.option("--user", default=None, help="User allowed to run clamscan/freshclam (default: you).")
@click.option("--dry-run", is_flag=True, help="Show the drop-in instead of installing it.")
@click.pass_context
def sudoers(ctx: click.Context, user: str | None, dry_run: bool) -> None:
    """Install a sudoers drop-in so scheduled scans never prompt."""
    from hostprep.core.services.clamav.sudoers import install_sudoers

    session = open_session_or_exit(ctx, dry_run=dry_run, detect=False)
    result = install_sudoers(session, user=user)

    if result.failed:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if dry_run:
        click.echo(result.output)
        return

    click.secho(f"✅ {result.output}", fg="green")
    if not result.metadata.get("verified"):
        click.secho("⚠️  'sudo -n clamscan --version' still fails; check the drop-in.", fg="yellow")


# ── Credentials ─────────────────────────────────────────────────


@clamav.command("init")
@click.option("--token", default=None, help="Telegram bot token.")
@click.option("--chat-id", default=None, help="Telegram chat id.")
@click.option("--scan-dir", default="/home", show_default=True, help="Directory for deep scans.")
@click.option("--force", is_flag=True, help="Overwrite an existing credentials file.")
@click.pass_context
def init(
    ctx: click.Context,
    token: str | None,
    chat_id: str | None,
    scan_dir: str,
    force: bool,
) -> None:
    """Write the notification credentials file (mode 0600)."""
    from hostprep.core.config.credentials import credential_candidates, render_env_file

    session = open_session_or_exit(ctx, detect=False)
    target = credential_candidates(session.config.clamav.credentials_file, session.home)[0]

    if target.exists() and not force:
        click.secho(f"❌ {target} already exists (use --force to overwrite)", fg="red")
        sys.exit(1)

    token = token or click.prompt("Bot token", hide_input=True)
    chat_id = chat_id or click.prompt("Chat id")

    receipt = session.fs.write_text(target, render_env_file(token, chat_id, scan_dir), mode=0o600)
    if receipt.failed:
        click.secho(f"❌ {receipt.error}", fg="red")
        sys.exit(1)
    click.secho(f"✅ Credentials saved to {target}", fg="green")
