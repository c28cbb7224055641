"""
CLI commands for power management on always-on servers.
"""

from __future__ import annotations

import sys

import click

from hostprep.ui.cli.output import echo_json, echo_report, mode_label, open_session_or_exit


@click.group()
def power() -> None:
    """Power — keep a server awake and its links powered."""


@power.command("disable-sleep")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Print commands instead of running them.")
@click.option("--mock", is_flag=True, help="Use mock adapter (no real execution).")
@click.option("--surface", is_flag=True, help="Also install thermald/cpupower and ignore lid switches.")
@click.pass_context
def disable_sleep(
    ctx: click.Context, as_json: bool, dry_run: bool, mock: bool, surface: bool
) -> None:
    """Mask sleep targets and turn off WiFi, Ethernet and USB power saving."""
    from hostprep.core.engine.runner import StepRunner
    from hostprep.core.services.power_ops import build_power_steps

    session = open_session_or_exit(ctx, dry_run=dry_run, mock=mock, require_distro=False)
    report = StepRunner(session).run(build_power_steps(surface=surface))

    if as_json:
        echo_json(report.to_dict())
        sys.exit(report.exit_code)

    echo_report(report, f"{mode_label(dry_run, mock)}power disable-sleep", ctx.obj.get("verbose", False))
    if report.aborted:
        sys.exit(1)
    click.secho("   A reboot is recommended for all changes to take effect.", fg="cyan")
    click.echo()
