"""
Shared terminal rendering for step reports.
"""

from __future__ import annotations

import json
import sys

import click

from hostprep.core.engine.runner import RunReport


def mode_label(dry_run: bool = False, mock: bool = False) -> str:
    return "[dry-run] " if dry_run else "[mock] " if mock else ""


def echo_json(data: dict) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def echo_report(report: RunReport, title: str, verbose: bool = False) -> None:
    """Per-step lines, a summary, and the manual follow-up list."""
    click.secho(f"\n⚡ {title}", fg="cyan", bold=True)
    click.echo(f"   Steps: {report.total}")
    click.echo()

    for result in report.results:
        timing = f" ({result.duration_ms}ms)" if result.duration_ms else ""
        if result.ok:
            click.secho(f"   ✓ {result.step}", fg="green", nl=False)
            click.echo(timing)
            if verbose and result.output:
                for line in result.output.split("\n")[:10]:
                    click.echo(f"     │ {line}")
        elif result.failed:
            click.secho(f"   ✗ {result.step}", fg="red", nl=False)
            click.echo(timing)
            if result.error:
                for line in result.error.split("\n")[:5]:
                    click.echo(f"     │ {line}")
        else:
            click.secho(f"   ⊘ {result.step} ", fg="yellow", nl=False)
            click.echo(f"({result.output})")

    if report.not_run:
        click.echo()
        click.secho("   Not run:", fg="yellow")
        for name in report.not_run:
            click.echo(f"     • {name}")

    click.echo()
    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(
        report.status, "white"
    )
    click.secho(
        f"   Result: {report.succeeded}/{report.total} succeeded, {report.skipped} skipped",
        fg=status_color,
        bold=True,
    )

    if report.recoverable:
        click.echo()
        click.secho("⚠️  Needs manual follow-up:", fg="yellow")
        for result in report.recoverable:
            click.echo(f"   • {result.step}: {result.error}")
    click.echo()


def open_session_or_exit(
    ctx: click.Context,
    *,
    dry_run: bool = False,
    mock: bool = False,
    require_distro: bool = True,
    detect: bool = True,
):
    """Build the StepContext for a subcommand, exiting 1 on bad input.

    With ``require_distro=False`` an unrecognised distribution only
    disables the distro-specific steps. ``detect=False`` skips detection
    for commands that never look at the distribution.
    """
    from hostprep.core.config.loader import ConfigError
    from hostprep.core.services.distro_detect import UnsupportedDistro
    from hostprep.core.use_cases.session import open_session

    config_path = ctx.obj.get("config_path")
    try:
        try:
            return open_session(config_path, dry_run=dry_run, mock=mock, detect=detect)
        except UnsupportedDistro as e:
            if require_distro:
                raise
            click.secho(f"⚠️  {e}; distribution-specific steps will be skipped", fg="yellow", err=True)
            return open_session(config_path, dry_run=dry_run, mock=mock, detect=False)
    except (ConfigError, UnsupportedDistro, ValueError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
