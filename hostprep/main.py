"""
hostprep — CLI entrypoint.

Usage:
    python -m hostprep.main --help
    python -m hostprep.main detect
    python -m hostprep.main setup --dry-run
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from hostprep import __version__
from hostprep.core.observability.logging_config import setup_logging
from hostprep.ui.cli.output import echo_json, echo_report, mode_label

_OS_RELEASE_HELP = "Read this os-release file instead of /etc/os-release."


@click.group()
@click.version_option(version=__version__, prog_name="hostprep")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to hostprep.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """hostprep — provision Linux workstations and servers."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("HOSTPREP_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("HOSTPREP_LOG_FILE"),
        log_file_level=os.environ.get("HOSTPREP_LOG_FILE_LEVEL"),
    )


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--os-release", type=click.Path(exists=False), default=None, help=_OS_RELEASE_HELP)
@click.pass_context
def detect(ctx: click.Context, as_json: bool, os_release: str | None) -> None:
    """Detect the distribution and show the matching profile."""
    from hostprep.core.use_cases.detect import run_detect

    result = run_detect(
        config_path=ctx.obj.get("config_path"),
        os_release=Path(os_release) if os_release else None,
    )

    if as_json:
        echo_json(result.to_dict())
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    distro, profile = result.distro, result.profile
    assert distro is not None and profile is not None

    click.secho(f"\n🔍 {distro.pretty_name or distro.id}", fg="cyan", bold=True)
    click.echo(f"   Family:          {distro.family}")
    if distro.version_id:
        click.echo(f"   Version:         {distro.version_id}")
    if distro.version_codename:
        click.echo(f"   Codename:        {distro.version_codename}")
    click.echo(f"   Variant:         {profile.variant}")
    click.echo(f"   Package manager: {profile.package_manager.name}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--variant", type=click.Choice(["desktop", "server"]), default=None, help="Override the configured variant.")
@click.option("--os-release", type=click.Path(exists=False), default=None, help=_OS_RELEASE_HELP)
@click.pass_context
def plan(ctx: click.Context, as_json: bool, variant: str | None, os_release: str | None) -> None:
    """Show the steps and packages setup would run."""
    from hostprep.core.use_cases.detect import run_plan

    result = run_plan(
        config_path=ctx.obj.get("config_path"),
        os_release=Path(os_release) if os_release else None,
        variant=variant,
    )

    if as_json:
        echo_json(result.to_dict())
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    assert result.distro is not None
    click.secho(f"\n📋 Plan: {result.distro.family} {result.variant}", fg="cyan", bold=True)
    click.echo()
    for i, step in enumerate(result.steps, 1):
        marker = " (fatal)" if step["fatal"] else ""
        click.echo(f"   {i:2d}. {step['name']}{marker}")
        if ctx.obj.get("verbose") and step["description"]:
            click.echo(f"       {step['description']}")

    if result.repositories:
        click.echo()
        click.secho(f"   Repositories: {len(result.repositories)}", fg="white", bold=True)
        for name in result.repositories:
            click.echo(f"     • {name}")

    click.echo()
    click.secho(f"   Packages: {len(result.packages)}", fg="white", bold=True)
    click.echo(f"     {' '.join(result.packages)}")
    if result.flatpaks:
        click.secho(f"   Flatpaks: {len(result.flatpaks)}", fg="white", bold=True)
        click.echo(f"     {' '.join(result.flatpaks)}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--variant", type=click.Choice(["desktop", "server"]), default=None, help="Override the configured variant.")
@click.option("--dry-run", is_flag=True, help="Print commands instead of running them.")
@click.option("--mock", is_flag=True, help="Use mock adapter (no real execution).")
@click.option("--os-release", type=click.Path(exists=False), default=None, help=_OS_RELEASE_HELP)
@click.pass_context
def setup(
    ctx: click.Context,
    as_json: bool,
    variant: str | None,
    dry_run: bool,
    mock: bool,
    os_release: str | None,
) -> None:
    """Provision this machine.

    Examples:

        hostprep setup

        hostprep setup --variant server

        hostprep setup --dry-run
    """
    from hostprep.core.use_cases.setup import run_setup

    result = run_setup(
        config_path=ctx.obj.get("config_path"),
        variant=variant,
        dry_run=dry_run,
        mock=mock,
        os_release=Path(os_release) if os_release else None,
    )

    if as_json:
        echo_json(result.to_dict())
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    assert report is not None and result.distro is not None

    title = f"{mode_label(dry_run, mock)}setup — {result.distro.family} {result.variant}"
    echo_report(report, title, verbose=ctx.obj.get("verbose", False))

    if mock and ctx.obj.get("verbose") and result.commands:
        click.secho("   Commands:", fg="white", bold=True)
        for line in result.commands:
            click.echo(f"     $ {line}")
        click.echo()

    if report.aborted:
        sys.exit(1)


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate hostprep.yml configuration."""
    from hostprep.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        echo_json(result.to_dict())
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   File: {result.config_path or '(defaults)'}")
        click.echo(f"   Variant: {result.config.variant}")
        click.echo(f"   Dotfile repos: {len(result.config.dotfiles)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


# ── Register subgroups ──────────────────────────────────────────

from hostprep.ui.cli.clamav import clamav
from hostprep.ui.cli.dotfiles import dotfiles
from hostprep.ui.cli.firewall import firewall
from hostprep.ui.cli.power import power
from hostprep.ui.cli.sources import sources

cli.add_command(dotfiles)
cli.add_command(firewall)
cli.add_command(power)
cli.add_command(sources)
cli.add_command(clamav)


if __name__ == "__main__":
    cli()
