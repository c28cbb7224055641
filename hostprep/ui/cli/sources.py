"""
CLI commands for Debian apt sources.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from hostprep.ui.cli.output import echo_json


@click.group()
def sources() -> None:
    """Apt sources — move Debian to the next release."""


@sources.command("upgrade")
@click.option("--from", "old", default="bookworm", show_default=True, help="Current release codename.")
@click.option("--to", "new", default="trixie", show_default=True, help="Target release codename.")
@click.option("--file", "path", type=click.Path(), default="/etc/apt/sources.list",
              show_default=True, help="Sources file to rewrite.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def upgrade(old: str, new: str, path: str, as_json: bool) -> None:
    """Rewrite the sources file in place (backup kept as .bak). Needs root."""
    from hostprep.adapters.shell.command import ShellCommandAdapter
    from hostprep.core.services.sources_ops import upgrade_sources

    result = upgrade_sources(ShellCommandAdapter(), Path(path), old, new)

    if as_json:
        echo_json(result.model_dump(mode="json"))
        sys.exit(1 if result.failed else 0)

    if result.failed:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if result.status == "skipped":
        click.secho(f"⊘ {result.output}", fg="yellow")
        return

    click.secho(f"✅ {result.output}", fg="green")
    click.echo("   Next: sudo apt update && sudo apt full-upgrade")
