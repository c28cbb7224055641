"""
CLI commands for dotfile repositories.

Thin wrapper over ``core.services.dotfiles``.
"""

from __future__ import annotations

import sys

import click

from hostprep.ui.cli.output import echo_json, mode_label, open_session_or_exit


@click.group()
def dotfiles() -> None:
    """Dotfile repositories — clone configured repos into $HOME."""


@dotfiles.command("clone")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Print commands instead of running them.")
@click.pass_context
def clone(ctx: click.Context, as_json: bool, dry_run: bool) -> None:
    """Clone every configured repo, backing up conflicting directories."""
    from hostprep.core.services.dotfiles import clone_dotfiles

    session = open_session_or_exit(ctx, dry_run=dry_run, detect=False)
    result = clone_dotfiles(session)

    if as_json:
        echo_json(result.model_dump(mode="json"))
        sys.exit(1 if result.failed else 0)

    click.secho(f"\n📦 {mode_label(dry_run)}Dotfiles", fg="cyan", bold=True)
    for repo in result.metadata.get("cloned", []):
        click.secho(f"   ✓ {repo}", fg="green")
    for repo in result.metadata.get("skipped", []):
        click.secho(f"   ⊘ {repo} (already present)", fg="yellow")
    for backup in result.metadata.get("backups", []):
        click.echo(f"   💾 backup: {backup}")

    if result.failed:
        click.secho(f"   ✗ {result.error}", fg="red")
        click.echo()
        sys.exit(1)

    if result.status == "skipped":
        click.echo(f"   {result.output}")
    click.echo()
