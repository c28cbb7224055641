"""
CLI commands for the ufw firewall.

Thin wrappers over ``core.services.firewall_ops``.
"""

from __future__ import annotations

import sys

import click

from hostprep.ui.cli.output import echo_json, echo_report, mode_label, open_session_or_exit


@click.group()
def firewall() -> None:
    """Firewall — ufw baseline and Cloudflare Access rules."""


# ── Setup ───────────────────────────────────────────────────────


@firewall.command("setup")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Print commands instead of running them.")
@click.option("--mock", is_flag=True, help="Use mock adapter (no real execution).")
@click.pass_context
def setup(ctx: click.Context, as_json: bool, dry_run: bool, mock: bool) -> None:
    """Deny inbound, allow SSH and Tailscale, fix Docker, enable ufw."""
    from hostprep.core.engine.runner import StepRunner
    from hostprep.core.services.firewall_ops import build_firewall_steps

    session = open_session_or_exit(ctx, dry_run=dry_run, mock=mock, require_distro=False)
    report = StepRunner(session).run(build_firewall_steps())

    if as_json:
        echo_json(report.to_dict())
        sys.exit(report.exit_code)

    echo_report(report, f"{mode_label(dry_run, mock)}firewall setup", ctx.obj.get("verbose", False))
    if report.aborted:
        sys.exit(1)

    click.secho("   Verify with: sudo ufw status verbose", fg="cyan")
    click.echo()


# ── Cloudflare ──────────────────────────────────────────────────


@firewall.command("cloudflare")
@click.option("--port", "-p", "ports", type=int, multiple=True, required=True,
              help="Port to open to Cloudflare edge ranges (repeatable).")
@click.option("--proto", type=click.Choice(["tcp", "udp"]), default="tcp", help="Protocol.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Print commands instead of running them.")
@click.pass_context
def cloudflare(
    ctx: click.Context,
    ports: tuple[int, ...],
    proto: str,
    as_json: bool,
    dry_run: bool,
) -> None:
    """Allow Cloudflare Access source ranges on the given ports.

    Examples:

        hostprep firewall cloudflare --port 443

        hostprep firewall cloudflare -p 80 -p 443
    """
    from hostprep.core.services.firewall_ops import apply_cloudflare_rules, validate_port

    try:
        checked = [validate_port(p) for p in ports]
    except ValueError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    session = open_session_or_exit(ctx, dry_run=dry_run, require_distro=False)
    result = apply_cloudflare_rules(session, checked, proto)  # type: ignore[arg-type]

    if as_json:
        echo_json(result.model_dump(mode="json"))
        sys.exit(1 if result.failed else 0)

    if result.failed:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"✅ {mode_label(dry_run)}{result.output}", fg="green")
