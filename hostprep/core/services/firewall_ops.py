"""
Firewall (UFW) — deny-by-default policy that coexists with Tailscale and Docker.

Docker publishes container ports straight into iptables, bypassing ufw.
The ``DOCKER-USER`` block appended to ``/etc/ufw/after.rules`` routes
that traffic back through ufw's forward chain; the markers make the
append idempotent.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Literal

from hostprep.core.engine.context import StepContext
from hostprep.core.models.step import Step, StepResult

logger = logging.getLogger(__name__)

AFTER_RULES = "/etc/ufw/after.rules"
DOCKER_BEGIN = "# BEGIN UFW AND DOCKER"
DOCKER_END = "# END UFW AND DOCKER"

DOCKER_RULES = f"""
{DOCKER_BEGIN}
*filter
:ufw-user-forward - [0:0]
:ufw-docker-logging-deny - [0:0]
:DOCKER-USER - [0:0]
-A DOCKER-USER -j ufw-user-forward

-A DOCKER-USER -j RETURN -s 10.0.0.0/8
-A DOCKER-USER -j RETURN -s 172.16.0.0/12
-A DOCKER-USER -j RETURN -s 192.168.0.0/16

-A DOCKER-USER -p udp -m udp --sport 53 --dport 1024:65535 -j RETURN

-A DOCKER-USER -j ufw-docker-logging-deny -p tcp -m tcp --tcp-flags FIN,SYN,RST,ACK SYN -d 192.168.0.0/16
-A DOCKER-USER -j ufw-docker-logging-deny -p tcp -m tcp --tcp-flags FIN,SYN,RST,ACK SYN -d 10.0.0.0/8
-A DOCKER-USER -j ufw-docker-logging-deny -p tcp -m tcp --tcp-flags FIN,SYN,RST,ACK SYN -d 172.16.0.0/12
-A DOCKER-USER -j ufw-docker-logging-deny -p udp -m udp --dport 0:32767 -d 192.168.0.0/16
-A DOCKER-USER -j ufw-docker-logging-deny -p udp -m udp --dport 0:32767 -d 10.0.0.0/8
-A DOCKER-USER -j ufw-docker-logging-deny -p udp -m udp --dport 0:32767 -d 172.16.0.0/12

-A DOCKER-USER -j RETURN

-A ufw-docker-logging-deny -m limit --limit 3/min --limit-burst 10 -j LOG --log-prefix "[UFW DOCKER BLOCK] "
-A ufw-docker-logging-deny -j DROP

COMMIT
{DOCKER_END}
"""

# Published at https://www.cloudflare.com/ips/
CLOUDFLARE_IPV4: tuple[str, ...] = (
    "173.245.48.0/20", "103.21.244.0/22", "103.22.200.0/22", "103.31.4.0/22",
    "141.101.64.0/18", "108.162.192.0/18", "190.93.240.0/20", "188.114.96.0/20",
    "197.234.240.0/22", "198.41.128.0/17", "162.158.0.0/15", "104.16.0.0/13",
    "104.24.0.0/14", "172.64.0.0/13", "131.0.72.0/22",
)

CLOUDFLARE_IPV6: tuple[str, ...] = (
    "2400:cb00::/32", "2606:4700::/32", "2803:f800::/32", "2405:b500::/32",
    "2405:8100::/32", "2a06:98c0::/29", "2c0f:f248::/32",
)


def validate_port(port: int) -> int:
    if not 1 <= port <= 65535:
        raise ValueError(f"Port out of range (1-65535): {port}")
    return port


def cloudflare_rules(port: int, proto: Literal["tcp", "udp"] = "tcp") -> list[list[str]]:
    """One ``ufw allow`` argv per Cloudflare range for ``port``.

    Raises:
        ValueError: ``port`` outside 1-65535.
    """
    validate_port(port)
    return [
        ["ufw", "allow", "from", cidr, "to", "any", "port", str(port), "proto", proto,
         "comment", "Cloudflare Access"]
        for cidr in (*CLOUDFLARE_IPV4, *CLOUDFLARE_IPV6)
    ]


def apply_cloudflare_rules(
    ctx: StepContext, ports: list[int], proto: Literal["tcp", "udp"] = "tcp"
) -> StepResult:
    """Add the rules for every port; ufw itself skips existing rules."""
    commands = [cmd for port in ports for cmd in cloudflare_rules(port, proto)]
    failed = 0
    for cmd in commands:
        receipt = ctx.shell.run(cmd, sudo=True)
        if receipt.failed:
            failed += 1
            logger.warning("ufw rule failed: %s", receipt.error)

    if failed:
        return StepResult.failure(
            "cloudflare-rules",
            error=f"{failed} of {len(commands)} rule(s) failed",
            metadata={"rules": len(commands)},
        )
    return StepResult.success(
        "cloudflare-rules",
        output=f"Added {len(commands)} rule(s). Run 'sudo ufw reload' to apply.",
        metadata={"rules": len(commands)},
    )


# ── Setup steps ─────────────────────────────────────────────────


def _ufw(ctx: StepContext, step: str, *commands: list[str]) -> StepResult:
    for cmd in commands:
        receipt = ctx.shell.run(cmd, sudo=True)
        if receipt.failed:
            return StepResult.failure(step, error=receipt.error or f"{' '.join(cmd)} failed")
    return StepResult.success(step)


def check_ufw(ctx: StepContext) -> StepResult:
    if not ctx.shell.has("ufw"):
        return StepResult.failure("check-ufw", error="ufw is not installed")
    return StepResult.success("check-ufw")


def default_policies(ctx: StepContext) -> StepResult:
    return _ufw(
        ctx,
        "default-policies",
        ["ufw", "default", "deny", "incoming"],
        ["ufw", "default", "allow", "outgoing"],
    )


def tailscale_snat(ctx: StepContext) -> StepResult:
    if not ctx.config.firewall.tailscale:
        return StepResult.skip("tailscale-snat", "Tailscale rules disabled in config")
    if not ctx.shell.has("tailscale"):
        return StepResult.skip("tailscale-snat", "tailscale not installed")
    # Keep real source addresses on subnet routes so ufw can filter them
    return _ufw(ctx, "tailscale-snat", ["tailscale", "up", "--snat-subnet-routes=false"])


def allow_ssh(ctx: StepContext) -> StepResult:
    return _ufw(ctx, "allow-ssh", ["ufw", "allow", "ssh", "comment", "Allow SSH connections"])


def allow_tailscale(ctx: StepContext) -> StepResult:
    if not ctx.config.firewall.tailscale:
        return StepResult.skip("allow-tailscale", "Tailscale rules disabled in config")
    return _ufw(
        ctx,
        "allow-tailscale",
        ["ufw", "allow", "in", "on", "tailscale0",
         "comment", "Allow all traffic from Tailscale tailnet"],
    )


def docker_fix(ctx: StepContext) -> StepResult:
    if not ctx.config.firewall.docker_fix:
        return StepResult.skip("docker-fix", "Docker fix disabled in config")

    # after.rules is root-only readable on most distributions
    present = ctx.shell.run(["grep", "-qF", DOCKER_BEGIN, AFTER_RULES], sudo=True)
    if present.ok and not present.dry_run:
        return StepResult.skip("docker-fix", f"Docker rules already in {AFTER_RULES}")
    if present.failed and present.return_code != 1:
        return StepResult.failure("docker-fix", error=f"Cannot read {AFTER_RULES}: {present.error}")

    receipt = ctx.fs.write_system_file(AFTER_RULES, DOCKER_RULES, append=True)
    if receipt.failed:
        return StepResult.failure("docker-fix", error=receipt.error or "")
    return StepResult.success("docker-fix", output=f"Docker rules appended to {AFTER_RULES}")


def lan_rules(ctx: StepContext) -> StepResult:
    rules = ctx.config.firewall.lan_rules
    if not rules:
        return StepResult.skip("lan-rules", "No LAN rules configured")

    commands: list[list[str]] = []
    for rule in rules:
        try:
            ipaddress.ip_network(rule.source, strict=False)
        except ValueError:
            return StepResult.failure("lan-rules", error=f"Invalid source network: {rule.source}")
        comment = rule.comment or f"Allow port {rule.port} from LAN"
        commands.append([
            "ufw", "allow", "from", rule.source, "to", "any", "port", str(rule.port),
            "proto", rule.proto, "comment", comment,
        ])
    return _ufw(ctx, "lan-rules", *commands)


def enable_ufw(ctx: StepContext) -> StepResult:
    return _ufw(ctx, "enable-ufw", ["ufw", "reload"], ["ufw", "--force", "enable"])


def build_firewall_steps() -> list[Step]:
    return [
        Step("check-ufw", check_ufw, fatal=True),
        Step("default-policies", default_policies, fatal=True,
             description="Deny incoming, allow outgoing"),
        Step("tailscale-snat", tailscale_snat),
        Step("allow-ssh", allow_ssh, fatal=True,
             description="Never enable without SSH allowed"),
        Step("allow-tailscale", allow_tailscale),
        Step("docker-fix", docker_fix),
        Step("lan-rules", lan_rules),
        Step("enable-ufw", enable_ufw),
    ]
