"""
Tests for the ufw setup steps and Cloudflare rules.
"""

import pytest

from hostprep.adapters.mock import MockShellAdapter
from hostprep.core.engine.runner import StepRunner
from hostprep.core.models.config import FirewallSettings, HostprepConfig, LanRule
from hostprep.core.services.firewall_ops import (
    AFTER_RULES,
    CLOUDFLARE_IPV4,
    CLOUDFLARE_IPV6,
    apply_cloudflare_rules,
    build_firewall_steps,
    cloudflare_rules,
    docker_fix,
    lan_rules,
    validate_port,
)


def _config(**firewall) -> HostprepConfig:
    return HostprepConfig(firewall=FirewallSettings(**firewall))


# ── Cloudflare Tests ─────────────────────────────────────────────────


class TestCloudflareRules:
    def test_one_rule_per_range(self):
        rules = cloudflare_rules(443)
        assert len(rules) == len(CLOUDFLARE_IPV4) + len(CLOUDFLARE_IPV6)
        assert rules[0] == [
            "ufw", "allow", "from", CLOUDFLARE_IPV4[0], "to", "any", "port", "443",
            "proto", "tcp", "comment", "Cloudflare Access",
        ]

    def test_udp(self):
        assert all(rule[9] == "udp" for rule in cloudflare_rules(53, "udp"))

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_out_of_range(self, port):
        with pytest.raises(ValueError, match="1-65535"):
            validate_port(port)

    def test_apply_multiple_ports(self, make_ctx, mock_shell):
        result = apply_cloudflare_rules(make_ctx(), [80, 443])
        per_port = len(CLOUDFLARE_IPV4) + len(CLOUDFLARE_IPV6)
        assert result.ok
        assert result.metadata["rules"] == 2 * per_port
        assert len([c for c in mock_shell.calls if c[:2] == ["sudo", "ufw"]]) == 2 * per_port

    def test_apply_counts_failures(self, make_ctx, mock_shell):
        mock_shell.set_failure("ufw allow from 173.245.48.0/20")
        result = apply_cloudflare_rules(make_ctx(), [443])
        assert result.status == "recoverable"
        assert result.error.startswith("1 of ")


# ── Setup Step Tests ─────────────────────────────────────────────────


class TestFirewallSteps:
    def test_full_run(self, make_ctx, mock_shell):
        mock_shell.set_failure("grep -qF", return_code=1)
        report = StepRunner(make_ctx()).run(build_firewall_steps())

        assert report.status == "ok"
        assert mock_shell.ran("ufw default deny incoming")
        assert mock_shell.ran("ufw allow ssh")
        assert mock_shell.ran("tailscale up --snat-subnet-routes=false")
        assert mock_shell.ran(f"tee -a {AFTER_RULES}")
        assert mock_shell.commands[-1] == "ufw --force enable"

    def test_ssh_before_enable(self, make_ctx, mock_shell):
        StepRunner(make_ctx()).run(build_firewall_steps())
        commands = mock_shell.commands
        assert commands.index("ufw allow ssh comment 'Allow SSH connections'") < commands.index(
            "ufw --force enable"
        )

    def test_no_ufw_aborts(self, make_ctx):
        shell = MockShellAdapter(programs=["tailscale"])
        report = StepRunner(make_ctx(shell=shell)).run(build_firewall_steps())
        assert report.status == "failed"
        assert report.get("check-ufw").is_fatal
        assert shell.commands == []

    def test_ssh_failure_never_enables(self, make_ctx, mock_shell):
        mock_shell.set_failure("ufw allow ssh")
        report = StepRunner(make_ctx()).run(build_firewall_steps())
        assert report.get("allow-ssh").is_fatal
        assert "enable-ufw" in report.not_run
        assert not mock_shell.ran("ufw --force enable")

    def test_tailscale_disabled(self, make_ctx, mock_shell):
        report = StepRunner(make_ctx(config=_config(tailscale=False))).run(build_firewall_steps())
        assert report.get("tailscale-snat").status == "skipped"
        assert report.get("allow-tailscale").status == "skipped"
        assert not mock_shell.ran("ufw allow in on tailscale0")


class TestDockerFix:
    def test_appends_when_missing(self, make_ctx, mock_shell):
        mock_shell.set_failure("grep -qF", return_code=1)
        result = docker_fix(make_ctx())
        assert result.ok
        assert mock_shell.ran(f"tee -a {AFTER_RULES}")

    def test_already_present(self, make_ctx, mock_shell):
        result = docker_fix(make_ctx())
        assert result.status == "skipped"
        assert not mock_shell.ran("tee")

    def test_unreadable(self, make_ctx, mock_shell):
        mock_shell.set_failure("grep -qF", error="No such file", return_code=2)
        result = docker_fix(make_ctx())
        assert result.status == "recoverable"
        assert "Cannot read" in result.error

    def test_disabled(self, make_ctx, mock_shell):
        result = docker_fix(make_ctx(config=_config(docker_fix=False)))
        assert result.status == "skipped"
        assert mock_shell.calls == []


class TestLanRules:
    def test_none_configured(self, make_ctx):
        assert lan_rules(make_ctx()).status == "skipped"

    def test_rule_command(self, make_ctx, mock_shell):
        config = _config(lan_rules=[LanRule(source="192.168.1.0/24", port=8080)])
        assert lan_rules(make_ctx(config=config)).ok
        assert mock_shell.calls[0] == [
            "sudo", "ufw", "allow", "from", "192.168.1.0/24", "to", "any", "port", "8080",
            "proto", "tcp", "comment", "Allow port 8080 from LAN",
        ]

    def test_invalid_source(self, make_ctx, mock_shell):
        config = _config(lan_rules=[LanRule(source="not-a-net", port=22)])
        result = lan_rules(make_ctx(config=config))
        assert result.status == "recoverable"
        assert mock_shell.calls == []
