"""
Power management — keep an always-on machine awake and its radios powered.

For home servers and repurposed laptops: no sleep targets, no WiFi
power save, no USB autosuspend, and logind never acts on idle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from hostprep.core.engine.context import StepContext
from hostprep.core.models.step import Step, StepResult

logger = logging.getLogger(__name__)

SLEEP_TARGETS = ("sleep.target", "suspend.target", "hibernate.target", "hybrid-sleep.target")

POWER_PACKAGES: dict[str, tuple[str, ...]] = {
    "arch": ("iw", "lm_sensors"),
    "debian": ("wireless-tools", "iw", "lm-sensors"),
    "fedora": ("iw", "lm_sensors"),
}

# Surface and other fanless laptops: thermal daemon plus cpupower
SURFACE_PACKAGES: dict[str, tuple[str, ...]] = {
    "arch": ("thermald", "cpupower"),
    "debian": ("thermald", "linux-cpupower"),
    "fedora": ("thermald", "kernel-tools"),
}

LID_SWITCH_KEYS = ("HandleLidSwitch", "HandleLidSwitchExternalPower", "HandleLidSwitchDocked")

USB_MODPROBE_CONF = "/etc/modprobe.d/disable-usb-autosuspend.conf"
WIFI_UNIT_NAME = "disable-wifi-powersave.service"
WIFI_UNIT_PATH = f"/etc/systemd/system/{WIFI_UNIT_NAME}"
LOGIND_CONF = "/etc/systemd/logind.conf"

WIFI_UNIT = """[Unit]
Description=Disable WiFi Power Save
After=network.target

[Service]
Type=oneshot
ExecStart=/usr/bin/bash -c 'WIFI_IF=$(iw dev 2>/dev/null | awk "$1==\\"Interface\\"{print $2; exit}"); [ -n "$WIFI_IF" ] && iw dev $WIFI_IF set power_save off'

[Install]
WantedBy=multi-user.target
"""


def parse_iw_interface(output: str) -> str | None:
    """First ``Interface <name>`` in ``iw dev`` output."""
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "Interface":
            return parts[1]
    return None


def parse_ethernet_interface(output: str) -> str | None:
    """First interface starting with ``e`` in ``ip -o link show`` output."""
    for line in output.splitlines():
        parts = line.split(":", 2)
        if len(parts) < 2:
            continue
        name = parts[1].strip().split("@", 1)[0]
        if name.startswith("e"):
            return name
    return None


@dataclass
class PowerPlan:
    """Interfaces are probed once and shared by the later steps.

    ``surface`` adds the thermal packages and lid-switch handling used
    on Surface laptops that run closed.
    """

    sys_root: Path = field(default_factory=lambda: Path("/sys"))
    surface: bool = False
    wifi: str | None = None
    ethernet: str | None = None
    _probed: bool = False

    def probe(self, ctx: StepContext) -> None:
        if self._probed:
            return
        self._probed = True
        if ctx.shell.has("iw"):
            iw = ctx.shell.run(["iw", "dev"], timeout=10)
            if iw.ok:
                self.wifi = parse_iw_interface(iw.output)
        ip = ctx.shell.run(["ip", "-o", "link", "show"], timeout=10)
        if ip.ok:
            self.ethernet = parse_ethernet_interface(ip.output)
        logger.info("WiFi: %s, Ethernet: %s", self.wifi or "none", self.ethernet or "none")

    def _power_control(self, iface: str) -> Path:
        return self.sys_root / "class" / "net" / iface / "device" / "power" / "control"

    # ── Steps ───────────────────────────────────────────────────

    def mask_sleep(self, ctx: StepContext) -> StepResult:
        receipt = ctx.shell.run(["systemctl", "mask", *SLEEP_TARGETS], sudo=True)
        if receipt.failed:
            return StepResult.failure("mask-sleep-targets", error=receipt.error or "")
        return StepResult.success("mask-sleep-targets", output=" ".join(SLEEP_TARGETS))

    def install_packages(self, ctx: StepContext) -> StepResult:
        family = ctx.distro.family if ctx.distro else None
        packages = POWER_PACKAGES.get(family or "")
        if packages and self.surface:
            packages = (*packages, *SURFACE_PACKAGES.get(family or "", ()))
        if not packages or ctx.profile is None:
            return StepResult.skip(
                "power-packages", f"No power tool packages for {family or 'unknown distribution'}"
            )
        pm = ctx.profile.package_manager
        if pm.refresh:
            ctx.shell.run(pm.refresh, sudo=True)
        receipt = ctx.shell.run([*pm.install, *packages], sudo=True)
        if receipt.failed:
            return StepResult.failure("power-packages", error=receipt.error or "")
        return StepResult.success("power-packages", output=" ".join(packages))

    def wifi_power_save(self, ctx: StepContext) -> StepResult:
        self.probe(ctx)
        if not self.wifi:
            return StepResult.skip("wifi-power-save", "No WiFi interface")

        receipt = ctx.shell.run(["iw", "dev", self.wifi, "set", "power_save", "off"], sudo=True)
        if receipt.failed:
            return StepResult.failure(
                "wifi-power-save", error=f"Could not disable power save on {self.wifi}"
            )
        control = self._power_control(self.wifi)
        if control.exists():
            ctx.fs.write_system_file(str(control), "on\n")
        return StepResult.success("wifi-power-save", output=f"Power save off on {self.wifi}")

    def ethernet_power(self, ctx: StepContext) -> StepResult:
        self.probe(ctx)
        if not self.ethernet:
            return StepResult.skip("ethernet-power", "No Ethernet interface")

        errors: list[str] = []
        if ctx.shell.has("ethtool"):
            receipt = ctx.shell.run(["ethtool", "-s", self.ethernet, "wol", "d"], sudo=True)
            if receipt.failed:
                errors.append(f"Could not configure WoL on {self.ethernet}")
        control = self._power_control(self.ethernet)
        if control.exists():
            receipt = ctx.fs.write_system_file(str(control), "on\n")
            if receipt.failed:
                errors.append(receipt.error or str(control))
        if errors:
            return StepResult.failure("ethernet-power", error="; ".join(errors))
        return StepResult.success("ethernet-power", output=f"{self.ethernet} kept powered")

    def usb_autosuspend(self, ctx: StepContext) -> StepResult:
        param = self.sys_root / "module" / "usbcore" / "parameters" / "autosuspend"
        if param.exists():
            now = ctx.fs.write_system_file(str(param), "-1\n")
            if now.failed:
                logger.warning("Cannot disable USB autosuspend now: %s", now.error)

        receipt = ctx.fs.write_system_file(USB_MODPROBE_CONF, "options usbcore autosuspend=-1\n")
        if receipt.failed:
            return StepResult.failure("usb-autosuspend", error=receipt.error or "")
        return StepResult.success("usb-autosuspend", output=f"Persisted in {USB_MODPROBE_CONF}")

    def wifi_unit(self, ctx: StepContext) -> StepResult:
        self.probe(ctx)
        if not self.wifi:
            return StepResult.skip("wifi-powersave-unit", "No WiFi interface")
        receipt = ctx.fs.write_system_file(WIFI_UNIT_PATH, WIFI_UNIT)
        if receipt.failed:
            return StepResult.failure("wifi-powersave-unit", error=receipt.error or "")
        return StepResult.success("wifi-powersave-unit", output=WIFI_UNIT_PATH)

    def logind_idle(self, ctx: StepContext) -> StepResult:
        receipt = ctx.shell.run(
            ["sed", "-i", "s/#IdleAction=.*/IdleAction=ignore/", LOGIND_CONF], sudo=True
        )
        if receipt.failed:
            return StepResult.failure("logind-idle", error=receipt.error or "")
        if not self.surface:
            return StepResult.success("logind-idle", output="IdleAction=ignore")

        for key in LID_SWITCH_KEYS:
            receipt = ctx.shell.run(
                ["sed", "-i", f"s/#{key}=.*/{key}=ignore/", LOGIND_CONF], sudo=True
            )
            if receipt.failed:
                return StepResult.failure("logind-idle", error=receipt.error or key)
        return StepResult.success("logind-idle", output="IdleAction=ignore, lid switches ignored")

    def reload_services(self, ctx: StepContext) -> StepResult:
        errors: list[str] = []
        if ctx.shell.run(["systemctl", "daemon-reload"], sudo=True).failed:
            errors.append("daemon-reload failed")
        if self.wifi:
            receipt = ctx.shell.run(["systemctl", "enable", "--now", WIFI_UNIT_NAME], sudo=True)
            if receipt.failed:
                errors.append(f"{WIFI_UNIT_NAME} could not start (may need reboot)")
        if ctx.shell.run(["systemctl", "restart", "systemd-logind"], sudo=True).failed:
            errors.append("systemd-logind restart failed")
        if self.surface:
            thermald = ctx.shell.run(["systemctl", "enable", "--now", "thermald"], sudo=True)
            if thermald.failed:
                logger.warning("thermald not available: %s", thermald.error)
        if errors:
            return StepResult.failure("reload-services", error="; ".join(errors))
        return StepResult.success("reload-services")

    def sensors(self, ctx: StepContext) -> StepResult:
        if not ctx.shell.has("sensors-detect"):
            return StepResult.skip("sensors-detect", "lm-sensors not installed")
        receipt = ctx.shell.run(["sensors-detect", "--auto"], sudo=True)
        if receipt.failed:
            return StepResult.failure("sensors-detect", error="Sensor detection failed")
        return StepResult.success("sensors-detect")

    def steps(self) -> list[Step]:
        return [
            Step("mask-sleep-targets", self.mask_sleep),
            Step("power-packages", self.install_packages),
            Step("wifi-power-save", self.wifi_power_save),
            Step("ethernet-power", self.ethernet_power),
            Step("usb-autosuspend", self.usb_autosuspend),
            Step("wifi-powersave-unit", self.wifi_unit),
            Step("logind-idle", self.logind_idle),
            Step("reload-services", self.reload_services),
            Step("sensors-detect", self.sensors),
        ]


def build_power_steps(sys_root: Path | None = None, surface: bool = False) -> list[Step]:
    plan = PowerPlan(surface=surface) if sys_root is None else PowerPlan(sys_root, surface=surface)
    return plan.steps()
