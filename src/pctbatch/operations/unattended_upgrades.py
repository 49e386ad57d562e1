"""Unattended-upgrades installation and configuration."""

import re
from dataclasses import dataclass
from typing import Dict, Optional

from pctbatch.constants import APT_CONF_DIR
from pctbatch.errors import ConfigurationError, VerificationFailed
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation

PACKAGE = "unattended-upgrades"
AUTO_UPGRADES_PATH = f"{APT_CONF_DIR}/20auto-upgrades"
OVERRIDES_PATH = f"{APT_CONF_DIR}/52pctbatch-unattended-upgrades"
AUTO_REBOOT_TIME = "03:00"
EMAIL_PATTERN = re.compile(r"^[^@\s\"';]+@[^@\s\"';]+\.[^@\s\"';]+$")

AUTO_UPGRADES_CONFIG = (
    'APT::Periodic::Update-Package-Lists "1";\n'
    'APT::Periodic::Unattended-Upgrade "1";\n'
    'APT::Periodic::AutocleanInterval "7";\n'
)

WRITE_SCRIPT = 'cat > "$1"'


@dataclass(frozen=True)
class UnattendedUpgradesParams:
    email: Optional[str] = None
    auto_reboot: bool = False


def render_overrides(params: UnattendedUpgradesParams) -> str:
    lines = ["// Managed by pctbatch"]
    if params.email:
        lines.append(f'Unattended-Upgrade::Mail "{params.email}";')
        lines.append('Unattended-Upgrade::MailReport "on-change";')
    lines.append(f'Unattended-Upgrade::Automatic-Reboot "{"true" if params.auto_reboot else "false"}";')
    if params.auto_reboot:
        lines.append(f'Unattended-Upgrade::Automatic-Reboot-Time "{AUTO_REBOOT_TIME}";')
    return "\n".join(lines) + "\n"


class UnattendedUpgradesOperation(Operation):
    kind = "unattended-upgrades"
    title = "Configuring unattended upgrades"

    def validate(self, request: OperationRequest):
        super().validate(request)
        email = request.params.email
        if email is not None and not EMAIL_PATTERN.match(email):
            raise ConfigurationError(
                actionable_error(
                    "invalid_value",
                    label="email address",
                    value=email,
                    hint="Use a plain address such as admin@example.com.",
                )
            )

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        installed = self.package_installed(target, PACKAGE)
        facts["installed_before"] = "yes" if installed else "no"
        if not installed:
            return None

        self.say(target, f"{PACKAGE} already installed")
        if (
            self.pct.read_file(target.ctid, AUTO_UPGRADES_PATH) == AUTO_UPGRADES_CONFIG
            and self.pct.read_file(target.ctid, OVERRIDES_PATH) == render_overrides(request.params)
        ):
            return "already configured"
        return None

    def write_config(self, target: Target, path: str, content: str):
        self.run_or_fail(
            target,
            ["sh", "-c", WRITE_SCRIPT, "sh", path],
            f"could not write {path}",
            input_text=content,
        )

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        params: UnattendedUpgradesParams = request.params
        ctid = target.ctid
        installed_now = facts["installed_before"] == "no"

        if installed_now:
            self.say(target, "Updating package lists...")
            self.pct.exec(ctid, ["apt-get", "update", "-qq"])
            self.say(target, f"Installing {PACKAGE}...")
            self.run_or_fail(
                target,
                ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install", "-y", "-qq", PACKAGE],
                "installation failed",
            )

        self.say(target, "Configuring automatic updates...")
        overrides = render_overrides(params)
        self.write_config(target, AUTO_UPGRADES_PATH, AUTO_UPGRADES_CONFIG)
        self.write_config(target, OVERRIDES_PATH, overrides)
        if params.email:
            self.say(target, f"Email notifications configured: {params.email}")
        if params.auto_reboot:
            self.say(target, f"Auto-reboot enabled ({AUTO_REBOOT_TIME} if needed)")

        if (
            self.pct.read_file(ctid, AUTO_UPGRADES_PATH) != AUTO_UPGRADES_CONFIG
            or self.pct.read_file(ctid, OVERRIDES_PATH) != overrides
        ):
            raise VerificationFailed("setting not applied")

        if self.pct.exec(ctid, ["systemctl", "enable", "--now", PACKAGE]).returncode != 0:
            self.say(target, f"Could not enable the {PACKAGE} service", style="yellow")
            facts["service"] = "not enabled"
        else:
            facts["service"] = "enabled"

        self.say(target, "Unattended upgrades configured successfully", style="green")
        return Outcome.success("installed and configured" if installed_now else "configured", facts=facts)
