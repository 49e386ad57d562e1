"""Root SSH login policy management."""

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from pctbatch.constants import SSHD_CONFIG
from pctbatch.errors import ConfigurationError, PreconditionFailed, VerificationFailed
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation

POLICIES = ("prohibit-password", "no", "yes")

_ACTIVE = re.compile(r"^PermitRootLogin\s+(\S+)", re.IGNORECASE)
_COMMENTED = re.compile(r"^#\s*PermitRootLogin\s+(\S+)", re.IGNORECASE)

# Writes $2 as the first line of $1 in place, keeping owner and mode.
PREPEND_LINE_SCRIPT = (
    'printf "%s\\n" "$2" | cat - "$1" > "$1.tmp" && cat "$1.tmp" > "$1" && rm -f "$1.tmp"'
)


def parse_permit_root_login(content: str) -> Tuple[Optional[str], Optional[str]]:
    """Returns (active value, commented default) from an sshd_config body.

    sshd honours the first active directive, so only the first match counts.
    """
    active = None
    commented = None
    for line in content.splitlines():
        stripped = line.strip()
        if active is None:
            match = _ACTIVE.match(stripped)
            if match:
                active = match.group(1)
                continue
        if commented is None:
            match = _COMMENTED.match(stripped)
            if match:
                commented = match.group(1)
    return active, commented


@dataclass(frozen=True)
class RootLoginParams:
    policy: str = "prohibit-password"


class RootLoginOperation(Operation):
    kind = "root-login"
    title = "Configuring root SSH login"

    def validate(self, request: OperationRequest):
        super().validate(request)
        if request.params.policy not in POLICIES:
            raise ConfigurationError(
                actionable_error(
                    "invalid_value",
                    label="PermitRootLogin policy",
                    value=request.params.policy,
                    hint=f"Use one of: {', '.join(POLICIES)}.",
                )
            )

    def describe(self, request: OperationRequest) -> str:
        return f"Setting PermitRootLogin to '{request.params.policy}'"

    def current_setting(self, target: Target) -> Tuple[Optional[str], str]:
        content = self.pct.read_file(target.ctid, SSHD_CONFIG)
        if content is None:
            raise PreconditionFailed("ssh config not readable")
        active, commented = parse_permit_root_login(content)
        if active is not None:
            return active, active
        return None, f"{commented or 'unknown'} (commented)"

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        if not self.pct.file_exists(target.ctid, SSHD_CONFIG):
            raise PreconditionFailed("ssh config not found")

        active, label = self.current_setting(target)
        facts["previous_setting"] = label
        self.say(target, f"Current setting: PermitRootLogin {label}")
        if active == request.params.policy:
            return f"already {request.params.policy}"
        return None

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        policy = request.params.policy
        facts["backup"] = self.backup_file(target, SSHD_CONFIG)

        self.say(target, f"Setting PermitRootLogin to '{policy}'...")
        self.run_or_fail(
            target,
            ["sed", "-i", "/^#*PermitRootLogin/d", SSHD_CONFIG],
            "could not edit ssh config",
        )
        self.run_or_fail(
            target,
            ["sh", "-c", PREPEND_LINE_SCRIPT, "sh", SSHD_CONFIG, f"PermitRootLogin {policy}"],
            "could not edit ssh config",
        )

        active, _ = self.current_setting(target)
        if active != policy:
            self.say(target, "Failed to set PermitRootLogin", style="red")
            raise VerificationFailed("setting not applied")

        detail = f"PermitRootLogin {policy}"
        service = self.detect_ssh_service(target)
        if service is None:
            self.say(target, "Could not detect SSH service - restart manually if needed", style="yellow")
            return Outcome.success(f"{detail}, ssh service not detected", facts=facts)

        reloaded = self.pct.exec(target.ctid, ["systemctl", "reload", service]).returncode == 0
        if not reloaded:
            reloaded = self.pct.exec(target.ctid, ["systemctl", "restart", service]).returncode == 0
        if not reloaded:
            self.say(target, "Could not reload SSH service - you may need to restart it manually", style="yellow")
            return Outcome.success(f"{detail}, reload {service} manually", facts=facts)

        self.say(target, f"{detail} applied and {service} reloaded", style="green")
        return Outcome.success(detail, facts=facts)
