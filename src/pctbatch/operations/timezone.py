"""Timezone synchronisation across containers."""

import re
from dataclasses import dataclass
from typing import Dict, Optional

from pctbatch.constants import ZONEINFO_DIR
from pctbatch.errors import ConfigurationError, PreconditionFailed, VerificationFailed
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation

TIMEZONE_PATTERN = re.compile(r"^[A-Za-z0-9_+-]+(/[A-Za-z0-9_+-]+)*$")


@dataclass(frozen=True)
class TimezoneParams:
    timezone: str


class TimezoneOperation(Operation):
    kind = "timezone"
    title = "Setting timezone"

    def validate(self, request: OperationRequest):
        super().validate(request)
        timezone = request.params.timezone or ""
        if not TIMEZONE_PATTERN.match(timezone):
            raise ConfigurationError(
                actionable_error(
                    "invalid_value",
                    label="timezone",
                    value=timezone or "''",
                    hint="Use an IANA name such as UTC, Europe/London or America/New_York.",
                )
            )

    def describe(self, request: OperationRequest) -> str:
        return f"Setting timezone to '{request.params.timezone}'"

    def current_timezone(self, target: Target) -> str:
        ok, output = self.pct.output(target.ctid, ["timedatectl", "show", "-p", "Timezone", "--value"])
        if ok and output:
            return output
        content = self.pct.read_file(target.ctid, "/etc/timezone")
        if content and content.strip():
            return content.strip()
        return "unknown"

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        current = self.current_timezone(target)
        facts["previous_timezone"] = current
        self.say(target, f"Current timezone: {current}")
        if current == request.params.timezone:
            return "already set"
        return None

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        timezone = request.params.timezone
        if not self.pct.file_exists(target.ctid, f"{ZONEINFO_DIR}/{timezone}"):
            raise PreconditionFailed("invalid timezone")

        self.run_or_fail(target, ["timedatectl", "set-timezone", timezone], "set timezone failed")

        if self.current_timezone(target) != timezone:
            self.say(target, "Timezone did not change after set-timezone", style="red")
            raise VerificationFailed("setting not applied")

        self.say(target, "Timezone set successfully", style="green")
        return Outcome.success(f"{facts['previous_timezone']} -> {timezone}", facts=facts)
