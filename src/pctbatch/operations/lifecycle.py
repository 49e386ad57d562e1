"""Container lifecycle control (start, stop, shutdown, restart)."""

from dataclasses import dataclass
from typing import Dict, Optional

from pctbatch.constants import RESTART_POLL, SHUTDOWN_POLL, START_POLL, STATUS_RUNNING, STATUS_STOPPED
from pctbatch.errors import ConfigurationError, MutationFailed, VerificationFailed
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation

ACTIONS = ("start", "stop", "shutdown", "restart")


@dataclass(frozen=True)
class LifecycleParams:
    action: str


class LifecycleOperation(Operation):
    """Start/stop style actions. Only existence is required up front."""

    kind = "control"
    title = "Controlling container"
    required_status = None

    def validate(self, request: OperationRequest):
        super().validate(request)
        if request.params.action not in ACTIONS:
            raise ConfigurationError(
                actionable_error(
                    "invalid_value",
                    label="action",
                    value=request.params.action,
                    hint=f"Use one of: {', '.join(ACTIONS)}.",
                )
            )

    def describe(self, request: OperationRequest) -> str:
        return f"Performing action '{request.params.action}'"

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        action = request.params.action
        status = facts["status"]
        self.say(target, f"Current status: {status}")
        if action == "start" and status == STATUS_RUNNING:
            return "already running"
        if action in ("stop", "shutdown") and status == STATUS_STOPPED:
            return "already stopped"
        return None

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        action = request.params.action
        if action == "start":
            return self._start(target, facts, "started")
        if action == "stop":
            return self._stop(target, facts)
        if action == "shutdown":
            return self._shutdown(target, facts)
        if facts["status"] != STATUS_RUNNING:
            self.say(target, "Container not running, starting instead", style="yellow")
            return self._start(target, facts, "started (was not running)")
        return self._restart(target, facts)

    def _converge(self, target: Target, desired: str, poll, facts: Dict[str, str]) -> bool:
        delay, attempts, interval = poll
        reached = self.pct.wait_for_status(target.ctid, desired, attempts, interval, initial_delay=delay)
        facts["status"] = desired if reached else (self.pct.status(target.ctid) or "unknown")
        return reached

    def _start(self, target: Target, facts: Dict[str, str], detail: str) -> Outcome:
        if self.pct.start(target.ctid).returncode != 0:
            raise MutationFailed("start failed")
        if self._converge(target, STATUS_RUNNING, START_POLL, facts):
            self.say(target, "Started successfully", style="green")
            return Outcome.success(detail, facts=facts)
        self.say(target, "Started but taking longer than expected", style="yellow")
        return Outcome.success(f"{detail} (slow start)", degraded=True, facts=facts)

    def _stop(self, target: Target, facts: Dict[str, str]) -> Outcome:
        if self.pct.stop(target.ctid).returncode != 0:
            raise MutationFailed("stop failed")
        status = self.pct.status(target.ctid) or "unknown"
        facts["status"] = status
        if status != STATUS_STOPPED:
            raise VerificationFailed(f"still {status} after stop")
        self.say(target, "Stopped successfully", style="green")
        return Outcome.success("stopped", facts=facts)

    def _shutdown(self, target: Target, facts: Dict[str, str]) -> Outcome:
        if self.pct.shutdown(target.ctid).returncode != 0:
            raise MutationFailed("shutdown failed")
        if self._converge(target, STATUS_STOPPED, SHUTDOWN_POLL, facts):
            self.say(target, "Shutdown successfully", style="green")
            return Outcome.success("shut down", facts=facts)
        self.say(target, "Shutdown timeout, may still be shutting down", style="yellow")
        return Outcome.success("shutdown timeout, may still be shutting down", degraded=True, facts=facts)

    def _restart(self, target: Target, facts: Dict[str, str]) -> Outcome:
        if self.pct.reboot(target.ctid).returncode != 0:
            raise MutationFailed("restart failed")
        if self._converge(target, STATUS_RUNNING, RESTART_POLL, facts):
            self.say(target, "Restarted successfully", style="green")
            return Outcome.success("restarted", facts=facts)
        self.say(target, "Restart taking longer than expected", style="yellow")
        return Outcome.success("restarted (slow restart)", degraded=True, facts=facts)
