"""Operation contract shared by every batch action."""

from datetime import datetime
from typing import Dict, Optional, Tuple

from rich.markup import escape

from pctbatch.constants import BACKUP_SUFFIX_FORMAT, SSH_SERVICES, STATUS_RUNNING
from pctbatch.errors import (
    ConfigurationError,
    MutationFailed,
    TargetError,
    TargetNotFound,
    TargetNotRunning,
)
from pctbatch.models import OperationRequest, Outcome, Target


class Operation:
    """Applies one kind of change (or check) to a single container.

    Subclasses fill in ``precheck`` and ``apply``; ``execute`` runs the
    existence check, the lifecycle check, ``prepare``, the idempotency check
    and the mutation in that order and turns ``TargetError`` into an outcome.
    ``prepare`` is for refreshing state the idempotency check reads; it runs
    even when the target ends up skipped.
    """

    kind = ""
    title = ""
    read_only = False
    required_status: Optional[str] = STATUS_RUNNING
    secret_params: Tuple[str, ...] = ()

    def __init__(self, pct, logger, console):
        self.pct = pct
        self.logger = logger
        self.console = console

    def validate(self, request: OperationRequest):
        """Rejects malformed parameters before any container is touched."""
        if request.kind != self.kind:
            raise ConfigurationError(
                f"Operation '{self.kind}' cannot run a '{request.kind}' request."
            )

    def describe(self, request: OperationRequest) -> str:
        return self.title

    def execute(self, target: Target, request: OperationRequest) -> Outcome:
        facts: Dict[str, str] = {}
        self.say(target, f"{self.describe(request)}...")
        try:
            status = self.check_target(target)
            facts["status"] = status
            self.prepare(target, request, facts)
            skip_reason = self.precheck(target, request, facts)
            if skip_reason:
                self.say(target, skip_reason, style="yellow")
                return Outcome.skipped(skip_reason, facts=facts)
            return self.apply(target, request, facts)
        except TargetNotRunning as exc:
            facts["status"] = exc.status or "unknown"
            return self.on_target_error(target, exc, facts)
        except TargetError as exc:
            return self.on_target_error(target, exc, facts)

    def check_target(self, target: Target) -> str:
        status = self.pct.status(target.ctid)
        if status is None:
            raise TargetNotFound()
        if self.required_status and status != self.required_status:
            raise TargetNotRunning(status=status)
        return status

    def prepare(self, target: Target, request: OperationRequest, facts: Dict[str, str]):
        return None

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        return None

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        raise NotImplementedError

    def on_target_error(self, target: Target, exc: TargetError, facts: Dict[str, str]) -> Outcome:
        message = exc.reason
        if isinstance(exc, TargetNotRunning):
            message = f"{exc.reason} (status: {facts.get('status')})"
        self.say(target, message, style="red")
        if self.read_only and isinstance(exc, (TargetNotFound, TargetNotRunning)):
            return Outcome.offline(exc.kind, exc.reason, facts=facts)
        return Outcome.failed(exc.kind, exc.reason, facts=facts)

    def say(self, target: Target, message: str, style: Optional[str] = None):
        text = escape(message)
        if style:
            text = f"[{style}]{text}[/{style}]"
        self.console.print(f"[blue]\\[LXC {target.ctid}][/blue] {text}")
        self.logger.debug("[LXC %s] %s", target.ctid, message)

    def run_or_fail(self, target: Target, args, reason: str, input_text: Optional[str] = None):
        result = self.pct.exec(target.ctid, args, input_text=input_text)
        if result.returncode != 0:
            self.logger.debug(
                "[LXC %s] %s: %s", target.ctid, reason, (result.stderr or "").strip()
            )
            raise MutationFailed(reason)
        return result

    def backup_file(self, target: Target, path: str) -> str:
        backup_path = f"{path}{datetime.now().strftime(BACKUP_SUFFIX_FORMAT)}"
        self.say(target, f"Backing up {path} to {backup_path}")
        self.run_or_fail(target, ["cp", "-p", path, backup_path], "backup failed")
        return backup_path

    def package_installed(self, target: Target, package: str) -> bool:
        result = self.pct.exec(target.ctid, ["dpkg-query", "-W", "-f=${Status}", package])
        return result.returncode == 0 and "install ok installed" in (result.stdout or "")

    def detect_ssh_service(self, target: Target) -> Optional[str]:
        for service in SSH_SERVICES:
            result = self.pct.exec(target.ctid, ["systemctl", "is-active", service])
            if result.returncode == 0:
                return service
        return None
