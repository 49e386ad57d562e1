import logging
from typing import Dict, Iterable, List, Optional, Type

from rich.console import Console

from .errors import CommandTimeout, ConfigurationError, PctBatchError
from .models import BatchReport, FailureKind, OperationRequest, Outcome, Target, TargetResult
from .operations.audit import AuditOperation
from .operations.base import Operation
from .operations.deploy_file import DeployFileOperation
from .operations.health import HealthOperation
from .operations.lifecycle import LifecycleOperation
from .operations.root_login import RootLoginOperation
from .operations.snapshot import SnapshotOperation
from .operations.ssh_keys import SshKeyOperation
from .operations.timezone import TimezoneOperation
from .operations.unattended_upgrades import UnattendedUpgradesOperation
from .operations.update import UpdateOperation
from .operations.user_setup import UserSetupOperation
from .services.command_runner import CommandRunner
from .services.pct import PctClient
from .services.reporter import Reporter
from .services.result_file import ResultFileService
from .services.targets import TargetResolver

console = Console()
logger = logging.getLogger("pctbatch")

OPERATIONS: Dict[str, Type[Operation]] = {
    operation.kind: operation
    for operation in (
        UpdateOperation,
        AuditOperation,
        HealthOperation,
        SshKeyOperation,
        RootLoginOperation,
        LifecycleOperation,
        SnapshotOperation,
        TimezoneOperation,
        DeployFileOperation,
        UnattendedUpgradesOperation,
        UserSetupOperation,
    )
}


class BatchRunner:
    """Applies one operation to every target in order.

    A failure on one container never stops the loop. An interrupt stops it,
    and the targets that were not finished are reported as interrupted.
    """

    def __init__(
        self,
        operation: Operation,
        reporter: Reporter,
        logger,
        result_file_service: Optional[ResultFileService] = None,
    ):
        self.operation = operation
        self.reporter = reporter
        self.logger = logger
        self.result_file_service = result_file_service

    def execute_one(self, target: Target, request: OperationRequest) -> Outcome:
        try:
            return self.operation.execute(target, request)
        except CommandTimeout as exc:
            self.logger.warning("[LXC %s] %s", target.ctid, exc)
            return Outcome.failed(FailureKind.TIMEOUT, "command timed out")
        except Exception:
            self.logger.exception("[LXC %s] Unexpected error", target.ctid)
            return Outcome.failed(FailureKind.INTERNAL, "internal error")

    def process(self, targets: List[Target], request: OperationRequest) -> BatchReport:
        results: List[TargetResult] = []
        interrupted = False

        for index, target in enumerate(targets):
            try:
                outcome = self.execute_one(target, request)
            except KeyboardInterrupt:
                interrupted = True
                self.logger.warning("Interrupted while processing LXC %s", target.ctid)
                for pending in targets[index:]:
                    results.append(
                        TargetResult(
                            pending,
                            Outcome.failed(FailureKind.INTERRUPTED, "interrupted before processing"),
                        )
                    )
                break
            results.append(TargetResult(target, outcome))

        return BatchReport(
            request=request,
            results=tuple(results),
            read_only=self.operation.read_only,
            interrupted=interrupted,
        )

    def run(self, targets: List[Target], request: OperationRequest) -> BatchReport:
        self.operation.validate(request)
        if self.result_file_service:
            self.result_file_service.start_run(
                request.kind,
                request.describe_params(redact=self.operation.secret_params),
            )

        self.reporter.banner(self.operation.describe(request), targets)
        report = self.process(targets, request)
        self.reporter.render(report)

        if self.result_file_service:
            written = self.result_file_service.finalize(report, redact=self.operation.secret_params)
            if written:
                self.logger.info("Result file written to %s", written)
        return report


class PctBatch:
    """Wires the services together for one CLI invocation."""

    def __init__(
        self,
        verbose: bool = False,
        pct_binary: str = "pct",
        command_timeout: Optional[float] = None,
        report_file: Optional[str] = None,
        sleep=None,
    ):
        self.verbose = verbose
        self.report_file = report_file
        self.command_runner = CommandRunner(logger=logger, default_timeout=command_timeout)
        pct_kwargs = {"sleep": sleep} if sleep is not None else {}
        self.pct = PctClient(
            run_cmd=self.command_runner.run,
            logger=logger,
            binary=pct_binary,
            **pct_kwargs,
        )
        self.target_resolver = TargetResolver()
        self.reporter = Reporter(console=console, logger=logger)

    def build_operation(self, kind: str) -> Operation:
        if kind not in OPERATIONS:
            raise ConfigurationError(f"Unknown operation: {kind}")
        return OPERATIONS[kind](pct=self.pct, logger=logger, console=console)

    def execute(self, request: OperationRequest, container_ids: Iterable[str]) -> BatchReport:
        targets = self.target_resolver.resolve(container_ids)
        operation = self.build_operation(request.kind)
        self.pct.ensure_available()

        result_file_service = None
        if self.report_file:
            result_file_service = ResultFileService(result_file=self.report_file, logger=logger)

        runner = BatchRunner(
            operation=operation,
            reporter=self.reporter,
            logger=logger,
            result_file_service=result_file_service,
        )
        return runner.run(targets, request)

    def run(self, request: OperationRequest, container_ids: Iterable[str]) -> int:
        try:
            logger.debug("Starting %s run", request.kind)
            report = self.execute(request, container_ids)
        except KeyboardInterrupt:
            console.print("\n[bold red]Operation cancelled by user.[/bold red]")
            return 1

        if report.interrupted:
            console.print("\n[bold red]Operation cancelled by user.[/bold red]")
        return report.exit_code


__all__ = ["BatchRunner", "OPERATIONS", "PctBatch", "PctBatchError"]
