"""Console reporting for batch runs."""

from typing import Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pctbatch.models import BatchReport, OutcomeKind, Target, TargetResult

_SYMBOLS = {
    OutcomeKind.SUCCESS: ("✓", "green"),
    OutcomeKind.CLEAN: ("✓", "green"),
    OutcomeKind.SKIPPED: ("⊘", "yellow"),
    OutcomeKind.WARNING: ("⚠", "yellow"),
    OutcomeKind.OFFLINE: ("⊗", "red"),
    OutcomeKind.FAILED: ("✗", "red"),
}


class Reporter:
    """Prints the run banner and the final summary table."""

    RULE = "━" * 56

    def __init__(self, console: Console, logger):
        self.console = console
        self.logger = logger

    def banner(self, description: str, targets: Sequence[Target]):
        ids = " ".join(target.ctid for target in targets)
        self.console.print()
        self.console.print(
            f"[green]\\[INFO][/green] {escape(description)} in "
            f"{len(targets)} container(s): {escape(ids)}"
        )
        self.console.print()
        self.logger.info("%s in %s container(s): %s", description, len(targets), ids)

    def symbol(self, result: TargetResult) -> str:
        outcome = result.outcome
        mark, style = _SYMBOLS[outcome.kind]
        if outcome.kind == OutcomeKind.SUCCESS and outcome.degraded:
            mark, style = "⚠", "yellow"
        return f"[{style}]{mark}[/{style}]"

    def build_table(self, report: BatchReport, title: str) -> Table:
        table = Table(title=title)
        table.add_column("", no_wrap=True)
        table.add_column("Container", style="cyan", no_wrap=True)
        table.add_column("Outcome")
        table.add_column("Detail")

        for result in report.results:
            outcome = result.outcome
            label = outcome.kind.value
            if outcome.degraded:
                label = f"{label} (slow)"
            table.add_row(
                self.symbol(result),
                f"LXC {result.target.ctid}",
                label,
                escape(outcome.detail),
            )
        return table

    def summary_line(self, report: BatchReport) -> str:
        if report.read_only:
            line = (
                f"Results: {report.count(OutcomeKind.CLEAN)} clean, "
                f"{report.count(OutcomeKind.WARNING)} with issues, "
                f"{report.count(OutcomeKind.OFFLINE)} offline"
            )
            failed = report.count(OutcomeKind.FAILED)
            if failed:
                line = f"{line}, {failed} failed"
            return line

        line = (
            f"Results: {report.count(OutcomeKind.SUCCESS)} succeeded, "
            f"{report.count(OutcomeKind.SKIPPED)} skipped, "
            f"{report.count(OutcomeKind.FAILED)} failed"
        )
        if report.degraded_count:
            line = f"{line} ({report.degraded_count} slow to converge)"
        return line

    def render(self, report: BatchReport, title: str = "Summary of operations"):
        self.console.print(self.RULE)
        self.console.print(self.build_table(report, title))
        if report.interrupted:
            self.console.print("[bold red]Run interrupted; remaining containers were not processed.[/bold red]")
        self.console.print(self.RULE)
        line = self.summary_line(report)
        self.console.print(f"  {line}")
        self.console.print(self.RULE)
        self.logger.info(line)
