"""Shared domain models for pctbatch."""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    CLEAN = "clean"
    WARNING = "warning"
    OFFLINE = "offline"


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    NOT_RUNNING = "not_running"
    PRECONDITION = "precondition_failed"
    MUTATION = "mutation_failed"
    VERIFICATION = "verification_failed"
    TIMEOUT = "timeout"
    INTERRUPTED = "interrupted"
    INTERNAL = "internal_error"


@dataclass(frozen=True)
class Target:
    """One container as named by the operator.

    ``position`` keeps duplicated IDs apart: ``-c 100 100`` yields two targets.
    """

    ctid: str
    position: int

    def __str__(self) -> str:
        return self.ctid


@dataclass(frozen=True)
class OperationRequest:
    """Immutable parameters of one batch run."""

    kind: str
    params: Any = None

    def describe_params(self, redact: Tuple[str, ...] = ()) -> Dict[str, Any]:
        if self.params is None or not is_dataclass(self.params):
            return {}

        described: Dict[str, Any] = {}
        for item in fields(self.params):
            value = getattr(self.params, item.name)
            if item.name in redact and value:
                value = "<redacted>"
            described[item.name] = value
        return described


@dataclass(frozen=True)
class Outcome:
    """Result of applying one request to one target."""

    kind: OutcomeKind
    detail: str
    failure: Optional[FailureKind] = None
    degraded: bool = False
    issues: Tuple[str, ...] = ()
    facts: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def success(cls, detail: str, degraded: bool = False, facts=None) -> "Outcome":
        return cls(OutcomeKind.SUCCESS, detail, degraded=degraded, facts=dict(facts or {}))

    @classmethod
    def skipped(cls, reason: str, facts=None) -> "Outcome":
        return cls(OutcomeKind.SKIPPED, reason, facts=dict(facts or {}))

    @classmethod
    def failed(cls, failure: FailureKind, reason: str, facts=None) -> "Outcome":
        return cls(OutcomeKind.FAILED, reason, failure=failure, facts=dict(facts or {}))

    @classmethod
    def clean(cls, detail: str, facts=None) -> "Outcome":
        return cls(OutcomeKind.CLEAN, detail, facts=dict(facts or {}))

    @classmethod
    def warning(cls, issues, facts=None) -> "Outcome":
        issues = tuple(issues)
        return cls(OutcomeKind.WARNING, ", ".join(issues), issues=issues, facts=dict(facts or {}))

    @classmethod
    def offline(cls, failure: FailureKind, reason: str, facts=None) -> "Outcome":
        return cls(OutcomeKind.OFFLINE, reason, failure=failure, facts=dict(facts or {}))

    @property
    def needs_attention(self) -> bool:
        return self.kind in (OutcomeKind.FAILED, OutcomeKind.WARNING, OutcomeKind.OFFLINE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.kind.value,
            "detail": self.detail,
            "failure": self.failure.value if self.failure else None,
            "degraded": self.degraded,
            "issues": list(self.issues),
            "facts": dict(self.facts),
        }


@dataclass(frozen=True)
class TargetResult:
    target: Target
    outcome: Outcome

    def to_dict(self) -> Dict[str, Any]:
        record = {"ctid": self.target.ctid, "position": self.target.position}
        record.update(self.outcome.to_dict())
        return record


@dataclass(frozen=True)
class BatchReport:
    """Everything a run produced, in processing order."""

    request: OperationRequest
    results: Tuple[TargetResult, ...]
    read_only: bool = False
    interrupted: bool = False

    def count(self, kind: OutcomeKind) -> int:
        return sum(1 for result in self.results if result.outcome.kind == kind)

    @property
    def counts(self) -> Dict[str, int]:
        return {kind.value: self.count(kind) for kind in OutcomeKind}

    @property
    def degraded_count(self) -> int:
        return sum(1 for result in self.results if result.outcome.degraded)

    @property
    def outcomes(self) -> Tuple[Outcome, ...]:
        return tuple(result.outcome for result in self.results)

    @property
    def exit_code(self) -> int:
        if self.count(OutcomeKind.FAILED):
            return 1
        if self.read_only and (self.count(OutcomeKind.WARNING) or self.count(OutcomeKind.OFFLINE)):
            return 1
        return 0
