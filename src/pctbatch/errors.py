"""Domain errors for pctbatch."""

from typing import Optional

from pctbatch.models import FailureKind


class PctBatchError(RuntimeError):
    """Base class for every error raised by pctbatch."""


class ConfigurationError(PctBatchError):
    """Raised when the run cannot start because its inputs are invalid."""


class RemoteCommandError(PctBatchError):
    """Raised when an external command fails and the caller asked for a check."""

    def __init__(self, message: str, returncode: int = 1):
        super().__init__(message)
        self.returncode = returncode


class CommandTimeout(RemoteCommandError):
    """Raised when an external command exceeds its timeout."""


class TargetError(PctBatchError):
    """A failure scoped to one target. The batch keeps going."""

    kind = FailureKind.INTERNAL
    default_reason = "internal error"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class TargetNotFound(TargetError):
    kind = FailureKind.NOT_FOUND
    default_reason = "not found"


class TargetNotRunning(TargetError):
    kind = FailureKind.NOT_RUNNING
    default_reason = "not running"

    def __init__(self, reason: Optional[str] = None, status: Optional[str] = None):
        super().__init__(reason)
        self.status = status


class PreconditionFailed(TargetError):
    kind = FailureKind.PRECONDITION
    default_reason = "precondition failed"


class MutationFailed(TargetError):
    kind = FailureKind.MUTATION
    default_reason = "command failed"


class VerificationFailed(TargetError):
    kind = FailureKind.VERIFICATION
    default_reason = "setting not applied"

