"""
Verifier Errors
===============

Exception taxonomy raised by collaborators and components.

A checksum mismatch is not an exception; it is a MatchResult verdict.
"""

from enum import Enum
from typing import Optional

from query_verifier.models import ClusterRole, Failure


class VerifierError(Exception):
    """Base class for all verifier errors."""


class RewriteError(VerifierError):
    """The source query cannot be rewritten into an executable bundle."""


class ExecutionErrorKind(str, Enum):
    """Classification of a cluster-side failure."""

    TIMEOUT = "timeout"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    CONNECTIVITY = "connectivity"
    SYNTAX = "syntax"
    AUTHORIZATION = "authorization"
    UNKNOWN = "unknown"


# Execution errors worth resubmitting, in the order resubmission predicates try them
TRANSIENT_ERROR_KINDS = (
    ExecutionErrorKind.TIMEOUT,
    ExecutionErrorKind.RESOURCE_EXHAUSTED,
    ExecutionErrorKind.CONNECTIVITY,
)


class ExecutionError(VerifierError):
    """A statement failed on a cluster."""

    def __init__(
        self,
        message: str,
        kind: ExecutionErrorKind = ExecutionErrorKind.UNKNOWN,
        cluster: Optional[ClusterRole] = None,
        query_id: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.cluster = cluster
        self.query_id = query_id
        self.error_code = error_code

    @property
    def transient(self) -> bool:
        return self.kind in TRANSIENT_ERROR_KINDS


class SchemaMismatchError(VerifierError):
    """Control and test column lists differ in name or order."""

    def __init__(self, control_columns: list[str], test_columns: list[str]) -> None:
        super().__init__(
            f"Column mismatch: control {control_columns} vs test {test_columns}"
        )
        self.control_columns = control_columns
        self.test_columns = test_columns


class DeterminismAnalysisError(VerifierError):
    """A control rerun failed during determinism analysis."""

    def __init__(self, message: str, run: int, failure: Optional[Failure] = None) -> None:
        super().__init__(message)
        self.run = run
        self.failure = failure


class InvalidTransitionError(VerifierError):
    """An event arrived that the current state does not accept."""

    def __init__(self, state: str, event: str) -> None:
        super().__init__(f"Event {event} is not valid in state {state}")
        self.state = state
        self.event = event
