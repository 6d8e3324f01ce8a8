"""
Resubmission Controller
=======================

Decides whether a failed remote operation is retried.
"""

from typing import Callable, Optional

from query_verifier.config import VerifierConfig
from query_verifier.errors import TRANSIENT_ERROR_KINDS, ExecutionErrorKind
from query_verifier.models import Failure, FailureKind

ResubmissionPredicate = tuple[str, Callable[[Failure], bool]]


def _execution_error_of(kind: ExecutionErrorKind) -> Callable[[Failure], bool]:
    def predicate(failure: Failure) -> bool:
        return failure.kind == FailureKind.EXECUTION_ERROR and failure.error_kind == kind.value

    return predicate


DEFAULT_PREDICATES: list[ResubmissionPredicate] = [
    (kind.value, _execution_error_of(kind)) for kind in TRANSIENT_ERROR_KINDS
]


class ResubmissionController:
    """
    Retry policy for bundle executions and checksum queries.

    Holds no per-query state, so one instance is shared by every
    concurrent verification.
    """

    def __init__(
        self,
        config: VerifierConfig | None = None,
        predicates: list[ResubmissionPredicate] | None = None,
    ) -> None:
        self.config = config or VerifierConfig()
        self.predicates = predicates if predicates is not None else DEFAULT_PREDICATES

    def matching_predicate(self, failure: Failure) -> Optional[str]:
        """Name of the first predicate that accepts this failure, if any."""
        for name, predicate in self.predicates:
            if predicate(failure):
                return name
        return None

    def should_resubmit(self, failure: Failure, attempt_count: int) -> bool:
        """
        Whether to retry after the given attempt failed.

        Args:
            failure: The classified failure of the latest attempt
            attempt_count: Number of attempts made so far, starting at 1

        Returns:
            True while attempt_count is within the resubmission limit and
            the failure is of a transient kind
        """
        if attempt_count > self.config.resubmission_limit:
            return False
        return self.matching_predicate(failure) is not None

    def delay(self, attempt_count: int) -> float:
        """Bounded exponential backoff before the next attempt."""
        base = self.config.resubmission_base_delay_seconds
        return min(base * 2 ** max(attempt_count - 1, 0), self.config.resubmission_max_delay_seconds)
