"""
Time Limit Resolvers
====================

Explain timeouts that are not attributable to the test engine.
"""

from typing import Optional

from query_verifier.config import VerifierConfig
from query_verifier.errors import ExecutionErrorKind
from query_verifier.models import (
    ClusterRole,
    Failure,
    FailureKind,
    Resolution,
    VerificationContext,
)
from query_verifier.resolvers.base import FailureResolver


def _is_timeout(failure: Failure) -> bool:
    return (
        failure.kind == FailureKind.EXECUTION_ERROR
        and failure.error_kind == ExecutionErrorKind.TIMEOUT.value
    )


class ChecksumTimeLimitResolver(FailureResolver):
    """Checksum queries that keep timing out are a verifier limitation."""

    @property
    def name(self) -> str:
        return "ChecksumTimeLimitResolver"

    def resolve(self, failure: Failure, context: VerificationContext) -> Optional[Resolution]:
        if not (_is_timeout(failure) and failure.phase == "checksum" and failure.exhausted):
            return None
        return self._resolution(
            explanation="Checksum query exceeded the time limit on every attempt",
            message=f"Checksum on {failure.cluster.value if failure.cluster else 'cluster'} "
            f"timed out after {failure.attempts} attempt(s)",
        )


class ExceededTimeLimitResolver(FailureResolver):
    """
    A test timeout is expected when control was already close to the limit.

    Control's execution time is compared against ``time_limit_ratio`` of
    the per-operation timeout.
    """

    def __init__(self, config: VerifierConfig | None = None) -> None:
        self.config = config or VerifierConfig()

    @property
    def name(self) -> str:
        return "ExceededTimeLimitResolver"

    def resolve(self, failure: Failure, context: VerificationContext) -> Optional[Resolution]:
        if not (_is_timeout(failure) and failure.cluster == ClusterRole.TEST):
            return None
        if failure.phase != "execute_test":
            return None

        control_stats = context.last_stats(ClusterRole.CONTROL, "execute")
        if control_stats is None:
            return None

        threshold = self.config.operation_timeout_seconds * self.config.time_limit_ratio
        if control_stats.elapsed_seconds < threshold:
            return None

        return self._resolution(
            explanation="Control query ran close to the time limit",
            message=f"Control took {control_stats.elapsed_seconds:.1f}s of a "
            f"{self.config.operation_timeout_seconds:.1f}s limit",
        )
