"""
Memory Limit Resolver
=====================

Explains test-side resource exhaustion for queries that were already at
the memory limit on control.
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


class ExceededMemoryLimitResolver(FailureResolver):
    """Resolves test resource exhaustion when control peaked at the limit."""

    def __init__(self, config: VerifierConfig | None = None) -> None:
        self.config = config or VerifierConfig()

    @property
    def name(self) -> str:
        return "ExceededMemoryLimitResolver"

    def resolve(self, failure: Failure, context: VerificationContext) -> Optional[Resolution]:
        limit = self.config.memory_limit_bytes
        if limit is None:
            return None
        if failure.kind != FailureKind.EXECUTION_ERROR or failure.cluster != ClusterRole.TEST:
            return None
        if failure.error_kind != ExecutionErrorKind.RESOURCE_EXHAUSTED.value:
            return None

        control_stats = context.last_stats(ClusterRole.CONTROL, "execute")
        if control_stats is None or control_stats.peak_memory_bytes is None:
            return None
        if control_stats.peak_memory_bytes < limit:
            return None

        return self._resolution(
            explanation="Control query already used the memory limit",
            message=f"Control peak memory {control_stats.peak_memory_bytes} bytes "
            f">= limit {limit} bytes",
        )
