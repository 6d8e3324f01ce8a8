"""
Base Resolver Classes
=====================

Abstract base class and failure resolver chain implementation.
"""

from abc import ABC, abstractmethod
from typing import Optional

from query_verifier.config import VerifierConfig
from query_verifier.models import Failure, Resolution, VerificationContext


class FailureResolver(ABC):
    """Base class for all failure resolvers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this resolver."""
        pass

    @abstractmethod
    def resolve(self, failure: Failure, context: VerificationContext) -> Optional[Resolution]:
        """
        Explain the failure as a known, non-regression condition.

        Args:
            failure: The terminal failure
            context: Everything recorded so far for this query (read only)

        Returns:
            Resolution if this resolver recognizes the failure, else None
        """
        pass

    def _resolution(self, explanation: str, message: str) -> Resolution:
        return Resolution(resolver_name=self.name, explanation=explanation, message=message)


class FailureResolverChain:
    """Runs resolvers in priority order, stopping at the first match."""

    def __init__(
        self,
        resolvers: list[FailureResolver] | None = None,
        config: VerifierConfig | None = None,
    ) -> None:
        """
        Initialize the resolver chain.

        Args:
            resolvers: Resolvers in priority order. Defaults to standard chain.
            config: Settings for the default resolvers
        """
        if resolvers is not None:
            self.resolvers = resolvers
        else:
            # Lazy import to avoid circular imports
            from query_verifier.resolvers.limitation import StructuredFloatColumnResolver
            from query_verifier.resolvers.memory import ExceededMemoryLimitResolver
            from query_verifier.resolvers.time_limit import (
                ChecksumTimeLimitResolver,
                ExceededTimeLimitResolver,
            )

            config = config or VerifierConfig()
            self.resolvers = [
                ChecksumTimeLimitResolver(),
                ExceededTimeLimitResolver(config),
                ExceededMemoryLimitResolver(config),
                StructuredFloatColumnResolver(),
            ]

    def resolve(self, failure: Failure, context: VerificationContext) -> Optional[Resolution]:
        """Return the first resolution offered, or None if the failure is genuine."""
        for resolver in self.resolvers:
            resolution = resolver.resolve(failure, context)
            if resolution is not None:
                return resolution
        return None
