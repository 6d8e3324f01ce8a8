"""
Resolvers Module
================

Classifiers that explain terminal failures as known issues.
"""

from query_verifier.resolvers.base import FailureResolver, FailureResolverChain
from query_verifier.resolvers.limitation import StructuredFloatColumnResolver
from query_verifier.resolvers.memory import ExceededMemoryLimitResolver
from query_verifier.resolvers.time_limit import (
    ChecksumTimeLimitResolver,
    ExceededTimeLimitResolver,
)

__all__ = [
    "FailureResolver",
    "FailureResolverChain",
    "ChecksumTimeLimitResolver",
    "ExceededTimeLimitResolver",
    "ExceededMemoryLimitResolver",
    "StructuredFloatColumnResolver",
]
