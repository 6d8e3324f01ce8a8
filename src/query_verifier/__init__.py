"""
Query Verifier
==============

Verifies that a control and a test SQL cluster produce equivalent results
for the same source query, with determinism analysis, resubmission of
transient failures and known-issue resolution.
"""

from query_verifier.models import (
    ClusterRole,
    Column,
    DeterminismAnalysis,
    DeterminismResult,
    Failure,
    FailureKind,
    MatchResult,
    MatchVerdict,
    QueryBundle,
    SourceQuery,
    VerificationContext,
    VerificationOutcome,
    VerificationResult,
)
from query_verifier.config import VerifierConfig
from query_verifier.checksum import ChecksumValidator
from query_verifier.determinism import DeterminismAnalyzer
from query_verifier.resubmission import ResubmissionController
from query_verifier.resolvers import FailureResolver, FailureResolverChain
from query_verifier.state_machine import VerificationState, transition
from query_verifier.controller import VerificationController
from query_verifier.manager import VerificationManager
from query_verifier.clients import (
    ExecutionClient,
    MockExecutionClient,
    QueryRewriter,
    SQLiteExecutionClient,
    TableMaterializingRewriter,
)

__version__ = "0.1.0"

__all__ = [
    # Models
    "ClusterRole",
    "Column",
    "DeterminismAnalysis",
    "DeterminismResult",
    "Failure",
    "FailureKind",
    "MatchResult",
    "MatchVerdict",
    "QueryBundle",
    "SourceQuery",
    "VerificationContext",
    "VerificationOutcome",
    "VerificationResult",
    # Components
    "VerifierConfig",
    "ChecksumValidator",
    "DeterminismAnalyzer",
    "ResubmissionController",
    "FailureResolver",
    "FailureResolverChain",
    "VerificationState",
    "transition",
    "VerificationController",
    "VerificationManager",
    # Clients
    "ExecutionClient",
    "QueryRewriter",
    "MockExecutionClient",
    "SQLiteExecutionClient",
    "TableMaterializingRewriter",
]
