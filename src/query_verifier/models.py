"""
Data Models
===========

Core data structures for control/test result verification.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ClusterRole(str, Enum):
    """Which side of the comparison a query runs on."""

    CONTROL = "control"
    TEST = "test"


class ColumnCategory(str, Enum):
    """Semantic type class of a result column."""

    NUMERIC = "numeric"
    FLOATING_POINT = "floating_point"
    STRING = "string"
    TIMESTAMP = "timestamp"
    COMPLEX = "complex"
    BOOLEAN = "boolean"
    OTHER = "other"


# Ordered (pattern, category) pairs, matched against the lower-cased type name
_TYPE_PATTERNS = [
    (r"^(array|map|row)\s*\(", ColumnCategory.COMPLEX),
    (r"^(real|double|float)", ColumnCategory.FLOATING_POINT),
    (r"^(tinyint|smallint|integer|int|bigint|decimal|numeric|num)\b", ColumnCategory.NUMERIC),
    (r"^bool(ean)?$", ColumnCategory.BOOLEAN),
    (r"^(varchar|char|text|varbinary|json|uuid)", ColumnCategory.STRING),
    (r"^(date|time|timestamp|interval)", ColumnCategory.TIMESTAMP),
]


def classify_type(type_name: str) -> ColumnCategory:
    """Map an engine type name onto a ColumnCategory."""
    normalized = type_name.strip().lower()
    for pattern, category in _TYPE_PATTERNS:
        if re.match(pattern, normalized):
            return category
    return ColumnCategory.OTHER


@dataclass(frozen=True)
class SourceQuery:
    """A query from the corpus, as loaded. Read-only."""

    query_id: str
    sql: str
    catalog: Optional[str] = None
    schema: Optional[str] = None
    suite: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class QueryBundle:
    """Executable form of a SourceQuery for one cluster role."""

    source_query_id: str
    cluster: ClusterRole
    query: str
    table_name: str
    setup_queries: tuple[str, ...] = ()
    teardown_queries: tuple[str, ...] = ()


@dataclass(frozen=True)
class Column:
    """A materialized result column."""

    name: str
    type_name: str
    category: ColumnCategory

    @classmethod
    def of(cls, name: str, type_name: str) -> "Column":
        return cls(name=name, type_name=type_name, category=classify_type(type_name))


@dataclass(frozen=True)
class QueryStats:
    """Execution statistics reported by a cluster."""

    query_id: str
    cluster: ClusterRole
    elapsed_seconds: float = 0.0
    cpu_seconds: Optional[float] = None
    peak_memory_bytes: Optional[int] = None
    state: str = "FINISHED"


@dataclass(frozen=True)
class QueryResult:
    """Rows and stats returned by a single statement."""

    column_names: tuple[str, ...]
    rows: tuple[tuple, ...]
    stats: QueryStats


@dataclass(frozen=True)
class ChecksumResult:
    """The single row produced by a checksum query, keyed by alias."""

    row_count: int
    values: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_query_result(cls, result: QueryResult) -> "ChecksumResult":
        if len(result.rows) != 1:
            raise ValueError(f"Checksum query returned {len(result.rows)} rows, expected 1")
        values = dict(zip(result.column_names, result.rows[0]))
        if "row_count" not in values:
            raise ValueError("Checksum query result is missing 'row_count'")
        return cls(row_count=int(values["row_count"]), values=values)


@dataclass(frozen=True)
class ColumnMismatch:
    """One aggregate that disagrees between control and test."""

    column: str
    aggregate: str
    control_value: Any
    test_value: Any


class MatchVerdict(str, Enum):
    """Verdict of a checksum comparison."""

    MATCH = "match"
    MISMATCH = "mismatch"
    ERROR = "error"


@dataclass(frozen=True)
class MatchResult:
    """Result of comparing control and test checksums."""

    verdict: MatchVerdict
    control_row_count: int
    test_row_count: int
    mismatches: tuple[ColumnMismatch, ...] = ()
    message: str = ""

    @property
    def matched(self) -> bool:
        return self.verdict == MatchVerdict.MATCH

    @property
    def row_count_mismatch(self) -> bool:
        return self.control_row_count != self.test_row_count

    @property
    def mismatched_columns(self) -> list[str]:
        names: list[str] = []
        for mismatch in self.mismatches:
            if mismatch.column not in names:
                names.append(mismatch.column)
        return names

    def to_dict(self) -> dict:
        return {
            "verdict": self.verdict.value,
            "control_row_count": self.control_row_count,
            "test_row_count": self.test_row_count,
            "mismatches": [
                {
                    "column": m.column,
                    "aggregate": m.aggregate,
                    "control_value": _jsonable(m.control_value),
                    "test_value": _jsonable(m.test_value),
                }
                for m in self.mismatches
            ],
            "message": self.message,
        }


class DeterminismAnalysis(str, Enum):
    """Outcome of re-running the control query after a mismatch."""

    DETERMINISTIC = "deterministic"
    NON_DETERMINISTIC = "non_deterministic"
    ANALYSIS_FAILED = "analysis_failed"


@dataclass(frozen=True)
class DeterminismRun:
    """One control rerun during determinism analysis."""

    run: int
    query_id: Optional[str] = None
    row_count: Optional[int] = None
    mismatched_columns: tuple[str, ...] = ()
    error: Optional[str] = None


@dataclass(frozen=True)
class DeterminismResult:
    """Aggregated determinism analysis."""

    analysis: DeterminismAnalysis
    runs: tuple[DeterminismRun, ...] = ()
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "analysis": self.analysis.value,
            "reason": self.reason,
            "runs": [
                {
                    "run": r.run,
                    "query_id": r.query_id,
                    "row_count": r.row_count,
                    "mismatched_columns": list(r.mismatched_columns),
                    "error": r.error,
                }
                for r in self.runs
            ],
        }


class FailureKind(str, Enum):
    """Classification of a terminal verification failure."""

    REWRITE_ERROR = "rewrite_error"
    EXECUTION_ERROR = "execution_error"
    SCHEMA_MISMATCH = "schema_mismatch"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    DETERMINISM_ANALYSIS_ERROR = "determinism_analysis_error"


@dataclass(frozen=True)
class Resolution:
    """Explanation supplied by a failure resolver."""

    resolver_name: str
    explanation: str
    message: str


@dataclass(frozen=True)
class Failure:
    """A classified failure, optionally explained by a resolver."""

    kind: FailureKind
    message: str
    phase: str
    cluster: Optional[ClusterRole] = None
    error_kind: Optional[str] = None
    error_type: Optional[str] = None
    error_code: Optional[str] = None
    query_id: Optional[str] = None
    attempts: int = 1
    exhausted: bool = False
    match_result: Optional[MatchResult] = None
    resolution: Optional[Resolution] = None

    @property
    def resolved(self) -> bool:
        return self.resolution is not None

    def with_resolution(self, resolution: Resolution) -> "Failure":
        return replace(self, resolution=resolution)

    @classmethod
    def from_error(
        cls,
        error: Exception,
        phase: str,
        cluster: Optional[ClusterRole] = None,
        attempts: int = 1,
    ) -> "Failure":
        """Classify an exception raised by a collaborator."""
        # Lazy import to avoid circular imports
        from query_verifier.errors import (
            DeterminismAnalysisError,
            ExecutionError,
            RewriteError,
            SchemaMismatchError,
        )

        error_kind = None
        error_code = None
        query_id = None
        if isinstance(error, RewriteError):
            kind = FailureKind.REWRITE_ERROR
        elif isinstance(error, SchemaMismatchError):
            kind = FailureKind.SCHEMA_MISMATCH
        elif isinstance(error, DeterminismAnalysisError):
            kind = FailureKind.DETERMINISM_ANALYSIS_ERROR
        else:
            kind = FailureKind.EXECUTION_ERROR
            if isinstance(error, ExecutionError):
                error_kind = error.kind.value
                error_code = error.error_code
                query_id = error.query_id
                cluster = error.cluster or cluster

        return cls(
            kind=kind,
            message=str(error) or type(error).__name__,
            phase=phase,
            cluster=cluster,
            error_kind=error_kind,
            error_type=type(error).__name__,
            error_code=error_code,
            query_id=query_id,
            attempts=attempts,
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "phase": self.phase,
            "cluster": self.cluster.value if self.cluster else None,
            "error_kind": self.error_kind,
            "error_type": self.error_type,
            "error_code": self.error_code,
            "query_id": self.query_id,
            "attempts": self.attempts,
            "exhausted": self.exhausted,
            "resolution": (
                {
                    "resolver": self.resolution.resolver_name,
                    "explanation": self.resolution.explanation,
                    "message": self.resolution.message,
                }
                if self.resolution
                else None
            ),
        }


class VerificationOutcome(str, Enum):
    """User-visible verdict of one verification."""

    MATCH = "match"
    REGRESSION = "regression"
    KNOWN_ISSUE = "known_issue"
    INCONCLUSIVE = "inconclusive"


@dataclass
class ContextEntry:
    """Single entry in the verification record."""

    timestamp: str
    step: str
    data: dict = field(default_factory=dict)


@dataclass
class VerificationContext:
    """
    Append-only record of everything observed while verifying one query.

    Owned by exactly one controller; never shared across queries.
    """

    source_query_id: str
    entries: list[ContextEntry] = field(default_factory=list)
    checksum_queries: dict[ClusterRole, str] = field(default_factory=dict)
    columns: dict[str, Column] = field(default_factory=dict)
    query_ids: dict[str, list[str]] = field(default_factory=dict)
    query_stats: dict[str, list[QueryStats]] = field(default_factory=dict)
    timings: dict[str, float] = field(default_factory=dict)
    failures: list[Failure] = field(default_factory=list)
    resubmissions: list[dict] = field(default_factory=list)
    transitions: list[tuple[str, str, str]] = field(default_factory=list)
    outcome: Optional[VerificationOutcome] = None

    def log(self, step: str, **data: Any) -> None:
        """Add entry to the record."""
        self.entries.append(
            ContextEntry(
                timestamp=datetime.now(timezone.utc).isoformat(),
                step=step,
                data=data,
            )
        )

    def record_transition(self, from_state: str, event: str, to_state: str) -> None:
        self.transitions.append((from_state, event, to_state))
        self.log("transition", from_state=from_state, event=event, to_state=to_state)

    def record_checksum_query(self, cluster: ClusterRole, sql: str) -> None:
        self.checksum_queries[cluster] = sql
        self.log("checksum_query", cluster=cluster.value, sql=sql)

    def record_columns(self, cluster: ClusterRole, columns: list[Column]) -> None:
        if cluster == ClusterRole.CONTROL:
            self.columns = {column.name: column for column in columns}
        self.log(
            "columns",
            cluster=cluster.value,
            columns=[f"{c.name} {c.type_name}" for c in columns],
        )

    def record_query(self, phase: str, stats: QueryStats) -> None:
        key = f"{stats.cluster.value}.{phase}"
        self.query_ids.setdefault(key, []).append(stats.query_id)
        self.query_stats.setdefault(key, []).append(stats)
        self.log(
            "query_finished",
            phase=phase,
            cluster=stats.cluster.value,
            query_id=stats.query_id,
            elapsed_seconds=stats.elapsed_seconds,
        )

    def record_timing(self, phase: str, seconds: float) -> None:
        self.timings[phase] = self.timings.get(phase, 0.0) + seconds

    def record_failure(self, failure: Failure) -> None:
        self.failures.append(failure)
        self.log("failure", **failure.to_dict())

    def record_resubmission(self, target: str, failure: Failure, attempt: int, delay: float) -> None:
        entry = {
            "target": target,
            "attempt": attempt,
            "delay_seconds": delay,
            "error_kind": failure.error_kind,
            "message": failure.message,
        }
        self.resubmissions.append(entry)
        self.log("resubmission", **entry)

    def last_stats(self, cluster: ClusterRole, phase: str) -> Optional[QueryStats]:
        stats = self.query_stats.get(f"{cluster.value}.{phase}")
        return stats[-1] if stats else None

    def to_dict(self) -> dict:
        return {
            "source_query_id": self.source_query_id,
            "outcome": self.outcome.value if self.outcome else None,
            "checksum_queries": {k.value: v for k, v in self.checksum_queries.items()},
            "query_ids": {k: list(v) for k, v in self.query_ids.items()},
            "timings": dict(self.timings),
            "failures": [f.to_dict() for f in self.failures],
            "resubmissions": list(self.resubmissions),
            "transitions": [list(t) for t in self.transitions],
            "entries": [
                {"timestamp": e.timestamp, "step": e.step, "data": _jsonable(e.data)}
                for e in self.entries
            ],
        }


@dataclass
class VerificationResult:
    """Final result of verifying one source query."""

    source_query: SourceQuery
    outcome: VerificationOutcome
    context: VerificationContext
    match_result: Optional[MatchResult] = None
    failure: Optional[Failure] = None
    determinism: Optional[DeterminismResult] = None

    def to_dict(self) -> dict:
        return {
            "query_id": self.source_query.query_id,
            "outcome": self.outcome.value,
            "match_result": self.match_result.to_dict() if self.match_result else None,
            "failure": self.failure.to_dict() if self.failure else None,
            "determinism": self.determinism.to_dict() if self.determinism else None,
            "context": self.context.to_dict(),
        }


def _jsonable(value: Any) -> Any:
    """Coerce checksum values (bytes, Decimal, nested dicts) into JSON-safe types."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, bytes):
        return value.hex()
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)
