"""
SQLite Execution Client
=======================

Reference ExecutionClient backed by one SQLite database file per cluster.

Registers the aggregate and scalar functions the checksum queries use
(``checksum``, ``count_if``, ``is_nan``, ``is_finite``,
``infinity``, ``cardinality``) on every connection.
"""

import asyncio
import hashlib
import json
import math
import sqlite3
import time
import uuid
from typing import Any, Optional

from query_verifier.checksum.strategies import quote_identifier
from query_verifier.clients.base import ExecutionClient
from query_verifier.errors import ExecutionError, ExecutionErrorKind
from query_verifier.models import ClusterRole, Column, QueryResult, QueryStats

_MODULUS = 2**64

# Ordered (message fragment, kind) pairs for sqlite3 error classification
_ERROR_PATTERNS = [
    ("interrupted", ExecutionErrorKind.TIMEOUT),
    ("database is locked", ExecutionErrorKind.RESOURCE_EXHAUSTED),
    ("database table is locked", ExecutionErrorKind.RESOURCE_EXHAUSTED),
    ("out of memory", ExecutionErrorKind.RESOURCE_EXHAUSTED),
    ("database or disk is full", ExecutionErrorKind.RESOURCE_EXHAUSTED),
    ("unable to open database", ExecutionErrorKind.CONNECTIVITY),
    ("disk i/o error", ExecutionErrorKind.CONNECTIVITY),
    ("not authorized", ExecutionErrorKind.AUTHORIZATION),
    ("readonly database", ExecutionErrorKind.AUTHORIZATION),
    ("syntax error", ExecutionErrorKind.SYNTAX),
    ("no such", ExecutionErrorKind.SYNTAX),
    ("already exists", ExecutionErrorKind.SYNTAX),
    ("incomplete input", ExecutionErrorKind.SYNTAX),
]


def _value_hash(value: Any) -> int:
    """Deterministic 64-bit hash of one value, tagged by storage class."""
    if value is None:
        payload = b"n:"
    elif isinstance(value, bytes):
        payload = b"b:" + value
    elif isinstance(value, float):
        payload = b"f:" + repr(value).encode()
    elif isinstance(value, int):
        payload = b"i:" + str(value).encode()
    else:
        payload = b"s:" + str(value).encode("utf-8")
    return int.from_bytes(hashlib.blake2b(payload, digest_size=8).digest(), "big")


class _Checksum:
    """Commutative sum of per-row hashes, so row order never matters."""

    def __init__(self) -> None:
        self.total = 0
        self.rows = 0

    def step(self, value: Any) -> None:
        self.total = (self.total + _value_hash(value)) % _MODULUS
        self.rows += 1

    def finalize(self) -> Optional[str]:
        if self.rows == 0:
            return None
        return f"{self.total:016x}"


class _CountIf:
    def __init__(self) -> None:
        self.count = 0

    def step(self, value: Any) -> None:
        if value:
            self.count += 1

    def finalize(self) -> int:
        return self.count


def _is_nan(value: Any) -> Optional[bool]:
    if value is None:
        return None
    return isinstance(value, float) and math.isnan(value)


def _is_finite(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, int)


def _cardinality(value: Any) -> Optional[int]:
    """Element count of a JSON-encoded array or map."""
    if value is None:
        return None
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return None
    if isinstance(decoded, (list, dict)):
        return len(decoded)
    return None


def register_functions(conn: sqlite3.Connection) -> None:
    conn.create_aggregate("checksum", 1, _Checksum)
    conn.create_aggregate("count_if", 1, _CountIf)
    conn.create_function("is_nan", 1, _is_nan, deterministic=True)
    conn.create_function("is_finite", 1, _is_finite, deterministic=True)
    conn.create_function("infinity", 0, lambda: math.inf, deterministic=True)
    conn.create_function("cardinality", 1, _cardinality, deterministic=True)


def classify_sqlite_error(
    error: sqlite3.Error, cluster: ClusterRole, query_id: str
) -> ExecutionError:
    message = str(error)
    lowered = message.lower()
    kind = ExecutionErrorKind.UNKNOWN
    for fragment, candidate in _ERROR_PATTERNS:
        if fragment in lowered:
            kind = candidate
            break
    return ExecutionError(
        message,
        kind=kind,
        cluster=cluster,
        query_id=query_id,
        error_code=getattr(error, "sqlite_errorname", None),
    )


class SQLiteExecutionClient(ExecutionClient):
    """
    Runs statements against per-cluster SQLite files.

    Each statement gets its own connection, executed in a worker thread.
    Cancellation interrupts the running statement.
    """

    def __init__(self, databases: dict[ClusterRole, str]) -> None:
        """
        Initialize the client.

        Args:
            databases: Database file path for each cluster role
        """
        missing = [role.value for role in ClusterRole if role not in databases]
        if missing:
            raise ValueError(f"No database configured for: {', '.join(missing)}")
        self.databases = databases

    def _connect(self, cluster: ClusterRole) -> sqlite3.Connection:
        conn = sqlite3.connect(self.databases[cluster], check_same_thread=False)
        register_functions(conn)
        return conn

    def _run(
        self,
        conn: sqlite3.Connection,
        statement: str,
        cluster: ClusterRole,
        query_id: str,
    ) -> QueryResult:
        start = time.perf_counter()
        try:
            cursor = conn.execute(statement)
            rows = tuple(tuple(row) for row in cursor.fetchall())
            names = tuple(d[0] for d in cursor.description) if cursor.description else ()
            conn.commit()
        except sqlite3.Error as e:
            raise classify_sqlite_error(e, cluster, query_id) from e
        finally:
            conn.close()

        stats = QueryStats(
            query_id=query_id,
            cluster=cluster,
            elapsed_seconds=time.perf_counter() - start,
        )
        return QueryResult(column_names=names, rows=rows, stats=stats)

    async def execute(self, statement: str, cluster: ClusterRole) -> QueryResult:
        query_id = f"{cluster.value}_{uuid.uuid4().hex[:16]}"
        try:
            conn = self._connect(cluster)
        except sqlite3.Error as e:
            raise classify_sqlite_error(e, cluster, query_id) from e

        try:
            return await asyncio.to_thread(self._run, conn, statement, cluster, query_id)
        except asyncio.CancelledError:
            try:
                conn.interrupt()
            except sqlite3.ProgrammingError:
                pass  # statement already finished and closed its connection
            raise

    async def get_columns(self, table_name: str, cluster: ClusterRole) -> list[Column]:
        if "." in table_name:
            schema, table = table_name.rsplit(".", 1)
            pragma = f"PRAGMA {quote_identifier(schema)}.table_info({quote_identifier(table)})"
        else:
            pragma = f"PRAGMA table_info({quote_identifier(table_name)})"

        result = await self.execute(pragma, cluster)
        if not result.rows:
            raise ExecutionError(
                f"no such table: {table_name}",
                kind=ExecutionErrorKind.SYNTAX,
                cluster=cluster,
                query_id=result.stats.query_id,
            )
        # table_info rows: (cid, name, type, notnull, dflt_value, pk)
        return [Column.of(row[1], row[2] or "") for row in result.rows]
