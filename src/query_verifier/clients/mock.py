"""
Mock Execution Client
=====================

Scripted ExecutionClient for testing and demonstration.
"""

import asyncio
from typing import Any

from query_verifier.clients.base import ExecutionClient
from query_verifier.models import (
    ClusterRole,
    Column,
    QueryBundle,
    QueryResult,
    QueryStats,
)


class MockExecutionClient(ExecutionClient):
    """
    Mock cluster client with canned columns, checksum rows and failures.

    In production, replace with a client for the real engine.
    """

    def __init__(
        self,
        columns: dict[ClusterRole, list[Column]],
        checksums: dict[ClusterRole, list[dict[str, Any]]] | None = None,
        bundle_failures: dict[ClusterRole, list[Exception]] | None = None,
        checksum_failures: dict[ClusterRole, list[Exception]] | None = None,
        stats: dict[ClusterRole, dict[str, Any]] | None = None,
        latency: dict[ClusterRole, float] | None = None,
    ) -> None:
        """
        Initialize with canned responses.

        Args:
            columns: Columns reported for every table on each cluster
            checksums: Checksum rows per cluster, returned in sequence; the
                       last row repeats once the list is exhausted
            bundle_failures: Exceptions raised by successive bundle runs
            checksum_failures: Exceptions raised by successive checksum queries
            stats: Extra QueryStats fields per cluster (elapsed, memory)
            latency: Seconds each bundle run takes per cluster
        """
        self.columns = columns
        self.checksums = checksums or {}
        self.bundle_failures = {k: list(v) for k, v in (bundle_failures or {}).items()}
        self.checksum_failures = {k: list(v) for k, v in (checksum_failures or {}).items()}
        self.stats = stats or {}
        self.latency = latency or {}
        self.call_counts: dict[str, int] = {}
        self.statements: list[tuple[ClusterRole, str]] = []
        self.torn_down: list[str] = []

    def _count(self, operation: str, cluster: ClusterRole) -> int:
        key = f"{cluster.value}.{operation}"
        count = self.call_counts.get(key, 0)
        self.call_counts[key] = count + 1
        return count

    def _stats(self, cluster: ClusterRole, operation: str, count: int) -> QueryStats:
        return QueryStats(
            query_id=f"{cluster.value}_{operation}_{count + 1}",
            cluster=cluster,
            **self.stats.get(cluster, {}),
        )

    def attempts(self, operation: str, cluster: ClusterRole) -> int:
        """How many times an operation ran on a cluster."""
        return self.call_counts.get(f"{cluster.value}.{operation}", 0)

    async def execute_bundle(self, bundle: QueryBundle) -> QueryStats:
        count = self._count("bundle", bundle.cluster)
        self.statements.append((bundle.cluster, bundle.query))
        if bundle.cluster in self.latency:
            await asyncio.sleep(self.latency[bundle.cluster])
        failures = self.bundle_failures.get(bundle.cluster)
        if failures:
            raise failures.pop(0)
        return self._stats(bundle.cluster, "bundle", count)

    async def teardown(self, bundle: QueryBundle) -> None:
        self.torn_down.append(bundle.table_name)

    async def execute(self, statement: str, cluster: ClusterRole) -> QueryResult:
        count = self._count("checksum", cluster)
        self.statements.append((cluster, statement))
        failures = self.checksum_failures.get(cluster)
        if failures:
            raise failures.pop(0)

        rows = self.checksums.get(cluster)
        if not rows:
            raise AssertionError(f"No checksum rows scripted for {cluster.value}")
        row = rows[min(count, len(rows) - 1)]
        return QueryResult(
            column_names=tuple(row.keys()),
            rows=(tuple(row.values()),),
            stats=self._stats(cluster, "checksum", count),
        )

    async def get_columns(self, table_name: str, cluster: ClusterRole) -> list[Column]:
        self._count("columns", cluster)
        return list(self.columns[cluster])
