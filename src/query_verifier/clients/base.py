"""
Collaborator Interfaces
=======================

Abstract interfaces for the rewriter and the cluster execution client.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, TypeVar

from query_verifier.errors import ExecutionError, ExecutionErrorKind, VerifierError
from query_verifier.models import (
    ClusterRole,
    Column,
    QueryBundle,
    QueryResult,
    QueryStats,
    SourceQuery,
)


class QueryRewriter(ABC):
    """Turns a source query into an executable, materializing bundle."""

    @abstractmethod
    async def rewrite(self, source_query: SourceQuery, cluster: ClusterRole) -> QueryBundle:
        """
        Rewrite a source query for one cluster role.

        Args:
            source_query: Query to rewrite
            cluster: Role the bundle will run on

        Returns:
            QueryBundle naming the materialized output table

        Raises:
            RewriteError: If the query shape is unsupported
        """
        pass


class ExecutionClient(ABC):
    """Runs statements on the control and test clusters."""

    @abstractmethod
    async def execute(self, statement: str, cluster: ClusterRole) -> QueryResult:
        """
        Execute one statement.

        Args:
            statement: SQL text
            cluster: Cluster to run on

        Returns:
            QueryResult with rows and stats

        Raises:
            ExecutionError: Classified cluster failure
        """
        pass

    @abstractmethod
    async def get_columns(self, table_name: str, cluster: ClusterRole) -> list[Column]:
        """Ordered columns of a materialized table."""
        pass

    async def execute_bundle(self, bundle: QueryBundle) -> QueryStats:
        """Run setup statements, then the main query. Returns the main query's stats."""
        for statement in bundle.setup_queries:
            await self.execute(statement, bundle.cluster)
        result = await self.execute(bundle.query, bundle.cluster)
        return result.stats

    async def teardown(self, bundle: QueryBundle) -> None:
        for statement in bundle.teardown_queries:
            await self.execute(statement, bundle.cluster)


T = TypeVar("T")


async def call_remote(operation: Awaitable[T], timeout: float, cluster: ClusterRole) -> T:
    """
    Await a remote operation under a timeout.

    Timeouts become transient ExecutionErrors; unclassified exceptions from
    a client become permanent ones. Cancellation propagates untouched.
    """
    try:
        return await asyncio.wait_for(operation, timeout)
    except asyncio.TimeoutError as e:
        raise ExecutionError(
            f"Operation exceeded the {timeout:g}s time limit",
            kind=ExecutionErrorKind.TIMEOUT,
            cluster=cluster,
        ) from e
    except VerifierError:
        raise
    except Exception as e:
        raise ExecutionError(
            f"{type(e).__name__}: {e}",
            kind=ExecutionErrorKind.UNKNOWN,
            cluster=cluster,
        ) from e
