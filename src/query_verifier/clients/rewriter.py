"""
Materializing Rewriter
======================

Wraps a read-only query so its output lands in a temporary table.
"""

import re
import uuid

from query_verifier.clients.base import QueryRewriter
from query_verifier.config import VerifierConfig
from query_verifier.errors import RewriteError
from query_verifier.models import ClusterRole, QueryBundle, SourceQuery


class TableMaterializingRewriter(QueryRewriter):
    """Rewrites ``SELECT ...`` into ``CREATE TABLE <tmp> AS SELECT ...``."""

    SUPPORTED_PATTERN = re.compile(r"^\s*(SELECT|WITH|VALUES)\b", re.IGNORECASE)

    def __init__(self, config: VerifierConfig | None = None) -> None:
        self.config = config or VerifierConfig()

    def _table_name(self, source_query: SourceQuery, cluster: ClusterRole) -> str:
        prefix = (
            self.config.control_table_prefix
            if cluster == ClusterRole.CONTROL
            else self.config.test_table_prefix
        )
        name = f"{prefix}_{uuid.uuid4().hex}"
        parts = [p for p in (source_query.catalog, source_query.schema) if p]
        return ".".join(parts + [name])

    async def rewrite(self, source_query: SourceQuery, cluster: ClusterRole) -> QueryBundle:
        sql = source_query.sql.strip().rstrip(";").strip()

        if not sql:
            raise RewriteError(f"Query {source_query.query_id} is empty")
        if not self.SUPPORTED_PATTERN.match(sql):
            raise RewriteError(
                f"Query {source_query.query_id} is not a SELECT statement and cannot be materialized"
            )
        if ";" in _strip_literals(sql):
            raise RewriteError(f"Query {source_query.query_id} contains multiple statements")

        table_name = self._table_name(source_query, cluster)
        return QueryBundle(
            source_query_id=source_query.query_id,
            cluster=cluster,
            query=f"CREATE TABLE {table_name} AS {sql}",
            table_name=table_name,
            teardown_queries=(f"DROP TABLE IF EXISTS {table_name}",),
        )


def _strip_literals(sql: str) -> str:
    """Remove quoted strings and identifiers so their contents are ignored."""
    return re.sub(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"", "", sql)
