"""
Pytest Fixtures
===============

Shared fixtures for query verifier tests.
"""

import sys
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

# Add src and the repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from query_verifier.checksum.kinds import checksum_kind
from query_verifier.checksum.strategies import GENERATORS, aggregate_alias, quote_identifier
from query_verifier.checksum.validator import ChecksumValidator
from query_verifier.clients.mock import MockExecutionClient
from query_verifier.clients.rewriter import TableMaterializingRewriter
from query_verifier.config import VerifierConfig
from query_verifier.controller import VerificationController
from query_verifier.manager import VerificationManager
from query_verifier.models import (
    ChecksumResult,
    ClusterRole,
    Column,
    SourceQuery,
    VerificationContext,
)
from query_verifier.resolvers.base import FailureResolver

_DEFAULTS = {
    "sum": 42.0,
    "checksum": "9f3c2a77d1e04b58",
    "nan_count": 0,
    "pos_inf_count": 0,
    "neg_inf_count": 0,
    "cardinality_sum": 6,
    "true_count": 2,
    "false_count": 1,
}


def build_checksum_row(
    columns: list[Column],
    row_count: int = 3,
    overrides: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Checksum row with every aggregate the validator expects for these columns."""
    row: dict[str, Any] = {"row_count": row_count}
    for column in columns:
        ref = quote_identifier(column.name)
        for suffix, _ in GENERATORS[checksum_kind(column)](ref, column):
            value = row_count if suffix == "count" else _DEFAULTS[suffix]
            row[aggregate_alias(column, suffix)] = value
    row.update(overrides or {})
    return row


@pytest.fixture
def config() -> VerifierConfig:
    """Config with no resubmission backoff so retries run instantly."""
    return VerifierConfig(
        resubmission_base_delay_seconds=0.0,
        resubmission_max_delay_seconds=0.0,
        operation_timeout_seconds=5.0,
    )


@pytest.fixture
def columns() -> list[Column]:
    """Typical result shape: an integer, a double and a string column."""
    return [
        Column.of("id", "bigint"),
        Column.of("price", "double"),
        Column.of("name", "varchar"),
    ]


@pytest.fixture
def source_query() -> SourceQuery:
    return SourceQuery(query_id="q1", sql="SELECT id, price, name FROM items", suite="smoke")


@pytest.fixture
def validator(config: VerifierConfig) -> ChecksumValidator:
    return ChecksumValidator(config)


@pytest.fixture
def rewriter(config: VerifierConfig) -> TableMaterializingRewriter:
    return TableMaterializingRewriter(config)


@pytest.fixture
def context() -> VerificationContext:
    return VerificationContext(source_query_id="q1")


@pytest.fixture
def make_checksum_row(columns: list[Column]) -> Callable[..., dict[str, Any]]:
    """Factory for checksum rows over the default columns."""

    def factory(row_count: int = 3, **overrides: Any) -> dict[str, Any]:
        # Keyword names cannot hold "$", so "price__sum" stands for "price$sum"
        mapped = {key.replace("__", "$"): value for key, value in overrides.items()}
        return build_checksum_row(columns, row_count, mapped)

    return factory


@pytest.fixture
def make_checksum(make_checksum_row: Callable[..., dict[str, Any]]) -> Callable[..., ChecksumResult]:
    """Factory for ChecksumResult objects over the default columns."""

    def factory(row_count: int = 3, **overrides: Any) -> ChecksumResult:
        row = make_checksum_row(row_count, **overrides)
        return ChecksumResult(row_count=row["row_count"], values=row)

    return factory


@pytest.fixture
def make_client(columns: list[Column], make_checksum_row) -> Callable[..., MockExecutionClient]:
    """
    Factory for mock clients.

    Control and test return identical checksum rows unless overridden.
    """

    def factory(
        control_rows: Optional[list[dict[str, Any]]] = None,
        test_rows: Optional[list[dict[str, Any]]] = None,
        test_columns: Optional[list[Column]] = None,
        **kwargs: Any,
    ) -> MockExecutionClient:
        return MockExecutionClient(
            columns={
                ClusterRole.CONTROL: columns,
                ClusterRole.TEST: test_columns if test_columns is not None else columns,
            },
            checksums={
                ClusterRole.CONTROL: control_rows or [make_checksum_row()],
                ClusterRole.TEST: test_rows or [make_checksum_row()],
            },
            **kwargs,
        )

    return factory


@pytest.fixture
def make_controller(
    config: VerifierConfig,
    source_query: SourceQuery,
) -> Callable[..., VerificationController]:
    """Factory wiring a controller with default collaborators around a client."""

    def factory(
        client: MockExecutionClient,
        query: Optional[SourceQuery] = None,
        resolvers: Optional[list[FailureResolver]] = None,
        settings: Optional[VerifierConfig] = None,
    ) -> VerificationController:
        cfg = settings or config
        manager = VerificationManager.create(cfg, TableMaterializingRewriter(cfg), client, resolvers)
        return manager.controller_factory(query or source_query)

    return factory
