"""
Checksum Validator
==================

Generates one checksum query per materialized result and compares the
control and test checksum rows column by column.
"""

from query_verifier.checksum.kinds import checksum_kind
from query_verifier.checksum.strategies import (
    COMPARATORS,
    GENERATORS,
    aggregate_alias,
    quote_identifier,
)
from query_verifier.config import VerifierConfig
from query_verifier.errors import SchemaMismatchError
from query_verifier.models import (
    ChecksumResult,
    Column,
    ColumnMismatch,
    MatchResult,
    MatchVerdict,
)


def quote_table_name(table_name: str) -> str:
    return ".".join(quote_identifier(part) for part in table_name.split("."))


class ChecksumValidator:
    """Column-type-aware checksum generation and matching."""

    def __init__(self, config: VerifierConfig | None = None) -> None:
        self.config = config or VerifierConfig()

    def generate_checksum_query(self, table_name: str, columns: list[Column]) -> str:
        """
        Build a single-pass aggregate query over a materialized table.

        Args:
            table_name: Possibly dotted name of the materialized table
            columns: Ordered result columns

        Returns:
            SQL text selecting one row of per-column aggregates
        """
        items = ['count(*) AS "row_count"']
        for column in columns:
            ref = quote_identifier(column.name)
            for suffix, expression in GENERATORS[checksum_kind(column)](ref, column):
                items.append(f"{expression} AS {quote_identifier(aggregate_alias(column, suffix))}")

        select_list = ",\n  ".join(items)
        return f"SELECT\n  {select_list}\nFROM {quote_table_name(table_name)}"

    def match_checksums(
        self,
        columns: list[Column],
        control: ChecksumResult,
        test: ChecksumResult,
    ) -> MatchResult:
        """
        Compare two checksum rows over the same columns.

        Every column is evaluated, so a MISMATCH lists all offending aggregates.
        """
        mismatches: list[ColumnMismatch] = []
        if control.row_count != test.row_count:
            mismatches.append(
                ColumnMismatch("row_count", "count", control.row_count, test.row_count)
            )

        missing: list[str] = []
        for column in columns:
            compare = COMPARATORS[checksum_kind(column)]
            try:
                mismatches.extend(compare(column, control, test, self.config))
            except KeyError as e:
                missing.append(str(e.args[0]))

        if missing:
            return MatchResult(
                verdict=MatchVerdict.ERROR,
                control_row_count=control.row_count,
                test_row_count=test.row_count,
                mismatches=tuple(mismatches),
                message=f"Checksum row is missing aggregates: {', '.join(missing)}",
            )

        if mismatches:
            columns_text = ", ".join(dict.fromkeys(m.column for m in mismatches))
            return MatchResult(
                verdict=MatchVerdict.MISMATCH,
                control_row_count=control.row_count,
                test_row_count=test.row_count,
                mismatches=tuple(mismatches),
                message=f"Checksum mismatch on: {columns_text}",
            )

        return MatchResult(
            verdict=MatchVerdict.MATCH,
            control_row_count=control.row_count,
            test_row_count=test.row_count,
            message="Control and test checksums match",
        )


def ensure_same_columns(control_columns: list[Column], test_columns: list[Column]) -> None:
    """Raise SchemaMismatchError unless names and order agree."""
    control_names = [c.name for c in control_columns]
    test_names = [c.name for c in test_columns]
    if control_names != test_names:
        raise SchemaMismatchError(control_names, test_names)
