"""
Checksum Strategies
===================

Pure per-kind functions: which aggregates to compute for a column, and how
to compare them.

All aggregates are order-independent, so two materializations of the same
row multiset always produce identical checksum rows.
"""

from typing import Any, Callable

from query_verifier.checksum.kinds import ChecksumKind, has_cardinality
from query_verifier.config import VerifierConfig
from query_verifier.models import ChecksumResult, Column, ColumnMismatch

Aggregate = tuple[str, str]  # (alias suffix, SQL expression)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def aggregate_alias(column: Column, suffix: str) -> str:
    return f"{column.name}${suffix}"


def _numeric_aggregates(ref: str, column: Column) -> list[Aggregate]:
    return [
        ("count", f"count({ref})"),
        ("sum", f"sum({ref})"),
        ("checksum", f"checksum({ref})"),
    ]


def _floating_aggregates(ref: str, column: Column) -> list[Aggregate]:
    return [
        ("count", f"count({ref})"),
        ("sum", f"sum(CASE WHEN is_finite({ref}) THEN {ref} END)"),
        ("nan_count", f"count_if(is_nan({ref}))"),
        ("pos_inf_count", f"count_if({ref} = infinity())"),
        ("neg_inf_count", f"count_if({ref} = -infinity())"),
    ]


def _hash_aggregates(ref: str, column: Column) -> list[Aggregate]:
    aggregates = [
        ("count", f"count({ref})"),
        ("checksum", f"checksum({ref})"),
    ]
    if has_cardinality(column):
        aggregates.append(("cardinality_sum", f"sum(cardinality({ref}))"))
    return aggregates


def _boolean_aggregates(ref: str, column: Column) -> list[Aggregate]:
    return [
        ("count", f"count({ref})"),
        ("true_count", f"count_if({ref})"),
        ("false_count", f"count_if(NOT {ref})"),
    ]


def floats_match(control: Any, test: Any, config: VerifierConfig) -> bool:
    """
    Tolerance-aware comparison of two floating-point sums.

    A missing sum (no finite values) compares as 0.0.
    """
    c = 0.0 if control is None else float(control)
    t = 0.0 if test is None else float(test)
    if abs(c) < config.absolute_error_margin and abs(t) < config.absolute_error_margin:
        return True
    mean = (abs(c) + abs(t)) / 2
    if mean == 0:
        return True
    return abs(c - t) / mean < config.relative_error_margin


def _exact_mismatches(
    column: Column,
    suffixes: list[str],
    control: ChecksumResult,
    test: ChecksumResult,
) -> list[ColumnMismatch]:
    mismatches = []
    for suffix in suffixes:
        alias = aggregate_alias(column, suffix)
        control_value = control.values[alias]
        test_value = test.values[alias]
        if control_value != test_value:
            mismatches.append(ColumnMismatch(column.name, suffix, control_value, test_value))
    return mismatches


def _suffixes(kind: ChecksumKind, column: Column) -> list[str]:
    return [suffix for suffix, _ in GENERATORS[kind](quote_identifier(column.name), column)]


def _compare_exact(
    kind: ChecksumKind,
) -> Callable[[Column, ChecksumResult, ChecksumResult, VerifierConfig], list[ColumnMismatch]]:
    def compare(column, control, test, config):
        return _exact_mismatches(column, _suffixes(kind, column), control, test)

    return compare


def _compare_floating(
    column: Column,
    control: ChecksumResult,
    test: ChecksumResult,
    config: VerifierConfig,
) -> list[ColumnMismatch]:
    exact = [s for s in _suffixes(ChecksumKind.FLOATING, column) if s != "sum"]
    mismatches = _exact_mismatches(column, exact, control, test)

    alias = aggregate_alias(column, "sum")
    control_sum = control.values[alias]
    test_sum = test.values[alias]
    if not floats_match(control_sum, test_sum, config):
        mismatches.append(ColumnMismatch(column.name, "sum", control_sum, test_sum))
    return mismatches


GENERATORS: dict[ChecksumKind, Callable[[str, Column], list[Aggregate]]] = {
    ChecksumKind.NUMERIC: _numeric_aggregates,
    ChecksumKind.FLOATING: _floating_aggregates,
    ChecksumKind.HASH: _hash_aggregates,
    ChecksumKind.BOOLEAN: _boolean_aggregates,
}

COMPARATORS = {
    ChecksumKind.NUMERIC: _compare_exact(ChecksumKind.NUMERIC),
    ChecksumKind.FLOATING: _compare_floating,
    ChecksumKind.HASH: _compare_exact(ChecksumKind.HASH),
    ChecksumKind.BOOLEAN: _compare_exact(ChecksumKind.BOOLEAN),
}
