"""
Checksum Kinds
==============

Tagged variant selecting the checksum strategy for a column.
"""

import re
from enum import Enum

from query_verifier.models import Column, ColumnCategory


class ChecksumKind(str, Enum):
    """Checksum strategy for a column."""

    NUMERIC = "numeric"
    FLOATING = "floating"
    HASH = "hash"
    BOOLEAN = "boolean"


_KIND_BY_CATEGORY = {
    ColumnCategory.NUMERIC: ChecksumKind.NUMERIC,
    ColumnCategory.FLOATING_POINT: ChecksumKind.FLOATING,
    ColumnCategory.BOOLEAN: ChecksumKind.BOOLEAN,
    ColumnCategory.STRING: ChecksumKind.HASH,
    ColumnCategory.TIMESTAMP: ChecksumKind.HASH,
    ColumnCategory.COMPLEX: ChecksumKind.HASH,
    ColumnCategory.OTHER: ChecksumKind.HASH,
}


def checksum_kind(column: Column) -> ChecksumKind:
    return _KIND_BY_CATEGORY[column.category]


def has_cardinality(column: Column) -> bool:
    """Arrays and maps also checksum their total element count."""
    return bool(re.match(r"^(array|map)\s*\(", column.type_name.strip().lower()))


def has_floating_elements(column: Column) -> bool:
    """Whether a complex column nests floating-point values."""
    if column.category != ColumnCategory.COMPLEX:
        return False
    return bool(re.search(r"\b(real|double|float)\b", column.type_name.lower()))
