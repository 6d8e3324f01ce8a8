"""
Checksum Module
===============

Order-independent, type-aware result checksums.
"""

from query_verifier.checksum.kinds import ChecksumKind, checksum_kind
from query_verifier.checksum.strategies import floats_match
from query_verifier.checksum.validator import ChecksumValidator, ensure_same_columns

__all__ = [
    "ChecksumKind",
    "checksum_kind",
    "floats_match",
    "ChecksumValidator",
    "ensure_same_columns",
]
