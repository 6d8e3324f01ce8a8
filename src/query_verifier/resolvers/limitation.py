"""
Verifier Limitation Resolver
============================

Mismatches the checksum scheme cannot judge reliably.
"""

from typing import Optional

from query_verifier.checksum.kinds import has_floating_elements
from query_verifier.models import (
    Column,
    Failure,
    FailureKind,
    Resolution,
    VerificationContext,
)
from query_verifier.resolvers.base import FailureResolver


class StructuredFloatColumnResolver(FailureResolver):
    """
    Resolves mismatches confined to arrays/maps/rows holding floats.

    Complex columns are hashed as a whole, so floating-point drift inside
    them is never tolerance-matched.
    """

    @property
    def name(self) -> str:
        return "StructuredFloatColumnResolver"

    def resolve(self, failure: Failure, context: VerificationContext) -> Optional[Resolution]:
        if failure.kind != FailureKind.CHECKSUM_MISMATCH or failure.match_result is None:
            return None
        match_result = failure.match_result
        if match_result.row_count_mismatch:
            return None

        columns: dict[str, Column] = context.columns
        mismatched = match_result.mismatched_columns
        if not mismatched:
            return None
        for name in mismatched:
            column = columns.get(name)
            if column is None or not has_floating_elements(column):
                return None

        return self._resolution(
            explanation="Mismatch limited to structured columns with floating-point elements",
            message=f"Columns {', '.join(mismatched)} are hashed without float tolerance",
        )
