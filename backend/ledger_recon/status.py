"""
Status resolution for comparisons.

Status is never stored: it is a pure function of the comparison's current
values and the configured mismatch tolerance.
"""

from decimal import Decimal

from ledger_recon.models import Comparison, ComparisonStatus, MatchedPair

DEFAULT_MISMATCH_TOLERANCE = Decimal("0.01")


def resolve_status(
    comparison: Comparison,
    amount_mismatch_tolerance: Decimal = DEFAULT_MISMATCH_TOLERANCE
) -> ComparisonStatus:
    """
    Compute the display status of a comparison.

    Precedence:
    1. One-sided comparisons report the side that is present
    2. A manually rejected pair is MANUALLY_REJECTED, even if amounts differ
    3. A pair whose amounts differ by more than the tolerance is AMOUNT_MISMATCH
    4. Otherwise MATCH
    """
    if not isinstance(comparison, MatchedPair):
        if comparison.has_processor:
            return ComparisonStatus.ONLY_PROCESSOR
        return ComparisonStatus.ONLY_BILLING

    if comparison.manually_rejected:
        return ComparisonStatus.MANUALLY_REJECTED

    if abs(comparison.amount_difference) > amount_mismatch_tolerance:
        return ComparisonStatus.AMOUNT_MISMATCH

    return ComparisonStatus.MATCH
