"""
Comparison filter options.

All active criteria are AND-combined. A filter without criteria matches
every comparison. Month and year filter independently of each other; the
explicit date range only applies when neither is set.
"""

import calendar
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ledger_recon.models import Comparison, ComparisonStatus, MatchConfidence, MatchedPair


class StatusFilterPreset(str, Enum):
    """Named status filters offered to operators"""
    ALL = "all"
    ONLY_MATCHES = "only_matches"
    ONLY_PROBLEMS = "only_problems"
    ONLY_PROCESSOR = "only_processor"
    ONLY_BILLING = "only_billing"
    AMOUNT_MISMATCH = "amount_mismatch"
    MANUALLY_CONFIRMED = "manually_confirmed"

    def matches(self, comparison: Comparison, status: ComparisonStatus) -> bool:
        if self is StatusFilterPreset.ALL:
            return True
        if self is StatusFilterPreset.ONLY_MATCHES:
            return status == ComparisonStatus.MATCH
        if self is StatusFilterPreset.ONLY_PROBLEMS:
            return status != ComparisonStatus.MATCH
        if self is StatusFilterPreset.ONLY_PROCESSOR:
            return status == ComparisonStatus.ONLY_PROCESSOR
        if self is StatusFilterPreset.ONLY_BILLING:
            return status == ComparisonStatus.ONLY_BILLING
        if self is StatusFilterPreset.AMOUNT_MISMATCH:
            return status == ComparisonStatus.AMOUNT_MISMATCH
        # MANUALLY_CONFIRMED
        return comparison.confidence == MatchConfidence.MANUAL or (
            isinstance(comparison, MatchedPair) and comparison.manually_confirmed
        )


class ComparisonFilter(BaseModel):
    """Filter criteria for comparison views"""
    search_text: str = ""
    customer: Optional[str] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[ComparisonStatus] = None
    preset: Optional[StatusFilterPreset] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None

    @classmethod
    def for_period(cls, year: int, month: Optional[int] = None, **kwargs) -> "ComparisonFilter":
        """Date-range filter covering a whole month, or a whole year."""
        if month is None:
            start, end = date(year, 1, 1), date(year, 12, 31)
        else:
            start = date(year, month, 1)
            end = date(year, month, calendar.monthrange(year, month)[1])
        return cls(start_date=start, end_date=end, **kwargs)

    @property
    def has_any_filter(self) -> bool:
        return bool(
            self.search_text.strip()
            or (self.customer or "").strip()
            or self.month is not None
            or self.year is not None
            or self.status is not None
            or self.preset is not None
            or self.min_amount is not None
            or self.max_amount is not None
            or self.start_date is not None
            or self.end_date is not None
        )

    def matches(self, comparison: Comparison, status: ComparisonStatus) -> bool:
        """Check a comparison (with its resolved status) against every active criterion."""
        if self.search_text.strip():
            needle = self.search_text.strip().lower()
            haystacks = (comparison.identity_key, comparison.display_name.lower(), status.value.lower())
            if not any(needle in h for h in haystacks):
                return False

        if self.customer and self.customer.strip():
            if comparison.identity_key != self.customer.strip().lower():
                return False

        transaction_day = comparison.transaction_date.date()

        if self.month is not None and transaction_day.month != self.month:
            return False

        if self.year is not None and transaction_day.year != self.year:
            return False

        if self.month is None and self.year is None:
            if self.start_date is not None and transaction_day < self.start_date:
                return False
            if self.end_date is not None and transaction_day > self.end_date:
                return False

        if self.preset is not None:
            if not self.preset.matches(comparison, status):
                return False
        elif self.status is not None and status != self.status:
            return False

        if self.min_amount is not None and abs(comparison.amount) < self.min_amount:
            return False

        if self.max_amount is not None and abs(comparison.amount) > self.max_amount:
            return False

        return True

    def describe(self) -> str:
        """Human-readable summary of active filters."""
        active: List[str] = []

        if self.search_text.strip():
            active.append(f"Search: '{self.search_text.strip()}'")
        if self.customer and self.customer.strip():
            active.append(f"Customer: {self.customer.strip()}")
        if self.month is not None:
            active.append(f"Month: {self.month:02d}")
        if self.year is not None:
            active.append(f"Year: {self.year}")
        if self.start_date is not None:
            active.append(f"From: {self.start_date.isoformat()}")
        if self.end_date is not None:
            active.append(f"To: {self.end_date.isoformat()}")
        if self.preset is not None:
            active.append(f"Preset: {self.preset.value}")
        elif self.status is not None:
            active.append(f"Status: {self.status.value}")
        if self.min_amount is not None:
            active.append(f"Min: {self.min_amount}")
        if self.max_amount is not None:
            active.append(f"Max: {self.max_amount}")

        return " | ".join(active) if active else "No filters active"
