"""
Tiered Matching Rules

Implements the three automatic matching layers run inside one identity bucket.

Layers (each only sees records left over by the previous one):
- HIGH: identity key + amount within tolerance + date within window
- MEDIUM: derived name + amount within tolerance + date within window
- LOW: amount within tolerance + date within window

Selection:
- Processor records are visited in input order; the first one wins
- Among eligible invoices the one closest in date is taken
- Equal date distance resolves to the invoice that came first

Matching is greedy. A pairing made earlier is never revisited to find a
better global assignment.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from ledger_recon.identity import derive_name
from ledger_recon.models import (
    BillingTransaction,
    Comparison,
    MatchConfidence,
    MatchedPair,
    OnlyBilling,
    OnlyProcessor,
    ProcessorTransaction,
)

CandidateFilter = Callable[[BillingTransaction], bool]


@dataclass
class LayerOutcome:
    """
    Result of one matching layer.
    """
    confidence: MatchConfidence
    pairs: List[MatchedPair] = field(default_factory=list)
    remaining_processor: List[ProcessorTransaction] = field(default_factory=list)
    remaining_billing: List[BillingTransaction] = field(default_factory=list)


class TieredMatchingRules:
    """
    Matching rules engine for processor charges against invoices.

    Tolerances are fixed when the rules object is built, so a single run
    always uses one consistent set.
    """

    # Defaults
    AMOUNT_TOLERANCE = Decimal("0.01")
    DATE_WINDOW = timedelta(days=7)

    def __init__(
        self,
        amount_tolerance: Optional[Decimal] = None,
        date_window: Optional[timedelta] = None
    ):
        self.amount_tolerance = self.AMOUNT_TOLERANCE if amount_tolerance is None else amount_tolerance
        self.date_window = self.DATE_WINDOW if date_window is None else date_window

    @classmethod
    def from_settings(cls, settings) -> "TieredMatchingRules":
        return cls(
            amount_tolerance=settings.AMOUNT_TOLERANCE,
            date_window=settings.date_window
        )

    # ==================== BUCKET ====================

    def match_bucket(
        self,
        processor_records: List[ProcessorTransaction],
        billing_records: List[BillingTransaction]
    ) -> List[Comparison]:
        """
        Run all layers over one identity bucket.

        Returns:
            HIGH, MEDIUM and LOW pairs in that order, then the unmatched
            processor charges, then the unmatched invoices
        """
        high = self.match_high(processor_records, billing_records)
        medium = self.match_medium(high.remaining_processor, high.remaining_billing)
        low = self.match_low(medium.remaining_processor, medium.remaining_billing)

        comparisons: List[Comparison] = []
        comparisons.extend(high.pairs)
        comparisons.extend(medium.pairs)
        comparisons.extend(low.pairs)
        comparisons.extend(OnlyProcessor(p) for p in low.remaining_processor)
        comparisons.extend(OnlyBilling(b) for b in low.remaining_billing)

        return comparisons

    # ==================== LAYERS ====================

    def match_high(
        self,
        processor_records: List[ProcessorTransaction],
        billing_pool: List[BillingTransaction]
    ) -> LayerOutcome:
        """
        Layer HIGH: identity key + amount.

        Callers pass records from a single identity bucket, so the identity
        key is already known to be equal.
        """
        return self._run_layer(
            MatchConfidence.HIGH,
            processor_records,
            billing_pool,
            lambda processor: lambda billing: True
        )

    def match_medium(
        self,
        processor_records: List[ProcessorTransaction],
        billing_pool: List[BillingTransaction]
    ) -> LayerOutcome:
        """Layer MEDIUM: name derived from the identity + amount."""
        billing_names = {id(b): derive_name(b.identity) for b in billing_pool}

        def name_filter(processor: ProcessorTransaction) -> Optional[CandidateFilter]:
            processor_name = derive_name(processor.identity)
            if not processor_name:
                return None
            return lambda billing: billing_names[id(billing)] == processor_name

        return self._run_layer(
            MatchConfidence.MEDIUM,
            processor_records,
            billing_pool,
            name_filter
        )

    def match_low(
        self,
        processor_records: List[ProcessorTransaction],
        billing_pool: List[BillingTransaction]
    ) -> LayerOutcome:
        """Layer LOW: amount only."""
        return self._run_layer(
            MatchConfidence.LOW,
            processor_records,
            billing_pool,
            lambda processor: lambda billing: True
        )

    def _run_layer(
        self,
        confidence: MatchConfidence,
        processor_records: List[ProcessorTransaction],
        billing_pool: List[BillingTransaction],
        filter_factory: Callable[[ProcessorTransaction], Optional[CandidateFilter]]
    ) -> LayerOutcome:
        outcome = LayerOutcome(confidence=confidence)
        available = list(billing_pool)

        for processor in processor_records:
            candidate_filter = filter_factory(processor)
            index = None
            if candidate_filter is not None:
                index = self.find_closest_candidate(processor, available, candidate_filter)

            if index is None:
                outcome.remaining_processor.append(processor)
                continue

            billing = available.pop(index)
            outcome.pairs.append(MatchedPair(processor, billing, confidence))

        outcome.remaining_billing = available
        return outcome

    # ==================== CANDIDATE SELECTION ====================

    def find_closest_candidate(
        self,
        processor: ProcessorTransaction,
        candidates: List[BillingTransaction],
        candidate_filter: Optional[CandidateFilter] = None
    ) -> Optional[int]:
        """
        Find the eligible invoice closest in date to a processor charge.

        Returns:
            Index into candidates, or None when nothing qualifies
        """
        best: Optional[Tuple[timedelta, int]] = None

        for index, billing in enumerate(candidates):
            if not self.amounts_match(processor.net_amount, billing.net_amount):
                continue
            if candidate_filter is not None and not candidate_filter(billing):
                continue

            distance = self.date_distance(processor.created_at, billing.document_date)
            if distance > self.date_window:
                continue

            # Strict comparison keeps the earliest candidate on equal distance
            if best is None or distance < best[0]:
                best = (distance, index)

        return best[1] if best is not None else None

    def amounts_match(self, a: Decimal, b: Decimal) -> bool:
        """Check if two amounts match within tolerance."""
        return abs(a - b) <= self.amount_tolerance

    @staticmethod
    def date_distance(a: datetime, b: datetime) -> timedelta:
        return abs(a - b)
