"""
Comparison Registry

Holds the current comparison list of one reconciliation document.

- Full rebuild via load()
- Atomic whole-comparison replacement via replace()
- Statistics, status lookups and read-only filtered views

The registry is not thread-safe. Callers serialize access to an instance.
"""

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple
import logging

from ledger_recon.errors import RegistryConsistencyError
from ledger_recon.models import Comparison, ComparisonStatus, MatchConfidence
from ledger_recon.status import DEFAULT_MISMATCH_TOLERANCE, resolve_status

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationStatistics:
    """Aggregate figures over a comparison set."""
    total: int = 0
    by_status: Dict[ComparisonStatus, int] = field(default_factory=dict)
    by_confidence: Dict[MatchConfidence, int] = field(default_factory=dict)
    pending_confirmation: int = 0
    total_processor_amount: Decimal = Decimal("0")
    total_billing_amount: Decimal = Decimal("0")
    total_discrepancy: Decimal = Decimal("0")

    def count(self, status: ComparisonStatus) -> int:
        return self.by_status.get(status, 0)

    def confidence_count(self, confidence: MatchConfidence) -> int:
        return self.by_confidence.get(confidence, 0)

    @property
    def match_rate(self) -> float:
        """Share of MATCH comparisons in percent."""
        if self.total == 0:
            return 0.0
        return self.count(ComparisonStatus.MATCH) / self.total * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_status": {status.value: self.count(status) for status in ComparisonStatus},
            "by_confidence": {c.name: self.confidence_count(c) for c in MatchConfidence},
            "pending_confirmation": self.pending_confirmation,
            "total_processor_amount": str(self.total_processor_amount),
            "total_billing_amount": str(self.total_billing_amount),
            "total_discrepancy": str(self.total_discrepancy),
            "match_rate": round(self.match_rate, 1)
        }


class ComparisonRegistry:
    """
    Registry of the current comparisons.

    Invariant: no processor id and no invoice number is referenced by more
    than one comparison.
    """

    def __init__(
        self,
        comparisons: Optional[Iterable[Comparison]] = None,
        amount_mismatch_tolerance: Decimal = DEFAULT_MISMATCH_TOLERANCE
    ):
        self.amount_mismatch_tolerance = amount_mismatch_tolerance
        self._comparisons: List[Comparison] = []
        if comparisons is not None:
            self.load(comparisons)

    @classmethod
    def from_settings(cls, settings, comparisons: Optional[Iterable[Comparison]] = None) -> "ComparisonRegistry":
        return cls(comparisons, amount_mismatch_tolerance=settings.AMOUNT_MISMATCH_TOLERANCE)

    # ==================== MUTATION ====================

    def load(self, comparisons: Iterable[Comparison]):
        """Replace the whole comparison set (full rebuild)."""
        new_comparisons = list(comparisons)
        self._check_unique_records(new_comparisons)
        self._comparisons = new_comparisons
        logger.debug(f"Registry loaded with {len(new_comparisons)} comparisons")

    def replace(self, removed: Iterable[Comparison], added: Iterable[Comparison]):
        """
        Atomically remove comparisons and append their replacements.

        Raises:
            RegistryConsistencyError: a removed comparison is not held by the
                registry, or the result would reference a record twice.
                The registry is left unchanged.
        """
        removed = list(removed)
        added = list(added)

        remaining = list(self._comparisons)
        for comparison in removed:
            try:
                remaining.remove(comparison)
            except ValueError:
                raise RegistryConsistencyError(
                    f"Comparison for {comparison.identity_key!r} is no longer present in the registry"
                )

        updated = remaining + added
        self._check_unique_records(updated)
        self._comparisons = updated

        logger.debug(f"Registry replaced {len(removed)} comparisons with {len(added)}")

    @staticmethod
    def _check_unique_records(comparisons: List[Comparison]):
        processor_ids = set()
        invoice_numbers = set()

        for comparison in comparisons:
            if comparison.processor is not None:
                record_id = comparison.processor.record_id
                if record_id in processor_ids:
                    raise RegistryConsistencyError(f"Processor record {record_id!r} referenced twice")
                processor_ids.add(record_id)

            if comparison.billing is not None:
                record_id = comparison.billing.record_id
                if record_id in invoice_numbers:
                    raise RegistryConsistencyError(f"Invoice {record_id!r} referenced twice")
                invoice_numbers.add(record_id)

    # ==================== READ ====================

    @property
    def comparisons(self) -> Tuple[Comparison, ...]:
        """Read-only snapshot of the current comparisons."""
        return tuple(self._comparisons)

    def __len__(self) -> int:
        return len(self._comparisons)

    def __iter__(self) -> Iterator[Comparison]:
        return iter(tuple(self._comparisons))

    def __contains__(self, comparison: object) -> bool:
        return comparison in self._comparisons

    def status_of(self, comparison: Comparison) -> ComparisonStatus:
        return resolve_status(comparison, self.amount_mismatch_tolerance)

    def filter(self, predicate: Callable[[Comparison], bool]) -> List[Comparison]:
        """Pure read-side view; never mutates the registry."""
        return [c for c in self._comparisons if predicate(c)]

    def apply_filter(self, options) -> List[Comparison]:
        """Filter with a ComparisonFilter, using this registry's status rules."""
        return self.filter(lambda c: options.matches(c, self.status_of(c)))

    def find_by_processor_id(self, processor_id: str) -> Optional[Comparison]:
        for comparison in self._comparisons:
            if comparison.processor is not None and comparison.processor.record_id == processor_id:
                return comparison
        return None

    def find_by_invoice_number(self, invoice_number: str) -> Optional[Comparison]:
        for comparison in self._comparisons:
            if comparison.billing is not None and comparison.billing.record_id == invoice_number:
                return comparison
        return None

    def identity_keys(self) -> List[str]:
        """Distinct identity keys, sorted."""
        return sorted({c.identity_key for c in self._comparisons})

    def export_rows(self) -> List[Dict[str, Any]]:
        return [c.to_dict(self.status_of(c)) for c in self._comparisons]

    # ==================== STATISTICS ====================

    def statistics(self) -> ReconciliationStatistics:
        """Compute counts and totals over the current comparisons."""
        return compute_statistics(self._comparisons, self.amount_mismatch_tolerance)


def compute_statistics(
    comparisons: List[Comparison],
    amount_mismatch_tolerance: Decimal = DEFAULT_MISMATCH_TOLERANCE
) -> ReconciliationStatistics:
    """Counts by status and confidence, pending confirmations and ledger totals."""
    status_counts = Counter(resolve_status(c, amount_mismatch_tolerance) for c in comparisons)
    confidence_counts = Counter(c.confidence for c in comparisons if c.confidence is not None)

    total_processor = sum(
        (c.processor.net_amount for c in comparisons if c.processor is not None),
        Decimal("0")
    )
    total_billing = sum(
        (c.billing.net_amount for c in comparisons if c.billing is not None),
        Decimal("0")
    )

    return ReconciliationStatistics(
        total=len(comparisons),
        by_status=dict(status_counts),
        by_confidence=dict(confidence_counts),
        pending_confirmation=sum(1 for c in comparisons if c.requires_confirmation),
        total_processor_amount=total_processor,
        total_billing_amount=total_billing,
        total_discrepancy=abs(total_processor - total_billing)
    )
