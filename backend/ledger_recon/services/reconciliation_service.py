"""
Reconciliation Service

Core business logic for automatic matching:
- Bucketing both ledgers by normalized identity key
- Running the tiered matching layers per bucket
- Computing run statistics
- Audit logging

The service is a pure function of its inputs. Running it twice on the same
records yields the same comparisons in the same order.
"""

import time
import uuid
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from ledger_recon.config import Settings, get_settings
from ledger_recon.identity import normalize_identity
from ledger_recon.logging_config import clear_run_context, set_run_context
from ledger_recon.matching_rules.tiered_rules import TieredMatchingRules
from ledger_recon.models import (
    BillingTransaction,
    Comparison,
    ComparisonStatus,
    MatchConfidence,
    ProcessorTransaction,
)
from ledger_recon.registry import ComparisonRegistry, ReconciliationStatistics, compute_statistics
from ledger_recon.services.audit import ReconciliationAuditEvent, log_reconciliation_event

logger = logging.getLogger(__name__)

Bucket = Tuple[List[ProcessorTransaction], List[BillingTransaction]]


@dataclass
class ComparisonResult:
    """
    Result of a reconciliation run.

    errors lists input problems found during the run (duplicate record ids).
    The comparisons are still returned so the caller can inspect them.
    """
    run_id: str
    comparisons: List[Comparison]
    statistics: ReconciliationStatistics
    processing_duration: timedelta = timedelta(0)
    errors: List[str] = field(default_factory=list)

    @property
    def is_successful(self) -> bool:
        return not self.errors and len(self.comparisons) > 0

    def get_summary(self) -> str:
        stats = self.statistics
        return (
            f"Total: {stats.total}, "
            f"Matches: {stats.count(ComparisonStatus.MATCH)} ({stats.match_rate:.1f}%), "
            f"High confidence: {stats.confidence_count(MatchConfidence.HIGH)}, "
            f"Pending confirmation: {stats.pending_confirmation}, "
            f"Only processor: {stats.count(ComparisonStatus.ONLY_PROCESSOR)}, "
            f"Only billing: {stats.count(ComparisonStatus.ONLY_BILLING)}"
        )

    def to_dict(self) -> Dict:
        return {
            "run_id": self.run_id,
            "statistics": self.statistics.to_dict(),
            "processing_duration_ms": int(self.processing_duration.total_seconds() * 1000),
            "errors": self.errors,
            "comparisons_count": len(self.comparisons)
        }


class ReconciliationService:
    """
    Service for reconciling processor charges against invoices.

    Primary use case: rebuild the comparison set whenever both ledgers
    are (re)supplied, then hand it to a ComparisonRegistry.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def compare(
        self,
        processor_records: List[ProcessorTransaction],
        billing_records: List[BillingTransaction]
    ) -> ComparisonResult:
        """
        Run automatic matching over both ledgers.

        Args:
            processor_records: Pre-validated processor charges
            billing_records: Pre-validated invoices

        Returns:
            ComparisonResult with comparisons and statistics
        """
        run_id = str(uuid.uuid4())
        started = time.perf_counter()
        set_run_context(run_id)

        try:
            # Tolerances are captured once so the whole run is consistent
            rules = TieredMatchingRules.from_settings(self.settings)

            log_reconciliation_event(
                ReconciliationAuditEvent.RUN_STARTED,
                {
                    "run_id": run_id,
                    "processor_records": len(processor_records),
                    "billing_records": len(billing_records),
                    "amount_tolerance": str(rules.amount_tolerance),
                    "date_window_days": rules.date_window.days
                }
            )

            errors = self.find_duplicate_records(processor_records, billing_records)
            for error in errors:
                logger.warning(error)

            buckets = self.group_by_identity(processor_records, billing_records)

            comparisons: List[Comparison] = []
            for key, (bucket_processor, bucket_billing) in buckets.items():
                bucket_comparisons = rules.match_bucket(bucket_processor, bucket_billing)
                logger.debug(
                    f"Bucket {key!r}: {len(bucket_processor)} processor, "
                    f"{len(bucket_billing)} billing -> {len(bucket_comparisons)} comparisons"
                )
                comparisons.extend(bucket_comparisons)

            statistics = compute_statistics(comparisons, self.settings.AMOUNT_MISMATCH_TOLERANCE)

            result = ComparisonResult(
                run_id=run_id,
                comparisons=comparisons,
                statistics=statistics,
                processing_duration=timedelta(seconds=time.perf_counter() - started),
                errors=errors
            )

            log_reconciliation_event(
                ReconciliationAuditEvent.RUN_COMPLETED,
                {
                    "run_id": run_id,
                    "buckets": len(buckets),
                    "errors": len(errors),
                    "summary": result.get_summary(),
                    "duration_ms": int(result.processing_duration.total_seconds() * 1000)
                }
            )

            return result
        finally:
            clear_run_context()

    def rebuild(
        self,
        registry: ComparisonRegistry,
        processor_records: List[ProcessorTransaction],
        billing_records: List[BillingTransaction]
    ) -> ComparisonResult:
        """Recompute all comparisons from scratch and load them into a registry."""
        result = self.compare(processor_records, billing_records)
        registry.load(result.comparisons)
        return result

    @staticmethod
    def find_duplicate_records(
        processor_records: List[ProcessorTransaction],
        billing_records: List[BillingTransaction]
    ) -> List[str]:
        """
        Report record ids supplied more than once.

        Matching still runs; a registry refuses to load such a result.
        """
        errors = []

        processor_counts = Counter(p.record_id for p in processor_records)
        for record_id, count in processor_counts.items():
            if count > 1:
                errors.append(f"Processor record {record_id!r} supplied {count} times")

        billing_counts = Counter(b.record_id for b in billing_records)
        for record_id, count in billing_counts.items():
            if count > 1:
                errors.append(f"Invoice {record_id!r} supplied {count} times")

        return errors

    @staticmethod
    def group_by_identity(
        processor_records: List[ProcessorTransaction],
        billing_records: List[BillingTransaction]
    ) -> Dict[str, Bucket]:
        """
        Bucket both ledgers by normalized identity key.

        Keys first seen in the processor ledger come first; keys that only
        exist in the billing ledger follow in their own order of appearance.
        """
        buckets: Dict[str, Bucket] = {}

        for record in processor_records:
            key = normalize_identity(record.identity)
            buckets.setdefault(key, ([], []))[0].append(record)

        for record in billing_records:
            key = normalize_identity(record.identity)
            buckets.setdefault(key, ([], []))[1].append(record)

        return buckets
