"""
Manual Override Service

Operator edits of the automatic matching output:
- Match a selection of comparisons by hand
- Split matched pairs back into one-sided comparisons
- Confirm or reject an automatic pair

Every operation validates the whole selection before touching the registry
and applies its result with a single registry.replace() call. A refused
operation leaves the registry exactly as it was.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from ledger_recon.config import Settings, get_settings
from ledger_recon.errors import (
    OverrideError,
    OverrideErrorCode,
    SelectionValidationError,
)
from ledger_recon.models import (
    BillingTransaction,
    Comparison,
    ComparisonStatus,
    MatchConfidence,
    MatchedPair,
    OnlyBilling,
    OnlyProcessor,
    ProcessorTransaction,
)
from ledger_recon.registry import ComparisonRegistry
from ledger_recon.services.audit import ReconciliationAuditEvent, log_reconciliation_event

logger = logging.getLogger(__name__)


class SelectionWarningCode:
    """Non-fatal findings on a manual match selection."""
    UNEQUAL_COUNTS = "UNEQUAL_COUNTS"
    REMATCHING_PAIRED = "REMATCHING_PAIRED"


@dataclass
class SelectionWarning:
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass
class OverrideResult:
    """
    Result of a manual override operation.
    """
    success: bool
    error_code: Optional[OverrideErrorCode] = None
    error_message: str = ""
    warnings: List[SelectionWarning] = field(default_factory=list)
    added: List[Comparison] = field(default_factory=list)
    removed: List[Comparison] = field(default_factory=list)
    matched_count: int = 0
    unmatched_count: int = 0

    @classmethod
    def failure(cls, error: OverrideError) -> "OverrideResult":
        return cls(success=False, error_code=error.code, error_message=error.message)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def raise_for_error(self):
        """Raise the typed error carried by a failed result."""
        if not self.success:
            raise OverrideError(self.error_code, self.error_message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error_code.value if self.error_code else None,
            "message": self.error_message,
            "warnings": [w.to_dict() for w in self.warnings],
            "added_count": len(self.added),
            "removed_count": len(self.removed),
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count
        }


class ManualOverrideService:
    """
    Applies operator match/unmatch/confirm/reject edits to a registry.

    The registry must not be mutated concurrently while an operation runs.
    """

    def __init__(self, registry: ComparisonRegistry, settings: Optional[Settings] = None):
        self.registry = registry
        self.settings = settings or get_settings()

    # ==================== MATCH ====================

    def match_selected(self, selection: Sequence[Comparison], actor: str = "operator") -> OverrideResult:
        """
        Pair up every record referenced by the selection.

        Processor charges and invoices are each sorted by date and paired
        index-wise; whatever is left over becomes one-sided again.

        Returns:
            OverrideResult with the new comparisons and any warnings, or the
            error code when the selection is refused
        """
        selection = list(selection)

        try:
            warnings = self.validate_match_selection(selection)
        except SelectionValidationError as e:
            return self._refused("match_selected", e, actor)

        processor_records = sorted(
            (c.processor for c in selection if c.processor is not None),
            key=lambda p: p.created_at
        )
        billing_records = sorted(
            (c.billing for c in selection if c.billing is not None),
            key=lambda b: b.document_date
        )

        new_comparisons = self.create_manual_matches(processor_records, billing_records)

        try:
            self.registry.replace(selection, new_comparisons)
        except OverrideError as e:
            return self._refused("match_selected", e, actor)

        matched_count = sum(1 for c in new_comparisons if c.is_pair)

        log_reconciliation_event(
            ReconciliationAuditEvent.MANUAL_MATCH_APPLIED,
            {
                "selected": len(selection),
                "matched": matched_count,
                "processor_ids": [p.record_id for p in processor_records],
                "invoice_numbers": [b.record_id for b in billing_records],
                "warnings": [w.code for w in warnings]
            },
            actor=actor
        )

        return OverrideResult(
            success=True,
            warnings=warnings,
            added=new_comparisons,
            removed=selection,
            matched_count=matched_count
        )

    def validate_match_selection(self, selection: List[Comparison]) -> List[SelectionWarning]:
        """
        Validate a manual match selection.

        Raises:
            SelectionValidationError: the selection cannot be matched

        Returns:
            Non-fatal warnings
        """
        if len(selection) < self.settings.MIN_SELECTION:
            raise SelectionValidationError(
                OverrideErrorCode.SELECTION_TOO_SMALL,
                f"At least {self.settings.MIN_SELECTION} comparisons must be selected."
            )

        if len(selection) > self.settings.MAX_SELECTION:
            raise SelectionValidationError(
                OverrideErrorCode.SELECTION_TOO_LARGE,
                f"At most {self.settings.MAX_SELECTION} comparisons can be matched at once."
            )

        processor_ids = [c.processor.record_id for c in selection if c.processor is not None]
        invoice_numbers = [c.billing.record_id for c in selection if c.billing is not None]

        if not processor_ids:
            raise SelectionValidationError(
                OverrideErrorCode.NO_PROCESSOR_RECORD,
                "At least one processor transaction must be selected."
            )

        if not invoice_numbers:
            raise SelectionValidationError(
                OverrideErrorCode.NO_BILLING_RECORD,
                "At least one billing transaction must be selected."
            )

        if len(set(processor_ids)) != len(processor_ids) or len(set(invoice_numbers)) != len(invoice_numbers):
            raise SelectionValidationError(
                OverrideErrorCode.DUPLICATE_RECORD_IN_SELECTION,
                "The selection references the same transaction more than once."
            )

        warnings = []

        if len(processor_ids) != len(invoice_numbers):
            warnings.append(SelectionWarning(
                SelectionWarningCode.UNEQUAL_COUNTS,
                f"Unequal counts: {len(processor_ids)} processor and {len(invoice_numbers)} billing "
                f"transactions. Some transactions will stay unmatched."
            ))

        already_paired = [c for c in selection if isinstance(c, MatchedPair)]
        if already_paired:
            warnings.append(SelectionWarning(
                SelectionWarningCode.REMATCHING_PAIRED,
                f"{len(already_paired)} already matched comparisons will be re-linked."
            ))

        return warnings

    @staticmethod
    def create_manual_matches(
        processor_records: List[ProcessorTransaction],
        billing_records: List[BillingTransaction]
    ) -> List[Comparison]:
        """Pair date-sorted records index-wise; leftovers become one-sided."""
        pair_count = min(len(processor_records), len(billing_records))

        comparisons: List[Comparison] = [
            MatchedPair(processor_records[i], billing_records[i], MatchConfidence.MANUAL)
            for i in range(pair_count)
        ]
        comparisons.extend(OnlyProcessor(p) for p in processor_records[pair_count:])
        comparisons.extend(OnlyBilling(b) for b in billing_records[pair_count:])

        return comparisons

    # ==================== UNMATCH ====================

    def unmatch_selected(self, selection: Sequence[Comparison], actor: str = "operator") -> OverrideResult:
        """
        Split matched pairs into one processor-only and one billing-only comparison each.

        Only pairs whose current status is MATCH are eligible. An empty
        selection succeeds without touching the registry.
        """
        selection = list(selection)

        if not selection:
            return OverrideResult(success=True)

        try:
            ineligible = [
                c for c in selection
                if not isinstance(c, MatchedPair) or self.registry.status_of(c) != ComparisonStatus.MATCH
            ]
            if ineligible:
                raise SelectionValidationError(
                    OverrideErrorCode.NOT_FULLY_MATCHED_FOR_UNMATCH,
                    "Only fully matched comparisons can be unmatched."
                )
        except SelectionValidationError as e:
            return self._refused("unmatch_selected", e, actor)

        new_comparisons: List[Comparison] = []
        for pair in selection:
            new_comparisons.append(OnlyProcessor(pair.processor))
            new_comparisons.append(OnlyBilling(pair.billing))

        try:
            self.registry.replace(selection, new_comparisons)
        except OverrideError as e:
            return self._refused("unmatch_selected", e, actor)

        log_reconciliation_event(
            ReconciliationAuditEvent.MANUAL_UNMATCH_APPLIED,
            {
                "unmatched": len(selection),
                "processor_ids": [c.processor.record_id for c in selection],
                "invoice_numbers": [c.billing.record_id for c in selection]
            },
            actor=actor
        )

        return OverrideResult(
            success=True,
            added=new_comparisons,
            removed=selection,
            unmatched_count=len(selection)
        )

    # ==================== CONFIRM / REJECT ====================

    def confirm_match(self, comparison: Comparison, actor: str = "operator") -> OverrideResult:
        """Mark an automatic pair as confirmed by the operator."""
        return self._set_review_flags(
            comparison,
            confirmed=True,
            event_type=ReconciliationAuditEvent.MATCH_CONFIRMED,
            actor=actor
        )

    def reject_match(self, comparison: Comparison, actor: str = "operator") -> OverrideResult:
        """Mark a pair as rejected by the operator. The records stay paired."""
        return self._set_review_flags(
            comparison,
            confirmed=False,
            event_type=ReconciliationAuditEvent.MATCH_REJECTED,
            actor=actor
        )

    def _set_review_flags(
        self,
        comparison: Comparison,
        confirmed: bool,
        event_type: str,
        actor: str
    ) -> OverrideResult:
        operation = "confirm_match" if confirmed else "reject_match"

        if not isinstance(comparison, MatchedPair):
            return self._refused(operation, SelectionValidationError(
                OverrideErrorCode.NOT_A_MATCHED_PAIR,
                "Only matched comparisons can be confirmed or rejected."
            ), actor)

        updated = replace(comparison, manually_confirmed=confirmed, manually_rejected=not confirmed)

        try:
            self.registry.replace([comparison], [updated])
        except OverrideError as e:
            return self._refused(operation, e, actor)

        log_reconciliation_event(
            event_type,
            {
                "processor_id": comparison.processor.record_id,
                "invoice_number": comparison.billing.record_id,
                "confidence": comparison.confidence.name
            },
            actor=actor
        )

        return OverrideResult(success=True, added=[updated], removed=[comparison])

    # ==================== HELPERS ====================

    @staticmethod
    def _refused(operation: str, error: OverrideError, actor: str) -> OverrideResult:
        log_reconciliation_event(
            ReconciliationAuditEvent.OVERRIDE_REJECTED,
            {
                "operation": operation,
                "error": error.code.value,
                "message": error.message
            },
            actor=actor,
            level=logging.WARNING
        )
        return OverrideResult.failure(error)
