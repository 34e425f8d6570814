"""
Tests for the Manual Override Service

Tests:
- Manual match of a selection (pairing by date, leftovers, warnings)
- Every selection validation error code
- Unmatch of fully matched pairs
- Confirm / reject of automatic pairs
- Refused operations leave the registry untouched

Run with: pytest backend/tests/test_manual_override.py -v
"""

import logging
from datetime import datetime

import pytest

from ledger_recon.config import Settings
from ledger_recon.errors import OverrideError, OverrideErrorCode
from ledger_recon.models import (
    ComparisonStatus,
    MatchConfidence,
    MatchedPair,
    OnlyBilling,
    OnlyProcessor,
)
from ledger_recon.registry import ComparisonRegistry
from ledger_recon.services.audit import ReconciliationAuditEvent
from ledger_recon.services.manual_override_service import (
    ManualOverrideService,
    OverrideResult,
    SelectionWarningCode,
)


@pytest.fixture
def one_sided(make_processor, make_billing):
    """Two unmatched charges and one unmatched invoice for the same customer."""
    return [
        OnlyProcessor(make_processor("ch_late", created_at=datetime(2024, 1, 20))),
        OnlyProcessor(make_processor("ch_early", created_at=datetime(2024, 1, 5))),
        OnlyBilling(make_billing("R1", amount="78.00", document_date=datetime(2024, 1, 6))),
    ]


@pytest.fixture
def registry(settings, one_sided):
    return ComparisonRegistry.from_settings(settings, one_sided)


@pytest.fixture
def service(registry, settings):
    return ManualOverrideService(registry, settings)


class TestMatchSelected:

    def test_unequal_counts_pairs_earliest(self, service, registry, one_sided):
        """Two charges and one invoice: the earliest charge is paired, the other stays open."""
        result = service.match_selected(one_sided)

        assert result.success
        assert result.matched_count == 1
        assert [w.code for w in result.warnings] == [SelectionWarningCode.UNEQUAL_COUNTS]

        pair, leftover = result.added
        assert isinstance(pair, MatchedPair)
        assert pair.confidence == MatchConfidence.MANUAL
        assert pair.processor.id == "ch_early"
        assert pair.billing.invoice_number == "R1"
        assert isinstance(leftover, OnlyProcessor)
        assert leftover.processor.id == "ch_late"

        assert len(registry) == 2
        assert all(c not in registry for c in one_sided)

    def test_manual_pair_may_carry_mismatch(self, service, registry, one_sided):
        result = service.match_selected(one_sided)

        assert registry.status_of(result.added[0]) == ComparisonStatus.AMOUNT_MISMATCH
        assert not result.added[0].requires_confirmation

    def test_ignores_amount_and_identity(self, settings, make_processor, make_billing):
        selection = [
            OnlyProcessor(make_processor("ch_1", "a@x.de", "10.00", datetime(2024, 1, 1))),
            OnlyBilling(make_billing("R1", "b@y.de", "999.00", datetime(2024, 6, 1))),
        ]
        registry = ComparisonRegistry.from_settings(settings, selection)

        result = ManualOverrideService(registry, settings).match_selected(selection)

        assert result.success
        assert not result.has_warnings
        assert len(registry) == 1

    def test_rematching_pairs_warns(self, settings, make_processor, make_billing):
        first = MatchedPair(make_processor("ch_1"), make_billing("R1"), MatchConfidence.HIGH)
        second = MatchedPair(
            make_processor("ch_2", created_at=datetime(2024, 1, 1)),
            make_billing("R2", document_date=datetime(2024, 1, 20)),
            MatchConfidence.LOW
        )
        registry = ComparisonRegistry.from_settings(settings, [first, second])

        result = ManualOverrideService(registry, settings).match_selected([first, second])

        assert result.success
        assert [w.code for w in result.warnings] == [SelectionWarningCode.REMATCHING_PAIRED]
        # Re-paired by date: ch_2 (Jan 1) with R1 (Jan 12), ch_1 (Jan 10) with R2 (Jan 20)
        assert [(c.processor.id, c.billing.invoice_number) for c in result.added] == [
            ("ch_2", "R1"),
            ("ch_1", "R2"),
        ]

    def test_audit_event(self, service, one_sided, caplog):
        with caplog.at_level(logging.INFO, logger="ledger_recon.services.audit"):
            service.match_selected(one_sided, actor="jane")

        record = next(r for r in caplog.records if getattr(r, "event", None) == ReconciliationAuditEvent.MANUAL_MATCH_APPLIED)
        assert record.actor == "jane"
        assert record.details["matched"] == 1


class TestMatchValidation:
    """Each refusal reports its code and leaves the registry unchanged."""

    def _assert_refused(self, service, selection, code):
        before = service.registry.comparisons
        result = service.match_selected(selection)

        assert not result.success
        assert result.error_code == code
        assert result.error_message
        assert service.registry.comparisons == before

    def test_too_small(self, service, one_sided):
        self._assert_refused(service, one_sided[:1], OverrideErrorCode.SELECTION_TOO_SMALL)

    def test_too_large(self, one_sided, settings):
        registry = ComparisonRegistry.from_settings(settings, one_sided)
        service = ManualOverrideService(registry, Settings(MAX_SELECTION=2))

        self._assert_refused(service, one_sided, OverrideErrorCode.SELECTION_TOO_LARGE)

    def test_no_processor(self, settings, make_billing):
        selection = [OnlyBilling(make_billing("R1")), OnlyBilling(make_billing("R2"))]
        service = ManualOverrideService(ComparisonRegistry.from_settings(settings, selection), settings)

        self._assert_refused(service, selection, OverrideErrorCode.NO_PROCESSOR_RECORD)

    def test_no_billing(self, service, one_sided):
        self._assert_refused(service, one_sided[:2], OverrideErrorCode.NO_BILLING_RECORD)

    def test_duplicate_record(self, service, one_sided):
        selection = [one_sided[0], one_sided[0], one_sided[2]]
        self._assert_refused(service, selection, OverrideErrorCode.DUPLICATE_RECORD_IN_SELECTION)

    def test_stale_selection(self, service, make_processor, make_billing):
        """Comparisons no longer held by the registry fail the whole operation."""
        stale = [
            OnlyProcessor(make_processor("ch_other")),
            OnlyBilling(make_billing("R_other")),
        ]
        self._assert_refused(service, stale, OverrideErrorCode.OPERATION_FAILED)

    def test_size_checked_before_content(self, service, make_billing):
        result = service.match_selected([OnlyBilling(make_billing())])
        assert result.error_code == OverrideErrorCode.SELECTION_TOO_SMALL

    def test_refusal_is_logged(self, service, one_sided, caplog):
        with caplog.at_level(logging.WARNING, logger="ledger_recon.services.audit"):
            service.match_selected(one_sided[:1])

        record = next(r for r in caplog.records if getattr(r, "event", None) == ReconciliationAuditEvent.OVERRIDE_REJECTED)
        assert record.levelno == logging.WARNING
        assert record.details["error"] == "SELECTION_TOO_SMALL"


class TestUnmatchSelected:

    @pytest.fixture
    def matched(self, settings, make_processor, make_billing):
        pair = MatchedPair(make_processor("ch_1"), make_billing("R1"), MatchConfidence.HIGH)
        registry = ComparisonRegistry.from_settings(settings, [pair])
        return pair, registry, ManualOverrideService(registry, settings)

    def test_splits_pair(self, matched):
        pair, registry, service = matched

        result = service.unmatch_selected([pair])

        assert result.success
        assert result.unmatched_count == 1
        assert [type(c) for c in registry] == [OnlyProcessor, OnlyBilling]
        assert registry.find_by_processor_id("ch_1").billing is None
        assert registry.find_by_invoice_number("R1").processor is None

    def test_match_then_unmatch_round_trip(self, settings, make_processor, make_billing):
        """Unmatching a manual pair restores the one-sided comparisons it replaced."""
        selection = [OnlyProcessor(make_processor("ch_1")), OnlyBilling(make_billing("R1"))]
        registry = ComparisonRegistry.from_settings(settings, selection)
        service = ManualOverrideService(registry, settings)

        matched = service.match_selected(selection)
        service.unmatch_selected(matched.added)

        assert set(registry.comparisons) == set(selection)

    def test_one_sided_is_refused(self, service, registry, one_sided):
        before = registry.comparisons

        result = service.unmatch_selected([one_sided[0]])

        assert result.error_code == OverrideErrorCode.NOT_FULLY_MATCHED_FOR_UNMATCH
        assert registry.comparisons == before

    def test_mismatched_pair_is_refused(self, settings, make_processor, make_billing):
        pair = MatchedPair(make_processor(amount="80.00"), make_billing(amount="70.00"), MatchConfidence.MANUAL)
        registry = ComparisonRegistry.from_settings(settings, [pair])

        result = ManualOverrideService(registry, settings).unmatch_selected([pair])

        assert result.error_code == OverrideErrorCode.NOT_FULLY_MATCHED_FOR_UNMATCH
        assert registry.comparisons == (pair,)

    def test_rejected_pair_is_refused(self, settings, make_processor, make_billing):
        pair = MatchedPair(make_processor(), make_billing(), MatchConfidence.LOW, manually_rejected=True)
        registry = ComparisonRegistry.from_settings(settings, [pair])

        result = ManualOverrideService(registry, settings).unmatch_selected([pair])

        assert result.error_code == OverrideErrorCode.NOT_FULLY_MATCHED_FOR_UNMATCH

    def test_empty_selection_is_a_no_op(self, service, registry):
        before = registry.comparisons

        result = service.unmatch_selected([])

        assert result.success
        assert result.error_code is None
        assert result.unmatched_count == 0
        assert result.added == [] and result.removed == []
        assert registry.comparisons == before


class TestConfirmReject:

    @pytest.fixture
    def pending(self, settings, make_processor, make_billing):
        pair = MatchedPair(
            make_processor(email="john.doe@gmail.com"),
            make_billing(recipient="john.doe@company.de"),
            MatchConfidence.MEDIUM
        )
        registry = ComparisonRegistry.from_settings(settings, [pair])
        return pair, registry, ManualOverrideService(registry, settings)

    def test_confirm_clears_pending(self, pending):
        pair, registry, service = pending
        assert registry.statistics().pending_confirmation == 1

        result = service.confirm_match(pair)

        assert result.success
        confirmed = registry.comparisons[0]
        assert confirmed.manually_confirmed
        assert confirmed.confidence == MatchConfidence.MEDIUM
        assert registry.statistics().pending_confirmation == 0

    def test_reject_sets_status(self, pending):
        pair, registry, service = pending

        service.reject_match(pair)

        rejected = registry.comparisons[0]
        assert registry.status_of(rejected) == ComparisonStatus.MANUALLY_REJECTED
        assert rejected.is_pair

    def test_reject_one_sided_is_refused(self, service, one_sided):
        result = service.reject_match(one_sided[0])
        assert result.error_code == OverrideErrorCode.NOT_A_MATCHED_PAIR

    def test_confirm_stale_pair_fails(self, pending):
        pair, registry, service = pending
        service.confirm_match(pair)

        # The unconfirmed pair object has been replaced
        result = service.confirm_match(pair)

        assert result.error_code == OverrideErrorCode.OPERATION_FAILED


class TestOverrideResult:

    def test_raise_for_error(self):
        result = OverrideResult(success=False, error_code=OverrideErrorCode.NO_BILLING_RECORD, error_message="x")

        with pytest.raises(OverrideError) as exc_info:
            result.raise_for_error()

        assert exc_info.value.code == OverrideErrorCode.NO_BILLING_RECORD
        assert exc_info.value.to_dict() == {"error": "NO_BILLING_RECORD", "message": "x"}

    def test_success_does_not_raise(self):
        OverrideResult(success=True).raise_for_error()

    def test_to_dict(self, service, one_sided):
        data = service.match_selected(one_sided).to_dict()

        assert data["success"] is True
        assert data["error"] is None
        assert data["warnings"][0]["code"] == "UNEQUAL_COUNTS"
        assert data["added_count"] == 2
        assert data["removed_count"] == 3
