"""
Ledger Reconciliation - Domain Models

Core entities for the reconciliation engine:
- ProcessorTransaction: a charge from the payment-processor feed
- BillingTransaction: an invoice from the billing feed
- Comparison: the reconciliation unit, one of
  OnlyProcessor / OnlyBilling / MatchedPair
- MatchConfidence + ComparisonStatus enumerations

Source records are immutable once produced. Comparisons are frozen as well;
edits are expressed by replacing a whole comparison in the registry.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from ledger_recon.identity import normalize_identity


# ==================== ENUMS ====================

class MatchConfidence(int, Enum):
    """How a pairing was established (ordered, HIGH is the strongest)"""
    HIGH = 1     # Identity key + amount
    MEDIUM = 2   # Derived name + amount
    LOW = 3      # Amount only
    MANUAL = 4   # Created by an operator

    @property
    def requires_confirmation(self) -> bool:
        return self in (MatchConfidence.MEDIUM, MatchConfidence.LOW)


class ComparisonStatus(str, Enum):
    """Display status of a comparison, derived from its current values"""
    MATCH = "MATCH"
    ONLY_PROCESSOR = "ONLY_PROCESSOR"
    ONLY_BILLING = "ONLY_BILLING"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    MANUALLY_REJECTED = "MANUALLY_REJECTED"


class PaymentStatus(str, Enum):
    """Settlement state of an invoice"""
    CANCELLED = "cancelled"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OPEN = "open"


# ==================== SOURCE RECORDS ====================

class ProcessorTransaction(BaseModel):
    """A charge exported by the payment processor"""
    model_config = ConfigDict(frozen=True)

    id: str
    customer_email: str
    created_at: datetime
    amount: Decimal
    amount_refunded: Decimal = Decimal("0")
    currency: str = ""
    status: str = ""
    captured: bool = True
    customer_description: str = ""
    description: str = ""

    @property
    def record_id(self) -> str:
        return self.id

    @property
    def identity(self) -> str:
        return self.customer_email

    @property
    def net_amount(self) -> Decimal:
        """Amount net of any refund"""
        return self.amount - self.amount_refunded

    @property
    def is_refunded(self) -> bool:
        return self.amount_refunded > 0

    @property
    def is_successful(self) -> bool:
        return self.status.lower() == "paid"


class BillingTransaction(BaseModel):
    """An invoice booked by the billing system"""
    model_config = ConfigDict(frozen=True)

    invoice_number: str
    recipient: str
    document_date: datetime
    booking_date: Optional[datetime] = None
    invoice_amount_gross: Decimal = Decimal("0")
    payment_amount: Decimal
    amount_paid: Decimal = Decimal("0")
    open_amount: Decimal = Decimal("0")
    cancellation_invoice_number: str = ""
    payment_method: str = ""
    contract: str = ""

    @property
    def record_id(self) -> str:
        return self.invoice_number

    @property
    def identity(self) -> str:
        return self.recipient

    @property
    def net_amount(self) -> Decimal:
        return self.payment_amount

    @property
    def is_paid(self) -> bool:
        return self.open_amount <= 0

    @property
    def is_partially_paid(self) -> bool:
        return self.amount_paid > 0 and self.open_amount > 0

    @property
    def is_cancelled(self) -> bool:
        return bool(self.cancellation_invoice_number.strip())

    @property
    def is_token_payment(self) -> bool:
        return self.payment_method.lower() == "token"

    @property
    def payment_status(self) -> PaymentStatus:
        if self.is_cancelled:
            return PaymentStatus.CANCELLED
        if self.is_paid:
            return PaymentStatus.PAID
        if self.is_partially_paid:
            return PaymentStatus.PARTIALLY_PAID
        return PaymentStatus.OPEN


# ==================== COMPARISONS ====================

@dataclass(frozen=True)
class Comparison:
    """
    Base for the three comparison variants.

    Every derived value is computed from the referenced records, so a
    comparison can never be in a "both sides absent" state.
    """

    def __post_init__(self):
        if type(self) is Comparison:
            raise TypeError("Comparison is abstract; use OnlyProcessor, OnlyBilling or MatchedPair")

    @property
    def processor(self) -> Optional[ProcessorTransaction]:
        return None

    @property
    def billing(self) -> Optional[BillingTransaction]:
        return None

    @property
    def confidence(self) -> Optional[MatchConfidence]:
        return None

    @property
    def is_pair(self) -> bool:
        return self.processor is not None and self.billing is not None

    @property
    def has_processor(self) -> bool:
        return self.processor is not None

    @property
    def has_billing(self) -> bool:
        return self.billing is not None

    @property
    def identity_key(self) -> str:
        if self.processor is not None:
            return normalize_identity(self.processor.identity)
        return normalize_identity(self.billing.identity)

    @property
    def transaction_date(self) -> datetime:
        if self.processor is not None:
            return self.processor.created_at
        return self.billing.document_date

    @property
    def amount(self) -> Decimal:
        if self.processor is not None:
            return self.processor.net_amount
        return self.billing.net_amount

    @property
    def amount_difference(self) -> Decimal:
        """Processor minus billing amount; zero unless both sides are present"""
        if not self.is_pair:
            return Decimal("0")
        return self.processor.net_amount - self.billing.net_amount

    @property
    def requires_confirmation(self) -> bool:
        return False

    @property
    def display_name(self) -> str:
        if self.processor is not None and self.processor.customer_description:
            return self.processor.customer_description
        if self.billing is not None and self.billing.contract:
            return self.billing.contract
        return self.identity_key

    def to_dict(self, status: Optional[ComparisonStatus] = None) -> Dict[str, Any]:
        """Structured export row for report and spreadsheet collaborators."""
        processor = self.processor
        billing = self.billing
        confidence = self.confidence
        return {
            "identity_key": self.identity_key,
            "display_name": self.display_name,
            "transaction_date": self.transaction_date.isoformat(),
            "amount": str(self.amount),
            "amount_difference": str(self.amount_difference),
            "status": status.value if status else None,
            "confidence": confidence.name if confidence else None,
            "requires_confirmation": self.requires_confirmation,
            "processor_id": processor.id if processor else None,
            "processor_amount": str(processor.net_amount) if processor else None,
            "processor_date": processor.created_at.isoformat() if processor else None,
            "invoice_number": billing.invoice_number if billing else None,
            "billing_amount": str(billing.net_amount) if billing else None,
            "billing_date": billing.document_date.isoformat() if billing else None,
        }


@dataclass(frozen=True)
class OnlyProcessor(Comparison):
    """A processor charge with no billing counterpart"""
    processor_record: ProcessorTransaction

    @property
    def processor(self) -> ProcessorTransaction:
        return self.processor_record


@dataclass(frozen=True)
class OnlyBilling(Comparison):
    """An invoice with no processor counterpart"""
    billing_record: BillingTransaction

    @property
    def billing(self) -> BillingTransaction:
        return self.billing_record


@dataclass(frozen=True)
class MatchedPair(Comparison):
    """A processor charge paired with an invoice"""
    processor_record: ProcessorTransaction
    billing_record: BillingTransaction
    match_confidence: MatchConfidence
    manually_confirmed: bool = False
    manually_rejected: bool = False

    @property
    def processor(self) -> ProcessorTransaction:
        return self.processor_record

    @property
    def billing(self) -> BillingTransaction:
        return self.billing_record

    @property
    def confidence(self) -> MatchConfidence:
        return self.match_confidence

    @property
    def requires_confirmation(self) -> bool:
        return self.match_confidence.requires_confirmation and not self.manually_confirmed

    def to_dict(self, status: Optional[ComparisonStatus] = None) -> Dict[str, Any]:
        row = super().to_dict(status)
        row["manually_confirmed"] = self.manually_confirmed
        row["manually_rejected"] = self.manually_rejected
        return row
