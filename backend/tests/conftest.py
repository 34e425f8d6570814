"""
Shared fixtures for the reconciliation engine tests.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from ledger_recon.config import Settings
from ledger_recon.models import BillingTransaction, ProcessorTransaction


@pytest.fixture
def settings():
    """Default engine settings, independent of the process environment cache."""
    return Settings()


@pytest.fixture
def make_processor():
    """Factory for processor charges."""
    def _make(
        record_id: str = "ch_1",
        email: str = "anna@example.com",
        amount: str = "80.00",
        created_at: datetime = datetime(2024, 1, 10, 12, 0),
        **kwargs
    ) -> ProcessorTransaction:
        return ProcessorTransaction(
            id=record_id,
            customer_email=email,
            created_at=created_at,
            amount=Decimal(amount),
            **kwargs
        )
    return _make


@pytest.fixture
def make_billing():
    """Factory for invoices."""
    def _make(
        invoice_number: str = "R1",
        recipient: str = "anna@example.com",
        amount: str = "80.00",
        document_date: datetime = datetime(2024, 1, 12, 9, 0),
        **kwargs
    ) -> BillingTransaction:
        return BillingTransaction(
            invoice_number=invoice_number,
            recipient=recipient,
            document_date=document_date,
            payment_amount=Decimal(amount),
            **kwargs
        )
    return _make
