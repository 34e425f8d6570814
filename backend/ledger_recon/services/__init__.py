"""
Reconciliation services: automatic matching runs and operator overrides.
"""

from ledger_recon.services.reconciliation_service import ReconciliationService, ComparisonResult
from ledger_recon.services.manual_override_service import (
    ManualOverrideService,
    OverrideResult,
    SelectionWarning,
    SelectionWarningCode
)

__all__ = [
    'ReconciliationService',
    'ComparisonResult',
    'ManualOverrideService',
    'OverrideResult',
    'SelectionWarning',
    'SelectionWarningCode'
]
