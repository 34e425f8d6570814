"""
Ledger Reconciliation Engine

Reconciles a payment-processor ledger against a billing ledger:
- Tiered automatic matching (identity, derived name, amount only)
- Status derivation and statistics over the comparison set
- Manual match / unmatch / confirm / reject workflow for operators
"""

from ledger_recon.models import (
    ProcessorTransaction,
    BillingTransaction,
    Comparison,
    OnlyProcessor,
    OnlyBilling,
    MatchedPair,
    MatchConfidence,
    ComparisonStatus,
    PaymentStatus
)
from ledger_recon.errors import (
    ReconciliationError,
    ConfigurationError,
    OverrideError,
    OverrideErrorCode,
    SelectionValidationError,
    RegistryConsistencyError
)
from ledger_recon.identity import normalize_identity, derive_name
from ledger_recon.status import resolve_status
from ledger_recon.registry import ComparisonRegistry, ReconciliationStatistics
from ledger_recon.filters import ComparisonFilter, StatusFilterPreset
from ledger_recon.matching_rules import TieredMatchingRules
from ledger_recon.services import (
    ReconciliationService,
    ComparisonResult,
    ManualOverrideService,
    OverrideResult
)

__all__ = [
    # Models
    'ProcessorTransaction',
    'BillingTransaction',
    'Comparison',
    'OnlyProcessor',
    'OnlyBilling',
    'MatchedPair',
    'MatchConfidence',
    'ComparisonStatus',
    'PaymentStatus',
    # Errors
    'ReconciliationError',
    'ConfigurationError',
    'OverrideError',
    'OverrideErrorCode',
    'SelectionValidationError',
    'RegistryConsistencyError',
    # Engine
    'normalize_identity',
    'derive_name',
    'resolve_status',
    'ComparisonRegistry',
    'ReconciliationStatistics',
    'ComparisonFilter',
    'StatusFilterPreset',
    'TieredMatchingRules',
    # Services
    'ReconciliationService',
    'ComparisonResult',
    'ManualOverrideService',
    'OverrideResult'
]
