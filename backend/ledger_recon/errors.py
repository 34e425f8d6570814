"""
Reconciliation error taxonomy.

Failures of the manual override workflow carry an OverrideErrorCode so that
callers can branch on the reason without parsing messages. Absence of a match
during automatic matching is never an error.
"""

from enum import Enum


class OverrideErrorCode(str, Enum):
    """Reasons a manual override can be refused."""
    SELECTION_TOO_SMALL = "SELECTION_TOO_SMALL"
    SELECTION_TOO_LARGE = "SELECTION_TOO_LARGE"
    NO_PROCESSOR_RECORD = "NO_PROCESSOR_RECORD"
    NO_BILLING_RECORD = "NO_BILLING_RECORD"
    DUPLICATE_RECORD_IN_SELECTION = "DUPLICATE_RECORD_IN_SELECTION"
    NOT_FULLY_MATCHED_FOR_UNMATCH = "NOT_FULLY_MATCHED_FOR_UNMATCH"
    NOT_A_MATCHED_PAIR = "NOT_A_MATCHED_PAIR"
    OPERATION_FAILED = "OPERATION_FAILED"


class ReconciliationError(Exception):
    """Base exception for reconciliation errors"""
    pass


class ConfigurationError(ReconciliationError):
    """Raised when engine settings are inconsistent"""
    pass


class OverrideError(ReconciliationError):
    """Raised when a manual override cannot be applied"""

    def __init__(self, code: OverrideErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": self.code.value,
            "message": self.message
        }


class SelectionValidationError(OverrideError):
    """Raised when an operator selection fails validation"""
    pass


class RegistryConsistencyError(OverrideError):
    """Raised when a replacement would break registry invariants"""

    def __init__(self, message: str):
        super().__init__(OverrideErrorCode.OPERATION_FAILED, message)
