"""
Reconciliation audit events.

Every run and every operator override is logged as a structured event so
that log aggregation can reconstruct who changed which comparison.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

logger = logging.getLogger(__name__)


class ReconciliationAuditEvent:
    """Audit event types for reconciliation operations."""
    RUN_STARTED = "reconciliation.run_started"
    RUN_COMPLETED = "reconciliation.run_completed"
    MANUAL_MATCH_APPLIED = "reconciliation.manual_match_applied"
    MANUAL_UNMATCH_APPLIED = "reconciliation.manual_unmatch_applied"
    MATCH_CONFIRMED = "reconciliation.match_confirmed"
    MATCH_REJECTED = "reconciliation.match_rejected"
    OVERRIDE_REJECTED = "reconciliation.override_rejected"


def log_reconciliation_event(
    event_type: str,
    details: Dict[str, Any],
    actor: str = "system",
    level: int = logging.INFO
):
    """Log reconciliation event for audit trail."""
    log_entry = {
        "event": event_type,
        "details": details,
        "actor": actor,
        "event_timestamp": datetime.now(timezone.utc).isoformat()
    }
    logger.log(level, f"Reconciliation event: {event_type}", extra=log_entry)
