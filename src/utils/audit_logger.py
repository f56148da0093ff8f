"""
Audit logging for bulk operations.

Every execute, cancel, rollback and operation fault produces one structured
audit line, so a bulk change can be traced back to its request.
"""

import logging
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Types of auditable actions."""
    BULK_EXECUTE = "bulk_execute"
    BULK_COMPLETE = "bulk_complete"
    BULK_CANCEL = "bulk_cancel"
    BULK_FAULT = "bulk_fault"
    BULK_ROLLBACK = "bulk_rollback"


class AuditLevel(str, Enum):
    """Severity levels for audit events."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


async def log_audit_event(
    action: AuditAction,
    user_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    level: AuditLevel = AuditLevel.INFO,
) -> bool:
    """
    Log an audit event to the system logs.

    Args:
        action: Type of action performed
        user_id: ID of user performing action
        entity_type: Type of entity affected (bulk_operation)
        entity_id: ID of affected entity
        details: Additional context (action, counts, reasons)
        level: Severity level

    Returns:
        True if logged successfully
    """
    try:
        log_message = f"AUDIT: {action.value} by {user_id or 'system'}"
        if entity_type and entity_id:
            log_message += f" on {entity_type}:{entity_id}"

        extra = {
            "audit": True,
            "details": details or {},
            "audit_timestamp": datetime.now(timezone.utc).isoformat(),
        }

        if level == AuditLevel.CRITICAL:
            logger.critical(log_message, extra=extra)
        elif level == AuditLevel.WARNING:
            logger.warning(log_message, extra=extra)
        else:
            logger.info(log_message, extra=extra)

        return True

    except Exception as e:
        # Never fail the operation due to audit logging failure
        logger.error(f"Failed to log audit event: {e}")
        return False
