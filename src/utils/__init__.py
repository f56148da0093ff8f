"""Utility modules for the bulk operation orchestrator."""

from .retry import RetryExhausted, retry_with_backoff, with_retry
from .background_tasks import create_safe_task, safe_background_task
from .audit_logger import AuditAction, AuditLevel, log_audit_event

__all__ = [
    "RetryExhausted",
    "retry_with_backoff",
    "with_retry",
    "create_safe_task",
    "safe_background_task",
    "AuditAction",
    "AuditLevel",
    "log_audit_event",
]
