"""
Monitoring module for Prometheus metrics.
"""
from .prometheus import (
    http_requests_total,
    http_request_duration,
    bulk_operations_total,
    bulk_operations_in_progress,
    bulk_items_total,
    bulk_item_write_duration,
    bulk_rollbacks_total,
    bulk_operation_faults_total,
    errors_total,
)

from .middleware import metrics_middleware, normalize_endpoint

__all__ = [
    'http_requests_total',
    'http_request_duration',
    'bulk_operations_total',
    'bulk_operations_in_progress',
    'bulk_items_total',
    'bulk_item_write_duration',
    'bulk_rollbacks_total',
    'bulk_operation_faults_total',
    'errors_total',
    'metrics_middleware',
    'normalize_endpoint',
]
