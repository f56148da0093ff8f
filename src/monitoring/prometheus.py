"""
Prometheus metrics for monitoring.

HTTP traffic plus bulk operation lifecycle, per-item outcomes and rollbacks.
"""
from prometheus_client import Counter, Histogram, Gauge, Info
import logging

logger = logging.getLogger(__name__)

# HTTP Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration',
    ['method', 'endpoint']
)

# Bulk Operation Metrics
bulk_operations_total = Counter(
    'bulk_operations_total',
    'Bulk operations that reached a terminal state',
    ['action', 'status']  # completed, failed, cancelled
)

bulk_operations_in_progress = Gauge(
    'bulk_operations_in_progress',
    'Bulk operations not yet in a terminal state'
)

bulk_items_total = Counter(
    'bulk_items_total',
    'Records processed by bulk operations',
    ['action', 'outcome']  # succeeded, failed, skipped
)

bulk_item_write_duration = Histogram(
    'bulk_item_write_duration_seconds',
    'Time spent processing one record (read, snapshot, write, retries)',
    ['action'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

bulk_rollbacks_total = Counter(
    'bulk_rollbacks_total',
    'Rollback attempts',
    ['outcome']  # restored, partial
)

bulk_operation_faults_total = Counter(
    'bulk_operation_faults_total',
    'Operation-level faults that aborted a bulk operation',
    ['action']
)

# Error Metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['type', 'severity']
)

# System Info
app_info = Info('app', 'Application information')
app_info.info({
    'name': 'bulk-ops-orchestrator',
    'version': '1.0.0'
})
