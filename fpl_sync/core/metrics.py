"""
Prometheus metrics for the FPL sync pipeline.

Metrics exposed:
- Sync workflow outcome counters and duration histograms
- Rejected upstream record counters
- Cache hit/miss/error counters and invalidated key counters
- FPL API request counters
"""
from prometheus_client import Counter, Histogram

# Sync Workflow Metrics
sync_workflows_total = Counter(
    "fpl_sync_workflows_total",
    "Total sync workflow runs",
    ["entity_type", "status"]
)

sync_workflow_duration_seconds = Histogram(
    "fpl_sync_workflow_duration_seconds",
    "Sync workflow duration in seconds",
    ["entity_type"]
)

sync_records_persisted_total = Counter(
    "fpl_sync_records_persisted_total",
    "Total records written by sync workflows",
    ["entity_type"]
)

sync_records_rejected_total = Counter(
    "fpl_sync_records_rejected_total",
    "Total upstream records rejected by validation or mapping",
    ["entity_type"]
)

# Cache Metrics
cache_requests_total = Counter(
    "fpl_cache_requests_total",
    "Total entity cache lookups",
    ["entity_type", "result"]  # hit, miss, error, corrupt
)

cache_keys_invalidated_total = Counter(
    "fpl_cache_keys_invalidated_total",
    "Total cache keys invalidated",
    ["entity_type"]
)

# External API Metrics
fpl_api_requests_total = Counter(
    "fpl_api_requests_total",
    "Total FPL API requests",
    ["endpoint", "status"]
)
