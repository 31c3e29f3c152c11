# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Prometheus metrics — single source of truth for all metric objects.
Imported by services and middleware. Never instantiated in controllers.
"""

from prometheus_client import Counter, Histogram

# ── HTTP Metrics (used by middleware) ──
REQUEST_COUNT = Counter(
    "dispatch_requests_total",
    "Total HTTP requests to the dispatch service",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "dispatch_request_duration_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
)
HTTP_ERRORS = Counter(
    "dispatch_http_errors_total",
    "Total HTTP error responses",
    ["method", "endpoint", "status"],
)

# ── Business Metrics (updated by service layer only) ──
INCIDENTS_REPORTED = Counter(
    "dispatch_incidents_reported_total",
    "Total incidents reported",
    ["type", "severity"],
)
INCIDENTS_RESOLVED = Counter(
    "dispatch_incidents_resolved_total",
    "Incidents resolved, by path",
    ["source"],
)
ESCALATIONS_TOTAL = Counter(
    "dispatch_escalations_total",
    "Escalations applied, by resulting severity",
    ["severity"],
)
ASSIGNMENTS_CREATED = Counter(
    "dispatch_assignments_created_total",
    "Total assignments created",
    ["priority"],
)
ASSIGNMENT_TRANSITIONS = Counter(
    "dispatch_assignment_transitions_total",
    "Successful assignment lifecycle transitions",
    ["transition"],
)
ASSIGNMENT_CONFLICTS = Counter(
    "dispatch_assignment_conflicts_total",
    "Assignment creations rejected by the uniqueness constraint",
)
MATCH_REQUESTS = Counter(
    "dispatch_match_requests_total",
    "Candidate searches performed",
)
MATCH_CANDIDATES = Histogram(
    "dispatch_match_candidates",
    "Number of ranked candidates returned per search",
    buckets=[0, 1, 2, 5, 10, 25, 50, 100],
)
NOTIFICATIONS_SENT = Counter(
    "dispatch_notifications_sent_total",
    "Notifications handed to the dispatcher",
    ["scope", "event"],
)
NOTIFICATIONS_FAILED = Counter(
    "dispatch_notifications_failed_total",
    "Notifications that failed to dispatch",
    ["scope", "event"],
)
