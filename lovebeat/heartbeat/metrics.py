"""
Heartbeat Metrics

Prometheus counters for the state engine and the alerters.
They carry no control flow meaning.
"""

from prometheus_client import Counter

SERVICES_CREATED = Counter(
    "lovebeat_services_created_total",
    "Services created on first reference",
)
SERVICES_DELETED = Counter(
    "lovebeat_services_deleted_total",
    "Services deleted by command",
)
BEATS = Counter(
    "lovebeat_beats_total",
    "Beats registered",
)
REJECTED_TIMEOUT_UPDATES = Counter(
    "lovebeat_rejected_timeout_updates_total",
    "Timeout updates that would leave error shorter than warning",
)
TICKS = Counter(
    "lovebeat_ticks_total",
    "Periodic evaluations of all services",
)
SERVICE_STATE_CHANGES = Counter(
    "lovebeat_service_state_changes_total",
    "Service state transitions",
    ["state"],
)
VIEW_STATE_CHANGES = Counter(
    "lovebeat_view_state_changes_total",
    "View state transitions",
    ["state"],
)
ALERTS = Counter(
    "lovebeat_alerts_total",
    "Alert deliveries by channel and outcome",
    ["channel", "result"],
)
PERSISTENCE_ERRORS = Counter(
    "lovebeat_persistence_errors_total",
    "Failed backend calls",
    ["operation"],
)
