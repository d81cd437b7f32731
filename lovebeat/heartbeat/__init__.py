"""
Heartbeat Engine

Dead man's switch monitoring for Lovebeat.

Provides:
- Service and view state machines
- Monitor task serializing all access to them
- Persistence backends
- Alert dispatch to mail, webhooks and the console
"""

from lovebeat.heartbeat.models import (
    ALL_VIEW,
    AlertConfig,
    AlertInfo,
    ServiceRecord,
    ServiceState,
    Timeout,
    TimeoutKind,
    TimeoutMode,
    UpsertServiceCommand,
    ViewConfig,
    ViewRecord,
)
from lovebeat.heartbeat.service import Service, derive_auto_timeout
from lovebeat.heartbeat.view import View
from lovebeat.heartbeat.engine import HeartbeatEngine
from lovebeat.heartbeat.monitor import (
    Monitor,
    MonitorError,
    MonitorNotRunningError,
    MonitorTimeoutError,
)
from lovebeat.heartbeat.store import (
    Backend,
    FileBackend,
    MemoryBackend,
)
from lovebeat.heartbeat.alerts import (
    AlertDispatcher,
    Alerter,
    ConsoleAlerter,
    MailAlerter,
    WebhookAlerter,
)

__all__ = [
    # Models
    "ALL_VIEW",
    "AlertConfig",
    "AlertInfo",
    "ServiceRecord",
    "ServiceState",
    "Timeout",
    "TimeoutKind",
    "TimeoutMode",
    "UpsertServiceCommand",
    "ViewConfig",
    "ViewRecord",
    # Entities
    "Service",
    "View",
    "derive_auto_timeout",
    # Engine and monitor
    "HeartbeatEngine",
    "Monitor",
    "MonitorError",
    "MonitorNotRunningError",
    "MonitorTimeoutError",
    # Store
    "Backend",
    "FileBackend",
    "MemoryBackend",
    # Alerts
    "AlertDispatcher",
    "Alerter",
    "ConsoleAlerter",
    "MailAlerter",
    "WebhookAlerter",
]
