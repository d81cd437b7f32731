"""
Pytest configuration and shared fixtures.
"""

import pytest

from lovebeat.heartbeat import (
    AlertInfo,
    HeartbeatEngine,
    MemoryBackend,
    ServiceRecord,
    ViewConfig,
    ViewRecord,
)

# Arbitrary fixed epoch used as "t=0" in scenarios
T0 = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingAlerter:
    """Alert sink that keeps every notification."""

    def __init__(self) -> None:
        self.alerts: list[tuple[ViewConfig, AlertInfo]] = []

    def notify(self, view: ViewConfig, info: AlertInfo) -> None:
        self.alerts.append((view, info))

    def transitions(self, view_name: str) -> list[tuple[str, str]]:
        return [
            (info.previous.value, info.current.value)
            for view, info in self.alerts
            if view.name == view_name
        ]


class RecordingBackend(MemoryBackend):
    """Memory backend that also records every call."""

    def __init__(self, views: list[ViewConfig] | None = None) -> None:
        super().__init__(views)
        self.service_saves: list[tuple[ServiceRecord | None, ServiceRecord]] = []
        self.view_saves: list[tuple[ViewRecord | None, ViewRecord]] = []
        self.deleted: list[str] = []

    def save_service(self, previous: ServiceRecord | None, current: ServiceRecord) -> None:
        self.service_saves.append((previous, current))
        super().save_service(previous, current)

    def save_view(self, previous: ViewRecord | None, current: ViewRecord) -> None:
        self.view_saves.append((previous, current))
        super().save_view(previous, current)

    def delete_service(self, name: str) -> None:
        self.deleted.append(name)
        super().delete_service(name)


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at T0."""
    return FakeClock()


@pytest.fixture
def alerter() -> RecordingAlerter:
    return RecordingAlerter()


@pytest.fixture
def backend() -> RecordingBackend:
    """Backend with a 'critical' view over the db- services."""
    return RecordingBackend(views=[ViewConfig(name="critical", pattern="^db-")])


@pytest.fixture
def engine(backend: RecordingBackend, alerter: RecordingAlerter) -> HeartbeatEngine:
    """Engine loaded from the recording backend."""
    eng = HeartbeatEngine(backend, alerter)
    eng.reload(T0)
    return eng
