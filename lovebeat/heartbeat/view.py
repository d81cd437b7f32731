"""
View

Regex defined group of services with an aggregated state.
"""

from __future__ import annotations

import re
from typing import Mapping

import structlog

from lovebeat.heartbeat import metrics
from lovebeat.heartbeat.models import ALL_VIEW, ServiceState, ViewConfig, ViewRecord
from lovebeat.heartbeat.service import Service
from lovebeat.heartbeat.store import Backend

logger = structlog.get_logger(__name__)


def _is_ok(state: ServiceState) -> bool:
    return state.severity <= ServiceState.OK.severity


class View:
    """
    A view over the services whose names match a pattern.

    Membership is evaluated against the live service map on every call,
    so created and deleted services are picked up without bookkeeping.
    """

    def __init__(self, data: ViewRecord, services: Mapping[str, Service]) -> None:
        """
        Args:
            data: The view record
            services: The engine's service map (shared, not copied)

        Raises:
            re.error: If the pattern does not compile
        """
        self.data = data
        self._services = services
        self._regex = re.compile(data.pattern)

    @classmethod
    def all_view(cls, services: Mapping[str, Service]) -> View:
        """The reserved view matching every service."""
        return cls(ViewRecord(name=ALL_VIEW, pattern=""), services)

    @property
    def name(self) -> str:
        return self.data.name

    @property
    def state(self) -> ServiceState:
        return self.data.state

    @property
    def config(self) -> ViewConfig:
        return self.data.config

    def snapshot(self) -> ViewRecord:
        return self.data.model_copy(deep=True)

    def contains(self, service_name: str) -> bool:
        if self.data.name == ALL_VIEW:
            return True
        return self._regex.search(service_name) is not None

    def members(self) -> list[Service]:
        return [s for name, s in self._services.items() if self.contains(name)]

    def update(self, ts: float) -> None:
        """Recompute the aggregated state from the current members."""
        previous = self.data.state
        states = [s.state for s in self.members()]
        active = [s for s in states if s != ServiceState.PAUSED]

        if active:
            current = max(active, key=lambda s: s.severity)
        elif states:
            current = ServiceState.PAUSED
        else:
            current = ServiceState.OK

        if current == previous:
            return

        if _is_ok(previous) and not _is_ok(current):
            self.data.incident_nbr += 1

        self.data.state = current
        self.data.state_changed_at = ts
        metrics.VIEW_STATE_CHANGES.labels(state=current.value).inc()
        logger.info(
            "View state changed",
            view=self.name,
            previous=previous.value,
            current=current.value,
            incident=self.data.incident_nbr,
        )

    def has_alert(self, previous: ViewRecord) -> bool:
        """
        Whether the change since ``previous`` should be alerted on.

        Crossing between ok (or paused) and not ok alerts, as does any
        change into or out of error.
        """
        before, after = previous.state, self.data.state
        if before == after:
            return False
        if _is_ok(before) != _is_ok(after):
            return True
        return ServiceState.ERROR in (before, after)

    def save(self, backend: Backend, previous: ViewRecord | None, ts: float) -> None:
        """Persist the (previous, current) pair. Failures are only logged."""
        try:
            backend.save_view(previous, self.snapshot())
        except Exception as e:
            metrics.PERSISTENCE_ERRORS.labels(operation="save_view").inc()
            logger.error("Failed to save view", view=self.name, ts=ts, error=str(e))
