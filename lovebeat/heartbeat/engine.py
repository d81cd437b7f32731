"""
Heartbeat Engine

The service and view maps and every operation that reads or changes
them. The engine is not safe for concurrent use; the Monitor owns it and
feeds it one command at a time.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Protocol

import structlog

from lovebeat.heartbeat import metrics
from lovebeat.heartbeat.models import (
    ALL_VIEW,
    PREVIOUS_BEATS_COUNT,
    AlertInfo,
    ServiceRecord,
    ServiceState,
    TimeoutKind,
    UpsertServiceCommand,
    ViewConfig,
    ViewRecord,
)
from lovebeat.heartbeat.service import Service, empty_beat_history
from lovebeat.heartbeat.store import Backend
from lovebeat.heartbeat.view import View

logger = structlog.get_logger(__name__)


class AlertSink(Protocol):
    """Receives view transitions. Must not block."""

    def notify(self, view: ViewConfig, info: AlertInfo) -> None: ...


class HeartbeatEngine:
    """
    Owns all services and views.

    Every mutation snapshots the entity first and hands the
    (previous, current) pair to the backend.
    """

    def __init__(self, backend: Backend, alerter: AlertSink | None = None) -> None:
        """
        Initialize the engine.

        Args:
            backend: Persistence backend
            alerter: Receives alerting view transitions, None to disable
        """
        self._backend = backend
        self._alerter = alerter
        self.services: dict[str, Service] = {}
        self.views: dict[str, View] = {}
        self.views[ALL_VIEW] = View.all_view(self.services)

    # Startup

    def reload(self, ts: float) -> None:
        """Replace the in-memory state with what the backend holds."""
        self.services.clear()
        self.views.clear()

        for record in self._load(self._backend.load_services, "load_services"):
            if len(record.previous_beats) != PREVIOUS_BEATS_COUNT:
                logger.warning("Repairing beat history", service=record.name)
                record.previous_beats = empty_beat_history()
            self.services[record.name] = Service(record)

        self.views[ALL_VIEW] = View.all_view(self.services)

        for record in self._load(self._backend.load_views, "load_views"):
            if record.name == ALL_VIEW:
                self.views[ALL_VIEW].data.state = record.state
                self.views[ALL_VIEW].data.incident_nbr = record.incident_nbr
                continue
            try:
                self.views[record.name] = View(record, self.services)
            except re.error as e:
                logger.error(
                    "Dropping view with invalid pattern",
                    view=record.name,
                    pattern=record.pattern,
                    error=str(e),
                )

        # Bring views in line with the loaded services without alerting
        for view in self.views.values():
            ref = view.snapshot()
            view.update(ts)
            if view.state != ref.state:
                view.save(self._backend, ref, ts)

        logger.info("Reloaded state", services=len(self.services), views=len(self.views))

    def _load(self, loader: Callable[[], list[Any]], operation: str) -> list[Any]:
        try:
            return loader()
        except Exception as e:
            metrics.PERSISTENCE_ERRORS.labels(operation=operation).inc()
            logger.error("Failed to load from backend", operation=operation, error=str(e))
            return []

    # Commands

    def tick(self, ts: float) -> None:
        """Re-evaluate every active service against the clock."""
        metrics.TICKS.inc()
        for service in list(self.services.values()):
            if service.state == ServiceState.PAUSED or service.state == service.state_at(ts):
                continue
            ref = service.snapshot()
            service.update(ts)
            service.save(self._backend, ref, ts)
            self._update_views(ts, service.name)

    def upsert_service(self, command: UpsertServiceCommand, ts: float) -> None:
        """Register a beat and/or apply timeout changes to a service."""
        service = self._get_or_create_service(command.service)
        ref = service.snapshot()

        if command.register_beat:
            service.register_beat(ts)

        service.set_timeout(TimeoutKind.WARNING, command.warning_timeout)
        service.set_timeout(TimeoutKind.ERROR, command.error_timeout)

        if not service.timeouts_in_order():
            metrics.REJECTED_TIMEOUT_UPDATES.inc()
            logger.warning(
                "Rejecting timeout update, error would precede warning",
                service=service.name,
                warning=str(service.data.warning_timeout),
                error=str(service.data.error_timeout),
            )
            service.data.warning_timeout = ref.warning_timeout
            service.data.error_timeout = ref.error_timeout

        service.update(ts)
        service.save(self._backend, ref, ts)
        self._update_views(ts, service.name)

    def delete_service(self, name: str, ts: float) -> None:
        """Remove a service from memory and the backend."""
        if self.services.pop(name, None) is None:
            logger.debug("Deleting unknown service", service=name)
        else:
            metrics.SERVICES_DELETED.inc()
            logger.info("Service deleted", service=name)

        try:
            self._backend.delete_service(name)
        except Exception as e:
            metrics.PERSISTENCE_ERRORS.labels(operation="delete_service").inc()
            logger.error("Failed to delete service", service=name, error=str(e))

        self._update_views(ts, name)

    # Queries

    def get_services(self, view_name: str) -> list[ServiceRecord]:
        view = self.views.get(view_name)
        if view is None:
            return []
        return [s.snapshot() for s in view.members()]

    def get_service(self, name: str) -> ServiceRecord | None:
        service = self.services.get(name)
        return service.snapshot() if service else None

    def get_views(self) -> list[ViewRecord]:
        return [v.snapshot() for v in self.views.values()]

    def get_view(self, name: str) -> ViewRecord | None:
        view = self.views.get(name)
        return view.snapshot() if view else None

    # Internals

    def _get_or_create_service(self, name: str) -> Service:
        service = self.services.get(name)
        if service is None:
            logger.info("Service created", service=name)
            metrics.SERVICES_CREATED.inc()
            service = Service.create(name)
            self.services[name] = service
        return service

    def _update_views(self, ts: float, service_name: str) -> None:
        for view in self.views.values():
            if not view.contains(service_name):
                continue
            ref = view.snapshot()
            view.update(ts)
            if view.state == ref.state:
                continue
            view.save(self._backend, ref, ts)
            if view.has_alert(ref):
                self._notify(view, ref)

    def _notify(self, view: View, ref: ViewRecord) -> None:
        if self._alerter is None:
            return
        info = AlertInfo(view=view.snapshot(), previous=ref.state, current=view.state)
        try:
            self._alerter.notify(view.config, info)
        except Exception as e:
            logger.error("Failed to hand over alert", view=view.name, error=str(e))
