"""
Heartbeat Store

Persistence boundary for services and views.
Provides an in-memory backend and a JSON file backend.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import structlog

from lovebeat.heartbeat.models import ServiceRecord, ViewConfig, ViewRecord

logger = structlog.get_logger(__name__)


class Backend(ABC):
    """
    Durable storage for service and view records.

    Calls are synchronous and made from the monitor task, so they must be
    fast. Views are seeded from configuration: the configured pattern and
    alerts win, the stored state and incident number are kept.
    """

    def __init__(self, views: Iterable[ViewConfig] | None = None) -> None:
        self._view_configs = {v.name: v for v in views or []}

    @abstractmethod
    def load_services(self) -> list[ServiceRecord]:
        """Load every stored service."""

    @abstractmethod
    def load_views(self) -> list[ViewRecord]:
        """Load every stored or configured view."""

    @abstractmethod
    def save_service(self, previous: ServiceRecord | None, current: ServiceRecord) -> None:
        """Store a service after a mutation."""

    @abstractmethod
    def save_view(self, previous: ViewRecord | None, current: ViewRecord) -> None:
        """Store a view after a state change."""

    @abstractmethod
    def delete_service(self, name: str) -> None:
        """Forget a service. Unknown names are ignored."""

    def _merge_view_configs(self, stored: dict[str, ViewRecord]) -> list[ViewRecord]:
        merged = dict(stored)
        for name, config in self._view_configs.items():
            record = merged.get(name)
            if record is None:
                merged[name] = ViewRecord(name=name, pattern=config.pattern, alerts=config.alerts)
            else:
                merged[name] = record.model_copy(
                    update={"pattern": config.pattern, "alerts": config.alerts}
                )
        return [v.model_copy(deep=True) for v in merged.values()]


class MemoryBackend(Backend):
    """Backend that keeps everything in memory. Used when no data file is configured."""

    def __init__(self, views: Iterable[ViewConfig] | None = None) -> None:
        super().__init__(views)
        self._services: dict[str, ServiceRecord] = {}
        self._views: dict[str, ViewRecord] = {}

    def load_services(self) -> list[ServiceRecord]:
        return [s.model_copy(deep=True) for s in self._services.values()]

    def load_views(self) -> list[ViewRecord]:
        return self._merge_view_configs(self._views)

    def save_service(self, previous: ServiceRecord | None, current: ServiceRecord) -> None:
        self._services[current.name] = current.model_copy(deep=True)

    def save_view(self, previous: ViewRecord | None, current: ViewRecord) -> None:
        self._views[current.name] = current.model_copy(deep=True)

    def delete_service(self, name: str) -> None:
        self._services.pop(name, None)


class FileBackend(MemoryBackend):
    """
    Backend persisted to a single JSON document.

    The whole document is rewritten on each save.
    """

    def __init__(
        self,
        persist_path: Path | str,
        views: Iterable[ViewConfig] | None = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            persist_path: Path of the JSON document
            views: Configured views
        """
        super().__init__(views)
        self._persist_path = Path(persist_path)

    def load_services(self) -> list[ServiceRecord]:
        self._load_from_file()
        return super().load_services()

    def load_views(self) -> list[ViewRecord]:
        self._load_from_file()
        return super().load_views()

    def save_service(self, previous: ServiceRecord | None, current: ServiceRecord) -> None:
        super().save_service(previous, current)
        self._save_to_file()

    def save_view(self, previous: ViewRecord | None, current: ViewRecord) -> None:
        super().save_view(previous, current)
        self._save_to_file()

    def delete_service(self, name: str) -> None:
        super().delete_service(name)
        self._save_to_file()

    def _load_from_file(self) -> None:
        """Load services and views from the persistence file."""
        if not self._persist_path.exists():
            return

        with open(self._persist_path, "r") as f:
            data = json.load(f)

        self._services = {}
        for service_data in data.get("services", []):
            service = ServiceRecord.model_validate(service_data)
            self._services[service.name] = service

        self._views = {}
        for view_data in data.get("views", []):
            view = ViewRecord.model_validate(view_data)
            self._views[view.name] = view

        logger.info(
            "Loaded state from file",
            path=str(self._persist_path),
            services=len(self._services),
            views=len(self._views),
        )

    def _save_to_file(self) -> None:
        """Write services and views to the persistence file."""
        self._persist_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "services": [s.model_dump(mode="json") for s in self._services.values()],
            "views": [v.model_dump(mode="json") for v in self._views.values()],
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

        tmp_path = self._persist_path.with_suffix(self._persist_path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        tmp_path.replace(self._persist_path)
