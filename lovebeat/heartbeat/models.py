"""
Heartbeat Models

Data models for services, views, timeouts and alerts.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Number of beat timestamps kept per service for deriving auto timeouts
PREVIOUS_BEATS_COUNT = 10

ALL_VIEW = "all"

SERVICE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


class ServiceState(str, Enum):
    """Health state of a service or view."""

    PAUSED = "paused"
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"

    @property
    def severity(self) -> int:
        """Ordering used when aggregating states."""
        return _SEVERITY[self]


_SEVERITY = {
    ServiceState.PAUSED: 0,
    ServiceState.OK: 1,
    ServiceState.WARNING: 2,
    ServiceState.ERROR: 3,
}


class TimeoutKind(str, Enum):
    """The two thresholds a service can have."""

    WARNING = "warning"
    ERROR = "error"


class TimeoutMode(str, Enum):
    """How a timeout value is obtained."""

    EXPLICIT = "explicit"  # Fixed number of seconds
    AUTO = "auto"  # Derived from the beat history
    CLEARED = "cleared"  # Threshold disabled


class Timeout(BaseModel):
    """A warning or error threshold."""

    model_config = ConfigDict(frozen=True)

    mode: TimeoutMode = TimeoutMode.CLEARED
    seconds: float | None = None

    @model_validator(mode="after")
    def _check_seconds(self) -> Timeout:
        if self.mode == TimeoutMode.EXPLICIT:
            if self.seconds is None or self.seconds <= 0:
                raise ValueError("explicit timeout must be a positive number of seconds")
        elif self.seconds is not None:
            raise ValueError(f"{self.mode.value} timeout cannot carry a value")
        return self

    @classmethod
    def explicit(cls, seconds: float) -> Timeout:
        return cls(mode=TimeoutMode.EXPLICIT, seconds=seconds)

    @classmethod
    def auto(cls) -> Timeout:
        return cls(mode=TimeoutMode.AUTO)

    @classmethod
    def cleared(cls) -> Timeout:
        return cls(mode=TimeoutMode.CLEARED)

    @classmethod
    def parse(cls, value: Any) -> Timeout:
        """
        Parse a timeout from user input.

        Accepts "auto", "clear" (or "cleared") and a number of seconds,
        either as a number or a numeric string.
        """
        if isinstance(value, Timeout):
            return value
        if isinstance(value, dict):
            return cls.model_validate(value)
        if isinstance(value, str):
            text = value.strip().lower()
            if text == "auto":
                return cls.auto()
            if text in ("clear", "cleared"):
                return cls.cleared()
            try:
                value = float(text)
            except ValueError:
                raise ValueError(f"invalid timeout: {value!r}") from None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"invalid timeout: {value!r}")
        return cls.explicit(float(value))

    def __str__(self) -> str:
        if self.mode == TimeoutMode.EXPLICIT:
            return f"{self.seconds:g}s"
        return self.mode.value


class AlertConfig(BaseModel):
    """Where alerts for a view are delivered."""

    mail: str | None = None  # Comma separated addresses
    webhook: str | None = None


class ViewConfig(BaseModel):
    """The configured part of a view."""

    name: str
    pattern: str = ""
    alerts: AlertConfig = Field(default_factory=AlertConfig)


class ServiceRecord(BaseModel):
    """
    State of a single service.

    This is both what the backend persists and what queries return.
    Callers always receive copies.
    """

    name: str
    state: ServiceState = ServiceState.PAUSED
    last_beat: float | None = None
    warning_timeout: Timeout = Field(default_factory=Timeout.cleared)
    error_timeout: Timeout = Field(default_factory=Timeout.cleared)
    previous_beats: list[float] = Field(
        default_factory=lambda: [0.0] * PREVIOUS_BEATS_COUNT
    )
    incident_nbr: int = 0
    state_changed_at: float | None = None


class ViewRecord(BaseModel):
    """State of a view, a regex defined group of services."""

    name: str
    pattern: str = ""
    state: ServiceState = ServiceState.OK
    incident_nbr: int = 0
    alerts: AlertConfig = Field(default_factory=AlertConfig)
    state_changed_at: float | None = None

    @property
    def config(self) -> ViewConfig:
        return ViewConfig(name=self.name, pattern=self.pattern, alerts=self.alerts)


class AlertInfo(BaseModel):
    """A view state transition handed to the alerters."""

    view: ViewRecord
    previous: ServiceState
    current: ServiceState


class UpsertServiceCommand(BaseModel):
    """Create a service if needed, register a beat and/or update its timeouts."""

    service: str
    register_beat: bool = True
    warning_timeout: Timeout | None = None
    error_timeout: Timeout | None = None

    @field_validator("service")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not SERVICE_NAME_PATTERN.match(value):
            raise ValueError(f"invalid service name: {value!r}")
        return value

    @field_validator("warning_timeout", "error_timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any) -> Timeout | None:
        if value is None:
            return None
        return Timeout.parse(value)

    @model_validator(mode="after")
    def _check_order(self) -> UpsertServiceCommand:
        warning, error = self.warning_timeout, self.error_timeout
        if (
            warning is not None
            and error is not None
            and warning.mode == TimeoutMode.EXPLICIT
            and error.mode == TimeoutMode.EXPLICIT
            and error.seconds < warning.seconds
        ):
            raise ValueError("error timeout must not be shorter than warning timeout")
        return self
