"""
Service

Per-service health state machine.
"""

from __future__ import annotations

from typing import Sequence

import structlog

from lovebeat.heartbeat import metrics
from lovebeat.heartbeat.models import (
    PREVIOUS_BEATS_COUNT,
    ServiceRecord,
    ServiceState,
    Timeout,
    TimeoutKind,
    TimeoutMode,
)
from lovebeat.heartbeat.store import Backend

logger = structlog.get_logger(__name__)

# Intervals needed before an auto timeout is trusted
AUTO_MIN_INTERVALS = 3
AUTO_WARNING_FACTOR = 1.5
AUTO_ERROR_FACTOR = 3.0

_AUTO_FACTORS = {
    TimeoutKind.WARNING: AUTO_WARNING_FACTOR,
    TimeoutKind.ERROR: AUTO_ERROR_FACTOR,
}


def derive_auto_timeout(previous_beats: Sequence[float], factor: float) -> float | None:
    """
    Derive a timeout from the recent beat history.

    The timeout is ``factor`` times the longest interval between consecutive
    beats. Empty slots (0) are ignored.

    Args:
        previous_beats: Beat timestamps, oldest first
        factor: Multiple of the longest interval

    Returns:
        Timeout in seconds, or None while fewer than AUTO_MIN_INTERVALS
        intervals have been observed
    """
    beats = [b for b in previous_beats if b > 0]
    intervals = [later - earlier for earlier, later in zip(beats, beats[1:]) if later > earlier]
    if len(intervals) < AUTO_MIN_INTERVALS:
        return None
    return factor * max(intervals)


def empty_beat_history() -> list[float]:
    return [0.0] * PREVIOUS_BEATS_COUNT


class Service:
    """
    A named service and its health state.

    Owned by the engine; never shared outside the monitor task.
    Everything handed out is a copy made by snapshot().
    """

    def __init__(self, data: ServiceRecord) -> None:
        self.data = data

    @classmethod
    def create(cls, name: str) -> Service:
        """Create a paused service with cleared timeouts."""
        return cls(ServiceRecord(name=name))

    @property
    def name(self) -> str:
        return self.data.name

    @property
    def state(self) -> ServiceState:
        return self.data.state

    def snapshot(self) -> ServiceRecord:
        return self.data.model_copy(deep=True)

    def register_beat(self, ts: float) -> None:
        """Record a beat. The state is recomputed by the next update()."""
        beats = self.data.previous_beats
        self.data.previous_beats = beats[1:] + [ts]
        self.data.last_beat = ts
        metrics.BEATS.inc()

    def set_timeout(self, kind: TimeoutKind, requested: Timeout | None) -> None:
        """
        Apply a timeout update.

        Switching to auto resets the beat history, but asking for auto
        again while already in auto keeps it.
        """
        if requested is None:
            return

        current = self._timeout(kind)
        if requested.mode == TimeoutMode.AUTO:
            if current.mode == TimeoutMode.AUTO:
                return
            self.data.previous_beats = empty_beat_history()

        if kind == TimeoutKind.WARNING:
            self.data.warning_timeout = requested
        else:
            self.data.error_timeout = requested

    def timeouts_in_order(self) -> bool:
        """False if both timeouts are explicit and error is shorter than warning."""
        warning, error = self.data.warning_timeout, self.data.error_timeout
        if warning.mode != TimeoutMode.EXPLICIT or error.mode != TimeoutMode.EXPLICIT:
            return True
        return error.seconds >= warning.seconds

    def _timeout(self, kind: TimeoutKind) -> Timeout:
        if kind == TimeoutKind.WARNING:
            return self.data.warning_timeout
        return self.data.error_timeout

    def resolve_timeout(self, kind: TimeoutKind) -> float | None:
        """Effective threshold in seconds, None meaning it never triggers."""
        timeout = self._timeout(kind)
        if timeout.mode == TimeoutMode.EXPLICIT:
            return timeout.seconds
        if timeout.mode == TimeoutMode.AUTO:
            return derive_auto_timeout(self.data.previous_beats, _AUTO_FACTORS[kind])
        return None

    def state_at(self, ts: float) -> ServiceState:
        """The state this service should be in at ``ts``."""
        if (
            self.data.warning_timeout.mode == TimeoutMode.CLEARED
            and self.data.error_timeout.mode == TimeoutMode.CLEARED
        ):
            return ServiceState.PAUSED

        # Never beaten, so nothing is overdue yet
        if self.data.last_beat is None:
            return ServiceState.OK

        elapsed = ts - self.data.last_beat

        error_after = self.resolve_timeout(TimeoutKind.ERROR)
        if error_after is not None and elapsed >= error_after:
            return ServiceState.ERROR

        warning_after = self.resolve_timeout(TimeoutKind.WARNING)
        if warning_after is not None and elapsed >= warning_after:
            return ServiceState.WARNING

        return ServiceState.OK

    def update(self, ts: float) -> None:
        """Move to the state that holds at ``ts``."""
        previous = self.data.state
        current = self.state_at(ts)
        if current == previous:
            return

        if previous.severity <= ServiceState.OK.severity < current.severity:
            self.data.incident_nbr += 1

        self.data.state = current
        self.data.state_changed_at = ts
        metrics.SERVICE_STATE_CHANGES.labels(state=current.value).inc()
        logger.info(
            "Service state changed",
            service=self.name,
            previous=previous.value,
            current=current.value,
            incident=self.data.incident_nbr,
        )

    def save(self, backend: Backend, previous: ServiceRecord | None, ts: float) -> None:
        """Persist the (previous, current) pair. Failures are only logged."""
        try:
            backend.save_service(previous, self.snapshot())
        except Exception as e:
            metrics.PERSISTENCE_ERRORS.labels(operation="save_service").inc()
            logger.error("Failed to save service", service=self.name, ts=ts, error=str(e))
