"""System router - liveness and a summary of the monitored state."""

from collections import Counter
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from lovebeat.api.dependencies import get_monitor
from lovebeat.heartbeat import ALL_VIEW, Monitor, ServiceState


router = APIRouter()

_started_at = datetime.now(timezone.utc)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str


class SystemSummary(BaseModel):
    """Counts of services and views, per state."""

    version: str
    started_at: str
    services: int
    views: int
    service_states: dict[str, int]
    alerting_views: list[str]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    monitor: Monitor = Depends(get_monitor),
) -> HealthResponse:
    """Whether the monitor task is alive. Does not query it."""
    return HealthResponse(
        status="operational" if monitor.is_running else "stopped",
        version=request.app.state.settings.version,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/system", response_model=SystemSummary)
async def system_summary(
    request: Request,
    monitor: Monitor = Depends(get_monitor),
) -> SystemSummary:
    services = await monitor.get_services(ALL_VIEW)
    views = await monitor.get_views()
    states = Counter(s.state for s in services)
    return SystemSummary(
        version=request.app.state.settings.version,
        started_at=_started_at.isoformat(),
        services=len(services),
        views=len(views),
        service_states={state.value: states.get(state, 0) for state in ServiceState},
        alerting_views=sorted(
            v.name for v in views if v.state in (ServiceState.WARNING, ServiceState.ERROR)
        ),
    )
