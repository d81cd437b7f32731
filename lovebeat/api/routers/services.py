"""Services router - beats, deletion and service state."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError

from lovebeat.api.dependencies import get_monitor
from lovebeat.heartbeat import ALL_VIEW, Monitor, ServiceRecord, UpsertServiceCommand


router = APIRouter(prefix="/services")


class BeatRequest(BaseModel):
    """Optional body of a beat."""

    beat: bool = True
    warning_timeout: str | float | None = None  # "auto", "clear" or seconds
    error_timeout: str | float | None = None


class AcceptedResponse(BaseModel):
    """Returned for commands queued on the monitor."""

    status: str = "accepted"
    service: str


@router.get("", response_model=list[ServiceRecord])
async def list_services(
    view: str = Query(ALL_VIEW, description="Only services matching this view"),
    monitor: Monitor = Depends(get_monitor),
) -> list[ServiceRecord]:
    """List services in a view."""
    services = await monitor.get_services(view)
    return sorted(services, key=lambda s: s.name)


@router.get("/{name}", response_model=ServiceRecord)
async def get_service(name: str, monitor: Monitor = Depends(get_monitor)) -> ServiceRecord:
    """Get a single service."""
    service = await monitor.get_service(name)
    if service is None:
        raise HTTPException(status_code=404, detail=f"Service '{name}' not found")
    return service


@router.post("/{name}", response_model=AcceptedResponse, status_code=202)
async def beat(
    name: str,
    body: BeatRequest | None = None,
    monitor: Monitor = Depends(get_monitor),
) -> AcceptedResponse:
    """Register a beat and/or update the timeouts of a service."""
    body = body or BeatRequest()
    try:
        command = UpsertServiceCommand(
            service=name,
            register_beat=body.beat,
            warning_timeout=body.warning_timeout,
            error_timeout=body.error_timeout,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )

    await monitor.upsert_service(command)
    return AcceptedResponse(service=name)


@router.delete("/{name}", response_model=AcceptedResponse, status_code=202)
async def delete_service(name: str, monitor: Monitor = Depends(get_monitor)) -> AcceptedResponse:
    """Delete a service."""
    await monitor.delete_service(name)
    return AcceptedResponse(service=name)
