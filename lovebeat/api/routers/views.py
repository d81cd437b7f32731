"""Views router - aggregated view state."""

from fastapi import APIRouter, Depends, HTTPException

from lovebeat.api.dependencies import get_monitor
from lovebeat.heartbeat import Monitor, ViewRecord


router = APIRouter(prefix="/views")


@router.get("", response_model=list[ViewRecord])
async def list_views(monitor: Monitor = Depends(get_monitor)) -> list[ViewRecord]:
    """List all views."""
    views = await monitor.get_views()
    return sorted(views, key=lambda v: v.name)


@router.get("/{name}", response_model=ViewRecord)
async def get_view(name: str, monitor: Monitor = Depends(get_monitor)) -> ViewRecord:
    """Get a single view."""
    view = await monitor.get_view(name)
    if view is None:
        raise HTTPException(status_code=404, detail=f"View '{name}' not found")
    return view
