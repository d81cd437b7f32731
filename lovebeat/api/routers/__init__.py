"""API Routers."""

from .system import router as system_router
from .services import router as services_router
from .views import router as views_router
from .metrics import router as metrics_router

__all__ = [
    "system_router",
    "services_router",
    "views_router",
    "metrics_router",
]
