"""Lovebeat API - FastAPI Application."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lovebeat.api.config import LovebeatSettings, settings as default_settings
from lovebeat.api.routers import metrics_router, services_router, system_router, views_router
from lovebeat.heartbeat import (
    AlertDispatcher,
    Backend,
    ConsoleAlerter,
    FileBackend,
    MailAlerter,
    MemoryBackend,
    Monitor,
    MonitorError,
    WebhookAlerter,
)

logger = structlog.get_logger(__name__)


def create_backend(settings: LovebeatSettings) -> Backend:
    """Create the persistence backend configured in ``settings``."""
    if settings.data_file:
        return FileBackend(settings.data_file, views=settings.views)
    logger.warning("No data file configured, state will not survive a restart")
    return MemoryBackend(views=settings.views)


def create_dispatcher(settings: LovebeatSettings) -> AlertDispatcher:
    """Create the alert dispatcher with the configured alerters."""
    alerters = [
        MailAlerter(server=settings.mail.server, sender=settings.mail.sender),
        WebhookAlerter(
            connect_timeout=settings.webhook.connect_timeout,
            timeout=settings.webhook.timeout,
        ),
    ]
    if settings.console_alerts:
        alerters.append(ConsoleAlerter())
    return AlertDispatcher(alerters, max_pending=settings.max_pending_alerts)


def create_app(
    settings: LovebeatSettings | None = None,
    backend: Backend | None = None,
    dispatcher: AlertDispatcher | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        alerts = dispatcher or create_dispatcher(settings)
        monitor = Monitor(
            backend or create_backend(settings),
            alerter=alerts,
            tick_interval=settings.tick_interval,
            query_timeout=settings.query_timeout,
        )
        await alerts.start()
        await monitor.start()
        app.state.monitor = monitor
        app.state.dispatcher = alerts
        yield
        # Shutdown
        await monitor.stop()
        await alerts.stop()

    app = FastAPI(
        title=settings.title,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.state.settings = settings

    @app.exception_handler(MonitorError)
    async def monitor_error_handler(request: Request, exc: MonitorError) -> JSONResponse:
        logger.error("Monitor unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    # Include routers
    app.include_router(system_router, prefix=settings.api_prefix, tags=["System"])
    app.include_router(services_router, prefix=settings.api_prefix, tags=["Services"])
    app.include_router(views_router, prefix=settings.api_prefix, tags=["Views"])
    app.include_router(metrics_router, tags=["Metrics"])

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lovebeat.api.main:create_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )
