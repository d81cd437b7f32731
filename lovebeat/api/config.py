"""Lovebeat Configuration."""

from pathlib import Path

from pydantic import BaseModel
from pydantic_settings import BaseSettings

from lovebeat import __version__
from lovebeat.heartbeat.models import ViewConfig


class MailSettings(BaseModel):
    """SMTP settings for mail alerts."""

    server: str = "localhost:25"
    sender: str = "lovebeat@localhost"


class WebhookSettings(BaseModel):
    """HTTP settings for webhook alerts."""

    connect_timeout: float = 5.0
    timeout: float = 10.0


class LovebeatSettings(BaseSettings):
    """Settings for the Lovebeat server."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False

    # API
    api_prefix: str = "/api"
    title: str = "Lovebeat"
    description: str = "Dead man's switch for services"
    version: str = __version__

    # Monitor
    tick_interval: float | None = 1.0  # seconds, None to disable the ticker
    query_timeout: float = 5.0  # seconds

    # Persistence (None keeps everything in memory)
    data_file: Path | None = None

    # Views, e.g. LOVEBEAT_VIEWS='[{"name": "db", "pattern": "^db-"}]'
    views: list[ViewConfig] = []

    # Alerts
    mail: MailSettings = MailSettings()
    webhook: WebhookSettings = WebhookSettings()
    console_alerts: bool = True
    max_pending_alerts: int = 100

    class Config:
        env_prefix = "LOVEBEAT_"
        env_nested_delimiter = "__"


settings = LovebeatSettings()
