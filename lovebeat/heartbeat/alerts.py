"""
Alert Dispatch

Delivers view state transitions to mail, webhooks and the console.
The monitor only enqueues; delivery happens on a separate task.
"""

from __future__ import annotations

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

import httpx
import structlog
from jinja2 import Environment

from lovebeat.heartbeat import metrics
from lovebeat.heartbeat.models import AlertInfo, ServiceState, ViewConfig

logger = structlog.get_logger(__name__)

MAIL_SUBJECT_TEMPLATE = "[LOVEBEAT] {{ view.name }}-{{ view.incident_nbr }}"
MAIL_BODY_TEMPLATE = (
    "The status for view '{{ view.name }}' has changed from "
    "'{{ previous | upper }}' to '{{ current | upper }}'\n"
)

_jinja = Environment(autoescape=False, keep_trailing_newline=True)


def render_template(template: str, info: AlertInfo) -> str:
    """Render an alert template with the view, previous and current state."""
    return _jinja.from_string(template).render(
        view=info.view,
        previous=info.previous.value,
        current=info.current.value,
    )


class Alerter(ABC):
    """A delivery channel for view alerts."""

    channel: str = "base"

    @abstractmethod
    async def notify(self, view: ViewConfig, info: AlertInfo) -> bool:
        """
        Deliver an alert for ``view``.

        Returns:
            True if something was sent, False if the view has no
            destination for this channel

        Raises:
            Exception: On delivery failure; the dispatcher logs it
        """

    async def close(self) -> None:
        """Release any resources held by the alerter."""
        return None


class MailAlerter(Alerter):
    """Sends alert mails over SMTP."""

    channel = "mail"

    def __init__(self, server: str = "localhost:25", sender: str = "lovebeat@localhost") -> None:
        """
        Args:
            server: SMTP server as host[:port]
            sender: From address
        """
        self._server = server
        self._sender = sender
        logger.debug("Sending mail via server", server=server, sender=sender)

    def create_mail(self, address: str, info: AlertInfo) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = address
        message["Subject"] = render_template(MAIL_SUBJECT_TEMPLATE, info)
        message.set_content(render_template(MAIL_BODY_TEMPLATE, info))
        return message

    async def notify(self, view: ViewConfig, info: AlertInfo) -> bool:
        if not view.alerts.mail:
            return False
        message = self.create_mail(view.alerts.mail, info)
        await asyncio.to_thread(self._send, message)
        return True

    def _send(self, message: EmailMessage) -> None:
        logger.info("Sending mail", server=self._server, to=message["To"])
        host, _, port = self._server.partition(":")
        recipients = [a.strip() for a in message["To"].split(",") if a.strip()]
        with smtplib.SMTP(host, int(port or 25), timeout=10) as smtp:
            smtp.send_message(message, from_addr=self._sender, to_addrs=recipients)


class WebhookAlerter(Alerter):
    """Posts alerts as JSON to the view's webhook."""

    channel = "webhook"

    def __init__(
        self,
        connect_timeout: float = 5.0,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @staticmethod
    def payload(info: AlertInfo) -> dict[str, object]:
        return {
            "name": info.view.name,
            "from_state": info.previous.value.upper(),
            "to_state": info.current.value.upper(),
            "incident_number": info.view.incident_nbr,
        }

    async def notify(self, view: ViewConfig, info: AlertInfo) -> bool:
        if not view.alerts.webhook:
            return False

        logger.info("Sending webhook alert", url=view.alerts.webhook, view=view.name)
        client = await self._get_client()
        response = await client.post(
            view.alerts.webhook,
            json=self.payload(info),
            headers={
                "Accept": "application/json",
                "User-Agent": "Lovebeat",
                "X-Lovebeat": "1",
            },
        )
        response.raise_for_status()
        return True


class ConsoleAlerter(Alerter):
    """Prints every alert to the console."""

    channel = "console"

    async def notify(self, view: ViewConfig, info: AlertInfo) -> bool:
        from rich.console import Console
        from rich.panel import Panel

        color = {
            ServiceState.ERROR: "red",
            ServiceState.WARNING: "yellow",
            ServiceState.OK: "green",
        }.get(info.current, "white")

        Console().print(Panel(
            render_template(MAIL_BODY_TEMPLATE, info).strip(),
            title=f"[bold {color}]{render_template(MAIL_SUBJECT_TEMPLATE, info)}[/bold {color}]",
            border_style=color,
        ))
        return True


class AlertDispatcher:
    """
    Hands alerts from the monitor to the alerters.

    notify() never blocks: alerts go onto a bounded queue and are dropped
    with a warning when it is full. A background task delivers each alert
    to every alerter concurrently.
    """

    def __init__(self, alerters: list[Alerter] | None = None, max_pending: int = 100) -> None:
        self._alerters = list(alerters or [])
        self._queue: asyncio.Queue[tuple[ViewConfig, AlertInfo]] = asyncio.Queue(
            maxsize=max_pending
        )
        self._task: asyncio.Task[None] | None = None

    @property
    def alerters(self) -> list[Alerter]:
        return list(self._alerters)

    def add_alerter(self, alerter: Alerter) -> None:
        self._alerters.append(alerter)

    def notify(self, view: ViewConfig, info: AlertInfo) -> None:
        """Queue an alert for delivery."""
        try:
            self._queue.put_nowait((view, info))
        except asyncio.QueueFull:
            metrics.ALERTS.labels(channel="all", result="dropped").inc()
            logger.warning("Alert queue full, dropping alert", view=view.name)

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._deliver_loop(), name="lovebeat-alerts")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for alerter in self._alerters:
            await alerter.close()

    async def join(self) -> None:
        """Wait until every queued alert has been delivered or has failed."""
        await self._queue.join()

    async def _deliver_loop(self) -> None:
        while True:
            view, info = await self._queue.get()
            try:
                await self.deliver(view, info)
            finally:
                self._queue.task_done()

    async def deliver(self, view: ViewConfig, info: AlertInfo) -> None:
        """Send one alert through every alerter."""
        logger.info(
            "Dispatching alert",
            view=view.name,
            previous=info.previous.value,
            current=info.current.value,
            incident=info.view.incident_nbr,
        )
        await asyncio.gather(
            *(self._send(alerter, view, info) for alerter in self._alerters)
        )

    async def _send(self, alerter: Alerter, view: ViewConfig, info: AlertInfo) -> None:
        try:
            sent = await alerter.notify(view, info)
        except Exception as e:
            metrics.ALERTS.labels(channel=alerter.channel, result="failed").inc()
            logger.error(
                "Failed to send alert",
                channel=alerter.channel,
                view=view.name,
                error=str(e),
            )
            return
        if sent:
            metrics.ALERTS.labels(channel=alerter.channel, result="sent").inc()
