"""
Tests for alert dispatch and the alerters.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from lovebeat.heartbeat.alerts import (
    AlertDispatcher,
    Alerter,
    ConsoleAlerter,
    MailAlerter,
    WebhookAlerter,
    render_template,
    MAIL_BODY_TEMPLATE,
    MAIL_SUBJECT_TEMPLATE,
)
from lovebeat.heartbeat.models import (
    AlertConfig,
    AlertInfo,
    ServiceState,
    ViewConfig,
    ViewRecord,
)


@pytest.fixture
def view_config() -> ViewConfig:
    return ViewConfig(
        name="critical",
        pattern="^db-",
        alerts=AlertConfig(
            mail="ops@example.com, dba@example.com",
            webhook="https://hooks.example.com/lovebeat",
        ),
    )


@pytest.fixture
def info() -> AlertInfo:
    return AlertInfo(
        view=ViewRecord(name="critical", pattern="^db-", state=ServiceState.ERROR, incident_nbr=7),
        previous=ServiceState.WARNING,
        current=ServiceState.ERROR,
    )


def _alerter(channel: str = "test", side_effect: Exception | None = None) -> MagicMock:
    alerter = MagicMock(spec=Alerter)
    alerter.channel = channel
    alerter.notify = AsyncMock(return_value=True, side_effect=side_effect)
    alerter.close = AsyncMock()
    return alerter


class TestTemplates:
    """Tests for alert text rendering."""

    def test_subject(self, info: AlertInfo) -> None:
        assert render_template(MAIL_SUBJECT_TEMPLATE, info) == "[LOVEBEAT] critical-7"

    def test_body(self, info: AlertInfo) -> None:
        body = render_template(MAIL_BODY_TEMPLATE, info)
        assert body == "The status for view 'critical' has changed from 'WARNING' to 'ERROR'\n"


class TestMailAlerter:
    """Tests for MailAlerter."""

    def test_create_mail(self, info: AlertInfo) -> None:
        alerter = MailAlerter(server="smtp.example.com:2525", sender="lovebeat@example.com")
        message = alerter.create_mail("ops@example.com", info)
        assert message["From"] == "lovebeat@example.com"
        assert message["To"] == "ops@example.com"
        assert message["Subject"] == "[LOVEBEAT] critical-7"
        assert "from 'WARNING' to 'ERROR'" in message.get_content()

    @pytest.mark.asyncio
    async def test_sends_to_all_recipients(self, view_config: ViewConfig, info: AlertInfo) -> None:
        alerter = MailAlerter(server="smtp.example.com:2525", sender="lovebeat@example.com")
        with patch("lovebeat.heartbeat.alerts.smtplib.SMTP") as smtp_cls:
            smtp = smtp_cls.return_value.__enter__.return_value
            sent = await alerter.notify(view_config, info)

        assert sent is True
        smtp_cls.assert_called_once_with("smtp.example.com", 2525, timeout=10)
        _, kwargs = smtp.send_message.call_args
        assert kwargs["to_addrs"] == ["ops@example.com", "dba@example.com"]

    @pytest.mark.asyncio
    async def test_skips_views_without_mail(self, info: AlertInfo) -> None:
        alerter = MailAlerter()
        with patch("lovebeat.heartbeat.alerts.smtplib.SMTP") as smtp_cls:
            sent = await alerter.notify(ViewConfig(name="critical"), info)
        assert sent is False
        smtp_cls.assert_not_called()


class TestWebhookAlerter:
    """Tests for WebhookAlerter."""

    @pytest.mark.asyncio
    async def test_posts_payload(self, view_config: ViewConfig, info: AlertInfo) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        alerter = WebhookAlerter(client=client)
        try:
            sent = await alerter.notify(view_config, info)
        finally:
            await alerter.close()

        assert sent is True
        assert len(requests) == 1
        request = requests[0]
        assert str(request.url) == "https://hooks.example.com/lovebeat"
        assert request.headers["X-Lovebeat"] == "1"
        assert request.headers["User-Agent"] == "Lovebeat"
        assert json.loads(request.content) == {
            "name": "critical",
            "from_state": "WARNING",
            "to_state": "ERROR",
            "incident_number": 7,
        }

    @pytest.mark.asyncio
    async def test_http_error_raises(self, view_config: ViewConfig, info: AlertInfo) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        alerter = WebhookAlerter(client=client)
        try:
            with pytest.raises(httpx.HTTPStatusError):
                await alerter.notify(view_config, info)
        finally:
            await alerter.close()

    @pytest.mark.asyncio
    async def test_skips_views_without_webhook(self, info: AlertInfo) -> None:
        alerter = WebhookAlerter()
        assert await alerter.notify(ViewConfig(name="critical"), info) is False


class TestConsoleAlerter:
    """Tests for ConsoleAlerter."""

    @pytest.mark.asyncio
    async def test_prints(self, view_config: ViewConfig, info: AlertInfo) -> None:
        with patch("rich.console.Console.print") as console_print:
            sent = await ConsoleAlerter().notify(view_config, info)
        assert sent is True
        console_print.assert_called_once()


class TestAlertDispatcher:
    """Tests for AlertDispatcher."""

    @pytest.mark.asyncio
    async def test_delivers_to_every_alerter(self, view_config: ViewConfig, info: AlertInfo) -> None:
        first, second = _alerter("first"), _alerter("second")
        dispatcher = AlertDispatcher([first, second])
        await dispatcher.start()
        try:
            dispatcher.notify(view_config, info)
            await dispatcher.join()
        finally:
            await dispatcher.stop()

        first.notify.assert_awaited_once_with(view_config, info)
        second.notify.assert_awaited_once_with(view_config, info)
        first.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_delivery(
        self, view_config: ViewConfig, info: AlertInfo
    ) -> None:
        broken = _alerter("broken", side_effect=ConnectionError("smtp down"))
        working = _alerter("working")
        dispatcher = AlertDispatcher([broken, working])
        await dispatcher.start()
        try:
            dispatcher.notify(view_config, info)
            dispatcher.notify(view_config, info)
            await dispatcher.join()
        finally:
            await dispatcher.stop()

        assert broken.notify.await_count == 2
        assert working.notify.await_count == 2

    @pytest.mark.asyncio
    async def test_full_queue_drops(self, view_config: ViewConfig, info: AlertInfo) -> None:
        alerter = _alerter()
        dispatcher = AlertDispatcher([alerter], max_pending=1)

        # Not started yet, so nothing drains the queue
        dispatcher.notify(view_config, info)
        dispatcher.notify(view_config, info)

        await dispatcher.start()
        try:
            await dispatcher.join()
        finally:
            await dispatcher.stop()
        assert alerter.notify.await_count == 1

    def test_add_alerter(self) -> None:
        dispatcher = AlertDispatcher()
        dispatcher.add_alerter(_alerter())
        assert len(dispatcher.alerters) == 1
