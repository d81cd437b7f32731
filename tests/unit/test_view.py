"""
Tests for View aggregation and alert detection.
"""

import re

import pytest

from lovebeat.heartbeat.models import ALL_VIEW, ServiceRecord, ServiceState, ViewRecord
from lovebeat.heartbeat.service import Service
from lovebeat.heartbeat.view import View
from tests.conftest import T0


def _service(name: str, state: ServiceState) -> Service:
    return Service(ServiceRecord(name=name, state=state))


@pytest.fixture
def services() -> dict[str, Service]:
    return {}


@pytest.fixture
def critical(services: dict[str, Service]) -> View:
    return View(ViewRecord(name="critical", pattern="^db-"), services)


class TestContains:
    """Tests for View.contains."""

    def test_pattern_search(self, critical: View) -> None:
        assert critical.contains("db-backup")
        assert not critical.contains("web-db-proxy")
        assert not critical.contains("cache")

    def test_unanchored_pattern_matches_anywhere(self, services: dict[str, Service]) -> None:
        view = View(ViewRecord(name="backups", pattern="backup"), services)
        assert view.contains("db-backup")
        assert view.contains("backup-mail")

    def test_all_view_matches_everything(self, services: dict[str, Service]) -> None:
        view = View.all_view(services)
        assert view.name == ALL_VIEW
        assert view.contains("anything")
        assert view.contains("")

    def test_invalid_pattern(self, services: dict[str, Service]) -> None:
        with pytest.raises(re.error):
            View(ViewRecord(name="broken", pattern="("), services)


class TestUpdate:
    """Tests for View.update."""

    def test_no_members_is_ok(self, critical: View) -> None:
        critical.data.state = ServiceState.ERROR
        critical.update(T0)
        assert critical.state == ServiceState.OK

    def test_worst_state_wins(self, services: dict[str, Service], critical: View) -> None:
        services["db-backup"] = _service("db-backup", ServiceState.ERROR)
        services["db-replica"] = _service("db-replica", ServiceState.OK)
        services["web"] = _service("web", ServiceState.WARNING)
        critical.update(T0)
        assert critical.state == ServiceState.ERROR

    def test_non_members_ignored(self, services: dict[str, Service], critical: View) -> None:
        services["db-replica"] = _service("db-replica", ServiceState.OK)
        services["web"] = _service("web", ServiceState.ERROR)
        critical.update(T0)
        assert critical.state == ServiceState.OK

    def test_paused_members_excluded(self, services: dict[str, Service], critical: View) -> None:
        services["db-backup"] = _service("db-backup", ServiceState.PAUSED)
        services["db-replica"] = _service("db-replica", ServiceState.WARNING)
        critical.update(T0)
        assert critical.state == ServiceState.WARNING

    def test_all_paused_is_paused(self, services: dict[str, Service], critical: View) -> None:
        services["db-backup"] = _service("db-backup", ServiceState.PAUSED)
        services["db-replica"] = _service("db-replica", ServiceState.PAUSED)
        critical.update(T0)
        assert critical.state == ServiceState.PAUSED

    def test_membership_is_live(self, services: dict[str, Service], critical: View) -> None:
        services["db-backup"] = _service("db-backup", ServiceState.ERROR)
        critical.update(T0)
        assert critical.state == ServiceState.ERROR

        del services["db-backup"]
        critical.update(T0 + 1)
        assert critical.state == ServiceState.OK

    def test_incident_numbering(self, services: dict[str, Service], critical: View) -> None:
        services["db-backup"] = _service("db-backup", ServiceState.WARNING)
        critical.update(T0)
        assert critical.data.incident_nbr == 1
        assert critical.data.state_changed_at == T0

        services["db-backup"].data.state = ServiceState.ERROR
        critical.update(T0 + 1)
        assert critical.data.incident_nbr == 1

        services["db-backup"].data.state = ServiceState.OK
        critical.update(T0 + 2)
        services["db-backup"].data.state = ServiceState.ERROR
        critical.update(T0 + 3)
        assert critical.data.incident_nbr == 2


class TestHasAlert:
    """Tests for View.has_alert."""

    @pytest.mark.parametrize(
        "before, after, expected",
        [
            (ServiceState.OK, ServiceState.WARNING, True),
            (ServiceState.OK, ServiceState.ERROR, True),
            (ServiceState.WARNING, ServiceState.ERROR, True),
            (ServiceState.ERROR, ServiceState.WARNING, True),
            (ServiceState.ERROR, ServiceState.OK, True),
            (ServiceState.WARNING, ServiceState.OK, True),
            (ServiceState.PAUSED, ServiceState.WARNING, True),
            (ServiceState.PAUSED, ServiceState.OK, False),
            (ServiceState.OK, ServiceState.PAUSED, False),
            (ServiceState.ERROR, ServiceState.ERROR, False),
        ],
    )
    def test_transitions(
        self,
        critical: View,
        before: ServiceState,
        after: ServiceState,
        expected: bool,
    ) -> None:
        previous = critical.snapshot()
        previous.state = before
        critical.data.state = after
        assert critical.has_alert(previous) is expected


class TestSnapshot:
    """Tests for View.snapshot and config."""

    def test_config(self, critical: View) -> None:
        config = critical.config
        assert config.name == "critical"
        assert config.pattern == "^db-"

    def test_snapshot_is_a_copy(self, services: dict[str, Service], critical: View) -> None:
        snap = critical.snapshot()
        services["db-backup"] = _service("db-backup", ServiceState.ERROR)
        critical.update(T0)
        assert snap.state == ServiceState.OK
        assert critical.state == ServiceState.ERROR
