"""Shared fixtures for chronosync tests: settings, credentials, clock, fake DAV server."""

from datetime import datetime
from types import SimpleNamespace

import pytest
from pydantic import SecretStr

from chronosync.caldav.models import Credentials
from tests.fixtures.dav_server import (
    CALDAV_ROOT,
    HOME_CAL_URL,
    HOME_URL,
    PRINCIPAL_URL,
    WORK_URL,
    FakeTransport,
    Route,
    home_xml,
    list_xml,
    make_ics,
    principal_xml,
    report_xml,
    xml_response,
)


@pytest.fixture
def sync_settings() -> SimpleNamespace:
    """Lightweight settings object with every field the pipeline reads."""
    return SimpleNamespace(
        caldav_url=CALDAV_ROOT,
        calendar_home_template="{root}{local_part}/calendars/",
        request_timeout=5.0,
        probe_timeout=2.0,
        session_timeout=20.0,
        fetch_concurrency=3,
        window_past_days=30,
        window_future_days=30,
        timezone=None,
        fallback_ics_path=None,
        log_level="INFO",
    )


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(username="jane.doe@example.com", password=SecretStr("app-specific-secret"))


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 15, 8, 0).astimezone()


@pytest.fixture
def fixed_clock(fixed_now: datetime):
    return lambda: fixed_now


@pytest.fixture
def live_routes() -> dict[tuple[str, str], Route]:
    """A healthy server: principal, home, two calendars with one event each."""
    return {
        ("PROPFIND", CALDAV_ROOT): xml_response(principal_xml()),
        ("PROPFIND", PRINCIPAL_URL): xml_response(home_xml()),
        ("PROPFIND", HOME_URL): xml_response(list_xml()),
        ("REPORT", WORK_URL): xml_response(
            report_xml(
                make_ics(
                    uid="work-1", summary="Standup", start="20240315T100000", end="20240315T103000"
                )
            )
        ),
        ("REPORT", HOME_CAL_URL): xml_response(
            report_xml(
                make_ics(
                    uid="home-1", summary="Dentist", start="20240314T160000", end="20240314T170000"
                )
            )
        ),
    }


@pytest.fixture
def fake_transport(live_routes: dict[tuple[str, str], Route]) -> FakeTransport:
    return FakeTransport(live_routes)
