"""Unit tests for chronosync.caldav.discovery.DiscoveryClient."""

from types import SimpleNamespace

import httpx
import pytest

from chronosync.caldav.discovery import DiscoveryClient
from chronosync.caldav.exceptions import ConfigurationError, DiscoveryError, DiscoveryStage
from chronosync.caldav.models import Credentials
from tests.fixtures.dav_server import (
    CALDAV_ROOT,
    HOME_URL,
    PRINCIPAL_URL,
    FakeTransport,
    collection_entry,
    multistatus,
    principal_xml,
    xml_response,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]


@pytest.fixture
def client(fake_transport: FakeTransport, sync_settings: SimpleNamespace) -> DiscoveryClient:
    return DiscoveryClient(fake_transport, sync_settings)


class TestResolvePrincipal:
    @pytest.mark.asyncio
    async def test_resolve_principal_when_present_then_absolute_url(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        assert await client.resolve_principal(credentials) == PRINCIPAL_URL

        call = fake_transport.calls[0]
        assert call["method"] == "PROPFIND"
        assert call["url"] == CALDAV_ROOT
        assert call["depth"] == "0"
        assert "current-user-principal" in call["body"]
        assert call["timeout"] == 5.0

    @pytest.mark.asyncio
    async def test_resolve_principal_when_root_has_no_trailing_slash_then_normalized(
        self, fake_transport: FakeTransport, sync_settings: SimpleNamespace, credentials: Credentials
    ) -> None:
        sync_settings.caldav_url = CALDAV_ROOT.rstrip("/")

        await DiscoveryClient(fake_transport, sync_settings).resolve_principal(credentials)

        assert fake_transport.calls[0]["url"] == CALDAV_ROOT

    @pytest.mark.asyncio
    async def test_resolve_principal_when_reference_missing_then_principal_error(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", CALDAV_ROOT)] = xml_response(multistatus())

        with pytest.raises(DiscoveryError) as exc_info:
            await client.resolve_principal(credentials)

        assert exc_info.value.stage == DiscoveryStage.PRINCIPAL

    @pytest.mark.asyncio
    async def test_resolve_principal_when_malformed_xml_then_principal_error(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", CALDAV_ROOT)] = xml_response("<not-closed>")

        with pytest.raises(DiscoveryError) as exc_info:
            await client.resolve_principal(credentials)

        assert exc_info.value.stage == DiscoveryStage.PRINCIPAL

    @pytest.mark.asyncio
    async def test_resolve_principal_when_unauthorized_then_principal_error_with_status(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", CALDAV_ROOT)] = xml_response("", status_code=401)

        with pytest.raises(DiscoveryError) as exc_info:
            await client.resolve_principal(credentials)

        assert exc_info.value.stage == DiscoveryStage.PRINCIPAL
        assert exc_info.value.status_code == 401
        assert str(exc_info.value).startswith("[principal]")

    @pytest.mark.asyncio
    async def test_resolve_principal_when_timeout_then_principal_error_chained(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", CALDAV_ROOT)] = httpx.ReadTimeout("slow")

        with pytest.raises(DiscoveryError) as exc_info:
            await client.resolve_principal(credentials)

        assert exc_info.value.stage == DiscoveryStage.PRINCIPAL
        assert isinstance(exc_info.value.__cause__, httpx.TimeoutException)

    @pytest.mark.asyncio
    async def test_resolve_principal_when_called_then_secret_not_logged(
        self,
        client: DiscoveryClient,
        credentials: Credentials,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level("DEBUG", logger="chronosync"):
            await client.resolve_principal(credentials)

        assert "app-specific-secret" not in caplog.text
        assert "jane.doe@example.com" not in caplog.text


class TestResolveCalendarHome:
    @pytest.mark.asyncio
    async def test_resolve_home_when_present_then_returned(
        self, client: DiscoveryClient, credentials: Credentials
    ) -> None:
        assert await client.resolve_calendar_home(PRINCIPAL_URL, credentials) == HOME_URL

    @pytest.mark.asyncio
    async def test_resolve_home_when_reference_missing_then_fallback_from_local_part(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", PRINCIPAL_URL)] = xml_response(multistatus())

        home = await client.resolve_calendar_home(PRINCIPAL_URL, credentials)

        assert home == f"{CALDAV_ROOT}jane.doe/calendars/"

    @pytest.mark.asyncio
    async def test_resolve_home_when_template_uses_principal_then_formatted(
        self,
        fake_transport: FakeTransport,
        sync_settings: SimpleNamespace,
        credentials: Credentials,
    ) -> None:
        sync_settings.calendar_home_template = "{principal}calendars/"
        fake_transport.routes[("PROPFIND", PRINCIPAL_URL)] = xml_response("garbage")

        home = await DiscoveryClient(fake_transport, sync_settings).resolve_calendar_home(
            PRINCIPAL_URL, credentials
        )

        assert home == f"{PRINCIPAL_URL}calendars/"

    @pytest.mark.asyncio
    async def test_resolve_home_when_server_error_then_home_error(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", PRINCIPAL_URL)] = xml_response("", status_code=500)

        with pytest.raises(DiscoveryError) as exc_info:
            await client.resolve_calendar_home(PRINCIPAL_URL, credentials)

        assert exc_info.value.stage == DiscoveryStage.HOME


class TestListCollections:
    @pytest.mark.asyncio
    async def test_list_when_calendars_present_then_depth_one_and_refs(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        refs = await client.list_collections(HOME_URL, credentials)

        assert [ref.display_name for ref in refs] == ["Work", "Home"]
        assert fake_transport.calls[-1]["depth"] == "1"

    @pytest.mark.asyncio
    async def test_list_when_no_calendar_entries_then_empty_not_error(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", HOME_URL)] = xml_response(
            multistatus(collection_entry("/123456/calendars/", None, calendar=False))
        )

        assert await client.list_collections(HOME_URL, credentials) == []

    @pytest.mark.asyncio
    async def test_list_when_forbidden_then_list_error(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", HOME_URL)] = xml_response("", status_code=403)

        with pytest.raises(DiscoveryError) as exc_info:
            await client.list_collections(HOME_URL, credentials)

        assert exc_info.value.stage == DiscoveryStage.LIST


class TestDiscover:
    @pytest.mark.asyncio
    async def test_discover_when_healthy_then_full_session(
        self, client: DiscoveryClient, credentials: Credentials
    ) -> None:
        session = await client.discover(credentials)

        assert session.principal_url == PRINCIPAL_URL
        assert session.calendar_home_url == HOME_URL
        assert session.home_from_fallback is False
        assert len(session.collections) == 2

    @pytest.mark.asyncio
    async def test_discover_when_home_missing_then_marks_fallback(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fallback_home = f"{CALDAV_ROOT}jane.doe/calendars/"
        fake_transport.routes[("PROPFIND", PRINCIPAL_URL)] = xml_response(principal_xml())
        fake_transport.routes[("PROPFIND", fallback_home)] = fake_transport.routes[
            ("PROPFIND", HOME_URL)
        ]

        session = await client.discover(credentials)

        assert session.home_from_fallback is True
        assert session.calendar_home_url == fallback_home
        assert len(session.collections) == 2

    @pytest.mark.asyncio
    async def test_discover_when_principal_given_then_skips_root_query(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        await client.discover(credentials, principal_url=PRINCIPAL_URL)

        assert [call["url"] for call in fake_transport.calls] == [PRINCIPAL_URL, HOME_URL]


class TestCheckAuth:
    @pytest.mark.asyncio
    async def test_check_auth_when_accepted_then_statuses_and_principal_reported(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        result = await client.check_auth(credentials)

        assert result.authenticated is True
        assert result.identity == "jan***"
        assert result.bare_request.status_code == 207
        assert result.principal_request.ok is True
        assert result.principal_url == PRINCIPAL_URL
        assert [call["body"] is None for call in fake_transport.calls] == [True, False]
        assert all(call["url"] == CALDAV_ROOT for call in fake_transport.calls)

    @pytest.mark.asyncio
    async def test_check_auth_when_rejected_then_reported_not_raised(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", CALDAV_ROOT)] = xml_response("", status_code=401)

        result = await client.check_auth(credentials)

        assert result.authenticated is False
        assert result.principal_request.status_code == 401
        assert result.principal_request.reason == "Unauthorized"
        assert result.principal_url is None

    @pytest.mark.asyncio
    async def test_check_auth_when_transport_error_then_error_recorded(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", CALDAV_ROOT)] = httpx.ConnectError("refused")

        result = await client.check_auth(credentials)

        assert result.authenticated is False
        assert result.bare_request.status_code is None
        assert result.bare_request.error == "refused"

    @pytest.mark.asyncio
    async def test_check_auth_when_serialized_then_secret_absent(
        self, client: DiscoveryClient, credentials: Credentials
    ) -> None:
        payload = (await client.check_auth(credentials)).model_dump_json()

        assert "app-specific-secret" not in payload
        assert "jane.doe@example.com" not in payload


class TestCheckHomeCandidates:
    @pytest.mark.asyncio
    async def test_check_home_when_default_templates_then_each_layout_reported_once(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        fake_transport.routes[("PROPFIND", f"{CALDAV_ROOT}jane.doe/calendars/")] = xml_response(
            multistatus()
        )

        checks = await client.check_home_candidates(credentials)

        assert [check.url for check in checks] == [
            CALDAV_ROOT,
            f"{CALDAV_ROOT}jane.doe/",
            f"{CALDAV_ROOT}jane.doe/calendars/",
            f"{CALDAV_ROOT}jane.doe/calendars/home/",
        ]
        assert [check.ok for check in checks] == [True, False, True, False]
        assert checks[1].status_code == 404
        assert all(call["depth"] == "0" for call in fake_transport.calls)

    @pytest.mark.asyncio
    async def test_check_home_when_configured_template_differs_then_included(
        self, fake_transport: FakeTransport, sync_settings: SimpleNamespace, credentials: Credentials
    ) -> None:
        sync_settings.calendar_home_template = "{root}dav/{local_part}/"

        checks = await DiscoveryClient(fake_transport, sync_settings).check_home_candidates(
            credentials
        )

        assert checks[-1].url == f"{CALDAV_ROOT}dav/jane.doe/"

    @pytest.mark.asyncio
    async def test_check_home_when_principal_template_then_principal_substituted(
        self, client: DiscoveryClient, credentials: Credentials
    ) -> None:
        checks = await client.check_home_candidates(
            credentials, ["{principal}calendars/"], principal_url=PRINCIPAL_URL
        )

        assert [check.url for check in checks] == [f"{PRINCIPAL_URL}calendars/"]

    @pytest.mark.asyncio
    async def test_check_home_when_unknown_placeholder_then_configuration_error(
        self, client: DiscoveryClient, fake_transport: FakeTransport, credentials: Credentials
    ) -> None:
        with pytest.raises(ConfigurationError):
            await client.check_home_candidates(credentials, ["{root}{user}/"])

        assert fake_transport.calls == []
