"""CalDAV discovery: credentials to a concrete list of calendar collections."""

import logging
from typing import Any, Optional, Sequence

import httpx

from . import dav_xml
from .exceptions import ConfigurationError, DiscoveryError, DiscoveryStage
from .models import AuthCheck, CalendarRef, Credentials, DiscoverySession, EndpointCheck
from .transport import CalDAVTransport

logger = logging.getLogger(__name__)

# Layouts seen across CalDAV servers, tried before the configured template
DEFAULT_HOME_CANDIDATES = (
    "{root}",
    "{root}{local_part}/",
    "{root}{local_part}/calendars/",
    "{root}{local_part}/calendars/home/",
)


class DiscoveryClient:
    """Resolves principal, calendar home and calendar collections.

    Each stage issues exactly one PROPFIND bounded by ``request_timeout``.
    A timeout, transport error or non-success status fails the stage with
    ``DiscoveryError``; retry and fallback policy belongs to the caller.
    """

    def __init__(self, transport: CalDAVTransport, settings: Any) -> None:
        """Initialize discovery client.

        Args:
            transport: Transport used for every request
            settings: Application settings (``caldav_url``, ``calendar_home_template``,
                ``request_timeout``)
        """
        self.transport = transport
        self.settings = settings

    @property
    def root_url(self) -> str:
        url = str(self.settings.caldav_url)
        return url if url.endswith("/") else f"{url}/"

    async def _propfind(
        self,
        stage: DiscoveryStage,
        url: str,
        credentials: Credentials,
        body: str,
        depth: str,
    ) -> str:
        """Issue one PROPFIND and return its body, mapping failures to ``stage``."""
        try:
            response = await self.transport.request(
                "PROPFIND",
                url,
                credentials,
                body=body,
                depth=depth,
                timeout=self.settings.request_timeout,
            )
        except httpx.TimeoutException as e:
            raise DiscoveryError(
                f"Timed out after {self.settings.request_timeout}s querying {url}", stage
            ) from e
        except httpx.HTTPError as e:
            raise DiscoveryError(f"Transport error querying {url}: {e}", stage) from e

        if not response.is_success:
            raise DiscoveryError(
                f"HTTP {response.status_code} from {url}", stage, status_code=response.status_code
            )
        return response.text

    async def resolve_principal(self, credentials: Credentials) -> str:
        """Find the current-user-principal URL at the service root.

        There is no reliable default for the principal, so a missing or
        malformed reference is a hard failure of this stage.

        Raises:
            DiscoveryError: stage ``PRINCIPAL``
        """
        root_url = self.root_url
        logger.debug("Resolving principal for %s at %s", credentials.masked_identity, root_url)

        payload = await self._propfind(
            DiscoveryStage.PRINCIPAL,
            root_url,
            credentials,
            dav_xml.CURRENT_USER_PRINCIPAL_BODY,
            depth="0",
        )
        principal_url = dav_xml.extract_principal_href(dav_xml.parse_multistatus(payload), root_url)
        if principal_url is None:
            raise DiscoveryError(
                "Response did not contain a current-user-principal reference",
                DiscoveryStage.PRINCIPAL,
            )

        logger.info("Resolved principal: %s", principal_url)
        return principal_url

    def fallback_calendar_home(self, principal_url: str, credentials: Credentials) -> str:
        """Build the calendar-home URL from the configured template.

        The pattern is a heuristic; see ``calendar_home_template`` in settings.
        """
        return self.settings.calendar_home_template.format(
            root=self.root_url,
            local_part=credentials.local_part,
            principal=principal_url,
        )

    async def _resolve_calendar_home(
        self, principal_url: str, credentials: Credentials
    ) -> tuple[str, bool]:
        payload = await self._propfind(
            DiscoveryStage.HOME,
            principal_url,
            credentials,
            dav_xml.CALENDAR_HOME_SET_BODY,
            depth="0",
        )
        home_url = dav_xml.extract_calendar_home_href(
            dav_xml.parse_multistatus(payload), principal_url
        )
        if home_url is not None:
            logger.info("Resolved calendar home: %s", home_url)
            return home_url, False

        fallback = self.fallback_calendar_home(principal_url, credentials)
        logger.warning(
            "Calendar-home-set missing or malformed, using constructed fallback: %s", fallback
        )
        return fallback, True

    async def resolve_calendar_home(self, principal_url: str, credentials: Credentials) -> str:
        """Find the calendar-home-set URL for a principal.

        Falls back to ``fallback_calendar_home`` when the response is well
        received but carries no usable reference.

        Raises:
            DiscoveryError: stage ``HOME`` on timeout, transport error or non-success status
        """
        home_url, _ = await self._resolve_calendar_home(principal_url, credentials)
        return home_url

    async def list_collections(
        self, calendar_home_url: str, credentials: Credentials
    ) -> list[CalendarRef]:
        """List the calendar collections one level below the calendar home.

        Returns:
            Calendar collections in document order; empty (not an error) when
            no entry is marked as a calendar

        Raises:
            DiscoveryError: stage ``LIST`` on timeout, transport error or non-success status
        """
        payload = await self._propfind(
            DiscoveryStage.LIST,
            calendar_home_url,
            credentials,
            dav_xml.COLLECTION_LIST_BODY,
            depth="1",
        )
        root = dav_xml.parse_multistatus(payload)
        if root is None:
            logger.warning("Collection list from %s was not well-formed XML", calendar_home_url)

        collections = dav_xml.extract_calendar_collections(root, calendar_home_url)
        logger.info("Found %d calendar collection(s)", len(collections))
        for ref in collections:
            logger.debug("Calendar %r at %s", ref.display_name, ref.url)
        return collections

    async def _check_endpoint(
        self, url: str, credentials: Credentials, body: Optional[str] = None
    ) -> tuple[EndpointCheck, Optional[str]]:
        """PROPFIND ``url`` at depth 0 and record the status, never raising on failure."""
        try:
            response = await self.transport.request(
                "PROPFIND",
                url,
                credentials,
                body=body,
                depth="0",
                timeout=self.settings.request_timeout,
            )
        except httpx.HTTPError as e:
            logger.debug("Check of %s failed: %s", url, e)
            return EndpointCheck(url=url, error=str(e) or type(e).__name__), None

        check = EndpointCheck(
            url=url,
            status_code=response.status_code,
            reason=response.reason_phrase,
            ok=response.is_success,
        )
        return check, response.text if response.is_success else None

    async def check_auth(self, credentials: Credentials) -> AuthCheck:
        """Check whether the service root accepts ``credentials``.

        Sends one bare PROPFIND and one asking for the current-user-principal,
        and reports their statuses. Authentication failures are reported, not
        raised.
        """
        root_url = self.root_url
        bare, _ = await self._check_endpoint(root_url, credentials)
        principal, payload = await self._check_endpoint(
            root_url, credentials, dav_xml.CURRENT_USER_PRINCIPAL_BODY
        )

        principal_url = None
        if payload is not None:
            principal_url = dav_xml.extract_principal_href(
                dav_xml.parse_multistatus(payload), root_url
            )

        result = AuthCheck(
            identity=credentials.masked_identity,
            bare_request=bare,
            principal_request=principal,
            principal_url=principal_url,
        )
        logger.info(
            "Auth check for %s: HTTP %s", result.identity, principal.status_code or principal.error
        )
        return result

    async def check_home_candidates(
        self,
        credentials: Credentials,
        templates: Optional[Sequence[str]] = None,
        principal_url: str = "",
    ) -> list[EndpointCheck]:
        """Try calendar-home URL patterns and report which ones the server accepts.

        Helps choose ``calendar_home_template`` for servers that omit the
        calendar-home-set property.

        Args:
            credentials: Identity/secret pair
            templates: Patterns with ``root``, ``local_part`` and ``principal``
                placeholders; defaults to common layouts plus the configured one
            principal_url: Value for the ``principal`` placeholder

        Returns:
            One check per distinct candidate URL, in template order

        Raises:
            ConfigurationError: A template uses an unknown placeholder
        """
        if not templates:
            templates = [*DEFAULT_HOME_CANDIDATES, self.settings.calendar_home_template]

        urls: list[str] = []
        for template in templates:
            try:
                url = template.format(
                    root=self.root_url, local_part=credentials.local_part, principal=principal_url
                )
            except (KeyError, IndexError, ValueError) as e:
                raise ConfigurationError(f"Invalid calendar-home template {template!r}: {e}") from e
            if url not in urls:
                urls.append(url)

        checks = []
        for url in urls:
            check, _ = await self._check_endpoint(url, credentials)
            logger.info("Candidate %s: %s", url, check.status_code or check.error)
            checks.append(check)
        return checks

    async def discover(
        self, credentials: Credentials, principal_url: Optional[str] = None
    ) -> DiscoverySession:
        """Run all three stages and return a fresh session.

        Args:
            credentials: Identity/secret pair, used only for this call
            principal_url: Skip principal resolution when already known

        Raises:
            DiscoveryError: from whichever stage failed
        """
        if principal_url is None:
            principal_url = await self.resolve_principal(credentials)
        home_url, from_fallback = await self._resolve_calendar_home(principal_url, credentials)
        collections = await self.list_collections(home_url, credentials)
        return DiscoverySession(
            principal_url=principal_url,
            calendar_home_url=home_url,
            home_from_fallback=from_fallback,
            collections=collections,
        )
