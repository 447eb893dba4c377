"""Async HTTP transport for WebDAV/CalDAV requests."""

import logging
from typing import Any, Optional

import httpx

from .models import Credentials

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "chronosync/1.0.0 CalDAV-Client",
    "Accept": "application/xml, text/xml, text/calendar, */*",
    "Accept-Charset": "utf-8",
}

XML_CONTENT_TYPE = "application/xml; charset=utf-8"


class CalDAVTransport:
    """Thin async wrapper around ``httpx.AsyncClient`` for DAV methods.

    Every call carries its own timeout and the basic-auth header derived from
    the credentials passed to that call. Nothing is retried here; callers
    decide what a failure means for their stage.
    """

    def __init__(self, settings: Any, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize transport.

        Args:
            settings: Application settings (uses ``request_timeout``)
            client: Optional externally owned client, left open on exit
        """
        self.settings = settings
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

        logger.debug("CalDAV transport initialized (external_client: %s)", not self._owns_client)

    async def __aenter__(self) -> "CalDAVTransport":
        """Async context manager entry."""
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client exists."""
        if self.client is None or self.client.is_closed:
            request_timeout = float(getattr(self.settings, "request_timeout", 5.0))
            self.client = httpx.AsyncClient(
                timeout=httpx.Timeout(request_timeout),
                follow_redirects=True,
                verify=True,
                headers=DEFAULT_HEADERS,
            )
            self._owns_client = True
        return self.client

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self.client is not None and self._owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed CalDAV HTTP client")
        if self._owns_client:
            self.client = None

    async def request(
        self,
        method: str,
        url: str,
        credentials: Credentials,
        body: Optional[str] = None,
        depth: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """Send one DAV request.

        Args:
            method: HTTP method, e.g. ``PROPFIND`` or ``REPORT``
            url: Absolute request URL
            credentials: Identity/secret pair encoded as basic auth
            body: Optional XML request body
            depth: Optional ``Depth`` header value ("0" or "1")
            timeout: Per-call timeout in seconds (defaults to ``request_timeout``)

        Returns:
            The raw response, whatever its status

        Raises:
            httpx.TimeoutException: The call exceeded its timeout
            httpx.HTTPError: Transport-level failure (DNS, connection, TLS)
        """
        client = self._ensure_client()

        headers = credentials.get_headers()
        if body is not None:
            headers["Content-Type"] = XML_CONTENT_TYPE
        if depth is not None:
            headers["Depth"] = depth

        effective_timeout = timeout if timeout is not None else self.settings.request_timeout

        logger.debug("%s %s (depth=%s, timeout=%.1fs)", method, url, depth, effective_timeout)
        response = await client.request(
            method,
            url,
            headers=headers,
            content=body.encode("utf-8") if body is not None else None,
            timeout=effective_timeout,
        )
        logger.debug("%s %s -> HTTP %d", method, url, response.status_code)
        return response

    async def probe(self, url: str, timeout: float) -> bool:
        """Check whether the service root answers at all within ``timeout``.

        Any HTTP answer below 500 counts as reachable, including 401/405:
        the server is up even if it refuses this particular request.

        Returns:
            True if reachable, False on timeout, transport error or 5xx
        """
        client = self._ensure_client()
        try:
            response = await client.request("OPTIONS", url, timeout=timeout)
        except httpx.TimeoutException:
            logger.warning("Reachability probe timed out after %.1fs: %s", timeout, url)
            return False
        except httpx.HTTPError as e:
            logger.warning("Reachability probe failed for %s: %s", url, e)
            return False

        if response.status_code >= 500:
            logger.warning("Reachability probe got HTTP %d from %s", response.status_code, url)
            return False

        logger.debug("Reachability probe succeeded (HTTP %d)", response.status_code)
        return True
