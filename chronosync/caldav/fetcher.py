"""Range-bounded retrieval of calendar objects from discovered collections."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional, Sequence

import httpx

from . import dav_xml
from .exceptions import FetchError
from .models import CalendarRef, Credentials, RawCalendarObject, TimeWindow
from .transport import CalDAVTransport

logger = logging.getLogger(__name__)

MAX_FETCH_CONCURRENCY = 5


class EventFetcher:
    """Issues one calendar-query REPORT per collection with bounded fan-out."""

    def __init__(self, transport: CalDAVTransport, settings: Any) -> None:
        """Initialize event fetcher.

        Args:
            transport: Transport used for every request
            settings: Application settings (``request_timeout``, ``fetch_concurrency``,
                ``window_past_days``, ``window_future_days``)
        """
        self.transport = transport
        self.settings = settings

    @property
    def concurrency(self) -> int:
        value = int(getattr(self.settings, "fetch_concurrency", 3))
        return max(1, min(value, MAX_FETCH_CONCURRENCY))

    def window_for(self, now: datetime) -> TimeWindow:
        """Query window around ``now`` from the configured day offsets."""
        return TimeWindow.around(
            now, self.settings.window_past_days, self.settings.window_future_days
        )

    async def fetch_collection(
        self, ref: CalendarRef, credentials: Credentials, window: TimeWindow
    ) -> list[RawCalendarObject]:
        """Fetch the calendar objects of one collection that overlap ``window``.

        Raises:
            FetchError: On timeout, transport error or non-success status
        """
        try:
            response = await self.transport.request(
                "REPORT",
                ref.url,
                credentials,
                body=dav_xml.build_calendar_query_body(window),
                depth="1",
                timeout=self.settings.request_timeout,
            )
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Timed out after {self.settings.request_timeout}s", ref.url
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Transport error: {e}", ref.url) from e

        if not response.is_success:
            raise FetchError(
                f"HTTP {response.status_code}", ref.url, status_code=response.status_code
            )

        blocks = dav_xml.extract_calendar_data(dav_xml.parse_multistatus(response.text))
        objects = [
            RawCalendarObject(source_collection=ref.url, text=text, etag=etag)
            for text, etag in blocks
        ]
        logger.debug("Collection %r returned %d object(s)", ref.display_name, len(objects))
        return objects

    async def _fetch_bounded(
        self,
        semaphore: asyncio.Semaphore,
        ref: CalendarRef,
        credentials: Credentials,
        window: TimeWindow,
    ) -> list[RawCalendarObject]:
        async with semaphore:
            return await self.fetch_collection(ref, credentials, window)

    async def fetch_all(
        self,
        refs: Sequence[CalendarRef],
        credentials: Credentials,
        now: datetime,
        window: Optional[TimeWindow] = None,
    ) -> list[RawCalendarObject]:
        """Fetch every collection, skipping the ones that fail.

        Args:
            refs: Collections to query
            credentials: Identity/secret pair for this session
            now: Reference time for the query window
            window: Explicit window overriding the configured one

        Returns:
            Concatenated objects of all collections that answered, no ordering
            guarantee; empty when every collection failed
        """
        if not refs:
            return []

        window = window or self.window_for(now)
        logger.info(
            "Fetching %d collection(s) between %s and %s",
            len(refs),
            window.compact_start,
            window.compact_end,
        )

        semaphore = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(
            *(self._fetch_bounded(semaphore, ref, credentials, window) for ref in refs),
            return_exceptions=True,
        )

        objects: list[RawCalendarObject] = []
        failures = 0
        for ref, result in zip(refs, results):
            if isinstance(result, FetchError):
                failures += 1
                logger.warning("Skipping collection %r: %s", ref.display_name, result.message)
                continue
            if isinstance(result, BaseException):
                raise result
            objects.extend(result)

        if failures == len(refs):
            logger.warning(
                "Every one of %d collection fetch(es) failed, no objects retrieved", failures
            )
            return objects

        logger.info(
            "Fetched %d object(s) from %d of %d collection(s)",
            len(objects),
            len(refs) - failures,
            len(refs),
        )
        return objects
