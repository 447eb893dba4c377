"""Sync orchestration: live CalDAV path with a strictly sequential local fallback."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

import httpx

from ..caldav.discovery import DiscoveryClient
from ..caldav.exceptions import ConfigurationError, DiscoveryError, DiscoveryStage, SyncError
from ..caldav.fetcher import EventFetcher
from ..caldav.models import Credentials
from ..caldav.transport import CalDAVTransport
from ..ics.models import NormalizedEvent, SyncResult, SyncSource, sort_events
from ..ics.normalizer import ICSNormalizer
from .fallback import load_fallback_ics

logger = logging.getLogger(__name__)


def _default_clock() -> datetime:
    return datetime.now().astimezone()


class SyncOrchestrator:
    """Runs one sync per call and always returns a ``SyncResult``.

    The sequence is probe, then the live path (discovery, fetch, structured
    normalization) under one session timeout, then the fallback dataset in
    line mode if the probe or any live stage failed. The two paths never run
    concurrently and live results are never mixed with fallback results.
    """

    def __init__(
        self,
        settings: Any,
        transport: Optional[CalDAVTransport] = None,
        normalizer: Optional[ICSNormalizer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize sync orchestrator.

        Args:
            settings: Application settings
            transport: Optional transport, created from settings when omitted
            normalizer: Optional normalizer, created from settings when omitted
            clock: Callable returning the current time, for tests
        """
        self.settings = settings
        self.clock = clock or _default_clock
        self.transport = transport or CalDAVTransport(settings)
        self.normalizer = normalizer or ICSNormalizer(settings, clock=self.clock)
        self.discovery = DiscoveryClient(self.transport, settings)
        self.fetcher = EventFetcher(self.transport, settings)

    async def __aenter__(self) -> "SyncOrchestrator":
        await self.transport.__aenter__()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.transport.aclose()

    async def probe(self) -> bool:
        """Reachability check bounded by ``probe_timeout``."""
        timeout = self.settings.probe_timeout
        try:
            return await asyncio.wait_for(
                self.transport.probe(str(self.settings.caldav_url), timeout), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Live backend probe exceeded %.1fs", timeout)
            return False

    async def run_live(self, credentials: Credentials, now: datetime) -> list[NormalizedEvent]:
        """Discovery, fetch and structured normalization, without any fallback.

        Raises:
            DiscoveryError: A discovery stage failed or no calendar collections exist
        """
        session = await self.discovery.discover(credentials)
        if not session.collections:
            raise DiscoveryError(
                f"No calendar collections under {session.calendar_home_url}",
                DiscoveryStage.LIST,
            )

        raw_objects = await self.fetcher.fetch_all(session.collections, credentials, now)
        events = []
        for obj in raw_objects:
            event = self.normalizer.normalize_structured(
                obj.text, label=f"{obj.etag or '(no etag)'} in {obj.source_collection}"
            )
            if event is not None:
                events.append(event)
        logger.info(
            "Normalized %d of %d calendar object(s) from live backend",
            len(events),
            len(raw_objects),
        )
        return events

    def run_fallback(self, now: datetime) -> list[NormalizedEvent]:
        """Normalize the local fallback dataset in line mode."""
        today = self.normalizer.localize(now).date()
        text = load_fallback_ics(today, getattr(self.settings, "fallback_ics_path", None))
        events = self.normalizer.parse_lines(text)
        logger.info("Loaded %d simulated event(s) for %s", len(events), today.isoformat())
        return events

    async def _try_live(self, credentials: Credentials, now: datetime) -> Optional[list[NormalizedEvent]]:
        if not await self.probe():
            logger.info("Live backend unreachable, using simulated data")
            return None

        session_timeout = self.settings.session_timeout
        try:
            return await asyncio.wait_for(self.run_live(credentials, now), timeout=session_timeout)
        except ConfigurationError:
            raise
        except SyncError as e:
            logger.warning("Live sync failed (%s), using simulated data", e)
        except asyncio.TimeoutError:
            logger.warning("Live sync exceeded %.1fs session budget, using simulated data", session_timeout)
        except httpx.HTTPError as e:
            logger.warning("Live sync transport error (%s), using simulated data", e)
        return None

    async def sync(
        self,
        credentials: Optional[Credentials],
        existing: Iterable[NormalizedEvent] = (),
    ) -> SyncResult:
        """Run one sync and merge its events with the caller's.

        Args:
            credentials: Identity/secret pair for this call only
            existing: Events already held by the caller, merged without de-duplication

        Returns:
            Result sorted ascending by start and tagged with its actual source

        Raises:
            ConfigurationError: Credentials are missing
        """
        if credentials is None:
            raise ConfigurationError("Calendar credentials are not configured")

        now = self.clock()
        logger.info("Starting sync for %s", credentials.masked_identity)

        fresh = await self._try_live(credentials, now)
        source = SyncSource.LIVE
        if fresh is None:
            fresh = self.run_fallback(now)
            source = SyncSource.SIMULATED

        events = sort_events([*existing, *fresh])
        result = SyncResult(source=source, events=events, synced_at=self.clock())
        logger.info("Sync complete: %d event(s) from %s", len(events), source.value)
        return result
