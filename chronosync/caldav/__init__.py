"""CalDAV discovery and range-bounded event fetching."""

from .discovery import DiscoveryClient
from .exceptions import (
    ConfigurationError,
    DiscoveryError,
    DiscoveryStage,
    FetchError,
    ParseError,
    SyncError,
)
from .fetcher import EventFetcher
from .models import (
    AuthCheck,
    CalendarRef,
    Credentials,
    DiscoverySession,
    EndpointCheck,
    RawCalendarObject,
    TimeWindow,
)
from .transport import CalDAVTransport

__all__ = [
    "AuthCheck",
    "CalDAVTransport",
    "CalendarRef",
    "ConfigurationError",
    "Credentials",
    "DiscoveryClient",
    "DiscoveryError",
    "DiscoverySession",
    "DiscoveryStage",
    "EndpointCheck",
    "EventFetcher",
    "FetchError",
    "ParseError",
    "RawCalendarObject",
    "SyncError",
    "TimeWindow",
]
