"""Calendar-object normalization and the event output contract."""

from .models import (
    NormalizedEvent,
    SyncResult,
    SyncSource,
    dump_events_json,
    load_events_json,
    sort_events,
)
from .normalizer import ICSNormalizer

__all__ = [
    "ICSNormalizer",
    "NormalizedEvent",
    "SyncResult",
    "SyncSource",
    "dump_events_json",
    "load_events_json",
    "sort_events",
]
