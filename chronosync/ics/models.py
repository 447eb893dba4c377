"""Normalized event records and the sync result contract."""

from datetime import datetime
from enum import Enum
from typing import Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_SUMMARY = "Untitled Event"


class SyncSource(str, Enum):
    """Where the events of a sync result came from."""

    LIVE = "LIVE"
    SIMULATED = "SIMULATED"


class NormalizedEvent(BaseModel):
    """One calendar event, independent of where it was parsed from.

    ``end`` is not checked against ``start``; values are passed
    through as the source provided them.
    """

    uid: Optional[str] = Field(default=None, description="Event UID, absent for some sources")
    summary: str = Field(default=DEFAULT_SUMMARY, description="Event title")
    start: datetime = Field(..., description="Timezone-aware start")
    end: datetime = Field(..., description="Timezone-aware end")
    description: str = Field(default="", description="Free-text description")
    is_recurring: bool = Field(default=False, description="Event carries a repetition rule")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @field_validator("summary", mode="before")
    @classmethod
    def _default_summary(cls, value: Optional[str]) -> str:
        if value is None or not str(value).strip():
            return DEFAULT_SUMMARY
        return str(value)

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, value: Optional[str]) -> str:
        return "" if value is None else str(value)

    @field_validator("start", "end")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        # Naive values are local wall-clock time
        return value if value.tzinfo is not None else value.astimezone()

    @field_serializer("start", "end")
    def serialize_datetime(self, value: datetime) -> str:
        return value.isoformat()


class SyncResult(BaseModel):
    """Outcome of one orchestrated sync."""

    source: SyncSource
    events: list[NormalizedEvent] = Field(default_factory=list)
    synced_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_serializer("synced_at")
    def serialize_synced_at(self, value: datetime) -> str:
        return value.isoformat()

    @property
    def is_live(self) -> bool:
        return self.source == SyncSource.LIVE


_EVENT_LIST = TypeAdapter(list[NormalizedEvent])


def sort_events(events: Sequence[NormalizedEvent]) -> list[NormalizedEvent]:
    """Stable ascending sort by ``start``."""
    return sorted(events, key=lambda event: event.start)


def dump_events_json(events: Sequence[NormalizedEvent], indent: Optional[int] = 2) -> str:
    """Render events as the JSON array consumed by external collaborators.

    Keys follow the camelCase contract: ``uid``, ``summary``, ``start``,
    ``end``, ``description``, ``isRecurring``. Timestamps are ISO-8601.
    """
    return _EVENT_LIST.dump_json(list(events), by_alias=True, indent=indent).decode("utf-8")


def load_events_json(payload: Union[str, bytes]) -> list[NormalizedEvent]:
    """Validate a JSON array in the output-contract shape, e.g. from a native calendar bridge.

    Raises:
        pydantic.ValidationError: The payload is not a list of event objects
    """
    return _EVENT_LIST.validate_json(payload)
