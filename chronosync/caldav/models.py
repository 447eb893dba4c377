"""Data models for CalDAV discovery and fetching."""

import base64
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Credentials(BaseModel):
    """Identity and secret pair for one sync session.

    The secret is held as a ``SecretStr`` so that it never shows up in
    ``repr``/``str`` output or in log lines that format the model.
    """

    username: str = Field(..., min_length=1, description="Account identity, usually an email")
    password: SecretStr = Field(..., description="Account secret or app-specific password")

    model_config = ConfigDict(frozen=True)

    @property
    def local_part(self) -> str:
        """Identity up to the ``@`` sign."""
        return self.username.split("@", 1)[0]

    @property
    def masked_identity(self) -> str:
        """Identity safe to include in log output."""
        return f"{self.username[:3]}***"

    def get_headers(self) -> dict[str, str]:
        """Get HTTP headers for basic authentication."""
        raw = f"{self.username}:{self.password.get_secret_value()}"
        encoded = base64.b64encode(raw.encode()).decode()
        return {"Authorization": f"Basic {encoded}"}


class CalendarRef(BaseModel):
    """One fetchable calendar collection."""

    url: str = Field(..., description="Absolute collection endpoint URL")
    display_name: str = Field(default="Unknown", description="Collection display name")

    model_config = ConfigDict(frozen=True)


class DiscoverySession(BaseModel):
    """Result of resolving credentials to a set of calendar collections.

    Rebuilt on every sync and never cached, remote topology may change
    between calls.
    """

    principal_url: str
    calendar_home_url: str
    home_from_fallback: bool = False
    collections: list[CalendarRef] = Field(default_factory=list)


class RawCalendarObject(BaseModel):
    """Calendar-object text as returned by a collection's range query."""

    source_collection: str
    text: str
    etag: Optional[str] = None


class TimeWindow(BaseModel):
    """UTC time range used to bound a calendar-query."""

    start: datetime
    end: datetime

    @classmethod
    def around(cls, now: datetime, past_days: int, future_days: int) -> "TimeWindow":
        """Build a window spanning ``past_days`` before and ``future_days`` after ``now``."""
        if now.tzinfo is None:
            now = now.astimezone()
        now = now.astimezone(timezone.utc)
        return cls(start=now - timedelta(days=past_days), end=now + timedelta(days=future_days))

    @staticmethod
    def _compact(value: datetime) -> str:
        return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")

    @property
    def compact_start(self) -> str:
        """Window start in compact UTC form, e.g. ``20240315T090000Z``."""
        return self._compact(self.start)

    @property
    def compact_end(self) -> str:
        """Window end in compact UTC form."""
        return self._compact(self.end)


class EndpointCheck(BaseModel):
    """Status of one diagnostic PROPFIND against a single URL."""

    url: str
    status_code: Optional[int] = None
    reason: str = ""
    ok: bool = False
    error: Optional[str] = None


class AuthCheck(BaseModel):
    """Outcome of checking a credential pair against the service root.

    Only the masked identity and response statuses are kept; no secret or
    response body is carried.
    """

    identity: str
    bare_request: EndpointCheck
    principal_request: EndpointCheck
    principal_url: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.principal_request.ok
