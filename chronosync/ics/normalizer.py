"""Conversion of raw calendar-object text into NormalizedEvent records.

Two modes share one output contract:

* structured mode parses the text into an ``icalendar`` component tree and
  reads the first VEVENT, applying per-field defaults;
* line mode scans ``BEGIN:VEVENT``/``END:VEVENT`` blocks directly and
  discards any event missing a summary, start or end.

Each object is normalized in isolation. A malformed object yields ``None``
and never aborts a batch.
"""

import logging
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Callable, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar import Calendar
from icalendar.prop import vDDDTypes

from ..caldav.exceptions import ConfigurationError, ParseError
from .models import NormalizedEvent

logger = logging.getLogger(__name__)

# YYYYMMDD with optional THHMM[SS] and optional UTC marker
_COMPACT_DATETIME = re.compile(
    r"^(?P<year>\d{4})(?P<month>\d{2})(?P<day>\d{2})"
    r"(?:T(?P<hour>\d{2})(?P<minute>\d{2})(?P<second>\d{2})?)?"
    r"(?P<utc>Z)?$"
)

_TZID_PARAM = re.compile(r";TZID=([^;:]+)", re.IGNORECASE)


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Look up an IANA zone name, None meaning the system local zone.

    Raises:
        ConfigurationError: The name is not a known zone
    """
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone: {name}") from e


class ICSNormalizer:
    """Normalizes calendar objects into timezone-aware ``NormalizedEvent``s.

    Floating times and all-day dates are read as wall-clock time in the
    configured zone (system local when unset). Every resulting timestamp is
    expressed in that zone.
    """

    def __init__(
        self,
        settings: Any = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize normalizer.

        Args:
            settings: Application settings (uses ``timezone``), optional
            clock: Callable returning "now", used for unparseable timestamps
        """
        self.tz = resolve_timezone(getattr(settings, "timezone", None))
        self._clock = clock or (lambda: datetime.now().astimezone())

    def now(self) -> datetime:
        return self.localize(self._clock())

    def localize(self, value: datetime) -> datetime:
        """Express ``value`` in the configured zone, treating naive values as wall-clock."""
        if value.tzinfo is None:
            if self.tz is None:
                return value.astimezone()
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz) if self.tz is not None else value.astimezone()

    def _localize_any(self, value: Any) -> Optional[datetime]:
        """Localize a date or datetime, or None when it is neither or falls outside the range."""
        try:
            if isinstance(value, datetime):
                return self.localize(value)
            if isinstance(value, date):
                return self.localize(datetime.combine(value, time.min))
        except (OverflowError, ValueError) as e:
            logger.debug("Timestamp %r not representable in target zone: %s", value, e)
        return None

    # Structured mode

    @staticmethod
    def _first(value: Any) -> Any:
        """First value of a property that icalendar returned as a list because it repeats."""
        if isinstance(value, list):
            return value[0] if value else None
        return value

    def _resolve_timestamp(self, prop: Any) -> Optional[datetime]:
        """Resolve a DTSTART/DTEND property to a timestamp, or None when absent or unusable."""
        prop = self._first(prop)
        if not isinstance(prop, vDDDTypes):
            return None
        return self._localize_any(prop.dt)

    @staticmethod
    def _text(prop: Any) -> Optional[str]:
        prop = ICSNormalizer._first(prop)
        return str(prop) if prop is not None else None

    def _parse_structured(self, text: str) -> NormalizedEvent:
        try:
            calendar = Calendar.from_ical(text)
        except Exception as e:
            raise ParseError(f"Unparseable calendar object: {e}") from e

        events = calendar.walk("VEVENT")
        if not events:
            raise ParseError("Calendar object contains no VEVENT")
        component = events[0]

        start = self._resolve_timestamp(component.get("DTSTART"))
        end = self._resolve_timestamp(component.get("DTEND"))
        if end is None and start is not None:
            duration = self._first(component.get("DURATION"))
            if duration is not None and isinstance(getattr(duration, "dt", None), timedelta):
                try:
                    end = start + duration.dt
                except OverflowError:
                    end = None

        return NormalizedEvent(
            uid=self._text(component.get("UID")),
            summary=self._text(component.get("SUMMARY")) or "",
            start=start or self.now(),
            end=end or self.now(),
            description=self._text(component.get("DESCRIPTION")) or "",
            is_recurring="RRULE" in component,
        )

    def normalize_structured(
        self, text: str, label: Optional[str] = None
    ) -> Optional[NormalizedEvent]:
        """Normalize one calendar object through the ``icalendar`` component tree.

        Absent fields take their defaults: summary ``"Untitled Event"``,
        start/end the current time, empty description. Repeated properties
        contribute their first value.

        Args:
            text: Calendar-object text
            label: Identifies the object in the discard warning, e.g. its ETag

        Returns:
            The event, or None if the text is not a calendar object with a VEVENT
        """
        try:
            return self._parse_structured(text)
        except ParseError as e:
            logger.warning("Discarding calendar object %s: %s", label or "<unlabelled>", e.message)
        except Exception as e:
            logger.warning(
                "Discarding calendar object %s: %s: %s",
                label or "<unlabelled>",
                type(e).__name__,
                e,
            )
        return None

    def normalize_structured_batch(self, texts: Iterable[str]) -> list[NormalizedEvent]:
        """Normalize each text independently, keeping the successes in input order."""
        results = []
        for text in texts:
            event = self.normalize_structured(text)
            if event is not None:
                results.append(event)
        return results

    # Line mode

    def parse_compact_datetime(self, value: str, tz_name: Optional[str] = None) -> datetime:
        """Parse ``YYYYMMDD[THHMM[SS]][Z]``.

        A trailing ``Z`` marks UTC; otherwise the value is wall-clock time in
        ``tz_name`` when that names a known zone, else in the configured zone.

        Raises:
            ParseError: The value does not match the compact encoding or cannot
                be expressed in the configured zone
        """
        match = _COMPACT_DATETIME.match(value.strip())
        if match is None:
            raise ParseError(f"Invalid date-time value: {value!r}")

        parts = match.groupdict()
        try:
            parsed = datetime(
                int(parts["year"]),
                int(parts["month"]),
                int(parts["day"]),
                int(parts["hour"] or 0),
                int(parts["minute"] or 0),
                int(parts["second"] or 0),
            )
        except ValueError as e:
            raise ParseError(f"Invalid date-time value: {value!r}") from e

        if parts["utc"]:
            parsed = parsed.replace(tzinfo=timezone.utc)
        elif tz_name:
            try:
                parsed = parsed.replace(tzinfo=ZoneInfo(tz_name))
            except (ZoneInfoNotFoundError, ValueError):
                logger.debug("Unknown TZID %r, treating %s as floating", tz_name, value)

        try:
            return self.localize(parsed)
        except (OverflowError, ValueError) as e:
            raise ParseError(f"Date-time value out of range: {value!r}") from e

    @staticmethod
    def _unfold(text: str) -> list[str]:
        lines: list[str] = []
        for line in text.splitlines():
            if line[:1] in (" ", "\t") and lines:
                lines[-1] += line[1:]
            else:
                lines.append(line)
        return lines

    def _parse_date_line(self, line: str) -> datetime:
        head, _, value = line.partition(":")
        tz_match = _TZID_PARAM.search(head)
        return self.parse_compact_datetime(value, tz_match.group(1).strip('"') if tz_match else None)

    def _finish_block(self, fields: dict[str, Any]) -> NormalizedEvent:
        missing = [name for name in ("summary", "start", "end") if not fields.get(name)]
        if missing:
            raise ParseError(f"Event missing {', '.join(missing)}")
        return NormalizedEvent(
            uid=fields.get("uid"),
            summary=fields["summary"],
            start=fields["start"],
            end=fields["end"],
            description=fields.get("description", ""),
            is_recurring=fields.get("is_recurring", False),
        )

    def parse_lines(self, text: str) -> list[NormalizedEvent]:
        """Scan every VEVENT block in ``text``, keeping only complete events."""
        events: list[NormalizedEvent] = []
        fields: Optional[dict[str, Any]] = None

        for raw_line in self._unfold(text):
            line = raw_line.strip()
            upper = line.upper()

            if upper == "BEGIN:VEVENT":
                fields = {}
                continue
            if fields is None:
                continue
            if upper == "END:VEVENT":
                try:
                    events.append(self._finish_block(fields))
                except ParseError as e:
                    logger.warning("Discarding event block: %s", e.message)
                fields = None
                continue

            try:
                if upper.startswith("UID:"):
                    fields["uid"] = line[4:]
                elif upper.startswith("SUMMARY:"):
                    fields["summary"] = line[8:]
                elif upper.startswith("DESCRIPTION:"):
                    fields["description"] = line[12:]
                elif upper.startswith(("DTSTART:", "DTSTART;")):
                    fields["start"] = self._parse_date_line(line)
                elif upper.startswith(("DTEND:", "DTEND;")):
                    fields["end"] = self._parse_date_line(line)
                elif upper.startswith("RRULE:"):
                    fields["is_recurring"] = True
            except ParseError as e:
                # Leaves the field unset, so the block is discarded on close
                logger.debug("Ignoring line %r: %s", line, e.message)

        return events

    def normalize_lines(self, text: str) -> Optional[NormalizedEvent]:
        """Normalize one calendar object by line scanning.

        Returns:
            The first complete event, or None when there is none
        """
        events = self.parse_lines(text)
        return events[0] if events else None

    def normalize_lines_batch(self, texts: Iterable[str]) -> list[NormalizedEvent]:
        """Line-mode counterpart of ``normalize_structured_batch``."""
        results = []
        for text in texts:
            event = self.normalize_lines(text)
            if event is not None:
                results.append(event)
        return results
