"""Deterministic local dataset used when the live calendar service is unavailable."""

import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Optional

from ..caldav.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_FALLBACK_TEMPLATE = """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//chronosync//fallback//EN
BEGIN:VEVENT
UID:icloud-demo-1
SUMMARY:Algorithm Class
DESCRIPTION:Advanced Graph Theory
DTSTART:{today}T090000
DTEND:{today}T110000
RRULE:FREQ=WEEKLY
END:VEVENT
BEGIN:VEVENT
UID:icloud-demo-2
SUMMARY:Team Sync
DTSTART:{today}T140000
DTEND:{today}T150000
END:VEVENT
BEGIN:VEVENT
UID:icloud-demo-3
SUMMARY:Urgent: Fix Deploy
DTSTART:{tomorrow}T100000
DTEND:{tomorrow}T120000
END:VEVENT
END:VCALENDAR
"""


def build_fallback_ics(today: date) -> str:
    """Render the built-in dataset for ``today``.

    Three events: a weekly class today 09:00-11:00, a sync today
    14:00-15:00 and an urgent task tomorrow 10:00-12:00, all floating
    local times. The same date always yields the same text.
    """
    return _FALLBACK_TEMPLATE.format(
        today=today.strftime("%Y%m%d"),
        tomorrow=(today + timedelta(days=1)).strftime("%Y%m%d"),
    )


def load_fallback_ics(today: date, path: Optional[Any] = None) -> str:
    """Return the fallback calendar text, from ``path`` when one is configured.

    Raises:
        ConfigurationError: A configured file cannot be read
    """
    if not path:
        return build_fallback_ics(today)

    file_path = Path(path).expanduser()
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read fallback calendar {file_path}: {e}") from e

    logger.debug("Loaded fallback calendar from %s (%d bytes)", file_path, len(text))
    return text
