"""WebDAV/CalDAV request bodies and multistatus response parsing.

Builders return the exact XML bodies sent with PROPFIND and REPORT requests.
Parsers work on ``xml.etree.ElementTree`` trees and are namespace-aware, so
servers that pick different prefixes (``d:``, ``D:``, ``C:``, none) all work.
"""

import logging
import xml.etree.ElementTree as ET
from typing import Optional
from urllib.parse import urljoin

from .models import CalendarRef, TimeWindow

logger = logging.getLogger(__name__)

NS_DAV = "DAV:"
NS_CALDAV = "urn:ietf:params:xml:ns:caldav"

_DAV = f"{{{NS_DAV}}}"
_CAL = f"{{{NS_CALDAV}}}"

CURRENT_USER_PRINCIPAL_BODY = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:">
  <d:prop>
    <d:current-user-principal />
  </d:prop>
</d:propfind>"""

CALENDAR_HOME_SET_BODY = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <c:calendar-home-set />
  </d:prop>
</d:propfind>"""

COLLECTION_LIST_BODY = """<?xml version="1.0" encoding="utf-8" ?>
<d:propfind xmlns:d="DAV:" xmlns:c="urn:ietf:params:xml:ns:caldav">
  <d:prop>
    <d:displayname />
    <d:resourcetype />
  </d:prop>
</d:propfind>"""

_CALENDAR_QUERY_TEMPLATE = """<?xml version="1.0" encoding="utf-8" ?>
<C:calendar-query xmlns:D="DAV:" xmlns:C="urn:ietf:params:xml:ns:caldav">
  <D:prop>
    <D:getetag/>
    <C:calendar-data/>
  </D:prop>
  <C:filter>
    <C:comp-filter name="VCALENDAR">
      <C:comp-filter name="VEVENT">
        <C:time-range start="{start}" end="{end}"/>
      </C:comp-filter>
    </C:comp-filter>
  </C:filter>
</C:calendar-query>"""


def build_calendar_query_body(window: TimeWindow) -> str:
    """Build a REPORT body that selects VEVENTs overlapping ``window``."""
    return _CALENDAR_QUERY_TEMPLATE.format(start=window.compact_start, end=window.compact_end)


def parse_multistatus(payload: str) -> Optional[ET.Element]:
    """Parse a multistatus document, returning None when it is not well-formed XML."""
    if not payload or not payload.strip():
        return None
    try:
        return ET.fromstring(payload.encode("utf-8"))
    except ET.ParseError as e:
        logger.debug("Unparseable multistatus body: %s", e)
        return None


def extract_property_href(root: Optional[ET.Element], prop_name: str, base_url: str) -> Optional[str]:
    """Find the first ``href`` nested in a property and resolve it against ``base_url``.

    Args:
        root: Parsed multistatus document (None is treated as "not found")
        prop_name: Qualified property name, e.g. ``{DAV:}current-user-principal``
        base_url: URL of the request that produced the document

    Returns:
        Absolute URL, or None when the property or its href is missing/empty
    """
    if root is None:
        return None
    for prop in root.iter(prop_name):
        href = (prop.findtext(f"{_DAV}href") or "").strip()
        if href:
            return urljoin(base_url, href)
    return None


def extract_principal_href(root: Optional[ET.Element], base_url: str) -> Optional[str]:
    return extract_property_href(root, f"{_DAV}current-user-principal", base_url)


def extract_calendar_home_href(root: Optional[ET.Element], base_url: str) -> Optional[str]:
    return extract_property_href(root, f"{_CAL}calendar-home-set", base_url)


def _is_calendar_collection(response: ET.Element) -> bool:
    for resource_type in response.iter(f"{_DAV}resourcetype"):
        if resource_type.find(f"{_CAL}calendar") is not None:
            return True
    return False


def extract_calendar_collections(root: Optional[ET.Element], base_url: str) -> list[CalendarRef]:
    """Collect the responses whose resource type marks a calendar collection.

    Entries without an href are skipped. Order follows the document.
    """
    if root is None:
        return []

    collections: list[CalendarRef] = []
    for response in root.iter(f"{_DAV}response"):
        if not _is_calendar_collection(response):
            continue
        href = (response.findtext(f"{_DAV}href") or "").strip()
        if not href:
            continue
        name = ""
        for display_name in response.iter(f"{_DAV}displayname"):
            name = (display_name.text or "").strip()
            if name:
                break
        collections.append(
            CalendarRef(url=urljoin(base_url, href), display_name=name or "Unknown")
        )
    return collections


def extract_calendar_data(root: Optional[ET.Element]) -> list[tuple[str, Optional[str]]]:
    """Pull embedded calendar-object text blocks out of a REPORT response.

    Returns:
        ``(text, etag)`` pairs, one per response that carries non-empty data
    """
    if root is None:
        return []

    blocks: list[tuple[str, Optional[str]]] = []
    for response in root.iter(f"{_DAV}response"):
        etag = None
        for etag_elem in response.iter(f"{_DAV}getetag"):
            etag = (etag_elem.text or "").strip() or None
            break
        for data in response.iter(f"{_CAL}calendar-data"):
            text = (data.text or "").strip()
            if text:
                blocks.append((text, etag))
    return blocks
