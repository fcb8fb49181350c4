"""iCalendar (.ics) import.

Uploaded calendar text is repaired before parsing: byte-order mark removed,
line endings normalized to CRLF, folded lines joined (RFC 5545 section 3.1),
and surrounding whitespace trimmed. The result is parsed with ``icalendar``
into a flat mapping of component records.

Outcomes:
- PARSED: at least one VEVENT
- EMPTY: nothing left after normalization
- NO_EVENTS: a valid calendar without events
- CalendarImportError: the text could not be parsed
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from icalendar import Calendar
from icalendar.error import BrokenCalendarProperty

from .calendar_utils import format_calendar_time, get_duration_minutes, is_all_day
from .exceptions import CalendarErrorKind, CalendarImportError

logger = logging.getLogger(__name__)

BOM = "\ufeff"
LINE_ENDING_PATTERN = re.compile(r"\r\n|\r|\n")
FOLD_PATTERN = re.compile(r"\r\n[ \t]")

EMPTY_MESSAGE = "The provided calendar file is empty."
NO_EVENTS_MESSAGE = "No importable events found in the file."

ERROR_MESSAGES = {
    CalendarErrorKind.MALFORMED_FORMAT: (
        "Invalid iCalendar format. The file may be corrupt or not a valid .ics file."
    ),
    CalendarErrorKind.INCONSISTENT_LINE_ENDINGS: (
        "Failed to parse the calendar file due to inconsistent line endings. "
        "Please re-export the file and try again."
    ),
}

LINE_ENDING_MARKERS = ("line break", "linebreak", "line ending")
MALFORMED_MARKERS = ("vcalendar", "parsed into parts", "component")


class ImportStatus(str, Enum):
    PARSED = "parsed"
    EMPTY = "empty"
    NO_EVENTS = "no_events"


@dataclass
class CalendarImportResult:
    """Successful import outcome, including the benign empty cases."""
    status: ImportStatus
    data: dict[str, dict[str, Any]] = field(default_factory=dict)
    normalized_text: str = ""
    message: str | None = None

    @property
    def event_count(self) -> int:
        return sum(1 for record in self.data.values() if record.get("type") == "VEVENT")


# ============================================================================
# Normalization
# ============================================================================


def normalize_ics_text(raw_text: str) -> str:
    """Repair calendar text so that it only contains unfolded CRLF lines."""
    text = LINE_ENDING_PATTERN.sub("\r\n", raw_text)

    # Joining across a blank line can expose a new fold
    while FOLD_PATTERN.search(text):
        text = FOLD_PATTERN.sub("", text)

    # str.strip() does not treat U+FEFF as whitespace
    text = text.strip()
    while text.startswith(BOM):
        text = text.lstrip(BOM).strip()
    return text


# ============================================================================
# Parsing
# ============================================================================


def classify_parse_error(error: Exception) -> CalendarImportError:
    """Translate a parser exception into a CalendarImportError."""
    detail = str(error) or error.__class__.__name__
    text = detail.lower()

    if any(marker in text for marker in LINE_ENDING_MARKERS):
        kind = CalendarErrorKind.INCONSISTENT_LINE_ENDINGS
    elif any(marker in text for marker in MALFORMED_MARKERS):
        kind = CalendarErrorKind.MALFORMED_FORMAT
    else:
        return CalendarImportError(CalendarErrorKind.UNKNOWN, detail, detail=detail)

    return CalendarImportError(kind, ERROR_MESSAGES[kind], detail=detail)


def _date_value(value: Any) -> date | None:
    """The date or datetime of a property, or None if it has none.

    Unparseable properties are kept by icalendar as broken values that
    raise on access to 'dt'.
    """
    try:
        dt = getattr(value, "dt", None)
    except BrokenCalendarProperty:
        return None
    return dt if isinstance(dt, date) else None


def _property_value(value: Any) -> Any:
    """Convert an icalendar property value into a JSON-friendly value."""
    if isinstance(value, list):
        return [_property_value(item) for item in value]

    dt = _date_value(value)
    if dt is not None:
        return format_calendar_time(dt)
    if isinstance(value, str):
        return str(value)

    raw = value.to_ical() if hasattr(value, "to_ical") else value
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw)


def component_record(component: Any) -> dict[str, Any]:
    """Build a flat record from a calendar component.

    Properties are stored under lower-cased names. Events also carry
    'start', 'end', 'datetype' and 'duration_minutes'. These derived keys
    and 'type' take precedence over properties of the same name.
    """
    record: dict[str, Any] = {}
    for name, value in component.items():
        record[name.lower()] = _property_value(value)
    record["type"] = component.name

    if component.name == "VEVENT":
        start_dt = _date_value(component.get("DTSTART"))
        end_dt = _date_value(component.get("DTEND"))

        record["start"] = format_calendar_time(start_dt)
        record["end"] = format_calendar_time(end_dt)
        record["datetype"] = "date" if is_all_day(start_dt) else "date-time"
        duration = get_duration_minutes(start_dt, end_dt)
        if duration is not None:
            record["duration_minutes"] = duration

    return record


def _component_key(component: Any, index: int) -> str:
    if component.name == "VTIMEZONE" and component.get("TZID"):
        return str(component.get("TZID"))
    uid = component.get("UID")
    if uid:
        return str(uid)
    return f"{component.name.lower()}-{index}"


def parse_calendar(text: str) -> dict[str, dict[str, Any]]:
    """Parse normalized calendar text into component records keyed by id.

    Raises:
        CalendarImportError: If the text is not a parseable VCALENDAR
    """
    upper = text.upper()
    if not upper.startswith("BEGIN:VCALENDAR"):
        raise classify_parse_error(ValueError("Invalid VCALENDAR: missing BEGIN:VCALENDAR"))
    if not upper.endswith("END:VCALENDAR"):
        raise classify_parse_error(ValueError("Invalid VCALENDAR: missing END:VCALENDAR"))

    try:
        calendar = Calendar.from_ical(text)
    except Exception as e:
        raise classify_parse_error(e) from e

    if calendar.name != "VCALENDAR":
        raise classify_parse_error(ValueError(f"Invalid VCALENDAR: root is {calendar.name}"))

    records: dict[str, dict[str, Any]] = {"vcalendar": component_record(calendar)}
    for index, component in enumerate(calendar.subcomponents):
        key = _component_key(component, index)
        # Recurrence overrides share the UID of their master event
        unique_key, suffix = key, 1
        while unique_key in records:
            unique_key = f"{key}-{suffix}"
            suffix += 1
        records[unique_key] = component_record(component)

    return records


# ============================================================================
# Import
# ============================================================================


def import_calendar(raw_text: str) -> CalendarImportResult:
    """Normalize and parse uploaded calendar text.

    Args:
        raw_text: The .ics file contents

    Returns:
        CalendarImportResult with status PARSED, EMPTY or NO_EVENTS

    Raises:
        CalendarImportError: If the text is not a valid calendar
    """
    normalized = normalize_ics_text(raw_text)
    if not normalized:
        return CalendarImportResult(
            status=ImportStatus.EMPTY,
            data={},
            normalized_text=normalized,
            message=EMPTY_MESSAGE,
        )

    try:
        data = parse_calendar(normalized)
    except CalendarImportError as e:
        logger.warning("Calendar import failed (%s): %s", e.kind.value, e.detail)
        raise

    result = CalendarImportResult(
        status=ImportStatus.PARSED,
        data=data,
        normalized_text=normalized,
    )
    if result.event_count == 0:
        result.status = ImportStatus.NO_EVENTS
        result.message = NO_EVENTS_MESSAGE

    logger.info("Imported calendar with %d events", result.event_count)
    return result
