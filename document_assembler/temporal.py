"""
Date and timestamp normalization.

Two canonical forms are produced:
- dates: ``YYYY-MM-DD``
- timestamps: ``YYYY-MM-DDTHH:MM:SS±HH:MM`` carrying the UTC offset of
  the instant itself (local zone for naive inputs)
"""
import logging
import re
from datetime import date, datetime
from typing import Callable, Optional

from .errors import FormatError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DAY_FIRST = re.compile(r"^(\d{1,2})([-/])(\d{1,2})\2(\d{4})$")


def system_clock() -> datetime:
    """Current instant as an aware datetime in the local zone."""
    return datetime.now().astimezone()


def parse_date_strict(value: str) -> date:
    """
    Parse ``YYYY-MM-DD``, ``DD-MM-YYYY`` or ``DD/MM/YYYY``.

    Raises:
        FormatError: if the text matches none of the shapes or is not a
            real calendar date
    """
    text = str(value).strip()
    try:
        if _ISO_DATE.match(text):
            return date.fromisoformat(text)
        match = _DAY_FIRST.match(text)
        if match:
            day, _, month, year = match.groups()
            return date(int(year), int(month), int(day))
    except ValueError as e:
        raise FormatError(f"Not a calendar date: {text!r}") from e
    raise FormatError(f"Unrecognized date format: {text!r}")


def normalize_date(value: Optional[str]) -> Optional[str]:
    """
    Convert a date-only input to ``YYYY-MM-DD``.

    Returns None for empty or unrecognized input instead of guessing.
    """
    if value is None or not str(value).strip():
        return None
    try:
        return parse_date_strict(value).isoformat()
    except FormatError as e:
        logger.warning("Dropping unparseable date: %s", e)
        return None


def format_timestamp(moment: datetime) -> str:
    """
    Render ``YYYY-MM-DDTHH:MM:SS±HH:MM``.

    Naive datetimes are read as local wall-clock time and take the
    environment's UTC offset at that instant.
    """
    if moment.tzinfo is None or moment.utcoffset() is None:
        moment = moment.astimezone()
    offset_minutes = int(moment.utcoffset().total_seconds() // 60)
    sign = "+" if offset_minutes >= 0 else "-"
    hours, minutes = divmod(abs(offset_minutes), 60)
    return f"{moment:%Y-%m-%dT%H:%M:%S}{sign}{hours:02d}:{minutes:02d}"


def parse_timestamp(text: str) -> datetime:
    """
    Parse an ISO-8601 date-time (offset optional, ``Z`` accepted).

    Raises:
        FormatError: if the text is not a date-time
    """
    candidate = str(text).strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError as e:
        raise FormatError(f"Unrecognized timestamp: {text!r}") from e


def _in_local_zone(moment: datetime) -> bool:
    """True when ``moment`` carries the local zone's offset for its wall-clock time."""
    if moment.tzinfo is None:
        return True
    return moment.replace(tzinfo=None).astimezone().utcoffset() == moment.utcoffset()


def normalize_timestamp(value: Optional[str], now: datetime) -> str:
    """
    Lenient timestamp normalization used by the resource builders.

    - empty → ``now``
    - date-time text → that instant
    - date-only text → that date at ``now``'s wall-clock time, with the
      local UTC offset on that date (``now``'s own offset when ``now`` is
      not in the local zone)
    - anything else → ``now`` (logged)
    """
    if value is None or not str(value).strip():
        return format_timestamp(now)

    text = str(value).strip()
    if "T" in text:
        try:
            return format_timestamp(parse_timestamp(text))
        except FormatError as e:
            logger.warning("Falling back to build time: %s", e)
            return format_timestamp(now)

    try:
        day = parse_date_strict(text)
    except FormatError as e:
        logger.warning("Falling back to build time: %s", e)
        return format_timestamp(now)
    if _in_local_zone(now):
        return format_timestamp(datetime.combine(day, now.time()))
    return format_timestamp(now.replace(year=day.year, month=day.month, day=day.day))
