"""
Display formatting for Amadeus durations and timestamps.
Both helpers fall back to something printable instead of raising.
"""
import re
from datetime import datetime
from typing import Any

from app.models.flight_models import FormattedDateTime

_DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?")


def format_duration(duration: Any) -> str:
    """
    'PT2H30M' -> '2h 30m', 'PT5H' -> '5h', 'PT45M' -> '45m'.
    Strings without hour or minute parts are returned unchanged; anything
    that is not a non-empty string is "Unknown duration".
    """
    if not isinstance(duration, str) or not duration:
        return "Unknown duration"

    match = _DURATION_RE.search(duration)
    if not match or (match.group(1) is None and match.group(2) is None):
        return duration

    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)

    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def format_date_time(value: Any) -> FormattedDateTime:
    """
    '2024-12-01T10:00:00' -> date 'Dec 1, 2024', time '10:00 AM'.
    Amadeus timestamps are airport-local, so the wall clock is kept as is.
    Non-string values are treated like a missing timestamp.
    """
    if not isinstance(value, str) or not value:
        return FormattedDateTime(
            date="Unknown date",
            time="Unknown time",
            full="Unknown date/time"
        )

    try:
        parsed = _parse_timestamp(value)
    except ValueError:
        date_part, _, time_part = value.partition("T")
        return FormattedDateTime(
            date=date_part or "Unknown date",
            time=time_part[:5] or "Unknown time",
            full=value
        )

    date_text = f"{parsed:%b} {parsed.day}, {parsed.year}"
    time_text = parsed.strftime("%I:%M %p")
    return FormattedDateTime(
        date=date_text,
        time=time_text,
        full=f"{date_text}, {time_text}"
    )
