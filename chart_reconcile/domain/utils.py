"""Domain Utilities - Date handling and identifier helpers.

This module provides the small pure helpers shared by the merge engine, the
conflict detector and the Tier-1 analyzers: lenient ISO-8601 parsing, time
window checks, newest-first sort keys, and the per-run sequential identifier
generator.

Architecture:
    - Pure functions with no I/O
    - Missing or malformed dates degrade to None, never to an exception
"""

import re
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_YEAR_MONTH = re.compile(r"^\d{4}-\d{2}$")
_YEAR_ONLY = re.compile(r"^\d{4}$")


def parse_clinical_datetime(value: Optional[Union[str, date, datetime]]) -> Optional[datetime]:
    """Parse an ISO-8601 date or timestamp into an aware UTC datetime.

    Date-only values are read as midnight UTC. Partial dates ("2024", "2024-03")
    are read as the first day of the period. Naive timestamps are assumed UTC.

    Parameters:
        value: ISO-8601 string, date, datetime, or None

    Returns:
        Optional[datetime]: Parsed timestamp, or None if missing or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if _YEAR_ONLY.match(text):
        text = f"{text}-01-01"
    elif _YEAR_MONTH.match(text):
        text = f"{text}-01"

    try:
        if _DATE_ONLY.match(text):
            parsed = datetime.strptime(text, "%Y-%m-%d")
        else:
            if text.endswith("Z") or text.endswith("z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def coerce_date_text(value: Any) -> Optional[str]:
    """Normalize a raw date value from a source document to text.

    Strings are kept as reported and parsed on demand. Dates and datetimes
    become ISO-8601 text. Integers are read as compact ``YYYYMMDD`` (or a bare
    year). Anything else, or a number that is not a readable date, is None.
    """
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, bool) or not isinstance(value, int):
        return None

    digits = str(value)
    if len(digits) == 8:
        text = f"{digits[:4]}-{digits[4:6]}-{digits[6:]}"
    elif len(digits) == 4:
        text = digits
    else:
        return None
    return text if parse_clinical_datetime(text) is not None else None


def within_window(first: Optional[str], second: Optional[str], window: timedelta) -> bool:
    """Check whether two dates fall within ``window`` of each other.

    Returns False if either date is missing or unparseable; a record without a
    usable date never matches on time.
    """
    a = parse_clinical_datetime(first)
    b = parse_clinical_datetime(second)
    if a is None or b is None:
        return False
    return abs(a - b) <= window


def newest_first_key(value: Optional[str]) -> tuple:
    """Sort key placing the most recent dates first and undated records last."""
    parsed = parse_clinical_datetime(value)
    if parsed is None:
        return (1, 0.0)
    return (0, -parsed.timestamp())


def months_between(earlier: date, later: date) -> int:
    """Whole calendar months from ``earlier`` to ``later`` (year*12 + month difference)."""
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)


def to_date(value: Optional[Union[str, date, datetime]]) -> Optional[date]:
    """Parse a value to a calendar date (UTC), or None."""
    parsed = parse_clinical_datetime(value)
    return parsed.date() if parsed else None


class SequentialIdGenerator:
    """Human-readable, per-run sequential identifiers.

    Produces ids such as ``conflict-allergy-gap-1`` or ``ddi-3``. Each kind
    has its own counter. A fresh generator (or ``reset()``) restarts every
    counter at 1, so identical input yields identical ids across runs.

    Parameters:
        prefix: Leading label joined to the kind with a dash (e.g. "conflict")
    """

    def __init__(self, prefix: Optional[str] = None):
        self.prefix = prefix
        self._counters: dict[str, int] = defaultdict(int)

    def next(self, kind: str = "") -> str:
        self._counters[kind] += 1
        parts = [p for p in (self.prefix, kind) if p]
        return f"{'-'.join(parts)}-{self._counters[kind]}"

    def reset(self) -> None:
        self._counters.clear()
