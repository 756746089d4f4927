"""Reusable date/time phrase helpers for parsers and the meeting handlers."""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "sept": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_RELATIVE_KEYWORDS = {
    "today": 0,
    "tonight": 0,
    "tomorrow": 1,
    "day after tomorrow": 2,
}

_WEEKDAY_NAMES = "|".join(WEEKDAYS)
_MONTH_NAMES = "|".join(sorted(MONTHS, key=len, reverse=True))

_DATE_PHRASE_PATTERN = re.compile(
    r"\b(?:"
    r"(?:the\s+)?day after tomorrow|today|tonight|tomorrow"
    rf"|(?:next|this|coming)\s+(?:{_WEEKDAY_NAMES}|week|month)"
    rf"|(?:{_WEEKDAY_NAMES})"
    r"|in\s+\d+\s+(?:days?|weeks?)"
    r"|end\s+of\s+(?:the\s+)?month"
    rf"|(?:{_MONTH_NAMES})\.?\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?"
    rf"|\d{{1,2}}(?:st|nd|rd|th)?\s+(?:of\s+)?(?:{_MONTH_NAMES})(?:,?\s+\d{{4}})?"
    r"|\d{4}-\d{2}-\d{2}"
    r"|\d{1,2}/\d{1,2}(?:/\d{2,4})?"
    r")\b",
    re.IGNORECASE,
)

_TIME_PHRASE_PATTERN = re.compile(
    r"\b(?:noon|midday|midnight)\b"
    r"|\b\d{1,2}(?::[0-5]\d)?\s*(?:a\.?m\.?|p\.?m\.?)(?![a-z])"
    r"|\b(?:[01]?\d|2[0-3]):[0-5]\d\b"
    r"|(?<=\bat\s)\d{1,2}\b(?!\s*(?:/|-|st|nd|rd|th|points|minutes|hours|days|weeks))",
    re.IGNORECASE,
)


def _reference_date(reference: Optional[datetime | date]) -> date:
    if reference is None:
        return datetime.now(timezone.utc).date()
    if isinstance(reference, datetime):
        return reference.date()
    return reference


def find_date_phrases(message: str) -> List[str]:
    """Return every date phrase found in ``message`` in reading order."""

    return [match.group(0).strip() for match in _DATE_PHRASE_PATTERN.finditer(message or "")]


def find_date_phrase(message: str) -> Optional[str]:
    phrases = find_date_phrases(message)
    return phrases[0] if phrases else None


def find_time_phrases(message: str) -> List[str]:
    """Return every time-of-day phrase found in ``message`` in reading order."""

    return [match.group(0).strip() for match in _TIME_PHRASE_PATTERN.finditer(message or "")]


def find_time_phrase(message: str) -> Optional[str]:
    phrases = find_time_phrases(message)
    return phrases[0] if phrases else None


# WHAT: turn "next friday", "in 2 weeks", "December 15" and similar phrases into a date.
# WHY: meeting and assignment handlers need concrete dates while users speak relatively.
# HOW: normalize the phrase and try relative keywords, weekdays, offsets, month names, then numeric forms.
def parse_date_expression(text: str, reference: Optional[datetime | date] = None) -> Optional[date]:
    if not text:
        return None
    today = _reference_date(reference)
    lowered = " ".join(text.lower().replace(",", " ").split())
    if lowered.startswith("on "):
        lowered = lowered[3:]
    if lowered.startswith("the ") and "day after" in lowered:
        lowered = lowered[4:]

    if lowered in _RELATIVE_KEYWORDS:
        return today + timedelta(days=_RELATIVE_KEYWORDS[lowered])

    if lowered in {"next week"}:
        return today + timedelta(days=7)
    if lowered in {"next month"}:
        year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
        return date(year, month, min(today.day, calendar.monthrange(year, month)[1]))
    if lowered in {"this week", "this month"}:
        return today
    if re.fullmatch(r"end of (?:the )?month", lowered):
        return date(today.year, today.month, calendar.monthrange(today.year, today.month)[1])

    offset = re.fullmatch(r"in (\d+) (day|week)s?", lowered)
    if offset:
        amount = int(offset.group(1))
        days = amount * 7 if offset.group(2) == "week" else amount
        return today + timedelta(days=days)

    weekday = re.fullmatch(rf"(?:(next|this|coming) )?({_WEEKDAY_NAMES})", lowered)
    if weekday:
        target = WEEKDAYS[weekday.group(2)]
        delta = (target - today.weekday()) % 7
        if weekday.group(1) in {"next", "coming"} and delta == 0:
            delta = 7
        return today + timedelta(days=delta)

    month_first = re.fullmatch(rf"({_MONTH_NAMES})\.? (\d{{1,2}})(?:st|nd|rd|th)?(?: (\d{{4}}))?", lowered)
    if month_first:
        return _build_date(today, MONTHS[month_first.group(1)], int(month_first.group(2)), month_first.group(3))

    day_first = re.fullmatch(rf"(\d{{1,2}})(?:st|nd|rd|th)? (?:of )?({_MONTH_NAMES})(?: (\d{{4}}))?", lowered)
    if day_first:
        return _build_date(today, MONTHS[day_first.group(2)], int(day_first.group(1)), day_first.group(3))

    numeric = re.fullmatch(r"(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?", lowered)
    if numeric:
        year = numeric.group(3)
        if year and len(year) == 2:
            year = f"20{year}"
        return _build_date(today, int(numeric.group(1)), int(numeric.group(2)), year)

    try:
        return date.fromisoformat(lowered)
    except ValueError:
        return None


def _build_date(today: date, month: int, day: int, year: Optional[str]) -> Optional[date]:
    try:
        if year:
            return date(int(year), month, day)
        candidate = date(today.year, month, day)
        if candidate < today:
            candidate = date(today.year + 1, month, day)
        return candidate
    except ValueError:
        return None


def parse_time_expression(text: str) -> Optional[time]:
    """Convert "5pm", "5:30 pm", "17:00", "noon" or "midnight" into a ``time``.

    A bare hour ("at 3") between 1 and 7 is read as afternoon, matching how
    school-day meetings are usually phrased.
    """

    if not text:
        return None
    lowered = text.strip().lower().replace(".", "")
    if lowered.startswith("at "):
        lowered = lowered[3:].strip()
    if lowered in {"noon", "midday"}:
        return time(12, 0)
    if lowered == "midnight":
        return time(0, 0)

    match = re.fullmatch(r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)?", lowered)
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = match.group(3)
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        if meridiem == "pm" and hour != 12:
            hour += 12
        if meridiem == "am" and hour == 12:
            hour = 0
    elif match.group(2) is None and 1 <= hour <= 7:
        hour += 12
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def resolve_datetime(
    date_expr: Optional[str],
    time_expr: Optional[str],
    *,
    reference: Optional[datetime] = None,
    tz: timezone = timezone.utc,
) -> Optional[datetime]:
    """Combine a date phrase and a time phrase into an aware ``datetime``."""

    day = parse_date_expression(date_expr or "", reference)
    moment = parse_time_expression(time_expr or "")
    if day is None or moment is None:
        return None
    return datetime.combine(day, moment, tzinfo=tz)


__all__ = [
    "MONTHS",
    "WEEKDAYS",
    "find_date_phrase",
    "find_date_phrases",
    "find_time_phrase",
    "find_time_phrases",
    "parse_date_expression",
    "parse_time_expression",
    "resolve_datetime",
]
