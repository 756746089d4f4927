"""Calendar meeting intent parsing."""

from __future__ import annotations

import re
from typing import Any, Dict

from core.parser_utils import extract_emails, extract_named, extract_quoted, find_date_phrases, find_time_phrases
from core.parsers.vocabulary import DELETE_VERBS, LIST_VERBS, MEETING_WORDS, has_any

_MEETING_CREATE_VERBS = ("schedule", "create", "set up", "setup", "book", "add", "plan", "arrange", "organize", "new")
_MEETING_UPDATE_VERBS = ("reschedule", "move", "shift", "postpone", "push back", "change", "update", "delay")
_TOPIC_PATTERN = re.compile(
    r"\b(?:about|regarding|to discuss)\s+[\"']?(?P<topic>.+?)[\"']?(?=\s+(?:on|at|tomorrow|today|next|this|in|with|for)\b|[,;!?]|\.(?:\s|$)|$)",
    re.IGNORECASE,
)
_DURATION_PATTERN = re.compile(r"\b(?P<amount>\d{1,3})\s*(?P<unit>minutes?|mins?|hours?|hrs?)\b", re.IGNORECASE)


def _mentions_meeting(lowered: str) -> bool:
    return has_any(lowered, MEETING_WORDS)


def is_delete(lowered: str) -> bool:
    return has_any(lowered, DELETE_VERBS) and _mentions_meeting(lowered)


def is_update(lowered: str) -> bool:
    if has_any(lowered, ("reschedule", "postpone")):
        return True
    return has_any(lowered, _MEETING_UPDATE_VERBS) and _mentions_meeting(lowered)


def is_list(lowered: str) -> bool:
    if has_any(lowered, ("my schedule", "on my calendar", "my calendar", "my agenda")) and not has_any(
        lowered, _MEETING_CREATE_VERBS[1:]
    ):
        return True
    return _mentions_meeting(lowered) and has_any(lowered, LIST_VERBS + ("when is", "when's", "next meeting"))


def is_create(lowered: str) -> bool:
    if has_any(lowered, _MEETING_CREATE_VERBS) and _mentions_meeting(lowered):
        return True
    return has_any(lowered, ("schedule", "book")) and bool(find_time_phrases(lowered))


def extract_target(message: str) -> Dict[str, Any]:
    """Date and time of the meeting a delete request points at."""
    payload: Dict[str, Any] = {}
    dates = find_date_phrases(message)
    times = find_time_phrases(message)
    if dates:
        payload["dateExpr"] = dates[0]
    if times:
        payload["timeExpr"] = times[0]
    return payload


def extract_update(message: str) -> Dict[str, Any]:
    payload = extract_target(message)
    dates = find_date_phrases(message)
    times = find_time_phrases(message)
    if len(dates) > 1:
        payload["newDateExpr"] = dates[1]
    if len(times) > 1:
        payload["newTimeExpr"] = times[1]
    elif len(times) == 1 and re.search(r"\bto\s+" + re.escape(times[0]), message, re.IGNORECASE):
        payload.pop("timeExpr", None)
        payload["newTimeExpr"] = times[0]
    return payload


def extract_list(message: str) -> Dict[str, Any]:
    dates = find_date_phrases(message)
    return {"dateExpr": dates[0]} if dates else {}


def extract_create(message: str) -> Dict[str, Any]:
    payload = extract_target(message)
    title = extract_named(message) or extract_quoted(message)
    if not title:
        topic = _TOPIC_PATTERN.search(message)
        if topic:
            title = topic.group("topic").strip()
    if title:
        payload["title"] = title
    duration = _DURATION_PATTERN.search(message)
    if duration:
        amount = int(duration.group("amount"))
        unit = duration.group("unit").lower()
        payload["durationMinutes"] = amount * 60 if unit.startswith("h") else amount
    attendees = extract_emails(message)
    if attendees:
        payload["attendees"] = attendees
    return payload


__all__ = [
    "extract_create",
    "extract_list",
    "extract_target",
    "extract_update",
    "is_create",
    "is_delete",
    "is_list",
    "is_update",
]
