"""Course management intent parsing."""

from __future__ import annotations

import re
from typing import Any, Dict

from core.parser_utils import clean_course_name, extract_course_reference, extract_named, extract_quoted
from core.parsers.vocabulary import (
    ANNOUNCEMENT_WORDS,
    ASSIGNMENT_WORDS,
    COURSE_WORDS,
    CREATE_VERBS,
    DELETE_VERBS,
    GRADE_WORDS,
    LIST_VERBS,
    MAIL_WORDS,
    MEETING_WORDS,
    STUDENT_WORDS,
    SUBMISSION_WORDS,
    TEACHER_WORDS,
    has_any,
)

_OTHER_ENTITIES = (
    STUDENT_WORDS
    + TEACHER_WORDS
    + ANNOUNCEMENT_WORDS
    + ASSIGNMENT_WORDS
    + GRADE_WORDS
    + SUBMISSION_WORDS
    + MEETING_WORDS
    + MAIL_WORDS
)
_RENAME_PATTERN = re.compile(
    r"\b(?:rename|change the name of|update the name of)\s+(?P<old>.+?)\s+(?:to|as|into)\s+[\"']?(?P<new>[^\"']+?)[\"']?[.!]?$",
    re.IGNORECASE,
)
_CREATE_NAME_PATTERN = re.compile(
    r"\b(?:course|class)\s+(?:for|on|about|in)?\s*[\"']?(?P<name>[A-Za-z0-9][^\"',;!?]*?)[\"']?\s*(?:,|;|\.|!|\?|\bsection\b|\bwith\b|$)",
    re.IGNORECASE,
)
_SECTION_PATTERN = re.compile(r"\bsection\s+[\"']?([\w-]+)", re.IGNORECASE)
_ROOM_PATTERN = re.compile(r"\broom\s+[\"']?([\w-]+)", re.IGNORECASE)
_ABOUT_COURSE_PATTERN = re.compile(r"\b(?:about|of|for|on)\s+(?:the\s+|my\s+)?(?:course|class)?\s*(?P<name>[^?.!,]+)", re.IGNORECASE)


def _mentions_course(lowered: str) -> bool:
    return has_any(lowered, COURSE_WORDS)


def _only_courses(lowered: str) -> bool:
    return _mentions_course(lowered) and not has_any(lowered, _OTHER_ENTITIES)


def is_delete(lowered: str) -> bool:
    return has_any(lowered, DELETE_VERBS) and _only_courses(lowered) and "@" not in lowered


def is_archive(lowered: str) -> bool:
    return has_any(lowered, ("archive",)) and _only_courses(lowered)


def is_update(lowered: str) -> bool:
    if has_any(lowered, ("rename",)) and not has_any(lowered, _OTHER_ENTITIES):
        return True
    return has_any(lowered, ("update", "change", "edit", "modify")) and _only_courses(lowered)


def is_list(lowered: str) -> bool:
    if not _only_courses(lowered):
        return False
    if has_any(lowered, CREATE_VERBS + DELETE_VERBS + ("archive", "rename", "invite", "join")):
        return False
    return has_any(lowered, LIST_VERBS + ("my courses", "my classes", "do i teach", "am i teaching", "am i in"))


def is_get(lowered: str) -> bool:
    return _only_courses(lowered) and has_any(
        lowered, ("details", "detail", "info", "information", "tell me about", "describe", "enrollment code", "class code")
    )


def is_create(lowered: str) -> bool:
    return has_any(lowered, CREATE_VERBS) and _only_courses(lowered)


def extract_course(message: str) -> Dict[str, Any]:
    """Payload with ``courseName`` when the message names a specific course."""
    payload: Dict[str, Any] = {}
    course = extract_course_reference(message) or extract_quoted(message)
    if course:
        payload["courseName"] = course
    return payload


def extract_get(message: str) -> Dict[str, Any]:
    payload = extract_course(message)
    if "courseName" not in payload:
        match = _ABOUT_COURSE_PATTERN.search(message)
        if match:
            name = clean_course_name(match.group("name"))
            if name:
                payload["courseName"] = name
    return payload


def extract_create(message: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    name = extract_named(message) or extract_quoted(message)
    if not name:
        match = _CREATE_NAME_PATTERN.search(message)
        if match:
            name = clean_course_name(match.group("name"))
    if name:
        payload["name"] = name
    section = _SECTION_PATTERN.search(message)
    if section:
        payload["section"] = section.group(1)
    room = _ROOM_PATTERN.search(message)
    if room:
        payload["room"] = room.group(1)
    return payload


def extract_update(message: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    rename = _RENAME_PATTERN.search(message)
    if rename:
        old = clean_course_name(rename.group("old"))
        if old:
            payload["courseName"] = old
        payload["newName"] = rename.group("new").strip()
    else:
        payload.update(extract_course(message))
        new_name = extract_named(message)
        if new_name:
            payload["newName"] = new_name
    section = _SECTION_PATTERN.search(message)
    if section:
        payload["section"] = section.group(1)
    room = _ROOM_PATTERN.search(message)
    if room:
        payload["room"] = room.group(1)
    return payload


__all__ = [
    "extract_course",
    "extract_create",
    "extract_get",
    "extract_update",
    "is_archive",
    "is_create",
    "is_delete",
    "is_get",
    "is_list",
    "is_update",
]
