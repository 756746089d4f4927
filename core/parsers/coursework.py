"""Announcement, assignment, submission, and grading intent parsing."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from core.parser_utils import (
    extract_course_reference,
    extract_emails,
    extract_message_text,
    extract_named,
    extract_quoted,
    find_date_phrase,
)
from core.parsers.courses import extract_course
from core.parsers.vocabulary import (
    ANNOUNCEMENT_WORDS,
    ASSIGNMENT_WORDS,
    CREATE_VERBS,
    GRADE_WORDS,
    LIST_VERBS,
    SUBMISSION_WORDS,
    has_any,
)

_POST_VERBS = ("post", "create", "make", "send", "add", "publish", "share", "write", "put up")
_ASSIGN_VERBS = CREATE_VERBS + ("assign", "post", "give", "set", "publish")

_ANNOUNCE_THAT_PATTERN = re.compile(r"\bannounce\s+(?:that\s+)?(?P<text>.+)$", re.IGNORECASE)
# "create announcement Welcome back in physics 352": body runs up to the course reference.
_ANNOUNCEMENT_BODY_PATTERN = re.compile(
    r"\bannouncement\s+(?!(?:in|to|for|about)\b)(?P<text>.+?)(?:\s+(?:in|to|for)\s+\S.*)?[.!]?$",
    re.IGNORECASE,
)
_ASSIGNMENT_ABOUT_PATTERN = re.compile(
    r"\b(?:assignment|homework|quiz|essay|project)\s+(?:on|about)\s+[\"']?(?P<title>.+?)[\"']?(?=\s+(?:in|for|due)\b|[,;!?]|\.(?:\s|$)|$)",
    re.IGNORECASE,
)
_DUE_PATTERN = re.compile(r"\bdue\s+(?:on\s+|by\s+)?(?P<due>.+)$", re.IGNORECASE)
_POINTS_PATTERN = re.compile(r"\b(\d{1,4})\s*(?:points|pts|marks)\b", re.IGNORECASE)
_SUBMISSION_TITLE_PATTERN = re.compile(
    r"\b(?:submissions?|submitted|turned in|handed in)(?:\s+(?:for|on|of|to))?\s+(?:the\s+)?(?:assignment\s+)?[\"']?(?P<title>[^\"']+?)[\"']?"
    r"(?=\s+(?:in|for|from)\s+|[,;!?]|\.(?:\s|$)|$)",
    re.IGNORECASE,
)
_GRADE_TITLE_PATTERNS = (
    re.compile(
        r"'s\s+(?:assignment\s+)?[\"']?(?P<title>[^\"']+?)[\"']?(?=\s+(?:in|for|with|as|a|an|to)\s|[,;!?]|\.(?:\s|$)|$)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:on|for)\s+(?:the\s+|their\s+|his\s+|her\s+)?(?:assignment\s+)?[\"']?(?P<title>[^\"']+?)[\"']?"
        r"(?=\s+(?:in|for|with|as)\s|[,;!?]|\.(?:\s|$)|$)",
        re.IGNORECASE,
    ),
)
# "grade John Smith 95 on test 1": a capitalised name right after the verb.
_GRADE_STUDENT_NAME_PATTERN = re.compile(
    r"\b(?i:grade|give|mark|award)\s+(?:student\s+)?(?P<name>[A-Z][a-z]+(?:-[A-Z][a-z]+)?(?:\s+[A-Z][a-z]+(?:-[A-Z][a-z]+)?)?)(?:'s)?\b"
)
_NOT_STUDENT_NAMES = {"test", "quiz", "assignment", "homework", "essay", "project", "the", "my", "all", "everyone"}
_GRADE_VALUE_PATTERNS = (
    re.compile(r"\b(?:with|a|an|score of|grade of|grade|as|mark of|to)\s+(?P<value>\d{1,3}(?:\.\d+)?)(?!\s*(?:st|nd|rd|th)\b)(?![\w.])", re.IGNORECASE),
    re.compile(r"\b(?P<value>\d{1,3}(?:\.\d+)?)\s*(?:/\s*\d+|out of\s+\d+|points|pts|%)", re.IGNORECASE),
)


def is_get_announcements(lowered: str) -> bool:
    if not has_any(lowered, ANNOUNCEMENT_WORDS):
        return False
    if has_any(lowered, _POST_VERBS) or "saying" in lowered:
        return False
    return has_any(lowered, LIST_VERBS + ("recent", "latest", "last", "read"))


def is_create_announcement(lowered: str) -> bool:
    if lowered.strip().startswith("announce"):
        return True
    return has_any(lowered, ANNOUNCEMENT_WORDS) and (has_any(lowered, _POST_VERBS) or "saying" in lowered)


def is_list_assignments(lowered: str) -> bool:
    if not has_any(lowered, ASSIGNMENT_WORDS):
        return False
    if has_any(lowered, _ASSIGN_VERBS) and not lowered.strip().startswith(("what", "which", "show", "list")):
        return False
    return has_any(lowered, LIST_VERBS + ("pending", "due", "open", "outstanding"))


def is_create_assignment(lowered: str) -> bool:
    return has_any(lowered, ASSIGNMENT_WORDS) and has_any(lowered, _ASSIGN_VERBS)


def is_check_submissions(lowered: str) -> bool:
    if lowered.strip().startswith(("how do", "how can", "how to")):
        return False
    return has_any(lowered, SUBMISSION_WORDS) and (
        has_any(lowered, LIST_VERBS + ("who", "how many", "has", "have")) or lowered.strip().startswith(("submissions",))
    )


def is_grade(lowered: str) -> bool:
    has_number = bool(re.search(r"\d", lowered))
    if has_any(lowered, ("grade", "graded", "score")) and ("@" in lowered or has_number):
        return not has_any(lowered, LIST_VERBS) or "@" in lowered
    return has_any(lowered, ("give", "mark", "award")) and "@" in lowered and has_number


def is_show_grades(lowered: str) -> bool:
    if has_any(lowered, GRADE_WORDS) and has_any(lowered, LIST_VERBS + ("how are", "how is")):
        return True
    return "how are my students doing" in lowered


def extract_announcement(message: str) -> Dict[str, Any]:
    payload = extract_course(message)
    text = extract_message_text(message)
    if not text:
        match = _ANNOUNCE_THAT_PATTERN.search(message)
        if match and not match.group("text").lower().startswith(("to ", "in ", "for ")):
            text = match.group("text").strip()
    if not text:
        body = _ANNOUNCEMENT_BODY_PATTERN.search(message)
        if body:
            text = body.group("text").strip()
    if text:
        payload["announcementText"] = text
    return payload


def extract_create_assignment(message: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    title = extract_named(message) or extract_quoted(message)
    if not title:
        about = _ASSIGNMENT_ABOUT_PATTERN.search(message)
        if about:
            title = about.group("title").strip()
    if title:
        payload["title"] = title
    course = extract_course_reference(_strip(message, title))
    if course:
        payload["courseName"] = course
    due = _DUE_PATTERN.search(message)
    if due:
        phrase = find_date_phrase(due.group("due"))
        if phrase:
            payload["dueDate"] = phrase
    points = _POINTS_PATTERN.search(message)
    if points:
        payload["maxPoints"] = int(points.group(1))
    return payload


def extract_submissions(message: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    title = extract_quoted(message)
    remainder = message
    if not title:
        match = _SUBMISSION_TITLE_PATTERN.search(message)
        if match:
            candidate = match.group("title").strip()
            if candidate.lower() not in {"it", "this", "that", "assignment", "the assignment"}:
                title = candidate
                remainder = message[match.end("title"):]
    if title:
        payload["assignmentTitle"] = title
    course = extract_course_reference(_strip(remainder, title))
    if course:
        payload["courseName"] = course
    return payload


def _grade_student_name(message: str) -> Optional[str]:
    match = _GRADE_STUDENT_NAME_PATTERN.search(message)
    if not match:
        return None
    name = match.group("name")
    if name.split()[0].lower() in _NOT_STUDENT_NAMES:
        return None
    return name


def extract_grade(message: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    emails = extract_emails(message)
    if emails:
        payload["studentEmail"] = emails[0]
    else:
        name = _grade_student_name(message)
        if name:
            payload["studentEmail"] = name
    title: Optional[str] = extract_quoted(message)
    remainder = message
    if not title:
        for pattern in _GRADE_TITLE_PATTERNS:
            match = pattern.search(message)
            if match:
                title = match.group("title").strip()
                remainder = message[match.end("title"):]
                break
    if title:
        payload["assignmentTitle"] = title
    course = extract_course_reference(_strip(remainder, title))
    if course:
        payload["courseName"] = course
    for pattern in _GRADE_VALUE_PATTERNS:
        match = pattern.search(_strip(message, title))
        if match:
            payload["assignedGrade"] = match.group("value")
            break
    return payload


def _strip(message: str, fragment: Optional[str]) -> str:
    if not fragment:
        return message
    return message.replace(fragment, " ")


__all__ = [
    "extract_announcement",
    "extract_create_assignment",
    "extract_grade",
    "extract_submissions",
    "is_check_submissions",
    "is_create_announcement",
    "is_create_assignment",
    "is_get_announcements",
    "is_grade",
    "is_list_assignments",
    "is_show_grades",
]
