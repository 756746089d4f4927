"""Common text-processing helpers shared across parser modules."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}")

_NAMED_PATTERN = re.compile(
    r"\b(?:named|called|titled|title is|call it)\s+[\"']?(?P<name>.+?)[\"']?"
    r"(?=\s+(?:with|for|in|to|due|on|at|and|saying|that)\b|[,;!?]|\.(?:\s|$)|$)",
    re.IGNORECASE,
)
_QUOTED_PATTERN = re.compile(r"[\"“]([^\"”]+)[\"”]")
_STATED_COURSE_PATTERN = re.compile(
    r"\b(?:class|course)(?:\s+name)?\s*(?:is|was|would be|should be|will be|:)\s*[\"']?(?P<name>[^\"',;!?]+?)[\"']?\s*(?:[,;!?]|\.(?:\s|$)|$)",
    re.IGNORECASE,
)
_COURSE_REFERENCE_PATTERN = re.compile(
    r"\b(?:to|in|into|for|from|of)\s+(?P<name>[A-Za-z0-9][\w&'\- ]*?)"
    r"(?=\s+(?:saying|says|with|due|on|at|and|titled|called|named|about|by|asking|telling|that)\b|[,;:!?]|\.(?:\s|$)|$)",
    re.IGNORECASE,
)
_TEXT_MARKER_PATTERN = re.compile(
    r"\b(?:saying|that says|which says|with the (?:text|message)|with message|telling (?:them|everyone|the class)(?: that)?)\b\s*:?\s*(?P<text>.+)$"
    r"|(?<!\d):(?!\d)\s*(?P<colon>.+)$",
    re.IGNORECASE | re.DOTALL,
)

GENERIC_COURSE_TERMS = {
    "class",
    "course",
    "classes",
    "courses",
    "it",
    "this",
    "that",
    "them",
    "my class",
    "my course",
    "the class",
    "the course",
    "this class",
    "this course",
    "that class",
    "that course",
    "our class",
    "our course",
    "my classes",
    "my courses",
    "all",
    "everyone",
    "all students",
    "the students",
    "my students",
    "students",
}

_COURSE_PREFIXES = ("my ", "the ", "our ", "this ", "course ", "class ")
_COURSE_SUFFIXES = (" class", " course")


def contains_keyword(text: str, keywords: Iterable[str]) -> bool:
    """Return True when any keyword is present in ``text``."""

    return any(keyword in text for keyword in keywords)


def contains_word(text: str, words: Iterable[str]) -> bool:
    """Return True when any of ``words`` appears as a whole word in ``text``."""

    return any(re.search(rf"\b{re.escape(word)}\b", text) for word in words)


def extract_emails(message: str) -> List[str]:
    """Return the email addresses in ``message`` in order, without duplicates."""

    seen = set()
    emails: List[str] = []
    for match in EMAIL_PATTERN.findall(message or ""):
        candidate = match.rstrip(".")
        key = candidate.lower()
        if key in seen:
            continue
        seen.add(key)
        emails.append(candidate)
    return emails


def extract_quoted(message: str) -> Optional[str]:
    match = _QUOTED_PATTERN.search(message or "")
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def extract_named(message: str) -> Optional[str]:
    """Capture the value following "named X", "called X" or "titled X"."""

    quoted = re.search(r"\b(?:named|called|titled)\s+[\"“]([^\"”]+)[\"”]", message or "", re.IGNORECASE)
    if quoted:
        return quoted.group(1).strip() or None
    match = _NAMED_PATTERN.search(message or "")
    if not match:
        return None
    value = match.group("name").strip().strip("\"'")
    return value or None


def extract_message_text(message: str) -> Optional[str]:
    """Return the free-form body of an announcement or email ("saying ...", quoted text)."""

    quoted = extract_quoted(message)
    if quoted:
        return quoted
    match = _TEXT_MARKER_PATTERN.search(message or "")
    if not match:
        return None
    value = (match.group("text") or match.group("colon") or "").strip()
    return value or None


def clean_course_name(value: str) -> Optional[str]:
    """Strip possessives and "class"/"course" wrappers; return None for generic references."""

    cleaned = (value or "").strip().strip("\"'").rstrip(".").strip()
    lowered = cleaned.lower()
    if lowered in GENERIC_COURSE_TERMS:
        return None
    changed = True
    while changed:
        changed = False
        for prefix in _COURSE_PREFIXES:
            if lowered.startswith(prefix):
                cleaned = cleaned[len(prefix):].strip()
                lowered = cleaned.lower()
                changed = True
        for suffix in _COURSE_SUFFIXES:
            if lowered.endswith(suffix):
                cleaned = cleaned[: -len(suffix)].strip()
                lowered = cleaned.lower()
                changed = True
    if not cleaned or lowered in GENERIC_COURSE_TERMS:
        return None
    return cleaned


def extract_course_reference(message: str) -> Optional[str]:
    """Find the course a message points at ("to math 101", "the class is biology").

    Quoted text, message bodies after "saying"/":" and email addresses are
    removed before scanning so that they are never mistaken for a course name.
    """

    if not message:
        return None
    working = _QUOTED_PATTERN.sub(" ", message)
    body = _TEXT_MARKER_PATTERN.search(working)
    if body:
        working = working[: body.start()]
    working = EMAIL_PATTERN.sub(" ", working)
    working = normalize_spaces(working)

    stated = _STATED_COURSE_PATTERN.search(working)
    if stated:
        name = clean_course_name(stated.group("name"))
        if name:
            return name

    for match in _COURSE_REFERENCE_PATTERN.finditer(working):
        name = clean_course_name(match.group("name"))
        if not name:
            continue
        if re.fullmatch(r"(?:\d+\s*)?(?:points?|minutes?|hours?|days?|weeks?|pm|am)", name, re.IGNORECASE):
            continue
        return name
    return None


def normalize_spaces(value: str) -> str:
    return " ".join((value or "").split())


__all__ = [
    "EMAIL_PATTERN",
    "GENERIC_COURSE_TERMS",
    "clean_course_name",
    "contains_keyword",
    "contains_word",
    "extract_course_reference",
    "extract_emails",
    "extract_message_text",
    "extract_named",
    "extract_quoted",
    "normalize_spaces",
]
