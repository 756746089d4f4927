"""Roster and invitation intent parsing."""

from __future__ import annotations

import re
from typing import Any, Dict

from core.parser_utils import extract_emails
from core.parsers.courses import extract_course
from core.parsers.vocabulary import GRADE_WORDS, LIST_VERBS, STUDENT_WORDS, SUBMISSION_WORDS, TEACHER_WORDS, has_any

_ENROLLMENT_CODE_PATTERN = re.compile(r"\bcode\s*(?:is\s*)?[:#]?\s*([A-Za-z0-9]{5,8})\b", re.IGNORECASE)


def is_invite_teachers(lowered: str) -> bool:
    return has_any(lowered, ("invite", "add")) and has_any(lowered, TEACHER_WORDS)


def is_invite_students(lowered: str) -> bool:
    if has_any(lowered, ("invite", "enroll")) and not lowered.strip().startswith(("how", "who", "what")):
        return True
    return has_any(lowered, ("add",)) and ("@" in lowered or has_any(lowered, STUDENT_WORDS))


def is_show_roster(lowered: str) -> bool:
    if has_any(lowered, GRADE_WORDS + SUBMISSION_WORDS):
        return False
    if has_any(lowered, ("who is in", "who's in", "who is enrolled", "who's enrolled", "who is taking", "roster")):
        return True
    return has_any(lowered, LIST_VERBS + ("who", "how many")) and has_any(lowered, STUDENT_WORDS)


def is_join(lowered: str) -> bool:
    if lowered.strip().startswith(("how", "where", "what")):
        return False
    return has_any(lowered, ("join", "sign up for", "enroll me", "get into")) and "@" not in lowered


def extract_invite_students(message: str) -> Dict[str, Any]:
    payload = extract_course(message)
    emails = extract_emails(message)
    if emails:
        payload["studentEmails"] = emails
    return payload


def extract_invite_teachers(message: str) -> Dict[str, Any]:
    payload = extract_course(message)
    emails = extract_emails(message)
    if emails:
        payload["emails"] = emails
    return payload


def extract_join(message: str) -> Dict[str, Any]:
    payload = extract_course(message)
    code = _ENROLLMENT_CODE_PATTERN.search(message)
    if code:
        payload["enrollmentCode"] = code.group(1)
    return payload


__all__ = [
    "extract_invite_students",
    "extract_invite_teachers",
    "extract_join",
    "is_invite_students",
    "is_invite_teachers",
    "is_join",
    "is_show_roster",
]
