"""Helpers for normalizing classifier parameters before they reach the handlers."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from core.parser_utils import clean_course_name, extract_emails

FIELD_ALIASES = {
    "course": "courseName",
    "course_name": "courseName",
    "courseTitle": "courseName",
    "courseIdentifier": "courseName",
    "className": "courseName",
    "class": "courseName",
    "students": "studentEmails",
    "student_emails": "studentEmails",
    "studentEmailList": "studentEmails",
    "teacherEmails": "emails",
    "teacher_emails": "emails",
    "text": "announcementText",
    "announcement": "announcementText",
    "announcement_text": "announcementText",
    "assignmentName": "assignmentTitle",
    "assignment": "assignmentTitle",
    "grade": "assignedGrade",
    "score": "assignedGrade",
    "student": "studentEmail",
    "studentName": "studentEmail",
    "recipient": "recipientEmail",
    "to": "recipientEmail",
    "body": "message",
    "from": "senderEmail",
    "sender": "senderEmail",
    "date": "dateExpr",
    "time": "timeExpr",
    "newDate": "newDateExpr",
    "newTime": "newTimeExpr",
    "due": "dueDate",
    "due_date": "dueDate",
}

# Per-intent aliases win over FIELD_ALIASES.
INTENT_ALIASES: Dict[str, Dict[str, str]] = {
    "CREATE_COURSE": {"courseName": "name", "course": "name", "title": "name"},
    "INVITE_TEACHERS": {"studentEmails": "emails", "teacherEmails": "emails"},
    "CREATE_ASSIGNMENT": {"assignmentTitle": "title", "name": "title"},
    "CHECK_ASSIGNMENT_SUBMISSIONS": {"title": "assignmentTitle"},
    "GRADE_ASSIGNMENT": {"title": "assignmentTitle"},
    "UPDATE_COURSE": {"name": "newName"},
    "CREATE_MEETING": {"name": "title"},
}

_EMAIL_LIST_FIELDS = {"studentEmails", "emails", "attendees"}
_EMAIL_FIELDS = {"recipientEmail"}
# A student may be named instead of addressed; the grade handler resolves either.
_PERSON_FIELDS = {"studentEmail"}
_COURSE_FIELDS = {"courseName"}


def _email_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return extract_emails(value)
    if isinstance(value, (list, tuple, set)):
        found: List[str] = []
        for item in value:
            for email in extract_emails(str(item)):
                if email.lower() not in {existing.lower() for existing in found}:
                    found.append(email)
        return found
    return []


def normalize_parameters(intent: str, parameters: Mapping[str, Any] | None) -> Dict[str, Any]:
    """Return a copy with canonical names, cleaned values, and blanks dropped.

    Generic course references ("my class", "it") are dropped so the handler
    asks which course is meant instead of searching for the word "class".
    """

    if not parameters:
        return {}
    overrides = INTENT_ALIASES.get(intent, {})
    normalized: Dict[str, Any] = {}
    for key, value in parameters.items():
        target = overrides.get(key) or FIELD_ALIASES.get(key, key)
        target = overrides.get(target, target)
        if isinstance(value, str):
            value = value.strip()
        if value in (None, "", [], {}):
            continue
        if target in _EMAIL_LIST_FIELDS:
            value = _email_list(value)
        elif target in _EMAIL_FIELDS:
            emails = _email_list(value)
            value = emails[0] if emails else None
        elif target in _PERSON_FIELDS:
            emails = _email_list(value)
            value = emails[0] if emails else (value if isinstance(value, str) else None)
        elif target in _COURSE_FIELDS and isinstance(value, str):
            value = clean_course_name(value)
        if value in (None, "", []):
            continue
        normalized.setdefault(target, value)
    return normalized


__all__ = ["FIELD_ALIASES", "INTENT_ALIASES", "normalize_parameters"]
