"""Verb and noun groups the domain parsers test for."""

from __future__ import annotations

from core.parser_utils import contains_keyword, contains_word

LIST_VERBS = (
    "list",
    "show",
    "see",
    "view",
    "display",
    "get",
    "check",
    "fetch",
    "which",
    "any",
    "upcoming",
    "what are",
    "what's",
    "whats",
    "what is",
    "what do i have",
    "do i have",
    "give me",
    "tell me",
    "pull up",
)
CREATE_VERBS = ("create", "make", "add", "new", "set up", "setup", "start", "open", "build")
DELETE_VERBS = ("delete", "remove", "cancel", "drop", "get rid of", "erase")
UPDATE_VERBS = ("update", "rename", "change", "edit", "modify", "reschedule", "move", "shift", "postpone", "push back")

COURSE_WORDS = ("course", "courses", "class", "classes")
STUDENT_WORDS = ("student", "students", "roster", "enrolled", "enrollment", "enrolments", "enrollments", "pupils")
TEACHER_WORDS = ("teacher", "teachers", "co-teacher", "co-teachers", "coteacher", "instructor", "instructors")
ANNOUNCEMENT_WORDS = ("announcement", "announcements", "announce")
ASSIGNMENT_WORDS = ("assignment", "assignments", "homework", "coursework", "quiz", "quizzes", "essay", "project")
GRADE_WORDS = ("grades", "gradebook", "scores", "marks", "results")
SUBMISSION_WORDS = ("submission", "submissions", "submitted", "turned in", "handed in")
MEETING_WORDS = ("meeting", "meetings", "event", "events", "appointment", "appointments", "calendar", "office hours")
MAIL_WORDS = ("email", "emails", "e-mail", "mail", "inbox", "message", "messages")

# Words that signal a reply is a new command rather than a value for a pending slot.
COMMAND_OPENERS = (
    "list",
    "show",
    "create",
    "make",
    "delete",
    "remove",
    "invite",
    "send",
    "schedule",
    "post",
    "grade",
    "read",
    "check",
    "update",
    "rename",
    "archive",
    "cancel",
    "reschedule",
    "what",
    "who",
    "how",
    "why",
    "can you",
    "could you",
    "please",
)


def has_any(lowered: str, phrases) -> bool:
    """Match single words on word boundaries and multi-word phrases as substrings."""
    words = [phrase for phrase in phrases if " " not in phrase and "'" not in phrase]
    multi = [phrase for phrase in phrases if " " in phrase or "'" in phrase]
    return contains_word(lowered, words) or contains_keyword(lowered, multi)


def starts_like_command(lowered: str) -> bool:
    stripped = lowered.strip()
    return any(stripped == opener or stripped.startswith(opener + " ") for opener in COMMAND_OPENERS)


__all__ = [
    "ANNOUNCEMENT_WORDS",
    "ASSIGNMENT_WORDS",
    "COMMAND_OPENERS",
    "COURSE_WORDS",
    "CREATE_VERBS",
    "DELETE_VERBS",
    "GRADE_WORDS",
    "LIST_VERBS",
    "MAIL_WORDS",
    "MEETING_WORDS",
    "STUDENT_WORDS",
    "SUBMISSION_WORDS",
    "TEACHER_WORDS",
    "UPDATE_VERBS",
    "has_any",
    "starts_like_command",
]
