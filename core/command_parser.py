"""Deterministic pattern classifier used when the model is unavailable or unsure.

``PATTERN_RULES`` is evaluated strictly in declared order and the first rule
whose predicate accepts the lowercased message wins. Order carries meaning:
destructive, update, and query rules sit above creation rules, so a message
that merely names an entity ("show my meetings") is never read as a request
to create one.
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from core.intent_catalog import UNKNOWN
from core.parsers import conversation, courses, coursework, mail, meetings, roster
from core.parsers.types import IntentResult, PatternRule, no_parameters

UNKNOWN_CONFIDENCE = 0.5

PATTERN_RULES: Tuple[PatternRule, ...] = (
    # dialogue control
    PatternRule("cancel", conversation.is_cancel, no_parameters, "CANCEL_ACTION", 0.95),
    PatternRule("proceed", conversation.is_proceed, no_parameters, "PROCEED_WITH_AVAILABLE_INFO", 0.9),
    PatternRule("greeting", conversation.is_greeting, no_parameters, "GREETING", 0.9),
    PatternRule("help", conversation.is_help, no_parameters, "HELP", 0.85),
    PatternRule("join-class-help", conversation.is_join_help, no_parameters, "JOIN_CLASS_HELP"),
    PatternRule("submission-help", conversation.is_submission_help, no_parameters, "ASSIGNMENT_SUBMISSION_HELP"),
    # destructive
    PatternRule("delete-meeting", meetings.is_delete, meetings.extract_target, "DELETE_MEETING"),
    PatternRule("delete-course", courses.is_delete, courses.extract_course, "DELETE_COURSE"),
    PatternRule("archive-course", courses.is_archive, courses.extract_course, "ARCHIVE_COURSE"),
    # updates
    PatternRule("update-meeting", meetings.is_update, meetings.extract_update, "UPDATE_MEETING"),
    PatternRule("update-course", courses.is_update, courses.extract_update, "UPDATE_COURSE"),
    PatternRule("grade-assignment", coursework.is_grade, coursework.extract_grade, "GRADE_ASSIGNMENT"),
    # queries
    PatternRule("check-submissions", coursework.is_check_submissions, coursework.extract_submissions, "CHECK_ASSIGNMENT_SUBMISSIONS"),
    PatternRule("show-grades", coursework.is_show_grades, courses.extract_course, "SHOW_COURSE_GRADES"),
    PatternRule("show-roster", roster.is_show_roster, courses.extract_course, "SHOW_ENROLLED_STUDENTS"),
    PatternRule("list-meetings", meetings.is_list, meetings.extract_list, "LIST_MEETINGS"),
    PatternRule("get-announcements", coursework.is_get_announcements, courses.extract_course, "GET_ANNOUNCEMENTS"),
    PatternRule("list-assignments", coursework.is_list_assignments, courses.extract_course, "LIST_ASSIGNMENTS"),
    PatternRule("read-email", mail.is_read, mail.extract_read, "READ_EMAIL"),
    PatternRule("list-courses", courses.is_list, no_parameters, "LIST_COURSES"),
    PatternRule("get-course", courses.is_get, courses.extract_get, "GET_COURSE"),
    # invitations
    PatternRule("invite-teachers", roster.is_invite_teachers, roster.extract_invite_teachers, "INVITE_TEACHERS"),
    PatternRule("invite-students", roster.is_invite_students, roster.extract_invite_students, "INVITE_STUDENTS"),
    PatternRule("join-course", roster.is_join, roster.extract_join, "STUDENT_JOIN_SUGGESTION"),
    # creation
    PatternRule("create-announcement", coursework.is_create_announcement, coursework.extract_announcement, "CREATE_ANNOUNCEMENT"),
    PatternRule("create-assignment", coursework.is_create_assignment, coursework.extract_create_assignment, "CREATE_ASSIGNMENT"),
    PatternRule("create-meeting", meetings.is_create, meetings.extract_create, "CREATE_MEETING"),
    PatternRule("create-course", courses.is_create, courses.extract_create, "CREATE_COURSE"),
    PatternRule("send-email", mail.is_send, mail.extract_send, "SEND_EMAIL"),
    # open questions
    PatternRule("educational-question", conversation.is_question, conversation.extract_question, "EDUCATIONAL_QUESTION", 0.6),
)


def match_rule(message: str, rules: Iterable[PatternRule] = PATTERN_RULES) -> Optional[PatternRule]:
    """Return the first rule whose predicate accepts ``message``."""

    lowered = " ".join((message or "").lower().split())
    if not lowered:
        return None
    for rule in rules:
        if rule.predicate(lowered):
            return rule
    return None


def parse_command(message: str, rules: Iterable[PatternRule] = PATTERN_RULES) -> IntentResult:
    """Classify ``message`` with the ordered pattern rules.

    WHAT: run keyword predicates in declared order and extract parameters with
    the winning rule's targeted regexes.
    WHY: this stage must always answer, even offline, so the dialogue can move
    forward when the model is down.
    HOW: first matching rule wins; no match yields ``UNKNOWN`` at 0.5.
    """
    rule = match_rule(message, rules)
    if rule is None:
        return IntentResult(intent=UNKNOWN, confidence=UNKNOWN_CONFIDENCE, source="pattern")
    parameters = {key: value for key, value in rule.extractor(message).items() if value not in (None, "", [])}
    return IntentResult(intent=rule.intent, confidence=rule.confidence, parameters=parameters, source="pattern")


__all__ = ["PATTERN_RULES", "UNKNOWN_CONFIDENCE", "match_rule", "parse_command"]
