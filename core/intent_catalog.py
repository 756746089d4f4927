"""Declarative intent table shared by the classifier prompt, fallback, and orchestrator.

Every intent the assistant understands is described once here: its
description, required and optional parameters, hints telling the model how to
extract each parameter, and which roles may run it. The model prompt, the
pattern fallback's intent names, the missing-parameter check, and role
authorization all read from this table.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import yaml

from core.errors import IntentCatalogError

UNKNOWN = "UNKNOWN"
CANCEL_ACTION = "CANCEL_ACTION"
PROCEED_WITH_AVAILABLE_INFO = "PROCEED_WITH_AVAILABLE_INFO"

ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"
ROLE_SUPER_ADMIN = "super_admin"
ALL_ROLES = (ROLE_STUDENT, ROLE_TEACHER, ROLE_SUPER_ADMIN)
_STAFF = (ROLE_TEACHER, ROLE_SUPER_ADMIN)
_ADMIN = (ROLE_SUPER_ADMIN,)

# Shapes drive continuation detection: how a bare follow-up reply can fill a slot.
PARAMETER_SHAPES: Dict[str, str] = {
    "studentEmails": "emails",
    "emails": "emails",
    "recipientEmail": "email",
    "senderEmail": "email",
    "studentEmail": "person",
    "courseName": "name",
    "name": "name",
    "newName": "name",
    "title": "name",
    "assignmentTitle": "name",
    "section": "name",
    "announcementText": "text",
    "message": "text",
    "subject": "text",
    "description": "text",
    "question": "text",
    "dateExpr": "date",
    "newDateExpr": "date",
    "dueDate": "date",
    "timeExpr": "time",
    "newTimeExpr": "time",
    "assignedGrade": "number",
    "maxPoints": "number",
    "durationMinutes": "number",
}

PARAMETER_HINTS: Dict[str, str] = {
    "courseName": "name or partial name of the course exactly as the user wrote it",
    "name": "name for the new course",
    "newName": "new course name when renaming",
    "section": "course section label",
    "description": "free-text description",
    "studentEmails": "list of student email addresses",
    "emails": "list of teacher email addresses",
    "studentEmail": "student email address or name",
    "recipientEmail": "email address of the recipient",
    "senderEmail": "email address to filter messages by",
    "subject": "email subject line",
    "message": "body text of the email",
    "announcementText": "the text of the announcement",
    "title": "title of the new assignment",
    "assignmentTitle": "title or partial title of an existing assignment",
    "dueDate": "due date phrase such as 'next friday' or 'December 15'",
    "maxPoints": "maximum points as a number",
    "assignedGrade": "numeric grade",
    "dateExpr": "date phrase such as 'tomorrow', 'next monday', '12/15'",
    "timeExpr": "time phrase such as '3pm', '14:30', 'noon'",
    "newDateExpr": "new date phrase when rescheduling",
    "newTimeExpr": "new time phrase when rescheduling",
    "durationMinutes": "meeting length in minutes",
    "enrollmentCode": "course enrollment code",
    "question": "the user's question",
}


PARAMETER_QUESTIONS: Dict[str, str] = {
    "courseName": "Which course should I use?",
    "name": "What would you like to call your new class?",
    "studentEmails": "Which students should I invite? Please give their email addresses.",
    "emails": "Which teachers should I invite? Please give their email addresses.",
    "studentEmail": "Which student is this for? Please give their email address or name.",
    "recipientEmail": "I need to know who to send the email to. Please provide a recipient email address.",
    "message": "I need to know what message to send. Please provide the email content.",
    "announcementText": "What would you like to announce?",
    "title": "Please provide a title for your assignment.",
    "assignmentTitle": "Which assignment do you mean?",
    "assignedGrade": "What grade should I give?",
    "dateExpr": "What day is the meeting?",
    "timeExpr": "What time is the meeting?",
}

_INTENT_QUESTIONS: Dict[Tuple[str, str], str] = {
    ("CREATE_ANNOUNCEMENT", "courseName"): "Which course should I post this announcement in?",
    ("GET_ANNOUNCEMENTS", "courseName"): "I need to know which course you want to view announcements for. Please provide a course name.",
    ("CREATE_ASSIGNMENT", "courseName"): "I need to know which course you want to create an assignment for. Please provide a course name.",
    ("LIST_ASSIGNMENTS", "courseName"): "I need to know which course you want to see assignments for. Please provide a course name.",
    ("INVITE_STUDENTS", "courseName"): "I need to know which course you want to invite students to. Please provide a course name.",
    ("INVITE_STUDENTS", "studentEmails"): "I need to know which students to invite. Please provide their email addresses.",
    ("INVITE_TEACHERS", "courseName"): "Which course should I invite the teachers to?",
    ("GET_COURSE", "courseName"): "Which course are you interested in?",
    ("UPDATE_COURSE", "courseName"): "Which course would you like to update?",
    ("DELETE_COURSE", "courseName"): "Which course would you like to delete?",
    ("ARCHIVE_COURSE", "courseName"): "Which course would you like to archive?",
    ("UPDATE_MEETING", "dateExpr"): "Which meeting should I move? Tell me its current day.",
    ("UPDATE_MEETING", "timeExpr"): "What time does the meeting you want to move start?",
    ("DELETE_MEETING", "dateExpr"): "Which day is the meeting you want to cancel?",
    ("DELETE_MEETING", "timeExpr"): "What time does the meeting you want to cancel start?",
}

_COMBINED_QUESTIONS: Dict[Tuple[str, frozenset], str] = {
    ("CREATE_ANNOUNCEMENT", frozenset({"courseName", "announcementText"})): (
        "What would you like to announce and which course should I post it in?"
    ),
    ("CREATE_MEETING", frozenset({"dateExpr", "timeExpr"})): "When should the meeting be? Please give a day and a time.",
}


def missing_parameter_prompt(intent: str, missing: Iterable[str]) -> str:
    """Return the question asked when ``intent`` still lacks ``missing``."""
    missing = list(missing)
    combined = _COMBINED_QUESTIONS.get((intent, frozenset(missing)))
    if combined:
        return combined
    questions = [
        _INTENT_QUESTIONS.get((intent, name)) or PARAMETER_QUESTIONS.get(name) or f"What is the {name}?"
        for name in missing
    ]
    if len(questions) == 1:
        return questions[0]
    return "I need a few more details:\n" + "\n".join(f"- {question}" for question in questions)


@dataclass(frozen=True)
class IntentDefinition:
    """Declarative description of a single intent."""

    name: str
    description: str
    required_parameters: Tuple[str, ...] = ()
    optional_parameters: Tuple[str, ...] = ()
    allowed_roles: Optional[Tuple[str, ...]] = None
    actionable: bool = True

    @property
    def parameters(self) -> Tuple[str, ...]:
        return self.required_parameters + self.optional_parameters

    def allows(self, role: Optional[str]) -> bool:
        if self.allowed_roles is None:
            return True
        return role in self.allowed_roles

    def missing_parameters(self, parameters: Mapping[str, Any]) -> List[str]:
        return [name for name in self.required_parameters if _is_blank(parameters.get(name))]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _intent(
    name: str,
    description: str,
    required: Iterable[str] = (),
    optional: Iterable[str] = (),
    roles: Optional[Tuple[str, ...]] = None,
    actionable: bool = True,
) -> IntentDefinition:
    return IntentDefinition(
        name=name,
        description=description,
        required_parameters=tuple(required),
        optional_parameters=tuple(optional),
        allowed_roles=roles,
        actionable=actionable,
    )


DEFAULT_INTENTS: Tuple[IntentDefinition, ...] = (
    _intent("LIST_COURSES", "List the user's courses"),
    _intent("GET_COURSE", "Show details of one course", ["courseName"]),
    _intent("CREATE_COURSE", "Create a new course", ["name"], ["section", "description", "room"], _STAFF),
    _intent("UPDATE_COURSE", "Rename or edit a course", ["courseName"], ["newName", "section", "description", "room"], _STAFF),
    _intent("DELETE_COURSE", "Delete a course", ["courseName"], roles=_STAFF),
    _intent("ARCHIVE_COURSE", "Archive a course", ["courseName"], roles=_STAFF),
    _intent("INVITE_STUDENTS", "Invite students to a course by email", ["courseName", "studentEmails"], roles=_STAFF),
    _intent("INVITE_TEACHERS", "Invite co-teachers to a course by email", ["courseName", "emails"], roles=_ADMIN),
    _intent("STUDENT_JOIN_SUGGESTION", "A student wants to join a course", optional=["courseName", "enrollmentCode"]),
    _intent("SHOW_ENROLLED_STUDENTS", "Show the students enrolled in a course", ["courseName"], roles=_STAFF),
    _intent("CREATE_ANNOUNCEMENT", "Post an announcement to a course", ["courseName", "announcementText"], roles=_STAFF),
    _intent("GET_ANNOUNCEMENTS", "Show recent announcements of a course", ["courseName"]),
    _intent("CREATE_ASSIGNMENT", "Create an assignment in a course", ["courseName", "title"], ["description", "dueDate", "maxPoints"], _STAFF),
    _intent("LIST_ASSIGNMENTS", "List the assignments of a course", ["courseName"]),
    _intent("CHECK_ASSIGNMENT_SUBMISSIONS", "Show who submitted an assignment", ["courseName", "assignmentTitle"], roles=_STAFF),
    _intent(
        "GRADE_ASSIGNMENT",
        "Give a student a grade on an assignment",
        ["courseName", "assignmentTitle", "studentEmail", "assignedGrade"],
        roles=_STAFF,
    ),
    _intent("SHOW_COURSE_GRADES", "Show grades for a course", ["courseName"], roles=_STAFF),
    _intent("CREATE_MEETING", "Schedule a meeting", ["dateExpr", "timeExpr"], ["title", "durationMinutes", "attendees"]),
    _intent("LIST_MEETINGS", "Show upcoming meetings", optional=["dateExpr"]),
    _intent("UPDATE_MEETING", "Reschedule a meeting", ["dateExpr", "timeExpr"], ["newDateExpr", "newTimeExpr", "title"]),
    _intent("DELETE_MEETING", "Cancel or delete a meeting", ["dateExpr", "timeExpr"]),
    _intent("READ_EMAIL", "Read recent emails", optional=["senderEmail"]),
    _intent("SEND_EMAIL", "Send an email", ["recipientEmail", "message"], ["subject"]),
    _intent("EDUCATIONAL_QUESTION", "A general or subject-matter question", optional=["question"], actionable=False),
    _intent("JOIN_CLASS_HELP", "Asks how to join a class", actionable=False),
    _intent("ASSIGNMENT_SUBMISSION_HELP", "Asks how to submit an assignment", actionable=False),
    _intent("GREETING", "Hello or small talk", actionable=False),
    _intent("HELP", "Asks what the assistant can do", actionable=False),
    _intent(CANCEL_ACTION, "Cancel the current request", actionable=False),
    _intent(PROCEED_WITH_AVAILABLE_INFO, "Continue the current request with what was given", actionable=False),
    _intent(UNKNOWN, "Nothing above fits", actionable=False),
)


class IntentCatalog:
    """Lookup wrapper around the intent table."""

    def __init__(self, definitions: Iterable[IntentDefinition] = DEFAULT_INTENTS) -> None:
        self._definitions: Dict[str, IntentDefinition] = {}
        for definition in definitions:
            self._definitions[definition.name] = definition
        if UNKNOWN not in self._definitions:
            self._definitions[UNKNOWN] = _intent(UNKNOWN, "Nothing above fits", actionable=False)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def names(self) -> Tuple[str, ...]:
        return tuple(self._definitions)

    def definitions(self) -> Tuple[IntentDefinition, ...]:
        return tuple(self._definitions.values())

    def get(self, name: Optional[str]) -> IntentDefinition:
        return self._definitions.get(name or UNKNOWN) or self._definitions[UNKNOWN]

    def missing_parameters(self, name: str, parameters: Mapping[str, Any]) -> List[str]:
        return self.get(name).missing_parameters(parameters)

    def is_actionable(self, name: Optional[str]) -> bool:
        return self.get(name).actionable

    @staticmethod
    def shape_for(parameter: str) -> str:
        return PARAMETER_SHAPES.get(parameter, "text")

    def prompt_lines(self) -> List[str]:
        """Render one prompt line per intent with its parameter contract."""
        lines: List[str] = []
        for definition in self._definitions.values():
            params: List[str] = []
            for name in definition.required_parameters:
                params.append(f"{name} (required: {PARAMETER_HINTS.get(name, name)})")
            for name in definition.optional_parameters:
                params.append(f"{name} (optional: {PARAMETER_HINTS.get(name, name)})")
            contract = "; ".join(params) if params else "no parameters"
            lines.append(f"- {definition.name}: {definition.description}. Parameters: {contract}")
        return lines


def load_intent_catalog(path: Path | str | None = None) -> IntentCatalog:
    """Build the catalog, applying overrides from a YAML file when one is given.

    The file holds an ``intents`` mapping keyed by intent name. Known intents
    are patched field by field; unknown names are added as new intents.
    """

    if path is None:
        return IntentCatalog()
    source = Path(path)
    if not source.exists():
        raise IntentCatalogError(f"Intent catalog file not found: {source}")
    try:
        raw = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise IntentCatalogError(f"Invalid intent catalog YAML: {exc}") from exc
    return IntentCatalog(_merge_overrides(DEFAULT_INTENTS, raw))


def _merge_overrides(defaults: Iterable[IntentDefinition], raw: Any) -> List[IntentDefinition]:
    if not isinstance(raw, dict):
        raise IntentCatalogError("Intent catalog must be a mapping")
    overrides = raw.get("intents") or {}
    if not isinstance(overrides, dict):
        raise IntentCatalogError("'intents' must map intent names to definitions")

    merged: Dict[str, IntentDefinition] = {definition.name: definition for definition in defaults}
    for name, entry in overrides.items():
        if not isinstance(entry, dict):
            raise IntentCatalogError(f"Intent '{name}' must be a mapping")
        changes: Dict[str, Any] = {}
        if "description" in entry:
            changes["description"] = str(entry["description"])
        for key in ("required_parameters", "optional_parameters"):
            if key in entry:
                changes[key] = _as_tuple(entry[key], f"{name}.{key}")
        if "allowed_roles" in entry:
            roles = entry["allowed_roles"]
            changes["allowed_roles"] = None if roles is None else _as_tuple(roles, f"{name}.allowed_roles")
        if "actionable" in entry:
            changes["actionable"] = bool(entry["actionable"])

        current = merged.get(name)
        if current is None:
            if "description" not in changes:
                raise IntentCatalogError(f"New intent '{name}' requires a description")
            merged[name] = IntentDefinition(name=str(name), **changes)
        else:
            merged[name] = replace(current, **changes)
    return list(merged.values())


def _as_tuple(value: Any, label: str) -> Tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise IntentCatalogError(f"'{label}' must be a list of strings")
    return tuple(value)


__all__ = [
    "ALL_ROLES",
    "CANCEL_ACTION",
    "DEFAULT_INTENTS",
    "IntentCatalog",
    "IntentDefinition",
    "PARAMETER_HINTS",
    "PARAMETER_QUESTIONS",
    "PARAMETER_SHAPES",
    "PROCEED_WITH_AVAILABLE_INFO",
    "ROLE_STUDENT",
    "ROLE_SUPER_ADMIN",
    "ROLE_TEACHER",
    "UNKNOWN",
    "load_intent_catalog",
    "missing_parameter_prompt",
]
