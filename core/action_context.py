"""Per-turn execution context handed to every intent handler.

Handlers never cache backend lists: each ``resolve_*`` call fetches the
collection again and runs the entity resolver over it, so a course renamed or
deleted since the previous turn is seen immediately. Ambiguity, absence, and
missing slots are raised as ``AmbiguousReference``, ``EntityNotFound`` and
``MissingParameter``; the orchestrator turns them into responses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from core.backend_client import BackendClient
from core.entity_resolver import Entity, MatchSet, entities_from, format_options, resolve
from core.errors import (
    AmbiguousReference,
    BackendError,
    ClassificationUnavailable,
    EntityNotFound,
    MissingParameter,
)
from core.intent_catalog import ROLE_STUDENT
from core.llm_classifier import LLMClassifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

COURSE_NEEDS_ADMIN = (
    "This course isn't active yet, and I couldn't activate it for you. "
    "An administrator needs to activate it before anything can be posted."
)
COURSE_STILL_ACTIVATING = "The course is still being activated. Please try again in a minute."


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def student_summary(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten a roster record into id, name, and email."""
    profile = record.get("profile") or {}
    name = profile.get("name") or {}
    full_name = name.get("fullName") if isinstance(name, Mapping) else name
    email = profile.get("emailAddress") or record.get("emailAddress") or record.get("email")
    return {
        "id": str(record.get("userId") or profile.get("id") or record.get("id") or ""),
        "name": full_name or email or "Unknown",
        "email": email,
    }


@dataclass
class ActionContext:
    intent: str
    backend: BackendClient
    token: str
    role: Optional[str] = None
    raw_message: str = ""
    answerer: Optional[LLMClassifier] = None
    history: List[Dict[str, str]] = field(default_factory=list)
    clock: Callable[[], datetime] = _utc_now

    @property
    def is_student(self) -> bool:
        return self.role == ROLE_STUDENT

    # --- Courses -----------------------------------------------------------------
    # WHAT: turn courseId/courseName parameters into one live course record.
    # WHY: names are fuzzy and the course list may have changed since the last turn.
    # HOW: verify an explicit id with a fresh get, else resolve the name over a freshly listed collection.
    async def resolve_course(self, params: Mapping[str, Any], *, purpose: str) -> Dict[str, Any]:
        course_id = params.get("courseId")
        if course_id:
            try:
                return await self.backend.get("courses", str(course_id), self.token)
            except BackendError as exc:
                if exc.is_not_found:
                    raise EntityNotFound("That course no longer exists. Which course did you mean?") from exc
                raise

        name = params.get("courseName")
        if not name:
            raise MissingParameter(["courseName"], f"Which course would you like to {purpose}?")

        courses = await self.backend.list("courses", self.token)
        candidates = entities_from(courses, attribute_keys=("section",))
        match = resolve(str(name), candidates)
        if match.is_unique:
            return _record_for(match.entity, courses)
        if match.is_many:
            raise AmbiguousReference(
                entity_type="course",
                parameter="courseId",
                options=[entity.to_option() for entity in match.entities],
                data=dict(params),
                prompt=(
                    f'I found multiple courses matching "{name}". Which one would you like to {purpose}?\n'
                    f"{format_options(match.entities)}"
                ),
            )
        if candidates:
            available = ", ".join(entity.display_name for entity in candidates)
            raise EntityNotFound(f'I couldn\'t find a course matching "{name}". Your courses are: {available}.')
        raise EntityNotFound(f'I couldn\'t find a course matching "{name}". You don\'t have any courses yet.')

    async def activate_course(self, course: Mapping[str, Any]) -> Dict[str, Any]:
        return await self.backend.patch(
            "courses",
            str(course["id"]),
            {"courseState": "ACTIVE"},
            self.token,
            update_mask="courseState",
        )

    # WHAT: run a write against a course, activating the course once if the backend says it is not active.
    # WHY: newly created courses start PROVISIONED and reject posts until activated.
    # HOW: catch one precondition failure, patch courseState to ACTIVE, retry once, then give a specific message.
    async def with_activation(self, course: Mapping[str, Any], operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await operation()
        except BackendError as exc:
            if not exc.is_precondition:
                raise
            logger.info("Course %s rejected the request (%s); activating and retrying once", course.get("id"), exc.message)

        try:
            await self.activate_course(course)
        except BackendError as activation_error:
            if activation_error.is_transient:
                raise BackendError(COURSE_STILL_ACTIVATING, status="UNAVAILABLE") from activation_error
            raise BackendError(COURSE_NEEDS_ADMIN, status="FAILED_PRECONDITION") from activation_error

        try:
            return await operation()
        except BackendError as retry_error:
            if retry_error.is_precondition:
                raise BackendError(COURSE_NEEDS_ADMIN, status="FAILED_PRECONDITION") from retry_error
            raise

    # --- Coursework ------------------------------------------------------------
    async def resolve_coursework(
        self,
        course: Mapping[str, Any],
        params: Mapping[str, Any],
        *,
        purpose: str,
    ) -> Dict[str, Any]:
        course_id = str(course["id"])
        assignment_id = params.get("assignmentId")
        if assignment_id:
            try:
                return await self.backend.get("coursework", str(assignment_id), self.token, course_id=course_id)
            except BackendError as exc:
                if exc.is_not_found:
                    raise EntityNotFound("That assignment no longer exists. Which assignment did you mean?") from exc
                raise

        title = params.get("assignmentTitle")
        if not title:
            raise MissingParameter(["assignmentTitle"], f"Which assignment would you like to {purpose}?")

        coursework = await self.backend.list("coursework", self.token, course_id=course_id)
        candidates = entities_from(coursework, name_key="title")
        match = resolve(str(title), candidates)
        if match.is_unique:
            return _record_for(match.entity, coursework)
        if match.is_many:
            data = dict(params)
            data["courseId"] = course_id
            raise AmbiguousReference(
                entity_type="assignment",
                parameter="assignmentId",
                options=[entity.to_option() for entity in match.entities],
                data=data,
                prompt=(
                    f'I found multiple assignments matching "{title}" in {course.get("name")}. Which one do you mean?\n'
                    f"{format_options(match.entities)}"
                ),
            )
        raise EntityNotFound(f'I couldn\'t find an assignment matching "{title}" in {course.get("name")}.')

    # --- Roster ------------------------------------------------------------------
    async def resolve_student(self, course: Mapping[str, Any], params: Mapping[str, Any]) -> Dict[str, Any]:
        """Find one enrolled student by exact email, else by a fragment of the full name."""
        course_id = str(course["id"])
        roster = [student_summary(record) for record in await self.backend.list("students", self.token, course_id=course_id)]

        student_id = params.get("studentId")
        if student_id:
            for student in roster:
                if student["id"] == str(student_id):
                    return student
            raise EntityNotFound(f"That student is no longer enrolled in {course.get('name')}.")

        identifier = str(params.get("studentEmail") or "").strip()
        if not identifier:
            raise MissingParameter(["studentEmail"], "Which student should I grade? Please give their email address or name.")

        candidates = [
            Entity(id=student["id"], display_name=student["name"], attributes={"email": student["email"]})
            for student in roster
        ]
        if "@" in identifier:
            match = MatchSet.of([entity for entity in candidates if str(entity.attributes.get("email") or "").lower() == identifier.lower()])
        else:
            match = resolve(identifier, candidates)

        if match.is_unique:
            return next(student for student in roster if student["id"] == match.entity.id)
        if match.is_many:
            data = dict(params)
            data["courseId"] = course_id
            raise AmbiguousReference(
                entity_type="student",
                parameter="studentId",
                options=[entity.to_option() for entity in match.entities],
                data=data,
                prompt=f'Several students match "{identifier}". Which one do you mean?\n{format_options(match.entities)}',
            )
        available = ", ".join(student["name"] for student in roster) or "none"
        raise EntityNotFound(
            f'No student found in {course.get("name")} with name or email "{identifier}". Enrolled students: {available}.'
        )

    # --- Model-backed answers ----------------------------------------------------
    async def answer(self, question: str) -> Optional[str]:
        if self.answerer is None:
            return None
        try:
            return await self.answerer.answer_question(question, self.history)
        except ClassificationUnavailable as exc:
            logger.warning("Could not answer question: %s", exc)
            return None


def _record_for(entity: Optional[Entity], records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    for record in records:
        if entity is not None and str(record.get("id")) == entity.id:
            return dict(record)
    raise EntityNotFound("That item is no longer available.")


__all__ = ["ActionContext", "COURSE_NEEDS_ADMIN", "COURSE_STILL_ACTIVATING", "student_summary"]
