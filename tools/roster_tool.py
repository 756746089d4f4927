"""Roster handlers: invitations, the enrolled-student list, and join guidance."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple

from core.action_context import ActionContext, student_summary
from core.errors import BackendError, MissingParameter
from core.responses import Completed, OrchestratorResponse

logger = logging.getLogger(__name__)


def format_invitation_result(
    course: Mapping[str, Any],
    invited: List[str],
    failed: List[Tuple[str, str]],
    *,
    role_label: str,
) -> str:
    lines: List[str] = []
    if invited:
        lines.append(f"Invited {len(invited)} {role_label}{'s' if len(invited) != 1 else ''} to {course.get('name')}: {', '.join(invited)}.")
    for email, reason in failed:
        lines.append(f"Could not invite {email}: {reason}")
    if course.get("enrollmentCode") and role_label == "student":
        lines.append(f"Students can also join with enrollment code {course['enrollmentCode']}.")
    return "\n".join(lines)


async def _invite(
    params: Mapping[str, Any],
    ctx: ActionContext,
    *,
    email_key: str,
    role: str,
    role_label: str,
) -> OrchestratorResponse:
    emails = list(params.get(email_key) or [])
    if not emails:
        raise MissingParameter([email_key], f"Which {role_label}s should I invite? Please give their email addresses.")
    course = await ctx.resolve_course(params, purpose=f"invite the {role_label}s to")
    course_id = str(course["id"])

    invited: List[str] = []
    failed: List[Tuple[str, str]] = []
    last_error: BackendError | None = None
    for email in emails:
        body = {"courseId": course_id, "userId": email, "role": role}
        try:
            await ctx.with_activation(course, lambda body=body: ctx.backend.create("invitations", body, ctx.token))
        except BackendError as exc:
            # 409 means the person is already invited or enrolled.
            if exc.http_status == 409:
                invited.append(email)
                continue
            logger.warning("Invitation for %s to course %s failed: %s", email, course_id, exc.message)
            failed.append((email, exc.user_message()))
            last_error = exc
            continue
        invited.append(email)

    if not invited and last_error is not None:
        raise last_error
    return Completed(
        format_invitation_result(course, invited, failed, role_label=role_label),
        data={"courseId": course_id, "invited": invited, "failed": [email for email, _ in failed]},
    )


async def invite_students(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    return await _invite(params, ctx, email_key="studentEmails", role="STUDENT", role_label="student")


async def invite_teachers(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    return await _invite(params, ctx, email_key="emails", role="TEACHER", role_label="teacher")


def format_roster(course: Mapping[str, Any], students: List[Dict[str, Any]]) -> str:
    if not students:
        return f"No students are enrolled in {course.get('name')} yet."
    lines = [f"Students enrolled in {course.get('name')} ({len(students)}):"]
    for index, student in enumerate(students, start=1):
        email = f" <{student['email']}>" if student.get("email") else ""
        lines.append(f"{index}. {student['name']}{email}")
    return "\n".join(lines)


async def show_enrolled_students(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    course = await ctx.resolve_course(params, purpose="see the students of")
    records = await ctx.backend.list("students", ctx.token, course_id=str(course["id"]))
    students = [student_summary(record) for record in records]
    return Completed(format_roster(course, students), data={"courseId": course["id"], "students": students})


async def student_join_suggestion(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    code = params.get("enrollmentCode")
    course = params.get("courseName")
    if code:
        message = (
            f"To join with code {code}, open your classroom app, choose \"Join class\", and enter the code. "
            "If it doesn't work, ask your teacher to send you an invitation."
        )
    elif course:
        message = (
            f"To join {course}, ask your teacher for the class enrollment code or for an email invitation. "
            "Once you have the code, choose \"Join class\" in your classroom app and enter it."
        )
    else:
        message = (
            "To join a class, ask your teacher for the enrollment code or an invitation. "
            "Then choose \"Join class\" in your classroom app and enter the code."
        )
    return Completed(message)


HANDLERS = {
    "INVITE_STUDENTS": invite_students,
    "INVITE_TEACHERS": invite_teachers,
    "SHOW_ENROLLED_STUDENTS": show_enrolled_students,
    "STUDENT_JOIN_SUGGESTION": student_join_suggestion,
}
