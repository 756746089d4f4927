"""Course handlers: list, show, create, update, delete and archive."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

from core.action_context import ActionContext
from core.errors import BackendError, MissingParameter
from core.responses import Completed, OrchestratorResponse

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {"newName": "name", "section": "section", "description": "description", "room": "room"}


def format_course_line(index: int, course: Mapping[str, Any]) -> str:
    section = f" ({course['section']})" if course.get("section") else ""
    line = f"{index}. {course.get('name', 'Untitled course')}{section}"
    details: List[str] = []
    if course.get("enrollmentCode"):
        details.append(f"enrollment code {course['enrollmentCode']}")
    if course.get("courseState"):
        details.append(f"status {course['courseState']}")
    return f"{line} - {', '.join(details)}" if details else line


def format_course_list(courses: List[Dict[str, Any]], *, student: bool) -> str:
    if not courses:
        return "No courses found."
    heading = "Your enrolled courses" if student else "Your courses"
    lines = [f"{heading} ({len(courses)}):"]
    lines.extend(format_course_line(index, course) for index, course in enumerate(courses, start=1))
    return "\n".join(lines)


def format_course_details(course: Mapping[str, Any]) -> str:
    lines = [f"Course details for {course.get('name', 'Untitled course')}:"]
    for label, key in (
        ("Section", "section"),
        ("Description", "description"),
        ("Room", "room"),
        ("Status", "courseState"),
        ("Enrollment code", "enrollmentCode"),
        ("Link", "alternateLink"),
    ):
        if course.get(key):
            lines.append(f"- {label}: {course[key]}")
    return "\n".join(lines)


async def list_courses(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    courses = await ctx.backend.list("courses", ctx.token)
    return Completed(format_course_list(courses, student=ctx.is_student), data={"courses": courses})


async def get_course(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    course = await ctx.resolve_course(params, purpose="see")
    return Completed(format_course_details(course), data={"course": course})


# WHAT: create a course and make it usable right away.
# WHY: the backend creates courses as PROVISIONED, which blocks posts until activated.
# HOW: create with courseState PROVISIONED, patch courseState to ACTIVE, and report the enrollment code.
async def create_course(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    name = params.get("name")
    if not name:
        raise MissingParameter(["name"], "What would you like to call your new class?")
    body: Dict[str, Any] = {"name": name, "ownerId": "me", "courseState": "PROVISIONED"}
    for key in ("section", "description", "room"):
        if params.get(key):
            body[key] = params[key]

    course = await ctx.backend.create("courses", body, ctx.token)
    try:
        activated = await ctx.activate_course(course)
    except BackendError as exc:
        logger.warning("Course %s was created but could not be activated: %s", course.get("id"), exc.message)
        message = (
            f'Created the course "{course.get("name", name)}", but it still needs activation before students '
            "can join or posts can be made. A Classroom administrator can activate it."
        )
        return Completed(message, data={"course": course, "needsActivation": True})
    course = {**course, **activated}

    message = f'Created the course "{course.get("name", name)}".'
    if course.get("enrollmentCode"):
        message += f" Students can join with enrollment code {course['enrollmentCode']}."
    return Completed(message, data={"course": course})


async def update_course(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    course = await ctx.resolve_course(params, purpose="update")
    changes = {field: params[key] for key, field in _EDITABLE_FIELDS.items() if params.get(key)}
    if not changes:
        raise MissingParameter(["newName"], f"What would you like to change about {course.get('name')}?")
    updated = await ctx.backend.patch(
        "courses",
        str(course["id"]),
        changes,
        ctx.token,
        update_mask=",".join(sorted(changes)),
    )
    summary = ", ".join(f"{field} to {value}" for field, value in changes.items())
    return Completed(f"Updated {course.get('name')}: set {summary}.", data={"course": {**course, **updated}})


async def delete_course(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    course = await ctx.resolve_course(params, purpose="delete")
    await ctx.backend.delete("courses", str(course["id"]), ctx.token)
    return Completed(f'Deleted the course "{course.get("name")}".', data={"courseId": course["id"]})


async def archive_course(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    course = await ctx.resolve_course(params, purpose="archive")
    updated = await ctx.backend.patch(
        "courses",
        str(course["id"]),
        {"courseState": "ARCHIVED"},
        ctx.token,
        update_mask="courseState",
    )
    return Completed(f'Archived the course "{course.get("name")}".', data={"course": {**course, **updated}})


HANDLERS = {
    "LIST_COURSES": list_courses,
    "GET_COURSE": get_course,
    "CREATE_COURSE": create_course,
    "UPDATE_COURSE": update_course,
    "DELETE_COURSE": delete_course,
    "ARCHIVE_COURSE": archive_course,
}
