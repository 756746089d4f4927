"""Assignment handlers: create, list, and submission status."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from core.action_context import ActionContext, student_summary
from core.errors import MissingParameter
from core.parser_utils import parse_date_expression
from core.responses import Completed, OrchestratorResponse

_SUBMITTED_STATES = {"TURNED_IN", "RETURNED"}


def format_due_date(value: Any) -> Optional[str]:
    if isinstance(value, Mapping) and value.get("year") and value.get("month") and value.get("day"):
        return date(int(value["year"]), int(value["month"]), int(value["day"])).isoformat()
    return None


def format_assignment_list(course: Mapping[str, Any], coursework: List[Dict[str, Any]]) -> str:
    if not coursework:
        return (
            f"No assignments found in {course.get('name')}. "
            f'You can create one by saying something like "Create assignment Quiz 1 in {course.get("name")}".'
        )
    lines = [f"Assignments in {course.get('name')} ({len(coursework)}):"]
    for index, item in enumerate(coursework, start=1):
        extras: List[str] = []
        due = format_due_date(item.get("dueDate"))
        if due:
            extras.append(f"due {due}")
        if item.get("maxPoints"):
            extras.append(f"{item['maxPoints']} points")
        suffix = f" ({', '.join(extras)})" if extras else ""
        lines.append(f"{index}. {item.get('title', 'Untitled')}{suffix}")
    return "\n".join(lines)


async def create_assignment(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    title = params.get("title")
    if not title:
        raise MissingParameter(["title"], "Please provide a title for your assignment.")

    body: Dict[str, Any] = {"title": title, "workType": "ASSIGNMENT", "state": "PUBLISHED"}
    if params.get("description"):
        body["description"] = params["description"]
    if params.get("maxPoints") not in (None, ""):
        try:
            body["maxPoints"] = float(params["maxPoints"])
        except (TypeError, ValueError) as exc:
            raise MissingParameter(["maxPoints"], "How many points is the assignment worth? Please give a number.") from exc
    if params.get("dueDate"):
        today = ctx.clock().date()
        due = parse_date_expression(str(params["dueDate"]), today)
        if due is None:
            raise MissingParameter(["dueDate"], f"I couldn't understand the due date \"{params['dueDate']}\". When is it due?")
        if due < today:
            raise MissingParameter(
                ["dueDate"],
                "I couldn't create the assignment because the due date must be in the future. Please provide a future date.",
            )
        body["dueDate"] = {"year": due.year, "month": due.month, "day": due.day}
        body["dueTime"] = {"hours": 23, "minutes": 59}

    course = await ctx.resolve_course(params, purpose="create the assignment in")
    created = await ctx.with_activation(
        course,
        lambda: ctx.backend.create("coursework", body, ctx.token, course_id=str(course["id"])),
    )
    message = f'Created the assignment "{title}" in {course.get("name")}'
    due_text = format_due_date(body.get("dueDate"))
    message += f", due {due_text}." if due_text else "."
    return Completed(message, data={"courseId": course["id"], "assignment": created})


async def list_assignments(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    course = await ctx.resolve_course(params, purpose="see assignments for")
    coursework = await ctx.backend.list("coursework", ctx.token, course_id=str(course["id"]))
    return Completed(format_assignment_list(course, coursework), data={"courseId": course["id"], "assignments": coursework})


def format_submissions(
    assignment: Mapping[str, Any],
    submissions: List[Dict[str, Any]],
    names: Mapping[str, str],
) -> str:
    title = assignment.get("title", "this assignment")
    if not submissions:
        return f'No submissions found for "{title}".'
    turned_in = [item for item in submissions if item.get("state") in _SUBMITTED_STATES]
    pending = [item for item in submissions if item.get("state") not in _SUBMITTED_STATES]
    lines = [f'Submissions for "{title}": {len(turned_in)} of {len(submissions)} turned in.']
    if turned_in:
        lines.append("Turned in: " + ", ".join(names.get(str(item.get("userId")), str(item.get("userId"))) for item in turned_in))
    if pending:
        lines.append("Not yet submitted: " + ", ".join(names.get(str(item.get("userId")), str(item.get("userId"))) for item in pending))
    return "\n".join(lines)


async def check_submissions(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    course = await ctx.resolve_course(params, purpose="check submissions in")
    assignment = await ctx.resolve_coursework(course, params, purpose="check submissions for")
    course_id = str(course["id"])
    submissions = await ctx.backend.list(
        "submissions", ctx.token, course_id=course_id, coursework_id=str(assignment["id"])
    )
    roster = [student_summary(record) for record in await ctx.backend.list("students", ctx.token, course_id=course_id)]
    names = {student["id"]: student["name"] for student in roster}
    return Completed(
        format_submissions(assignment, submissions, names),
        data={"courseId": course_id, "assignmentId": assignment["id"], "submissions": submissions},
    )


HANDLERS = {
    "CREATE_ASSIGNMENT": create_assignment,
    "LIST_ASSIGNMENTS": list_assignments,
    "CHECK_ASSIGNMENT_SUBMISSIONS": check_submissions,
}
