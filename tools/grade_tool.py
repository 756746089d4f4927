"""Grading handlers: grade one submission and show a course's grades."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from core.action_context import ActionContext, student_summary
from core.errors import EntityNotFound, MissingParameter
from core.responses import Completed, OrchestratorResponse


def _parse_grade(value: Any) -> float:
    try:
        grade = float(str(value).strip().split("/")[0])
    except (TypeError, ValueError) as exc:
        raise MissingParameter(["assignedGrade"], "What grade should I give? Please give a number.") from exc
    if grade < 0:
        raise MissingParameter(["assignedGrade"], "Grades can't be negative. What grade should I give?")
    return grade


def _points(value: float) -> str:
    return f"{value:g}"


# WHAT: record a grade for one student's submission.
# WHY: a grade needs four references resolved in order, each of which may be fuzzy.
# HOW: course, then assignment by title, then student by email or name, then that student's submission.
async def grade_assignment(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    grade = _parse_grade(params.get("assignedGrade"))
    course = await ctx.resolve_course(params, purpose="grade in")
    assignment = await ctx.resolve_coursework(course, params, purpose="grade")
    max_points = assignment.get("maxPoints")
    if max_points not in (None, "") and grade > float(max_points):
        raise MissingParameter(
            ["assignedGrade"],
            f'"{assignment.get("title")}" is worth at most {_points(float(max_points))} points. What grade should I give?',
        )
    student = await ctx.resolve_student(course, params)

    course_id = str(course["id"])
    coursework_id = str(assignment["id"])
    submissions = await ctx.backend.list(
        "submissions",
        ctx.token,
        params={"userId": student["id"]},
        course_id=course_id,
        coursework_id=coursework_id,
    )
    submission = next((item for item in submissions if str(item.get("userId")) == student["id"]), None)
    if submission is None:
        raise EntityNotFound(f'{student["name"]} has no submission for "{assignment.get("title")}" yet.')

    await ctx.backend.patch(
        "submissions",
        str(submission["id"]),
        {"assignedGrade": grade, "draftGrade": grade},
        ctx.token,
        update_mask="assignedGrade,draftGrade",
        course_id=course_id,
        coursework_id=coursework_id,
    )
    out_of = f"/{_points(float(max_points))}" if max_points not in (None, "") else ""
    return Completed(
        f'Graded {student["name"]} {_points(grade)}{out_of} on "{assignment.get("title")}" in {course.get("name")}.',
        data={"courseId": course_id, "assignmentId": coursework_id, "submissionId": submission["id"], "grade": grade},
    )


def format_gradebook(
    course: Mapping[str, Any],
    coursework: List[Dict[str, Any]],
    grades: Mapping[str, Dict[str, Any]],
    roster: List[Dict[str, Any]],
) -> str:
    if not coursework:
        return f"{course.get('name')} has no assignments to grade yet."
    if not roster:
        return f"No students are enrolled in {course.get('name')} yet."
    lines = [f"Grades for {course.get('name')}:"]
    for student in roster:
        entries: List[str] = []
        for item in coursework:
            grade = grades.get(str(item["id"]), {}).get(student["id"])
            shown = _points(float(grade)) if grade is not None else "-"
            if grade is not None and item.get("maxPoints"):
                shown += f"/{_points(float(item['maxPoints']))}"
            entries.append(f"{item.get('title', 'Untitled')} {shown}")
        lines.append(f"- {student['name']}: {', '.join(entries)}")
    return "\n".join(lines)


async def show_course_grades(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    course = await ctx.resolve_course(params, purpose="see grades for")
    course_id = str(course["id"])
    coursework = await ctx.backend.list("coursework", ctx.token, course_id=course_id)
    roster = [student_summary(record) for record in await ctx.backend.list("students", ctx.token, course_id=course_id)]

    grades: Dict[str, Dict[str, Any]] = {}
    for item in coursework:
        submissions = await ctx.backend.list("submissions", ctx.token, course_id=course_id, coursework_id=str(item["id"]))
        grades[str(item["id"])] = {
            str(submission.get("userId")): submission.get("assignedGrade")
            for submission in submissions
            if submission.get("assignedGrade") is not None
        }
    return Completed(format_gradebook(course, coursework, grades, roster), data={"courseId": course_id, "grades": grades})


HANDLERS = {
    "GRADE_ASSIGNMENT": grade_assignment,
    "SHOW_COURSE_GRADES": show_course_grades,
}
