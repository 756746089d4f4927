"""Handlers for conversational intents that never touch the backend."""

from __future__ import annotations

from typing import Any, Mapping

from core.action_context import ActionContext
from core.intent_catalog import ROLE_STUDENT, ROLE_SUPER_ADMIN, ROLE_TEACHER
from core.responses import Completed, OrchestratorResponse

GREETING_MESSAGE = "Hello! I'm your classroom assistant. I can help with courses, assignments, announcements, and meetings. What would you like to do?"
UNKNOWN_MESSAGE = (
    "I didn't understand that. Could you please rephrase it? I can help you with creating courses, assignments, "
    'announcements, scheduling meetings, and managing your classroom. Say "help" to see all available commands.'
)
NOTHING_TO_CANCEL = "There's nothing to cancel - I'm not working on any tasks right now. What would you like to do?"
NOTHING_TO_CONTINUE = "There's nothing in progress to continue. What would you like to do?"
QUESTION_FALLBACK = "Sorry, I can't answer questions right now. Please try again in a little while."

_MEETING_HELP = (
    "Meetings:\n"
    '- "create meeting Study Group with john@example.com tomorrow at 3pm"\n'
    '- "change my meeting tomorrow at 9am to 10am"\n'
    '- "cancel my meeting tomorrow at 5pm"'
)

HELP_MESSAGES = {
    ROLE_STUDENT: (
        "Here's what you can do:\n"
        'Courses: "list my courses", "show details for physics 352"\n'
        'Assignments: "show all assignments in physics 352"\n'
        'Announcements: "show announcements in math 201"\n' + _MEETING_HELP
    ),
    ROLE_TEACHER: (
        "Here's what you can do:\n"
        'Courses: "list my courses", "create a new course called Advanced Physics"\n'
        'Announcements: "create announcement Welcome back in physics 352"\n'
        'Assignments: "create assignment Math Quiz in physics 352 due next friday", '
        '"check assignment submissions for test 1 in physics 352"\n'
        'Students: "invite students john@example.com, jane@example.com to physics 352", '
        '"show enrolled students in chemistry 101"\n'
        'Grading: "grade assignment test 1 for student john@example.com to 95 in physics 352"\n' + _MEETING_HELP
    ),
    ROLE_SUPER_ADMIN: (
        "Here's what you can do:\n"
        'Courses: "list all courses", "create a new course called Advanced Physics"\n'
        'Announcements and assignments: "create announcement Welcome back in physics 352"\n'
        'People: "invite students john@example.com to physics 352", "invite teachers prof@example.com to physics 352"\n'
        'Grading: "grade assignment test 1 for student john@example.com to 95 in physics 352"\n' + _MEETING_HELP
    ),
}
GENERAL_HELP = (
    "I can list and show courses, assignments, and announcements, and schedule, move, or cancel meetings. "
    "Some features need teacher permissions; contact your administrator if you need access."
)

JOIN_CLASS_HELP = (
    "To join a class, ask your teacher for the class enrollment code, open your classroom app, "
    'choose "Join class", and enter the code. Your teacher can also invite you by email.'
)
SUBMISSION_HELP = (
    "To submit an assignment, open it in your classroom app, attach your work or create a document, "
    'and press "Turn in". You can unsubmit and resubmit before the due date if you need to make changes.'
)


async def greeting(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    return Completed(GREETING_MESSAGE)


async def help_message(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    return Completed(HELP_MESSAGES.get(ctx.role or "", GENERAL_HELP))


async def unknown(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    return Completed(UNKNOWN_MESSAGE)


async def cancel_action(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    return Completed(NOTHING_TO_CANCEL)


async def proceed(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    return Completed(NOTHING_TO_CONTINUE)


async def educational_question(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    question = str(params.get("question") or ctx.raw_message).strip()
    answer = await ctx.answer(question)
    if not answer:
        return Completed(QUESTION_FALLBACK)
    return Completed(answer, data={"question": question})


async def join_class_help(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    return Completed(JOIN_CLASS_HELP)


async def submission_help(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    return Completed(SUBMISSION_HELP)


HANDLERS = {
    "GREETING": greeting,
    "HELP": help_message,
    "UNKNOWN": unknown,
    "CANCEL_ACTION": cancel_action,
    "PROCEED_WITH_AVAILABLE_INFO": proceed,
    "EDUCATIONAL_QUESTION": educational_question,
    "JOIN_CLASS_HELP": join_class_help,
    "ASSIGNMENT_SUBMISSION_HELP": submission_help,
}
