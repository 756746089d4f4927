"""Announcement handlers."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from core.action_context import ActionContext
from core.errors import MissingParameter
from core.intent_catalog import missing_parameter_prompt
from core.responses import Completed, OrchestratorResponse

_RECENT_LIMIT = 5


def format_announcements(course: Mapping[str, Any], announcements: List[Dict[str, Any]]) -> str:
    if not announcements:
        return f"{course.get('name')} has no announcements yet."
    recent = announcements[:_RECENT_LIMIT]
    lines = [f"Recent announcements in {course.get('name')} ({len(recent)} of {len(announcements)}):"]
    for index, item in enumerate(recent, start=1):
        posted = f" ({item['creationTime'][:10]})" if item.get("creationTime") else ""
        lines.append(f"{index}. {item.get('text', '').strip()}{posted}")
    return "\n".join(lines)


async def create_announcement(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    text = str(params.get("announcementText") or "").strip()
    if not text:
        raise MissingParameter(["announcementText"], missing_parameter_prompt("CREATE_ANNOUNCEMENT", ["announcementText"]))

    course = await ctx.resolve_course(params, purpose="post the announcement in")
    body = {"text": text, "state": "PUBLISHED"}
    announcement = await ctx.with_activation(
        course,
        lambda: ctx.backend.create("announcements", body, ctx.token, course_id=str(course["id"])),
    )
    return Completed(
        f'Posted your announcement "{text}" in {course.get("name")}.',
        data={"courseId": course["id"], "announcement": announcement},
    )


async def get_announcements(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    course = await ctx.resolve_course(params, purpose="view announcements for")
    announcements = await ctx.backend.list("announcements", ctx.token, course_id=str(course["id"]))
    return Completed(
        format_announcements(course, announcements),
        data={"courseId": course["id"], "announcements": announcements},
    )


HANDLERS = {
    "CREATE_ANNOUNCEMENT": create_announcement,
    "GET_ANNOUNCEMENTS": get_announcements,
}
