"""Calendar meeting handlers.

Meetings are addressed by when they start rather than by name: update and
delete resolve ``dateExpr``/``timeExpr`` to a concrete start time and look
for events on that day starting at that moment.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from core.action_context import ActionContext
from core.entity_resolver import Entity, MatchSet, format_options
from core.errors import AmbiguousReference, BackendError, EntityNotFound, MissingParameter
from core.parser_utils import parse_date_expression, parse_time_expression
from core.responses import Completed, OrchestratorResponse

DEFAULT_DURATION_MINUTES = 60
_UPCOMING_LIMIT = 10


def parse_event_time(value: Any) -> Optional[datetime]:
    if not isinstance(value, Mapping):
        return None
    raw = value.get("dateTime") or value.get("date")
    if not raw:
        return None
    parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_when(moment: datetime) -> str:
    return moment.strftime("%A, %B %d at %I:%M %p").replace(" 0", " ")


def format_meeting(event: Mapping[str, Any]) -> str:
    start = parse_event_time(event.get("start"))
    when = format_when(start) if start else "time not set"
    return f"{event.get('summary') or 'Untitled meeting'} - {when}"


def format_meeting_list(events: List[Dict[str, Any]], label: str) -> str:
    if not events:
        return f"You have no meetings {label}."
    lines = [f"Your meetings {label} ({len(events)}):"]
    lines.extend(f"{index}. {format_meeting(event)}" for index, event in enumerate(events, start=1))
    return "\n".join(lines)


def _resolve_start(ctx: ActionContext, date_expr: Any, time_expr: Any, *, date_key: str, time_key: str) -> datetime:
    reference = ctx.clock()
    day = parse_date_expression(str(date_expr or ""), reference)
    if day is None:
        raise MissingParameter([date_key], f'I couldn\'t understand the date "{date_expr}". Which day do you mean?')
    moment = parse_time_expression(str(time_expr or ""))
    if moment is None:
        raise MissingParameter([time_key], f'I couldn\'t understand the time "{time_expr}". What time do you mean?')
    return datetime.combine(day, moment, tzinfo=reference.tzinfo or timezone.utc)


def _day_window(moment: datetime) -> Dict[str, str]:
    start = datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)
    return {"timeMin": start.isoformat(), "timeMax": (start + timedelta(days=1)).isoformat(), "singleEvents": "true"}


async def create_meeting(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    start = _resolve_start(ctx, params.get("dateExpr"), params.get("timeExpr"), date_key="dateExpr", time_key="timeExpr")
    if start < ctx.clock():
        raise MissingParameter(["dateExpr"], f"{format_when(start)} is already in the past. When should the meeting be?")
    try:
        duration = int(params.get("durationMinutes") or DEFAULT_DURATION_MINUTES)
    except (TypeError, ValueError):
        duration = DEFAULT_DURATION_MINUTES

    title = params.get("title") or "Meeting"
    body: Dict[str, Any] = {
        "summary": title,
        "start": {"dateTime": start.isoformat()},
        "end": {"dateTime": (start + timedelta(minutes=duration)).isoformat()},
    }
    attendees = list(params.get("attendees") or [])
    if attendees:
        body["attendees"] = [{"email": email} for email in attendees]
    event = await ctx.backend.create("events", body, ctx.token)

    message = f'Scheduled "{title}" for {format_when(start)} ({duration} minutes).'
    if attendees:
        message += f" Invited {', '.join(attendees)}."
    return Completed(message, data={"event": event})


async def list_meetings(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    if params.get("dateExpr"):
        day = parse_date_expression(str(params["dateExpr"]), ctx.clock())
        if day is None:
            raise MissingParameter(["dateExpr"], f'I couldn\'t understand the date "{params["dateExpr"]}". Which day do you mean?')
        moment = datetime.combine(day, time.min, tzinfo=ctx.clock().tzinfo or timezone.utc)
        events = await ctx.backend.list("events", ctx.token, params=_day_window(moment))
        label = f"on {moment.strftime('%A, %B %d').replace(' 0', ' ')}"
    else:
        query = {"timeMin": ctx.clock().isoformat(), "singleEvents": "true", "orderBy": "startTime", "maxResults": _UPCOMING_LIMIT}
        events = (await ctx.backend.list("events", ctx.token, params=query))[:_UPCOMING_LIMIT]
        label = "coming up"
    return Completed(format_meeting_list(events, label), data={"events": events})


# WHAT: find the single event the user means by a day and start time.
# WHY: several events can start at the same moment, and the list may have changed since the last turn.
# HOW: verify an explicit meetingId with get, else list that day's events and match on start time.
async def _resolve_meeting(params: Mapping[str, Any], ctx: ActionContext, *, purpose: str) -> Dict[str, Any]:
    meeting_id = params.get("meetingId")
    if meeting_id:
        try:
            return await ctx.backend.get("events", str(meeting_id), ctx.token)
        except BackendError as exc:
            if exc.is_not_found:
                raise EntityNotFound("That meeting no longer exists.") from exc
            raise

    start = _resolve_start(ctx, params.get("dateExpr"), params.get("timeExpr"), date_key="dateExpr", time_key="timeExpr")
    events = await ctx.backend.list("events", ctx.token, params=_day_window(start))
    hits = [event for event in events if parse_event_time(event.get("start")) == start]
    match = MatchSet.of(
        [Entity(id=str(event["id"]), display_name=format_meeting(event)) for event in hits if event.get("id")]
    )
    if match.is_unique:
        return next(event for event in hits if str(event.get("id")) == match.entity.id)
    if match.is_many:
        raise AmbiguousReference(
            entity_type="meeting",
            parameter="meetingId",
            options=[entity.to_option() for entity in match.entities],
            data=dict(params),
            prompt=f"Several meetings start at {format_when(start)}. Which one should I {purpose}?\n{format_options(match.entities)}",
        )
    if events:
        others = "; ".join(format_meeting(event) for event in events)
        raise EntityNotFound(f"I couldn't find a meeting starting {format_when(start)}. That day you have: {others}.")
    raise EntityNotFound(f"I couldn't find a meeting starting {format_when(start)}.")


async def update_meeting(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    if not params.get("newDateExpr") and not params.get("newTimeExpr"):
        raise MissingParameter(["newTimeExpr"], "When should I move the meeting to?")
    event = await _resolve_meeting(params, ctx, purpose="move")
    old_start = parse_event_time(event.get("start")) or ctx.clock()
    old_end = parse_event_time(event.get("end")) or old_start + timedelta(minutes=DEFAULT_DURATION_MINUTES)

    reference = ctx.clock()
    new_day = parse_date_expression(str(params["newDateExpr"]), reference) if params.get("newDateExpr") else old_start.date()
    if new_day is None:
        raise MissingParameter(["newDateExpr"], f'I couldn\'t understand the date "{params["newDateExpr"]}". Which day should I move it to?')
    new_time = parse_time_expression(str(params["newTimeExpr"])) if params.get("newTimeExpr") else old_start.time()
    if new_time is None:
        raise MissingParameter(["newTimeExpr"], f'I couldn\'t understand the time "{params["newTimeExpr"]}". What time should it start?')

    new_start = datetime.combine(new_day, new_time, tzinfo=old_start.tzinfo)
    changes: Dict[str, Any] = {
        "start": {"dateTime": new_start.isoformat()},
        "end": {"dateTime": (new_start + (old_end - old_start)).isoformat()},
    }
    if params.get("title"):
        changes["summary"] = params["title"]
    updated = await ctx.backend.patch("events", str(event["id"]), changes, ctx.token)
    return Completed(
        f'Moved "{event.get("summary") or "Untitled meeting"}" from {format_when(old_start)} to {format_when(new_start)}.',
        data={"event": {**event, **updated}},
    )


async def delete_meeting(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    event = await _resolve_meeting(params, ctx, purpose="cancel")
    await ctx.backend.delete("events", str(event["id"]), ctx.token)
    return Completed(f"Cancelled {format_meeting(event)}.", data={"eventId": event["id"]})


HANDLERS = {
    "CREATE_MEETING": create_meeting,
    "LIST_MEETINGS": list_meetings,
    "UPDATE_MEETING": update_meeting,
    "DELETE_MEETING": delete_meeting,
}
