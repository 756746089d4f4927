"""Mail handlers: read recent messages and send one."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from core.action_context import ActionContext
from core.responses import Completed, OrchestratorResponse

DEFAULT_SUBJECT = "Message from your classroom assistant"
_READ_LIMIT = 5
_SNIPPET_LENGTH = 120


def format_inbox(messages: List[Dict[str, Any]], sender: str | None) -> str:
    source = f"from {sender}" if sender else "in your inbox"
    if not messages:
        return f"No emails found {source}."
    shown = messages[:_READ_LIMIT]
    lines = [f"Recent emails {source} ({len(shown)} of {len(messages)}):"]
    for index, item in enumerate(shown, start=1):
        snippet = " ".join(str(item.get("snippet") or item.get("body") or "").split())
        if len(snippet) > _SNIPPET_LENGTH:
            snippet = snippet[: _SNIPPET_LENGTH - 3].rstrip() + "..."
        sender_text = "" if sender else f" from {item.get('from', 'unknown sender')}"
        lines.append(f"{index}. {item.get('subject') or 'No subject'}{sender_text}")
        if snippet:
            lines.append(f"   {snippet}")
    return "\n".join(lines)


async def read_email(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    sender = params.get("senderEmail")
    query: Dict[str, Any] = {"maxResults": _READ_LIMIT * 2}
    if sender:
        query["from"] = sender
    messages = await ctx.backend.list("messages", ctx.token, params=query)
    return Completed(format_inbox(messages, sender), data={"messages": messages})


async def send_email(params: Mapping[str, Any], ctx: ActionContext) -> OrchestratorResponse:
    recipient = str(params["recipientEmail"])
    subject = params.get("subject") or DEFAULT_SUBJECT
    body = {"to": recipient, "subject": subject, "body": params["message"]}
    sent = await ctx.backend.create("messages", body, ctx.token)
    return Completed(f'Sent your email to {recipient} with subject "{subject}".', data={"message": sent})


HANDLERS = {
    "READ_EMAIL": read_email,
    "SEND_EMAIL": send_email,
}
