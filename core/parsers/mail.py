"""Email intent parsing."""

from __future__ import annotations

import re
from typing import Any, Dict

from core.parser_utils import extract_emails, extract_message_text
from core.parsers.vocabulary import LIST_VERBS, MAIL_WORDS, has_any

_SEND_VERBS = ("send", "write", "compose", "reply", "forward", "drop")
_READ_VERBS = LIST_VERBS + ("read", "open", "new", "unread", "latest", "recent", "last")
_SUBJECT_PATTERN = re.compile(
    r"\bsubject(?:\s+line)?\s*(?:is|of|:)?\s*[\"']?(?P<subject>[^\"']+?)[\"']?(?=\s+(?:and|saying|with|to)\b|[,;!?]|\.(?:\s|$)|$)",
    re.IGNORECASE,
)
_TELL_PATTERN = re.compile(r"\b(?:tell|ask|remind)\s+(?:them|him|her)\s+(?:that\s+|to\s+)?(?P<body>.+)$", re.IGNORECASE)
_FROM_PATTERN = re.compile(r"\bfrom\s+(?P<sender>[A-Za-z][\w.'-]*(?:\s+[A-Z][\w.'-]*)?)", re.IGNORECASE)


def is_read(lowered: str) -> bool:
    if has_any(lowered, _SEND_VERBS):
        return False
    return has_any(lowered, MAIL_WORDS) and has_any(lowered, _READ_VERBS)


def is_send(lowered: str) -> bool:
    if has_any(lowered, _SEND_VERBS) and (has_any(lowered, MAIL_WORDS) or "@" in lowered):
        return True
    return lowered.strip().startswith(("email ", "mail ", "message ")) and "@" in lowered


def extract_send(message: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    emails = extract_emails(message)
    if emails:
        payload["recipientEmail"] = emails[0]
    subject = _SUBJECT_PATTERN.search(message)
    if subject:
        payload["subject"] = subject.group("subject").strip()
    body = extract_message_text(message)
    if not body:
        tell = _TELL_PATTERN.search(message)
        if tell:
            body = tell.group("body").strip()
    if body:
        payload["message"] = body
    return payload


def extract_read(message: str) -> Dict[str, Any]:
    emails = extract_emails(message)
    if emails:
        return {"senderEmail": emails[0]}
    sender = _FROM_PATTERN.search(message)
    if sender and sender.group("sender").lower() not in {"my", "the", "today", "yesterday"}:
        return {"senderEmail": sender.group("sender").strip()}
    return {}


__all__ = ["extract_read", "extract_send", "is_read", "is_send"]
