"""Small-talk, help, cancel, and question detection."""

from __future__ import annotations

import re
from typing import Any, Dict

_CANCEL_PATTERN = re.compile(
    r"^(?:no[,.!]?\s+|ok(?:ay)?[,.!]?\s+|please\s+|just\s+)?"
    r"(?:cancel|stop|abort|quit|never\s*mind|nvm|forget\s+(?:about\s+)?it|forget\s+that|don'?t\s+bother"
    r"|cancel\s+(?:that|this|it|the\s+request|everything|the\s+action)|stop\s+(?:that|this|it))"
    r"(?:\s+please)?[.!]*$",
    re.IGNORECASE,
)
_PROCEED_PATTERN = re.compile(
    r"^(?:please\s+|ok(?:ay)?[,.!]?\s+|yes[,.!]?\s+)?"
    r"(?:proceed|go\s+ahead|continue|just\s+do\s+it|do\s+it\s+anyway|use\s+what\s+you\s+have"
    r"|that'?s\s+all|that\s+is\s+all|that'?s\s+it|skip(?:\s+it)?|no\s+more|go\s+on|carry\s+on)"
    r"(?:\s+please)?[.!]*$",
    re.IGNORECASE,
)
_GREETING_PATTERN = re.compile(
    r"^(?:hi|hello|hey|hiya|howdy|greetings|yo|good\s+(?:morning|afternoon|evening))"
    r"(?:\s+(?:there|assistant|bot|everyone))?(?:[\s,!.]+how\s+are\s+you)?[\s!.?,]*$",
    re.IGNORECASE,
)
_HELP_PATTERN = re.compile(
    r"^(?:help|help\s+me|menu|commands|options)[.!?]*$"
    r"|\bwhat\s+can\s+(?:you|i)\s+(?:do|ask)\b|\bhow\s+do\s+you\s+work\b|\bwhat\s+are\s+your\s+(?:features|commands)\b",
    re.IGNORECASE,
)
_JOIN_HELP_PATTERN = re.compile(r"\bhow\b.*\b(?:join|enroll|get\s+into)\b", re.IGNORECASE)
_SUBMISSION_HELP_PATTERN = re.compile(r"\bhow\b.*\b(?:submit|turn\s+in|hand\s+in|upload)\b", re.IGNORECASE)
_QUESTION_OPENERS = (
    "what",
    "why",
    "how",
    "who",
    "when",
    "where",
    "which",
    "explain",
    "define",
    "describe",
    "can you explain",
    "tell me about",
    "what's",
    "is ",
    "are ",
    "does ",
    "do ",
)


def is_cancel(lowered: str) -> bool:
    return bool(_CANCEL_PATTERN.match(lowered.strip()))


def is_proceed(lowered: str) -> bool:
    return bool(_PROCEED_PATTERN.match(lowered.strip()))


def is_greeting(lowered: str) -> bool:
    return bool(_GREETING_PATTERN.match(lowered.strip()))


def is_help(lowered: str) -> bool:
    return bool(_HELP_PATTERN.search(lowered.strip()))


def is_join_help(lowered: str) -> bool:
    return bool(_JOIN_HELP_PATTERN.search(lowered))


def is_submission_help(lowered: str) -> bool:
    return bool(_SUBMISSION_HELP_PATTERN.search(lowered))


def is_question(lowered: str) -> bool:
    stripped = lowered.strip()
    if not stripped:
        return False
    return stripped.endswith("?") or stripped.startswith(_QUESTION_OPENERS)


def extract_question(message: str) -> Dict[str, Any]:
    return {"question": message.strip()}


__all__ = [
    "extract_question",
    "is_cancel",
    "is_greeting",
    "is_help",
    "is_join_help",
    "is_proceed",
    "is_question",
    "is_submission_help",
]
