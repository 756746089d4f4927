"""JSONL turn and review logs for the dialogue service.

Every handled turn is written as a ``TurnRecord``: what the user said, which
classifier stage produced the intent, the parameters it carried, and how the
orchestrator answered. Turns that end ``UNKNOWN`` or ``failed`` also produce a
``ReviewItem`` so misclassifications and backend trouble can be triaged later.
Free-text fields are scrubbed of emails, phone numbers, card numbers,
government ids and URLs before they reach disk, and files rotate by size.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, IO, Iterable, Pattern

_KNOWN_PATTERNS: Dict[str, Pattern[str]] = {
    "email": re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE),
    "phone": re.compile(r"(?:\+?\d[\d\s\-().]{6,}\d)"),
    "credit_card": re.compile(r"\b(?:\d[ -]*){13,19}\b"),
    "gov_id": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "url": re.compile(r"https?://[^\s]+", re.IGNORECASE),
}
_PATTERN_PRIORITY: Dict[str, int] = {
    "credit_card": 0,
    "gov_id": 1,
    "email": 2,
    "phone": 3,
    "url": 4,
}
_REDACT_FIELDS = {
    "user_text",
    "response_text",
    "parameters",
    "error",
    "reason",
}


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


@dataclass
class TurnRecord:
    """WHAT: structured schema for one dialogue turn.

    WHY: replaying a conversation needs the classifier stage and parameters,
    not only the final text.
    HOW: dataclass with a ``new`` factory that stamps the timestamp.
    """

    timestamp: str
    conversation_id: str
    user_text: str
    intent: str
    confidence: float
    source: str
    outcome: str
    response_text: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    is_correction: bool = False
    is_parameter_collection: bool = False
    role: str | None = None
    latency_ms: int | None = None
    error: str | None = None
    error_kind: str | None = None

    @classmethod
    def new(
        cls,
        *,
        conversation_id: str,
        user_text: str,
        intent: str,
        confidence: float,
        source: str,
        outcome: str,
        response_text: str = "",
        parameters: Dict[str, Any] | None = None,
        is_correction: bool = False,
        is_parameter_collection: bool = False,
        role: str | None = None,
        latency_ms: int | None = None,
        error: str | None = None,
        error_kind: str | None = None,
    ) -> "TurnRecord":
        return cls(
            timestamp=_utc_now(),
            conversation_id=conversation_id,
            user_text=user_text,
            intent=intent,
            confidence=confidence,
            source=source,
            outcome=outcome,
            response_text=response_text,
            parameters=parameters or {},
            is_correction=is_correction,
            is_parameter_collection=is_parameter_collection,
            role=role,
            latency_ms=latency_ms,
            error=error,
            error_kind=error_kind,
        )


@dataclass
class ReviewItem:
    """A turn worth a second look: unrecognised input or a failed action."""

    timestamp: str
    conversation_id: str
    user_text: str
    intent: str
    confidence: float
    reason: str
    parameters: Dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def new(
        cls,
        *,
        conversation_id: str,
        user_text: str,
        intent: str,
        confidence: float,
        reason: str,
        parameters: Dict[str, Any] | None = None,
        error: str | None = None,
    ) -> "ReviewItem":
        return cls(
            timestamp=_utc_now(),
            conversation_id=conversation_id,
            user_text=user_text,
            intent=intent,
            confidence=confidence,
            reason=reason,
            parameters=parameters,
            error=error,
        )


class LearningLogger:
    """WHAT: central JSONL logger for turns + review items.

    WHY: conversations carry student emails and names, so the log must be
    redacted and bounded in size.
    HOW: accept file paths + redaction/rotation settings, expose ``log_turn``
    and ``log_review_item`` helpers, and encapsulate write/rotation logic.
    """

    def __init__(
        self,
        *,
        turn_log_path: Path,
        review_log_path: Path,
        enabled: bool = True,
        redact: bool = True,
        patterns: Iterable[str] | None = None,
        max_bytes: int = 0,
        backup_count: int = 0,
    ) -> None:
        self._turn_log_path = turn_log_path
        self._review_log_path = review_log_path
        self._enabled = enabled
        self._redact = redact
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        selected = tuple(patterns) if patterns else _KNOWN_PATTERNS.keys()
        self._redaction_patterns = [
            (key, _KNOWN_PATTERNS[key])
            for key in selected
            if key in _KNOWN_PATTERNS
        ]
        self._redaction_patterns.sort(key=lambda item: _PATTERN_PRIORITY.get(item[0], 10))

    @property
    def enabled(self) -> bool:
        return self._enabled

    def log_turn(self, record: TurnRecord) -> None:
        if not self._enabled:
            return
        self._append_json_line(self._turn_log_path, asdict(record))

    def log_review_item(self, review: ReviewItem) -> None:
        if not self._enabled:
            return
        self._append_json_line(self._review_log_path, asdict(review))

    def _append_json_line(self, path: Path, payload: Dict[str, Any]) -> None:
        """WHAT: write payloads as newline-delimited JSON with rotation.

        WHY: every record must pass through redaction and the size limit.
        HOW: ensure directories exist, redact fields, rotate if the limit would
        be exceeded, and append the encoded line.
        """

        path.parent.mkdir(parents=True, exist_ok=True)
        prepared = self._prepare_payload(dict(payload))
        line = json.dumps(prepared, ensure_ascii=False, default=str)
        self._rotate_if_needed(path, len(line.encode("utf-8")) + 1)
        with self._open_file(path) as handle:
            handle.write(line)
            handle.write("\n")

    @staticmethod
    def _open_file(path: Path) -> IO[str]:
        return path.open("a", encoding="utf-8")

    def _prepare_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self._redact or not self._redaction_patterns:
            return payload
        return {
            key: self._scrub_value(value) if key in _REDACT_FIELDS else value
            for key, value in payload.items()
        }

    def _scrub_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {key: self._scrub_value(val) for key, val in value.items()}
        if isinstance(value, list):
            return [self._scrub_value(item) for item in value]
        if isinstance(value, tuple):
            return tuple(self._scrub_value(item) for item in value)
        if isinstance(value, str):
            return self._scrub_string(value)
        return value

    def _scrub_string(self, value: str) -> str:
        # Card numbers and gov ids run before phone so digit runs get the specific token.
        sanitized = value
        for key, pattern in self._redaction_patterns:
            sanitized = pattern.sub(f"[REDACTED_{key.upper()}]", sanitized)
        return sanitized

    def _rotate_if_needed(self, path: Path, incoming_bytes: int) -> None:
        """Keep ``path`` under ``max_bytes`` by shifting it to numbered backups."""
        if self._max_bytes <= 0 or not path.exists():
            return
        if path.stat().st_size + incoming_bytes <= self._max_bytes:
            return

        if self._backup_count <= 0:
            path.unlink()
            return

        for index in range(self._backup_count - 1, 0, -1):
            src = Path(f"{path}.{index}")
            if src.exists():
                src.replace(Path(f"{path}.{index + 1}"))

        rotated = Path(f"{path}.1")
        if rotated.exists():
            rotated.unlink()
        path.replace(rotated)


__all__ = ["LearningLogger", "ReviewItem", "TurnRecord"]
