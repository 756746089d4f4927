"""Detect when a user revises the request they made in the previous turn."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from core.conversation_memory import Conversation
from core.errors import ClassificationUnavailable
from core.intent_catalog import IntentCatalog
from core.llm_classifier import LLMClassifier
from core.parser_utils import extract_course_reference, extract_emails
from core.parsers.types import IntentResult

logger = logging.getLogger(__name__)

CORRECTION_MARKERS = re.compile(r"\b(?:actually|i meant|i mean|sorry|instead|no wait|oops|correction)\b", re.IGNORECASE)
CORRECTION_CONFIDENCE = 0.95


def has_correction_marker(message: str) -> bool:
    return bool(CORRECTION_MARKERS.search(message or ""))


class CorrectionDetector:
    """Returns the previous intent with corrected parameters, or None."""

    def __init__(self, catalog: IntentCatalog, classifier: Optional[LLMClassifier] = None, *, history_window: int = 10) -> None:
        self._catalog = catalog
        self._classifier = classifier
        self._history_window = history_window

    def should_run(self, message: str, conversation: Conversation) -> bool:
        return (
            has_correction_marker(message)
            and conversation.user_turns() > 0
            and bool(conversation.context.last_intent)
        )

    # WHAT: turn "sorry, invite b@x.com instead" into the previous intent with new values.
    # WHY: users fix one slot at a time and expect the rest of the request to stand.
    # HOW: ask the model what changed, overwrite email slots from the raw text, then lay the result over the old parameters.
    async def detect(self, message: str, conversation: Conversation) -> Optional[IntentResult]:
        if not self.should_run(message, conversation):
            return None
        context = conversation.context
        last_intent = context.last_intent or ""
        last_parameters = dict(context.last_parameters)

        changed: Optional[Dict[str, Any]]
        offline = self.extract_values(message, last_intent)
        if self._classifier is not None:
            try:
                changed = await self._classifier.detect_correction(
                    message,
                    conversation.history(self._history_window),
                    last_intent,
                    last_parameters,
                )
            except ClassificationUnavailable as exc:
                logger.warning("Correction check fell back to local extraction: %s", exc)
                changed = offline or None
            except Exception:
                logger.exception("Correction check failed unexpectedly; using local extraction")
                changed = offline or None
        else:
            changed = offline or None

        if changed is None:
            return None

        corrected = dict(changed)
        for key, value in offline.items():
            shape = self._catalog.shape_for(key)
            if shape in {"emails", "email", "person"}:
                corrected[key] = value
            else:
                corrected.setdefault(key, value)
        if not corrected:
            return None

        parameters = dict(last_parameters)
        parameters.update(corrected)
        return IntentResult(
            intent=last_intent,
            confidence=CORRECTION_CONFIDENCE,
            parameters=parameters,
            is_correction=True,
            source="correction",
        )

    def extract_values(self, message: str, intent: str) -> Dict[str, Any]:
        """Pull exact values out of the raw text for the slots of ``intent``."""
        definition = self._catalog.get(intent)
        values: Dict[str, Any] = {}
        emails = extract_emails(message)
        for name in definition.parameters:
            shape = self._catalog.shape_for(name)
            if shape == "emails" and emails:
                values[name] = list(emails)
            elif shape in ("email", "person") and emails:
                values[name] = emails[0]
        if "courseName" in definition.parameters:
            course = extract_course_reference(message)
            if course:
                values["courseName"] = course
        return values


__all__ = ["CORRECTION_CONFIDENCE", "CORRECTION_MARKERS", "CorrectionDetector", "has_correction_marker"]
