"""Run the four-stage classifier chain over a user message.

Stages, in order, each short-circuiting the rest when it yields a result:

1. correction detection (marker word + a previous request on record),
2. continuation detection (an ongoing action is waiting for parameters),
3. model-backed classification over the recent history,
4. the ordered pattern rules from ``core.command_parser``.

Model failures never escape: they are logged and the pattern rules answer.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.command_parser import parse_command
from core.continuation_detector import ContinuationDetector
from core.conversation_memory import Conversation
from core.correction_detector import CorrectionDetector
from core.errors import ClassificationUnavailable
from core.intent_catalog import UNKNOWN, IntentCatalog
from core.llm_classifier import LLMClassifier
from core.parsers.types import IntentResult

logger = logging.getLogger(__name__)


class NLUService:
    """Classifier chain: correction, continuation, model, then pattern fallback."""

    def __init__(
        self,
        catalog: IntentCatalog,
        *,
        classifier: Optional[LLMClassifier] = None,
        min_confidence: float = 0.6,
        history_window: int = 10,
        correction_detector: Optional[CorrectionDetector] = None,
        continuation_detector: Optional[ContinuationDetector] = None,
    ) -> None:
        self._catalog = catalog
        self._classifier = classifier
        self._min_confidence = min_confidence
        self._history_window = history_window
        self._corrections = correction_detector or CorrectionDetector(catalog, classifier, history_window=history_window)
        self._continuations = continuation_detector or ContinuationDetector(catalog)

    @property
    def catalog(self) -> IntentCatalog:
        return self._catalog

    # WHAT: classify a message in the context of its conversation.
    # WHY: follow-ups and corrections only make sense against the stored context, so they run first.
    # HOW: try each stage in order and return the first confident answer; stage 4 always answers.
    async def classify(self, message: str, conversation: Conversation) -> IntentResult:
        original = message or ""
        if not original.strip():
            return IntentResult(intent=UNKNOWN, confidence=0.0, source="pattern")

        correction = await self._corrections.detect(original, conversation)
        if correction is not None:
            return correction

        continuation = self._continuations.detect(original, conversation.context.ongoing_action)
        if continuation is not None:
            return continuation

        modeled = await self._classify_with_model(original, conversation)
        if modeled is not None and self.is_confident(modeled):
            return modeled

        fallback = parse_command(original)
        if fallback.intent == UNKNOWN and modeled is not None and modeled.intent != UNKNOWN:
            return modeled
        return fallback

    def is_confident(self, result: IntentResult) -> bool:
        """A model answer is trusted when it names a real intent at or above the threshold."""
        return result.intent != UNKNOWN and result.confidence >= self._min_confidence

    async def _classify_with_model(self, message: str, conversation: Conversation) -> Optional[IntentResult]:
        if self._classifier is None:
            return None
        try:
            return await self._classifier.classify(message, conversation.history(self._history_window))
        except ClassificationUnavailable as exc:
            logger.warning("Model classification unavailable, using pattern rules: %s", exc)
            return None
        except Exception:
            logger.exception("Model classification failed unexpectedly, using pattern rules")
            return None


__all__ = ["IntentResult", "NLUService"]
