"""Model-backed intent classification and correction analysis.

The classifier renders the intent catalog into a single prompt, asks the chat
model for a strict JSON verdict, and validates the verdict against the catalog
before anything downstream sees it. Every failure mode (no credentials,
timeout, malformed JSON, an intent name the catalog does not know) is reported
as ``ClassificationUnavailable`` so the caller can fall back deterministically.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Dict, Mapping, Optional, Sequence

from core.errors import ClassificationUnavailable
from core.intent_catalog import IntentCatalog
from core.llm_client import ChatModel
from core.parsers.types import IntentResult

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")

_CLASSIFIER_SYSTEM = "You classify classroom assistant requests. Reply with a single JSON object and nothing else."
_CORRECTION_SYSTEM = "You decide whether a user is correcting their previous request. Reply with JSON only."
_ANSWER_SYSTEM = (
    "You are a patient teaching assistant. Answer the student's question clearly and briefly, "
    "in at most a few short paragraphs."
)


def strip_code_fences(content: str) -> str:
    """Remove surrounding ``` fences (with or without a language tag)."""

    text = (content or "").strip()
    if text.startswith("```"):
        text = _FENCE_PATTERN.sub("", text).strip()
    return text


def parse_json_object(content: str) -> Dict[str, Any]:
    """Decode a JSON object from model output, tolerating fences and stray prose."""

    text = strip_code_fences(content)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ClassificationUnavailable("Model reply was not JSON.")
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            raise ClassificationUnavailable("Model reply was not JSON.") from exc
    if not isinstance(data, dict):
        raise ClassificationUnavailable("Model reply was not a JSON object.")
    return data


def _clamp(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(max(number, 0.0), 1.0)


class LLMClassifier:
    """Delegates intent classification to a chat model."""

    def __init__(self, model: ChatModel, catalog: IntentCatalog, *, timeout: float = 15.0) -> None:
        self._model = model
        self._catalog = catalog
        self._timeout = timeout

    # --- Prompt construction: the catalog is the only source of intent names
    def build_prompt(self, message: str) -> str:
        intents = "\n".join(self._catalog.prompt_lines())
        return (
            "Classify the user's latest message into exactly one intent from this list.\n"
            f"{intents}\n\n"
            "Rules:\n"
            "- Use the conversation history to resolve references such as 'that class' or 'the same students'.\n"
            "- Copy names, titles and email addresses exactly as the user wrote them.\n"
            "- Email parameters that hold several addresses are JSON arrays of strings.\n"
            "- Leave out parameters the user did not give; never invent values.\n"
            "- Use UNKNOWN when no intent fits.\n"
            'Respond with JSON only: {"intent": "INTENT_NAME", "confidence": 0.0-1.0, "parameters": {...}}\n\n'
            f"User message: {message}"
        )

    def build_correction_prompt(self, message: str, last_intent: str, last_parameters: Mapping[str, Any]) -> str:
        definition = self._catalog.get(last_intent)
        return (
            "The user's previous request was classified as:\n"
            f"intent: {last_intent}\n"
            f"parameters: {json.dumps(dict(last_parameters), ensure_ascii=False)}\n"
            f"allowed parameters: {', '.join(definition.parameters) or 'none'}\n\n"
            "Is the new message a correction of that previous request, and if so what changed?\n"
            "Only report parameters whose values the user changed, using the allowed parameter names.\n"
            'Respond with JSON only: {"isCorrection": true|false, "parameters": {...}}\n\n'
            f"New message: {message}"
        )

    # --- Response parsing: validate against the catalog before trusting it
    def parse_classification(self, content: str) -> IntentResult:
        data = parse_json_object(content)
        intent = str(data.get("intent") or "").strip().upper()
        if intent not in self._catalog:
            raise ClassificationUnavailable(f"Model returned unknown intent {intent!r}.")
        parameters = data.get("parameters") or {}
        if not isinstance(parameters, dict):
            parameters = {}
        cleaned = {key: value for key, value in parameters.items() if value not in (None, "", [])}
        return IntentResult(
            intent=intent,
            confidence=_clamp(data.get("confidence"), 0.5),
            parameters=cleaned,
            source="model",
        )

    async def classify(self, message: str, history: Sequence[Dict[str, str]] = ()) -> IntentResult:
        content = await self._complete(self.build_prompt(message), history, system=_CLASSIFIER_SYSTEM, temperature=0.1)
        return self.parse_classification(content)

    async def detect_correction(
        self,
        message: str,
        history: Sequence[Dict[str, str]],
        last_intent: str,
        last_parameters: Mapping[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Return the changed parameters when the model says this is a correction, else None."""
        prompt = self.build_correction_prompt(message, last_intent, last_parameters)
        content = await self._complete(prompt, history, system=_CORRECTION_SYSTEM, temperature=0.0)
        data = parse_json_object(content)
        flag = data.get("isCorrection", data.get("is_correction"))
        if flag is not True and str(flag).lower() != "true":
            return None
        parameters = data.get("parameters") or data.get("correctedParameters") or {}
        if not isinstance(parameters, dict):
            return {}
        return {key: value for key, value in parameters.items() if value not in (None, "", [])}

    async def answer_question(self, question: str, history: Sequence[Dict[str, str]] = ()) -> str:
        content = await self._complete(question, history, system=_ANSWER_SYSTEM, temperature=0.3)
        return content.strip()

    # --- Shared model helper ---------------------------------------------------
    async def _complete(
        self,
        prompt: str,
        history: Sequence[Dict[str, str]],
        *,
        system: str,
        temperature: float,
    ) -> str:
        try:
            return await asyncio.wait_for(
                self._model.complete(prompt, list(history), system=system, temperature=temperature),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ClassificationUnavailable(f"Model did not answer within {self._timeout:.0f}s.") from exc


__all__ = ["LLMClassifier", "parse_json_object", "strip_code_fences"]
