"""Fill the missing slots of an ongoing action from a bare follow-up reply."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from core.conversation_memory import OngoingAction
from core.intent_catalog import IntentCatalog
from core.parser_utils import (
    clean_course_name,
    extract_course_reference,
    extract_emails,
    extract_named,
    extract_quoted,
    find_date_phrase,
    find_time_phrase,
)
from core.parsers.conversation import is_cancel, is_greeting, is_help, is_proceed
from core.parsers.types import IntentResult
from core.parsers.vocabulary import starts_like_command

CONTINUATION_CONFIDENCE = 0.95
MAX_NAME_LENGTH = 50

_NAME_LEADS = re.compile(
    r"^(?:it'?s|it is|use|the (?:class|course|title|name) is|call it|name it|title it|it should be|let'?s (?:call it|go with)|in|to|for)\s+",
    re.IGNORECASE,
)
_NUMBER_PATTERN = re.compile(r"\b\d{1,4}(?:\.\d+)?\b")


def _is_small_talk(lowered: str) -> bool:
    return is_greeting(lowered) or is_help(lowered) or is_proceed(lowered) or is_cancel(lowered)


class ContinuationDetector:
    """Shape-based slot filling for ``OngoingAction`` records."""

    def __init__(self, catalog: IntentCatalog) -> None:
        self._catalog = catalog

    def detect(self, message: str, ongoing: Optional[OngoingAction]) -> Optional[IntentResult]:
        if ongoing is None or not ongoing.missing_parameters:
            return None
        text = (message or "").strip()
        if not text:
            return None

        supplied = self.extract_slots(text, ongoing)
        if not supplied:
            return None
        parameters = dict(ongoing.collected_parameters)
        parameters.update(supplied)
        return IntentResult(
            intent=ongoing.action,
            confidence=CONTINUATION_CONFIDENCE,
            parameters=parameters,
            is_parameter_collection=True,
            source="continuation",
        )

    # WHAT: map a reply onto whichever missing slots its shape fits.
    # WHY: "math 101" or "a@x.com, b@x.com" after a question should complete the pending request.
    # HOW: emails fill email slots, short plain replies fill one name or person slot, and date/time/number slots use their patterns.
    def extract_slots(self, text: str, ongoing: OngoingAction) -> Dict[str, Any]:
        lowered = text.lower()
        command_like = starts_like_command(lowered)
        emails = extract_emails(text)
        supplied: Dict[str, Any] = {}
        free_text_used = False

        for name in ongoing.missing_parameters:
            shape = self._catalog.shape_for(name)
            if shape == "emails":
                if emails:
                    supplied[name] = list(emails)
            elif shape == "person" and not free_text_used:
                value = emails[0] if emails else self._name_value(text, name, emails)
                if value:
                    supplied[name] = value
                    free_text_used = not emails
            elif shape == "email":
                if emails:
                    supplied[name] = emails[0]
            elif shape == "date":
                phrase = find_date_phrase(text)
                if phrase:
                    supplied[name] = phrase
            elif shape == "time":
                phrase = find_time_phrase(text)
                if phrase:
                    supplied[name] = phrase
            elif shape == "number":
                number = _NUMBER_PATTERN.search(text)
                if number and not emails:
                    supplied[name] = number.group(0)
            elif shape == "name" and not free_text_used:
                value = self._name_value(text, name, emails)
                if value:
                    supplied[name] = value
                    free_text_used = True
            elif shape == "text" and not free_text_used and not command_like and not emails:
                supplied[name] = text
                free_text_used = True
        return supplied

    @staticmethod
    def _name_value(text: str, parameter: str, emails) -> Optional[str]:
        if parameter == "courseName":
            reference = extract_course_reference(text)
            if reference and (emails or len(text) >= MAX_NAME_LENGTH):
                return reference
        if emails or "@" in text or "?" in text or len(text) >= MAX_NAME_LENGTH:
            return None
        if starts_like_command(text.lower()) or _is_small_talk(text.lower()):
            return None
        named = extract_named(text) or extract_quoted(text)
        value = named or _NAME_LEADS.sub("", text).strip().strip("\"'").rstrip(".!")
        if parameter == "courseName":
            return clean_course_name(value)
        return value or None


__all__ = ["CONTINUATION_CONFIDENCE", "ContinuationDetector"]
