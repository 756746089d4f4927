"""Exception types shared by the classifier chain, orchestrator, and backend client."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class AssistantError(RuntimeError):
    """Base class for assistant-level failures."""


class ClassificationUnavailable(AssistantError):
    """Raised when the model-backed classifier cannot produce a usable answer.

    Covers missing credentials, network failures, timeouts, and replies that do
    not parse into the expected JSON contract. The classifier chain always
    recovers from it by falling back to the pattern rules.
    """


class IntentCatalogError(AssistantError):
    """Raised when an intent catalog override file is missing fields or malformed."""


class AuthenticationError(AssistantError):
    """Raised when a bearer token is missing, malformed, expired, or signed with the wrong key."""


DENIAL_MESSAGE = "Sorry, your account doesn't have permission to do that."


class AuthorizationError(AssistantError):
    """Raised when the caller's role may not run the requested intent."""

    def __init__(self, *, intent: str, role: Optional[str]) -> None:
        super().__init__(f"Role {role!r} may not run {intent}")
        self.intent = intent
        self.role = role
        self.user_message = DENIAL_MESSAGE

    def to_metadata(self) -> Dict[str, Any]:
        return {"intent": self.intent, "role": self.role}


class MissingParameter(AssistantError):
    """Raised by a handler when a required slot is absent or unusable."""

    def __init__(self, parameters: List[str], prompt: str) -> None:
        super().__init__(prompt)
        self.parameters = list(parameters)
        self.prompt = prompt


class AmbiguousReference(AssistantError):
    """Raised by a handler when a name fragment matched several entities.

    ``data`` holds every parameter already known so the follow-up turn can
    finish the action once ``parameter`` is bound to the chosen option's id.
    """

    def __init__(
        self,
        *,
        entity_type: str,
        parameter: str,
        options: List[Dict[str, Any]],
        data: Dict[str, Any],
        prompt: str,
    ) -> None:
        super().__init__(prompt)
        self.entity_type = entity_type
        self.parameter = parameter
        self.options = options
        self.data = data
        self.prompt = prompt


class EntityNotFound(AssistantError):
    """Raised when a name fragment matched nothing in the freshly fetched list."""

    def __init__(self, user_message: str) -> None:
        super().__init__(user_message)
        self.user_message = user_message


_TRANSIENT_STATUSES = {"UNAVAILABLE", "DEADLINE_EXCEEDED", "INTERNAL", "RESOURCE_EXHAUSTED", "TIMEOUT", "NETWORK"}


class BackendError(AssistantError):
    """Raised when the course/calendar/mail backend rejects or fails a request."""

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        status: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.status = (status or "").upper() or None

    @property
    def is_transient(self) -> bool:
        if self.status in _TRANSIENT_STATUSES:
            return True
        if self.http_status is None:
            return True
        return self.http_status == 429 or self.http_status >= 500

    @property
    def is_precondition(self) -> bool:
        if self.status == "FAILED_PRECONDITION" or self.http_status == 412:
            return True
        return self.http_status == 400 and "precondition" in self.message.lower()

    @property
    def is_permission(self) -> bool:
        return self.http_status in (401, 403) or self.status in {"PERMISSION_DENIED", "UNAUTHENTICATED"}

    @property
    def is_not_found(self) -> bool:
        return self.http_status == 404 or self.status == "NOT_FOUND"

    @property
    def kind(self) -> str:
        """Map the error onto the orchestrator's failure categories."""
        if self.is_precondition:
            return "precondition"
        if self.is_permission:
            return "permission"
        if self.is_not_found:
            return "not_found"
        if self.is_transient:
            return "transient"
        return "invalid"

    def is_clean_message(self) -> bool:
        """Return True when the backend text already reads like a user-facing sentence."""
        text = (self.message or "").strip()
        if not text or len(text) > 160:
            return False
        if not text[0].isupper() or not text.endswith((".", "!")):
            return False
        lowered = text.lower()
        noisy = ("{", "}", "http", "exception", "traceback", "stack", "error:", "_")
        return not any(token in lowered for token in noisy)

    def user_message(self) -> str:
        if self.is_clean_message():
            return self.message.strip()
        return _KIND_MESSAGES.get(self.kind, _KIND_MESSAGES["invalid"])

    def to_metadata(self) -> Dict[str, Any]:
        return {"http_status": self.http_status, "status": self.status, "message": self.message}


_KIND_MESSAGES = {
    "precondition": "That can't be done while the item is in its current state.",
    "permission": "The classroom service didn't allow that action for your account.",
    "not_found": "I couldn't find that item anymore. It may have been removed.",
    "transient": "The classroom service is temporarily unavailable. Please try again in a moment.",
    "invalid": "The classroom service rejected that request. Please check the details and try again.",
}


__all__ = [
    "AmbiguousReference",
    "AssistantError",
    "AuthenticationError",
    "AuthorizationError",
    "BackendError",
    "ClassificationUnavailable",
    "DENIAL_MESSAGE",
    "EntityNotFound",
    "IntentCatalogError",
    "MissingParameter",
]
