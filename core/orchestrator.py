"""Turn a classified intent into exactly one outcome for the user.

The orchestrator is the only component that talks to the backend. For each
intent it normalizes the parameters, applies the student-to-teacher invitation
override, enforces the caller's role, asks for any missing required slot, and
then dispatches to the registered handler. Handler signals (ambiguity,
absence, missing slots, backend failures) are translated into the four
response kinds here, so nothing escapes ``execute``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from core.action_context import ActionContext
from core.authorization import RolePolicy, TokenAuthenticator
from core.backend_client import BackendClient
from core.conversation_memory import OngoingAction, PendingAction
from core.errors import (
    AmbiguousReference,
    AuthorizationError,
    BackendError,
    EntityNotFound,
    MissingParameter,
)
from core.intent_catalog import UNKNOWN, IntentCatalog, missing_parameter_prompt
from core.llm_classifier import LLMClassifier
from core.parser_payloads import normalize_parameters
from core.parsers.types import IntentResult
from core.responses import Failed, NeedsDisambiguation, NeedsParameter, OrchestratorResponse
from core.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Sorry, something went wrong while handling that request. Please try again."

# A resolved id from a disambiguation reply stands in for the name it was chosen by.
_SATISFIED_BY = {
    "courseName": "courseId",
    "assignmentTitle": "assignmentId",
    "studentEmail": "studentId",
    "dateExpr": "meetingId",
    "timeExpr": "meetingId",
}


def apply_teacher_override(intent: str, parameters: Dict[str, Any], raw_message: str) -> tuple[str, Dict[str, Any]]:
    """Re-route a student invitation to a teacher invitation when the message mentions teachers."""
    if intent != "INVITE_STUDENTS" or "teacher" not in (raw_message or "").lower():
        return intent, parameters
    rerouted = dict(parameters)
    emails = rerouted.pop("studentEmails", None)
    if emails and not rerouted.get("emails"):
        rerouted["emails"] = emails
    logger.info("Re-routing INVITE_STUDENTS to INVITE_TEACHERS; message mentions teachers")
    return "INVITE_TEACHERS", rerouted


class ActionOrchestrator:
    """Authorizes, validates, and dispatches classified intents."""

    def __init__(
        self,
        catalog: IntentCatalog,
        registry: ToolRegistry,
        backend: BackendClient,
        *,
        answerer: Optional[LLMClassifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
        authenticator: Optional[TokenAuthenticator] = None,
    ) -> None:
        self._catalog = catalog
        self._registry = registry
        self._backend = backend
        self._answerer = answerer
        self._clock = clock
        self._policy = RolePolicy(catalog)
        self._authenticator = authenticator or TokenAuthenticator()

    @property
    def catalog(self) -> IntentCatalog:
        return self._catalog

    def resolve_role(self, auth_token: Optional[str], request_context: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        return self._authenticator.resolve_role(auth_token, request_context)

    def missing_parameters(self, intent: str, parameters: Mapping[str, Any]) -> List[str]:
        missing = self._catalog.missing_parameters(intent, parameters)
        return [name for name in missing if not parameters.get(_SATISFIED_BY.get(name, ""))]

    def needs_parameter(
        self,
        intent: str,
        parameters: Mapping[str, Any],
        missing: Sequence[str],
        prompt: Optional[str] = None,
    ) -> NeedsParameter:
        definition = self._catalog.get(intent)
        collected = {key: value for key, value in parameters.items() if key not in missing}
        ongoing = OngoingAction(
            action=intent,
            required_parameters=list(definition.required_parameters),
            collected_parameters=collected,
            missing_parameters=list(missing),
        )
        return NeedsParameter(prompt or missing_parameter_prompt(intent, missing), list(missing), ongoing)

    # WHAT: run one classified intent end to end and describe the outcome.
    # WHY: the dialogue layer needs a single typed answer per turn, never an exception.
    # HOW: normalize, override, authorize, check slots, dispatch, then translate handler signals into responses.
    async def execute(
        self,
        intent_result: IntentResult,
        raw_message: str,
        auth_token: Optional[str],
        request_context: Optional[Mapping[str, Any]] = None,
        *,
        history: Sequence[Dict[str, str]] = (),
    ) -> OrchestratorResponse:
        intent = intent_result.intent if intent_result.intent in self._catalog else UNKNOWN
        try:
            parameters = normalize_parameters(intent, intent_result.parameters)
            intent, parameters = apply_teacher_override(intent, parameters, raw_message)

            role = self.resolve_role(auth_token, request_context)
            try:
                self._policy.ensure_allowed(intent, role)
            except AuthorizationError as exc:
                logger.info("Denied %s for role %r", intent, role)
                return Failed(exc.user_message, error=str(exc), error_kind="unauthorized")

            missing = self.missing_parameters(intent, parameters)
            if missing:
                return self.needs_parameter(intent, parameters, missing)

            if not self._registry.has_tool(intent):
                logger.warning("No handler registered for %s; answering as UNKNOWN", intent)
                intent = UNKNOWN

            ctx = ActionContext(
                intent=intent,
                backend=self._backend,
                token=auth_token or "",
                role=role,
                raw_message=raw_message,
                answerer=self._answerer,
                history=list(history),
            )
            if self._clock is not None:
                ctx.clock = self._clock
            return await self._dispatch(intent, parameters, ctx)
        except Exception as exc:
            logger.exception("Unexpected failure while executing %s", intent)
            return Failed(INTERNAL_ERROR_MESSAGE, error=str(exc), error_kind="internal")

    async def _dispatch(self, intent: str, parameters: Dict[str, Any], ctx: ActionContext) -> OrchestratorResponse:
        try:
            return await self._registry.run_tool(intent, parameters, ctx)
        except MissingParameter as exc:
            return self.needs_parameter(intent, parameters, exc.parameters, exc.prompt)
        except AmbiguousReference as exc:
            pending = PendingAction(
                type=exc.entity_type,
                intent=intent,
                parameter=exc.parameter,
                options=list(exc.options),
                data=dict(exc.data),
            )
            return NeedsDisambiguation(exc.prompt, list(exc.options), pending)
        except EntityNotFound as exc:
            return Failed(exc.user_message, error=exc.user_message, error_kind="not_found")
        except BackendError as exc:
            logger.warning("Backend failure during %s (%s): %s", intent, exc.kind, exc.message)
            return Failed(exc.user_message(), error=exc.message, error_kind=exc.kind)


__all__ = ["ActionOrchestrator", "INTERNAL_ERROR_MESSAGE", "apply_teacher_override"]
