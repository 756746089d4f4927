"""Caller-facing turn handling.

``DialogueService.handle_turn`` is the single entry point used by the HTTP API
and the CLI. Each turn runs under the conversation's lock, from loading the
context to persisting the reply, so two messages on one conversation are
applied in arrival order. Before general classification the service checks,
in order, for an explicit cancel and for a reply to an outstanding
disambiguation question.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Mapping, Optional, Tuple

from core.conversation_memory import Context, Conversation, ConversationStore, PendingAction
from core.entity_resolver import Entity, format_options, match_reply
from core.intent_catalog import CANCEL_ACTION, PROCEED_WITH_AVAILABLE_INFO, UNKNOWN, missing_parameter_prompt
from core.learning_logger import LearningLogger, ReviewItem, TurnRecord
from core.nlu_service import NLUService
from core.orchestrator import INTERNAL_ERROR_MESSAGE, ActionOrchestrator
from core.parser_payloads import normalize_parameters
from core.parsers.conversation import is_cancel
from core.parsers.types import IntentResult
from core.responses import (
    Completed,
    Failed,
    NeedsDisambiguation,
    NeedsParameter,
    OrchestratorResponse,
)

logger = logging.getLogger(__name__)

_CLOSES_REQUEST = (CANCEL_ACTION, PROCEED_WITH_AVAILABLE_INFO)


@dataclass
class TurnResult:
    conversation_id: str
    response: OrchestratorResponse
    intent: IntentResult
    context: Context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversationId": self.conversation_id,
            "response": self.response.to_dict(),
            "intent": self.intent.to_dict(),
            "context": self.context.to_dict(),
        }


def cancel_message(context: Context) -> str:
    if context.ongoing_action is not None:
        action = context.ongoing_action.action
    elif context.pending_action is not None:
        action = context.pending_action.intent
    else:
        action = ""
    label = action.lower().replace("_", " ") or "that"
    return f"Got it! I've stopped working on {label}. What would you like to do instead?"


class DialogueService:
    """Runs one user message through state checks, classification, execution and persistence."""

    def __init__(
        self,
        store: ConversationStore,
        nlu: NLUService,
        orchestrator: ActionOrchestrator,
        *,
        learning_logger: Optional[LearningLogger] = None,
        history_window: int = 10,
    ) -> None:
        self._store = store
        self._nlu = nlu
        self._orchestrator = orchestrator
        self._learning_logger = learning_logger
        self._history_window = history_window

    @property
    def store(self) -> ConversationStore:
        return self._store

    # WHAT: handle one inbound message and return the outcome plus the updated context.
    # WHY: callers need one call that never raises, whatever the classifier or backend does.
    # HOW: mint an id if needed, hold the conversation lock for the whole turn, and map any crash to Failed.
    async def handle_turn(
        self,
        conversation_id: Optional[str],
        message: str,
        auth_token: Optional[str],
        request_context: Optional[Mapping[str, Any]] = None,
    ) -> TurnResult:
        conversation_id = conversation_id or self._store.new_id()
        started = perf_counter()
        async with self._store.hold(conversation_id):
            try:
                result = await self._run_turn(conversation_id, message or "", auth_token, request_context)
            except Exception as exc:
                logger.exception("Turn failed for conversation %s", conversation_id)
                result = TurnResult(
                    conversation_id=conversation_id,
                    response=Failed(INTERNAL_ERROR_MESSAGE, error=str(exc), error_kind="internal"),
                    intent=IntentResult(intent=UNKNOWN, confidence=0.0),
                    context=Context(),
                )
        self._log_turn(result, message or "", auth_token, request_context, started)
        return result

    async def _run_turn(
        self,
        conversation_id: str,
        message: str,
        auth_token: Optional[str],
        request_context: Optional[Mapping[str, Any]],
    ) -> TurnResult:
        conversation = await self._store.get(conversation_id)
        context = conversation.context
        has_state = context.pending_action is not None or context.ongoing_action is not None

        if has_state and is_cancel(message.lower()):
            intent = IntentResult(intent=CANCEL_ACTION, confidence=1.0, source="cancel")
            response: OrchestratorResponse = Completed(cancel_message(context))
        elif context.pending_action is not None:
            intent, response = await self._resolve_pending(context.pending_action, message, auth_token, request_context, conversation)
        else:
            intent = await self._nlu.classify(message, conversation)
            response = await self._respond(intent, conversation, message, auth_token, request_context)

        updated = await self._persist(conversation.id, context, intent, response, message)
        return TurnResult(conversation_id=conversation.id, response=response, intent=intent, context=updated)

    async def _respond(
        self,
        intent: IntentResult,
        conversation: Conversation,
        message: str,
        auth_token: Optional[str],
        request_context: Optional[Mapping[str, Any]],
    ) -> OrchestratorResponse:
        context = conversation.context
        ongoing = context.ongoing_action
        history = conversation.history(self._history_window)

        if intent.intent == CANCEL_ACTION and (ongoing is not None or context.pending_action is not None):
            return Completed(cancel_message(context))
        if intent.intent == PROCEED_WITH_AVAILABLE_INFO and ongoing is not None:
            resumed = IntentResult(
                intent=ongoing.action,
                confidence=1.0,
                parameters=dict(ongoing.collected_parameters),
                is_parameter_collection=True,
                source="continuation",
            )
            return await self._orchestrator.execute(resumed, message, auth_token, request_context, history=history)
        if intent.intent == UNKNOWN and ongoing is not None:
            return NeedsParameter(
                missing_parameter_prompt(ongoing.action, ongoing.missing_parameters),
                list(ongoing.missing_parameters),
                ongoing,
            )
        return await self._orchestrator.execute(intent, message, auth_token, request_context, history=history)

    # WHAT: bind a reply to one of the options offered in the previous turn.
    # WHY: "the second one" or "Math 101 section B" must finish the blocked action without re-asking known slots.
    # HOW: match the reply against the stored options only; a unique match resumes with the chosen id, anything else re-asks.
    async def _resolve_pending(
        self,
        pending: PendingAction,
        message: str,
        auth_token: Optional[str],
        request_context: Optional[Mapping[str, Any]],
        conversation: Conversation,
    ) -> Tuple[IntentResult, OrchestratorResponse]:
        options = [Entity.from_option(option) for option in pending.options]
        match = match_reply(message, options)

        if match.is_unique and match.entity is not None:
            parameters = dict(pending.data)
            parameters[pending.parameter] = match.entity.id
            intent = IntentResult(intent=pending.intent, confidence=1.0, parameters=parameters, source="pending")
            response = await self._orchestrator.execute(
                intent,
                message,
                auth_token,
                request_context,
                history=conversation.history(self._history_window),
            )
            return intent, response

        remaining = list(match.entities) if match.is_many else options
        narrowed = PendingAction(
            type=pending.type,
            intent=pending.intent,
            parameter=pending.parameter,
            options=[entity.to_option() for entity in remaining],
            data=dict(pending.data),
        )
        prompt = (
            f"I didn't catch which {pending.type} you meant. "
            "Please reply with a number or name from this list, or say cancel:\n"
            f"{format_options(remaining)}"
        )
        intent = IntentResult(intent=pending.intent, confidence=0.0, parameters=dict(pending.data), source="pending")
        return intent, NeedsDisambiguation(prompt, narrowed.options, narrowed)

    async def _persist(
        self,
        conversation_id: str,
        previous: Context,
        intent: IntentResult,
        response: OrchestratorResponse,
        message: str,
    ) -> Context:
        updates: Dict[str, Any] = {"pending_action": None, "ongoing_action": None}
        catalog = self._nlu.catalog
        if isinstance(response, NeedsDisambiguation):
            updates["pending_action"] = response.pending
        elif isinstance(response, NeedsParameter):
            updates["ongoing_action"] = response.ongoing
        elif not catalog.is_actionable(intent.intent) and intent.intent not in _CLOSES_REQUEST:
            # A greeting or question in the middle of collecting slots leaves the request open.
            updates["ongoing_action"] = previous.ongoing_action

        if catalog.is_actionable(intent.intent):
            updates["last_intent"] = intent.intent
            parameters = normalize_parameters(intent.intent, intent.parameters)
            if intent.source == "pending" and previous.pending_action is not None:
                parameters.pop(previous.pending_action.parameter, None)
            updates["last_parameters"] = parameters

        context = await self._store.merge_context(conversation_id, updates)
        await self._store.append(conversation_id, "user", message)
        await self._store.append(conversation_id, "assistant", response.to_dict())
        return context

    def _log_turn(
        self,
        result: TurnResult,
        message: str,
        auth_token: Optional[str],
        request_context: Optional[Mapping[str, Any]],
        started: float,
    ) -> None:
        if self._learning_logger is None or not self._learning_logger.enabled:
            return
        response = result.response
        error = response.error if isinstance(response, Failed) else None
        error_kind = response.error_kind if isinstance(response, Failed) else None
        intent = result.intent
        self._learning_logger.log_turn(
            TurnRecord.new(
                conversation_id=result.conversation_id,
                user_text=message,
                intent=intent.intent,
                confidence=intent.confidence,
                source=intent.source,
                outcome=response.kind,
                response_text=response.message,
                parameters=dict(intent.parameters),
                is_correction=intent.is_correction,
                is_parameter_collection=intent.is_parameter_collection,
                role=self._orchestrator.resolve_role(auth_token, request_context),
                latency_ms=int((perf_counter() - started) * 1000),
                error=error,
                error_kind=error_kind,
            )
        )
        if intent.intent == UNKNOWN or isinstance(response, Failed):
            self._learning_logger.log_review_item(
                ReviewItem.new(
                    conversation_id=result.conversation_id,
                    user_text=message,
                    intent=intent.intent,
                    confidence=intent.confidence,
                    reason="failed" if isinstance(response, Failed) else "unknown_intent",
                    parameters=dict(intent.parameters),
                    error=error,
                )
            )


__all__ = ["DialogueService", "TurnResult", "cancel_message"]
