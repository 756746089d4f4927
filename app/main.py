"""Assemble the dialogue service and run the interactive CLI loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.config import (
    get_backend_base_url,
    get_backend_timeout,
    get_classifier_min_confidence,
    get_cli_auth_token,
    get_cli_role,
    get_conversation_store_url,
    get_conversation_ttl,
    get_eviction_interval,
    get_history_dir,
    get_history_window,
    get_intent_catalog_path,
    get_jwt_algorithms,
    get_jwt_secret,
    get_llm_api_key,
    get_llm_model,
    get_llm_timeout,
    get_log_backup_count,
    get_log_max_bytes,
    get_log_redaction_patterns,
    get_review_log_path,
    get_turn_log_path,
    is_log_redaction_enabled,
    is_logging_enabled,
)
from core.authorization import TokenAuthenticator
from core.backend_client import BackendClient
from core.conversation_memory import (
    ConversationStore,
    EvictionSweeper,
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
)
from core.dialogue import DialogueService
from core.history_store import JsonlHistoryStore
from core.intent_catalog import load_intent_catalog
from core.learning_logger import LearningLogger
from core.llm_classifier import LLMClassifier
from core.llm_client import OpenAIChatModel
from core.nlu_service import NLUService
from core.orchestrator import ActionOrchestrator
from core.tool_registry import ToolRegistry
from tools import load_all_core_tools

logger = logging.getLogger(__name__)


@dataclass
class Assistant:
    """Everything a surface (CLI or HTTP) needs, plus the resources to release on shutdown."""

    dialogue: DialogueService
    store: ConversationStore
    sweeper: EvictionSweeper
    backend: BackendClient
    key_value_store: KeyValueStore
    authenticator: TokenAuthenticator

    async def close(self) -> None:
        await self.sweeper.stop()
        await self.backend.close()
        if isinstance(self.key_value_store, RedisKeyValueStore):
            await self.key_value_store.close()


def build_key_value_store(env: Dict[str, str] | None = None) -> KeyValueStore:
    url = get_conversation_store_url(env)
    if url:
        logger.info("Using Redis conversation store at %s", url)
        return RedisKeyValueStore(url, ttl_seconds=get_conversation_ttl(env))
    return InMemoryKeyValueStore()


def build_learning_logger(env: Dict[str, str] | None = None) -> LearningLogger:
    return LearningLogger(
        turn_log_path=get_turn_log_path(env),
        review_log_path=get_review_log_path(env),
        enabled=is_logging_enabled(env),
        redact=is_log_redaction_enabled(env),
        patterns=get_log_redaction_patterns(env),
        max_bytes=get_log_max_bytes(env),
        backup_count=get_log_backup_count(env),
    )


# -- Assistant construction ----------------------------------------------------
def build_assistant(env: Dict[str, str] | None = None, *, backend: Optional[BackendClient] = None) -> Assistant:
    """Wire the classifier chain, store, orchestrator, and logger together.

    WHAT: instantiate the intent catalog, model-backed classifier (when a key
    is configured), conversation store, backend client, handler registry, and
    turn logger.
    WHY: the CLI and the HTTP API must share identical wiring so behavior
    stays reproducible across entry points.
    HOW: pull runtime configuration from ``app.config`` helpers and hand the
    resulting instances to ``core.dialogue.DialogueService``.
    """
    catalog = load_intent_catalog(get_intent_catalog_path(env))

    classifier: Optional[LLMClassifier] = None
    api_key = get_llm_api_key(env)
    if api_key:
        model = OpenAIChatModel(get_llm_model(env), api_key, timeout=get_llm_timeout(env))
        classifier = LLMClassifier(model, catalog, timeout=get_llm_timeout(env))
    else:
        logger.info("OPENAI_API_KEY not set; classifying with pattern rules only")

    history_window = get_history_window(env)
    nlu = NLUService(
        catalog,
        classifier=classifier,
        min_confidence=get_classifier_min_confidence(env),
        history_window=history_window,
    )

    history_dir = get_history_dir(env)
    key_value_store = build_key_value_store(env)
    store = ConversationStore(
        key_value_store,
        ttl_seconds=get_conversation_ttl(env),
        history_store=JsonlHistoryStore(history_dir) if history_dir else None,
    )

    registry = ToolRegistry()
    load_all_core_tools(registry)
    backend_client = backend or BackendClient(get_backend_base_url(env), timeout=get_backend_timeout(env))
    authenticator = TokenAuthenticator(get_jwt_secret(env), get_jwt_algorithms(env))
    if not authenticator.enabled:
        logger.warning("JWT_SECRET not set; bearer token roles are ignored")
    orchestrator = ActionOrchestrator(
        catalog,
        registry,
        backend_client,
        answerer=classifier,
        authenticator=authenticator,
    )

    dialogue = DialogueService(
        store,
        nlu,
        orchestrator,
        learning_logger=build_learning_logger(env),
        history_window=history_window,
    )
    sweeper = EvictionSweeper(store, interval_seconds=get_eviction_interval(env))
    return Assistant(
        dialogue=dialogue,
        store=store,
        sweeper=sweeper,
        backend=backend_client,
        key_value_store=key_value_store,
        authenticator=authenticator,
    )


def format_reply(payload: Dict[str, Any]) -> str:
    """Render a turn's response block for the terminal."""
    response = payload.get("response") or {}
    lines = [str(response.get("message", ""))]
    if response.get("type") == "failed" and response.get("errorKind"):
        lines.append(f"[{response['errorKind']}]")
    return "\n".join(line for line in lines if line)


# -- Interactive CLI loop ------------------------------------------------------
async def run_cli(assistant: Assistant, env: Dict[str, str] | None = None) -> None:
    """WHAT: read prompts from stdin, run them through ``handle_turn``, echo replies.

    WHY: offers a local debugging surface identical to the HTTP conversations
    so regressions are caught before touching the API.
    HOW: keep one conversation id for the session and exit on EOF,
    KeyboardInterrupt, or "quit"/"exit".
    """
    token = get_cli_auth_token(env)
    role = get_cli_role(env)
    request_context = {"role": role} if role else None
    conversation_id: Optional[str] = None
    print("Classroom assistant ready. Type 'quit' or 'exit' to stop.")

    while True:
        try:
            message = await asyncio.to_thread(input, "You: ")
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if message.strip().lower() in {"quit", "exit"}:
            print("Goodbye!")
            break

        result = await assistant.dialogue.handle_turn(conversation_id, message, token, request_context)
        conversation_id = result.conversation_id
        print()
        print(f"Assistant: {format_reply(result.to_dict())}")
        print()


async def _main() -> None:
    assistant = build_assistant()
    assistant.sweeper.start()
    try:
        await run_cli(assistant)
    finally:
        await assistant.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(_main())


if __name__ == "__main__":
    main()
