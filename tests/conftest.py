from __future__ import annotations

import itertools
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import pytest

from core.conversation_memory import ConversationStore
from core.dialogue import DialogueService
from core.errors import BackendError
from core.intent_catalog import IntentCatalog
from core.llm_classifier import LLMClassifier
from core.nlu_service import NLUService
from core.orchestrator import ActionOrchestrator
from core.tool_registry import ToolRegistry
from tools import load_all_core_tools

TEACHER = {"role": "teacher"}
STUDENT = {"role": "student"}
ADMIN = {"role": "super_admin"}


def _scope_key(scope: Mapping[str, Any]) -> str:
    return "|".join(f"{key}={scope[key]}" for key in sorted(scope))


class FakeBackend:
    """In-memory stand-in for ``BackendClient`` that records every call."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self._collections: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self._failures: Dict[Tuple[str, str], List[BackendError]] = {}
        self._ids = itertools.count(100)

    # --- test helpers -------------------------------------------------------
    def seed(self, kind: str, items: List[Dict[str, Any]], **scope: str) -> None:
        self._collections[(kind, _scope_key(scope))] = [dict(item) for item in items]

    def items(self, kind: str, **scope: str) -> List[Dict[str, Any]]:
        return self._collections.setdefault((kind, _scope_key(scope)), [])

    def fail(self, method: str, kind: str, *errors: BackendError) -> None:
        self._failures.setdefault((method, kind), []).extend(errors)

    def count(self, method: str, kind: Optional[str] = None) -> int:
        return sum(1 for name, call_kind, _ in self.calls if name == method and (kind is None or call_kind == kind))

    def _record(self, method: str, kind: str, **details: Any) -> None:
        self.calls.append((method, kind, details))
        queued = self._failures.get((method, kind))
        if queued:
            raise queued.pop(0)

    def _find(self, kind: str, entity_id: str, scope: Mapping[str, Any]) -> Dict[str, Any]:
        for item in self.items(kind, **scope):
            if str(item.get("id")) == str(entity_id):
                return item
        raise BackendError("Requested entity was not found.", http_status=404, status="NOT_FOUND")

    # --- BackendClient surface ------------------------------------------------
    async def list(self, kind: str, token: str, *, params: Optional[Mapping[str, Any]] = None, **scope: str):
        self._record("list", kind, params=dict(params or {}), scope=scope)
        items = [dict(item) for item in self.items(kind, **scope)]
        if params and params.get("userId"):
            items = [item for item in items if str(item.get("userId")) == str(params["userId"])]
        return items

    async def get(self, kind: str, entity_id: str, token: str, **scope: str):
        self._record("get", kind, id=entity_id, scope=scope)
        return dict(self._find(kind, entity_id, scope))

    async def create(self, kind: str, body: Mapping[str, Any], token: str, **scope: str):
        self._record("create", kind, body=dict(body), scope=scope)
        item = {"id": str(next(self._ids)), **dict(body)}
        self.items(kind, **scope).append(item)
        return dict(item)

    async def update(self, kind: str, entity_id: str, body: Mapping[str, Any], token: str, **scope: str):
        self._record("update", kind, id=entity_id, body=dict(body), scope=scope)
        item = self._find(kind, entity_id, scope)
        item.update(body)
        return dict(item)

    async def patch(self, kind: str, entity_id: str, body: Mapping[str, Any], token: str, *, update_mask=None, **scope: str):
        self._record("patch", kind, id=entity_id, body=dict(body), update_mask=update_mask, scope=scope)
        item = self._find(kind, entity_id, scope)
        item.update(body)
        return dict(item)

    async def delete(self, kind: str, entity_id: str, token: str, **scope: str) -> None:
        self._record("delete", kind, id=entity_id, scope=scope)
        item = self._find(kind, entity_id, scope)
        self.items(kind, **scope).remove(item)

    async def close(self) -> None:
        return None


class ScriptedModel:
    """Chat model stub that replays queued replies and records prompts."""

    def __init__(self, *replies: str) -> None:
        self.replies = list(replies)
        self.prompts: List[str] = []

    async def complete(self, prompt, history=(), *, system=None, temperature=0.1) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            return '{"intent": "UNKNOWN", "confidence": 0.0, "parameters": {}}'
        return self.replies.pop(0)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def make_dialogue(backend: FakeBackend) -> Callable[..., DialogueService]:
    def _build(
        *,
        model: Optional[ScriptedModel] = None,
        store: Optional[ConversationStore] = None,
        clock=None,
        learning_logger=None,
        authenticator=None,
    ) -> DialogueService:
        catalog = IntentCatalog()
        classifier = LLMClassifier(model, catalog, timeout=1.0) if model is not None else None
        registry = ToolRegistry()
        load_all_core_tools(registry)
        orchestrator = ActionOrchestrator(
            catalog, registry, backend, answerer=classifier, clock=clock, authenticator=authenticator
        )
        nlu = NLUService(catalog, classifier=classifier)
        return DialogueService(store or ConversationStore(), nlu, orchestrator, learning_logger=learning_logger)

    return _build
