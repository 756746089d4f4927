"""Per-conversation message log and dialogue context.

Conversations live in an injected ``KeyValueStore`` so the same dialogue logic
runs against an in-process dict (tests, single worker) or Redis (several
workers). Idle conversations are evicted after a TTL by ``evict_stale``, which
``EvictionSweeper`` calls on an interval. ``ConversationStore.hold`` serializes
turns with one ``asyncio.Lock`` per conversation id, held across the whole
read-classify-execute-write cycle and discarded once no turn holds or awaits it.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Protocol
from uuid import uuid4

from redis import asyncio as aioredis

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60

_CONTEXT_KEYS = {
    "last_intent": "lastIntent",
    "last_parameters": "lastParameters",
    "pending_action": "pendingAction",
    "ongoing_action": "ongoingAction",
}


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return _utc_now()


@dataclass(frozen=True)
class Message:
    role: str
    content: Any
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": copy.deepcopy(self.content), "timestamp": self.timestamp.isoformat()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        return cls(role=str(data["role"]), content=data.get("content"), timestamp=_parse_timestamp(data.get("timestamp")))

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, Mapping) and isinstance(self.content.get("message"), str):
            return self.content["message"]
        return json.dumps(self.content, ensure_ascii=False, default=str)


@dataclass
class PendingAction:
    """A request blocked on the user picking one of several matching entities."""

    type: str
    intent: str
    parameter: str
    options: List[Dict[str, Any]] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "intent": self.intent,
            "parameter": self.parameter,
            "options": copy.deepcopy(self.options),
            "data": copy.deepcopy(self.data),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PendingAction":
        return cls(
            type=str(data.get("type", "")),
            intent=str(data.get("intent", "")),
            parameter=str(data.get("parameter", "")),
            options=list(data.get("options") or []),
            data=dict(data.get("data") or {}),
        )


@dataclass
class OngoingAction:
    """A recognised request still waiting for required parameters."""

    action: str
    required_parameters: List[str] = field(default_factory=list)
    collected_parameters: Dict[str, Any] = field(default_factory=dict)
    missing_parameters: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "requiredParameters": list(self.required_parameters),
            "collectedParameters": copy.deepcopy(self.collected_parameters),
            "missingParameters": list(self.missing_parameters),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OngoingAction":
        return cls(
            action=str(data.get("action", "")),
            required_parameters=list(data.get("requiredParameters") or []),
            collected_parameters=dict(data.get("collectedParameters") or {}),
            missing_parameters=list(data.get("missingParameters") or []),
        )


@dataclass
class Context:
    last_intent: Optional[str] = None
    last_parameters: Dict[str, Any] = field(default_factory=dict)
    pending_action: Optional[PendingAction] = None
    ongoing_action: Optional[OngoingAction] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = copy.deepcopy(self.extras)
        payload.update(
            {
                "lastIntent": self.last_intent,
                "lastParameters": copy.deepcopy(self.last_parameters),
                "pendingAction": self.pending_action.to_dict() if self.pending_action else None,
                "ongoingAction": self.ongoing_action.to_dict() if self.ongoing_action else None,
            }
        )
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Context":
        data = dict(data or {})
        pending = data.pop("pendingAction", None)
        ongoing = data.pop("ongoingAction", None)
        return cls(
            last_intent=data.pop("lastIntent", None),
            last_parameters=dict(data.pop("lastParameters", None) or {}),
            pending_action=PendingAction.from_dict(pending) if pending else None,
            ongoing_action=OngoingAction.from_dict(ongoing) if ongoing else None,
            extras=data,
        )

    def merged(self, partial: Mapping[str, Any]) -> "Context":
        """Shallow merge: supplied keys replace old values, an explicit None clears.

        Keys may be given in snake_case or camelCase; keys that are not part
        of the context schema are stored in ``extras``.
        """
        updated = replace(self, last_parameters=dict(self.last_parameters), extras=dict(self.extras))
        reverse = {camel: snake for snake, camel in _CONTEXT_KEYS.items()}
        for raw_key, value in partial.items():
            key = reverse.get(raw_key, raw_key)
            if key == "last_intent":
                updated.last_intent = value
            elif key == "last_parameters":
                updated.last_parameters = dict(value or {})
            elif key == "pending_action":
                updated.pending_action = _coerce(value, PendingAction)
            elif key == "ongoing_action":
                updated.ongoing_action = _coerce(value, OngoingAction)
            elif value is None:
                updated.extras.pop(key, None)
            else:
                updated.extras[key] = value
        return updated


def _coerce(value: Any, kind: type) -> Any:
    if value is None or isinstance(value, kind):
        return value
    if isinstance(value, Mapping):
        return kind.from_dict(value)
    raise TypeError(f"Cannot store {type(value).__name__} as {kind.__name__}")


@dataclass
class Conversation:
    id: str
    messages: List[Message] = field(default_factory=list)
    context: Context = field(default_factory=Context)
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def user_turns(self) -> int:
        return sum(1 for message in self.messages if message.role == "user")

    def history(self, count: int) -> List[Dict[str, str]]:
        """Return the last ``count`` messages as role/content pairs for the model."""
        recent = self.messages[-count:] if count > 0 else []
        return [{"role": message.role, "content": message.text()} for message in recent]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "messages": [message.to_dict() for message in self.messages],
            "context": self.context.to_dict(),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Conversation":
        return cls(
            id=str(data["id"]),
            messages=[Message.from_dict(item) for item in data.get("messages") or []],
            context=Context.from_dict(data.get("context")),
            created_at=_parse_timestamp(data.get("createdAt")),
            updated_at=_parse_timestamp(data.get("updatedAt")),
        )


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def keys(self) -> List[str]:
        ...


class InMemoryKeyValueStore:
    """Process-local store; values are deep-copied so callers never share state."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self) -> List[str]:
        return list(self._data)


class RedisKeyValueStore:
    """Redis-backed store; entries carry a server-side expiry equal to the TTL."""

    def __init__(self, url: str, *, prefix: str = "conversation:", ttl_seconds: int = DEFAULT_TTL_SECONDS, client: Any = None) -> None:
        self._client = client or aioredis.from_url(url, decode_responses=True)
        self._prefix = prefix
        self._ttl_seconds = ttl_seconds

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self._client.get(self._prefix + key)
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        await self._client.set(self._prefix + key, json.dumps(value, ensure_ascii=False, default=str), ex=self._ttl_seconds)

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(self._prefix + key))

    async def keys(self) -> List[str]:
        return [key[len(self._prefix):] async for key in self._client.scan_iter(match=f"{self._prefix}*")]

    async def close(self) -> None:
        await self._client.aclose()


class HistorySink(Protocol):
    async def append(self, conversation_id: str, role: str, content: Any) -> None:
        ...


class ConversationStore:
    """Conversation persistence with TTL eviction and per-id locking."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        history_store: Optional[HistorySink] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store: KeyValueStore = store if store is not None else InMemoryKeyValueStore()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._history_store = history_store
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    def lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        """Hold the conversation's lock; the lock is dropped once nobody holds or awaits it.

        Expired keys vanish from a shared store without passing through
        ``delete``, so the lock table is pruned here instead.
        """
        lock = self.lock(conversation_id)
        self._holders[conversation_id] = self._holders.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._holders[conversation_id] - 1
            if remaining:
                self._holders[conversation_id] = remaining
            else:
                del self._holders[conversation_id]
                self._locks.pop(conversation_id, None)

    def is_busy(self, conversation_id: str) -> bool:
        return conversation_id in self._holders

    @staticmethod
    def new_id() -> str:
        return uuid4().hex

    # WHAT: load a conversation, creating it when the id is missing or unknown.
    # WHY: a None id starts a new thread; an unknown id (evicted or foreign) restarts under the same id.
    # HOW: mint a uuid for None, read the store, and persist a fresh record on a miss.
    async def get(self, conversation_id: Optional[str] = None) -> Conversation:
        if not conversation_id:
            conversation = Conversation(id=self.new_id(), created_at=self._clock(), updated_at=self._clock())
            await self.save(conversation)
            return conversation
        raw = await self._store.get(conversation_id)
        if raw is not None:
            return Conversation.from_dict(raw)
        conversation = Conversation(id=conversation_id, created_at=self._clock(), updated_at=self._clock())
        await self.save(conversation)
        return conversation

    async def find(self, conversation_id: str) -> Optional[Conversation]:
        raw = await self._store.get(conversation_id)
        return Conversation.from_dict(raw) if raw is not None else None

    async def save(self, conversation: Conversation) -> None:
        await self._store.set(conversation.id, conversation.to_dict())

    async def append(self, conversation_id: str, role: str, content: Any) -> Message:
        if role not in {"user", "assistant"}:
            raise ValueError(f"Unsupported message role: {role!r}")
        conversation = await self.get(conversation_id)
        message = Message(role=role, content=copy.deepcopy(content), timestamp=self._clock())
        conversation.messages.append(message)
        conversation.updated_at = message.timestamp
        await self.save(conversation)
        if self._history_store is not None:
            await self._history_store.append(conversation.id, role, content)
        return message

    async def merge_context(self, conversation_id: str, partial: Mapping[str, Any]) -> Context:
        conversation = await self.get(conversation_id)
        conversation.context = conversation.context.merged(partial)
        conversation.updated_at = self._clock()
        await self.save(conversation)
        return conversation.context

    async def recent_messages(self, conversation_id: str, count: int = 10) -> List[Message]:
        conversation = await self.find(conversation_id)
        if conversation is None or count <= 0:
            return []
        return conversation.messages[-count:]

    async def formatted_history(self, conversation_id: str, count: int = 10) -> List[Dict[str, str]]:
        conversation = await self.find(conversation_id)
        return conversation.history(count) if conversation else []

    async def delete(self, conversation_id: str) -> bool:
        removed = await self._store.delete(conversation_id)
        if not self.is_busy(conversation_id):
            self._locks.pop(conversation_id, None)
        return removed

    async def evict_stale(self, now: Optional[datetime] = None) -> int:
        """Remove conversations idle for longer than the TTL; returns how many were removed."""
        cutoff = (now or self._clock()) - self._ttl
        removed = 0
        for key in await self._store.keys():
            raw = await self._store.get(key)
            if raw is None:
                continue
            if _parse_timestamp(raw.get("updatedAt")) >= cutoff:
                continue
            if self.is_busy(key):
                continue
            if await self.delete(key):
                removed += 1
        if removed:
            logger.info("Evicted %d stale conversation(s)", removed)
        return removed


class EvictionSweeper:
    """Background task that calls ``evict_stale`` every ``interval_seconds``."""

    def __init__(self, store: ConversationStore, *, interval_seconds: float = 3600.0) -> None:
        self._store = store
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._store.evict_stale()
            except Exception:  # pragma: no cover - store outages must not kill the sweeper
                logger.exception("Conversation eviction sweep failed")


__all__ = [
    "Context",
    "Conversation",
    "ConversationStore",
    "DEFAULT_TTL_SECONDS",
    "EvictionSweeper",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "Message",
    "OngoingAction",
    "PendingAction",
    "RedisKeyValueStore",
]
