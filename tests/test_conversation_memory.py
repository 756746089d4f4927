import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core.conversation_memory import (
    Context,
    ConversationStore,
    EvictionSweeper,
    InMemoryKeyValueStore,
    OngoingAction,
    PendingAction,
    RedisKeyValueStore,
)

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


def test_missing_id_mints_a_new_conversation():
    store = ConversationStore()

    async def scenario():
        first = await store.get(None)
        second = await store.get(None)
        return first, second

    first, second = asyncio.run(scenario())

    assert first.id and second.id
    assert first.id != second.id
    assert first.messages == []
    assert first.context == Context()


def test_unknown_id_starts_fresh_under_the_same_id():
    store = ConversationStore()

    conversation = asyncio.run(store.get("abc"))

    assert conversation.id == "abc"
    assert asyncio.run(store.find("abc")) is not None


def test_append_keeps_order_and_rejects_unknown_roles():
    store = ConversationStore()

    async def scenario():
        await store.append("c1", "user", "hello")
        await store.append("c1", "assistant", {"type": "completed", "message": "Hi!"})
        return await store.find("c1")

    conversation = asyncio.run(scenario())

    assert [(message.role, message.text()) for message in conversation.messages] == [
        ("user", "hello"),
        ("assistant", "Hi!"),
    ]
    with pytest.raises(ValueError):
        asyncio.run(store.append("c1", "system", "nope"))


def test_merge_context_replaces_supplied_keys_and_keeps_the_rest():
    store = ConversationStore()

    async def scenario():
        await store.merge_context("c1", {"lastIntent": "INVITE_STUDENTS", "lastParameters": {"courseName": "math"}})
        await store.merge_context("c1", {"last_parameters": {"studentEmails": ["a@x.com"]}, "theme": "dark"})
        return await store.merge_context("c1", {"theme": None})

    context = asyncio.run(scenario())

    assert context.last_intent == "INVITE_STUDENTS"
    assert context.last_parameters == {"studentEmails": ["a@x.com"]}
    assert context.extras == {}


def test_merge_context_accepts_records_and_explicit_clears():
    store = ConversationStore()
    pending = PendingAction(type="course", intent="GET_COURSE", parameter="courseId", options=[{"id": "1", "name": "Math"}])

    async def scenario():
        stored = await store.merge_context("c1", {"pendingAction": pending.to_dict()})
        cleared = await store.merge_context("c1", {"pending_action": None, "ongoing_action": OngoingAction(action="HELP")})
        return stored, cleared

    stored, cleared = asyncio.run(scenario())

    assert stored.pending_action == pending
    assert cleared.pending_action is None
    assert cleared.ongoing_action.action == "HELP"


def test_merge_context_rejects_wrong_record_types():
    with pytest.raises(TypeError):
        Context().merged({"pending_action": "course"})


def test_context_round_trips_through_wire_shape():
    context = Context(
        last_intent="GET_COURSE",
        last_parameters={"courseName": "math"},
        ongoing_action=OngoingAction(action="CREATE_COURSE", required_parameters=["name"], missing_parameters=["name"]),
        extras={"locale": "en"},
    )

    payload = context.to_dict()

    assert payload["lastIntent"] == "GET_COURSE"
    assert payload["ongoingAction"]["missingParameters"] == ["name"]
    assert payload["pendingAction"] is None
    assert Context.from_dict(payload) == context


def test_stored_values_are_isolated_from_callers():
    store = ConversationStore()

    async def scenario():
        conversation = await store.get("c1")
        conversation.context.last_parameters["courseName"] = "changed"
        return await store.find("c1")

    assert asyncio.run(scenario()).context.last_parameters == {}


def test_history_returns_recent_role_content_pairs():
    store = ConversationStore()

    async def scenario():
        for index in range(4):
            await store.append("c1", "user", f"message {index}")
        return await store.formatted_history("c1", 2), await store.recent_messages("c1", 0)

    history, none = asyncio.run(scenario())

    assert history == [{"role": "user", "content": "message 2"}, {"role": "user", "content": "message 3"}]
    assert none == []


def test_evict_stale_removes_only_idle_conversations():
    clock = Clock()
    store = ConversationStore(ttl_seconds=60, clock=clock)

    async def scenario():
        await store.append("old", "user", "hi")
        clock.advance(seconds=45)
        await store.append("fresh", "user", "hi")
        clock.advance(seconds=30)
        removed = await store.evict_stale()
        return removed, await store.find("old"), await store.find("fresh")

    removed, old, fresh = asyncio.run(scenario())

    assert removed == 1
    assert old is None
    assert fresh is not None


def test_evict_stale_skips_conversations_mid_turn():
    clock = Clock()
    store = ConversationStore(ttl_seconds=60, clock=clock)

    async def scenario():
        await store.append("busy", "user", "hi")
        clock.advance(minutes=5)
        async with store.hold("busy"):
            removed = await store.evict_stale()
        return removed, await store.find("busy")

    removed, busy = asyncio.run(scenario())

    assert removed == 0
    assert busy is not None


def test_lock_is_shared_per_conversation_id():
    store = ConversationStore()

    assert store.lock("a") is store.lock("a")
    assert store.lock("a") is not store.lock("b")


def test_lock_is_dropped_once_no_turn_holds_or_awaits_it():
    store = ConversationStore()
    order = []

    async def turn(name):
        async with store.hold("c1"):
            order.append(name)
            await asyncio.sleep(0)

    async def scenario():
        first = asyncio.ensure_future(turn("first"))
        second = asyncio.ensure_future(turn("second"))
        await asyncio.sleep(0)
        held_while_waiting = store.is_busy("c1") and "c1" in store._locks
        await asyncio.gather(first, second)
        return held_while_waiting

    held_while_waiting = asyncio.run(scenario())

    assert held_while_waiting
    assert order == ["first", "second"]
    assert not store.is_busy("c1")
    assert store._locks == {}


def test_delete_reports_whether_anything_was_removed():
    store = ConversationStore()

    async def scenario():
        await store.get("c1")
        return await store.delete("c1"), await store.delete("c1")

    assert asyncio.run(scenario()) == (True, False)


def test_sweeper_evicts_on_its_interval():
    clock = Clock()
    store = ConversationStore(ttl_seconds=1, clock=clock)
    sweeper = EvictionSweeper(store, interval_seconds=0.01)

    async def scenario():
        await store.append("c1", "user", "hi")
        clock.advance(seconds=5)
        sweeper.start()
        await asyncio.sleep(0.05)
        running = sweeper.running
        await sweeper.stop()
        return running, await store.find("c1")

    running, conversation = asyncio.run(scenario())

    assert running
    assert conversation is None
    assert not sweeper.running


class FakeRedis:
    def __init__(self) -> None:
        self.data = {}
        self.expiries = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiries[key] = ex

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def scan_iter(self, match=None):
        prefix = (match or "").rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix):
                yield key

    async def aclose(self):
        return None


def test_redis_store_prefixes_keys_and_sets_expiry():
    client = FakeRedis()
    kv = RedisKeyValueStore("redis://unused", ttl_seconds=120, client=client)
    store = ConversationStore(kv)

    async def scenario():
        await store.append("c1", "user", "hi")
        return await kv.keys(), await store.find("c1")

    keys, conversation = asyncio.run(scenario())

    assert keys == ["c1"]
    assert list(client.data) == ["conversation:c1"]
    assert client.expiries["conversation:c1"] == 120
    assert conversation.messages[0].text() == "hi"


def test_in_memory_store_deep_copies_values():
    kv = InMemoryKeyValueStore()
    value = {"nested": {"a": 1}}

    async def scenario():
        await kv.set("k", value)
        value["nested"]["a"] = 2
        return await kv.get("k")

    assert asyncio.run(scenario()) == {"nested": {"a": 1}}
