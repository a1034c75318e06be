import asyncio
import gc

import pytest

from assistant_core.agents.conversation_registry import ConversationRegistry
from assistant_core.domain.exceptions import BackendUnavailable
from assistant_core.infrastructure.storage.json_store import JsonKeyValueStore


class ThreadAdapter:
    name = "fake"
    supports_retrieve = False

    def __init__(self, delay=0.0, fail_first=False):
        self.created = 0
        self._delay = delay
        self._fail_first = fail_first

    async def create_conversation(self):
        self.created += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail_first and self.created == 1:
            raise BackendUnavailable(code="NETWORK_ERROR", message="boom")
        return f"thread-{self.created}"


def test_get_or_create_is_idempotent():
    adapter = ThreadAdapter()
    registry = ConversationRegistry(adapter)

    async def scenario():
        first = await registry.get_or_create("u1")
        second = await registry.get_or_create("u1")
        return first, second

    first, second = asyncio.run(scenario())
    assert first == second
    assert first.conversation_id == "thread-1"
    assert adapter.created == 1
    assert registry.cached("u1") == first


def test_distinct_users_get_distinct_conversations():
    adapter = ThreadAdapter()
    registry = ConversationRegistry(adapter)

    async def scenario():
        return await registry.get_or_create("u1"), await registry.get_or_create("u2")

    a, b = asyncio.run(scenario())
    assert a.conversation_id != b.conversation_id
    assert adapter.created == 2


def test_concurrent_first_use_creates_once():
    adapter = ThreadAdapter(delay=0.01)
    registry = ConversationRegistry(adapter)

    async def scenario():
        return await asyncio.gather(*(registry.get_or_create("u1") for _ in range(5)))

    handles = asyncio.run(scenario())
    assert adapter.created == 1
    assert len({h.conversation_id for h in handles}) == 1


def test_failed_creation_is_not_cached():
    adapter = ThreadAdapter(fail_first=True)
    registry = ConversationRegistry(adapter)

    async def scenario():
        with pytest.raises(BackendUnavailable):
            await registry.get_or_create("u1")
        return await registry.get_or_create("u1")

    handle = asyncio.run(scenario())
    assert handle.conversation_id == "thread-2"


def test_invalidate_all_forces_new_conversation():
    adapter = ThreadAdapter()
    registry = ConversationRegistry(adapter)

    async def scenario():
        before = await registry.get_or_create("u1")
        registry.invalidate_all()
        assert registry.cached("u1") is None
        after = await registry.get_or_create("u1")
        return before, after

    before, after = asyncio.run(scenario())
    assert before.conversation_id != after.conversation_id


def test_creation_in_flight_during_invalidate_is_not_cached():
    adapter = ThreadAdapter(delay=0.02)
    registry = ConversationRegistry(adapter)

    async def scenario():
        task = asyncio.ensure_future(registry.get_or_create("u1"))
        await asyncio.sleep(0)
        registry.invalidate_all()
        stale = await task
        fresh = await registry.get_or_create("u1")
        return stale, fresh

    stale, fresh = asyncio.run(scenario())
    assert stale.conversation_id == "thread-1"
    assert fresh.conversation_id == "thread-2"


def test_handles_persist_across_registries(tmp_path):
    store = JsonKeyValueStore(root=tmp_path)
    adapter = ThreadAdapter()

    first = asyncio.run(ConversationRegistry(adapter, store=store, namespace="ns1").get_or_create("u1"))
    again = asyncio.run(ConversationRegistry(adapter, store=store, namespace="ns1").get_or_create("u1"))
    other = asyncio.run(ConversationRegistry(adapter, store=store, namespace="ns2").get_or_create("u1"))

    assert again.conversation_id == first.conversation_id
    assert other.conversation_id != first.conversation_id
    assert adapter.created == 2


def test_invalidate_all_clears_persisted_handles(tmp_path):
    store = JsonKeyValueStore(root=tmp_path)
    adapter = ThreadAdapter()
    registry = ConversationRegistry(adapter, store=store, namespace="ns1")

    asyncio.run(registry.get_or_create("u1"))
    assert store.get("conversations.ns1") == {"u1": "thread-1"}
    registry.invalidate_all()
    assert store.get("conversations.ns1") is None


def test_cancelled_waiter_with_failed_creation_reports_nothing():
    adapter = ThreadAdapter(delay=0.01, fail_first=True)
    registry = ConversationRegistry(adapter)

    async def scenario():
        unhandled = []
        asyncio.get_running_loop().set_exception_handler(lambda loop, ctx: unhandled.append(ctx))
        waiter = asyncio.ensure_future(registry.get_or_create("u1"))
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        await asyncio.sleep(0.05)
        gc.collect()
        retried = await registry.get_or_create("u1")
        return unhandled, retried

    unhandled, retried = asyncio.run(scenario())
    assert unhandled == []
    assert retried.conversation_id == "thread-2"
