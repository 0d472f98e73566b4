import pytest

from groupchat.domain.messaging.errors import MessagingError, ReasonCode
from groupchat.infra.store import MemoryContentStore, RedisContentStore


@pytest.mark.asyncio
async def test_memory_store_reads_subtrees_and_prunes_on_remove():
    store = MemoryContentStore()
    await store.set("messages/c1/m1", {"content": "hi"})
    await store.set("messages/c1/m2", {"content": "yo"})

    assert await store.get("messages/c1") == {"m1": {"content": "hi"}, "m2": {"content": "yo"}}
    assert await store.get("messages/c1/m1/content") == "hi"

    await store.remove("messages/c1/m1")
    await store.remove("messages/c1/m2")
    assert await store.get("messages/c1") is None
    assert await store.get("messages") is None


@pytest.mark.asyncio
async def test_memory_store_returns_copies():
    store = MemoryContentStore()
    await store.set("chats/c1", {"participants": ["a"]})
    snapshot = await store.get("chats/c1")
    snapshot["participants"].append("b")
    assert await store.get("chats/c1") == {"participants": ["a"]}


@pytest.mark.asyncio
async def test_memory_transact_abort_leaves_value_untouched():
    store = MemoryContentStore()
    await store.set("invites/l1", {"uses": 1})

    def _reject(current):
        raise MessagingError(ReasonCode.EXHAUSTED)

    with pytest.raises(MessagingError):
        await store.transact("invites/l1", _reject)
    assert await store.get("invites/l1") == {"uses": 1}


@pytest.mark.asyncio
async def test_memory_subscribe_fires_for_descendant_writes_until_unsubscribed():
    store = MemoryContentStore()
    seen = []

    async def _on_change(path, value):
        seen.append((path, value))

    unsubscribe = await store.subscribe("messages/c1", _on_change)
    await store.set("messages/c1/m1", {"content": "hi"})
    await store.set("messages/c2/m1", {"content": "elsewhere"})
    unsubscribe()
    await store.set("messages/c1/m2", {"content": "late"})

    assert seen == [("messages/c1", {"m1": {"content": "hi"}})]


@pytest.mark.asyncio
async def test_memory_subscriber_errors_do_not_break_writes():
    store = MemoryContentStore()

    def _boom(path, value):
        raise RuntimeError("listener bug")

    await store.subscribe("chats", _boom)
    await store.set("chats/c1", {"type": "group"})
    assert await store.get("chats/c1") == {"type": "group"}


def test_push_ids_sort_in_generation_order():
    store = MemoryContentStore()
    ids = [store.push_id() for _ in range(50)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 50


@pytest.mark.asyncio
async def test_redis_store_assembles_subtrees(fake_redis):
    store = RedisContentStore(fake_redis, prefix="t:")
    await store.set("userChats/u1/c1", {"chatId": "c1"})
    await store.set("userChats/u1/c2", {"chatId": "c2"})

    assert await store.get("userChats/u1") == {"c1": {"chatId": "c1"}, "c2": {"chatId": "c2"}}
    assert await store.get("userChats/u1/c1/chatId") == "c1"
    assert await store.get("userChats/u2") is None

    await store.remove("userChats/u1")
    assert await store.get("userChats/u1/c1") is None


@pytest.mark.asyncio
async def test_redis_transact_updates_nested_path_inside_stored_document(fake_redis):
    store = RedisContentStore(fake_redis, prefix="t:")
    await store.set("chats/c1", {"participants": ["a"], "lastMessageAt": 1})

    def _add(current):
        return current + ["b"]

    result = await store.transact("chats/c1/participants", _add)

    assert result == ["a", "b"]
    assert await store.get("chats/c1") == {"participants": ["a", "b"], "lastMessageAt": 1}


@pytest.mark.asyncio
async def test_redis_transact_abort_leaves_value_untouched(fake_redis):
    store = RedisContentStore(fake_redis, prefix="t:")
    await store.set("groupInviteLinks/l1", {"currentUses": 1})

    def _reject(current):
        raise MessagingError(ReasonCode.EXHAUSTED)

    with pytest.raises(MessagingError):
        await store.transact("groupInviteLinks/l1", _reject)
    assert await store.get("groupInviteLinks/l1") == {"currentUses": 1}
