import asyncio
from datetime import timedelta

import pytest

from groupchat.domain.messaging import schemas
from groupchat.domain.messaging.models import SYSTEM_SENDER


async def _group(services, members, **meta):
    result = await services.membership.create_chat("group", members, schemas.GroupMeta(**meta))
    assert result.success, result
    return result.data


async def _system_texts(services, chat_id):
    messages = await services.repo.list_messages(chat_id)
    return [m.content.text for m in messages if m.sender_id == SYSTEM_SENDER]


def _assert_admins_are_participants(chat):
    assert set(chat["admin_ids"]) <= set(chat["participants"])


@pytest.mark.asyncio
async def test_private_chat_is_reused_for_the_same_pair(services):
    first = await services.membership.create_chat("private", ["alice", "bob"])
    second = await services.membership.create_chat("private", ["bob", "alice"])
    via_start = await services.membership.start_private_chat("alice", "bob")

    assert first.success and second.success and via_start.success
    assert first.data["id"] == second.data["id"] == via_start.data["id"]
    assert first.data["admin_ids"] == []
    assert set(await services.repo.list_user_chat_ids("bob")) == {first.data["id"]}


@pytest.mark.asyncio
async def test_private_chat_is_created_under_an_existing_pair_claim(services):
    assert await services.repo.claim_private_pair("bob", "alice", "claimed-chat") == "claimed-chat"

    result = await services.membership.start_private_chat("alice", "bob")

    assert result.success
    assert result.data["id"] == "claimed-chat"
    assert (await services.repo.get_chat("claimed-chat")).participants == ["alice", "bob"]
    assert await services.repo.get_membership("alice", "claimed-chat") is not None
    assert await services.repo.get_membership("bob", "claimed-chat") is not None


@pytest.mark.asyncio
async def test_slower_private_create_keeps_the_chat_written_first(services, clock, monkeypatch):
    original_get_chat = services.repo.get_chat
    interleaved = []

    async def get_chat_then_let_bob_finish(chat_id):
        chat = await original_get_chat(chat_id)
        if chat is None and not interleaved:
            interleaved.append(chat_id)
            other = await services.membership.start_private_chat("bob", "alice")
            assert other.data["id"] == chat_id
            clock.advance(timedelta(minutes=5))
            sent = await services.pipeline.send(chat_id, "bob", schemas.SendMessageRequest(content="hi"))
            assert sent.success
            interleaved.append(clock.now())
            clock.advance(timedelta(minutes=5))
        return chat

    monkeypatch.setattr(services.repo, "get_chat", get_chat_then_let_bob_finish)

    result = await services.membership.start_private_chat("alice", "bob")

    chat_id, sent_at = interleaved
    assert result.success
    assert result.data["id"] == chat_id
    assert result.data["last_message_at"] == sent_at
    stored = await original_get_chat(chat_id)
    assert stored.last_message_at == sent_at
    assert [m.content.text for m in await services.repo.list_messages(chat_id)] == ["hi"]


@pytest.mark.asyncio
async def test_concurrent_private_starts_share_one_chat(services):
    first, second = await asyncio.gather(
        services.membership.start_private_chat("alice", "bob"),
        services.membership.start_private_chat("bob", "alice"),
    )

    assert first.success and second.success
    assert first.data["id"] == second.data["id"]
    assert set(await services.repo.list_user_chat_ids("alice")) == {first.data["id"]}
    assert set(await services.repo.list_user_chat_ids("bob")) == {first.data["id"]}


@pytest.mark.asyncio
@pytest.mark.parametrize("participants", [["alice"], ["alice", "alice"], ["alice", "bob", "carol"]])
async def test_private_chat_requires_two_distinct_participants(services, participants):
    result = await services.membership.create_chat("private", participants)
    assert not result.success
    assert result.error == "InvalidInput"


@pytest.mark.asyncio
async def test_invalid_ids_are_rejected_before_touching_the_store(services, store):
    result = await services.membership.create_chat("group", ["alice", "bad/id"])
    assert result.error == "InvalidInput"
    assert await store.get("chats") is None


@pytest.mark.asyncio
async def test_group_starts_with_first_participant_as_sole_admin(services):
    chat = await _group(services, ["alice", "bob", "bob", "carol"], banned_words=[" Spam ", "spam", ""])

    assert chat["participants"] == ["alice", "bob", "carol"]
    assert chat["admin_ids"] == ["alice"]
    assert chat["banned_words"] == ["spam"]
    assert chat["name"] == "Unnamed Group"
    record = await services.repo.get_membership("carol", chat["id"])
    assert record is not None and record.chat_id == chat["id"]


@pytest.mark.asyncio
async def test_add_participant_requires_admin_and_rejects_duplicates(services):
    chat = await _group(services, ["alice", "bob"])

    denied = await services.membership.add_participant(chat["id"], "carol", "bob")
    assert denied.error == "NotAuthorized"

    added = await services.membership.add_participant(chat["id"], "carol", "alice")
    assert added.success
    assert added.data["participants"] == ["alice", "bob", "carol"]
    assert await services.repo.get_membership("carol", chat["id"]) is not None
    assert await _system_texts(services, chat["id"]) == ["User joined the group"]

    again = await services.membership.add_participant(chat["id"], "carol", "alice")
    assert again.error == "AlreadyMember"


@pytest.mark.asyncio
async def test_add_participant_to_missing_or_private_chat(services):
    missing = await services.membership.add_participant("nope", "carol", "alice")
    assert missing.error == "NotFound"

    private = await services.membership.create_chat("private", ["alice", "bob"])
    result = await services.membership.add_participant(private.data["id"], "carol", "alice")
    assert result.error == "NotAGroup"


@pytest.mark.asyncio
async def test_remove_participant_drops_membership_and_posts_notice(services):
    chat = await _group(services, ["alice", "bob", "carol"])

    denied = await services.membership.remove_participant(chat["id"], "carol", "bob")
    assert denied.error == "NotAuthorized"

    removed = await services.membership.remove_participant(chat["id"], "carol", "alice")
    assert removed.success
    assert removed.data["participants"] == ["alice", "bob"]
    assert await services.repo.get_membership("carol", chat["id"]) is None
    assert await _system_texts(services, chat["id"]) == ["User was removed from the group"]

    missing = await services.membership.remove_participant(chat["id"], "carol", "alice")
    assert missing.error == "NotAParticipant"


@pytest.mark.asyncio
async def test_sole_admin_must_transfer_before_leaving(services):
    chat = await _group(services, ["alice", "bob"])

    blocked = await services.membership.leave(chat["id"], "alice")
    assert blocked.error == "AdminMustTransfer"

    promoted = await services.membership.promote_admin(chat["id"], "bob", "alice")
    assert promoted.data["admin_ids"] == ["alice", "bob"]

    left = await services.membership.leave(chat["id"], "alice")
    assert left.success
    assert left.data["participants"] == ["bob"]
    assert left.data["admin_ids"] == ["bob"]
    _assert_admins_are_participants(left.data)


@pytest.mark.asyncio
async def test_last_member_may_leave_an_otherwise_empty_group(services):
    chat = await _group(services, ["alice"])
    left = await services.membership.leave(chat["id"], "alice")
    assert left.success
    assert left.data["participants"] == []
    assert left.data["admin_ids"] == []


@pytest.mark.asyncio
async def test_leaving_a_private_chat_is_rejected(services):
    private = await services.membership.create_chat("private", ["alice", "bob"])
    result = await services.membership.leave(private.data["id"], "alice")
    assert result.error == "NotAGroup"


@pytest.mark.asyncio
async def test_demoting_the_last_admin_is_rejected(services):
    chat = await _group(services, ["alice", "bob"])

    result = await services.membership.demote_admin(chat["id"], "alice", "alice")
    assert result.error == "AdminMustTransfer"

    await services.membership.promote_admin(chat["id"], "bob", "alice")
    demoted = await services.membership.demote_admin(chat["id"], "alice", "bob")
    assert demoted.data["admin_ids"] == ["bob"]


@pytest.mark.asyncio
async def test_update_group_settings(services):
    chat = await _group(services, ["alice", "bob"])

    denied = await services.membership.update_group_settings(
        chat["id"], "bob", schemas.GroupSettingsRequest(post_sharing_enabled=False)
    )
    assert denied.error == "NotAuthorized"

    updated = await services.membership.update_group_settings(
        chat["id"],
        "alice",
        schemas.GroupSettingsRequest(
            name="Study",
            banned_words=["Scam", "scam "],
            violation_policy=schemas.ViolationPolicyPayload(mode="temp_kick"),
            post_sharing_enabled=False,
        ),
    )
    assert updated.success
    assert updated.data["name"] == "Study"
    assert updated.data["banned_words"] == ["scam"]
    assert updated.data["violation_policy"] == {"mode": "temp_kick", "duration_hours": 24}
    assert updated.data["post_sharing_enabled"] is False

    stored = await services.repo.get_chat(chat["id"])
    assert stored.violation_policy.is_temporary()


@pytest.mark.asyncio
async def test_list_user_chats_orders_by_latest_activity(services, clock):
    older = await _group(services, ["alice", "bob"])
    clock.advance(1000)
    newer = await _group(services, ["alice", "carol"])

    listing = await services.membership.list_user_chats("alice")
    assert [chat["id"] for chat in listing.data] == [newer["id"], older["id"]]

    clock.advance(1000)
    await services.pipeline.send(older["id"], "bob", schemas.SendMessageRequest(content="ping"))
    listing = await services.membership.list_user_chats("alice")
    assert [chat["id"] for chat in listing.data] == [older["id"], newer["id"]]


@pytest.mark.asyncio
async def test_list_members_hides_members_who_opted_out(services):
    chat = await _group(services, ["alice", "bob", "carol"])
    await services.privacy.update_privacy("carol", schemas.PrivacyUpdateRequest(hide_from_group_members=True))

    as_alice = await services.membership.list_members(chat["id"], "alice")
    assert [member["user_id"] for member in as_alice.data] == ["alice", "bob"]
    assert as_alice.data[0]["is_admin"] is True

    as_carol = await services.membership.list_members(chat["id"], "carol")
    assert "carol" in [member["user_id"] for member in as_carol.data]

    outsider = await services.membership.list_members(chat["id"], "mallory")
    assert outsider.error == "NotAParticipant"


@pytest.mark.asyncio
async def test_privacy_defaults_and_partial_updates(services, clock):
    defaults = await services.privacy.get_privacy("dana")
    assert defaults.data["hideFromGroupMembers"] is False

    updated = await services.privacy.update_privacy("dana", schemas.PrivacyUpdateRequest(is_anonymous=True))
    assert updated.data["isAnonymous"] is True
    assert updated.data["hideFromGroupMembers"] is False
    assert updated.data["updatedAt"] == clock.now()
