import asyncio

import pytest

from groupchat.domain.messaging import schemas
from groupchat.domain.messaging.models import SYSTEM_SENDER
from groupchat.settings import settings


async def _group(services, members=("alice", "bob")):
    result = await services.membership.create_chat("group", list(members), schemas.GroupMeta(name="Club"))
    assert result.success, result
    return result.data["id"]


async def _link(services, chat_id, **limits):
    result = await services.invites.create_invite_link(chat_id, "alice", **limits)
    assert result.success, result
    return result.data


@pytest.mark.asyncio
async def test_only_group_admins_create_links(services, clock):
    chat_id = await _group(services)
    private = await services.membership.create_chat("private", ["alice", "bob"])

    assert (await services.invites.create_invite_link(chat_id, "bob")).error == "NotAuthorized"
    assert (await services.invites.create_invite_link(private.data["id"], "alice")).error == "NotAGroup"
    past = await services.invites.create_invite_link(chat_id, "alice", expires_at=clock.now())
    assert past.error == "InvalidInput"
    zero = await services.invites.create_invite_link(chat_id, "alice", max_uses=0)
    assert zero.error == "InvalidInput"


@pytest.mark.asyncio
async def test_create_link_stamps_the_chat(services, clock):
    chat_id = await _group(services)

    link = await _link(services, chat_id, max_uses=5)

    assert link["chat_id"] == chat_id
    assert link["created_by"] == "alice"
    assert link["created_at"] == clock.now()
    assert link["current_uses"] == 0 and link["active"] is True
    assert len(link["code"]) >= 16
    chat = await services.repo.get_chat(chat_id)
    assert chat.invite_code == link["code"]


@pytest.mark.asyncio
async def test_redeem_adds_the_user_and_counts_the_use(services):
    chat_id = await _group(services)
    link = await _link(services, chat_id)

    result = await services.invites.redeem(link["code"], "dave")

    assert result.success
    assert result.data["chat"]["participants"] == ["alice", "bob", "dave"]
    assert result.data["link"]["current_uses"] == 1
    assert await services.repo.get_membership("dave", chat_id) is not None
    notices = [m.content.text for m in await services.repo.list_messages(chat_id) if m.sender_id == SYSTEM_SENDER]
    assert notices == ["User joined the group via invite link"]


@pytest.mark.asyncio
async def test_redeeming_twice_reports_already_member(services):
    chat_id = await _group(services)
    link = await _link(services, chat_id, max_uses=1)

    assert (await services.invites.redeem(link["code"], "dave")).success
    second = await services.invites.redeem(link["code"], "dave")

    assert second.error == "AlreadyMember"
    assert (await services.repo.get_invite(link["id"])).current_uses == 1


@pytest.mark.asyncio
async def test_unknown_code_is_not_found(services):
    result = await services.invites.redeem("does-not-exist", "dave")
    assert result.error == "NotFound"


@pytest.mark.asyncio
async def test_expired_link_is_rejected(services, clock):
    chat_id = await _group(services)
    link = await _link(services, chat_id, expires_at=clock.now() + 1_000)

    clock.advance(1_000)
    assert (await services.invites.redeem(link["code"], "dave")).success
    clock.advance(1)
    assert (await services.invites.redeem(link["code"], "erin")).error == "Expired"


@pytest.mark.asyncio
async def test_exhausted_link_is_rejected(services):
    chat_id = await _group(services)
    link = await _link(services, chat_id, max_uses=1)

    assert (await services.invites.redeem(link["code"], "dave")).success
    result = await services.invites.redeem(link["code"], "erin")

    assert result.error == "Exhausted"
    assert (await services.repo.get_invite(link["id"])).current_uses == 1


@pytest.mark.asyncio
async def test_concurrent_redeems_never_exceed_max_uses(services):
    chat_id = await _group(services)
    link = await _link(services, chat_id, max_uses=1)

    results = await asyncio.gather(
        services.invites.redeem(link["code"], "dave"),
        services.invites.redeem(link["code"], "erin"),
    )

    assert sorted(result.success for result in results) == [False, True]
    assert [result.error for result in results if not result.success] == ["Exhausted"]
    assert (await services.repo.get_invite(link["id"])).current_uses == 1
    chat = await services.repo.get_chat(chat_id)
    assert len(chat.participants) == 3


@pytest.mark.asyncio
async def test_failed_join_releases_the_claimed_use(services, monkeypatch):
    chat_id = await _group(services, ("alice", "bob", "carol"))
    link = await _link(services, chat_id, max_uses=2)
    monkeypatch.setattr(settings, "max_group_participants", 3)

    result = await services.invites.redeem(link["code"], "dave")

    assert result.error == "InvalidInput"
    assert (await services.repo.get_invite(link["id"])).current_uses == 0


@pytest.mark.asyncio
async def test_admin_demoted_mid_create_leaves_no_link_behind(services, monkeypatch):
    chat_id = await _group(services)
    original_reserve = services.repo.reserve_invite_code
    reserved = []

    async def reserve_then_demote(code, link_id):
        owned = await original_reserve(code, link_id)
        reserved.append(code)

        def _demote(chat):
            chat.admin_ids = ["bob"]

        await services.repo.update_chat(chat_id, _demote)
        return owned

    monkeypatch.setattr(services.repo, "reserve_invite_code", reserve_then_demote)

    result = await services.invites.create_invite_link(chat_id, "alice")

    assert result.error == "NotAuthorized"
    assert len(reserved) == 1
    assert await services.repo.list_invites(chat_id) == []
    assert await services.repo.find_invite_id(reserved[0]) is None
    assert (await services.repo.get_chat(chat_id)).invite_code is None
    assert (await services.invites.redeem(reserved[0], "dave")).error == "NotFound"


@pytest.mark.asyncio
async def test_revoked_link_is_inactive(services):
    chat_id = await _group(services)
    link = await _link(services, chat_id)

    denied = await services.invites.revoke(link["id"], "bob")
    assert denied.error == "NotAuthorized"

    revoked = await services.invites.revoke(link["id"], "alice")
    assert revoked.data["active"] is False
    assert (await services.repo.get_chat(chat_id)).invite_code is None
    assert (await services.invites.redeem(link["code"], "dave")).error == "Inactive"


@pytest.mark.asyncio
async def test_list_links_for_admins(services, clock):
    chat_id = await _group(services)
    first = await _link(services, chat_id)
    clock.advance(10)
    second = await _link(services, chat_id, max_uses=3)

    listing = await services.invites.list_links(chat_id, "alice")
    assert [link["id"] for link in listing.data] == [first["id"], second["id"]]
    assert (await services.repo.get_chat(chat_id)).invite_code == second["code"]

    assert (await services.invites.list_links(chat_id, "bob")).error == "NotAuthorized"
