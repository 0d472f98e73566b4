import pytest

from groupchat.settings import settings


def _as(user_id):
    return {"X-User-Id": user_id}


async def _create_group(api_client, **group):
    response = await api_client.post(
        "/chats",
        json={"kind": "group", "participant_ids": ["bob", "carol"], "group": group},
        headers=_as("alice"),
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_requests_without_identity_are_rejected(api_client):
    response = await api_client.get("/chats")
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_token"

    spoofed = await api_client.get("/chats", headers=_as("system"))
    assert spoofed.status_code == 401


@pytest.mark.asyncio
async def test_create_group_makes_the_caller_admin(api_client):
    chat = await _create_group(api_client, name="Hikers")

    assert chat["participants"] == ["alice", "bob", "carol"]
    assert chat["admin_ids"] == ["alice"]

    listing = await api_client.get("/chats", headers=_as("carol"))
    assert [item["id"] for item in listing.json()["data"]] == [chat["id"]]


@pytest.mark.asyncio
async def test_send_and_read_messages(api_client):
    chat = await _create_group(api_client)

    sent = await api_client.post(f"/chats/{chat['id']}/messages", json={"content": "hi all"}, headers=_as("bob"))
    assert sent.status_code == 201
    body = sent.json()
    assert body["success"] is True
    assert body["data"]["sender_id"] == "bob"

    history = await api_client.get(f"/chats/{chat['id']}/messages", params={"limit": 10}, headers=_as("carol"))
    assert [m["content"] for m in history.json()["data"]] == ["hi all"]


@pytest.mark.asyncio
async def test_failures_map_to_http_status(api_client):
    chat = await _create_group(api_client, banned_words=["spam"])

    outsider = await api_client.post(f"/chats/{chat['id']}/messages", json={"content": "hey"}, headers=_as("mallory"))
    assert outsider.status_code == 403
    assert outsider.json()["error"] == "NotAParticipant"

    missing = await api_client.get("/chats/nope", headers=_as("alice"))
    assert missing.status_code == 404

    leave = await api_client.post(f"/chats/{chat['id']}/leave", headers=_as("alice"))
    assert leave.status_code == 409
    assert leave.json()["error"] == "AdminMustTransfer"

    rejected = await api_client.post(f"/chats/{chat['id']}/messages", json={"content": "spam"}, headers=_as("bob"))
    assert rejected.status_code == 422
    assert rejected.json()["error"] == "ContentRejected"

    invalid = await api_client.post("/chats", json={"kind": "channel", "participant_ids": ["bob"]}, headers=_as("alice"))
    assert invalid.status_code == 422
    assert invalid.json()["error"] == "InvalidInput"


@pytest.mark.asyncio
async def test_invite_redeem_flow(api_client):
    chat = await _create_group(api_client)

    created = await api_client.post(f"/chats/{chat['id']}/invites", json={"max_uses": 1}, headers=_as("alice"))
    assert created.status_code == 201
    code = created.json()["data"]["code"]

    redeemed = await api_client.post("/invites/redeem", json={"code": code}, headers=_as("dave"))
    assert redeemed.status_code == 200
    assert "dave" in redeemed.json()["data"]["chat"]["participants"]

    exhausted = await api_client.post("/invites/redeem", json={"code": code}, headers=_as("erin"))
    assert exhausted.status_code == 410
    assert exhausted.json()["error"] == "Exhausted"


@pytest.mark.asyncio
async def test_privacy_settings_round_trip(api_client):
    updated = await api_client.patch("/privacy/me", json={"hide_from_group_members": True}, headers=_as("bob"))
    assert updated.json()["data"]["hideFromGroupMembers"] is True

    current = await api_client.get("/privacy/me", headers=_as("bob"))
    assert current.json()["data"]["hideFromGroupMembers"] is True


@pytest.mark.asyncio
async def test_health_endpoints(api_client):
    live = await api_client.get("/health/live")
    assert live.json() == {"status": "ok"}

    ready = await api_client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_metrics_require_the_admin_token(api_client, monkeypatch):
    monkeypatch.setattr(settings, "obs_metrics_public", False)
    monkeypatch.setattr(settings, "obs_admin_token", "secret")

    denied = await api_client.get("/metrics")
    assert denied.status_code == 403

    allowed = await api_client.get("/metrics", headers={"X-Admin-Token": "secret"})
    assert allowed.status_code == 200
    assert "groupchat" in allowed.text


@pytest.mark.asyncio
async def test_operator_can_trigger_a_reconciler_sweep(api_client, services, clock, monkeypatch):
    monkeypatch.setattr(settings, "obs_admin_token", "secret")
    chat = await _create_group(
        api_client,
        banned_words=["spam"],
        violation_policy={"mode": "temp_kick", "duration_hours": 1},
    )
    await api_client.post(f"/chats/{chat['id']}/messages", json={"content": "spam"}, headers=_as("bob"))
    clock.advance(3_600_000)

    denied = await api_client.post("/ops/suspensions/reconcile")
    assert denied.status_code == 403

    swept = await api_client.post("/ops/suspensions/reconcile", headers={"Authorization": "Bearer secret"})
    assert swept.json() == {"restored": 1}
    assert "bob" in (await services.repo.get_chat(chat["id"])).participants
