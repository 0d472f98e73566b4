import pytest

from groupchat.domain.messaging import models
from groupchat.domain.messaging.notifications import (
    NOTIFICATION_STREAM,
    RedisStreamNotificationSink,
    StoreNotificationSink,
    build_preview,
    build_sink,
)
from groupchat.settings import settings


def _notification(recipient="bob"):
    return models.MessageNotification(
        recipient_id=recipient,
        from_user_id="alice",
        chat_id="c1",
        message_id="m1",
        content_preview="hello",
    )


def test_preview_truncates_long_text():
    assert build_preview("short") == "short"
    assert build_preview("a" * 50) == "a" * 50
    assert build_preview("a" * 51) == "a" * 50 + "..."
    assert build_preview("abcdef", limit=3) == "abc..."


def test_build_sink_follows_settings(monkeypatch):
    assert isinstance(build_sink(), StoreNotificationSink)
    monkeypatch.setattr(settings, "notification_sink", "stream")
    assert isinstance(build_sink(), RedisStreamNotificationSink)


@pytest.mark.asyncio
async def test_stream_sink_appends_string_fields(fake_redis):
    sink = RedisStreamNotificationSink()

    await sink.deliver(_notification(), created_at=1234)

    entries = await fake_redis.xrange(NOTIFICATION_STREAM)
    assert len(entries) == 1
    _, fields = entries[0]
    assert fields["recipientId"] == "bob"
    assert fields["contentPreview"] == "hello"
    assert fields["created_at"] == "1234"


@pytest.mark.asyncio
async def test_store_sink_writes_under_the_recipient(services):
    sink = StoreNotificationSink(services.repo)

    await sink.deliver(_notification("carol"), created_at=99)

    tree = await services.repo.store.get("notifications/carol")
    (record,) = tree.values()
    assert record["createdAt"] == 99
    assert record["chatId"] == "c1"
