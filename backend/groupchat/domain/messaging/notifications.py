"""Notification fan-out for delivered messages."""

from __future__ import annotations

import logging
from typing import Any, List, Protocol

from groupchat.domain.messaging import models
from groupchat.domain.messaging.repo import MessagingRepository
from groupchat.infra.redis import redis_client
from groupchat.obs import metrics as obs_metrics
from groupchat.settings import settings

logger = logging.getLogger(__name__)

NOTIFICATION_STREAM = "x:notifications"


class NotificationSink(Protocol):
	async def deliver(self, notification: models.MessageNotification, *, created_at: int) -> None:
		...


class StoreNotificationSink:
	"""Writes each notification under ``notifications/<recipient>/<id>``."""

	def __init__(self, repo: MessagingRepository | None = None) -> None:
		self._repo = repo or MessagingRepository()

	async def deliver(self, notification: models.MessageNotification, *, created_at: int) -> None:
		await self._repo.put_notification(notification, created_at=created_at)


class RedisStreamNotificationSink:
	def __init__(self, stream: str = NOTIFICATION_STREAM, client: Any = None) -> None:
		self._stream = stream
		self._client = client or redis_client

	async def deliver(self, notification: models.MessageNotification, *, created_at: int) -> None:
		fields = {key: str(value) for key, value in notification.to_dict().items()}
		fields["created_at"] = str(created_at)
		await self._client.xadd(self._stream, fields, maxlen=settings.notification_stream_maxlen, approximate=True)


def build_sink(repo: MessagingRepository | None = None) -> NotificationSink:
	if settings.notification_sink == "stream":
		return RedisStreamNotificationSink()
	return StoreNotificationSink(repo)


def build_preview(text: str, *, limit: int | None = None) -> str:
	limit = settings.message_preview_chars if limit is None else limit
	if len(text) <= limit:
		return text
	return text[:limit] + "..."


def recipients_for(chat: models.Chat, sender_id: str) -> List[str]:
	return chat.others(sender_id)


class NotificationFanout:
	"""Emits one notification per recipient; failures never reach the sender."""

	def __init__(self, sink: NotificationSink | None = None, *, repo: MessagingRepository | None = None) -> None:
		self._sink = sink or build_sink(repo)

	async def fan_out(self, chat: models.Chat, message: models.Message, text: str) -> int:
		preview = build_preview(text)
		delivered = 0
		for recipient_id in recipients_for(chat, message.sender_id):
			notification = models.MessageNotification(
				recipient_id=recipient_id,
				from_user_id=message.sender_id,
				chat_id=chat.id,
				message_id=message.id,
				content_preview=preview,
			)
			try:
				await self._sink.deliver(notification, created_at=message.created_at)
			except Exception:
				obs_metrics.inc_notification("failed")
				logger.warning(
					"notification_failed",
					extra={"chat_id": chat.id, "message_id": message.id, "recipient_id": recipient_id},
					exc_info=True,
				)
				continue
			obs_metrics.inc_notification("delivered")
			delivered += 1
		return delivered


__all__ = [
	"NOTIFICATION_STREAM",
	"NotificationFanout",
	"NotificationSink",
	"RedisStreamNotificationSink",
	"StoreNotificationSink",
	"build_preview",
	"build_sink",
]
