"""Message pipeline: validate, moderate, persist and fan out one message."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from groupchat.domain.messaging import models, policy, schemas, sockets
from groupchat.domain.messaging.enforcement import ViolationEnforcer
from groupchat.domain.messaging.errors import MessagingError, ReasonCode
from groupchat.domain.messaging.membership import MembershipService
from groupchat.domain.messaging.moderation import BannedWordEvaluator, ContentEvaluator
from groupchat.domain.messaging.notifications import NotificationFanout
from groupchat.domain.messaging.repo import MessagingRepository, messages_from_tree, messages_path
from groupchat.domain.messaging.results import returns_result
from groupchat.infra.clock import Clock, system_clock
from groupchat.infra.store import Unsubscribe
from groupchat.obs import metrics as obs_metrics
from groupchat.settings import settings

logger = logging.getLogger(__name__)

SHARED_POST_TEXT = "Shared a post"

MessagesCallback = Callable[[List[dict]], Union[None, Awaitable[None]]]


class MessagePipeline:
	def __init__(
		self,
		repo: MessagingRepository | None = None,
		*,
		clock: Clock | None = None,
		evaluator: ContentEvaluator | None = None,
		notifier: NotificationFanout | None = None,
		membership: MembershipService | None = None,
		enforcer: ViolationEnforcer | None = None,
	) -> None:
		self._repo = repo or MessagingRepository()
		self._clock = clock or system_clock
		self._evaluator = evaluator or BannedWordEvaluator()
		self._notifier = notifier or NotificationFanout(repo=self._repo)
		if membership is None:
			membership = MembershipService(self._repo, pipeline=self, clock=self._clock)
		self._membership = membership
		self._enforcer = enforcer or ViolationEnforcer(membership, clock=self._clock)

	@property
	def membership(self) -> MembershipService:
		return self._membership

	@returns_result
	async def send(self, chat_id: str, sender_id: str, payload: schemas.SendMessageRequest) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		sender_id = policy.ensure_user_id(sender_id, field="sender_id")
		policy.ensure_message_payload(
			payload.kind,
			payload.content,
			media_url=payload.media_url,
			shared_post_id=payload.shared_post_id,
			max_chars=settings.max_message_chars,
		)
		message = await self._send(
			chat_id,
			sender_id,
			payload.content,
			kind=payload.kind,
			reply_to=payload.reply_to,
			media_url=payload.media_url,
			media_type=payload.media_type,
			duration=payload.duration,
			shared_post_id=payload.shared_post_id,
		)
		return message.to_dict(self._repo.tombstone)

	@returns_result
	async def share_post(self, chat_id: str, sender_id: str, post_id: str, message: Optional[str] = None) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		sender_id = policy.ensure_user_id(sender_id, field="sender_id")
		post_id = policy.ensure_id(post_id, field="post_id")
		content = message or SHARED_POST_TEXT
		policy.ensure_message_payload(
			"post_share",
			content,
			media_url=None,
			shared_post_id=post_id,
			max_chars=settings.max_message_chars,
		)
		sent = await self._send(chat_id, sender_id, content, kind="post_share", shared_post_id=post_id)
		return sent.to_dict(self._repo.tombstone)

	async def post_system(self, chat_id: str, text: str) -> models.Message:
		return await self._send(chat_id, models.SYSTEM_SENDER, text, kind="text")

	async def _send(
		self,
		chat_id: str,
		sender_id: str,
		content: str,
		*,
		kind: str,
		reply_to: Optional[str] = None,
		media_url: Optional[str] = None,
		media_type: Optional[str] = None,
		duration: Optional[float] = None,
		shared_post_id: Optional[str] = None,
	) -> models.Message:
		chat = policy.ensure_chat(await self._repo.get_chat(chat_id))
		system = sender_id == models.SYSTEM_SENDER
		if not system:
			policy.ensure_participant(chat, sender_id)
			if kind == "post_share":
				policy.ensure_post_sharing(chat)
			await self._moderate(chat, sender_id, content)

		now = self._clock.now()
		message = models.Message(
			id=self._repo.new_id(),
			chat_id=chat_id,
			sender_id=sender_id,
			content=models.LiveContent(content),
			kind=kind,
			created_at=now,
			reply_to=reply_to,
			media_url=media_url,
			media_type=media_type,
			duration=duration,
			shared_post_id=shared_post_id,
		)
		await self._repo.insert_message(message)

		def _touch(current: models.Chat) -> None:
			current.last_message_at = max(current.last_message_at, now)

		await self._repo.update_chat(chat_id, _touch)
		if not system:
			await self._repo.touch_last_read(sender_id, chat_id, now)
		obs_metrics.inc_message_sent(kind, system=system)
		await sockets.emit_chat_event("chat:message", chat_id, message.to_dict(self._repo.tombstone))
		if not system:
			await self._notifier.fan_out(chat, message, content)
		return message

	async def _moderate(self, chat: models.Chat, sender_id: str, content: str) -> None:
		if not chat.is_group() or not chat.banned_words:
			return
		matches = self._evaluator.violations(content, chat.banned_words)
		if not matches:
			return
		obs_metrics.inc_message_rejected("banned_word")
		logger.info("message_rejected", extra={"chat_id": chat.id, "user_id": sender_id, "matches": len(matches)})
		await self._enforcer.enforce(chat, sender_id, matches)
		raise MessagingError(ReasonCode.CONTENT_REJECTED)

	@returns_result
	async def edit(self, chat_id: str, message_id: str, new_content: str, requester_id: str) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		message_id = policy.ensure_id(message_id, field="message_id")
		requester_id = policy.ensure_user_id(requester_id, field="requester_id")
		new_content = policy.ensure_edit_content(new_content, max_chars=settings.max_message_chars)
		now = self._clock.now()

		def _apply(message: models.Message) -> None:
			policy.ensure_sender(message, requester_id)
			policy.ensure_not_deleted(message)
			message.content = models.LiveContent(new_content)
			message.edited = True
			message.updated_at = now

		message = await self._repo.update_message(chat_id, message_id, _apply)
		obs_metrics.inc_message_mutated("edited")
		payload = message.to_dict(self._repo.tombstone)
		await sockets.emit_chat_event("chat:message_updated", chat_id, payload)
		return payload

	@returns_result
	async def delete(self, chat_id: str, message_id: str, requester_id: str) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		message_id = policy.ensure_id(message_id, field="message_id")
		requester_id = policy.ensure_user_id(requester_id, field="requester_id")
		now = self._clock.now()

		def _apply(message: models.Message) -> None:
			policy.ensure_sender(message, requester_id)
			policy.ensure_not_deleted(message)
			message.content = models.DeletedContent()
			message.updated_at = now

		message = await self._repo.update_message(chat_id, message_id, _apply)
		obs_metrics.inc_message_mutated("deleted")
		payload = message.to_dict(self._repo.tombstone)
		await sockets.emit_chat_event("chat:message_updated", chat_id, payload)
		return payload

	@returns_result
	async def list_messages(
		self,
		chat_id: str,
		requester_id: str,
		*,
		limit: Optional[int] = None,
		before: Optional[int] = None,
	) -> List[dict]:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		if limit is not None and limit < 1:
			raise MessagingError(ReasonCode.INVALID_INPUT, message="invalid_limit")
		await self._require_participant(chat_id, requester_id)
		messages = await self._repo.list_messages(chat_id)
		if before is not None:
			messages = [message for message in messages if message.created_at < before]
		if limit is not None:
			messages = messages[-limit:]
		return [message.to_dict(self._repo.tombstone) for message in messages]

	@returns_result
	async def search_messages(self, chat_id: str, requester_id: str, term: str) -> List[dict]:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		needle = (term or "").strip().lower()
		if not needle:
			raise MessagingError(ReasonCode.INVALID_INPUT, message="empty_search_term")
		await self._require_participant(chat_id, requester_id)
		return [
			message.to_dict(self._repo.tombstone)
			for message in await self._repo.list_messages(chat_id)
			if not message.deleted and needle in message.text(self._repo.tombstone).lower()
		]

	@returns_result
	async def mark_read(self, chat_id: str, user_id: str) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		user_id = policy.ensure_user_id(user_id)
		await self._require_participant(chat_id, user_id)
		now = self._clock.now()
		await self._repo.touch_last_read(user_id, chat_id, now)
		return {"chat_id": chat_id, "last_read_at": now}

	async def subscribe(self, chat_id: str, requester_id: str, on_messages: MessagesCallback) -> Unsubscribe:
		"""Invoke ``on_messages`` with the ordered message log on every change."""
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		await self._require_participant(chat_id, requester_id)
		tombstone = self._repo.tombstone

		async def _on_change(_path: str, tree: Any) -> None:
			result = on_messages([message.to_dict(tombstone) for message in messages_from_tree(chat_id, tree)])
			if result is not None:
				await result

		return await self._repo.store.subscribe(messages_path(chat_id), _on_change)

	async def _require_participant(self, chat_id: str, user_id: str) -> models.Chat:
		chat = policy.ensure_chat(await self._repo.get_chat(chat_id))
		policy.ensure_participant(chat, user_id)
		return chat
