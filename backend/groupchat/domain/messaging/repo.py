"""Content-store repository for the messaging domain."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

from groupchat.domain.messaging import models
from groupchat.domain.messaging.errors import MessagingError, ReasonCode
from groupchat.infra.store import ContentStore, get_store
from groupchat.settings import settings

CHATS = "chats"
MESSAGES = "messages"
USER_CHATS = "userChats"
PRIVATE_PAIRS = "privateChats"
INVITE_LINKS = "groupInviteLinks"
INVITE_CODES = "inviteCodes"
SUSPENSIONS = "tempKickedUsers"
PRIVACY = "userPrivacySettings"
NOTIFICATIONS = "notifications"


def chat_path(chat_id: str) -> str:
	return f"{CHATS}/{chat_id}"


def messages_path(chat_id: str) -> str:
	return f"{MESSAGES}/{chat_id}"


def message_path(chat_id: str, message_id: str) -> str:
	return f"{MESSAGES}/{chat_id}/{message_id}"


def membership_path(user_id: str, chat_id: str) -> str:
	return f"{USER_CHATS}/{user_id}/{chat_id}"


def pair_key(a: str, b: str) -> str:
	first, second = sorted((a, b))
	return f"{first}:{second}"


def suspension_id(chat_id: str, user_id: str) -> str:
	return f"{chat_id}:{user_id}"


def sort_messages(messages: List[models.Message]) -> List[models.Message]:
	return sorted(messages, key=lambda m: (m.created_at, m.id))


def messages_from_tree(chat_id: str, tree: Any) -> List[models.Message]:
	if not isinstance(tree, dict):
		return []
	items = [
		models.Message.from_record(message_id, record)
		for message_id, record in tree.items()
		if isinstance(record, dict)
	]
	return sort_messages(items)


class MessagingRepository:
	def __init__(self, store: ContentStore | None = None, *, tombstone: str | None = None) -> None:
		self.store = store or get_store()
		self.tombstone = tombstone or settings.deleted_message_text

	def new_id(self) -> str:
		return self.store.push_id()

	# chats

	async def get_chat(self, chat_id: str) -> Optional[models.Chat]:
		record = await self.store.get(chat_path(chat_id))
		if not isinstance(record, dict):
			return None
		return models.Chat.from_record(chat_id, record)

	async def insert_chat(self, chat: models.Chat) -> models.Chat:
		await self.store.set(chat_path(chat.id), chat.to_record())
		return chat

	async def create_chat_if_absent(self, chat: models.Chat) -> Tuple[models.Chat, bool]:
		"""Write ``chat`` unless its id is already taken.

		Returns the stored chat and whether this call created it.
		"""
		created = {"value": False}

		def _create(current: Any) -> Any:
			created["value"] = not isinstance(current, dict)
			return chat.to_record() if created["value"] else current

		record = await self.store.transact(chat_path(chat.id), _create)
		return models.Chat.from_record(chat.id, record), created["value"]

	async def update_chat(self, chat_id: str, mutate: Callable[[models.Chat], None]) -> models.Chat:
		"""Atomically apply ``mutate`` to the stored chat and return the new state.

		``mutate`` runs against the freshest snapshot and may raise
		``MessagingError`` to abort without writing.
		"""
		holder: Dict[str, models.Chat] = {}

		def _apply(record: Any) -> Any:
			if not isinstance(record, dict):
				raise MessagingError(ReasonCode.NOT_FOUND, message="chat_not_found")
			chat = models.Chat.from_record(chat_id, record)
			mutate(chat)
			holder["chat"] = chat
			return chat.to_record()

		await self.store.transact(chat_path(chat_id), _apply)
		return holder["chat"]

	async def claim_private_pair(self, a: str, b: str, candidate_id: str) -> str:
		"""Return the chat id owning the pair, claiming ``candidate_id`` if unowned."""

		def _claim(current: Any) -> Any:
			return current if current else candidate_id

		owner = await self.store.transact(f"{PRIVATE_PAIRS}/{pair_key(a, b)}", _claim)
		return str(owner)

	# membership records

	async def get_membership(self, user_id: str, chat_id: str) -> Optional[models.MembershipRecord]:
		record = await self.store.get(membership_path(user_id, chat_id))
		if not isinstance(record, dict):
			return None
		return models.MembershipRecord.from_record(record)

	async def put_membership(self, user_id: str, record: models.MembershipRecord) -> None:
		await self.store.set(membership_path(user_id, record.chat_id), record.to_record())

	async def remove_membership(self, user_id: str, chat_id: str) -> None:
		await self.store.remove(membership_path(user_id, chat_id))

	async def touch_last_read(self, user_id: str, chat_id: str, now: int) -> None:
		def _touch(record: Any) -> Any:
			if isinstance(record, dict):
				current = models.MembershipRecord.from_record(record)
				current.last_read_at = now
			else:
				current = models.MembershipRecord(chat_id=chat_id, joined_at=now, last_read_at=now)
			return current.to_record()

		await self.store.transact(membership_path(user_id, chat_id), _touch)

	async def list_user_chat_ids(self, user_id: str) -> List[str]:
		tree = await self.store.get(f"{USER_CHATS}/{user_id}")
		if not isinstance(tree, dict):
			return []
		return list(tree.keys())

	async def list_memberships(self, chat: models.Chat) -> Dict[str, models.MembershipRecord]:
		result: Dict[str, models.MembershipRecord] = {}
		for user_id in chat.participants:
			record = await self.get_membership(user_id, chat.id)
			if record is not None:
				result[user_id] = record
		return result

	# messages

	async def insert_message(self, message: models.Message) -> models.Message:
		await self.store.set(message_path(message.chat_id, message.id), message.to_record(self.tombstone))
		return message

	async def get_message(self, chat_id: str, message_id: str) -> Optional[models.Message]:
		record = await self.store.get(message_path(chat_id, message_id))
		if not isinstance(record, dict):
			return None
		return models.Message.from_record(message_id, record)

	async def update_message(
		self,
		chat_id: str,
		message_id: str,
		mutate: Callable[[models.Message], None],
	) -> models.Message:
		holder: Dict[str, models.Message] = {}

		def _apply(record: Any) -> Any:
			if not isinstance(record, dict):
				raise MessagingError(ReasonCode.NOT_FOUND, message="message_not_found")
			message = models.Message.from_record(message_id, record)
			mutate(message)
			holder["message"] = message
			return message.to_record(self.tombstone)

		await self.store.transact(message_path(chat_id, message_id), _apply)
		return holder["message"]

	async def list_messages(self, chat_id: str) -> List[models.Message]:
		return messages_from_tree(chat_id, await self.store.get(messages_path(chat_id)))

	# invite links

	async def reserve_invite_code(self, code: str, link_id: str) -> bool:
		def _reserve(current: Any) -> Any:
			return current if current else link_id

		owner = await self.store.transact(f"{INVITE_CODES}/{code}", _reserve)
		return owner == link_id

	async def release_invite_code(self, code: str, link_id: str) -> None:
		def _release(current: Any) -> Any:
			return None if current == link_id else current

		await self.store.transact(f"{INVITE_CODES}/{code}", _release)

	async def find_invite_id(self, code: str) -> Optional[str]:
		value = await self.store.get(f"{INVITE_CODES}/{code}")
		return str(value) if value else None

	async def insert_invite(self, link: models.InviteLink) -> models.InviteLink:
		await self.store.set(f"{INVITE_LINKS}/{link.id}", link.to_record())
		return link

	async def get_invite(self, link_id: str) -> Optional[models.InviteLink]:
		record = await self.store.get(f"{INVITE_LINKS}/{link_id}")
		if not isinstance(record, dict):
			return None
		return models.InviteLink.from_record(link_id, record)

	async def update_invite(self, link_id: str, mutate: Callable[[models.InviteLink], None]) -> models.InviteLink:
		holder: Dict[str, models.InviteLink] = {}

		def _apply(record: Any) -> Any:
			if not isinstance(record, dict):
				raise MessagingError(ReasonCode.NOT_FOUND, message="invite_not_found")
			link = models.InviteLink.from_record(link_id, record)
			mutate(link)
			holder["link"] = link
			return link.to_record()

		await self.store.transact(f"{INVITE_LINKS}/{link_id}", _apply)
		return holder["link"]

	async def list_invites(self, chat_id: str) -> List[models.InviteLink]:
		tree = await self.store.get(INVITE_LINKS)
		if not isinstance(tree, dict):
			return []
		links = [
			models.InviteLink.from_record(link_id, record)
			for link_id, record in tree.items()
			if isinstance(record, dict) and record.get("chatId") == chat_id
		]
		return sorted(links, key=lambda link: (link.created_at, link.id))

	# temporary suspensions

	async def put_suspension(self, suspension: models.TemporarySuspension) -> None:
		await self.store.set(f"{SUSPENSIONS}/{suspension.id}", suspension.to_record())

	async def get_suspension(self, chat_id: str, user_id: str) -> Optional[models.TemporarySuspension]:
		key = suspension_id(chat_id, user_id)
		record = await self.store.get(f"{SUSPENSIONS}/{key}")
		if not isinstance(record, dict):
			return None
		return models.TemporarySuspension.from_record(key, record)

	async def list_suspensions(self) -> List[models.TemporarySuspension]:
		tree = await self.store.get(SUSPENSIONS)
		if not isinstance(tree, dict):
			return []
		return [
			models.TemporarySuspension.from_record(key, record)
			for key, record in tree.items()
			if isinstance(record, dict)
		]

	async def claim_suspension(self, suspension: models.TemporarySuspension) -> bool:
		"""Delete the stored suspension only if it is still exactly ``suspension``.

		A newer suspension written under the same key is left untouched and the
		claim fails.
		"""
		expected = suspension.to_record()
		claimed = {"value": False}

		def _claim(current: Any) -> Any:
			claimed["value"] = current == expected
			return None if claimed["value"] else current

		await self.store.transact(f"{SUSPENSIONS}/{suspension.id}", _claim)
		return claimed["value"]

	async def reinstate_suspension(self, suspension: models.TemporarySuspension) -> None:
		"""Write ``suspension`` back unless another record took its key meanwhile."""

		def _reinstate(current: Any) -> Any:
			return current if current else suspension.to_record()

		await self.store.transact(f"{SUSPENSIONS}/{suspension.id}", _reinstate)

	# privacy

	async def get_privacy(self, user_id: str) -> models.PrivacySetting:
		return models.PrivacySetting.from_record(user_id, await self.store.get(f"{PRIVACY}/{user_id}"))

	async def put_privacy(self, setting: models.PrivacySetting) -> None:
		await self.store.set(f"{PRIVACY}/{setting.user_id}", setting.to_record())

	# notifications

	async def put_notification(self, notification: models.MessageNotification, *, created_at: int) -> str:
		notification_id = self.new_id()
		record = dict(notification.to_dict(), createdAt=created_at, isRead=False)
		await self.store.set(f"{NOTIFICATIONS}/{notification.recipient_id}/{notification_id}", record)
		return notification_id
