"""Membership manager: chat creation, participants and admin rights."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from groupchat.domain.messaging import models, policy, schemas, sockets
from groupchat.domain.messaging.errors import MessagingError, ReasonCode
from groupchat.domain.messaging.repo import MessagingRepository
from groupchat.domain.messaging.results import returns_result
from groupchat.infra.clock import Clock, system_clock
from groupchat.obs import metrics as obs_metrics
from groupchat.settings import settings

if TYPE_CHECKING:
	from groupchat.domain.messaging.pipeline import MessagePipeline

Check = Callable[[models.Chat], None]

JOINED_TEXT = "User joined the group"
REMOVED_TEXT = "User was removed from the group"
LEFT_TEXT = "User left the group"


def _strip_admin(chat: models.Chat, user_id: str) -> None:
	"""Drop ``user_id`` from the admins, promoting the oldest member if none remain."""
	if user_id not in chat.admin_ids:
		return
	chat.admin_ids = [aid for aid in chat.admin_ids if aid != user_id]
	if not chat.admin_ids and chat.participants:
		chat.admin_ids = [chat.participants[0]]


def _group_policy(payload: Optional[schemas.ViolationPolicyPayload]) -> models.ViolationPolicy:
	if payload is None:
		return models.ViolationPolicy.permanent()
	return policy.ensure_violation_policy(
		payload.mode,
		payload.duration_hours,
		default_hours=settings.default_temp_kick_hours,
	)


class MembershipService:
	def __init__(
		self,
		repo: MessagingRepository | None = None,
		*,
		pipeline: "MessagePipeline" | None = None,
		clock: Clock | None = None,
	) -> None:
		self._repo = repo or MessagingRepository()
		self._clock = clock or system_clock
		if pipeline is None:
			from groupchat.domain.messaging.pipeline import MessagePipeline

			pipeline = MessagePipeline(self._repo, clock=self._clock, membership=self)
		self._pipeline = pipeline

	@property
	def repo(self) -> MessagingRepository:
		return self._repo

	@property
	def pipeline(self) -> "MessagePipeline":
		return self._pipeline

	# chat lifecycle

	@returns_result
	async def create_chat(
		self,
		kind: str,
		participant_ids: List[str],
		group: Optional[schemas.GroupMeta] = None,
	) -> dict:
		policy.ensure_kind(kind)
		if kind == "private":
			chat = await self._create_private(policy.ensure_private_pair(participant_ids))
		else:
			chat = await self._create_group(
				policy.ensure_group_members(participant_ids, capacity=settings.max_group_participants),
				group or schemas.GroupMeta(),
			)
		return chat.to_dict()

	@returns_result
	async def start_private_chat(self, user_id: str, other_id: str) -> dict:
		chat = await self._create_private(policy.ensure_private_pair([user_id, other_id]))
		return chat.to_dict()

	async def _create_private(self, pair: List[str]) -> models.Chat:
		candidate = self._repo.new_id()
		chat_id = await self._repo.claim_private_pair(pair[0], pair[1], candidate)
		existing = await self._repo.get_chat(chat_id)
		if existing is not None:
			return existing
		now = self._clock.now()
		chat = models.Chat(
			id=chat_id,
			kind="private",
			participants=list(pair),
			created_at=now,
			last_message_at=now,
		)
		# another caller holding the same pair claim may write the chat first
		chat, created = await self._repo.create_chat_if_absent(chat)
		if not created:
			return chat
		await self._write_memberships(chat, pair, now)
		obs_metrics.inc_chat_created("private")
		for user_id in pair:
			await sockets.emit_chat_created(user_id, chat.to_dict())
		return chat

	async def _create_group(self, members: List[str], meta: schemas.GroupMeta) -> models.Chat:
		violation_policy = _group_policy(meta.violation_policy)
		banned_words = policy.normalise_banned_words(meta.banned_words)
		now = self._clock.now()
		chat = models.Chat(
			id=self._repo.new_id(),
			kind="group",
			participants=list(members),
			created_at=now,
			last_message_at=now,
			admin_ids=[members[0]],
			banned_words=banned_words,
			violation_policy=violation_policy,
			post_sharing_enabled=meta.post_sharing_enabled,
			name=(meta.name or "").strip() or settings.default_group_name,
			description=meta.description,
		)
		await self._repo.insert_chat(chat)
		await self._write_memberships(chat, members, now)
		obs_metrics.inc_chat_created("group")
		for user_id in members:
			await sockets.emit_chat_created(user_id, chat.to_dict())
		return chat

	async def _write_memberships(self, chat: models.Chat, user_ids: List[str], now: int) -> None:
		for user_id in user_ids:
			record = models.MembershipRecord(chat_id=chat.id, joined_at=now, last_read_at=now)
			await self._repo.put_membership(user_id, record)

	# participants

	@returns_result
	async def add_participant(self, chat_id: str, user_id: str, acting_admin_id: str) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		user_id = policy.ensure_user_id(user_id)
		acting_admin_id = policy.ensure_user_id(acting_admin_id, field="acting_admin_id")

		def _check(chat: models.Chat) -> None:
			policy.ensure_group(chat)
			policy.ensure_admin(chat, acting_admin_id)

		chat = await self._require_chat(chat_id)
		_check(chat)
		policy.ensure_not_participant(chat, user_id)
		chat, _ = await self.join(chat_id, user_id, check=_check)
		obs_metrics.inc_membership("added")
		await self.post_system(chat_id, JOINED_TEXT)
		return chat.to_dict()

	@returns_result
	async def remove_participant(self, chat_id: str, user_id: str, acting_admin_id: str) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		user_id = policy.ensure_user_id(user_id)
		acting_admin_id = policy.ensure_user_id(acting_admin_id, field="acting_admin_id")

		def _check(chat: models.Chat) -> None:
			policy.ensure_group(chat)
			policy.ensure_admin(chat, acting_admin_id)
			if user_id == acting_admin_id:
				policy.ensure_can_leave(chat, user_id)

		chat = await self._require_chat(chat_id)
		_check(chat)
		policy.ensure_participant(chat, user_id)
		chat = await self.drop(chat_id, user_id, check=_check)
		obs_metrics.inc_membership("removed")
		await self.post_system(chat_id, REMOVED_TEXT)
		return chat.to_dict()

	@returns_result
	async def leave(self, chat_id: str, user_id: str) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		user_id = policy.ensure_user_id(user_id)

		def _check(chat: models.Chat) -> None:
			policy.ensure_group(chat)
			policy.ensure_can_leave(chat, user_id)

		chat = await self._require_chat(chat_id)
		_check(chat)
		policy.ensure_participant(chat, user_id)
		chat = await self.drop(chat_id, user_id, check=_check)
		obs_metrics.inc_membership("left")
		await self.post_system(chat_id, LEFT_TEXT)
		return chat.to_dict()

	async def join(
		self,
		chat_id: str,
		user_id: str,
		*,
		check: Optional[Check] = None,
		allow_present: bool = False,
	) -> Tuple[models.Chat, bool]:
		"""Add ``user_id`` to the participant list in one compare-and-swap.

		Returns the updated chat and whether the user was actually added. With
		``allow_present`` an existing participant is not an error.
		"""
		added = {"value": False}

		def _mutate(chat: models.Chat) -> None:
			added["value"] = False
			if check is not None:
				check(chat)
			if chat.has_participant(user_id):
				if allow_present:
					return
				raise MessagingError(ReasonCode.ALREADY_MEMBER)
			policy.ensure_capacity(chat, capacity=settings.max_group_participants)
			chat.participants.append(user_id)
			added["value"] = True

		chat = await self._repo.update_chat(chat_id, _mutate)
		if added["value"]:
			now = self._clock.now()
			await self._repo.put_membership(
				user_id,
				models.MembershipRecord(chat_id=chat_id, joined_at=now, last_read_at=now),
			)
			await sockets.emit_chat_event("chat:member_joined", chat_id, {"chat_id": chat_id, "user_id": user_id})
		return chat, added["value"]

	async def drop(
		self,
		chat_id: str,
		user_id: str,
		*,
		check: Optional[Check] = None,
		keep_membership: bool = False,
	) -> models.Chat:
		"""Remove ``user_id`` from the participants and admins in one compare-and-swap."""

		def _mutate(chat: models.Chat) -> None:
			if check is not None:
				check(chat)
			policy.ensure_participant(chat, user_id)
			chat.participants = chat.others(user_id)
			_strip_admin(chat, user_id)

		chat = await self._repo.update_chat(chat_id, _mutate)
		if not keep_membership:
			await self._repo.remove_membership(user_id, chat_id)
		await sockets.emit_chat_event("chat:member_left", chat_id, {"chat_id": chat_id, "user_id": user_id})
		return chat

	# group settings and admins

	@returns_result
	async def update_group_settings(
		self,
		chat_id: str,
		admin_id: str,
		payload: schemas.GroupSettingsRequest,
	) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		admin_id = policy.ensure_user_id(admin_id, field="admin_id")
		banned_words = None if payload.banned_words is None else policy.normalise_banned_words(payload.banned_words)
		violation_policy = None if payload.violation_policy is None else _group_policy(payload.violation_policy)

		def _mutate(chat: models.Chat) -> None:
			policy.ensure_group(chat)
			policy.ensure_admin(chat, admin_id)
			if payload.name is not None:
				chat.name = payload.name.strip() or settings.default_group_name
			if payload.description is not None:
				chat.description = payload.description
			if banned_words is not None:
				chat.banned_words = list(banned_words)
			if violation_policy is not None:
				chat.violation_policy = violation_policy
			if payload.post_sharing_enabled is not None:
				chat.post_sharing_enabled = payload.post_sharing_enabled

		chat = await self._repo.update_chat(chat_id, _mutate)
		await sockets.emit_chat_event("chat:updated", chat_id, chat.to_dict())
		return chat.to_dict()

	@returns_result
	async def promote_admin(self, chat_id: str, user_id: str, acting_admin_id: str) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		user_id = policy.ensure_user_id(user_id)
		acting_admin_id = policy.ensure_user_id(acting_admin_id, field="acting_admin_id")

		def _mutate(chat: models.Chat) -> None:
			policy.ensure_group(chat)
			policy.ensure_admin(chat, acting_admin_id)
			policy.ensure_participant(chat, user_id)
			if user_id not in chat.admin_ids:
				chat.admin_ids.append(user_id)

		chat = await self._repo.update_chat(chat_id, _mutate)
		obs_metrics.inc_membership("promoted")
		return chat.to_dict()

	@returns_result
	async def demote_admin(self, chat_id: str, user_id: str, acting_admin_id: str) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		user_id = policy.ensure_user_id(user_id)
		acting_admin_id = policy.ensure_user_id(acting_admin_id, field="acting_admin_id")

		def _mutate(chat: models.Chat) -> None:
			policy.ensure_group(chat)
			policy.ensure_admin(chat, acting_admin_id)
			policy.ensure_can_demote(chat, user_id)
			chat.admin_ids = [aid for aid in chat.admin_ids if aid != user_id]

		chat = await self._repo.update_chat(chat_id, _mutate)
		obs_metrics.inc_membership("demoted")
		return chat.to_dict()

	# reads

	@returns_result
	async def get_chat(self, chat_id: str, requester_id: str) -> dict:
		chat = await self._require_chat(policy.ensure_id(chat_id, field="chat_id"))
		policy.ensure_participant(chat, requester_id)
		return chat.to_dict()

	@returns_result
	async def list_user_chats(self, user_id: str) -> List[dict]:
		user_id = policy.ensure_user_id(user_id)
		chats: List[models.Chat] = []
		for chat_id in await self._repo.list_user_chat_ids(user_id):
			chat = await self._repo.get_chat(chat_id)
			if chat is not None:
				chats.append(chat)
		chats.sort(key=lambda chat: chat.last_message_at, reverse=True)
		return [chat.to_dict() for chat in chats]

	@returns_result
	async def list_members(self, chat_id: str, requester_id: str) -> List[dict]:
		"""Participants visible to ``requester_id``; a hidden member is listed only to themselves."""
		chat = await self._require_chat(policy.ensure_id(chat_id, field="chat_id"))
		policy.ensure_participant(chat, requester_id)
		memberships = await self._repo.list_memberships(chat)
		members: List[dict] = []
		for user_id in chat.participants:
			if user_id != requester_id:
				privacy = await self._repo.get_privacy(user_id)
				if privacy.hide_from_group_members:
					continue
			record = memberships.get(user_id)
			members.append(
				{
					"user_id": user_id,
					"is_admin": chat.is_admin(user_id),
					"joined_at": record.joined_at if record else None,
					"last_read_at": record.last_read_at if record else None,
				}
			)
		return members

	# helpers

	async def post_system(self, chat_id: str, text: str) -> models.Message:
		return await self._pipeline.post_system(chat_id, text)

	async def _require_chat(self, chat_id: str) -> models.Chat:
		return policy.ensure_chat(await self._repo.get_chat(chat_id))


class PrivacyService:
	def __init__(self, repo: MessagingRepository | None = None, *, clock: Clock | None = None) -> None:
		self._repo = repo or MessagingRepository()
		self._clock = clock or system_clock

	@returns_result
	async def get_privacy(self, user_id: str) -> Dict[str, object]:
		setting = await self._repo.get_privacy(policy.ensure_user_id(user_id))
		return setting.to_record()

	@returns_result
	async def update_privacy(self, user_id: str, payload: schemas.PrivacyUpdateRequest) -> Dict[str, object]:
		user_id = policy.ensure_user_id(user_id)
		setting = await self._repo.get_privacy(user_id)
		if payload.is_anonymous is not None:
			setting.is_anonymous = payload.is_anonymous
		if payload.hide_from_group_members is not None:
			setting.hide_from_group_members = payload.hide_from_group_members
		if payload.hide_from_following_lists is not None:
			setting.hide_from_following_lists = payload.hide_from_following_lists
		setting.updated_at = self._clock.now()
		await self._repo.put_privacy(setting)
		return setting.to_record()
