"""Domain models for chats, messages, invites and suspensions.

Records are persisted in the content store as camelCase JSON objects; each
model owns its ``to_record`` / ``from_record`` mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

SYSTEM_SENDER = "system"

CHAT_KINDS = ("private", "group")
MESSAGE_KINDS = ("text", "image", "video", "file", "post_share")

POLICY_KICK = "kick"
POLICY_TEMP_KICK = "temp_kick"


@dataclass(frozen=True, slots=True)
class LiveContent:
	text: str


@dataclass(frozen=True, slots=True)
class DeletedContent:
	"""Marker for a soft-deleted message; the original text is gone."""


MessageContent = Union[LiveContent, DeletedContent]


@dataclass(frozen=True, slots=True)
class ViolationPolicy:
	mode: str = POLICY_KICK
	duration_hours: Optional[int] = None

	@classmethod
	def permanent(cls) -> "ViolationPolicy":
		return cls(mode=POLICY_KICK)

	@classmethod
	def temporary(cls, duration_hours: int) -> "ViolationPolicy":
		return cls(mode=POLICY_TEMP_KICK, duration_hours=int(duration_hours))

	def is_temporary(self) -> bool:
		return self.mode == POLICY_TEMP_KICK


@dataclass(slots=True)
class Chat:
	id: str
	kind: str
	participants: List[str]
	created_at: int
	last_message_at: int
	admin_ids: List[str] = field(default_factory=list)
	banned_words: List[str] = field(default_factory=list)
	violation_policy: ViolationPolicy = field(default_factory=ViolationPolicy.permanent)
	post_sharing_enabled: bool = True
	invite_code: Optional[str] = None
	name: Optional[str] = None
	description: Optional[str] = None

	def is_group(self) -> bool:
		return self.kind == "group"

	def is_private(self) -> bool:
		return self.kind == "private"

	def has_participant(self, user_id: str) -> bool:
		return user_id in self.participants

	def is_admin(self, user_id: str) -> bool:
		return user_id in self.admin_ids

	def lowest_admin(self) -> Optional[str]:
		return min(self.admin_ids) if self.admin_ids else None

	def others(self, user_id: str) -> List[str]:
		return [pid for pid in self.participants if pid != user_id]

	def to_record(self) -> Dict[str, Any]:
		record: Dict[str, Any] = {
			"type": self.kind,
			"participants": list(self.participants),
			"createdAt": self.created_at,
			"lastMessageAt": self.last_message_at,
		}
		if self.is_group():
			record.update(
				{
					"adminIds": list(self.admin_ids),
					"bannedWords": list(self.banned_words),
					"kickBehavior": self.violation_policy.mode,
					"postsDisabled": not self.post_sharing_enabled,
					"name": self.name,
				}
			)
			if self.violation_policy.duration_hours is not None:
				record["tempKickDuration"] = self.violation_policy.duration_hours
		elif self.name:
			record["name"] = self.name
		if self.description:
			record["description"] = self.description
		if self.invite_code:
			record["inviteLink"] = self.invite_code
		return record

	@classmethod
	def from_record(cls, chat_id: str, record: Mapping[str, Any]) -> "Chat":
		mode = record.get("kickBehavior") or POLICY_KICK
		duration = record.get("tempKickDuration")
		return cls(
			id=chat_id,
			kind=str(record.get("type", "private")),
			participants=[str(pid) for pid in record.get("participants") or []],
			created_at=int(record.get("createdAt") or 0),
			last_message_at=int(record.get("lastMessageAt") or 0),
			admin_ids=[str(pid) for pid in record.get("adminIds") or []],
			banned_words=[str(word) for word in record.get("bannedWords") or []],
			violation_policy=ViolationPolicy(
				mode=mode,
				duration_hours=int(duration) if duration is not None else None,
			),
			post_sharing_enabled=not bool(record.get("postsDisabled", False)),
			invite_code=record.get("inviteLink"),
			name=record.get("name"),
			description=record.get("description"),
		)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"kind": self.kind,
			"participants": list(self.participants),
			"created_at": self.created_at,
			"last_message_at": self.last_message_at,
			"admin_ids": list(self.admin_ids),
			"banned_words": list(self.banned_words),
			"violation_policy": {
				"mode": self.violation_policy.mode,
				"duration_hours": self.violation_policy.duration_hours,
			},
			"post_sharing_enabled": self.post_sharing_enabled,
			"invite_code": self.invite_code,
			"name": self.name,
			"description": self.description,
		}


@dataclass(slots=True)
class Message:
	id: str
	chat_id: str
	sender_id: str
	content: MessageContent
	kind: str
	created_at: int
	updated_at: Optional[int] = None
	edited: bool = False
	reply_to: Optional[str] = None
	media_url: Optional[str] = None
	media_type: Optional[str] = None
	duration: Optional[float] = None
	shared_post_id: Optional[str] = None

	@property
	def deleted(self) -> bool:
		return isinstance(self.content, DeletedContent)

	def is_system(self) -> bool:
		return self.sender_id == SYSTEM_SENDER

	def text(self, tombstone: str) -> str:
		if isinstance(self.content, LiveContent):
			return self.content.text
		return tombstone

	def to_record(self, tombstone: str) -> Dict[str, Any]:
		record: Dict[str, Any] = {
			"chatId": self.chat_id,
			"senderId": self.sender_id,
			"content": self.text(tombstone),
			"type": self.kind,
			"createdAt": self.created_at,
			"isEdited": self.edited,
			"isDeleted": self.deleted,
			"isForwarded": False,
		}
		optional = {
			"updatedAt": self.updated_at,
			"replyTo": self.reply_to,
			"mediaUrl": self.media_url,
			"mediaType": self.media_type,
			"duration": self.duration,
			"sharedPostId": self.shared_post_id,
		}
		record.update({key: value for key, value in optional.items() if value is not None})
		return record

	@classmethod
	def from_record(cls, message_id: str, record: Mapping[str, Any]) -> "Message":
		content: MessageContent
		if record.get("isDeleted"):
			content = DeletedContent()
		else:
			content = LiveContent(str(record.get("content", "")))
		return cls(
			id=message_id,
			chat_id=str(record.get("chatId", "")),
			sender_id=str(record.get("senderId", "")),
			content=content,
			kind=str(record.get("type", "text")),
			created_at=int(record.get("createdAt") or 0),
			updated_at=record.get("updatedAt"),
			edited=bool(record.get("isEdited", False)),
			reply_to=record.get("replyTo"),
			media_url=record.get("mediaUrl"),
			media_type=record.get("mediaType"),
			duration=record.get("duration"),
			shared_post_id=record.get("sharedPostId"),
		)

	def to_dict(self, tombstone: str) -> Dict[str, Any]:
		return {
			"id": self.id,
			"chat_id": self.chat_id,
			"sender_id": self.sender_id,
			"content": self.text(tombstone),
			"kind": self.kind,
			"created_at": self.created_at,
			"updated_at": self.updated_at,
			"is_edited": self.edited,
			"is_deleted": self.deleted,
			"reply_to": self.reply_to,
			"media_url": self.media_url,
			"media_type": self.media_type,
			"duration": self.duration,
			"shared_post_id": self.shared_post_id,
		}


@dataclass(slots=True)
class MembershipRecord:
	chat_id: str
	joined_at: int
	last_read_at: int

	def to_record(self) -> Dict[str, Any]:
		return {"chatId": self.chat_id, "joinedAt": self.joined_at, "lastRead": self.last_read_at}

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "MembershipRecord":
		return cls(
			chat_id=str(record.get("chatId", "")),
			joined_at=int(record.get("joinedAt") or 0),
			last_read_at=int(record.get("lastRead") or 0),
		)


@dataclass(slots=True)
class InviteLink:
	id: str
	chat_id: str
	code: str
	created_by: str
	created_at: int
	expires_at: Optional[int] = None
	max_uses: Optional[int] = None
	current_uses: int = 0
	active: bool = True

	def is_expired(self, now: int) -> bool:
		return self.expires_at is not None and now > self.expires_at

	def is_exhausted(self) -> bool:
		return self.max_uses is not None and self.current_uses >= self.max_uses

	def to_record(self) -> Dict[str, Any]:
		record: Dict[str, Any] = {
			"chatId": self.chat_id,
			"code": self.code,
			"createdBy": self.created_by,
			"createdAt": self.created_at,
			"currentUses": self.current_uses,
			"isActive": self.active,
		}
		if self.expires_at is not None:
			record["expiresAt"] = self.expires_at
		if self.max_uses is not None:
			record["maxUses"] = self.max_uses
		return record

	@classmethod
	def from_record(cls, link_id: str, record: Mapping[str, Any]) -> "InviteLink":
		expires_at = record.get("expiresAt")
		max_uses = record.get("maxUses")
		return cls(
			id=link_id,
			chat_id=str(record.get("chatId", "")),
			code=str(record.get("code", "")),
			created_by=str(record.get("createdBy", "")),
			created_at=int(record.get("createdAt") or 0),
			expires_at=int(expires_at) if expires_at is not None else None,
			max_uses=int(max_uses) if max_uses is not None else None,
			current_uses=int(record.get("currentUses") or 0),
			active=bool(record.get("isActive", True)),
		)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"chat_id": self.chat_id,
			"code": self.code,
			"created_by": self.created_by,
			"created_at": self.created_at,
			"expires_at": self.expires_at,
			"max_uses": self.max_uses,
			"current_uses": self.current_uses,
			"active": self.active,
		}


@dataclass(slots=True)
class TemporarySuspension:
	id: str
	user_id: str
	chat_id: str
	kicked_at: int
	kicked_until: int
	kicked_by: str
	reason: str

	def is_due(self, now: int) -> bool:
		return self.kicked_until <= now

	def to_record(self) -> Dict[str, Any]:
		return {
			"userId": self.user_id,
			"chatId": self.chat_id,
			"kickedAt": self.kicked_at,
			"kickedUntil": self.kicked_until,
			"kickedBy": self.kicked_by,
			"reason": self.reason,
		}

	@classmethod
	def from_record(cls, suspension_id: str, record: Mapping[str, Any]) -> "TemporarySuspension":
		return cls(
			id=suspension_id,
			user_id=str(record.get("userId", "")),
			chat_id=str(record.get("chatId", "")),
			kicked_at=int(record.get("kickedAt") or 0),
			kicked_until=int(record.get("kickedUntil") or 0),
			kicked_by=str(record.get("kickedBy", "")),
			reason=str(record.get("reason", "")),
		)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"user_id": self.user_id,
			"chat_id": self.chat_id,
			"kicked_at": self.kicked_at,
			"kicked_until": self.kicked_until,
			"kicked_by": self.kicked_by,
			"reason": self.reason,
		}


@dataclass(slots=True)
class PrivacySetting:
	user_id: str
	is_anonymous: bool = False
	hide_from_group_members: bool = False
	hide_from_following_lists: bool = False
	updated_at: int = 0

	def to_record(self) -> Dict[str, Any]:
		return {
			"userId": self.user_id,
			"isAnonymous": self.is_anonymous,
			"hideFromGroupMembers": self.hide_from_group_members,
			"hideFromFollowingLists": self.hide_from_following_lists,
			"updatedAt": self.updated_at,
		}

	@classmethod
	def from_record(cls, user_id: str, record: Mapping[str, Any] | None) -> "PrivacySetting":
		record = record or {}
		return cls(
			user_id=user_id,
			is_anonymous=bool(record.get("isAnonymous", False)),
			hide_from_group_members=bool(record.get("hideFromGroupMembers", False)),
			hide_from_following_lists=bool(record.get("hideFromFollowingLists", False)),
			updated_at=int(record.get("updatedAt") or 0),
		)


@dataclass(frozen=True, slots=True)
class MessageNotification:
	recipient_id: str
	from_user_id: str
	chat_id: str
	message_id: str
	content_preview: str
	kind: str = "message"

	def to_dict(self) -> Dict[str, Any]:
		return {
			"recipientId": self.recipient_id,
			"kind": self.kind,
			"fromUserId": self.from_user_id,
			"chatId": self.chat_id,
			"messageId": self.message_id,
			"contentPreview": self.content_preview,
		}
