"""Policy helpers for chats, messages and invite links."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from groupchat.domain.messaging import models
from groupchat.domain.messaging.errors import MessagingError, ReasonCode


# path separators plus the ":" used in compound keys
_FORBIDDEN_KEY_CHARS = frozenset("/.#$[]:")


def _invalid(detail: str) -> MessagingError:
	return MessagingError(ReasonCode.INVALID_INPUT, message=detail)


def ensure_id(value: Optional[str], *, field: str = "id") -> str:
	text = (value or "").strip()
	if not text or any(ch in _FORBIDDEN_KEY_CHARS for ch in text):
		raise _invalid(f"invalid_{field}")
	return text


def ensure_user_id(value: Optional[str], *, field: str = "user_id") -> str:
	text = ensure_id(value, field=field)
	if text == models.SYSTEM_SENDER:
		raise _invalid(f"invalid_{field}")
	return text


def dedupe_ids(values: Iterable[str]) -> List[str]:
	seen: List[str] = []
	for value in values:
		if value not in seen:
			seen.append(value)
	return seen


def ensure_private_pair(participant_ids: Sequence[str]) -> List[str]:
	ids = [ensure_user_id(pid, field="participant_id") for pid in participant_ids]
	if len(ids) != 2 or ids[0] == ids[1]:
		raise _invalid("private_chat_requires_two_distinct_participants")
	return ids


def ensure_group_members(participant_ids: Sequence[str], *, capacity: int) -> List[str]:
	ids = dedupe_ids(ensure_user_id(pid, field="participant_id") for pid in participant_ids)
	if not ids:
		raise _invalid("group_requires_participants")
	if len(ids) > capacity:
		raise _invalid("group_capacity_exceeded")
	return ids


def ensure_kind(kind: str) -> str:
	if kind not in models.CHAT_KINDS:
		raise _invalid("invalid_chat_kind")
	return kind


def ensure_message_payload(
	kind: str,
	content: str,
	*,
	media_url: Optional[str],
	shared_post_id: Optional[str],
	max_chars: int,
) -> None:
	if kind not in models.MESSAGE_KINDS:
		raise _invalid("invalid_message_kind")
	if len(content) > max_chars:
		raise _invalid("content_too_long")
	if kind == "text" and not content.strip():
		raise _invalid("empty_message")
	if kind in ("image", "video", "file") and not media_url:
		raise _invalid("media_url_required")
	if kind == "post_share" and not shared_post_id:
		raise _invalid("shared_post_required")


def ensure_edit_content(content: str, *, max_chars: int) -> str:
	if not content or not content.strip():
		raise _invalid("empty_message")
	if len(content) > max_chars:
		raise _invalid("content_too_long")
	return content


def normalise_banned_words(words: Iterable[str]) -> List[str]:
	return dedupe_ids(word.strip().lower() for word in words if word and word.strip())


def ensure_violation_policy(mode: str, duration_hours: Optional[int], *, default_hours: int) -> models.ViolationPolicy:
	if mode == models.POLICY_KICK:
		return models.ViolationPolicy.permanent()
	if mode == models.POLICY_TEMP_KICK:
		hours = default_hours if duration_hours is None else int(duration_hours)
		if hours <= 0:
			raise _invalid("invalid_kick_duration")
		return models.ViolationPolicy.temporary(hours)
	raise _invalid("invalid_violation_policy")


def ensure_chat(chat: models.Chat | None) -> models.Chat:
	if chat is None:
		raise MessagingError(ReasonCode.NOT_FOUND, message="chat_not_found")
	return chat


def ensure_group(chat: models.Chat) -> models.Chat:
	if not chat.is_group():
		raise MessagingError(ReasonCode.NOT_A_GROUP)
	return chat


def ensure_admin(chat: models.Chat, user_id: str) -> None:
	if not chat.is_admin(user_id):
		raise MessagingError(ReasonCode.NOT_AUTHORIZED)


def ensure_participant(chat: models.Chat, user_id: str) -> None:
	if not chat.has_participant(user_id):
		raise MessagingError(ReasonCode.NOT_A_PARTICIPANT)


def ensure_not_participant(chat: models.Chat, user_id: str) -> None:
	if chat.has_participant(user_id):
		raise MessagingError(ReasonCode.ALREADY_MEMBER)


def ensure_capacity(chat: models.Chat, *, capacity: int) -> None:
	if len(chat.participants) >= capacity:
		raise _invalid("group_capacity_exceeded")


def ensure_can_leave(chat: models.Chat, user_id: str) -> None:
	"""The sole admin must hand over before leaving a group that still has members."""
	if chat.admin_ids == [user_id] and len(chat.participants) > 1:
		raise MessagingError(ReasonCode.ADMIN_MUST_TRANSFER)


def ensure_can_demote(chat: models.Chat, user_id: str) -> None:
	if not chat.is_admin(user_id):
		raise MessagingError(ReasonCode.NOT_AUTHORIZED, message="target_not_admin")
	if len(chat.admin_ids) <= 1:
		raise MessagingError(ReasonCode.ADMIN_MUST_TRANSFER)


def ensure_post_sharing(chat: models.Chat) -> None:
	if chat.is_group() and not chat.post_sharing_enabled:
		raise MessagingError(ReasonCode.POST_SHARING_DISABLED)


def ensure_message(message: models.Message | None) -> models.Message:
	if message is None:
		raise MessagingError(ReasonCode.NOT_FOUND, message="message_not_found")
	return message


def ensure_sender(message: models.Message, requester_id: str) -> None:
	if message.is_system() or message.sender_id != requester_id:
		raise MessagingError(ReasonCode.NOT_OWNER)


def ensure_not_deleted(message: models.Message) -> None:
	if message.deleted:
		raise MessagingError(ReasonCode.MESSAGE_DELETED)


def ensure_invite_limits(expires_at: Optional[int], max_uses: Optional[int], *, now: int) -> None:
	if max_uses is not None and max_uses < 1:
		raise _invalid("invalid_max_uses")
	if expires_at is not None and expires_at <= now:
		raise _invalid("expiry_in_past")


def ensure_link(link: models.InviteLink | None) -> models.InviteLink:
	if link is None:
		raise MessagingError(ReasonCode.NOT_FOUND, message="invite_not_found")
	return link


def ensure_link_usable(link: models.InviteLink, *, now: int) -> None:
	if not link.active:
		raise MessagingError(ReasonCode.INACTIVE)
	if link.is_expired(now):
		raise MessagingError(ReasonCode.EXPIRED)
	if link.is_exhausted():
		raise MessagingError(ReasonCode.EXHAUSTED)


def ensure_not_suspended(suspension: models.TemporarySuspension | None, *, now: int) -> None:
	if suspension is not None and not suspension.is_due(now):
		raise MessagingError(ReasonCode.NOT_AUTHORIZED, message="temporarily_suspended")
