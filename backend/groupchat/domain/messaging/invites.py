"""Invite link issuing, redemption and revocation."""

from __future__ import annotations

import logging
import secrets
from typing import List, Optional

from groupchat.domain.messaging import models, policy
from groupchat.domain.messaging.errors import MessagingError
from groupchat.domain.messaging.membership import MembershipService
from groupchat.domain.messaging.repo import MessagingRepository
from groupchat.domain.messaging.results import returns_result
from groupchat.infra.clock import Clock, system_clock
from groupchat.infra.store import StoreError
from groupchat.obs import metrics as obs_metrics
from groupchat.settings import settings

logger = logging.getLogger(__name__)

JOINED_VIA_INVITE_TEXT = "User joined the group via invite link"
_CODE_ATTEMPTS = 5


def generate_code() -> str:
	return secrets.token_urlsafe(settings.invite_code_bytes)


class InviteLinkService:
	def __init__(
		self,
		repo: MessagingRepository | None = None,
		*,
		membership: MembershipService | None = None,
		clock: Clock | None = None,
	) -> None:
		self._repo = repo or MessagingRepository()
		self._clock = clock or system_clock
		self._membership = membership or MembershipService(self._repo, clock=self._clock)

	@returns_result
	async def create_invite_link(
		self,
		chat_id: str,
		admin_id: str,
		*,
		expires_at: Optional[int] = None,
		max_uses: Optional[int] = None,
	) -> dict:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		admin_id = policy.ensure_user_id(admin_id, field="admin_id")
		now = self._clock.now()
		policy.ensure_invite_limits(expires_at, max_uses, now=now)

		def _check(chat: models.Chat) -> None:
			policy.ensure_group(chat)
			policy.ensure_admin(chat, admin_id)

		_check(policy.ensure_chat(await self._repo.get_chat(chat_id)))
		link_id = self._repo.new_id()
		code = await self._reserve_code(link_id)
		link = models.InviteLink(
			id=link_id,
			chat_id=chat_id,
			code=code,
			created_by=admin_id,
			created_at=now,
			expires_at=expires_at,
			max_uses=max_uses,
		)

		def _stamp(chat: models.Chat) -> None:
			_check(chat)
			chat.invite_code = code

		# admin rights are re-checked here; the link is only stored once they hold
		try:
			await self._repo.update_chat(chat_id, _stamp)
		except MessagingError:
			await self._repo.release_invite_code(code, link_id)
			raise
		await self._repo.insert_invite(link)
		obs_metrics.inc_invite("created")
		return link.to_dict()

	async def _reserve_code(self, link_id: str) -> str:
		for _ in range(_CODE_ATTEMPTS):
			code = generate_code()
			if await self._repo.reserve_invite_code(code, link_id):
				return code
			logger.warning("invite_code_collision", extra={"link_id": link_id})
		raise StoreError("invite_code_unavailable")

	@returns_result
	async def redeem(self, code: str, user_id: str) -> dict:
		code = policy.ensure_id(code, field="code")
		user_id = policy.ensure_user_id(user_id)
		now = self._clock.now()

		link_id = await self._repo.find_invite_id(code)
		link = policy.ensure_link(await self._repo.get_invite(link_id) if link_id else None)
		chat = policy.ensure_chat(await self._repo.get_chat(link.chat_id))
		policy.ensure_group(chat)
		policy.ensure_not_participant(chat, user_id)
		policy.ensure_link_usable(link, now=now)
		policy.ensure_not_suspended(await self._repo.get_suspension(chat.id, user_id), now=now)

		def _claim(current: models.InviteLink) -> None:
			policy.ensure_link_usable(current, now=now)
			current.current_uses += 1

		link = await self._repo.update_invite(link.id, _claim)
		try:
			chat, _ = await self._membership.join(chat.id, user_id, check=policy.ensure_group)
		except MessagingError:
			await self._release(link.id)
			raise
		obs_metrics.inc_invite("redeemed")
		obs_metrics.inc_membership("joined_invite")
		await self._membership.post_system(chat.id, JOINED_VIA_INVITE_TEXT)
		return {"chat": chat.to_dict(), "link": link.to_dict()}

	async def _release(self, link_id: str) -> None:
		def _undo(current: models.InviteLink) -> None:
			current.current_uses = max(0, current.current_uses - 1)

		await self._repo.update_invite(link_id, _undo)
		obs_metrics.inc_invite("released")

	@returns_result
	async def revoke(self, link_id: str, admin_id: str) -> dict:
		link_id = policy.ensure_id(link_id, field="link_id")
		admin_id = policy.ensure_user_id(admin_id, field="admin_id")
		link = policy.ensure_link(await self._repo.get_invite(link_id))
		chat = policy.ensure_chat(await self._repo.get_chat(link.chat_id))
		policy.ensure_admin(chat, admin_id)

		def _deactivate(current: models.InviteLink) -> None:
			current.active = False

		link = await self._repo.update_invite(link_id, _deactivate)

		def _clear(current: models.Chat) -> None:
			if current.invite_code == link.code:
				current.invite_code = None

		await self._repo.update_chat(chat.id, _clear)
		obs_metrics.inc_invite("revoked")
		return link.to_dict()

	@returns_result
	async def list_links(self, chat_id: str, admin_id: str) -> List[dict]:
		chat_id = policy.ensure_id(chat_id, field="chat_id")
		chat = policy.ensure_chat(await self._repo.get_chat(chat_id))
		policy.ensure_admin(chat, admin_id)
		return [link.to_dict() for link in await self._repo.list_invites(chat_id)]
