"""Enforcement of a group's violation policy against a rejected sender."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from groupchat.domain.messaging import models
from groupchat.domain.messaging.errors import MessagingError
from groupchat.domain.messaging.repo import suspension_id
from groupchat.infra.clock import Clock, hours_to_ms, system_clock
from groupchat.obs import metrics as obs_metrics
from groupchat.settings import settings

if TYPE_CHECKING:
	from groupchat.domain.messaging.membership import MembershipService

logger = logging.getLogger(__name__)

REMOVED_TEXT = "User was removed from the group"
KICKED_TEXT = "User was kicked for using banned words"
SUSPENDED_TEXT = "User was temporarily kicked for {hours} hours for using banned words"


def violation_reason(matches: Sequence[str]) -> str:
	return f"Used banned word ({', '.join(matches)})"


class ViolationEnforcer:
	"""Removes an offender on behalf of the chat's lowest-id admin."""

	def __init__(self, membership: "MembershipService", *, clock: Clock | None = None) -> None:
		self._membership = membership
		self._clock = clock or system_clock

	async def enforce(self, chat: models.Chat, offender_id: str, matches: Sequence[str]) -> None:
		enforcer_id = chat.lowest_admin()
		if enforcer_id is None:
			logger.warning("violation_without_admin", extra={"chat_id": chat.id, "user_id": offender_id})
			return
		try:
			if chat.violation_policy.is_temporary():
				await self._suspend(chat, offender_id, enforcer_id, matches)
			else:
				await self._kick(chat, offender_id)
		except MessagingError as exc:
			# the offender may already be gone after a concurrent removal
			logger.info(
				"violation_enforcement_skipped",
				extra={"chat_id": chat.id, "user_id": offender_id, "reason": exc.code.value},
			)

	async def _kick(self, chat: models.Chat, offender_id: str) -> None:
		await self._membership.drop(chat.id, offender_id)
		obs_metrics.inc_membership("kicked")
		await self._membership.post_system(chat.id, REMOVED_TEXT)
		await self._membership.post_system(chat.id, KICKED_TEXT)

	async def _suspend(self, chat: models.Chat, offender_id: str, enforcer_id: str, matches: Sequence[str]) -> None:
		hours = chat.violation_policy.duration_hours or settings.default_temp_kick_hours
		now = self._clock.now()
		await self._membership.drop(chat.id, offender_id, keep_membership=True)
		suspension = models.TemporarySuspension(
			id=suspension_id(chat.id, offender_id),
			user_id=offender_id,
			chat_id=chat.id,
			kicked_at=now,
			kicked_until=now + hours_to_ms(hours),
			kicked_by=enforcer_id,
			reason=violation_reason(matches),
		)
		await self._membership.repo.put_suspension(suspension)
		obs_metrics.inc_suspension("created")
		logger.info(
			"member_suspended",
			extra={"chat_id": chat.id, "user_id": offender_id, "kicked_until": suspension.kicked_until},
		)
		await self._membership.post_system(chat.id, SUSPENDED_TEXT.format(hours=hours))
