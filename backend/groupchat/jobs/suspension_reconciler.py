"""Periodic sweep restoring temporarily suspended members."""

from __future__ import annotations

import logging
import time

from groupchat.domain.messaging import models
from groupchat.domain.messaging.errors import MessagingError
from groupchat.domain.messaging.membership import MembershipService
from groupchat.domain.messaging.repo import MessagingRepository
from groupchat.infra.clock import Clock, system_clock
from groupchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_JOB_NAME = "suspension-reconciler"

RESTORED_TEXT = "User has been restored to the group"


class SuspensionReconciler:
	"""Re-adds members whose suspension window has elapsed.

	Safe to run concurrently: each suspension is claimed by compare-and-swap
	before anything else happens, so a stale listing never touches a newer
	suspension stored under the same key. Only the run that actually re-adds
	a member posts the notice.
	"""

	def __init__(
		self,
		repo: MessagingRepository | None = None,
		*,
		membership: MembershipService | None = None,
		clock: Clock | None = None,
	) -> None:
		self.repo = repo or MessagingRepository()
		self.clock = clock or system_clock
		self.membership = membership or MembershipService(self.repo, clock=self.clock)

	async def run_once(self) -> int:
		started = time.perf_counter()
		try:
			restored = await self._sweep()
		except Exception:
			obs_metrics.record_job_run(_JOB_NAME, result="error", duration_seconds=time.perf_counter() - started)
			raise
		obs_metrics.record_job_run(_JOB_NAME, result="success", duration_seconds=time.perf_counter() - started)
		return restored

	async def _sweep(self) -> int:
		now = self.clock.now()
		suspensions = await self.repo.list_suspensions()
		due = [item for item in suspensions if item.is_due(now)]
		obs_metrics.set_active_suspensions(len(suspensions) - len(due))
		restored = 0
		for suspension in due:
			try:
				if await self._restore(suspension):
					restored += 1
			except MessagingError as exc:
				logger.warning(
					"suspension_restore_failed",
					extra={"chat_id": suspension.chat_id, "user_id": suspension.user_id, "reason": exc.code.value},
				)
		return restored

	async def _restore(self, suspension: models.TemporarySuspension) -> bool:
		# the listing may be stale; only the sweep that removes this exact record acts on it
		if not await self.repo.claim_suspension(suspension):
			logger.info("suspension_already_claimed", extra={"chat_id": suspension.chat_id, "user_id": suspension.user_id})
			return False
		chat = await self.repo.get_chat(suspension.chat_id)
		if chat is None:
			obs_metrics.inc_suspension("discarded")
			return False
		try:
			_, added = await self.membership.join(chat.id, suspension.user_id, allow_present=True)
		except MessagingError:
			await self.repo.reinstate_suspension(suspension)
			raise
		if await self.repo.get_membership(suspension.user_id, chat.id) is None:
			now = self.clock.now()
			await self.repo.put_membership(
				suspension.user_id,
				models.MembershipRecord(chat_id=chat.id, joined_at=now, last_read_at=now),
			)
		if added:
			await self.membership.post_system(chat.id, RESTORED_TEXT)
			obs_metrics.inc_membership("restored")
		obs_metrics.inc_suspension("restored")
		logger.info("member_restored", extra={"chat_id": chat.id, "user_id": suspension.user_id, "added": added})
		return added
