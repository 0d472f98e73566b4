"""Utilities for wiring background jobs into an event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from groupchat.jobs.suspension_reconciler import SuspensionReconciler
from groupchat.settings import settings

logger = logging.getLogger(__name__)


async def _run_forever(job, delay: float) -> None:
	while True:
		try:
			await job.run_once()
		except asyncio.CancelledError:
			raise
		except Exception:
			logger.exception("background_job_failed", extra={"job": type(job).__name__})
		await asyncio.sleep(delay)


def spawn_reconciler(
	reconciler: SuspensionReconciler | None = None,
	*,
	interval: Optional[float] = None,
	loop: Optional[asyncio.AbstractEventLoop] = None,
) -> asyncio.Task:
	"""Start the suspension reconciler loop as a task on ``loop``."""
	event_loop = loop or asyncio.get_running_loop()
	job = reconciler or SuspensionReconciler()
	delay = settings.reconciler_interval_seconds if interval is None else interval
	return event_loop.create_task(_run_forever(job, delay), name="suspension-reconciler")
