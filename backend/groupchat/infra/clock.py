"""Injectable clocks.

Every timestamp in the messaging domain is epoch milliseconds taken from a
``Clock`` handed to the service, so suspension windows and invite expiry can be
driven deterministically from tests.
"""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Protocol


class Clock(Protocol):
	def now(self) -> int:
		...


class SystemClock:
	def now(self) -> int:
		return int(time.time() * 1000)


class FrozenClock:
	"""Manually driven clock for tests and replays."""

	def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
		self._now = int(start_ms)

	def now(self) -> int:
		return self._now

	def set(self, value_ms: int) -> None:
		self._now = int(value_ms)

	def advance(self, delta: timedelta | int) -> int:
		if isinstance(delta, timedelta):
			self._now += int(delta.total_seconds() * 1000)
		else:
			self._now += int(delta)
		return self._now


def hours_to_ms(hours: float) -> int:
	return int(hours * 3600 * 1000)


system_clock = SystemClock()
