"""Adapter turning raised ``MessagingError`` into the uniform result envelope."""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from groupchat.domain.messaging.errors import MessagingError
from groupchat.domain.messaging.schemas import OperationResult

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def ok(data: Any = None) -> OperationResult:
	return OperationResult(success=True, data=data)


def failed(exc: MessagingError) -> OperationResult:
	return OperationResult(success=False, error=exc.code.value, message=exc.detail)


def returns_result(func: F) -> F:
	"""Wrap a coroutine so expected failures come back as ``success=False``.

	Anything that is not a ``MessagingError`` (store outages, bugs) propagates.
	"""

	@functools.wraps(func)
	async def wrapper(*args: Any, **kwargs: Any) -> OperationResult:
		try:
			data = await func(*args, **kwargs)
		except MessagingError as exc:
			logger.info("messaging_rejected", extra={"operation": func.__name__, "reason": exc.code.value})
			return failed(exc)
		return ok(data)

	return wrapper  # type: ignore[return-value]
