"""Request instrumentation: Prometheus timings plus one JSON access log per call."""

from __future__ import annotations

import re
import time
from typing import Optional
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from groupchat.obs import logging as obs_logging
from groupchat.obs import metrics
from groupchat.settings import settings

_CHAT_PATH = re.compile(r"^/chats/([^/]+)")


def _route_label(request: Request) -> str:
	# only known after routing; unmatched paths collapse into one label
	route = request.scope.get("route")
	return getattr(route, "path", None) or "unmatched"


def _chat_id(request: Request) -> Optional[str]:
	match = _CHAT_PATH.match(request.url.path)
	if match is None or match.group(1) == "private":
		return None
	return match.group(1)


class ObservabilityMiddleware(BaseHTTPMiddleware):
	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger("groupchat.http")

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not settings.obs_enabled or not self._enabled:
			return await call_next(request)

		request_id = request.headers.get("X-Request-Id") or str(uuid4())
		request.state.request_id = request_id
		tokens = obs_logging.bind_context(
			request_id=request_id,
			user_id=request.headers.get("X-User-Id"),
			chat_id=_chat_id(request),
		)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._logger.exception("http_request_error", extra={"method": request.method, "path": request.url.path})
			raise
		finally:
			elapsed = time.perf_counter() - started
			route = _route_label(request)
			metrics.observe_request(route, request.method, status_code, elapsed)
			self._logger.info(
				"http_request",
				extra={"route": route, "status": status_code, "method": request.method, "latency_ms": round(elapsed * 1000, 3)},
			)
			obs_logging.reset_context(tokens)
		response.headers.setdefault("X-Request-Id", request_id)
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
