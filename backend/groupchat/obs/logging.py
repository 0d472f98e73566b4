"""JSON logging with request and chat context.

Every record carries the service identity plus whatever request-scoped fields
the HTTP middleware or a socket handler bound for the current task. Message
text never reaches the log stream: fields that look like content are redacted.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from groupchat.settings import settings

_LOGGER_NAME = "groupchat"

_CONTEXT: Dict[str, ContextVar[Optional[str]]] = {
	name: ContextVar(f"groupchat_{name}", default=None)
	for name in ("request_id", "route", "user_id", "chat_id")
}

_REDACT = ("token", "secret", "authorization", "password", "content", "preview", "text", "body")
_MAX_TEXT = 200
_MAX_ITEMS = 10

# attributes every LogRecord has; anything else came in through ``extra``
_BUILTIN_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Dict[str, Token]:
	"""Bind request-scoped fields; pass the result to ``reset_context`` when done."""
	tokens: Dict[str, Token] = {}
	for name, value in fields.items():
		var = _CONTEXT.get(name)
		if var is not None and value is not None:
			tokens[name] = var.set(value)
	return tokens


def reset_context(tokens: Dict[str, Token]) -> None:
	for name, token in tokens.items():
		_CONTEXT[name].reset(token)


def current_context() -> Dict[str, str]:
	values = {name: var.get() for name, var in _CONTEXT.items()}
	return {name: value for name, value in values.items() if value}


def _clip(value: Any) -> Any:
	if isinstance(value, str) and len(value) > _MAX_TEXT:
		return value[:_MAX_TEXT] + "..."
	if isinstance(value, dict):
		items = list(value.items())
		clipped = {key: _scrub(str(key), item) for key, item in items[:_MAX_ITEMS]}
		if len(items) > _MAX_ITEMS:
			clipped["..."] = f"+{len(items) - _MAX_ITEMS} keys"
		return clipped
	if isinstance(value, (list, tuple, set)):
		items = [_clip(item) for item in value]
		return items[:_MAX_ITEMS] + (["..."] if len(items) > _MAX_ITEMS else [])
	return value


def _scrub(key: str, value: Any) -> Any:
	lowered = key.lower()
	if any(marker in lowered for marker in _REDACT):
		return "[redacted]"
	return _clip(value)


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(current_context())
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key not in _BUILTIN_ATTRS and key not in payload:
				payload[key] = _scrub(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Drop a share of INFO records; warnings and errors always pass."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = settings.obs_log_sampling_rate_info
		return rate >= 1.0 or random.random() < max(rate, 0.0)


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers.clear()
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
