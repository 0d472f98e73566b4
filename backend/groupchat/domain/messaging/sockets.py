"""Socket.IO namespace for live chat delivery."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import socketio

from groupchat.domain.messaging import repo as repo_paths
from groupchat.domain.messaging.models import SYSTEM_SENDER
from groupchat.infra.auth import AuthenticatedUser
from groupchat.infra.store import ContentStore, get_store
from groupchat.obs import metrics as obs_metrics
from groupchat.settings import settings

_namespace: "ChatsNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


class ChatsNamespace(socketio.AsyncNamespace):
	"""Namespace with one channel per user and one per chat.

	Joining a chat channel also subscribes to ``messages/<chat>`` in the content
	store, so writes made by any worker reach the connected clients.
	"""

	def __init__(self, store: ContentStore | None = None) -> None:
		super().__init__("/chats")
		self._store = store
		self._sessions: Dict[str, AuthenticatedUser] = {}
		self._watches: Dict[str, Callable[[], None]] = {}
		self._watchers: Dict[str, set[str]] = {}

	@property
	def store(self) -> ContentStore:
		return self._store or get_store()

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		try:
			user = self._authorise(environ, auth)
		except ValueError:
			obs_metrics.socket_disconnected(self.namespace)
			raise ConnectionRefusedError("unauthorized") from None
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("chats:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		user = self._sessions.pop(sid, None)
		if user:
			await self.leave_room(sid, self.user_room(user.id))
		for chat_id in [chat_id for chat_id, sids in self._watchers.items() if sid in sids]:
			self._unwatch(chat_id, sid)

	async def on_chat_join(self, sid: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, "chat_join")
		user = self._sessions.get(sid)
		if not user:
			raise ConnectionRefusedError("unauthenticated")
		chat_id = str(payload.get("chat_id") or "")
		if not chat_id:
			return
		record = await self.store.get(repo_paths.chat_path(chat_id))
		if not isinstance(record, dict) or user.id not in (record.get("participants") or []):
			await self.emit("chats:error", {"chat_id": chat_id, "error": "NotAParticipant"}, room=sid)
			return
		await self.enter_room(sid, self.chat_channel(chat_id))
		await self._watch(chat_id, sid)

	async def on_chat_leave(self, sid: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, "chat_leave")
		user = self._sessions.get(sid)
		if not user:
			raise ConnectionRefusedError("unauthenticated")
		chat_id = str(payload.get("chat_id") or "")
		if not chat_id:
			return
		await self.leave_room(sid, self.chat_channel(chat_id))
		self._unwatch(chat_id, sid)

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"

	@staticmethod
	def chat_channel(chat_id: str) -> str:
		return f"chat:{chat_id}"

	async def _watch(self, chat_id: str, sid: str) -> None:
		sids = self._watchers.setdefault(chat_id, set())
		sids.add(sid)
		if chat_id in self._watches:
			return

		async def _on_change(path: str, value: Any) -> None:
			await self.emit(
				"chat:snapshot",
				{"chat_id": chat_id, "path": path, "value": value},
				room=self.chat_channel(chat_id),
			)

		self._watches[chat_id] = await self.store.subscribe(repo_paths.messages_path(chat_id), _on_change)

	def _unwatch(self, chat_id: str, sid: str) -> None:
		sids = self._watchers.get(chat_id)
		if not sids:
			return
		sids.discard(sid)
		if sids:
			return
		self._watchers.pop(chat_id, None)
		unsubscribe = self._watches.pop(chat_id, None)
		if unsubscribe is not None:
			unsubscribe()

	def _authorise(self, environ: dict, auth: Optional[dict]) -> AuthenticatedUser:
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		# the gateway sets X-User-Id; dev clients may pass it in the auth payload
		user_id = _header(scope, "x-user-id")
		if not user_id and settings.is_dev():
			user_id = auth_payload.get("user_id") or auth_payload.get("userId")
		if not user_id or str(user_id) == SYSTEM_SENDER:
			raise ValueError("missing_user")
		return AuthenticatedUser(id=str(user_id))


def set_namespace(namespace: ChatsNamespace | None) -> None:
	global _namespace
	_namespace = namespace


async def emit_chat_created(user_id: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "chat:created")
	await _namespace.emit("chat:created", payload, room=ChatsNamespace.user_room(user_id))


async def emit_chat_event(event: str, chat_id: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, event)
	await _namespace.emit(event, payload, room=ChatsNamespace.chat_channel(chat_id))
