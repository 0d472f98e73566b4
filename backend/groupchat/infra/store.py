"""Hierarchical content store.

Values live in a tree addressed by slash separated paths (``chats/<id>``,
``messages/<chat>/<msg>``). Two backends share one contract:

- ``MemoryContentStore`` keeps the tree in-process behind an ``asyncio.Lock``.
- ``RedisContentStore`` stores each written path as a JSON document under
  ``{prefix}{path}`` and broadcasts change notifications over pub/sub.

``transact`` is the only read-modify-write primitive. Callers must route every
update that depends on a previous read through it.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import json
import logging
from itertools import count
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

import ulid
from redis.exceptions import RedisError, WatchError

from groupchat.infra.redis import RedisProxy, redis_client
from groupchat.settings import settings

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, Any], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class StoreError(RuntimeError):
	"""Infrastructure failure talking to the content store."""


class ContentStore(Protocol):
	async def get(self, path: str) -> Any:
		...

	async def set(self, path: str, value: Any) -> None:
		...

	async def remove(self, path: str) -> None:
		...

	async def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
		...

	async def transact(self, path: str, update: Callable[[Any], Any]) -> Any:
		...

	def push_id(self) -> str:
		...


def split_path(path: str) -> List[str]:
	segments = [part for part in str(path).strip("/").split("/") if part]
	if not segments:
		raise ValueError("empty store path")
	return segments


def _related(a: Sequence[str], b: Sequence[str]) -> bool:
	shortest = min(len(a), len(b))
	return list(a[:shortest]) == list(b[:shortest])


def _descend(node: Any, segments: Sequence[str]) -> Any:
	for part in segments:
		if not isinstance(node, dict) or part not in node:
			return None
		node = node[part]
	return node


def _assign(node: Dict[str, Any], segments: Sequence[str], value: Any) -> Dict[str, Any]:
	"""Write ``value`` under ``segments`` inside ``node``; ``None`` removes and prunes."""
	if value is None:
		_prune(node, list(segments))
		return node
	cursor = node
	for part in segments[:-1]:
		child = cursor.get(part)
		if not isinstance(child, dict):
			child = {}
			cursor[part] = child
		cursor = child
	cursor[segments[-1]] = value
	return node


def _prune(node: Dict[str, Any], segments: List[str]) -> None:
	if not segments or not isinstance(node, dict):
		return
	head = segments[0]
	if len(segments) == 1:
		node.pop(head, None)
		return
	child = node.get(head)
	if isinstance(child, dict):
		_prune(child, segments[1:])
		if not child:
			node.pop(head, None)


async def _dispatch(callback: ChangeCallback, path: str, value: Any) -> None:
	try:
		result = callback(path, value)
		if inspect.isawaitable(result):
			await result
	except Exception:
		logger.exception("store subscriber failed", extra={"store_path": path})


_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def _increment(value: str) -> str:
	chars = list(value)
	for index in range(len(chars) - 1, -1, -1):
		position = _CROCKFORD.index(chars[index])
		if position + 1 < len(_CROCKFORD):
			chars[index] = _CROCKFORD[position + 1]
			return "".join(chars)
		chars[index] = _CROCKFORD[0]
	raise StoreError("push id space exhausted")


class _PushIds:
	"""ULIDs that sort strictly in generation order within this process."""

	def __init__(self) -> None:
		self._last = ""

	def next(self) -> str:
		candidate = str(ulid.new())
		if candidate <= self._last:
			candidate = _increment(self._last)
		self._last = candidate
		return candidate


_push_ids = _PushIds()


class _Subscriptions:
	def __init__(self) -> None:
		self._seq = count(1)
		self._items: Dict[int, Tuple[List[str], ChangeCallback]] = {}

	def add(self, segments: List[str], callback: ChangeCallback) -> int:
		token = next(self._seq)
		self._items[token] = (segments, callback)
		return token

	def discard(self, token: int) -> None:
		self._items.pop(token, None)

	def matching(self, changed: Sequence[str]) -> List[Tuple[List[str], ChangeCallback]]:
		return [item for item in self._items.values() if _related(item[0], changed)]

	def __len__(self) -> int:
		return len(self._items)


class MemoryContentStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._root: Dict[str, Any] = {}
		self._subs = _Subscriptions()

	async def get(self, path: str) -> Any:
		segments = split_path(path)
		async with self._lock:
			return copy.deepcopy(_descend(self._root, segments))

	async def set(self, path: str, value: Any) -> None:
		segments = split_path(path)
		async with self._lock:
			_assign(self._root, segments, copy.deepcopy(value))
		await self._notify(segments)

	async def remove(self, path: str) -> None:
		await self.set(path, None)

	async def transact(self, path: str, update: Callable[[Any], Any]) -> Any:
		segments = split_path(path)
		async with self._lock:
			current = copy.deepcopy(_descend(self._root, segments))
			updated = update(current)
			_assign(self._root, segments, copy.deepcopy(updated))
		await self._notify(segments)
		return updated

	async def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
		segments = split_path(path)
		token = self._subs.add(segments, on_change)

		def _unsubscribe() -> None:
			self._subs.discard(token)

		return _unsubscribe

	def push_id(self) -> str:
		return _push_ids.next()

	async def reset(self) -> None:
		"""Test helper to drop every stored node."""
		async with self._lock:
			self._root.clear()

	async def _notify(self, changed: Sequence[str]) -> None:
		for segments, callback in self._subs.matching(changed):
			value = await self.get("/".join(segments))
			await _dispatch(callback, "/".join(segments), value)


def _glob_escape(text: str) -> str:
	return "".join(f"\\{ch}" if ch in "*?[]\\" else ch for ch in text)


class RedisContentStore:
	"""Content tree persisted in Redis.

	A path is either stored as its own key or lives inside the document of its
	nearest stored ancestor. Transactions WATCH the owning key, so updates made
	through ``transact`` are compare-and-swap safe against other writers.
	"""

	def __init__(
		self,
		client: RedisProxy | None = None,
		*,
		prefix: str | None = None,
		retries: int | None = None,
	) -> None:
		self._client = client or redis_client
		self._prefix = prefix if prefix is not None else settings.store_prefix
		self._retries = retries if retries is not None else settings.store_cas_retries
		self._subs = _Subscriptions()
		self._listener: Optional[asyncio.Task] = None
		self._pubsub = None

	@property
	def channel(self) -> str:
		return f"{self._prefix}__changes__"

	def _key(self, segments: Sequence[str]) -> str:
		return self._prefix + "/".join(segments)

	async def _owner(self, segments: Sequence[str]) -> Tuple[int, Optional[str]]:
		"""Return (depth, raw) of the nearest stored ancestor-or-self, depth 0 if none."""
		keys = [self._key(segments[: i + 1]) for i in range(len(segments))]
		values = await self._client.mget(keys)
		for index, raw in enumerate(values):
			if raw is not None:
				return index + 1, raw
		return 0, None

	async def _descendant_keys(self, segments: Sequence[str]) -> List[str]:
		pattern = _glob_escape(self._key(segments)) + "/*"
		return [key async for key in self._client.scan_iter(match=pattern)]

	async def _assemble(self, segments: Sequence[str]) -> Any:
		keys = await self._descendant_keys(segments)
		if not keys:
			return None
		raws = await self._client.mget(keys)
		tree: Dict[str, Any] = {}
		base = len(self._key(segments)) + 1
		for key, raw in zip(keys, raws):
			if raw is None:
				continue
			_assign(tree, key[base:].split("/"), json.loads(raw))
		return tree or None

	async def get(self, path: str) -> Any:
		segments = split_path(path)
		try:
			depth, raw = await self._owner(segments)
			if raw is not None:
				return _descend(json.loads(raw), segments[depth:])
			return await self._assemble(segments)
		except RedisError as exc:
			raise StoreError(f"store read failed: {path}") from exc

	async def set(self, path: str, value: Any) -> None:
		await self.transact(path, lambda _current: copy.deepcopy(value))

	async def remove(self, path: str) -> None:
		await self.transact(path, lambda _current: None)

	async def transact(self, path: str, update: Callable[[Any], Any]) -> Any:
		segments = split_path(path)
		try:
			depth, _raw = await self._owner(segments)
			if 0 < depth < len(segments):
				owner = segments[:depth]
				rest = segments[depth:]
				holder: Dict[str, Any] = {}

				def _nested(document: Any) -> Any:
					document = document if isinstance(document, dict) else {}
					holder["value"] = update(copy.deepcopy(_descend(document, rest)))
					return _assign(document, rest, holder["value"]) or None

				await self._transact_key(owner, _nested)
				result = holder.get("value")
			else:
				result = await self._transact_key(segments, update)
			await self._client.publish(self.channel, "/".join(segments))
			return result
		except RedisError as exc:
			raise StoreError(f"store write failed: {path}") from exc

	async def _transact_key(self, segments: Sequence[str], update: Callable[[Any], Any]) -> Any:
		key = self._key(segments)
		for _attempt in range(max(1, self._retries)):
			descendants = await self._descendant_keys(segments)
			async with self._client.pipeline(transaction=True) as pipe:
				try:
					await pipe.watch(key, *descendants)
					raw = await pipe.get(key)
					current = json.loads(raw) if raw is not None else await self._assemble(segments)
					updated = update(current)
					pipe.multi()
					if descendants:
						pipe.delete(*descendants)
					if updated is None or updated == {}:
						pipe.delete(key)
					else:
						pipe.set(key, json.dumps(updated, separators=(",", ":")))
					await pipe.execute()
					return updated
				except WatchError:
					continue
		raise StoreError(f"store contention on {'/'.join(segments)}")

	async def subscribe(self, path: str, on_change: ChangeCallback) -> Unsubscribe:
		segments = split_path(path)
		token = self._subs.add(segments, on_change)
		await self._ensure_listener()

		def _unsubscribe() -> None:
			self._subs.discard(token)

		return _unsubscribe

	async def _ensure_listener(self) -> None:
		if self._listener is not None and not self._listener.done():
			return
		self._pubsub = self._client.pubsub()
		await self._pubsub.subscribe(self.channel)
		self._listener = asyncio.create_task(self._listen(), name="content-store-listener")

	async def _listen(self) -> None:
		assert self._pubsub is not None
		async for message in self._pubsub.listen():
			if message.get("type") != "message":
				continue
			changed = split_path(str(message.get("data")))
			for segments, callback in self._subs.matching(changed):
				joined = "/".join(segments)
				await _dispatch(callback, joined, await self.get(joined))

	def push_id(self) -> str:
		return _push_ids.next()

	async def close(self) -> None:
		if self._listener is not None:
			self._listener.cancel()
			try:
				await self._listener
			except asyncio.CancelledError:
				pass
			self._listener = None
		if self._pubsub is not None:
			await self._pubsub.unsubscribe(self.channel)
			await self._pubsub.aclose()
			self._pubsub = None


_store: ContentStore | None = None


def build_store() -> ContentStore:
	if settings.store_backend == "redis":
		return RedisContentStore()
	return MemoryContentStore()


def get_store() -> ContentStore:
	global _store
	if _store is None:
		_store = build_store()
	return _store


def set_store(store: ContentStore | None) -> None:
	global _store
	_store = store
