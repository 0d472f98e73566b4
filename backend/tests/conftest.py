import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from groupchat.domain.messaging import sockets
from groupchat.domain.messaging.container import build_container, set_container
from groupchat.infra.clock import FrozenClock
from groupchat.infra.store import MemoryContentStore, set_store
from groupchat.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from groupchat.infra.redis import redis_client, set_redis_client

	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	original_env = settings.environment
	original_sink = settings.notification_sink
	settings.environment = "dev"
	settings.notification_sink = "store"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.notification_sink = original_sink


@pytest.fixture
def store():
	memory = MemoryContentStore()
	set_store(memory)
	try:
		yield memory
	finally:
		set_store(None)


@pytest.fixture
def clock():
	return FrozenClock()


@pytest.fixture
def services(store, clock):
	container = build_container(store, clock=clock)
	set_container(container)
	sockets.set_namespace(None)
	try:
		yield container
	finally:
		set_container(None)


@pytest_asyncio.fixture
async def api_client(services):
	from groupchat.main import app

	sockets.set_namespace(None)
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
