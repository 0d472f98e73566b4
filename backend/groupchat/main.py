"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from groupchat.api import messaging, ops
from groupchat.api.errors import install_error_handlers
from groupchat.domain.messaging.container import get_container
from groupchat.domain.messaging.sockets import ChatsNamespace, set_namespace
from groupchat.infra.store import get_store
from groupchat.jobs.runner import spawn_reconciler
from groupchat.obs import init as obs_init
from groupchat.obs import logging as obs_logging
from groupchat.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	logger = obs_logging.get_logger("groupchat.app")
	tasks: list[asyncio.Task] = []
	if settings.reconciler_enabled:
		tasks.append(spawn_reconciler(get_container().reconciler))
		logger.info("reconciler_started", extra={"interval_seconds": settings.reconciler_interval_seconds})
	try:
		yield
	finally:
		for task in tasks:
			task.cancel()
		await asyncio.gather(*tasks, return_exceptions=True)
		close = getattr(get_store(), "close", None)
		if callable(close):
			await close()


def _allowed_origins() -> list[str]:
	raw = settings.cors_allow_origins or ""
	origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
	if not origins:
		origins = ["http://localhost:3000"] if settings.is_dev() else []
	# Starlette disallows wildcard '*' with allow_credentials=True
	return [origin for origin in origins if origin != "*"]


def create_app() -> FastAPI:
	app = FastAPI(title="Group Chat", lifespan=lifespan)
	install_error_handlers(app)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=_allowed_origins(),
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	obs_init(app)
	app.include_router(messaging.router)
	app.include_router(messaging.invites_router)
	app.include_router(messaging.privacy_router)
	app.include_router(ops.router)
	return app


app = create_app()

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=_allowed_origins())
chats_namespace = ChatsNamespace()
sio.register_namespace(chats_namespace)
set_namespace(chats_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
