"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from groupchat.infra.store import StoreError

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str:
	return getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id") or "unknown"


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		payload = {"success": False, "error": exc.detail, "request_id": _request_id(request)}
		return JSONResponse(status_code=exc.status_code, content=payload)

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		payload = {
			"success": False,
			"error": "InvalidInput",
			"message": "validation_error",
			"errors": jsonable_encoder(exc.errors()),
			"request_id": _request_id(request),
		}
		return JSONResponse(status_code=422, content=payload)

	@app.exception_handler(StoreError)
	async def store_exc_handler(request: Request, exc: StoreError):  # type: ignore[override]
		logger.error("store_unavailable", extra={"cause": str(exc)}, exc_info=exc)
		payload = {
			"success": False,
			"error": "StoreUnavailable",
			"message": str(exc),
			"request_id": _request_id(request),
		}
		return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=payload)
