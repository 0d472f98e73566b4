"""Health probes, Prometheus scrape and operator controls."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from groupchat.domain.messaging.container import get_container
from groupchat.infra.store import StoreError, get_store
from groupchat.settings import settings

router = APIRouter(prefix="", tags=["ops"])


def _presented_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	scheme, _, credentials = (authorization or "").partition(" ")
	if scheme.lower() != "bearer" or not credentials:
		return None
	return credentials


async def require_admin(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	expected = settings.obs_admin_token
	if not expected:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if _presented_token(x_admin_token, authorization) != expected:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if not settings.obs_metrics_public:
		await require_admin(x_admin_token, authorization)


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok"}


@router.get("/health/ready")
async def health_ready() -> Response:
	payload = {"store": settings.store_backend, "reconciler": settings.reconciler_enabled}
	try:
		await get_store().get("__health__")
	except StoreError:
		return JSONResponse(dict(payload, status="unavailable"), status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
	return JSONResponse(dict(payload, status="ok"))


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.post("/ops/suspensions/reconcile")
async def reconcile_suspensions(_: None = Depends(require_admin)) -> dict[str, int]:
	"""Run one reconciler sweep now instead of waiting for the next tick."""
	restored = await get_container().reconciler.run_once()
	return {"restored": restored}
