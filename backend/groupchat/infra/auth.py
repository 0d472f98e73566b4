"""Caller identity for FastAPI endpoints.

Authentication itself is handled upstream by the identity service; the gateway
forwards the verified user id in ``X-User-Id``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Header, HTTPException, status

# reserved for server-originated messages
SYSTEM_SENDER = "system"


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	roles: Tuple[str, ...] = ()

	def has_role(self, role: str) -> bool:
		return role in self.roles


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
) -> AuthenticatedUser:
	user_id = (x_user_id or "").strip()
	if not user_id or user_id == SYSTEM_SENDER:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	roles = tuple(filter(None, (x_user_roles or "").split(","))) if x_user_roles else ()
	return AuthenticatedUser(id=user_id, roles=roles)
