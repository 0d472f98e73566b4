"""Reason codes and the error type raised by messaging services."""

from __future__ import annotations

from enum import Enum

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - fallback for older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class ReasonCode(str, Enum):
	INVALID_INPUT = "InvalidInput"
	NOT_FOUND = "NotFound"
	NOT_AUTHORIZED = "NotAuthorized"
	NOT_OWNER = "NotOwner"
	NOT_A_PARTICIPANT = "NotAParticipant"
	NOT_A_GROUP = "NotAGroup"
	ALREADY_MEMBER = "AlreadyMember"
	ADMIN_MUST_TRANSFER = "AdminMustTransfer"
	MESSAGE_DELETED = "MessageDeleted"
	CONTENT_REJECTED = "ContentRejected"
	POST_SHARING_DISABLED = "PostSharingDisabled"
	INACTIVE = "Inactive"
	EXPIRED = "Expired"
	EXHAUSTED = "Exhausted"


_STATUS: dict[ReasonCode, int] = {
	ReasonCode.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
	ReasonCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
	ReasonCode.NOT_AUTHORIZED: status.HTTP_403_FORBIDDEN,
	ReasonCode.NOT_OWNER: status.HTTP_403_FORBIDDEN,
	ReasonCode.NOT_A_PARTICIPANT: status.HTTP_403_FORBIDDEN,
	ReasonCode.NOT_A_GROUP: status.HTTP_409_CONFLICT,
	ReasonCode.ALREADY_MEMBER: status.HTTP_409_CONFLICT,
	ReasonCode.ADMIN_MUST_TRANSFER: status.HTTP_409_CONFLICT,
	ReasonCode.MESSAGE_DELETED: status.HTTP_409_CONFLICT,
	ReasonCode.CONTENT_REJECTED: _HTTP_422,
	ReasonCode.POST_SHARING_DISABLED: status.HTTP_403_FORBIDDEN,
	ReasonCode.INACTIVE: status.HTTP_410_GONE,
	ReasonCode.EXPIRED: status.HTTP_410_GONE,
	ReasonCode.EXHAUSTED: status.HTTP_410_GONE,
}


class MessagingError(RuntimeError):
	"""Expected business-rule failure carrying a stable reason code."""

	def __init__(self, code: ReasonCode, *, message: str | None = None) -> None:
		super().__init__(message or code.value)
		self.code = code
		self.status_code = _STATUS.get(code, status.HTTP_400_BAD_REQUEST)
		self.detail = message or code.value


def status_for(code: str | None) -> int:
	try:
		return _STATUS[ReasonCode(code)]
	except ValueError:
		return status.HTTP_400_BAD_REQUEST
