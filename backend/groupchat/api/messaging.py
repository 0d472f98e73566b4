"""FastAPI endpoints for chats, messages, invites and privacy."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from groupchat.domain.messaging import schemas
from groupchat.domain.messaging.container import MessagingContainer, get_container
from groupchat.domain.messaging.errors import status_for
from groupchat.domain.messaging.schemas import OperationResult
from groupchat.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/chats", tags=["chats"])
invites_router = APIRouter(prefix="/invites", tags=["invites"])
privacy_router = APIRouter(prefix="/privacy", tags=["privacy"])


def get_services() -> MessagingContainer:
	return get_container()


def _respond(result: OperationResult, response: Response, *, created: bool = False) -> OperationResult:
	if not result.success:
		response.status_code = status_for(result.error)
	elif created:
		response.status_code = status.HTTP_201_CREATED
	return result


def _with_caller(caller_id: str, participant_ids: List[str]) -> List[str]:
	# the caller is always a participant and, for groups, the first admin
	return [caller_id] + [pid for pid in participant_ids if pid != caller_id]


@router.post("", response_model=OperationResult)
async def create_chat_endpoint(
	payload: schemas.CreateChatRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.membership.create_chat(
		payload.kind,
		_with_caller(auth_user.id, payload.participant_ids),
		payload.group,
	)
	return _respond(result, response, created=True)


@router.post("/private", response_model=OperationResult)
async def start_private_chat_endpoint(
	payload: schemas.ParticipantRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.membership.start_private_chat(auth_user.id, payload.user_id)
	return _respond(result, response)


@router.get("", response_model=OperationResult)
async def list_chats_endpoint(
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.membership.list_user_chats(auth_user.id), response)


@router.get("/{chat_id}", response_model=OperationResult)
async def get_chat_endpoint(
	chat_id: str,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.membership.get_chat(chat_id, auth_user.id), response)


@router.patch("/{chat_id}/settings", response_model=OperationResult)
async def update_settings_endpoint(
	chat_id: str,
	payload: schemas.GroupSettingsRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.membership.update_group_settings(chat_id, auth_user.id, payload)
	return _respond(result, response)


@router.get("/{chat_id}/members", response_model=OperationResult)
async def list_members_endpoint(
	chat_id: str,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.membership.list_members(chat_id, auth_user.id), response)


@router.post("/{chat_id}/participants", response_model=OperationResult)
async def add_participant_endpoint(
	chat_id: str,
	payload: schemas.ParticipantRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.membership.add_participant(chat_id, payload.user_id, auth_user.id)
	return _respond(result, response)


@router.delete("/{chat_id}/participants/{user_id}", response_model=OperationResult)
async def remove_participant_endpoint(
	chat_id: str,
	user_id: str,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.membership.remove_participant(chat_id, user_id, auth_user.id)
	return _respond(result, response)


@router.post("/{chat_id}/leave", response_model=OperationResult)
async def leave_endpoint(
	chat_id: str,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.membership.leave(chat_id, auth_user.id), response)


@router.post("/{chat_id}/admins", response_model=OperationResult)
async def promote_admin_endpoint(
	chat_id: str,
	payload: schemas.ParticipantRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.membership.promote_admin(chat_id, payload.user_id, auth_user.id)
	return _respond(result, response)


@router.delete("/{chat_id}/admins/{user_id}", response_model=OperationResult)
async def demote_admin_endpoint(
	chat_id: str,
	user_id: str,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.membership.demote_admin(chat_id, user_id, auth_user.id)
	return _respond(result, response)


@router.post("/{chat_id}/messages", response_model=OperationResult)
async def send_message_endpoint(
	chat_id: str,
	payload: schemas.SendMessageRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.pipeline.send(chat_id, auth_user.id, payload)
	return _respond(result, response, created=True)


@router.get("/{chat_id}/messages", response_model=OperationResult)
async def list_messages_endpoint(
	chat_id: str,
	response: Response,
	limit: Optional[int] = Query(default=None, ge=1, le=500),
	before: Optional[int] = Query(default=None, description="Epoch milliseconds"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.pipeline.list_messages(chat_id, auth_user.id, limit=limit, before=before)
	return _respond(result, response)


@router.get("/{chat_id}/messages/search", response_model=OperationResult)
async def search_messages_endpoint(
	chat_id: str,
	response: Response,
	q: str = Query(..., min_length=1, max_length=200),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.pipeline.search_messages(chat_id, auth_user.id, q), response)


@router.patch("/{chat_id}/messages/{message_id}", response_model=OperationResult)
async def edit_message_endpoint(
	chat_id: str,
	message_id: str,
	payload: schemas.EditMessageRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.pipeline.edit(chat_id, message_id, payload.content, auth_user.id)
	return _respond(result, response)


@router.delete("/{chat_id}/messages/{message_id}", response_model=OperationResult)
async def delete_message_endpoint(
	chat_id: str,
	message_id: str,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.pipeline.delete(chat_id, message_id, auth_user.id), response)


@router.post("/{chat_id}/read", response_model=OperationResult)
async def mark_read_endpoint(
	chat_id: str,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.pipeline.mark_read(chat_id, auth_user.id), response)


@router.post("/{chat_id}/share", response_model=OperationResult)
async def share_post_endpoint(
	chat_id: str,
	payload: schemas.SharePostRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.pipeline.share_post(chat_id, auth_user.id, payload.post_id, payload.message)
	return _respond(result, response, created=True)


@router.post("/{chat_id}/invites", response_model=OperationResult)
async def create_invite_endpoint(
	chat_id: str,
	payload: schemas.InviteCreateRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	result = await services.invites.create_invite_link(
		chat_id,
		auth_user.id,
		expires_at=payload.expires_at,
		max_uses=payload.max_uses,
	)
	return _respond(result, response, created=True)


@router.get("/{chat_id}/invites", response_model=OperationResult)
async def list_invites_endpoint(
	chat_id: str,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.invites.list_links(chat_id, auth_user.id), response)


@invites_router.post("/redeem", response_model=OperationResult)
async def redeem_invite_endpoint(
	payload: schemas.RedeemInviteRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.invites.redeem(payload.code, auth_user.id), response)


@invites_router.delete("/{link_id}", response_model=OperationResult)
async def revoke_invite_endpoint(
	link_id: str,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.invites.revoke(link_id, auth_user.id), response)


@privacy_router.get("/me", response_model=OperationResult)
async def get_privacy_endpoint(
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.privacy.get_privacy(auth_user.id), response)


@privacy_router.patch("/me", response_model=OperationResult)
async def update_privacy_endpoint(
	payload: schemas.PrivacyUpdateRequest,
	response: Response,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	services: MessagingContainer = Depends(get_services),
) -> OperationResult:
	return _respond(await services.privacy.update_privacy(auth_user.id, payload), response)
