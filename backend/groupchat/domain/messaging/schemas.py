"""Pydantic schemas for the messaging API and the uniform operation result."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field

CHAT_KIND_PATTERN = "^(private|group)$"
MESSAGE_KIND_PATTERN = "^(text|image|video|file|post_share)$"


class OperationResult(BaseModel):
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    data: Optional[Any] = None


class ViolationPolicyPayload(BaseModel):
    mode: str = Field(default="kick", pattern="^(kick|temp_kick)$")
    duration_hours: Optional[int] = Field(default=None, ge=1)


class GroupMeta(BaseModel):
    name: Optional[str] = Field(default=None, max_length=80)
    description: Optional[str] = Field(default=None, max_length=500)
    banned_words: List[str] = Field(default_factory=list)
    violation_policy: Optional[ViolationPolicyPayload] = None
    post_sharing_enabled: bool = True


class CreateChatRequest(BaseModel):
    kind: str = Field(..., pattern=CHAT_KIND_PATTERN)
    participant_ids: List[str] = Field(..., min_length=1)
    group: Optional[GroupMeta] = None


class SendMessageRequest(BaseModel):
    content: str = ""
    kind: str = Field(default="text", pattern=MESSAGE_KIND_PATTERN)
    reply_to: Optional[str] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    duration: Optional[float] = Field(default=None, ge=0)
    shared_post_id: Optional[str] = None


class EditMessageRequest(BaseModel):
    content: str


class SharePostRequest(BaseModel):
    post_id: str = Field(..., min_length=1)
    message: Optional[str] = None


class ParticipantRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class GroupSettingsRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=80)
    description: Optional[str] = Field(default=None, max_length=500)
    banned_words: Optional[List[str]] = None
    violation_policy: Optional[ViolationPolicyPayload] = None
    post_sharing_enabled: Optional[bool] = None


class InviteCreateRequest(BaseModel):
    expires_at: Optional[int] = Field(default=None, description="Epoch milliseconds")
    max_uses: Optional[int] = Field(default=None, ge=1)


class RedeemInviteRequest(BaseModel):
    code: str = Field(..., min_length=6, max_length=64)


class PrivacyUpdateRequest(BaseModel):
    is_anonymous: Optional[bool] = None
    hide_from_group_members: Optional[bool] = None
    hide_from_following_lists: Optional[bool] = None
