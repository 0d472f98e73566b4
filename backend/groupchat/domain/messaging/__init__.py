"""Messaging domain exports."""

from .invites import InviteLinkService
from .membership import MembershipService, PrivacyService
from .pipeline import MessagePipeline

__all__ = ["InviteLinkService", "MembershipService", "MessagePipeline", "PrivacyService"]
