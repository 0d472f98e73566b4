"""Lightweight service container shared by the API, sockets and jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from groupchat.domain.messaging.invites import InviteLinkService
from groupchat.domain.messaging.membership import MembershipService, PrivacyService
from groupchat.domain.messaging.moderation import ContentEvaluator
from groupchat.domain.messaging.notifications import NotificationFanout, NotificationSink
from groupchat.domain.messaging.pipeline import MessagePipeline
from groupchat.domain.messaging.repo import MessagingRepository
from groupchat.infra.clock import Clock, system_clock
from groupchat.infra.store import ContentStore, get_store
from groupchat.jobs.suspension_reconciler import SuspensionReconciler


@dataclass(slots=True)
class MessagingContainer:
	repo: MessagingRepository
	clock: Clock
	pipeline: MessagePipeline
	membership: MembershipService
	privacy: PrivacyService
	invites: InviteLinkService
	reconciler: SuspensionReconciler


def build_container(
	store: ContentStore | None = None,
	*,
	clock: Clock | None = None,
	evaluator: ContentEvaluator | None = None,
	sink: NotificationSink | None = None,
) -> MessagingContainer:
	"""Wire one repository, clock and pipeline into every service."""
	repo = MessagingRepository(store or get_store())
	clock = clock or system_clock
	notifier = NotificationFanout(sink, repo=repo)
	pipeline = MessagePipeline(repo, clock=clock, evaluator=evaluator, notifier=notifier)
	membership = pipeline.membership
	return MessagingContainer(
		repo=repo,
		clock=clock,
		pipeline=pipeline,
		membership=membership,
		privacy=PrivacyService(repo, clock=clock),
		invites=InviteLinkService(repo, membership=membership, clock=clock),
		reconciler=SuspensionReconciler(repo, membership=membership, clock=clock),
	)


_container: Optional[MessagingContainer] = None


def get_container() -> MessagingContainer:
	global _container
	if _container is None:
		_container = build_container()
	return _container


def set_container(container: MessagingContainer | None) -> None:
	global _container
	_container = container
