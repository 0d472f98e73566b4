"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"groupchat_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"groupchat_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"groupchat_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"groupchat_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

CHATS_CREATED = Counter(
	"groupchat_chats_created_total",
	"Chats created",
	["kind"],
)

MEMBERSHIP_CHANGES = Counter(
	"groupchat_membership_changes_total",
	"Participant additions and removals",
	["action"],
)

MESSAGES_SENT = Counter(
	"groupchat_messages_sent_total",
	"Messages persisted by the pipeline",
	["kind", "origin"],
)

MESSAGES_REJECTED = Counter(
	"groupchat_messages_rejected_total",
	"Messages rejected before persistence",
	["reason"],
)

MESSAGES_MUTATED = Counter(
	"groupchat_messages_mutated_total",
	"Message edits and soft deletes",
	["action"],
)

NOTIFICATION_FANOUT = Counter(
	"groupchat_notification_fanout_total",
	"Notification fan-out attempts per recipient",
	["result"],
)

INVITES = Counter(
	"groupchat_invites_total",
	"Invite link lifecycle events",
	["event"],
)

SUSPENSIONS = Counter(
	"groupchat_suspensions_total",
	"Temporary suspensions created and restored",
	["event"],
)

SUSPENSIONS_ACTIVE = Gauge(
	"groupchat_suspensions_active",
	"Temporary suspensions observed by the last reconciler sweep",
)

BACKGROUND_RUNS = Counter(
	"groupchat_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"groupchat_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_chat_created(kind: str) -> None:
	CHATS_CREATED.labels(kind=kind).inc()


def inc_membership(action: str) -> None:
	MEMBERSHIP_CHANGES.labels(action=action).inc()


def inc_message_sent(kind: str, *, system: bool) -> None:
	MESSAGES_SENT.labels(kind=kind, origin="system" if system else "user").inc()


def inc_message_rejected(reason: str) -> None:
	MESSAGES_REJECTED.labels(reason=reason).inc()


def inc_message_mutated(action: str) -> None:
	MESSAGES_MUTATED.labels(action=action).inc()


def inc_notification(result: str) -> None:
	NOTIFICATION_FANOUT.labels(result=result).inc()


def inc_invite(event: str) -> None:
	INVITES.labels(event=event).inc()


def inc_suspension(event: str) -> None:
	SUSPENSIONS.labels(event=event).inc()


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)


def set_active_suspensions(count: int) -> None:
	SUSPENSIONS_ACTIVE.set(count)
