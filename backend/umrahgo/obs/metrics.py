"""Central registry for Prometheus metrics used across the chat core."""

from __future__ import annotations

from prometheus_client import Counter, Gauge


REALTIME_STATE = Counter(
	"umrahgo_realtime_state_transitions_total",
	"Realtime connection state transitions",
	["state"],
)

REALTIME_CHANNELS = Gauge(
	"umrahgo_realtime_channels_active",
	"Channels currently subscribed on the pub/sub connection",
)

REALTIME_EVENTS = Counter(
	"umrahgo_realtime_events_total",
	"Realtime events received per event name",
	["event"],
)

REALTIME_DROPPED = Counter(
	"umrahgo_realtime_dropped_payloads_total",
	"Realtime payloads dropped because they could not be decoded",
	["event"],
)

REALTIME_RECONNECTS = Counter(
	"umrahgo_realtime_reconnects_total",
	"Reconnect attempts by trigger and result",
	["trigger", "result"],
)

PRESENCE_PINGS = Counter(
	"umrahgo_presence_pings_total",
	"Presence updates sent to the backend",
	["status", "result"],
)

NOTIFICATIONS_RECEIVED = Counter(
	"umrahgo_notifications_received_total",
	"Chat notifications received from the notification channel",
)

NOTIFICATIONS_READ = Counter(
	"umrahgo_notifications_read_total",
	"Notifications marked read",
	["scope"],
)

UNREAD_REFRESH = Counter(
	"umrahgo_unread_refresh_total",
	"Unread count refreshes by result",
	["result"],
)

PUSH_SHOWN = Counter(
	"umrahgo_push_notifications_shown_total",
	"OS notifications rendered by the push worker",
)

PUSH_CLICKS = Counter(
	"umrahgo_push_notification_clicks_total",
	"Notification clicks handled by the push worker",
	["action"],
)

PUSH_CACHE = Counter(
	"umrahgo_push_cache_lookups_total",
	"Offline cache lookups by result",
	["result"],
)

AUTH_RESOLUTIONS = Counter(
	"umrahgo_auth_resolutions_total",
	"Actor identity resolutions by source",
	["source"],
)

MESSAGES_SENT = Counter(
	"umrahgo_chat_messages_sent_total",
	"Outgoing chat messages by result",
	["result"],
)


def realtime_state(state: str) -> None:
	REALTIME_STATE.labels(state=state).inc()


def channel_count(count: int) -> None:
	REALTIME_CHANNELS.set(float(count))


def realtime_event(event: str) -> None:
	REALTIME_EVENTS.labels(event=event).inc()


def realtime_dropped(event: str) -> None:
	REALTIME_DROPPED.labels(event=event).inc()


def inc_reconnect(trigger: str, result: str) -> None:
	REALTIME_RECONNECTS.labels(trigger=trigger, result=result).inc()


def inc_presence_ping(status: str, result: str) -> None:
	PRESENCE_PINGS.labels(status=status, result=result).inc()


def inc_notification_received() -> None:
	NOTIFICATIONS_RECEIVED.inc()


def inc_notification_read(scope: str) -> None:
	NOTIFICATIONS_READ.labels(scope=scope).inc()


def inc_unread_refresh(result: str) -> None:
	UNREAD_REFRESH.labels(result=result).inc()


def inc_push_shown() -> None:
	PUSH_SHOWN.inc()


def inc_push_click(action: str) -> None:
	PUSH_CLICKS.labels(action=action or "default").inc()


def push_cache_lookup(hit: bool) -> None:
	PUSH_CACHE.labels(result="hit" if hit else "miss").inc()


def inc_auth_resolution(source: str) -> None:
	AUTH_RESOLUTIONS.labels(source=source).inc()


def inc_message_sent(result: str) -> None:
	MESSAGES_SENT.labels(result=result).inc()
