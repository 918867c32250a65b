import asyncio

import httpx
import pytest
import pytest_asyncio

from umrahgo.domain.identity.bridge import AuthBridge
from umrahgo.domain.identity.tokens import TokenStore
from umrahgo.domain.notifications.aggregator import NotificationAggregator
from umrahgo.domain.notifications.toasts import ToastKind, ToastQueue
from umrahgo.realtime.transport import RealtimeTransport


def _notification(notification_id, chat_id=42, sender="Omar", read=False):
	payload = {
		"id": notification_id,
		"data": {"chat_id": chat_id, "sender_id": 9, "sender_name": sender, "message": "Salam"},
	}
	if read:
		payload["read_at"] = "2025-01-01T10:00:00Z"
	return {"notification": payload}


@pytest.fixture
def transport(backend, bridge, socket_factory, test_settings):
	return RealtimeTransport(
		backend=backend,
		token_source=bridge.get_token,
		config=test_settings,
		client_factory=socket_factory,
	)


@pytest.fixture
def toasts():
	return ToastQueue()


@pytest_asyncio.fixture
async def aggregator(transport, bridge, backend, toasts, test_settings):
	aggregator = NotificationAggregator(
		transport=transport,
		bridge=bridge,
		backend=backend,
		toasts=toasts,
		config=test_settings,
	)
	actor = await bridge.get_current_actor()
	await transport.connect(actor.id, actor.role.value)
	await aggregator.start()
	try:
		yield aggregator
	finally:
		await aggregator.stop()
		await transport.disconnect()


async def _push(socket_factory, payload):
	await socket_factory.last.trigger("new-notification", "private-user.7.notifications", payload)


@pytest.mark.asyncio
async def test_mark_as_read_is_idempotent(aggregator, backend_stub, socket_factory):
	backend_stub.route("GET", "/notifications/unread-count", {"count": 4})
	await aggregator.refresh_unread_count()
	await _push(socket_factory, _notification(7))
	assert aggregator.unread_count == 5

	assert await aggregator.mark_as_read("7") is True
	assert aggregator.unread_count == 4
	assert await aggregator.mark_as_read("7") is True
	assert aggregator.unread_count == 4
	assert backend_stub.count("POST", "/notifications/7/mark-as-read") == 1


@pytest.mark.asyncio
async def test_mark_as_read_failure_leaves_count(aggregator, backend_stub, socket_factory, toasts):
	await _push(socket_factory, _notification(8))
	toasts.drain()
	backend_stub.route("POST", "/notifications/8/mark-as-read", httpx.Response(500))

	assert await aggregator.mark_as_read("8") is False
	assert aggregator.unread_count == 1
	assert toasts.latest.kind is ToastKind.ERROR


@pytest.mark.asyncio
async def test_refresh_is_fail_soft(aggregator, backend_stub):
	backend_stub.route("GET", "/notifications/unread-count", {"success": True, "data": {"count": 3}})
	assert await aggregator.refresh_unread_count() == 3

	backend_stub.route("GET", "/notifications/unread-count", httpx.Response(500))
	assert await aggregator.refresh_unread_count() == 3

	backend_stub.route("GET", "/notifications/unread-count", httpx.ConnectError("down"))
	assert await aggregator.refresh_unread_count() == 3

	backend_stub.route("GET", "/notifications/unread-count", {"count": "many"})
	assert await aggregator.refresh_unread_count() == 3
	assert aggregator.unread_count == 3


@pytest.mark.asyncio
async def test_refresh_without_token_keeps_count(backend, backend_stub, socket_factory, test_settings):
	bridge = AuthBridge(backend=backend, tokens=TokenStore(), config=test_settings)
	transport = RealtimeTransport(
		backend=backend,
		token_source=bridge.get_token,
		config=test_settings,
		client_factory=socket_factory,
	)
	aggregator = NotificationAggregator(
		transport=transport,
		bridge=bridge,
		backend=backend,
		toasts=ToastQueue(),
		config=test_settings,
	)

	assert await aggregator.refresh_unread_count() == 0
	assert backend_stub.count("GET", "/notifications/unread-count") == 0


@pytest.mark.asyncio
async def test_mark_all_as_read(aggregator, backend_stub, socket_factory, toasts):
	await _push(socket_factory, _notification(1))
	await _push(socket_factory, _notification(2, chat_id=43))
	toasts.drain()

	backend_stub.route("POST", "/notifications/mark-all-as-read", httpx.Response(500))
	assert await aggregator.mark_all_as_read() is False
	assert aggregator.unread_count == 2
	assert toasts.latest.title == "Failed to mark all notifications as read"

	backend_stub.route("POST", "/notifications/mark-all-as-read", {"success": True})
	assert await aggregator.mark_all_as_read() is True
	assert aggregator.unread_count == 0
	assert all(item.is_read for item in aggregator.notifications)
	assert toasts.latest.kind is ToastKind.SUCCESS
	assert toasts.latest.title == "All notifications marked as read"


@pytest.mark.asyncio
async def test_mark_all_requires_login(backend, socket_factory, test_settings):
	bridge = AuthBridge(backend=backend, tokens=TokenStore(), config=test_settings)
	transport = RealtimeTransport(
		backend=backend,
		token_source=bridge.get_token,
		config=test_settings,
		client_factory=socket_factory,
	)
	toasts = ToastQueue()
	aggregator = NotificationAggregator(
		transport=transport,
		bridge=bridge,
		backend=backend,
		toasts=toasts,
		config=test_settings,
	)

	assert await aggregator.mark_all_as_read() is False
	assert toasts.latest.title == "Please login to manage notifications"


@pytest.mark.asyncio
async def test_clear_all_drops_only_confirmed(aggregator, backend_stub, socket_factory):
	await _push(socket_factory, _notification(1))
	await _push(socket_factory, _notification(2, read=True))
	await _push(socket_factory, _notification(3))
	backend_stub.route("DELETE", "/notifications/3", httpx.Response(500))

	assert await aggregator.clear_all() == 2
	assert [item.id for item in aggregator.notifications] == ["3"]
	assert aggregator.unread_count == 1


@pytest.mark.asyncio
async def test_incoming_notification_toasts_with_chat_link(aggregator, socket_factory, toasts):
	await _push(socket_factory, _notification(10))

	toast = toasts.latest
	assert toast.kind is ToastKind.INFO
	assert toast.title == "Omar"
	assert toast.description == "Salam"
	assert toast.action.label == "عرض"
	assert toast.action.url == "/ar/pilgrim/chat?id=42"
	assert toast.sound == "/sounds/notification.mp3"
	assert aggregator.notifications[0].id == "10"


@pytest.mark.asyncio
async def test_open_conversation_suppresses_toast(aggregator, socket_factory, toasts):
	aggregator.set_open_conversation(42)
	await _push(socket_factory, _notification(11))

	assert len(toasts) == 0
	assert aggregator.unread_count == 1

	await _push(socket_factory, _notification(12, chat_id=43))
	assert len(toasts) == 1


@pytest.mark.asyncio
async def test_duplicate_notifications_are_ignored(aggregator, socket_factory):
	await _push(socket_factory, _notification(13))
	await _push(socket_factory, _notification(13))

	assert len(aggregator.notifications) == 1
	assert aggregator.unread_count == 1


@pytest.mark.asyncio
async def test_auth_signals_reset_and_refresh(aggregator, bridge, backend_stub, socket_factory, token_factory):
	await _push(socket_factory, _notification(14))
	await bridge.clear_auth_data()

	assert aggregator.notifications == []
	assert aggregator.unread_count == 0

	before = backend_stub.count("GET", "/notifications/unread-count")
	backend_stub.route("GET", "/notifications/unread-count", {"count": 6})
	await bridge.store_token(token_factory())
	assert backend_stub.count("GET", "/notifications/unread-count") == before + 1
	assert aggregator.unread_count == 6


@pytest.mark.asyncio
async def test_poll_refreshes_until_stopped(transport, bridge, backend, backend_stub, test_settings):
	fast = test_settings.model_copy(update={"unread_poll_interval_seconds": 0.05})
	aggregator = NotificationAggregator(
		transport=transport,
		bridge=bridge,
		backend=backend,
		toasts=ToastQueue(),
		config=fast,
	)
	await aggregator.start()
	await asyncio.sleep(0.18)
	await aggregator.stop()
	polled = backend_stub.count("GET", "/notifications/unread-count")

	assert polled >= 3
	await asyncio.sleep(0.1)
	assert backend_stub.count("GET", "/notifications/unread-count") == polled


@pytest.mark.asyncio
async def test_unauthorized_refresh_clears_cached_actor(aggregator, bridge, backend, backend_stub, token_store):
	backend.set_unauthorized_hook(bridge.clear_auth_data)
	backend_stub.route("GET", "/notifications/unread-count", {"count": 2})
	assert await aggregator.refresh_unread_count() == 2
	assert bridge.current is not None

	backend_stub.route("GET", "/notifications/unread-count", httpx.Response(401))
	await aggregator.refresh_unread_count()

	assert bridge.current is None
	assert await token_store.read() is None
	assert aggregator.unread_count == 0

	calls = backend_stub.count("GET", "/notifications/unread-count")
	await aggregator.refresh_unread_count()
	assert backend_stub.count("GET", "/notifications/unread-count") == calls


@pytest.mark.asyncio
async def test_poll_survives_a_failing_iteration(transport, bridge, backend, backend_stub, test_settings, monkeypatch):
	fast = test_settings.model_copy(update={"unread_poll_interval_seconds": 0.05})
	aggregator = NotificationAggregator(
		transport=transport,
		bridge=bridge,
		backend=backend,
		toasts=ToastQueue(),
		config=fast,
	)
	original = aggregator.refresh_unread_count
	attempts = []

	async def flaky_refresh():
		attempts.append(1)
		if len(attempts) == 2:
			raise RuntimeError("storage exploded")
		return await original()

	monkeypatch.setattr(aggregator, "refresh_unread_count", flaky_refresh)
	await aggregator.start()
	await asyncio.sleep(0.2)
	task = aggregator._poll_task
	await aggregator.stop()

	assert len(attempts) >= 3
	assert task.cancelled()
