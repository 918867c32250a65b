"""Realtime transport adapter over a Socket.IO pub/sub connection.

One ``RealtimeTransport`` owns the single connection for the signed-in actor.
On connect it joins the actor's private channel and notification channel;
conversation channels are joined on demand and reference-counted so several
consumers can share one subscription. Conversation interest and handler
registrations outlive a dropped connection and are restored on the next
successful ``connect``.

Connection problems never raise to callers: they are logged and reflected in
``state``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

import socketio
from socketio import exceptions as sio_exceptions

from umrahgo.domain.chat import schemas
from umrahgo.infra.backend import BackendClient
from umrahgo.infra.errors import BackendError, PayloadDecodeError
from umrahgo.obs import metrics as obs_metrics
from umrahgo.obs.logging import bind_context, reset_context
from umrahgo.settings import Settings, settings as default_settings

from . import channels
from .registry import Handler, HandlerRegistry, Subscription
from .state import ConnectionState

logger = logging.getLogger(__name__)

_ANY = "*"
_config_warned = False


def default_client_factory() -> socketio.AsyncClient:
	# Reconnects are driven by the chat session's liveness check
	return socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)


def _split_args(args: Tuple[Any, ...]) -> Tuple[str, Any]:
	"""Broadcast frames arrive as ``(channel, data)``; tolerate ``({channel, data})``."""
	if len(args) >= 2:
		return str(args[0] or ""), args[1]
	if len(args) == 1 and isinstance(args[0], dict):
		frame = args[0]
		return str(frame.get("channel") or ""), frame.get("data", frame)
	return "", None


class RealtimeTransport:
	def __init__(
		self,
		*,
		backend: BackendClient,
		token_source: Callable[[], Awaitable[Optional[str]]],
		config: Settings | None = None,
		client_factory: Callable[[], Any] | None = None,
	) -> None:
		self._backend = backend
		self._token_source = token_source
		self._settings = config or default_settings
		self._client_factory = client_factory or default_client_factory
		self._lock = asyncio.Lock()
		self._sio: Any = None
		self._state = ConnectionState.DISCONNECTED
		self._actor_id: Optional[int] = None
		self._role: Optional[str] = None
		self._token: Optional[str] = None
		self._closing = False
		self._channels: Set[str] = set()
		self._interest: Dict[str, int] = {}
		self._messages = HandlerRegistry("messages")
		self._typing = HandlerRegistry("typing")
		self._notifications = HandlerRegistry("notifications")
		self._status = HandlerRegistry("status")
		self._private = HandlerRegistry("private_messages")
		self._state_listeners = HandlerRegistry("connection_state")

	# --- state --------------------------------------------------------------------

	@property
	def state(self) -> ConnectionState:
		return self._state

	@property
	def actor_id(self) -> Optional[int]:
		return self._actor_id

	@property
	def subscribed_channels(self) -> Set[str]:
		return set(self._channels)

	def is_connected(self) -> bool:
		return self._state is ConnectionState.CONNECTED and self._sio is not None

	def on_state_change(self, handler: Handler) -> Subscription:
		return self._state_listeners.subscribe(_ANY, handler)

	def off_state_change(self, handler: Handler) -> None:
		self._state_listeners.unsubscribe(_ANY, handler)

	async def _set_state(self, state: ConnectionState) -> None:
		if state is self._state:
			return
		self._state = state
		obs_metrics.realtime_state(state.value)
		await self._state_listeners.dispatch(_ANY, state)

	# --- lifecycle ----------------------------------------------------------------

	async def connect(self, actor_id: int, role: Optional[str] = None) -> bool:
		async with self._lock:
			if self.is_connected():
				if actor_id == self._actor_id:
					return True
				await self._disconnect_locked()
			return await self._connect_locked(actor_id, role)

	async def _connect_locked(self, actor_id: int, role: Optional[str]) -> bool:
		global _config_warned
		if not self._settings.realtime_enabled():
			if not _config_warned:
				logger.warning("realtime disabled: pub/sub app key or cluster not configured")
				_config_warned = True
			return False
		token = await self._token_source()
		if not token:
			await self._set_state(ConnectionState.NO_AUTH)
			return False
		await self._set_state(ConnectionState.CONNECTING)
		sio = self._client_factory()
		self._bind(sio)
		try:
			await sio.connect(
				self._settings.realtime_url,
				headers={"Authorization": f"Bearer {token}"},
				auth={"key": self._settings.realtime_app_key, "cluster": self._settings.realtime_cluster},
				transports=["websocket"],
			)
		except (sio_exceptions.ConnectionError, OSError, asyncio.TimeoutError) as exc:
			logger.warning("realtime connect failed", extra={"reason": str(exc) or exc.__class__.__name__})
			await self._set_state(ConnectionState.ERROR)
			return False
		self._sio = sio
		self._actor_id = actor_id
		self._role = role
		self._token = token
		await self._set_state(ConnectionState.CONNECTED)
		ctx = bind_context(actor_id=str(actor_id))
		try:
			await self._subscribe_channel(channels.user_channel(actor_id))
			await self._subscribe_channel(channels.notification_channel(actor_id))
			for conversation_id in list(self._interest):
				await self._subscribe_channel(channels.conversation_channel(conversation_id))
			await self._presence(online=True)
		finally:
			reset_context(ctx)
		logger.info("realtime connected", extra={"role": role or ""})
		return True

	async def disconnect(self) -> None:
		async with self._lock:
			await self._disconnect_locked()

	async def _disconnect_locked(self) -> None:
		sio = self._sio
		if sio is None:
			await self._set_state(ConnectionState.DISCONNECTED)
			return
		self._closing = True
		try:
			await self._presence(online=False)
			for channel in list(self._channels):
				await self._emit_unsubscribe(sio, channel)
			try:
				await sio.disconnect()
			except (sio_exceptions.SocketIOError, OSError) as exc:
				logger.info("socket close failed", extra={"reason": str(exc)})
		finally:
			self._channels.clear()
			obs_metrics.channel_count(0)
			self._sio = None
			self._token = None
			self._closing = False
		await self._set_state(ConnectionState.DISCONNECTED)

	def _bind(self, sio: Any) -> None:
		sio.on("disconnect", self._handle_disconnect)
		sio.on("connect_error", self._handle_connect_error)
		sio.on("*", self._handle_event)

	async def _handle_disconnect(self, *args: Any) -> None:
		if self._closing or self._sio is None:
			return
		logger.warning("realtime connection dropped")
		self._sio = None
		self._channels.clear()
		obs_metrics.channel_count(0)
		await self._set_state(ConnectionState.DISCONNECTED)

	async def _handle_connect_error(self, *args: Any) -> None:
		logger.warning("realtime connection error")
		await self._set_state(ConnectionState.ERROR)

	# --- presence -----------------------------------------------------------------

	async def _presence(self, *, online: bool) -> None:
		status = "online" if online else "offline"
		token = self._token or await self._token_source()
		if not token:
			return
		try:
			await self._backend.update_presence(token, online=online)
		except BackendError as exc:
			obs_metrics.inc_presence_ping(status, "error")
			logger.info("presence update failed", extra={"presence": status, "status": exc.status_code})
			return
		obs_metrics.inc_presence_ping(status, "ok")

	# --- channels -----------------------------------------------------------------

	async def _subscribe_channel(self, channel: str) -> bool:
		sio = self._sio
		if sio is None or channel in self._channels:
			return channel in self._channels
		frame: Dict[str, Any] = {"channel": channel}
		if channel.startswith(channels.PRIVATE_PREFIX):
			try:
				grant = await self._backend.authorize_channel(
					self._token or "",
					socket_id=str(sio.sid or ""),
					channel_name=channel,
				)
			except BackendError as exc:
				logger.warning("channel authorization failed", extra={"channel_name": channel, "status": exc.status_code})
				return False
			frame["auth"] = grant.get("auth")
			if "channel_data" in grant:
				frame["channel_data"] = grant["channel_data"]
		try:
			await sio.emit("subscribe", frame)
		except (sio_exceptions.SocketIOError, OSError) as exc:
			logger.warning("channel subscribe failed", extra={"channel_name": channel, "reason": str(exc)})
			return False
		self._channels.add(channel)
		obs_metrics.channel_count(len(self._channels))
		return True

	async def _emit_unsubscribe(self, sio: Any, channel: str) -> None:
		try:
			await sio.emit("unsubscribe", {"channel": channel})
		except (sio_exceptions.SocketIOError, OSError) as exc:
			logger.info("channel unsubscribe failed", extra={"channel_name": channel, "reason": str(exc)})

	async def subscribe_to_conversation(self, conversation_id: int | str) -> bool:
		key = str(conversation_id)
		self._interest[key] = self._interest.get(key, 0) + 1
		if not self.is_connected():
			return False
		return await self._subscribe_channel(channels.conversation_channel(key))

	async def leave_conversation(self, conversation_id: int | str) -> None:
		key = str(conversation_id)
		remaining = self._interest.get(key, 0) - 1
		if remaining > 0:
			self._interest[key] = remaining
			return
		self._interest.pop(key, None)
		channel = channels.conversation_channel(key)
		if channel in self._channels and self._sio is not None:
			await self._emit_unsubscribe(self._sio, channel)
		self._channels.discard(channel)
		obs_metrics.channel_count(len(self._channels))

	def conversation_refcount(self, conversation_id: int | str) -> int:
		return self._interest.get(str(conversation_id), 0)

	# --- handler registration -----------------------------------------------------

	def on_message(self, conversation_id: int | str, handler: Handler) -> Subscription:
		return self._messages.subscribe(str(conversation_id), handler)

	def off_message(self, conversation_id: int | str, handler: Handler) -> None:
		self._messages.unsubscribe(str(conversation_id), handler)

	def on_typing(self, conversation_id: int | str, handler: Handler) -> Subscription:
		return self._typing.subscribe(str(conversation_id), handler)

	def off_typing(self, conversation_id: int | str, handler: Handler) -> None:
		self._typing.unsubscribe(str(conversation_id), handler)

	def on_notification(self, handler: Handler) -> Subscription:
		return self._notifications.subscribe(_ANY, handler)

	def off_notification(self, handler: Handler) -> None:
		self._notifications.unsubscribe(_ANY, handler)

	def on_status_update(self, handler: Handler) -> Subscription:
		return self._status.subscribe(_ANY, handler)

	def off_status_update(self, handler: Handler) -> None:
		self._status.unsubscribe(_ANY, handler)

	def on_private_message(self, handler: Handler) -> Subscription:
		return self._private.subscribe(_ANY, handler)

	def off_private_message(self, handler: Handler) -> None:
		self._private.unsubscribe(_ANY, handler)

	# --- inbound events -----------------------------------------------------------

	async def _handle_event(self, event: str, *args: Any) -> None:
		name = channels.normalise_event(event)
		channel, data = _split_args(args)
		obs_metrics.realtime_event(name)
		ctx = bind_context(channel=channel or None)
		try:
			await self._route(name, channel, data)
		except PayloadDecodeError as exc:
			obs_metrics.realtime_dropped(name)
			logger.warning("dropping undecodable realtime event", extra={"event": name, "reason": exc.detail})
		finally:
			reset_context(ctx)

	async def _route(self, name: str, channel: str, data: Any) -> None:
		conversation_id = channels.conversation_from_channel(channel)
		if conversation_id is not None:
			if name == channels.NEW_MESSAGE:
				await self._messages.dispatch(conversation_id, schemas.decode_message(data))
			elif name == channels.USER_TYPING:
				await self._typing.dispatch(conversation_id, schemas.decode_typing(data, conversation_id=conversation_id))
			elif name in (channels.MESSAGE_READ, channels.MESSAGE_DELIVERED):
				status = "read" if name == channels.MESSAGE_READ else "delivered"
				update = schemas.decode_status(data, default_status=status, conversation_id=conversation_id)
				await self._status.dispatch(_ANY, update)
			return
		if channels.is_notification_channel(channel):
			if name == channels.NEW_NOTIFICATION:
				await self._notifications.dispatch(_ANY, schemas.decode_notification(data))
			return
		if channels.is_user_channel(channel):
			if name == channels.PRIVATE_MESSAGE:
				await self._private.dispatch(_ANY, schemas.decode_message(data))
			elif name == channels.STATUS_UPDATED:
				await self._status.dispatch(_ANY, schemas.decode_status(data, default_status="updated"))
			return
		logger.debug("ignoring event on unknown channel", extra={"event": name})


__all__ = ["RealtimeTransport", "default_client_factory"]
