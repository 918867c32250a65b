"""Per-view chat session bound to the shared realtime transport.

A ``ChatSession`` is what an open chat screen (or a badge that only needs the
connection) holds. ``mount`` connects if needed and joins the conversation
channel; ``unmount`` leaves it and cancels every timer the session started.
Results of backend calls that finish after ``unmount`` are discarded.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from umrahgo.domain.identity.bridge import AuthBridge
from umrahgo.domain.identity.models import ActorIdentity
from umrahgo.infra.errors import BackendError
from umrahgo.obs import metrics as obs_metrics
from umrahgo.realtime.registry import Subscription
from umrahgo.realtime.state import ConnectionState
from umrahgo.realtime.transport import RealtimeTransport
from umrahgo.settings import Settings, settings as default_settings

from .models import ChatMessage, ContentType, StatusUpdate, TypingSignal, utcnow
from .service import ChatService
from .timeline import MessageTimeline

logger = logging.getLogger(__name__)

Callback = Callable[[Any], Any]


@dataclass(slots=True)
class TypingEntry:
	display_name: str
	last_seen_at: datetime


async def _notify(callback: Optional[Callback], value: Any) -> None:
	if callback is None:
		return
	try:
		result = callback(value)
		if inspect.isawaitable(result):
			await result
	except Exception:
		logger.exception("chat session callback failed")


class ChatSession:
	def __init__(
		self,
		*,
		transport: RealtimeTransport,
		bridge: AuthBridge,
		service: ChatService,
		conversation_id: Optional[str] = None,
		actor_role: Optional[str] = None,
		on_new_message: Optional[Callback] = None,
		on_typing_indicator: Optional[Callback] = None,
		on_connection_status_change: Optional[Callback] = None,
		config: Settings | None = None,
	) -> None:
		self._transport = transport
		self._bridge = bridge
		self._service = service
		self._settings = config or default_settings
		self._conversation_id = str(conversation_id) if conversation_id not in (None, "") else None
		self._actor_role = actor_role
		self._on_new_message = on_new_message
		self._on_typing_indicator = on_typing_indicator
		self._on_connection_status_change = on_connection_status_change
		self._mounted = False
		self._actor: Optional[ActorIdentity] = None
		self._bound_id: Optional[str] = None
		self._subscriptions: List[Subscription] = []
		self._state_subscription: Optional[Subscription] = None
		self._auth_subscription: Optional[Subscription] = None
		self._bind_lock = asyncio.Lock()
		self._typing: Dict[int, TypingEntry] = {}
		self._typing_timers: Dict[int, asyncio.Task] = {}
		self._liveness_task: Optional[asyncio.Task] = None
		self._failures = 0
		self.connection_status = transport.state
		self.timeline: Optional[MessageTimeline] = None

	# --- read access --------------------------------------------------------------

	@property
	def conversation_id(self) -> Optional[str]:
		return self._conversation_id

	@property
	def mounted(self) -> bool:
		return self._mounted

	@property
	def consecutive_failures(self) -> int:
		return self._failures

	def is_connected(self) -> bool:
		return self._transport.is_connected()

	def typing_users(self) -> Dict[int, TypingEntry]:
		return dict(self._typing)

	# --- lifecycle ----------------------------------------------------------------

	async def mount(self) -> bool:
		if self._mounted:
			return self.is_connected()
		self._mounted = True
		self._state_subscription = self._transport.on_state_change(self._handle_state)
		self._auth_subscription = self._bridge.events.on_stored(self._handle_auth_stored)
		async with self._bind_lock:
			connected = await self._bind(self._conversation_id)
		if self._mounted and self._liveness_task is None:
			self._liveness_task = asyncio.create_task(self._liveness_loop(), name="chat-liveness")
		return connected

	async def unmount(self) -> None:
		if not self._mounted:
			return
		self._mounted = False
		task, self._liveness_task = self._liveness_task, None
		if task is not None:
			task.cancel()
			with suppress(asyncio.CancelledError):
				await task
		await self._unbind()
		for subscription in (self._state_subscription, self._auth_subscription):
			if subscription is not None:
				subscription.dispose()
		self._state_subscription = None
		self._auth_subscription = None

	async def set_conversation(self, conversation_id: Optional[str]) -> None:
		target = str(conversation_id) if conversation_id not in (None, "") else None
		if target == self._conversation_id:
			return
		async with self._bind_lock:
			await self._unbind()
			self._conversation_id = target
			if self._mounted:
				await self._bind(target)

	async def _bind(self, conversation_id: Optional[str]) -> bool:
		actor = await self._bridge.get_current_actor()
		if not self._mounted:
			return False
		if actor is None:
			await self._report(ConnectionState.NO_USER)
			return False
		self._actor = actor
		role = self._actor_role or actor.role.value
		connected = self._transport.is_connected() or await self._transport.connect(actor.id, role)
		if not self._mounted:
			return False
		await self._report(self._transport.state)
		if conversation_id is None or conversation_id != self._conversation_id or conversation_id == self._bound_id:
			return connected
		self.timeline = MessageTimeline(conversation_id)
		self._subscriptions = [
			self._transport.on_message(conversation_id, self._handle_message),
			self._transport.on_typing(conversation_id, self._handle_typing),
			self._transport.on_status_update(self._handle_status),
		]
		self._bound_id = conversation_id
		await self._transport.subscribe_to_conversation(conversation_id)
		return connected

	async def _unbind(self) -> None:
		for subscription in self._subscriptions:
			subscription.dispose()
		self._subscriptions = []
		self._clear_typing()
		bound, self._bound_id = self._bound_id, None
		if bound is not None:
			await self._transport.leave_conversation(bound)

	async def _ensure_bound(self) -> None:
		"""Join the open conversation if an earlier bind found no actor."""
		if not self._mounted or self._conversation_id is None or self._bound_id is not None:
			return
		async with self._bind_lock:
			if self._mounted and self._conversation_id is not None and self._bound_id is None:
				await self._bind(self._conversation_id)

	async def _handle_auth_stored(self, _payload: object = None) -> None:
		await self._ensure_bound()

	# --- connection state ---------------------------------------------------------

	async def _report(self, state: ConnectionState) -> None:
		if state is self.connection_status:
			return
		self.connection_status = state
		await _notify(self._on_connection_status_change, state)

	async def _handle_state(self, state: ConnectionState) -> None:
		if self._mounted:
			await self._report(state)

	async def retry_connection(self) -> bool:
		"""Force a disconnect and reconnect cycle."""
		self._failures = 0
		await self._transport.disconnect()
		await asyncio.sleep(max(0.0, float(self._settings.retry_delay_seconds)))
		if not self._mounted:
			return False
		actor = await self._bridge.get_current_actor()
		if actor is None:
			await self._report(ConnectionState.NO_USER)
			obs_metrics.inc_reconnect("manual", "no_user")
			return False
		ok = await self._transport.connect(actor.id, self._actor_role or actor.role.value)
		obs_metrics.inc_reconnect("manual", "ok" if ok else "failed")
		if self._mounted:
			await self._report(self._transport.state)
		return ok

	def next_liveness_delay(self) -> float:
		"""Liveness interval, doubled per consecutive failed reconnect and capped."""
		interval = max(0.05, float(self._settings.liveness_interval_seconds))
		if self._failures <= 0:
			return interval
		ceiling = max(interval, float(self._settings.reconnect_backoff_max_seconds))
		return min(interval * (2 ** self._failures), ceiling)

	async def check_liveness(self) -> bool:
		if self._transport.is_connected():
			self._failures = 0
			await self._ensure_bound()
			return True
		actor = await self._bridge.get_current_actor()
		if not self._mounted:
			return False
		if actor is None:
			await self._report(ConnectionState.NO_USER)
			return False
		ok = await self._transport.connect(actor.id, self._actor_role or actor.role.value)
		if ok:
			self._failures = 0
			obs_metrics.inc_reconnect("liveness", "ok")
			await self._ensure_bound()
		else:
			self._failures += 1
			obs_metrics.inc_reconnect("liveness", "failed")
			logger.info("silent reconnect failed", extra={"failures": self._failures})
		return ok

	async def _liveness_loop(self) -> None:
		while self._mounted:
			await asyncio.sleep(self.next_liveness_delay())
			if not self._mounted:
				return
			try:
				await self.check_liveness()
			except asyncio.CancelledError:
				raise
			except Exception:
				self._failures += 1
				logger.exception("liveness check failed")

	# --- inbound events -----------------------------------------------------------

	async def _handle_message(self, message: ChatMessage) -> None:
		if not self._mounted or message.conversation_id != self._bound_id or self.timeline is None:
			return
		stored = self.timeline.upsert(message)
		if message.sender_id in self._typing:
			await self._expire_typing(message.sender_id)
		await _notify(self._on_new_message, stored)

	async def _handle_status(self, update: StatusUpdate) -> None:
		if not self._mounted or self.timeline is None or update.conversation_id != self._bound_id:
			return
		self.timeline.apply_receipt(update, own_actor_id=self._actor.id if self._actor else None)

	async def _handle_typing(self, signal: TypingSignal) -> None:
		if not self._mounted or signal.conversation_id != self._bound_id:
			return
		if self._actor is not None and signal.user_id == self._actor.id:
			return
		if not signal.is_typing:
			await self._expire_typing(signal.user_id)
			return
		self._typing[signal.user_id] = TypingEntry(signal.user_display_name, signal.observed_at)
		timer = self._typing_timers.pop(signal.user_id, None)
		if timer is not None:
			timer.cancel()
		self._typing_timers[signal.user_id] = asyncio.create_task(
			self._typing_countdown(signal.user_id),
			name=f"typing-expiry:{signal.user_id}",
		)
		await _notify(self._on_typing_indicator, signal)

	async def _typing_countdown(self, user_id: int) -> None:
		await asyncio.sleep(max(0.0, float(self._settings.typing_expiry_seconds)))
		# This task is about to finish; drop it first so expiry does not cancel itself
		self._typing_timers.pop(user_id, None)
		await self._expire_typing(user_id)

	async def _expire_typing(self, user_id: int) -> None:
		timer = self._typing_timers.pop(user_id, None)
		if timer is not None:
			timer.cancel()
		entry = self._typing.pop(user_id, None)
		if entry is None or self._bound_id is None:
			return
		await _notify(
			self._on_typing_indicator,
			TypingSignal(
				conversation_id=self._bound_id,
				user_id=user_id,
				user_display_name=entry.display_name,
				is_typing=False,
				observed_at=utcnow(),
			),
		)

	def _clear_typing(self) -> None:
		for timer in self._typing_timers.values():
			timer.cancel()
		self._typing_timers.clear()
		self._typing.clear()

	# --- outbound actions ---------------------------------------------------------

	async def send_typing_indicator(self, is_typing: bool) -> bool:
		if self._conversation_id is None:
			return False
		return await self._service.send_typing(self._conversation_id, is_typing)

	async def send_message(self, body: str, *, content_type: ContentType = ContentType.TEXT) -> Optional[ChatMessage]:
		if self._conversation_id is None or self._actor is None:
			return None
		return await self._service.send_message(
			self._conversation_id,
			body,
			sender_id=self._actor.id,
			sender_display_name=self._actor.display_name,
			content_type=content_type,
			timeline=self.timeline if self._bound_id == self._conversation_id else None,
		)

	async def resend(self, message: ChatMessage) -> ChatMessage:
		return await self._service.resend(message, self.timeline)

	async def load_history(self) -> List[ChatMessage]:
		if self._conversation_id is None:
			return []
		conversation_id = self._conversation_id
		messages = await self._service.load_messages(conversation_id)
		if not self._mounted or self.timeline is None or self._bound_id != conversation_id:
			return messages
		for message in messages:
			self.timeline.upsert(message)
		return self.timeline.messages()

	async def mark_read(self) -> bool:
		if self._conversation_id is None:
			return False
		try:
			confirmed = await self._service.mark_read(self._conversation_id)
		except BackendError as exc:
			logger.warning("mark read failed", extra={"status": exc.status_code})
			return False
		return bool(confirmed) and self._mounted


__all__ = ["ChatSession", "TypingEntry"]
