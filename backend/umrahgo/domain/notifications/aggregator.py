"""Process-wide notification list and unread badge.

The aggregator mirrors the backend's unread count and keeps the in-memory list
of chat notifications pushed over the realtime notification channel. The
mirror only moves to values the backend has confirmed: refresh failures leave
it untouched, and read/clear operations adjust it only after a successful call.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import List, Optional

from umrahgo.domain.chat.links import chat_url
from umrahgo.domain.chat.models import ChatNotification
from umrahgo.domain.identity.bridge import AuthBridge
from umrahgo.infra.backend import BackendClient
from umrahgo.infra.errors import BackendError
from umrahgo.obs import metrics as obs_metrics
from umrahgo.realtime.registry import Subscription
from umrahgo.realtime.transport import RealtimeTransport
from umrahgo.settings import Settings, settings as default_settings

from .toasts import Toast, ToastAction, ToastKind, ToastSink

logger = logging.getLogger(__name__)

NOTIFICATION_SOUND = "/sounds/notification.mp3"


class NotificationAggregator:
	def __init__(
		self,
		*,
		transport: RealtimeTransport,
		bridge: AuthBridge,
		backend: BackendClient,
		toasts: ToastSink,
		config: Settings | None = None,
	) -> None:
		self._transport = transport
		self._bridge = bridge
		self._backend = backend
		self._toasts = toasts
		self._settings = config or default_settings
		self._notifications: List[ChatNotification] = []
		self._unread = 0
		self._open_conversation_id: Optional[str] = None
		self._subscriptions: List[Subscription] = []
		self._poll_task: Optional[asyncio.Task] = None

	@property
	def unread_count(self) -> int:
		return self._unread

	@property
	def notifications(self) -> List[ChatNotification]:
		return list(self._notifications)

	def set_open_conversation(self, conversation_id: Optional[str]) -> None:
		self._open_conversation_id = str(conversation_id) if conversation_id not in (None, "") else None

	# --- lifecycle ----------------------------------------------------------------

	async def start(self) -> None:
		if self._subscriptions:
			return
		self._subscriptions = [
			self._transport.on_notification(self._handle_notification),
			self._bridge.events.on_stored(self._handle_auth_stored),
			self._bridge.events.on_cleared(self._handle_auth_cleared),
		]
		await self.refresh_unread_count()
		self._poll_task = asyncio.create_task(self._poll(), name="notifications-unread-poll")

	async def stop(self) -> None:
		for subscription in self._subscriptions:
			subscription.dispose()
		self._subscriptions = []
		task, self._poll_task = self._poll_task, None
		if task is not None:
			task.cancel()
			with suppress(asyncio.CancelledError):
				await task

	async def _poll(self) -> None:
		interval = max(0.05, float(self._settings.unread_poll_interval_seconds))
		while True:
			await asyncio.sleep(interval)
			try:
				await self.refresh_unread_count()
			except asyncio.CancelledError:
				raise
			except Exception:
				logger.exception("unread poll iteration failed")

	async def _handle_auth_stored(self, _payload: object = None) -> None:
		await self.refresh_unread_count()

	async def _handle_auth_cleared(self, _payload: object = None) -> None:
		self._notifications = []
		self._unread = 0

	# --- unread mirror ------------------------------------------------------------

	async def refresh_unread_count(self) -> int:
		"""Fetch the authoritative count; never raises."""
		try:
			token = await self._bridge.get_token()
		except Exception:
			obs_metrics.inc_unread_refresh("error")
			logger.exception("unread count refresh could not read credentials")
			return self._unread
		if not token:
			obs_metrics.inc_unread_refresh("no_token")
			return self._unread
		try:
			count = await self._backend.unread_count(token)
		except BackendError as exc:
			obs_metrics.inc_unread_refresh("error")
			logger.info("unread count refresh failed", extra={"status": exc.status_code, "reason": exc.detail})
			return self._unread
		self._unread = max(0, count)
		obs_metrics.inc_unread_refresh("ok")
		return self._unread

	async def mark_all_as_read(self) -> bool:
		token = await self._bridge.get_token()
		if not token:
			self._toast(ToastKind.ERROR, "Please login to manage notifications")
			return False
		try:
			confirmed = await self._backend.mark_all_notifications_read(token)
		except BackendError as exc:
			logger.warning("mark all notifications read failed", extra={"status": exc.status_code})
			self._toast(ToastKind.ERROR, "Failed to mark all notifications as read")
			return False
		if not confirmed:
			self._toast(ToastKind.ERROR, "Failed to mark all notifications as read")
			return False
		for notification in self._notifications:
			notification.is_read = True
		self._unread = 0
		obs_metrics.inc_notification_read("all")
		self._toast(ToastKind.SUCCESS, "All notifications marked as read")
		return True

	def _find(self, notification_id: str) -> Optional[ChatNotification]:
		for notification in self._notifications:
			if notification.id == str(notification_id):
				return notification
		return None

	async def mark_as_read(self, notification_id: str) -> bool:
		notification = self._find(notification_id)
		if notification is not None and notification.is_read:
			return True
		token = await self._bridge.get_token()
		if not token:
			return False
		try:
			confirmed = await self._backend.mark_notification_read(token, str(notification_id))
		except BackendError as exc:
			logger.warning("mark notification read failed", extra={"status": exc.status_code})
			self._toast(ToastKind.ERROR, "Failed to mark notification as read")
			return False
		if not confirmed:
			return False
		# Re-read: a concurrent call may have flipped it while the request was in flight
		notification = self._find(notification_id)
		if notification is not None and not notification.is_read:
			notification.is_read = True
			self._unread = max(0, self._unread - 1)
			obs_metrics.inc_notification_read("single")
		return True

	async def clear_notification(self, notification_id: str) -> bool:
		token = await self._bridge.get_token()
		if not token:
			return False
		try:
			confirmed = await self._backend.delete_notification(token, str(notification_id))
		except BackendError as exc:
			logger.warning("delete notification failed", extra={"status": exc.status_code})
			self._toast(ToastKind.ERROR, "Failed to delete notification")
			return False
		if not confirmed:
			return False
		notification = self._find(notification_id)
		if notification is not None:
			self._notifications = [item for item in self._notifications if item.id != notification.id]
			if not notification.is_read:
				self._unread = max(0, self._unread - 1)
		return True

	async def clear_all(self) -> int:
		"""Delete every listed notification; only backend-confirmed ones leave the list."""
		cleared = 0
		for notification in list(self._notifications):
			if await self.clear_notification(notification.id):
				cleared += 1
		return cleared

	# --- inbound ------------------------------------------------------------------

	async def _handle_notification(self, notification: ChatNotification) -> None:
		obs_metrics.inc_notification_received()
		if self._find(notification.id) is not None:
			return
		self._notifications.insert(0, notification)
		if not notification.is_read:
			self._unread += 1
		if notification.conversation_id and notification.conversation_id == self._open_conversation_id:
			return
		self._toast(
			ToastKind.INFO,
			notification.sender_display_name or notification.title or "رسالة جديدة",
			description=notification.message_preview,
			action=self._view_action(notification.conversation_id),
			sound=NOTIFICATION_SOUND,
		)

	def _view_action(self, conversation_id: Optional[str]) -> Optional[ToastAction]:
		if not conversation_id:
			return None
		actor = self._bridge.current
		role = actor.role.path_segment if actor is not None else None
		return ToastAction(label="عرض", url=chat_url(conversation_id, locale=self._settings.default_locale, role=role))

	def _toast(
		self,
		kind: ToastKind,
		title: str,
		*,
		description: str = "",
		action: Optional[ToastAction] = None,
		sound: Optional[str] = None,
	) -> None:
		self._toasts.show(Toast(kind=kind, title=title, description=description, action=action, sound=sound))


__all__ = ["NotificationAggregator"]
