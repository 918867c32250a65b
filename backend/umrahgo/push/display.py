"""OS notification rendering with tag replacement."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from umrahgo.domain.chat.models import utcnow

from .payload import PushPayload

DEFAULT_TITLE = "رسالة جديدة"
DEFAULT_BODY = "لديك رسالة جديدة"
DEFAULT_ICON = "/icons/icon-192x192.png"
BADGE = "/icons/badge-72x72.png"
SOUND = "/sounds/notification.mp3"
DEFAULT_TAG = "default"
VIBRATE_PATTERN: Tuple[int, ...] = (200, 100, 200)


@dataclass(slots=True, frozen=True)
class NotificationAction:
	action: str
	title: str


ACTIONS: Tuple[NotificationAction, ...] = (
	NotificationAction(action="view", title="عرض"),
	NotificationAction(action="close", title="إغلاق"),
)


@dataclass(slots=True)
class DisplayedNotification:
	tag: str
	title: str
	body: str
	icon: str
	data: Dict[str, Any]
	badge: str = BADGE
	actions: Tuple[NotificationAction, ...] = ACTIONS
	require_interaction: bool = True
	vibrate: Tuple[int, ...] = VIBRATE_PATTERN
	sound: str = SOUND
	shown_at: datetime = field(default_factory=utcnow)

	def to_dict(self) -> dict:
		return {
			"tag": self.tag,
			"title": self.title,
			"body": self.body,
			"icon": self.icon,
			"badge": self.badge,
			"data": dict(self.data),
			"actions": [{"action": item.action, "title": item.title} for item in self.actions],
			"requireInteraction": self.require_interaction,
			"vibrate": list(self.vibrate),
			"sound": self.sound,
			"shown_at": self.shown_at.isoformat(),
		}


def render(payload: PushPayload) -> DisplayedNotification:
	return DisplayedNotification(
		tag=payload.conversation_id or DEFAULT_TAG,
		title=payload.title or DEFAULT_TITLE,
		body=payload.body or DEFAULT_BODY,
		icon=payload.icon or DEFAULT_ICON,
		data=dict(payload.data),
	)


class NotificationDisplay:
	"""Visible notifications keyed by tag; showing a tag again replaces the earlier one."""

	def __init__(self) -> None:
		self._visible: "OrderedDict[str, DisplayedNotification]" = OrderedDict()

	def __len__(self) -> int:
		return len(self._visible)

	def show(self, notification: DisplayedNotification) -> Optional[DisplayedNotification]:
		"""Display a notification; returns the one it replaced, if any."""
		replaced = self._visible.pop(notification.tag, None)
		self._visible[notification.tag] = notification
		return replaced

	def get(self, tag: str) -> Optional[DisplayedNotification]:
		return self._visible.get(tag)

	def close(self, tag: str) -> Optional[DisplayedNotification]:
		return self._visible.pop(tag, None)

	def visible(self) -> List[DisplayedNotification]:
		return list(self._visible.values())


__all__ = [
	"ACTIONS",
	"DEFAULT_BODY",
	"DEFAULT_TITLE",
	"DisplayedNotification",
	"NotificationAction",
	"NotificationDisplay",
	"render",
]
