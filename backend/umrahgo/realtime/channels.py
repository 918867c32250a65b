"""Channel naming and event names for the pub/sub transport."""

from __future__ import annotations

import re
from typing import Optional

PRIVATE_PREFIX = "private-"

NEW_MESSAGE = "new-message"
USER_TYPING = "user-typing"
MESSAGE_READ = "message-read"
MESSAGE_DELIVERED = "message-delivered"
PRIVATE_MESSAGE = "message"
STATUS_UPDATED = "status.updated"
NEW_NOTIFICATION = "new-notification"

CONVERSATION_EVENTS = (NEW_MESSAGE, USER_TYPING, MESSAGE_READ, MESSAGE_DELIVERED)
USER_EVENTS = (PRIVATE_MESSAGE, STATUS_UPDATED)
NOTIFICATION_EVENTS = (NEW_NOTIFICATION,)
ALL_EVENTS = CONVERSATION_EVENTS + USER_EVENTS + NOTIFICATION_EVENTS

_CONVERSATION_RE = re.compile(r"^private-chat\.(?P<conversation>[^.]+)$")
_NOTIFICATION_RE = re.compile(r"^private-user\.(?P<actor>[^.]+)\.notifications$")
_USER_RE = re.compile(r"^private-user\.(?P<actor>[^.]+)$")


def user_channel(actor_id: int | str) -> str:
	return f"{PRIVATE_PREFIX}user.{actor_id}"


def notification_channel(actor_id: int | str) -> str:
	return f"{PRIVATE_PREFIX}user.{actor_id}.notifications"


def conversation_channel(conversation_id: int | str) -> str:
	return f"{PRIVATE_PREFIX}chat.{conversation_id}"


def conversation_from_channel(channel: str) -> Optional[str]:
	match = _CONVERSATION_RE.match(channel or "")
	return match.group("conversation") if match else None


def is_notification_channel(channel: str) -> bool:
	return bool(_NOTIFICATION_RE.match(channel or ""))


def is_user_channel(channel: str) -> bool:
	return bool(_USER_RE.match(channel or ""))


def normalise_event(event: str) -> str:
	"""Broadcast events may arrive with a leading dot or a class-style namespace."""
	name = (event or "").strip()
	if "\\" in name:
		name = name.rsplit("\\", 1)[-1]
	return name.lstrip(".")
