"""Domain models for chat rooms, messages and realtime signals."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class RoomKind(str, Enum):
	PRIVATE = "private"
	GROUP = "group"
	BROADCAST = "broadcast"


class ContentType(str, Enum):
	TEXT = "text"
	IMAGE = "image"
	DOCUMENT = "document"
	SYSTEM = "system"


class MessageStatus(str, Enum):
	SENDING = "sending"
	SENT = "sent"
	DELIVERED = "delivered"
	READ = "read"
	FAILED = "failed"

	@property
	def rank(self) -> int:
		return _STATUS_RANK[self]

	@property
	def is_terminal(self) -> bool:
		return self in (MessageStatus.READ, MessageStatus.FAILED)

	def can_advance_to(self, target: "MessageStatus") -> bool:
		"""Statuses only move forward; ``failed`` is reachable from ``sending`` alone."""
		if self.is_terminal:
			return False
		if target is MessageStatus.FAILED:
			return self is MessageStatus.SENDING
		return target.rank > self.rank


_STATUS_RANK: Dict[MessageStatus, int] = {
	MessageStatus.SENDING: 0,
	MessageStatus.SENT: 1,
	MessageStatus.DELIVERED: 2,
	MessageStatus.READ: 3,
	MessageStatus.FAILED: 0,
}


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _id_key(value: str) -> Tuple[int, Any]:
	# Numeric backend ids sort numerically; client ids fall back to text order
	return (0, int(value)) if value.isdigit() else (1, value)


@dataclass(slots=True, frozen=True)
class ParticipantRef:
	user_id: int
	display_name: str = ""
	role: Optional[str] = None


@dataclass(slots=True)
class ChatMessage:
	id: str
	conversation_id: str
	sender_id: int
	sender_display_name: str
	body: str
	sent_at: datetime
	content_type: ContentType = ContentType.TEXT
	status: MessageStatus = MessageStatus.SENT
	delivered_at: Optional[datetime] = None
	read_at: Optional[datetime] = None
	client_msg_id: Optional[str] = None

	def sort_key(self) -> Tuple[datetime, Tuple[int, Any]]:
		return (self.sent_at, _id_key(self.id))

	def with_status(self, status: MessageStatus, *, at: Optional[datetime] = None) -> "ChatMessage":
		when = at or utcnow()
		changes: Dict[str, Any] = {"status": status}
		if status is MessageStatus.DELIVERED and self.delivered_at is None:
			changes["delivered_at"] = when
		if status is MessageStatus.READ:
			changes["read_at"] = self.read_at or when
			changes["delivered_at"] = self.delivered_at or when
		return replace(self, **changes)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"conversation_id": self.conversation_id,
			"sender_id": self.sender_id,
			"sender_display_name": self.sender_display_name,
			"body": self.body,
			"content_type": self.content_type.value,
			"status": self.status.value,
			"sent_at": self.sent_at.isoformat(),
			"delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
			"read_at": self.read_at.isoformat() if self.read_at else None,
			"client_msg_id": self.client_msg_id,
		}


@dataclass(slots=True)
class ChatRoom:
	id: str
	kind: RoomKind = RoomKind.PRIVATE
	name: str = ""
	participants: FrozenSet[ParticipantRef] = field(default_factory=frozenset)
	last_message: Optional[ChatMessage] = None
	unread_count: int = 0
	is_archived: bool = False
	is_active: bool = True

	def participant_ids(self) -> FrozenSet[int]:
		return frozenset(ref.user_id for ref in self.participants)

	def last_activity(self) -> Optional[datetime]:
		return self.last_message.sent_at if self.last_message else None


@dataclass(slots=True)
class TypingSignal:
	conversation_id: str
	user_id: int
	user_display_name: str
	is_typing: bool
	observed_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class StatusUpdate:
	"""A receipt (delivered/read) or presence change pushed by another participant."""

	conversation_id: Optional[str]
	user_id: Optional[int]
	status: str
	message_id: Optional[str] = None
	at: datetime = field(default_factory=utcnow)

	def message_status(self) -> Optional[MessageStatus]:
		try:
			return MessageStatus(self.status)
		except ValueError:
			return None


@dataclass(slots=True)
class ChatNotification:
	id: str
	conversation_id: Optional[str]
	sender_id: Optional[int]
	sender_display_name: str
	message_preview: str
	created_at: datetime
	is_read: bool = False
	title: Optional[str] = None


__all__ = [
	"ChatMessage",
	"ChatNotification",
	"ChatRoom",
	"ContentType",
	"MessageStatus",
	"ParticipantRef",
	"RoomKind",
	"StatusUpdate",
	"TypingSignal",
	"utcnow",
]
