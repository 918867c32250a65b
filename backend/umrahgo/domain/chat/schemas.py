"""Pydantic schemas decoding backend and broadcast payloads into chat models."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from umrahgo.infra.errors import PayloadDecodeError

from .models import (
	ChatMessage,
	ChatNotification,
	ChatRoom,
	ContentType,
	MessageStatus,
	ParticipantRef,
	RoomKind,
	StatusUpdate,
	TypingSignal,
	utcnow,
)


class _WireModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	@field_validator("*", mode="after")
	def _aware_datetimes(cls, value: Any) -> Any:  # type: ignore[override]
		# Naive timestamps from the backend are UTC
		if isinstance(value, datetime) and value.tzinfo is None:
			return value.replace(tzinfo=timezone.utc)
		return value


class SenderPayload(_WireModel):
	id: Optional[int] = None
	name: str = ""


class MessagePayload(_WireModel):
	id: str = Field(validation_alias=AliasChoices("id", "message_id", "messageId"))
	conversation_id: str = Field(validation_alias=AliasChoices("chat_id", "chatId", "conversation_id"))
	sender_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("sender_id", "senderId", "user_id"))
	sender_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("sender_name", "senderName"))
	sender: Optional[SenderPayload] = None
	body: str = Field(default="", validation_alias=AliasChoices("message", "content", "body"))
	content_type: ContentType = Field(default=ContentType.TEXT, validation_alias=AliasChoices("type", "message_type", "content_type"))
	sent_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("created_at", "sent_at", "sentAt"))
	delivered_at: Optional[datetime] = None
	read_at: Optional[datetime] = None
	is_read: bool = False
	client_msg_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("client_msg_id", "clientMsgId"))

	@field_validator("id", "conversation_id", mode="before")
	def _stringify(cls, value: Any) -> str:  # type: ignore[override]
		if value in (None, ""):
			raise ValueError("identifier required")
		return str(value)

	@field_validator("content_type", mode="before")
	def _content_type(cls, value: Any) -> Any:  # type: ignore[override]
		if isinstance(value, str) and value.lower() in ContentType._value2member_map_:
			return value.lower()
		if value in ("file", "attachment"):
			return ContentType.DOCUMENT
		return ContentType.TEXT

	def to_model(self) -> ChatMessage:
		sender_id = self.sender_id
		if sender_id is None and self.sender is not None:
			sender_id = self.sender.id
		if sender_id is None:
			raise PayloadDecodeError("message: missing sender")
		display = self.sender_name or (self.sender.name if self.sender else "") or ""
		if self.read_at is not None or self.is_read:
			status = MessageStatus.READ
		elif self.delivered_at is not None:
			status = MessageStatus.DELIVERED
		else:
			status = MessageStatus.SENT
		return ChatMessage(
			id=self.id,
			conversation_id=self.conversation_id,
			sender_id=int(sender_id),
			sender_display_name=display,
			body=self.body,
			content_type=self.content_type,
			status=status,
			sent_at=self.sent_at or utcnow(),
			delivered_at=self.delivered_at,
			read_at=self.read_at,
			client_msg_id=self.client_msg_id,
		)


class TypingPayload(_WireModel):
	conversation_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("chat_id", "chatId", "conversation_id"))
	user_id: int = Field(validation_alias=AliasChoices("user_id", "userId", "sender_id"))
	user_name: str = Field(default="", validation_alias=AliasChoices("user_name", "userName", "name"))
	is_typing: bool = Field(default=True, validation_alias=AliasChoices("is_typing", "isTyping", "typing"))

	@field_validator("conversation_id", mode="before")
	def _stringify(cls, value: Any) -> Optional[str]:  # type: ignore[override]
		return None if value in (None, "") else str(value)

	def to_model(self, fallback_conversation: Optional[str] = None) -> TypingSignal:
		conversation_id = self.conversation_id or fallback_conversation
		if not conversation_id:
			raise PayloadDecodeError("typing: missing conversation")
		return TypingSignal(
			conversation_id=conversation_id,
			user_id=self.user_id,
			user_display_name=self.user_name,
			is_typing=self.is_typing,
		)


class StatusPayload(_WireModel):
	conversation_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("chat_id", "chatId", "conversation_id"))
	message_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("message_id", "messageId"))
	user_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("user_id", "userId", "reader_id"))
	status: Optional[str] = None
	at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("read_at", "delivered_at", "updated_at", "at"))

	@field_validator("conversation_id", "message_id", mode="before")
	def _stringify(cls, value: Any) -> Optional[str]:  # type: ignore[override]
		return None if value in (None, "") else str(value)

	def to_model(self, *, default_status: str, fallback_conversation: Optional[str] = None) -> StatusUpdate:
		return StatusUpdate(
			conversation_id=self.conversation_id or fallback_conversation,
			user_id=self.user_id,
			status=(self.status or default_status).lower(),
			message_id=self.message_id,
			at=self.at or utcnow(),
		)


class NotificationPayload(_WireModel):
	id: str
	title: Optional[str] = None
	preview: str = Field(default="", validation_alias=AliasChoices("message", "body", "content", "message_preview"))
	sender_id: Optional[int] = None
	sender_name: str = Field(default="", validation_alias=AliasChoices("sender_name", "senderName"))
	conversation_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("chat_id", "chatId", "conversation_id"))
	created_at: Optional[datetime] = None
	read_at: Optional[datetime] = None
	is_read: bool = False
	data: Dict[str, Any] = Field(default_factory=dict)

	@field_validator("id", mode="before")
	def _stringify_id(cls, value: Any) -> str:  # type: ignore[override]
		if value in (None, ""):
			raise ValueError("identifier required")
		return str(value)

	@field_validator("conversation_id", mode="before")
	def _stringify(cls, value: Any) -> Optional[str]:  # type: ignore[override]
		return None if value in (None, "") else str(value)

	@field_validator("data", mode="before")
	def _decode_data(cls, value: Any) -> Dict[str, Any]:  # type: ignore[override]
		# Database notifications carry their data column as a JSON string
		if isinstance(value, str):
			try:
				value = json.loads(value)
			except ValueError:
				return {}
		return value if isinstance(value, dict) else {}

	def to_model(self) -> ChatNotification:
		data = self.data
		conversation_id = self.conversation_id or data.get("chat_id") or data.get("conversation_id")
		sender_id = self.sender_id if self.sender_id is not None else data.get("sender_id")
		return ChatNotification(
			id=self.id,
			conversation_id=str(conversation_id) if conversation_id not in (None, "") else None,
			sender_id=int(sender_id) if sender_id not in (None, "") else None,
			sender_display_name=self.sender_name or str(data.get("sender_name") or ""),
			message_preview=self.preview or str(data.get("message") or data.get("body") or ""),
			created_at=self.created_at or utcnow(),
			is_read=self.is_read or self.read_at is not None,
			title=self.title or data.get("title"),
		)


class ParticipantPayload(_WireModel):
	id: int = Field(validation_alias=AliasChoices("id", "user_id"))
	name: str = ""
	role: Optional[str] = Field(default=None, validation_alias=AliasChoices("role", "user_type", "type"))


class RoomPayload(_WireModel):
	id: str
	kind: RoomKind = Field(default=RoomKind.PRIVATE, validation_alias=AliasChoices("type", "kind"))
	name: str = Field(default="", validation_alias=AliasChoices("name", "title"))
	participants: List[ParticipantPayload] = Field(default_factory=list)
	last_message: Optional[MessagePayload] = None
	unread_count: int = 0
	is_archived: bool = False
	is_active: bool = True

	@field_validator("id", mode="before")
	def _stringify(cls, value: Any) -> str:  # type: ignore[override]
		if value in (None, ""):
			raise ValueError("identifier required")
		return str(value)

	@field_validator("kind", mode="before")
	def _kind(cls, value: Any) -> Any:  # type: ignore[override]
		if isinstance(value, str) and value.lower() in RoomKind._value2member_map_:
			return value.lower()
		return RoomKind.PRIVATE

	@field_validator("unread_count", mode="before")
	def _unread(cls, value: Any) -> int:  # type: ignore[override]
		try:
			return max(0, int(value or 0))
		except (TypeError, ValueError):
			return 0

	def to_model(self) -> ChatRoom:
		last_message: Optional[ChatMessage] = None
		if self.last_message is not None:
			try:
				last_message = self.last_message.to_model()
			except PayloadDecodeError:
				last_message = None
		return ChatRoom(
			id=self.id,
			kind=self.kind,
			name=self.name,
			participants=frozenset(
				ParticipantRef(user_id=item.id, display_name=item.name, role=item.role) for item in self.participants
			),
			last_message=last_message,
			unread_count=self.unread_count,
			is_archived=self.is_archived,
			is_active=self.is_active,
		)


def _coerce(raw: Any) -> Dict[str, Any]:
	if isinstance(raw, (bytes, bytearray)):
		raw = raw.decode("utf-8", errors="replace")
	if isinstance(raw, str):
		try:
			raw = json.loads(raw)
		except ValueError as exc:
			raise PayloadDecodeError("invalid_json") from exc
	if not isinstance(raw, dict):
		raise PayloadDecodeError("payload must be an object")
	return raw


def decode_message(raw: Any) -> ChatMessage:
	data = _coerce(raw)
	# Broadcast events wrap the message under a ``message`` key
	if isinstance(data.get("message"), dict):
		data = data["message"]
	try:
		return MessagePayload.model_validate(data).to_model()
	except ValidationError as exc:
		raise PayloadDecodeError(f"message: {exc.error_count()} invalid field(s)") from exc


def decode_typing(raw: Any, *, conversation_id: Optional[str] = None) -> TypingSignal:
	try:
		return TypingPayload.model_validate(_coerce(raw)).to_model(conversation_id)
	except ValidationError as exc:
		raise PayloadDecodeError(f"typing: {exc.error_count()} invalid field(s)") from exc


def decode_status(raw: Any, *, default_status: str, conversation_id: Optional[str] = None) -> StatusUpdate:
	try:
		payload = StatusPayload.model_validate(_coerce(raw))
	except ValidationError as exc:
		raise PayloadDecodeError(f"status: {exc.error_count()} invalid field(s)") from exc
	return payload.to_model(default_status=default_status, fallback_conversation=conversation_id)


def decode_notification(raw: Any) -> ChatNotification:
	data = _coerce(raw)
	if isinstance(data.get("notification"), dict):
		data = data["notification"]
	try:
		return NotificationPayload.model_validate(data).to_model()
	except ValidationError as exc:
		raise PayloadDecodeError(f"notification: {exc.error_count()} invalid field(s)") from exc
	except (TypeError, ValueError) as exc:
		raise PayloadDecodeError("notification: invalid sender") from exc


def decode_room(raw: Any) -> ChatRoom:
	try:
		return RoomPayload.model_validate(_coerce(raw)).to_model()
	except ValidationError as exc:
		raise PayloadDecodeError(f"room: {exc.error_count()} invalid field(s)") from exc


__all__ = [
	"MessagePayload",
	"NotificationPayload",
	"RoomPayload",
	"StatusPayload",
	"TypingPayload",
	"decode_message",
	"decode_notification",
	"decode_room",
	"decode_status",
	"decode_typing",
]
