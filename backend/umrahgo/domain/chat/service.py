"""Chat backing service: conversation listing, history and message sending."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional

import ulid

from umrahgo.infra.backend import BackendClient
from umrahgo.infra.errors import BackendError, PayloadDecodeError, UnauthorizedError
from umrahgo.obs import metrics as obs_metrics

from .models import ChatMessage, ChatRoom, ContentType, MessageStatus, utcnow
from .schemas import decode_message, decode_room
from .timeline import MessageTimeline

logger = logging.getLogger(__name__)

TokenSource = Callable[[], Awaitable[Optional[str]]]


class ChatService:
	def __init__(self, *, backend: BackendClient, token_source: TokenSource) -> None:
		self._backend = backend
		self._token_source = token_source

	async def _token(self) -> str:
		token = await self._token_source()
		if not token:
			raise UnauthorizedError("no stored token")
		return token

	async def list_rooms(self) -> List[ChatRoom]:
		rows = await self._backend.list_chats(await self._token())
		rooms: List[ChatRoom] = []
		for row in rows:
			try:
				rooms.append(decode_room(row))
			except PayloadDecodeError as exc:
				logger.warning("skipping undecodable chat room", extra={"reason": exc.detail})
		return rooms

	async def load_messages(self, conversation_id: str, *, page: int = 1, per_page: int = 50) -> List[ChatMessage]:
		rows = await self._backend.list_messages(await self._token(), str(conversation_id), page=page, per_page=per_page)
		messages: List[ChatMessage] = []
		for row in rows:
			row.setdefault("chat_id", conversation_id)
			try:
				messages.append(decode_message(row))
			except PayloadDecodeError as exc:
				logger.warning("skipping undecodable message", extra={"reason": exc.detail})
		messages.sort(key=ChatMessage.sort_key)
		return messages

	async def load_timeline(self, conversation_id: str) -> MessageTimeline:
		timeline = MessageTimeline(str(conversation_id))
		for message in await self.load_messages(conversation_id):
			timeline.upsert(message)
		return timeline

	def compose(
		self,
		conversation_id: str,
		body: str,
		*,
		sender_id: int,
		sender_display_name: str = "",
		content_type: ContentType = ContentType.TEXT,
	) -> ChatMessage:
		"""Build the optimistic local copy; the client id doubles as its id until acked."""
		client_msg_id = str(ulid.new())
		return ChatMessage(
			id=client_msg_id,
			conversation_id=str(conversation_id),
			sender_id=sender_id,
			sender_display_name=sender_display_name,
			body=body,
			content_type=content_type,
			status=MessageStatus.SENDING,
			sent_at=utcnow(),
			client_msg_id=client_msg_id,
		)

	async def deliver(self, message: ChatMessage, timeline: MessageTimeline | None = None) -> ChatMessage:
		"""POST a composed message. Failures mark it ``failed`` instead of raising."""
		client_msg_id = message.client_msg_id or message.id
		try:
			payload = await self._backend.send_message(
				await self._token(),
				message.conversation_id,
				body=message.body,
				content_type=message.content_type.value,
				client_msg_id=client_msg_id,
			)
		except BackendError as exc:
			obs_metrics.inc_message_sent("failed")
			logger.warning(
				"message send failed",
				extra={"conversation_id": message.conversation_id, "status": exc.status_code},
			)
			if timeline is not None:
				return timeline.mark_failed(client_msg_id) or replace(message, status=MessageStatus.FAILED)
			return replace(message, status=MessageStatus.FAILED)
		obs_metrics.inc_message_sent("sent")
		server_copy = self._server_copy(message, payload)
		if timeline is not None:
			return timeline.acknowledge(client_msg_id, server_copy)
		return replace(server_copy, sent_at=message.sent_at, status=MessageStatus.SENT, client_msg_id=client_msg_id)

	def _server_copy(self, message: ChatMessage, payload: dict) -> ChatMessage:
		if payload:
			payload.setdefault("chat_id", message.conversation_id)
			payload.setdefault("sender_id", message.sender_id)
			try:
				return decode_message(payload)
			except PayloadDecodeError as exc:
				logger.info("send ack without a usable message body", extra={"reason": exc.detail})
		# Backend acked without echoing the message; keep the local copy
		return replace(message, status=MessageStatus.SENT)

	async def send_message(
		self,
		conversation_id: str,
		body: str,
		*,
		sender_id: int,
		sender_display_name: str = "",
		content_type: ContentType = ContentType.TEXT,
		timeline: MessageTimeline | None = None,
	) -> ChatMessage:
		message = self.compose(
			conversation_id,
			body,
			sender_id=sender_id,
			sender_display_name=sender_display_name,
			content_type=content_type,
		)
		if timeline is not None:
			timeline.upsert(message)
		return await self.deliver(message, timeline)

	async def resend(self, message: ChatMessage, timeline: MessageTimeline | None = None) -> ChatMessage:
		if message.status is not MessageStatus.FAILED:
			return message
		retry = replace(message, status=MessageStatus.SENDING)
		if timeline is not None and message.client_msg_id:
			retry = timeline.mark_resending(message.client_msg_id) or retry
		return await self.deliver(retry, timeline)

	async def send_typing(self, conversation_id: str, is_typing: bool) -> bool:
		try:
			await self._backend.send_typing(await self._token(), str(conversation_id), is_typing=is_typing)
		except BackendError as exc:
			logger.info("typing update failed", extra={"conversation_id": str(conversation_id), "status": exc.status_code})
			return False
		return True

	async def mark_read(self, conversation_id: str) -> bool:
		return await self._backend.mark_chat_read(await self._token(), str(conversation_id))


__all__ = ["ChatService"]
