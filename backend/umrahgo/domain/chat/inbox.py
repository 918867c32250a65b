"""Conversation list state: last message, unread counters and archive flags."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional

from umrahgo.infra.errors import BackendError

from .models import ChatMessage, ChatRoom
from .service import ChatService

logger = logging.getLogger(__name__)


class ChatInbox:
	def __init__(self, service: ChatService, *, actor_id: Optional[int] = None) -> None:
		self._service = service
		self.actor_id = actor_id
		self._rooms: Dict[str, ChatRoom] = {}
		self._open_id: Optional[str] = None

	@property
	def open_conversation_id(self) -> Optional[str]:
		return self._open_id

	def rooms(self, *, include_archived: bool = False) -> List[ChatRoom]:
		"""Rooms ordered by most recent activity; rooms without messages sort last."""
		rooms = [room for room in self._rooms.values() if include_archived or not room.is_archived]
		rooms.sort(key=lambda room: room.last_activity().timestamp() if room.last_activity() else float("-inf"), reverse=True)
		return rooms

	def get(self, conversation_id: str) -> Optional[ChatRoom]:
		return self._rooms.get(str(conversation_id))

	def total_unread(self) -> int:
		return sum(room.unread_count for room in self._rooms.values() if not room.is_archived)

	async def refresh(self) -> List[ChatRoom]:
		rooms = await self._service.list_rooms()
		self._rooms = {room.id: room for room in rooms}
		return self.rooms()

	def set_open(self, conversation_id: Optional[str]) -> None:
		self._open_id = str(conversation_id) if conversation_id not in (None, "") else None

	def receive(self, message: ChatMessage) -> Optional[ChatRoom]:
		"""Bump the room for an incoming message; returns None for unknown rooms."""
		room = self._rooms.get(message.conversation_id)
		if room is None:
			return None
		if room.last_message is not None and room.last_message.sort_key() >= message.sort_key():
			return room
		unread = room.unread_count
		own = self.actor_id is not None and message.sender_id == self.actor_id
		if not own and message.conversation_id != self._open_id:
			unread += 1
		updated = replace(room, last_message=message, unread_count=unread)
		self._rooms[room.id] = updated
		return updated

	async def mark_read(self, conversation_id: str) -> bool:
		"""Reset the unread counter once the backend confirms the read."""
		key = str(conversation_id)
		try:
			confirmed = await self._service.mark_read(key)
		except BackendError as exc:
			logger.warning("mark chat read failed", extra={"conversation_id": key, "status": exc.status_code})
			return False
		room = self._rooms.get(key)
		if confirmed and room is not None:
			self._rooms[key] = replace(room, unread_count=0)
		return bool(confirmed)

	def set_archived(self, conversation_id: str, archived: bool) -> Optional[ChatRoom]:
		room = self._rooms.get(str(conversation_id))
		if room is None:
			return None
		updated = replace(room, is_archived=archived)
		self._rooms[room.id] = updated
		return updated

	def toggle_archive(self, conversation_id: str) -> Optional[ChatRoom]:
		room = self._rooms.get(str(conversation_id))
		if room is None:
			return None
		return self.set_archived(room.id, not room.is_archived)


__all__ = ["ChatInbox"]
