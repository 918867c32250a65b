"""Ordered message timeline for one conversation."""

from __future__ import annotations

import bisect
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from .models import ChatMessage, MessageStatus, StatusUpdate, utcnow


def merge_status(current: MessageStatus, incoming: MessageStatus) -> MessageStatus:
	if current is incoming or not current.can_advance_to(incoming):
		return current
	return incoming


class MessageTimeline:
	"""Messages kept sorted by ``(sent_at, id)``.

	Echoes of locally composed messages are matched by ``client_msg_id`` and
	merged into the optimistic entry instead of being appended twice. Receipts
	for messages that are not in the timeline yet are held and applied when the
	message shows up.
	"""

	def __init__(self, conversation_id: str) -> None:
		self.conversation_id = str(conversation_id)
		self._ordered: List[ChatMessage] = []
		self._by_id: Dict[str, ChatMessage] = {}
		self._by_client: Dict[str, str] = {}
		self._pending: Dict[str, Tuple[MessageStatus, datetime]] = {}

	def __len__(self) -> int:
		return len(self._ordered)

	def __iter__(self) -> Iterator[ChatMessage]:
		return iter(list(self._ordered))

	def messages(self) -> List[ChatMessage]:
		return list(self._ordered)

	def get(self, message_id: str) -> Optional[ChatMessage]:
		return self._by_id.get(str(message_id))

	def find_by_client_id(self, client_msg_id: str) -> Optional[ChatMessage]:
		message_id = self._by_client.get(client_msg_id)
		return self._by_id.get(message_id) if message_id else None

	def _insert(self, message: ChatMessage) -> None:
		bisect.insort(self._ordered, message, key=ChatMessage.sort_key)
		self._by_id[message.id] = message
		if message.client_msg_id:
			self._by_client[message.client_msg_id] = message.id

	def _remove(self, message_id: str) -> Optional[ChatMessage]:
		existing = self._by_id.pop(message_id, None)
		if existing is None:
			return None
		self._ordered = [item for item in self._ordered if item.id != message_id]
		return existing

	def _replace(self, old_id: str, message: ChatMessage) -> ChatMessage:
		self._remove(old_id)
		pending = self._pending.pop(message.id, None)
		if pending is not None:
			status, at = pending
			target = merge_status(message.status, status)
			if target is not message.status:
				message = message.with_status(target, at=at)
		self._insert(message)
		return message

	def upsert(self, message: ChatMessage) -> ChatMessage:
		"""Insert a message, or merge it into the entry it echoes."""
		if message.conversation_id != self.conversation_id:
			raise ValueError("message belongs to another conversation")
		existing: Optional[ChatMessage] = None
		if message.client_msg_id:
			existing = self.find_by_client_id(message.client_msg_id)
		if existing is None:
			existing = self._by_id.get(message.id)
		if existing is None:
			return self._replace(message.id, message)
		status = merge_status(existing.status, message.status)
		merged = replace(
			message,
			sent_at=existing.sent_at,
			status=status,
			delivered_at=message.delivered_at or existing.delivered_at,
			read_at=message.read_at or existing.read_at,
			client_msg_id=message.client_msg_id or existing.client_msg_id,
		)
		return self._replace(existing.id, merged)

	def acknowledge(self, client_msg_id: str, server_message: ChatMessage) -> ChatMessage:
		"""Adopt the server copy of an optimistic message; ``sent_at`` stays as composed."""
		local = self.find_by_client_id(client_msg_id)
		if local is None:
			return self.upsert(replace(server_message, client_msg_id=client_msg_id))
		status = MessageStatus.SENT if local.status is MessageStatus.SENDING else local.status
		status = merge_status(status, server_message.status) if status is not MessageStatus.FAILED else status
		acked = replace(
			server_message,
			sent_at=local.sent_at,
			status=status,
			client_msg_id=client_msg_id,
			delivered_at=server_message.delivered_at or local.delivered_at,
			read_at=server_message.read_at or local.read_at,
		)
		return self._replace(local.id, acked)

	def mark_failed(self, client_msg_id: str) -> Optional[ChatMessage]:
		local = self.find_by_client_id(client_msg_id)
		if local is None or not local.status.can_advance_to(MessageStatus.FAILED):
			return local
		return self._replace(local.id, replace(local, status=MessageStatus.FAILED))

	def mark_resending(self, client_msg_id: str) -> Optional[ChatMessage]:
		"""The only way out of ``failed``: back to ``sending`` for another attempt."""
		local = self.find_by_client_id(client_msg_id)
		if local is None or local.status is not MessageStatus.FAILED:
			return local
		return self._replace(local.id, replace(local, status=MessageStatus.SENDING))

	def apply_status(self, message_id: str, status: MessageStatus, *, at: Optional[datetime] = None) -> bool:
		"""Move a message forward; returns True when the stored message changed."""
		key = str(message_id)
		existing = self._by_id.get(key)
		if existing is None:
			held = self._pending.get(key)
			if held is None or status.rank > held[0].rank:
				self._pending[key] = (status, at or utcnow())
			return False
		target = merge_status(existing.status, status)
		if target is existing.status:
			return False
		self._replace(key, existing.with_status(target, at=at))
		return True

	def apply_receipt(self, update: StatusUpdate, *, own_actor_id: Optional[int] = None) -> int:
		"""Apply a delivered/read receipt; without a message id it covers the actor's earlier messages."""
		status = update.message_status()
		if status not in (MessageStatus.DELIVERED, MessageStatus.READ):
			return 0
		if own_actor_id is not None and update.user_id == own_actor_id:
			return 0
		if update.message_id:
			return int(self.apply_status(update.message_id, status, at=update.at))
		changed = 0
		for message in self.messages():
			if own_actor_id is not None and message.sender_id != own_actor_id:
				continue
			if message.sent_at > update.at:
				continue
			if self.apply_status(message.id, status, at=update.at):
				changed += 1
		return changed


__all__ = ["MessageTimeline", "merge_status"]
