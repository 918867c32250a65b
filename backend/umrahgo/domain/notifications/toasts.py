"""Transient foreground alerts."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Deque, List, Optional, Protocol

from umrahgo.domain.chat.models import utcnow


class ToastKind(str, Enum):
	INFO = "info"
	SUCCESS = "success"
	ERROR = "error"


@dataclass(slots=True, frozen=True)
class ToastAction:
	label: str
	url: str


@dataclass(slots=True)
class Toast:
	kind: ToastKind
	title: str
	description: str = ""
	action: Optional[ToastAction] = None
	sound: Optional[str] = None
	created_at: datetime = field(default_factory=utcnow)


class ToastSink(Protocol):
	def show(self, toast: Toast) -> None:
		...


class ToastQueue:
	"""Bounded in-memory sink; the UI layer drains it."""

	def __init__(self, maxlen: int = 20) -> None:
		self._items: Deque[Toast] = deque(maxlen=maxlen)

	def __len__(self) -> int:
		return len(self._items)

	def show(self, toast: Toast) -> None:
		self._items.append(toast)

	@property
	def latest(self) -> Optional[Toast]:
		return self._items[-1] if self._items else None

	def drain(self) -> List[Toast]:
		items = list(self._items)
		self._items.clear()
		return items


__all__ = ["Toast", "ToastAction", "ToastKind", "ToastQueue", "ToastSink"]
