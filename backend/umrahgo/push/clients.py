"""Open app windows known to the push worker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlsplit

import ulid


def _relative(url: str) -> str:
	parts = urlsplit(url)
	path = parts.path or "/"
	return f"{path}?{parts.query}" if parts.query else path


@dataclass(slots=True)
class WindowClient:
	id: str
	url: str
	focused: bool = False

	def matches(self, url: str) -> bool:
		return _relative(self.url) == _relative(url)

	def to_dict(self) -> dict:
		return {"id": self.id, "url": self.url, "focused": self.focused}


class WindowClients:
	def __init__(self) -> None:
		self._clients: Dict[str, WindowClient] = {}

	def match_all(self) -> List[WindowClient]:
		return list(self._clients.values())

	def register(self, url: str, *, focused: bool = False) -> WindowClient:
		client = WindowClient(id=str(ulid.new()), url=url)
		self._clients[client.id] = client
		if focused:
			self.focus(client)
		return client

	def remove(self, client_id: str) -> bool:
		return self._clients.pop(client_id, None) is not None

	def find(self, url: str) -> Optional[WindowClient]:
		for client in self._clients.values():
			if client.matches(url):
				return client
		return None

	def focus(self, client: WindowClient) -> WindowClient:
		for other in self._clients.values():
			other.focused = other.id == client.id
		return client

	def open_window(self, url: str) -> WindowClient:
		return self.register(url, focused=True)


__all__ = ["WindowClient", "WindowClients"]
