"""Keyed publish/subscribe registry with reference-counted subscriptions.

Each ``(key, handler)`` pair carries a reference count: registering the same
handler twice under one key needs two disposals before it stops receiving
events, while other handlers under that key are never disturbed. Handlers are
invoked once per dispatch, in first-registration order.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, Hashable, List

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class Subscription:
	"""Disposer returned by ``HandlerRegistry.subscribe``; disposal is idempotent."""

	__slots__ = ("_registry", "key", "handler", "_active")

	def __init__(self, registry: "HandlerRegistry", key: Hashable, handler: Handler) -> None:
		self._registry = registry
		self.key = key
		self.handler = handler
		self._active = True

	@property
	def active(self) -> bool:
		return self._active

	def dispose(self) -> None:
		if not self._active:
			return
		self._active = False
		self._registry.unsubscribe(self.key, self.handler)

	def __enter__(self) -> "Subscription":
		return self

	def __exit__(self, *exc_info: object) -> None:
		self.dispose()


class HandlerRegistry:
	def __init__(self, name: str = "registry") -> None:
		self.name = name
		self._entries: Dict[Hashable, Dict[Handler, int]] = {}

	def subscribe(self, key: Hashable, handler: Handler) -> Subscription:
		handlers = self._entries.setdefault(key, {})
		handlers[handler] = handlers.get(handler, 0) + 1
		return Subscription(self, key, handler)

	def unsubscribe(self, key: Hashable, handler: Handler) -> bool:
		"""Drop one reference; returns True when the handler is fully removed."""
		handlers = self._entries.get(key)
		if not handlers or handler not in handlers:
			return False
		remaining = handlers[handler] - 1
		if remaining > 0:
			handlers[handler] = remaining
			return False
		del handlers[handler]
		if not handlers:
			self._entries.pop(key, None)
		return True

	def handlers(self, key: Hashable) -> List[Handler]:
		return list(self._entries.get(key, {}))

	def refcount(self, key: Hashable, handler: Handler) -> int:
		return self._entries.get(key, {}).get(handler, 0)

	def has_subscribers(self, key: Hashable) -> bool:
		return bool(self._entries.get(key))

	def clear(self) -> None:
		self._entries.clear()

	async def dispatch(self, key: Hashable, event: Any) -> int:
		"""Invoke every handler for ``key``; one failing handler does not stop the rest."""
		invoked = 0
		for handler in self.handlers(key):
			try:
				result = handler(event)
				if inspect.isawaitable(result):
					await result
			except Exception:
				logger.exception("%s handler failed for key=%s", self.name, key)
			invoked += 1
		return invoked


__all__ = ["Handler", "HandlerRegistry", "Subscription"]
