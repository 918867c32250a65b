"""Process-wide auth signals: a token was stored, or all credentials were cleared."""

from __future__ import annotations

from umrahgo.realtime.registry import Handler, HandlerRegistry, Subscription

STORED = "stored"
CLEARED = "cleared"


class AuthEvents:
	def __init__(self) -> None:
		self._registry = HandlerRegistry("auth_events")

	def on_stored(self, handler: Handler) -> Subscription:
		return self._registry.subscribe(STORED, handler)

	def on_cleared(self, handler: Handler) -> Subscription:
		return self._registry.subscribe(CLEARED, handler)

	async def emit(self, event: str, payload: object = None) -> int:
		return await self._registry.dispatch(event, payload)


__all__ = ["AuthEvents", "CLEARED", "STORED"]
