"""Credential slots shared with the rest of the web client."""

from __future__ import annotations

from typing import Optional, Tuple

from umrahgo.infra.storage import KeyValueStorage, MemoryStorage

# Every location a token may have been written to by older login flows
PERSISTENT_KEYS: Tuple[str, ...] = ("token", "nextauth_token", "umrah_token")
SESSION_KEYS: Tuple[str, ...] = ("token",)
READ_ORDER: Tuple[str, ...] = ("nextauth_token", "token")


class TokenStore:
	def __init__(
		self,
		persistent: KeyValueStorage | None = None,
		session: KeyValueStorage | None = None,
	) -> None:
		self.persistent = persistent or MemoryStorage()
		self.session = session or MemoryStorage()

	async def read(self) -> Optional[str]:
		for key in READ_ORDER:
			value = await self.persistent.get(key)
			if value:
				return value
		return None

	async def store(self, token: str) -> None:
		await self.persistent.set("nextauth_token", token)
		await self.persistent.set("token", token)

	async def clear(self) -> None:
		await self.persistent.delete(*PERSISTENT_KEYS)
		await self.session.delete(*SESSION_KEYS)


__all__ = ["PERSISTENT_KEYS", "READ_ORDER", "SESSION_KEYS", "TokenStore"]
