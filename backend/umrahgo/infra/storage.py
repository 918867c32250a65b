"""Key/value slots used for client-side credential storage."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Protocol

from umrahgo.infra.redis import RedisProxy, redis_client


class KeyValueStorage(Protocol):
	async def get(self, key: str) -> Optional[str]:
		...

	async def set(self, key: str, value: str) -> None:
		...

	async def delete(self, *keys: str) -> None:
		...


class MemoryStorage:
	"""Process-local storage; the equivalent of a tab-scoped session store."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._values: Dict[str, str] = {}

	async def get(self, key: str) -> Optional[str]:
		async with self._lock:
			return self._values.get(key)

	async def set(self, key: str, value: str) -> None:
		async with self._lock:
			self._values[key] = value

	async def delete(self, *keys: str) -> None:
		async with self._lock:
			for key in keys:
				self._values.pop(key, None)


class RedisStorage:
	"""Persistent storage namespaced under a key prefix."""

	def __init__(self, *, prefix: str = "umrahgo:storage", client: RedisProxy | None = None) -> None:
		self._prefix = prefix
		self._client = client or redis_client

	def _key(self, key: str) -> str:
		return f"{self._prefix}:{key}"

	async def get(self, key: str) -> Optional[str]:
		value = await self._client.get(self._key(key))
		return str(value) if value is not None else None

	async def set(self, key: str, value: str) -> None:
		await self._client.set(self._key(key), value)

	async def delete(self, *keys: str) -> None:
		if not keys:
			return
		await self._client.delete(*(self._key(key) for key in keys))
