"""Versioned offline response cache stored in redis.

Each cache name owns a set of hashes under ``push:cache:{name}:{path}``; the
set of known cache names lives in ``push:caches``. Bodies are stored base64
encoded because the shared client decodes responses as text.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional

from redis.exceptions import RedisError

from umrahgo.infra.errors import BackendError
from umrahgo.infra.redis import RedisProxy, redis_client
from umrahgo.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

CACHE_NAMES_KEY = "push:caches"


@dataclass(slots=True)
class CachedResponse:
	status_code: int
	content_type: str
	body: bytes


Fetcher = Callable[[str], Awaitable[CachedResponse]]


def _entry_key(cache_name: str, path: str) -> str:
	return f"push:cache:{cache_name}:{path}"


class OfflineCache:
	def __init__(self, cache_name: str, *, client: RedisProxy | None = None) -> None:
		self.cache_name = cache_name
		self._client = client or redis_client

	async def put(self, path: str, response: CachedResponse) -> None:
		await self._client.hset(
			_entry_key(self.cache_name, path),
			mapping={
				"status_code": str(response.status_code),
				"content_type": response.content_type,
				"body": base64.b64encode(response.body).decode("ascii"),
			},
		)
		await self._client.sadd(CACHE_NAMES_KEY, self.cache_name)

	async def match(self, path: str) -> Optional[CachedResponse]:
		raw = await self._client.hgetall(_entry_key(self.cache_name, path))
		hit = bool(raw)
		obs_metrics.push_cache_lookup(hit)
		if not hit:
			return None
		return CachedResponse(
			status_code=int(raw.get("status_code") or 200),
			content_type=raw.get("content_type") or "application/octet-stream",
			body=base64.b64decode(raw.get("body") or ""),
		)

	async def add_all(self, paths: Iterable[str], fetch: Fetcher) -> List[str]:
		"""Cache every path that fetches and stores successfully; failures are logged and skipped."""
		cached: List[str] = []
		for path in paths:
			try:
				response = await fetch(path)
			except BackendError as exc:
				logger.warning("offline cache fetch failed", extra={"path": path, "reason": exc.detail})
				continue
			if response.status_code >= 400:
				logger.warning("offline cache fetch rejected", extra={"path": path, "status": response.status_code})
				continue
			try:
				await self.put(path, response)
			except RedisError as exc:
				logger.warning("offline cache store failed", extra={"path": path, "reason": str(exc)})
				continue
			cached.append(path)
		return cached

	async def cache_names(self) -> List[str]:
		names = await self._client.smembers(CACHE_NAMES_KEY)
		return sorted(str(name) for name in names)

	async def delete_cache(self, cache_name: str) -> int:
		keys = await self._client.scan_all(f"push:cache:{cache_name}:*")
		if keys:
			await self._client.delete(*keys)
		await self._client.srem(CACHE_NAMES_KEY, cache_name)
		return len(keys)

	async def purge_stale(self) -> List[str]:
		"""Drop every cache name other than this one."""
		purged: List[str] = []
		for name in await self.cache_names():
			if name == self.cache_name:
				continue
			await self.delete_cache(name)
			purged.append(name)
		return purged


__all__ = ["CACHE_NAMES_KEY", "CachedResponse", "OfflineCache"]
