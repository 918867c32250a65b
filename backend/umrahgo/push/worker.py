"""Background push worker: install, activate, render pushes and route clicks.

The worker shares no memory with the foreground chat core. It only sees push
payloads, notification clicks and asset requests.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, List, Optional

import httpx
from redis.exceptions import RedisError

from umrahgo.domain.chat.links import chat_url
from umrahgo.infra.errors import BackendUnavailableError
from umrahgo.obs import metrics as obs_metrics
from umrahgo.settings import Settings, settings as default_settings

from .cache import CachedResponse, OfflineCache
from .clients import WindowClient, WindowClients
from .display import DisplayedNotification, NotificationDisplay, render
from .payload import parse_push

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
	PARSED = "parsed"
	INSTALLING = "installing"
	INSTALLED = "installed"
	ACTIVATING = "activating"
	ACTIVE = "active"
	REDUNDANT = "redundant"


def click_target(data: dict) -> str:
	"""Where a notification click should land: the conversation, else the app root."""
	conversation_id = data.get("chat_id")
	if conversation_id in (None, ""):
		return "/"
	return chat_url(
		str(conversation_id),
		locale=str(data.get("locale") or "") or None,
		role=str(data.get("user_type") or "") or None,
	)


class PushWorker:
	def __init__(
		self,
		*,
		cache: OfflineCache | None = None,
		display: NotificationDisplay | None = None,
		clients: WindowClients | None = None,
		http: httpx.AsyncClient | None = None,
		config: Settings | None = None,
	) -> None:
		self._settings = config or default_settings
		self.cache = cache or OfflineCache(self._settings.push_cache_name)
		self.display = display or NotificationDisplay()
		self.clients = clients or WindowClients()
		self._owns_http = http is None
		self._http = http or httpx.AsyncClient(
			base_url=self._settings.app_base_url,
			timeout=self._settings.http_timeout_seconds,
		)
		self.state = WorkerState.PARSED
		self.cached_assets: List[str] = []

	async def aclose(self) -> None:
		self.state = WorkerState.REDUNDANT
		if self._owns_http:
			await self._http.aclose()

	# --- lifecycle ----------------------------------------------------------------

	async def install(self) -> List[str]:
		"""Populate the offline cache; partial population still counts as installed."""
		self.state = WorkerState.INSTALLING
		assets = list(self._settings.push_cache_assets)
		self.cached_assets = await self.cache.add_all(assets, self._network_fetch)
		if len(self.cached_assets) < len(assets):
			logger.warning(
				"offline cache partially populated",
				extra={"cached": len(self.cached_assets), "expected": len(assets)},
			)
		self.state = WorkerState.INSTALLED
		return self.cached_assets

	async def activate(self) -> List[str]:
		self.state = WorkerState.ACTIVATING
		try:
			purged = await self.cache.purge_stale()
		except RedisError as exc:
			logger.warning("stale offline cache purge failed", extra={"reason": str(exc)})
			purged = []
		if purged:
			logger.info("purged stale offline caches", extra={"caches": purged})
		self.state = WorkerState.ACTIVE
		return purged

	# --- push ---------------------------------------------------------------------

	async def handle_push(self, raw: Any) -> DisplayedNotification:
		payload = parse_push(raw)
		notification = render(payload)
		replaced = self.display.show(notification)
		obs_metrics.inc_push_shown()
		logger.info(
			"push notification shown",
			extra={"tag": notification.tag, "replaced": replaced is not None},
		)
		return notification

	async def handle_click(self, tag: str, action: Optional[str] = None) -> Optional[WindowClient]:
		"""Close the notification, then focus or open the target window unless dismissed."""
		notification = self.display.close(tag)
		obs_metrics.inc_push_click(action or "")
		if action == "close":
			return None
		data = notification.data if notification is not None else {}
		url = click_target(data)
		existing = self.clients.find(url)
		if existing is not None:
			return self.clients.focus(existing)
		return self.clients.open_window(url)

	# --- fetch --------------------------------------------------------------------

	async def _network_fetch(self, path: str) -> CachedResponse:
		try:
			response = await self._http.get(path)
		except httpx.HTTPError as exc:
			raise BackendUnavailableError(f"GET {path}: {exc.__class__.__name__}") from exc
		return CachedResponse(
			status_code=response.status_code,
			content_type=response.headers.get("content-type", "application/octet-stream"),
			body=response.content,
		)

	async def fetch(self, path: str) -> tuple[CachedResponse, bool]:
		"""Serve from the offline cache, else from the network. Returns ``(response, hit)``."""
		try:
			cached = await self.cache.match(path)
		except RedisError as exc:
			logger.warning("offline cache lookup failed", extra={"path": path, "reason": str(exc)})
			cached = None
		if cached is not None:
			return cached, True
		return await self._network_fetch(path), False


__all__ = ["PushWorker", "WorkerState", "click_target"]
