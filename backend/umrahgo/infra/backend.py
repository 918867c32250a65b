"""HTTP client for the REST backend consumed by the chat core.

Every call is bearer-authenticated with the token handed in by the caller; the
client itself keeps no identity. Failures are normalised into the error
taxonomy in ``umrahgo.infra.errors`` so callers decide whether to surface or
swallow them.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from umrahgo.infra.errors import BackendError, BackendUnavailableError, UnauthorizedError
from umrahgo.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

UnauthorizedHook = Callable[[], Awaitable[None]]


def _unwrap(payload: Any) -> Any:
	"""Strip the ``{success, data, message}`` envelope when present."""
	if isinstance(payload, dict) and "data" in payload:
		return payload["data"]
	return payload


def _as_list(payload: Any) -> List[Dict[str, Any]]:
	data = _unwrap(payload)
	# Paginated responses nest the rows one level deeper
	if isinstance(data, dict) and isinstance(data.get("data"), list):
		data = data["data"]
	if isinstance(data, list):
		return [item for item in data if isinstance(item, dict)]
	return []


def _success(payload: Any) -> bool:
	if isinstance(payload, dict):
		return bool(payload.get("success"))
	return bool(payload)


class BackendClient:
	"""Thin async wrapper over the chat/notification REST endpoints."""

	def __init__(
		self,
		*,
		config: Settings | None = None,
		http: httpx.AsyncClient | None = None,
		on_unauthorized: UnauthorizedHook | None = None,
	) -> None:
		self._settings = config or default_settings
		self._on_unauthorized = on_unauthorized
		self._owns_http = http is None
		self._http = http or httpx.AsyncClient(
			base_url=self._settings.api_base_url,
			timeout=self._settings.http_timeout_seconds,
		)

	async def aclose(self) -> None:
		if self._owns_http:
			await self._http.aclose()

	@property
	def unauthorized_hook(self) -> Optional[UnauthorizedHook]:
		return self._on_unauthorized

	def set_unauthorized_hook(self, hook: Optional[UnauthorizedHook]) -> None:
		"""Run ``hook`` whenever any call is answered with 401, before the error is raised."""
		self._on_unauthorized = hook

	async def _unauthorized(self, method: str, path: str) -> None:
		if self._on_unauthorized is None:
			return
		logger.warning("backend rejected credentials", extra={"method": method, "path": path})
		try:
			await self._on_unauthorized()
		except Exception:
			logger.exception("unauthorized hook failed")

	async def _request(
		self,
		method: str,
		path: str,
		*,
		token: str,
		json: Optional[Dict[str, Any]] = None,
		params: Optional[Dict[str, Any]] = None,
	) -> Any:
		headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
		try:
			response = await self._http.request(method, path, headers=headers, json=json, params=params)
		except httpx.HTTPError as exc:
			raise BackendUnavailableError(f"{method} {path}: {exc.__class__.__name__}") from exc
		if response.status_code == 401:
			await self._unauthorized(method, path)
			raise UnauthorizedError(f"{method} {path}")
		if response.status_code >= 500:
			raise BackendUnavailableError(f"{method} {path}", status_code=response.status_code)
		if response.status_code >= 400:
			raise BackendError(f"{method} {path}", status_code=response.status_code)
		if not response.content:
			return {}
		try:
			return response.json()
		except ValueError as exc:
			raise BackendError(f"{method} {path}: invalid_json", status_code=response.status_code) from exc

	# --- realtime -----------------------------------------------------------------

	async def authorize_channel(self, token: str, *, socket_id: str, channel_name: str) -> Dict[str, Any]:
		"""Channel-authorization handshake for private channel subscriptions."""
		payload = await self._request(
			"POST",
			self._settings.realtime_auth_path,
			token=token,
			json={"socket_id": socket_id, "channel_name": channel_name},
		)
		return payload if isinstance(payload, dict) else {}

	async def update_presence(self, token: str, *, online: bool) -> None:
		path = "/user/online" if online else "/user/offline"
		await self._request("POST", path, token=token, json={})

	# --- notifications ------------------------------------------------------------

	async def unread_count(self, token: str) -> int:
		payload = await self._request("GET", "/notifications/unread-count", token=token)
		value: Any = payload.get("count") if isinstance(payload, dict) and "count" in payload else _unwrap(payload)
		if isinstance(value, dict):
			value = value.get("count", value.get("unread_count", 0))
		try:
			return max(0, int(value or 0))
		except (TypeError, ValueError) as exc:
			raise BackendError("unread_count: invalid_count") from exc

	async def mark_all_notifications_read(self, token: str) -> bool:
		payload = await self._request("POST", "/notifications/mark-all-as-read", token=token, json={})
		return _success(payload)

	async def mark_notification_read(self, token: str, notification_id: str) -> bool:
		payload = await self._request("POST", f"/notifications/{notification_id}/mark-as-read", token=token, json={})
		return _success(payload)

	async def delete_notification(self, token: str, notification_id: str) -> bool:
		payload = await self._request("DELETE", f"/notifications/{notification_id}", token=token)
		return _success(payload)

	# --- chats --------------------------------------------------------------------

	async def list_chats(self, token: str) -> List[Dict[str, Any]]:
		return _as_list(await self._request("GET", "/chats", token=token))

	async def list_messages(
		self,
		token: str,
		chat_id: str,
		*,
		page: int = 1,
		per_page: int = 50,
	) -> List[Dict[str, Any]]:
		payload = await self._request(
			"GET",
			f"/chats/{chat_id}/messages",
			token=token,
			params={"page": page, "per_page": per_page},
		)
		return _as_list(payload)

	async def send_message(
		self,
		token: str,
		chat_id: str,
		*,
		body: str,
		content_type: str,
		client_msg_id: str,
	) -> Dict[str, Any]:
		payload = await self._request(
			"POST",
			f"/chats/{chat_id}/messages",
			token=token,
			json={"message": body, "type": content_type, "client_msg_id": client_msg_id},
		)
		if isinstance(payload, dict) and payload.get("success") is False:
			raise BackendError(str(payload.get("message") or "send_failed"))
		data = _unwrap(payload)
		if isinstance(data, dict) and isinstance(data.get("message"), dict):
			data = data["message"]
		return data if isinstance(data, dict) else {}

	async def send_typing(self, token: str, chat_id: str, *, is_typing: bool) -> None:
		await self._request("POST", f"/chats/{chat_id}/typing", token=token, json={"is_typing": is_typing})

	async def mark_chat_read(self, token: str, chat_id: str) -> bool:
		payload = await self._request("POST", f"/chats/{chat_id}/read", token=token, json={})
		return _success(payload) if isinstance(payload, dict) and "success" in payload else True

	# --- identity -----------------------------------------------------------------

	async def fetch_profile(self, token: str) -> Dict[str, Any]:
		"""Validate a token by loading the profile it belongs to."""
		payload = await self._request("GET", "/user/profile", token=token)
		if isinstance(payload, dict) and payload.get("success") is False:
			return {}
		data = _unwrap(payload)
		return data if isinstance(data, dict) else {}


__all__ = ["BackendClient"]
