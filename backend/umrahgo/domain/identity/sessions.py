"""Web-app session lookup used as the first identity source."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from umrahgo.infra.errors import BackendUnavailableError
from umrahgo.settings import Settings, settings as default_settings


@dataclass(slots=True)
class SessionUser:
	id: int
	name: str = ""
	email: str = ""
	image: Optional[str] = None
	role: Optional[str] = None


class SessionProvider(Protocol):
	async def get_session(self) -> Optional[SessionUser]:
		...


def session_user_from(payload: Any) -> Optional[SessionUser]:
	"""Build a session user from ``{"user": {...}}``; anything else means no session."""
	if not isinstance(payload, dict):
		return None
	user: Dict[str, Any] = payload.get("user") or {}
	if not isinstance(user, dict):
		return None
	try:
		user_id = int(user.get("id") or 0)
	except (TypeError, ValueError):
		return None
	if user_id <= 0:
		return None
	return SessionUser(
		id=user_id,
		name=str(user.get("name") or ""),
		email=str(user.get("email") or ""),
		image=user.get("image"),
		role=user.get("role") or user.get("user_type"),
	)


class HttpSessionProvider:
	"""Reads the session endpoint of the web app with the caller's cookies."""

	def __init__(
		self,
		*,
		config: Settings | None = None,
		http: httpx.AsyncClient | None = None,
		cookies: Dict[str, str] | None = None,
	) -> None:
		self._settings = config or default_settings
		self._owns_http = http is None
		self._http = http or httpx.AsyncClient(
			base_url=self._settings.app_base_url,
			timeout=self._settings.http_timeout_seconds,
		)
		self._cookie_header = "; ".join(f"{name}={value}" for name, value in (cookies or {}).items())

	async def aclose(self) -> None:
		if self._owns_http:
			await self._http.aclose()

	async def get_session(self) -> Optional[SessionUser]:
		headers = {"Cookie": self._cookie_header} if self._cookie_header else None
		try:
			response = await self._http.get(self._settings.session_path, headers=headers)
		except httpx.HTTPError as exc:
			raise BackendUnavailableError(f"session: {exc.__class__.__name__}") from exc
		if response.status_code != 200 or not response.content:
			return None
		try:
			return session_user_from(response.json())
		except ValueError:
			return None


__all__ = ["HttpSessionProvider", "SessionProvider", "SessionUser", "session_user_from"]
