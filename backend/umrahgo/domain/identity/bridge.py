"""Authentication bridge: the one place that decides who is acting now.

Two credential sources are reconciled, in order:

1. the web-app session, paired with a locally stored token;
2. the stored token alone, validated against ``GET /user/profile``.

Concurrent callers share one in-flight resolution. A resolved identity is cached
until its token's ``exp`` claim passes; opaque (non-JWT) tokens carry no local
expiry and stay cached until ``clear_auth_data`` or ``refresh_user``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from jwt import InvalidTokenError
from redis.exceptions import RedisError

from umrahgo.infra import jwt as jwt_helper
from umrahgo.infra.backend import BackendClient
from umrahgo.infra.errors import BackendError, ChatCoreError, RoleUnavailableError, UnauthorizedError
from umrahgo.obs import metrics as obs_metrics
from umrahgo.settings import Settings, settings as default_settings

from .models import ActorIdentity, ActorRole
from .sessions import SessionProvider, SessionUser
from .signals import CLEARED, STORED, AuthEvents
from .tokens import TokenStore

logger = logging.getLogger(__name__)

_ADMIN_EMAIL_MARKERS = ("@admin.", "@system.")


def _token_expiry(token: str) -> Optional[datetime]:
	try:
		exp = jwt_helper.expires_at(token)
	except InvalidTokenError:
		return None
	if exp is None:
		return None
	return datetime.fromtimestamp(exp, tz=timezone.utc)


def _locally_expired(token: str, now: float) -> bool:
	if token.count(".") != 2:
		return False
	return not jwt_helper.is_token_valid(token, now=now)


def _role_names(raw: Any) -> Iterable[str]:
	if not isinstance(raw, list):
		return ()
	names = []
	for item in raw:
		name = item.get("name") if isinstance(item, dict) else item
		if name:
			names.append(str(name).lower())
	return names


class AuthBridge:
	def __init__(
		self,
		*,
		backend: BackendClient,
		tokens: TokenStore | None = None,
		sessions: SessionProvider | None = None,
		config: Settings | None = None,
		events: AuthEvents | None = None,
		clock: Callable[[], float] = time.time,
	) -> None:
		self._backend = backend
		self._tokens = tokens or TokenStore()
		self._sessions = sessions
		self._settings = config or default_settings
		self.events = events or AuthEvents()
		self._clock = clock
		self._cached: Optional[ActorIdentity] = None
		self._pending: Optional[asyncio.Task] = None
		# Bumped on every invalidation so a resolution started earlier cannot repopulate the cache
		self._generation = 0

	# --- read access --------------------------------------------------------------

	@property
	def current(self) -> Optional[ActorIdentity]:
		return self._cached

	def is_authenticated(self) -> bool:
		return self._cached is not None

	@property
	def actor_id(self) -> Optional[int]:
		return self._cached.id if self._cached else None

	async def get_token(self) -> Optional[str]:
		"""Bearer token for outgoing calls; never one whose ``exp`` has passed."""
		now = self._clock()
		cached = self._cached
		if cached is not None and not _locally_expired(cached.token, now):
			return cached.token
		if cached is not None:
			self._cached = None
		try:
			token = await self._tokens.read()
		except RedisError as exc:
			logger.warning("token storage unavailable", extra={"reason": str(exc)})
			return None
		if token and _locally_expired(token, now):
			return None
		return token

	# --- resolution ---------------------------------------------------------------

	async def get_current_actor(self) -> Optional[ActorIdentity]:
		cached = self._cached
		if cached is not None and not _locally_expired(cached.token, self._clock()):
			obs_metrics.inc_auth_resolution("cache")
			return cached
		if cached is not None:
			self._cached = None
		pending = self._pending
		if pending is None:
			pending = asyncio.ensure_future(self._resolve(self._generation))
			self._pending = pending
		try:
			return await asyncio.shield(pending)
		finally:
			if self._pending is pending and pending.done():
				self._pending = None

	async def _resolve(self, generation: int) -> Optional[ActorIdentity]:
		identity: Optional[ActorIdentity] = None
		source = "none"
		try:
			token = await self._tokens.read()
			if token and _locally_expired(token, self._clock()):
				logger.info("stored token expired locally; validating with backend")
			if token:
				identity = await self._from_session(token)
				if identity is not None:
					source = "session"
				else:
					identity = await self._from_profile(token)
					source = "profile" if identity is not None else "none"
		except RoleUnavailableError as exc:
			logger.warning("actor role unavailable", extra={"reason": exc.detail})
			identity = None
		except ChatCoreError as exc:
			logger.warning("auth resolution failed", extra={"reason": exc.detail})
			identity = None
		except RedisError as exc:
			logger.warning("token storage unavailable during auth resolution", extra={"reason": str(exc)})
			identity = None
		obs_metrics.inc_auth_resolution(source)
		if generation != self._generation:
			return identity
		self._cached = identity
		return identity

	async def _from_session(self, token: str) -> Optional[ActorIdentity]:
		if self._sessions is None or _locally_expired(token, self._clock()):
			return None
		try:
			user = await self._sessions.get_session()
		except ChatCoreError as exc:
			logger.info("session lookup failed", extra={"reason": exc.detail})
			return None
		if user is None:
			return None
		try:
			role = self.role_from_session(user)
		except RoleUnavailableError:
			# The profile endpoint carries backend role data; let it decide
			return None
		return ActorIdentity(
			id=user.id,
			display_name=user.name or "مستخدم",
			role=role,
			token=token,
			token_expiry=_token_expiry(token),
			email=user.email,
			avatar_url=user.image,
		)

	async def _from_profile(self, token: str) -> Optional[ActorIdentity]:
		try:
			profile = await self._backend.fetch_profile(token)
		except UnauthorizedError:
			# A backend wired to this bridge has already cleared everything
			if self._backend.unauthorized_hook != self.clear_auth_data:
				logger.warning("stored token rejected by profile endpoint; clearing credentials")
				await self.clear_auth_data()
			return None
		except BackendError as exc:
			logger.info("profile validation failed", extra={"reason": exc.detail, "status": exc.status_code})
			return None
		try:
			actor_id = int(profile.get("id") or 0)
		except (TypeError, ValueError):
			actor_id = 0
		if actor_id <= 0:
			return None
		return ActorIdentity(
			id=actor_id,
			display_name=str(profile.get("name") or ""),
			role=self.role_from_profile(profile),
			token=token,
			token_expiry=_token_expiry(token),
			email=str(profile.get("email") or ""),
			avatar_url=profile.get("profile_photo_path") or profile.get("avatar"),
		)

	# --- role derivation ----------------------------------------------------------

	def role_from_session(self, user: SessionUser) -> ActorRole:
		role = ActorRole.parse(user.role)
		if role is not None:
			return role
		return self._fallback_role(user.email)

	def role_from_profile(self, profile: Dict[str, Any]) -> ActorRole:
		names = ",".join(_role_names(profile.get("roles")))
		for marker, role in (("admin", ActorRole.ADMIN), ("office", ActorRole.OFFICE), ("operator", ActorRole.BUS_OPERATOR)):
			if marker in names:
				return role
		parsed = ActorRole.parse(profile.get("user_type") or profile.get("role"))
		if parsed is not None:
			return parsed
		if names:
			return ActorRole.PILGRIM
		return self._fallback_role(str(profile.get("email") or ""))

	def _fallback_role(self, email: str) -> ActorRole:
		if not self._settings.auth_role_heuristic:
			raise RoleUnavailableError("no role data for actor")
		if any(marker in (email or "") for marker in _ADMIN_EMAIL_MARKERS):
			return ActorRole.ADMIN
		return ActorRole.parse(self._settings.default_actor_role) or ActorRole.PILGRIM

	# --- mutation -----------------------------------------------------------------

	def clear_cache(self) -> None:
		self._generation += 1
		self._cached = None
		self._pending = None

	async def clear_auth_data(self) -> None:
		"""Forget the cached actor and wipe every token storage location."""
		self.clear_cache()
		await self._tokens.clear()
		await self.events.emit(CLEARED)

	async def store_token(self, token: str) -> None:
		self.clear_cache()
		await self._tokens.store(token)
		await self.events.emit(STORED)

	async def refresh_user(self) -> Optional[ActorIdentity]:
		self.clear_cache()
		return await self.get_current_actor()


__all__ = ["AuthBridge"]
