"""Settings for the UmrahGo chat core with observability configuration."""

from __future__ import annotations

import json
from typing import Any, Optional, Tuple

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_CACHE_ASSETS: Tuple[str, ...] = (
	"/",
	"/offline.html",
	"/manifest.json",
	"/icons/icon-192x192.png",
	"/sounds/notification.mp3",
)


def _env_field(default, *env_names: str):
	if env_names:
		alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
		return Field(default=default, validation_alias=alias)
	return Field(default=default)


class Settings(BaseSettings):
	api_base_url: str = _env_field("http://localhost:8000/api/v1", "API_BASE_URL", "NEXT_PUBLIC_API_URL")
	app_base_url: str = _env_field("http://localhost:3000", "APP_BASE_URL")
	session_path: str = _env_field("/api/auth/session", "SESSION_PATH")
	redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
	http_timeout_seconds: float = _env_field(10.0, "HTTP_TIMEOUT_SECONDS")

	# Pub/sub transport; an unset key disables realtime instead of failing startup
	realtime_app_key: Optional[str] = _env_field(None, "REALTIME_APP_KEY", "PUSHER_APP_KEY", "NEXT_PUBLIC_PUSHER_KEY")
	realtime_cluster: Optional[str] = _env_field("mt1", "REALTIME_CLUSTER", "PUSHER_CLUSTER", "NEXT_PUBLIC_PUSHER_CLUSTER")
	realtime_url: str = _env_field("http://localhost:6001", "REALTIME_URL")
	realtime_auth_path: str = _env_field("/broadcasting/auth", "REALTIME_AUTH_PATH")

	typing_expiry_seconds: float = _env_field(3.0, "TYPING_EXPIRY_SECONDS")
	liveness_interval_seconds: float = _env_field(30.0, "LIVENESS_INTERVAL_SECONDS")
	reconnect_backoff_max_seconds: float = _env_field(300.0, "RECONNECT_BACKOFF_MAX_SECONDS")
	retry_delay_seconds: float = _env_field(0.5, "RETRY_DELAY_SECONDS")
	unread_poll_interval_seconds: float = _env_field(60.0, "UNREAD_POLL_INTERVAL_SECONDS")

	# Push delivery worker
	push_cache_name: str = _env_field("umrahgo-chat-v1", "PUSH_CACHE_NAME")
	push_cache_assets: Any = _env_field(_DEFAULT_CACHE_ASSETS, "PUSH_CACHE_ASSETS")
	default_locale: str = _env_field("ar", "DEFAULT_LOCALE")
	default_actor_role: str = _env_field("pilgrim", "DEFAULT_ACTOR_ROLE")

	# Guessing a role from the email domain is imprecise; off unless asked for.
	auth_role_heuristic: bool = _env_field(False, "AUTH_ROLE_HEURISTIC")

	environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
	obs_enabled: bool = _env_field(True, "OBS_ENABLED")
	obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
	obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
	service_name: str = _env_field("umrahgo-chat", "SERVICE_NAME")

	model_config = SettingsConfigDict(
		env_prefix="",
		env_file=".env",
		case_sensitive=False,
		populate_by_name=True,
		extra="ignore",
	)

	def is_prod(self) -> bool:
		return self.environment.lower() in ("prod", "production", "live")

	def is_dev(self) -> bool:
		return self.environment.lower() in ("dev", "development")

	def realtime_enabled(self) -> bool:
		return bool((self.realtime_app_key or "").strip()) and bool((self.realtime_cluster or "").strip())

	@field_validator("push_cache_assets", mode="before")
	def _split_assets(cls, value):  # type: ignore[override]
		"""Normalise env/JSON formats for the offline cache allow-list.

		Supports a comma-separated string, a JSON list string, or any iterable.
		Empty values fall back to the default app shell assets.
		"""
		if value in (None, ""):
			return _DEFAULT_CACHE_ASSETS
		if isinstance(value, (list, tuple, set)):
			return tuple(str(item).strip() for item in value if str(item).strip())
		if isinstance(value, str):
			text = value.strip()
			if text.startswith("["):
				try:
					data = json.loads(text)
				except ValueError:
					data = None
				if isinstance(data, list):
					return tuple(str(item).strip() for item in data if str(item).strip())
			return tuple(part.strip() for part in text.split(",") if part.strip())
		return _DEFAULT_CACHE_ASSETS

	@field_validator("obs_log_level", mode="after")
	def _normalise_level(cls, value: str) -> str:  # type: ignore[override]
		return value.upper()


settings = Settings()
