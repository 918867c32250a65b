"""Error taxonomy shared by the chat core."""

from __future__ import annotations


class ChatCoreError(Exception):
	"""Base class for chat core errors."""

	detail: str = "chat_core_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class ConfigurationError(ChatCoreError):
	"""Raised when realtime or backend configuration is missing."""

	detail = "configuration_error"


class BackendError(ChatCoreError):
	"""Raised for any failed REST call."""

	detail = "backend_error"

	def __init__(self, detail: str | None = None, *, status_code: int = 0) -> None:
		super().__init__(detail)
		self.status_code = status_code


class UnauthorizedError(BackendError):
	"""Raised when the backend rejects the bearer token (401)."""

	detail = "unauthorized"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail, status_code=401)


class BackendUnavailableError(BackendError):
	"""Raised on network failures, timeouts and 5xx responses."""

	detail = "backend_unavailable"


class RoleUnavailableError(ChatCoreError):
	"""Raised when the backend supplied no role data for an actor."""

	detail = "role_unavailable"


class PayloadDecodeError(ChatCoreError):
	"""Raised when a realtime or push payload cannot be parsed."""

	detail = "payload_decode_error"


__all__ = [
	"BackendError",
	"BackendUnavailableError",
	"ChatCoreError",
	"ConfigurationError",
	"PayloadDecodeError",
	"RoleUnavailableError",
	"UnauthorizedError",
]
