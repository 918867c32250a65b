"""Process-wide realtime connection state."""

from __future__ import annotations

from enum import Enum


class ConnectionState(str, Enum):
	DISCONNECTED = "disconnected"
	CONNECTING = "connecting"
	CONNECTED = "connected"
	ERROR = "error"
	NO_AUTH = "no-auth"
	NO_USER = "no-user"
