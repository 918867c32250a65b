"""Identity models for the signed-in actor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class ActorRole(str, Enum):
	PILGRIM = "pilgrim"
	OFFICE = "office"
	BUS_OPERATOR = "bus_operator"
	ADMIN = "admin"

	@classmethod
	def parse(cls, value: object) -> Optional["ActorRole"]:
		"""Map backend role spellings onto a role; unknown values give None."""
		if value is None:
			return None
		text = str(value).strip().lower().replace("-", "_").replace(" ", "_")
		if not text:
			return None
		return _ROLE_ALIASES.get(text)

	@property
	def path_segment(self) -> str:
		"""URL segment used by the web app for this role's area."""
		return "operator" if self is ActorRole.BUS_OPERATOR else self.value


_ROLE_ALIASES = {
	"pilgrim": ActorRole.PILGRIM,
	"user": ActorRole.PILGRIM,
	"office": ActorRole.OFFICE,
	"umrah_office": ActorRole.OFFICE,
	"operator": ActorRole.BUS_OPERATOR,
	"bus_operator": ActorRole.BUS_OPERATOR,
	"transport_operator": ActorRole.BUS_OPERATOR,
	"admin": ActorRole.ADMIN,
	"super_admin": ActorRole.ADMIN,
}


@dataclass(slots=True, frozen=True)
class ActorIdentity:
	id: int
	display_name: str
	role: ActorRole
	token: str
	token_expiry: Optional[datetime] = None
	email: str = ""
	avatar_url: Optional[str] = None

	def is_expired(self, now: Optional[datetime] = None) -> bool:
		if self.token_expiry is None:
			return False
		current = now or datetime.now(timezone.utc)
		return self.token_expiry <= current


__all__ = ["ActorIdentity", "ActorRole"]
