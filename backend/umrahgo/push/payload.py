"""Push message payload as delivered by the messaging service."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from umrahgo.infra.errors import PayloadDecodeError


class NotificationBlock(BaseModel):
	model_config = ConfigDict(extra="ignore")

	title: Optional[str] = None
	body: Optional[str] = None
	icon: Optional[str] = None


class PushPayload(BaseModel):
	model_config = ConfigDict(extra="ignore")

	notification: Optional[NotificationBlock] = None
	data: Dict[str, Any] = Field(default_factory=dict)

	@field_validator("data", mode="before")
	def _data_object(cls, value: Any) -> Dict[str, Any]:  # type: ignore[override]
		if value is None:
			return {}
		if isinstance(value, str):
			try:
				value = json.loads(value)
			except ValueError:
				return {}
		return value if isinstance(value, dict) else {}

	def _data_text(self, key: str) -> Optional[str]:
		value = self.data.get(key)
		if value in (None, ""):
			return None
		return str(value)

	@property
	def conversation_id(self) -> Optional[str]:
		return self._data_text("chat_id")

	@property
	def actor_role(self) -> Optional[str]:
		return self._data_text("user_type")

	@property
	def locale(self) -> Optional[str]:
		return self._data_text("locale")

	@property
	def title(self) -> Optional[str]:
		return (self.notification.title if self.notification else None) or self._data_text("title")

	@property
	def body(self) -> Optional[str]:
		return (self.notification.body if self.notification else None) or self._data_text("body")

	@property
	def icon(self) -> Optional[str]:
		return self.notification.icon if self.notification else None


def parse_push(raw: Any) -> PushPayload:
	"""Decode raw push bytes/text/dict; anything that is not a JSON object is rejected."""
	if isinstance(raw, (bytes, bytearray)):
		raw = raw.decode("utf-8", errors="replace")
	if isinstance(raw, str):
		if not raw.strip():
			return PushPayload()
		try:
			raw = json.loads(raw)
		except ValueError as exc:
			raise PayloadDecodeError("push: invalid_json") from exc
	if not isinstance(raw, dict):
		raise PayloadDecodeError("push: payload must be an object")
	try:
		return PushPayload.model_validate(raw)
	except ValidationError as exc:
		raise PayloadDecodeError(f"push: {exc.error_count()} invalid field(s)") from exc


__all__ = ["NotificationBlock", "PushPayload", "parse_push"]
