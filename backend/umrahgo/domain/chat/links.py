"""Deep links into the web app's chat screens."""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from umrahgo.settings import settings


def chat_url(
	conversation_id: Optional[str],
	*,
	locale: Optional[str] = None,
	role: Optional[str] = None,
) -> str:
	"""``/{locale}/{role}/chat?id={conversation_id}``; ``/`` when there is no conversation."""
	if conversation_id in (None, ""):
		return "/"
	locale = (locale or settings.default_locale).strip("/") or settings.default_locale
	role = (role or settings.default_actor_role).strip("/") or settings.default_actor_role
	return f"/{locale}/{role}/chat?id={quote(str(conversation_id), safe='')}"


__all__ = ["chat_url"]
