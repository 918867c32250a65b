import httpx
import pytest

from umrahgo.domain.identity.sessions import HttpSessionProvider
from umrahgo.domain.identity.tokens import PERSISTENT_KEYS, TokenStore
from umrahgo.infra.errors import BackendUnavailableError
from umrahgo.infra.storage import MemoryStorage, RedisStorage


@pytest.mark.asyncio
async def test_token_read_prefers_nextauth_slot(fake_redis):
	persistent = RedisStorage()
	tokens = TokenStore(persistent=persistent)

	await persistent.set("token", "legacy")
	assert await tokens.read() == "legacy"

	await persistent.set("nextauth_token", "fresh")
	assert await tokens.read() == "fresh"
	assert await fake_redis.get("umrahgo:storage:nextauth_token") == "fresh"


@pytest.mark.asyncio
async def test_store_and_clear_cover_every_slot():
	persistent = MemoryStorage()
	session = MemoryStorage()
	tokens = TokenStore(persistent=persistent, session=session)
	await persistent.set("umrah_token", "older")
	await session.set("token", "tab")

	await tokens.store("t1")
	assert await persistent.get("nextauth_token") == "t1"
	assert await persistent.get("token") == "t1"

	await tokens.clear()
	for key in PERSISTENT_KEYS:
		assert await persistent.get(key) is None
	assert await session.get("token") is None


def _provider(handler):
	http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://app.test")
	return HttpSessionProvider(http=http, cookies={"next-auth.session-token": "cookie"}), http


@pytest.mark.asyncio
async def test_session_provider_reads_user_with_cookies():
	seen = []

	def handler(request):
		seen.append(request)
		return httpx.Response(200, json={"user": {"id": 7, "name": "Amina", "role": "pilgrim"}})

	provider, http = _provider(handler)
	try:
		user = await provider.get_session()
	finally:
		await http.aclose()

	assert user.id == 7
	assert user.role == "pilgrim"
	assert seen[0].url.path == "/api/auth/session"
	assert "next-auth.session-token=cookie" in seen[0].headers["cookie"]


@pytest.mark.asyncio
async def test_session_provider_empty_and_errors():
	provider, http = _provider(lambda request: httpx.Response(200, json={}))
	try:
		assert await provider.get_session() is None
	finally:
		await http.aclose()

	provider, http = _provider(lambda request: httpx.Response(500))
	try:
		assert await provider.get_session() is None
	finally:
		await http.aclose()

	def broken(request):
		raise httpx.ConnectError("refused")

	provider, http = _provider(broken)
	try:
		with pytest.raises(BackendUnavailableError):
			await provider.get_session()
	finally:
		await http.aclose()
