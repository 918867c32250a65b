import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import jwt
import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from socketio import exceptions as sio_exceptions

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from umrahgo.domain.identity.bridge import AuthBridge
from umrahgo.domain.identity.tokens import TokenStore
from umrahgo.infra.backend import BackendClient
from umrahgo.settings import Settings, settings


API_BASE = "http://api.test"


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from umrahgo.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Keep log handlers untouched so caplog sees every record."""
	original_obs = settings.obs_enabled
	settings.obs_enabled = False
	try:
		yield
	finally:
		settings.obs_enabled = original_obs


@pytest.fixture
def test_settings() -> Settings:
	return Settings(
		api_base_url=API_BASE,
		app_base_url="http://app.test",
		realtime_app_key="app-key",
		realtime_cluster="mt1",
		realtime_url="http://realtime.test",
		typing_expiry_seconds=0.1,
		liveness_interval_seconds=0.05,
		reconnect_backoff_max_seconds=0.4,
		retry_delay_seconds=0,
		unread_poll_interval_seconds=3600,
		push_cache_name="umrahgo-test-v2",
		push_cache_assets=["/", "/offline.html", "/manifest.json"],
	)


def make_token(exp_offset: Optional[float] = 3600, subject: str = "7") -> str:
	claims: Dict[str, Any] = {"sub": subject}
	if exp_offset is not None:
		claims["exp"] = int(time.time() + exp_offset)
	return jwt.encode(claims, "test-secret", algorithm="HS256")


@pytest.fixture
def token_factory() -> Callable[..., str]:
	return make_token


class BackendStub:
	"""Route table behind an httpx.MockTransport; unknown routes answer ``{"success": true}``."""

	def __init__(self) -> None:
		self.calls: List[Tuple[str, str, Any]] = []
		self.headers: List[httpx.Headers] = []
		self.routes: Dict[Tuple[str, str], Any] = {
			("POST", "/broadcasting/auth"): lambda request: {"auth": f"app-key:{json.loads(request.content)['channel_name']}"},
			("GET", "/user/profile"): {
				"success": True,
				"data": {"id": 7, "name": "Amina", "email": "amina@example.com", "user_type": "pilgrim"},
			},
			("GET", "/notifications/unread-count"): {"success": True, "count": 0},
		}

	def route(self, method: str, path: str, response: Any) -> None:
		self.routes[(method, path)] = response

	def count(self, method: str, path: str) -> int:
		return sum(1 for call in self.calls if call[0] == method and call[1] == path)

	def bodies(self, method: str, path: str) -> List[Any]:
		return [call[2] for call in self.calls if call[0] == method and call[1] == path]

	async def handle(self, request: httpx.Request) -> httpx.Response:
		path = request.url.path
		if path.startswith("/api/v1"):
			path = path[len("/api/v1"):]
		body = json.loads(request.content) if request.content else None
		self.calls.append((request.method, path, body))
		self.headers.append(request.headers)
		response = self.routes.get((request.method, path), {"success": True})
		if callable(response):
			response = response(request)
			if asyncio.iscoroutine(response):
				response = await response
		if isinstance(response, Exception):
			raise response
		if isinstance(response, httpx.Response):
			# Routes may answer many requests; hand out a fresh response each time
			return httpx.Response(response.status_code, content=response.content, headers=response.headers)
		return httpx.Response(200, json=response)


@pytest.fixture
def backend_stub() -> BackendStub:
	return BackendStub()


@pytest_asyncio.fixture
async def backend(backend_stub, test_settings):
	http = httpx.AsyncClient(transport=httpx.MockTransport(backend_stub.handle), base_url=API_BASE)
	client = BackendClient(config=test_settings, http=http)
	try:
		yield client
	finally:
		await http.aclose()


class FakeSocket:
	"""Stand-in for ``socketio.AsyncClient`` that records frames and replays server events."""

	def __init__(self, *, fail: bool = False, sid: str = "sock-1") -> None:
		self.handlers: Dict[str, Callable] = {}
		self.emitted: List[Tuple[str, Any]] = []
		self.connect_calls: List[Tuple[str, Dict[str, Any]]] = []
		self.disconnect_calls = 0
		self.connected = False
		self.fail = fail
		self.sid = sid

	def on(self, event: str, handler: Callable | None = None):
		self.handlers[event] = handler
		return handler

	async def connect(self, url: str, **kwargs: Any) -> None:
		self.connect_calls.append((url, kwargs))
		if self.fail:
			raise sio_exceptions.ConnectionError("Connection refused by the server")
		self.connected = True

	async def emit(self, event: str, data: Any = None) -> None:
		self.emitted.append((event, data))

	async def disconnect(self) -> None:
		self.disconnect_calls += 1
		self.connected = False

	def frames(self, event: str) -> List[Any]:
		return [data for name, data in self.emitted if name == event]

	def subscribed(self) -> List[str]:
		return [frame["channel"] for frame in self.frames("subscribe")]

	async def trigger(self, event: str, *args: Any) -> None:
		handler = self.handlers.get(event)
		if handler is not None:
			await handler(*args)
			return
		await self.handlers["*"](event, *args)


class SocketFactory:
	def __init__(self) -> None:
		self.sockets: List[FakeSocket] = []
		self.failures_left = 0

	def __call__(self) -> FakeSocket:
		failing = self.failures_left > 0
		if failing:
			self.failures_left -= 1
		sock = FakeSocket(fail=failing, sid=f"sock-{len(self.sockets) + 1}")
		self.sockets.append(sock)
		return sock

	@property
	def last(self) -> FakeSocket:
		return self.sockets[-1]


@pytest.fixture
def socket_factory() -> SocketFactory:
	return SocketFactory()


@pytest_asyncio.fixture
async def token_store() -> TokenStore:
	store = TokenStore()
	await store.store(make_token())
	return store


@pytest.fixture
def bridge(backend, token_store, test_settings) -> AuthBridge:
	return AuthBridge(backend=backend, tokens=token_store, config=test_settings)
