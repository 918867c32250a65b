import httpx
import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from umrahgo.infra.errors import BackendUnavailableError
from umrahgo.infra.redis import RedisProxy
from umrahgo.push.cache import CachedResponse, OfflineCache
from umrahgo.push.worker import PushWorker, WorkerState


def _app_server(missing=()):
	requests = []

	def handler(request):
		requests.append(request.url.path)
		if request.url.path in missing:
			return httpx.Response(404)
		return httpx.Response(200, content=f"asset {request.url.path}".encode(), headers={"content-type": "text/html"})

	return handler, requests


@pytest_asyncio.fixture
async def make_worker(test_settings):
	clients = []

	def factory(handler):
		http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://app.test")
		clients.append(http)
		return PushWorker(
			cache=OfflineCache(test_settings.push_cache_name),
			http=http,
			config=test_settings,
		)

	yield factory
	for http in clients:
		await http.aclose()


@pytest.mark.asyncio
async def test_install_caches_assets_and_activate_purges_old_versions(make_worker, fake_redis):
	stale = OfflineCache("umrahgo-test-v1")
	await stale.put("/", CachedResponse(status_code=200, content_type="text/html", body=b"old"))

	handler, _ = _app_server(missing={"/manifest.json"})
	worker = make_worker(handler)

	cached = await worker.install()
	assert cached == ["/", "/offline.html"]
	assert worker.state is WorkerState.INSTALLED

	purged = await worker.activate()
	assert purged == ["umrahgo-test-v1"]
	assert worker.state is WorkerState.ACTIVE
	assert await worker.cache.cache_names() == ["umrahgo-test-v2"]
	assert await fake_redis.exists("push:cache:umrahgo-test-v1:/") == 0


@pytest.mark.asyncio
async def test_fetch_prefers_cache_then_network(make_worker):
	handler, requests = _app_server()
	worker = make_worker(handler)
	await worker.install()
	requests.clear()

	response, hit = await worker.fetch("/offline.html")
	assert hit is True
	assert response.body == b"asset /offline.html"
	assert requests == []

	response, hit = await worker.fetch("/ar/pilgrim/chat")
	assert hit is False
	assert response.status_code == 200
	assert requests == ["/ar/pilgrim/chat"]


@pytest.mark.asyncio
async def test_fetch_network_failure_is_unavailable(make_worker):
	def broken(request):
		raise httpx.ConnectError("offline")

	worker = make_worker(broken)

	assert await worker.install() == []
	assert worker.state is WorkerState.INSTALLED
	with pytest.raises(BackendUnavailableError):
		await worker.fetch("/anything")


@pytest.mark.asyncio
async def test_click_opens_conversation_window(make_worker):
	worker = make_worker(_app_server()[0])
	await worker.handle_push({"data": {"chat_id": "42", "user_type": "office", "locale": "ar"}})

	client = await worker.handle_click("42")

	assert client.url == "/ar/office/chat?id=42"
	assert client.focused is True
	assert worker.display.get("42") is None


@pytest.mark.asyncio
async def test_click_focuses_existing_window(make_worker):
	worker = make_worker(_app_server()[0])
	existing = worker.clients.register("http://app.test/ar/pilgrim/chat?id=42")
	await worker.handle_push({"data": {"chat_id": 42}})

	client = await worker.handle_click("42", "view")

	assert client is existing
	assert client.focused is True
	assert len(worker.clients.match_all()) == 1


@pytest.mark.asyncio
async def test_close_action_only_dismisses(make_worker):
	worker = make_worker(_app_server()[0])
	await worker.handle_push({"data": {"chat_id": 42}})

	assert await worker.handle_click("42", "close") is None
	assert worker.clients.match_all() == []
	assert len(worker.display) == 0


@pytest.mark.asyncio
async def test_click_without_notification_opens_root(make_worker):
	worker = make_worker(_app_server()[0])

	client = await worker.handle_click("unknown")

	assert client.url == "/"


class UnreachableCacheStore:
	async def _down(self, *args, **kwargs):
		raise RedisConnectionError("cache store down")

	hset = hgetall = sadd = smembers = srem = delete = scan = _down


@pytest.mark.asyncio
async def test_cache_store_outage_does_not_block_activation(test_settings):
	handler, _ = _app_server()
	http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://app.test")
	worker = PushWorker(
		cache=OfflineCache(test_settings.push_cache_name, client=RedisProxy(UnreachableCacheStore())),
		http=http,
		config=test_settings,
	)
	try:
		assert await worker.install() == []
		assert await worker.activate() == []
		assert worker.state is WorkerState.ACTIVE

		response, hit = await worker.fetch("/offline.html")
		assert hit is False
		assert response.body == b"asset /offline.html"

		notification = await worker.handle_push({"data": {"chat_id": "42"}})
		assert worker.display.get("42") is notification
	finally:
		await http.aclose()
