import pytest

from umrahgo.realtime.registry import HandlerRegistry


@pytest.mark.asyncio
async def test_same_handler_needs_one_disposal_per_registration():
	registry = HandlerRegistry("messages")
	seen = []

	def handler(event):
		seen.append(event)

	first = registry.subscribe("42", handler)
	second = registry.subscribe("42", handler)
	assert registry.refcount("42", handler) == 2

	await registry.dispatch("42", "a")
	assert seen == ["a"]

	first.dispose()
	first.dispose()
	assert registry.refcount("42", handler) == 1
	await registry.dispatch("42", "b")
	assert seen == ["a", "b"]

	second.dispose()
	assert not registry.has_subscribers("42")
	assert await registry.dispatch("42", "c") == 0
	assert seen == ["a", "b"]


@pytest.mark.asyncio
async def test_disposing_one_handler_leaves_the_others():
	registry = HandlerRegistry()
	calls = []

	async def first(event):
		calls.append(("first", event))

	async def second(event):
		calls.append(("second", event))

	sub_first = registry.subscribe("k", first)
	registry.subscribe("k", second)
	sub_first.dispose()

	await registry.dispatch("k", 1)
	assert calls == [("second", 1)]


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_dispatch():
	registry = HandlerRegistry()
	calls = []

	def broken(event):
		raise RuntimeError("boom")

	def healthy(event):
		calls.append(event)

	registry.subscribe("k", broken)
	registry.subscribe("k", healthy)

	assert await registry.dispatch("k", "evt") == 2
	assert calls == ["evt"]


def test_subscription_as_context_manager():
	registry = HandlerRegistry()

	def handler(event):
		return None

	with registry.subscribe("k", handler) as subscription:
		assert subscription.active
		assert registry.handlers("k") == [handler]
	assert not subscription.active
	assert registry.handlers("k") == []


def test_unsubscribe_unknown_handler_is_a_noop():
	registry = HandlerRegistry()
	assert registry.unsubscribe("missing", print) is False
