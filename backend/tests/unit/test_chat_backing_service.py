import httpx
import pytest

from umrahgo.domain.chat.models import ContentType, MessageStatus
from umrahgo.domain.chat.service import ChatService
from umrahgo.infra.errors import UnauthorizedError


@pytest.fixture
def service(backend, bridge):
	return ChatService(backend=backend, token_source=bridge.get_token)


def test_compose_starts_in_sending_state(service):
	message = service.compose("42", "Salam", sender_id=7, sender_display_name="Amina")

	assert message.status is MessageStatus.SENDING
	assert message.id == message.client_msg_id
	assert message.sent_at.tzinfo is not None
	assert message.content_type is ContentType.TEXT


@pytest.mark.asyncio
async def test_send_without_timeline_returns_sent_copy(service, backend_stub):
	backend_stub.route("POST", "/chats/42/messages", {"success": True, "message": "sent"})

	sent = await service.send_message("42", "Salam", sender_id=7)

	assert sent.status is MessageStatus.SENT
	assert sent.body == "Salam"
	body = backend_stub.bodies("POST", "/chats/42/messages")[0]
	assert body == {"message": "Salam", "type": "text", "client_msg_id": sent.client_msg_id}


@pytest.mark.asyncio
async def test_backend_rejection_marks_failed(service, backend_stub):
	backend_stub.route("POST", "/chats/42/messages", {"success": False, "message": "blocked"})

	sent = await service.send_message("42", "Salam", sender_id=7)
	assert sent.status is MessageStatus.FAILED

	backend_stub.route("POST", "/chats/42/messages", httpx.Response(422, json={"message": "invalid"}))
	assert (await service.resend(sent)).status is MessageStatus.FAILED


@pytest.mark.asyncio
async def test_resend_ignores_messages_that_did_not_fail(service):
	message = service.compose("42", "Salam", sender_id=7)
	assert await service.resend(message) is message


@pytest.mark.asyncio
async def test_calls_without_token_raise_unauthorized(backend):
	async def no_token():
		return None

	service = ChatService(backend=backend, token_source=no_token)
	with pytest.raises(UnauthorizedError):
		await service.list_rooms()
	with pytest.raises(UnauthorizedError):
		await service.mark_read("42")
	assert await service.send_typing("42", True) is False


@pytest.mark.asyncio
async def test_load_timeline_fills_conversation_id(service, backend_stub):
	backend_stub.route(
		"GET",
		"/chats/42/messages",
		[
			{"id": 2, "sender_id": 9, "message": "b", "created_at": "2025-01-01T10:01:00Z"},
			{"id": 1, "sender_id": 7, "message": "a", "created_at": "2025-01-01T10:00:00Z"},
			{"id": 3, "message": "no sender"},
		],
	)

	timeline = await service.load_timeline("42")
	assert [message.body for message in timeline] == ["a", "b"]
	assert backend_stub.calls[-1][0:2] == ("GET", "/chats/42/messages")
