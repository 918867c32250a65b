"""Chat domain exports."""

from .inbox import ChatInbox
from .links import chat_url
from .models import ChatMessage, ChatNotification, ChatRoom, ContentType, MessageStatus, RoomKind, TypingSignal
from .service import ChatService
from .timeline import MessageTimeline

__all__ = [
	"ChatInbox",
	"ChatMessage",
	"ChatNotification",
	"ChatRoom",
	"ChatService",
	"ContentType",
	"MessageStatus",
	"MessageTimeline",
	"RoomKind",
	"TypingSignal",
	"chat_url",
]
