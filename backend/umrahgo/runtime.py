"""Composition root: one transport and one identity bridge per process."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any, Callable, Optional

from umrahgo import obs
from umrahgo.domain.chat.inbox import ChatInbox
from umrahgo.domain.chat.service import ChatService
from umrahgo.domain.chat.session import ChatSession
from umrahgo.domain.identity.bridge import AuthBridge
from umrahgo.domain.identity.models import ActorIdentity
from umrahgo.domain.identity.sessions import SessionProvider
from umrahgo.domain.identity.tokens import TokenStore
from umrahgo.domain.notifications.aggregator import NotificationAggregator
from umrahgo.domain.notifications.toasts import ToastQueue, ToastSink
from umrahgo.infra.backend import BackendClient
from umrahgo.realtime.registry import Subscription
from umrahgo.realtime.transport import RealtimeTransport
from umrahgo.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class ChatRuntime:
	def __init__(
		self,
		*,
		config: Settings | None = None,
		backend: BackendClient | None = None,
		tokens: TokenStore | None = None,
		sessions: SessionProvider | None = None,
		client_factory: Callable[[], Any] | None = None,
		toasts: ToastSink | None = None,
	) -> None:
		self.settings = config or default_settings
		self.backend = backend or BackendClient(config=self.settings)
		self.bridge = AuthBridge(backend=self.backend, tokens=tokens, sessions=sessions, config=self.settings)
		# Any 401 from the backend drops the cached actor and every stored token
		self.backend.set_unauthorized_hook(self.bridge.clear_auth_data)
		self.transport = RealtimeTransport(
			backend=self.backend,
			token_source=self.bridge.get_token,
			config=self.settings,
			client_factory=client_factory,
		)
		self.chat = ChatService(backend=self.backend, token_source=self.bridge.get_token)
		self.inbox = ChatInbox(self.chat)
		self.toasts = toasts or ToastQueue()
		self.notifications = NotificationAggregator(
			transport=self.transport,
			bridge=self.bridge,
			backend=self.backend,
			toasts=self.toasts,
			config=self.settings,
		)
		self._inbox_subscription: Optional[Subscription] = None
		self._shutdown_task: Optional[asyncio.Task] = None
		self._closed = False

	async def start(self) -> Optional[ActorIdentity]:
		obs.init()
		actor = await self.bridge.get_current_actor()
		if self._inbox_subscription is None:
			self._inbox_subscription = self.transport.on_private_message(self.inbox.receive)
		if actor is not None:
			self.inbox.actor_id = actor.id
			await self.transport.connect(actor.id, actor.role.value)
		await self.notifications.start()
		return actor

	def session(self, conversation_id: Optional[str] = None, **options: Any) -> ChatSession:
		return ChatSession(
			transport=self.transport,
			bridge=self.bridge,
			service=self.chat,
			conversation_id=conversation_id,
			config=self.settings,
			**options,
		)

	def open_conversation(self, conversation_id: Optional[str]) -> None:
		"""Tell the badge and the inbox which conversation is on screen."""
		self.inbox.set_open(conversation_id)
		self.notifications.set_open_conversation(conversation_id)

	def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
		event_loop = loop or asyncio.get_running_loop()
		for sig in (signal.SIGINT, signal.SIGTERM):
			try:
				event_loop.add_signal_handler(sig, self._schedule_shutdown)
			except (NotImplementedError, RuntimeError):
				logger.info("signal handlers unsupported on this loop", extra={"signal": sig.name})
				return

	def _schedule_shutdown(self) -> None:
		if self._shutdown_task is None:
			self._shutdown_task = asyncio.ensure_future(self.shutdown())

	async def shutdown(self) -> None:
		if self._closed:
			return
		self._closed = True
		await self.notifications.stop()
		if self._inbox_subscription is not None:
			self._inbox_subscription.dispose()
			self._inbox_subscription = None
		await self.transport.disconnect()
		await self.backend.aclose()


__all__ = ["ChatRuntime"]
