"""
Real-time message relay.

One long-lived WebSocket per client. Each inbound "message" event runs a fixed
pipeline: rate check -> validate -> persist user turn -> echo -> generate reply ->
persist assistant turn -> emit. Frames from one connection are processed to completion
in arrival order; separate connections run concurrently on the event loop.

Delivery is at-most-once per inbound event: no retries and no deduplication.
"""

import logging
import uuid
from enum import Enum
from typing import Protocol

from fastapi import WebSocket

from lugha.schemas.chat import Message, NewMessage
from lugha.schemas.wire import (
    InboundMessageEvent,
    ProtocolError,
    SubscribeEvent,
    error_frame,
    message_frame,
    parse_inbound,
)
from lugha.services.ai_service import AIResponseService
from lugha.services.rate_limiter import allow_relay_message
from lugha.services.store import ChatStore, ConversationNotFoundError, StoreError

logger = logging.getLogger("lugha.relay")

GENERIC_ERROR = "An error occurred processing your message"
RATE_LIMITED_ERROR = "Rate limit exceeded. Please retry later."


class FrameSink(Protocol):
    async def send_text(self, data: str) -> None: ...


class ConnectionState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class RelayConnection:
    """Server-side handle for one client connection."""

    def __init__(self, sink: FrameSink, user_id: int | None = None, peer: str | None = None):
        self.id = uuid.uuid4().hex[:8]
        self.sink = sink
        self.user_id = user_id  # Set when the socket was authenticated
        self.peer = peer
        self.state = ConnectionState.OPEN

    @property
    def rate_identity(self) -> str:
        """Same identity scheme as the HTTP rate limiter."""
        if self.user_id is not None:
            return f"user:{self.user_id}"
        return self.peer or "unknown"

    async def send(self, frame: str) -> bool:
        """Send a frame; a failed send closes this handle instead of raising."""
        if self.state is ConnectionState.CLOSED:
            return False
        try:
            await self.sink.send_text(frame)
            return True
        except Exception as e:
            logger.warning("Send to connection %s failed: %s", self.id, e)
            self.state = ConnectionState.CLOSED
            return False

    def close(self) -> None:
        self.state = ConnectionState.CLOSED

    def __repr__(self) -> str:
        return f"<RelayConnection(id={self.id}, user={self.user_id}, state={self.state.value})>"


class SubscriptionRegistry:
    """
    Conversation id -> connections viewing it.

    Only used when fan-out is enabled; without it every outbound event goes
    back to the connection that triggered it.
    """

    def __init__(self):
        self._subscribers: dict[int, list[RelayConnection]] = {}

    def subscribe(self, conversation_id: int, connection: RelayConnection) -> None:
        viewers = self._subscribers.setdefault(conversation_id, [])
        if connection not in viewers:
            viewers.append(connection)

    def unsubscribe(self, conversation_id: int, connection: RelayConnection) -> None:
        viewers = self._subscribers.get(conversation_id)
        if not viewers:
            return
        if connection in viewers:
            viewers.remove(connection)
        if not viewers:
            del self._subscribers[conversation_id]

    def unsubscribe_all(self, connection: RelayConnection) -> None:
        for conversation_id in list(self._subscribers):
            self.unsubscribe(conversation_id, connection)

    def subscribers(self, conversation_id: int) -> list[RelayConnection]:
        return list(self._subscribers.get(conversation_id, []))


class MessageRelay:
    """
    Mediates chat events between socket clients and the store / AI service.

    Args:
        store: Shared conversation store.
        ai_service: Reply generator; never raises.
        registry: Enables multi-viewer fan-out when given.
    """

    def __init__(
        self,
        store: ChatStore,
        ai_service: AIResponseService,
        registry: SubscriptionRegistry | None = None,
    ):
        self.store = store
        self.ai_service = ai_service
        self.registry = registry

    async def serve(self, websocket: WebSocket, user_id: int | None = None) -> None:
        """Accept a WebSocket and process its frames until it closes."""
        await websocket.accept()
        peer = websocket.client.host if websocket.client else None
        connection = RelayConnection(websocket, user_id=user_id, peer=peer)
        logger.info("Relay connection %s opened", connection.id)

        try:
            while True:
                event = await websocket.receive()
                if event["type"] == "websocket.disconnect":
                    logger.info("Relay connection %s closed (code %s)", connection.id, event.get("code"))
                    break
                raw = event.get("text")
                if raw is None:
                    raw = event.get("bytes") or b""
                await self.handle_frame(raw, connection)
        finally:
            self.release(connection)

    def release(self, connection: RelayConnection) -> None:
        """Drop per-connection resources. Persisted messages are untouched."""
        connection.close()
        if self.registry is not None:
            self.registry.unsubscribe_all(connection)

    async def handle_frame(self, raw: str | bytes, connection: RelayConnection) -> None:
        """Process one inbound frame to completion or to its first failure."""
        try:
            event = parse_inbound(raw)
        except ProtocolError as e:
            logger.warning("Rejected frame on connection %s: %s", connection.id, e)
            await connection.send(error_frame(str(e)))
            return

        try:
            if isinstance(event, SubscribeEvent):
                await self._subscribe(event, connection)
            else:
                await self._relay_message(event, connection)
        except Exception:
            logger.exception("Unexpected relay failure on connection %s", connection.id)
            await connection.send(error_frame(GENERIC_ERROR))

    async def _subscribe(self, event: SubscribeEvent, connection: RelayConnection) -> None:
        if self.registry is None:
            await connection.send(error_frame("Subscriptions are not enabled"))
            return
        try:
            problem = await self._check_conversation(event.conversation_id, connection.user_id)
        except StoreError as e:
            logger.error("Conversation lookup failed for %s: %s", event.conversation_id, e)
            await connection.send(error_frame("Failed to load conversation"))
            return
        if problem:
            await connection.send(error_frame(problem))
            return
        self.registry.subscribe(event.conversation_id, connection)

    async def _relay_message(self, event: InboundMessageEvent, connection: RelayConnection) -> None:
        conversation_id = event.conversation_id

        if not await allow_relay_message(connection.rate_identity):
            logger.warning("Rate limited message on connection %s", connection.id)
            await connection.send(error_frame(RATE_LIMITED_ERROR))
            return

        # 1. Validate references (no writes on failure)
        try:
            problem = await self._validate(event, connection)
        except StoreError as e:
            logger.error("Validation lookup failed for conversation %s: %s", conversation_id, e)
            await connection.send(error_frame("Failed to load conversation"))
            return
        if problem:
            logger.info("Rejected message on connection %s: %s", connection.id, problem)
            await connection.send(error_frame(problem))
            return

        # 2. Persist the user turn
        try:
            user_message = await self.store.create_message(
                NewMessage(
                    conversation_id=conversation_id,
                    content=event.content,
                    translation=None,
                    is_user_message=True,
                )
            )
        except ConversationNotFoundError as e:
            await connection.send(error_frame(str(e)))
            return
        except StoreError as e:
            logger.error("Failed to save user message for conversation %s: %s", conversation_id, e)
            await connection.send(error_frame("Failed to save message"))
            return

        # 3. Confirm with the stored record
        await self._deliver(user_message, connection)

        # 4. Generate the reply (degrades instead of failing)
        reply = await self.ai_service.generate_response(event.content, event.language)

        # 5. Persist the assistant turn
        try:
            ai_message = await self.store.create_message(
                NewMessage(
                    conversation_id=conversation_id,
                    content=reply,
                    translation=None,
                    is_user_message=False,
                )
            )
        except StoreError as e:
            logger.error("Failed to save assistant reply for conversation %s: %s", conversation_id, e)
            await connection.send(error_frame("Failed to save assistant reply"))
            return

        # 6. Emit the reply
        await self._deliver(ai_message, connection)

    async def _validate(self, event: InboundMessageEvent, connection: RelayConnection) -> str | None:
        if connection.user_id is not None and event.user_id not in (None, connection.user_id):
            return "Forbidden"

        language = await self.store.get_language_by_code(event.language)
        if language is None or not language.is_active:
            return f"Unknown language: {event.language}"

        owner_id = connection.user_id if connection.user_id is not None else event.user_id
        return await self._check_conversation(event.conversation_id, owner_id)

    async def _check_conversation(self, conversation_id: int, owner_id: int | None) -> str | None:
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            return f"Conversation {conversation_id} not found"
        if owner_id is not None and conversation.user_id != owner_id:
            return "Forbidden"
        return None

    async def _deliver(self, message: Message, origin: RelayConnection) -> None:
        frame = message_frame(message)
        if self.registry is None:
            await origin.send(frame)
            return

        self.registry.subscribe(message.conversation_id, origin)
        for viewer in self.registry.subscribers(message.conversation_id):
            if not await viewer.send(frame):
                self.registry.unsubscribe(message.conversation_id, viewer)
