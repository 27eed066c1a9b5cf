"""
Client-side socket manager.

Keeps a single shared connection to the relay with automatic recovery:
- connect() is idempotent and joins an in-flight attempt
- send() waits for the open event when the socket is not open
- unclean closes schedule reconnects with linear backoff, capped at 5 attempts
- close() is intentional and never triggers a reconnect

Listeners are owned by the manager instance, so several managers can coexist.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any
from urllib.parse import urlparse, urlunparse

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed

from lugha.client.events import EventEmitter
from lugha.schemas.chat import Message
from lugha.schemas.wire import ERROR, MESSAGE, ProtocolError, decode_frame

logger = logging.getLogger("lugha.client.socket")

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001
ABNORMAL_CLOSURE = 1006
CLEAN_CLOSE_CODES = frozenset({NORMAL_CLOSURE, GOING_AWAY})

MESSAGE_EVENT = "message"
ERROR_EVENT = "error"
STATE_EVENT = "connection-state"

Connector = Callable[[str], Awaitable[Any]]


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    OFFLINE = "offline"  # Reconnect attempts exhausted; only a manual connect() recovers


class SocketManagerError(Exception):
    """Base error for client socket failures."""


class ConnectionOfflineError(SocketManagerError):
    """Raised by send() once automatic reconnection has given up."""


class SocketClosedError(SocketManagerError):
    """The connection was closed before a pending send could go out."""


def derive_socket_url(base_url: str, path: str = "/ws") -> str:
    """Map an http(s) base URL to the ws(s) relay endpoint on the same host."""
    parsed = urlparse(base_url)
    scheme = {"https": "wss", "http": "ws"}.get(parsed.scheme, parsed.scheme or "ws")
    return urlunparse((scheme, parsed.netloc, path, "", "", ""))


async def _default_connector(url: str) -> Any:
    return await websockets.connect(url)


class SocketManager:
    """
    Owns one duplex connection to the relay.

    Args:
        url: Relay endpoint (ws:// or wss://).
        connector: Coroutine opening a connection; defaults to websockets.connect.
        base_delay: Seconds multiplied by the attempt number between reconnects.
        max_attempts: Reconnect attempts before going offline.
        sleep: Awaitable used for backoff delays (injectable for tests).
    """

    def __init__(
        self,
        url: str,
        connector: Connector | None = None,
        base_delay: float = 2.0,
        max_attempts: int = 5,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self.url = url
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.events = EventEmitter((MESSAGE_EVENT, ERROR_EVENT, STATE_EVENT))
        self.state = ConnectionState.IDLE
        self.reconnect_attempts = 0

        self._connector = connector or _default_connector
        self._sleep = sleep or asyncio.sleep
        self._connection: Any | None = None
        self._connect_task: asyncio.Task | None = None
        self._reader_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._waiters: list[asyncio.Future] = []
        self._intentional_close = False

    # =========================================================================
    # Listeners
    # =========================================================================

    def on_message(self, listener: Callable[[Message], None]) -> Callable[[], None]:
        return self.events.on(MESSAGE_EVENT, listener)

    def on_error(self, listener: Callable[[str], None]) -> Callable[[], None]:
        return self.events.on(ERROR_EVENT, listener)

    def on_connection_state(self, listener: Callable[[ConnectionState], None]) -> Callable[[], None]:
        return self.events.on(STATE_EVENT, listener)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN and self._connection is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def connect(self) -> Any | None:
        """
        Return the open connection, or open one.

        Joins an attempt already in flight. A manual call after the manager went
        offline resets the attempt counter. Returns None if this attempt failed
        (recovery then follows the reconnect policy).
        """
        if self.is_open:
            return self._connection

        if self.state is ConnectionState.OFFLINE:
            self.reconnect_attempts = 0
        self._intentional_close = False
        self._cancel_reconnect()
        return await asyncio.shield(self._start_open())

    async def close(self) -> None:
        """Intentional close: cancels pending reconnects and never reconnects."""
        self._intentional_close = True
        self._cancel_reconnect()

        connection, self._connection = self._connection, None
        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
        if connection is not None:
            try:
                await connection.close(code=NORMAL_CLOSURE)
            except Exception as e:
                logger.warning("Error while closing WebSocket: %s", e)

        self._set_state(ConnectionState.CLOSED)
        self._fail_waiters(SocketClosedError("Connection closed"))

    def _start_open(self) -> asyncio.Task:
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self._open())
        return self._connect_task

    async def _open(self) -> Any | None:
        self._set_state(ConnectionState.CONNECTING)
        try:
            connection = await self._connector(self.url)
        except Exception as e:
            logger.error("WebSocket connection to %s failed: %s", self.url, e)
            self.events.emit(ERROR_EVENT, "Connection error")
            self._handle_close(ABNORMAL_CLOSURE)
            return None

        if self._intentional_close:
            await connection.close(code=NORMAL_CLOSURE)
            return None

        logger.info("WebSocket connection established")
        self._connection = connection
        self.reconnect_attempts = 0
        self._set_state(ConnectionState.OPEN)
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(connection)
        self._reader_task = asyncio.create_task(self._read(connection))
        return connection

    async def _read(self, connection: Any) -> None:
        try:
            async for raw in connection:
                self._dispatch(raw)
        except ConnectionClosed:
            pass
        except Exception as e:
            logger.error("WebSocket receive failed: %s", e)

        if connection is self._connection:
            self._connection = None
        self._handle_close(getattr(connection, "close_code", None) or ABNORMAL_CLOSURE)

    def _handle_close(self, code: int) -> None:
        logger.info("WebSocket connection closed (code %s)", code)
        self._set_state(ConnectionState.CLOSED)

        if self._intentional_close:
            self._fail_waiters(SocketClosedError("Connection closed"))
            return
        if code in CLEAN_CLOSE_CODES:
            self._fail_waiters(SocketClosedError(f"Connection closed by server (code {code})"))
            return
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self.reconnect_attempts >= self.max_attempts:
            logger.error("Maximum reconnection attempts reached")
            self._set_state(ConnectionState.OFFLINE)
            self._fail_waiters(ConnectionOfflineError("Connection lost. Reconnect before sending messages."))
            return

        self.reconnect_attempts += 1
        delay = self.base_delay * self.reconnect_attempts
        self._reconnect_task = asyncio.create_task(self._reconnect_after(self.reconnect_attempts, delay))

    async def _reconnect_after(self, attempt: int, delay: float) -> None:
        await self._sleep(delay)
        logger.info("Attempting to reconnect (%d/%d)...", attempt, self.max_attempts)
        self._reconnect_task = None
        self._start_open()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        self.state = state
        self.events.emit(STATE_EVENT, state)

    def _fail_waiters(self, error: SocketManagerError) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)

    # =========================================================================
    # Traffic
    # =========================================================================

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            data = decode_frame(raw)
        except ProtocolError:
            logger.error("Error parsing WebSocket message: %.200r", raw)
            return

        event_type = data.get("type")
        if event_type == MESSAGE:
            try:
                message = Message.model_validate(data.get("message"))
            except ValidationError as e:
                logger.error("Malformed message event: %s", e)
                return
            self.events.emit(MESSAGE_EVENT, message)
        elif event_type == ERROR:
            error = data.get("error") or data.get("message")
            if isinstance(error, str):
                self.events.emit(ERROR_EVENT, error)
        else:
            logger.warning("Unknown message type: %s", event_type)

    async def send(self, conversation_id: int, content: str, user_id: int, language: str) -> None:
        """
        Send a chat message exactly once.

        Waits for the connection to open when needed. Nothing is queued while
        offline.

        Raises:
            ConnectionOfflineError: reconnect attempts are exhausted.
            SocketClosedError: the connection was closed before the send went out.
        """
        if self.state is ConnectionState.OFFLINE:
            raise ConnectionOfflineError("You are offline. Reconnect before sending messages.")

        connection = self._connection if self.is_open else await self._wait_for_open()
        frame = json.dumps(
            {
                "type": MESSAGE,
                "conversationId": conversation_id,
                "content": content,
                "userId": user_id,
                "language": language,
            }
        )
        try:
            await connection.send(frame)
        except ConnectionClosed as e:
            raise SocketClosedError("Connection closed while sending") from e

    async def _wait_for_open(self) -> Any:
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await self.connect()
            return await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
