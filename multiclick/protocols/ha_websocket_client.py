"""
Home Assistant Websocket Client
Speaks the Home Assistant websocket API on top of the ``websockets`` library
"""

import asyncio
import contextlib
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import WebSocketException

from multiclick.core.exceptions import (
    AuthenticationError,
    CommandError,
    ConnectTransportError,
    ReconnectExhausted,
)
from multiclick.core.patterns.observer import ConnectionEventType
from multiclick.core.patterns.state_machine import ClientState
from multiclick.protocols.base_protocol_client import (
    BaseBusClient,
    BusClientConfig,
    EventCallback,
    Subscription,
)


WebSocketConnect = Callable[[str], Awaitable[Any]]


def websocket_url(url: str) -> str:
    """``http(s)://host:8123`` -> ``ws(s)://host:8123/api/websocket``."""
    url = url.rstrip("/")
    if url.startswith("https://"):
        url = "wss://" + url[len("https://"):]
    elif url.startswith("http://"):
        url = "ws://" + url[len("http://"):]
    if not url.endswith("/api/websocket"):
        url += "/api/websocket"
    return url


class HomeAssistantClient(BaseBusClient):
    """
    Websocket client for the Home Assistant event/command bus.

    Features:
    - auth handshake with a long-lived access token
    - result correlation by message id
    - event routing to subscriptions
    - socket-level reconnect, restoring subscriptions flagged ``resubscribe``
    """

    def __init__(self, config: BusClientConfig, ws_connect: Optional[WebSocketConnect] = None):
        super().__init__(config)
        self._ws_connect = ws_connect or websockets.connect
        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None
        self._last_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._subscriptions: Dict[int, Subscription] = {}
        self._closing = False
        self.ha_version: Optional[str] = None

    @property
    def websocket_url(self) -> str:
        return websocket_url(self.config.url)

    # ------------------------------------------------------------------ #
    #  Connection lifecycle
    # ------------------------------------------------------------------ #
    async def connect(self) -> None:
        if self._closing:
            raise ConnectTransportError("client is closed")
        self._set_state(ClientState.CONNECTING)
        try:
            await self._open()
        except BaseException:
            self._set_state(ClientState.DISCONNECTED)
            raise
        self._set_state(ClientState.CONNECTED)
        self._reader_task = asyncio.create_task(self._read_loop(), name="ha-websocket-reader")
        self.logger.info(f"Connected to {self.websocket_url} (Home Assistant {self.ha_version})")
        self._emit(ConnectionEventType.CONNECTED)

    async def _open(self) -> None:
        try:
            ws = await self._ws_connect(self.websocket_url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise ConnectTransportError(f"cannot reach {self.websocket_url}: {e}") from e
        try:
            await self._authenticate(ws)
        except BaseException:
            await self._close_socket(ws)
            raise
        self._ws = ws

    async def _authenticate(self, ws) -> None:
        timeout = self.config.command_timeout
        try:
            hello = json.loads(await asyncio.wait_for(ws.recv(), timeout))
            if hello.get("type") != "auth_required":
                raise ConnectTransportError(f"unexpected greeting: {hello.get('type')}")
            self.ha_version = hello.get("ha_version")

            await ws.send(json.dumps({"type": "auth", "access_token": self.config.token}))
            reply = json.loads(await asyncio.wait_for(ws.recv(), timeout))
        except (OSError, WebSocketException, asyncio.TimeoutError, ValueError) as e:
            raise ConnectTransportError(f"handshake with {self.websocket_url} failed: {e}") from e

        if reply.get("type") == "auth_invalid":
            raise AuthenticationError(reply.get("message") or "access token rejected")
        if reply.get("type") != "auth_ok":
            raise ConnectTransportError(f"unexpected auth reply: {reply.get('type')}")

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._set_state(ClientState.CLOSED)

        for sub in self._subscriptions.values():
            sub.active = False
        self._subscriptions.clear()
        self._fail_pending(ConnectionError("client closed"))

        task = self._reader_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        ws, self._ws = self._ws, None
        if ws is not None:
            await self._close_socket(ws)
        self.logger.debug(f"Closed connection to {self.websocket_url}")

    async def _close_socket(self, ws) -> None:
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            self.logger.debug(f"Error closing websocket: {e}")

    # ------------------------------------------------------------------ #
    #  Incoming frames
    # ------------------------------------------------------------------ #
    async def _read_loop(self) -> None:
        ws = self._ws
        try:
            async for frame in ws:
                self._dispatch_frame(frame)
        except websockets.exceptions.ConnectionClosed as e:
            self.logger.warning(f"Websocket closed: {e}")
        except OSError as e:
            self.logger.warning(f"Websocket transport error: {e}")

        if self._closing or ws is not self._ws:
            return
        await self._handle_connection_lost()

    def _dispatch_frame(self, frame) -> None:
        try:
            payload = json.loads(frame)
        except ValueError:
            self.logger.warning(f"Ignoring non-JSON frame: {frame!r}")
            return
        # coalesced messages arrive as a list
        for message in payload if isinstance(payload, list) else [payload]:
            self._dispatch_message(message)

    def _dispatch_message(self, message: Dict[str, Any]) -> None:
        mtype, mid = message.get("type"), message.get("id")

        if mtype == "event":
            sub = self._subscriptions.get(mid)
            if sub is None or not sub.active:
                self.logger.debug(f"Dropping event for unknown subscription {mid}")
                return
            try:
                sub.callback(message.get("event"))
            except Exception as e:
                self.logger.error(f"Error in subscription callback {mid}: {e}", exc_info=True)

        elif mtype in ("result", "pong"):
            future = self._pending.pop(mid, None)
            if future is None:
                if not message.get("success", True):
                    self.logger.warning(f"Command {mid} failed: {message.get('error')}")
                return
            if future.done():
                return
            if mtype == "pong" or message.get("success"):
                future.set_result(message.get("result"))
            else:
                error = message.get("error") or {}
                future.set_exception(CommandError(error.get("message", "command failed"), error.get("code")))

        else:
            self.logger.debug(f"Ignoring message type {mtype!r}")

    # ------------------------------------------------------------------ #
    #  Outgoing messages
    # ------------------------------------------------------------------ #
    def _next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    async def _send(self, payload: Dict[str, Any]) -> None:
        if self._ws is None or not self.is_connected():
            raise ConnectionError("not connected to Home Assistant")
        try:
            await self._ws.send(json.dumps(payload))
        except (OSError, WebSocketException) as e:
            raise ConnectionError(f"send failed: {e}") from e

    async def send_message(self, message: Dict[str, Any]) -> int:
        mid = self._next_id()
        await self._send({**message, "id": mid})
        return mid

    async def send_command(self, message: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        return await self._command(self._next_id(), message, timeout)

    async def _command(self, mid: int, message: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        future = asyncio.get_running_loop().create_future()
        self._pending[mid] = future
        try:
            await self._send({**message, "id": mid})
            return await asyncio.wait_for(future, timeout or self.config.command_timeout)
        finally:
            self._pending.pop(mid, None)

    async def ping(self) -> None:
        await self.send_command({"type": "ping"})

    # ------------------------------------------------------------------ #
    #  Subscriptions
    # ------------------------------------------------------------------ #
    async def subscribe_message(self, callback: EventCallback, message: Dict[str, Any],
                                resubscribe: bool = True) -> Subscription:
        sub = Subscription(self, message, callback, resubscribe)
        await self._register(sub)
        return sub

    async def _register(self, sub: Subscription) -> None:
        mid = self._next_id()
        sub.id = mid
        # routed before the result arrives; events may race it
        self._subscriptions[mid] = sub
        try:
            await self._command(mid, sub.message)
        except BaseException:
            self._subscriptions.pop(mid, None)
            raise

    async def _release(self, sub: Subscription) -> None:
        self._subscriptions.pop(sub.id, None)
        attempts = max(1, self.config.unsubscribe_attempts)
        for attempt in range(1, attempts + 1):
            if not self.is_connected():
                # server-side subscriptions die with the socket
                return
            try:
                await self.send_command({"type": "unsubscribe_events", "subscription": sub.id})
                return
            except ConnectionError:
                return
            except CommandError as e:
                self.logger.debug(f"Unsubscribe {sub.id} rejected: {e}")
                return
            except asyncio.TimeoutError:
                self.logger.warning(f"Unsubscribe {sub.id} timed out (attempt {attempt}/{attempts})")
        self.logger.error(f"Giving up unsubscribing {sub.id}; its events are already ignored")

    async def _resubscribe(self) -> None:
        for sub in list(self._subscriptions.values()):
            old_id = sub.id
            self._subscriptions.pop(old_id, None)
            if not sub.active:
                continue
            try:
                await self._register(sub)
            except ConnectionError:
                sub.id = old_id
                self._subscriptions[old_id] = sub
                raise
            except (CommandError, asyncio.TimeoutError) as e:
                sub.active = False
                self.logger.error(f"Could not restore subscription {sub.message}: {e}")

    # ------------------------------------------------------------------ #
    #  Socket-level reconnect
    # ------------------------------------------------------------------ #
    def _fail_pending(self, error: BaseException) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def _handle_connection_lost(self) -> None:
        stale, self._ws = self._ws, None
        if stale is not None:
            await self._close_socket(stale)
        self._set_state(ClientState.RECONNECTING)
        self._fail_pending(ConnectionError("connection lost"))

        for mid, sub in list(self._subscriptions.items()):
            if not sub.resubscribe:
                sub.active = False
                del self._subscriptions[mid]

        self.logger.warning("Disconnected from Home Assistant")
        self._emit(ConnectionEventType.DISCONNECTED, reason="connection lost")

        attempts = self.config.reconnect_attempts
        error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            await asyncio.sleep(self.config.retry_delay)
            if self._closing:
                return
            try:
                await self._open()
            except AuthenticationError as e:
                error = ReconnectExhausted(f"access token rejected on reconnect: {e}")
                break
            except ConnectTransportError as e:
                self.logger.warning(f"Reconnect attempt {attempt}/{attempts} failed: {e}")
                continue

            if self._closing:
                await self._close_socket(self._ws)
                self._ws = None
                return
            self._set_state(ClientState.CONNECTED)
            self._reader_task = asyncio.create_task(self._read_loop(), name="ha-websocket-reader")
            try:
                await self._resubscribe()
            except ConnectionError as e:
                # the new reader task owns the next reconnect
                self.logger.warning(f"Connection lost again while resubscribing: {e}")
                return
            self.logger.info(f"Reconnected to Home Assistant at {self.websocket_url}")
            self._emit(ConnectionEventType.CONNECTED, reconnect=True)
            return
        else:
            error = ReconnectExhausted(f"gave up after {attempts} reconnect attempts")

        if self._closing:
            return
        self._set_state(ClientState.DISCONNECTED)
        self.logger.error(f"Failed to reconnect to Home Assistant: {error}")
        self._emit(ConnectionEventType.RECONNECT_FAILED, error=error)
