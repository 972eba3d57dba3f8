"""
Connection Manager
Owns one Home Assistant session: connect-with-retry, readiness probe,
post-reconnect grace period and the forced periodic reconnect.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from multiclick.core.exceptions import (
    AuthenticationError,
    CommandError,
    ConnectTransportError,
    ReadinessTimeout,
    ReconnectExhausted,
)
from multiclick.core.patterns.observer import ConnectionEvent, ConnectionEventType, EventSubject
from multiclick.models import Trigger
from multiclick.protocols.base_protocol_client import (
    BaseBusClient,
    BusClientConfig,
    EventCallback,
    Subscription,
)
from multiclick.protocols.ha_websocket_client import HomeAssistantClient
from multiclick.utils import event_trigger


PROBE_EVENT_TYPE = "multiclick_readiness_probe"

ClientFactory = Callable[[BusClientConfig], BaseBusClient]


class ConnectionManager:
    """
    Produces a bus client that is connected, authenticated and observed to
    deliver events.

    Listeners on :attr:`events` receive ``CONNECTED`` once a session is usable,
    ``DISCONNECTED`` / ``RECONNECT_FAILED`` from the transport, and
    ``RELOAD_REQUESTED`` when the whole stack should be torn down and rebuilt.
    """

    def __init__(self, config: BusClientConfig, client_factory: Optional[ClientFactory] = None):
        self.config = config
        self.client_factory = client_factory or HomeAssistantClient
        self.client: Optional[BaseBusClient] = None
        self.events = EventSubject(f"{self.__class__.__name__}.events")
        self.logger = logging.getLogger(self.__class__.__name__)
        self.probe_attempts = 0
        self._closed = False
        self._remove_listener: Optional[Callable[[], None]] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------ #
    #  Connect
    # ------------------------------------------------------------------ #
    async def connect(self, reconnect: bool = False) -> BaseBusClient:
        """Retry until a session passes the readiness probe, or until closed.

        With *reconnect* the caller is rebuilding after a lost session, so the
        grace period is awaited before returning, and a rejected token is fatal:
        ``RECONNECT_FAILED`` is emitted and ReconnectExhausted raised.
        """
        attempt = 0
        while not self._closed:
            attempt += 1
            client = self.client_factory(self.config)
            try:
                await client.connect()
                await self._probe_readiness(client)
                if reconnect and self.config.reconnect_grace > 0:
                    self.logger.info(f"Waiting {self.config.reconnect_grace}s for devices to settle")
                    await asyncio.sleep(self.config.reconnect_grace)
            except (ConnectTransportError, ConnectionError, asyncio.TimeoutError, CommandError) as e:
                await client.close()
                if reconnect and isinstance(e, AuthenticationError):
                    error = ReconnectExhausted(f"access token rejected on reconnect: {e}")
                    self.logger.error(f"Failed to reconnect to Home Assistant: {error}")
                    self.events.notify(ConnectionEvent(ConnectionEventType.RECONNECT_FAILED, error=error))
                    raise error from e
                level = logging.ERROR if isinstance(e, AuthenticationError) else logging.WARNING
                self.logger.log(level, f"Connection attempt {attempt} failed: {e}; "
                                       f"retrying in {self.config.retry_delay}s")
                await asyncio.sleep(self.config.retry_delay)
                continue
            except BaseException:
                await client.close()
                raise

            if self._closed:
                await client.close()
                break

            self.client = client
            self._remove_listener = client.events.subscribe(self._on_client_event)
            self._start_timer()
            self.logger.info(f"Connected to Home Assistant at {self.config.url}")
            self.events.notify(ConnectionEvent(ConnectionEventType.CONNECTED, reconnect=reconnect))
            return client

        raise ConnectionError("connection manager closed")

    async def _probe_readiness(self, client: BaseBusClient) -> int:
        """Fire the self-test event until it is observed; return the attempt count."""
        attempts = 0
        while True:
            attempts += 1
            self.probe_attempts += 1
            try:
                await self._probe_once(client)
                self.logger.debug(f"Readiness probe succeeded after {attempts} attempt(s)")
                return attempts
            except ReadinessTimeout as e:
                self.logger.warning(f"{e}; probing again")

    async def _probe_once(self, client: BaseBusClient) -> None:
        seen = asyncio.Event()
        message = Trigger.from_row(event_trigger(PROBE_EVENT_TYPE)).to_message()
        sub = await client.subscribe_message(lambda _event: seen.set(), message, resubscribe=False)
        try:
            await client.send_command({"type": "fire_event", "event_type": PROBE_EVENT_TYPE})
            try:
                await asyncio.wait_for(seen.wait(), self.config.probe_timeout)
            except asyncio.TimeoutError:
                raise ReadinessTimeout(
                    f"probe event not observed within {self.config.probe_timeout}s"
                ) from None
        finally:
            await sub.unsubscribe()

    # ------------------------------------------------------------------ #
    #  Session API used by the dispatchers
    # ------------------------------------------------------------------ #
    async def subscribe(self, trigger: Trigger, callback: EventCallback,
                        resubscribe: Optional[bool] = None) -> Subscription:
        if self.client is None or self._closed:
            raise ConnectionError("no active Home Assistant session")
        if resubscribe is None:
            # under full reinit the whole stack is rebuilt instead
            resubscribe = not self.config.full_reinit
        return await self.client.subscribe_message(callback, trigger.to_message(), resubscribe)

    async def send(self, message) -> int:
        if self.client is None or self._closed:
            raise ConnectionError("no active Home Assistant session")
        return await self.client.send_message(message)

    # ------------------------------------------------------------------ #
    #  Transport events
    # ------------------------------------------------------------------ #
    def _on_client_event(self, event: ConnectionEvent) -> None:
        if self._closed:
            return
        if event.event_type is ConnectionEventType.DISCONNECTED:
            self.events.notify(event)
            if self.config.full_reinit:
                self._stop_timer()
                self._spawn(self._reload_after_disconnect())
        elif event.event_type is ConnectionEventType.CONNECTED:
            self._spawn(self._settle_after_reconnect())
        elif event.event_type is ConnectionEventType.RECONNECT_FAILED:
            self.logger.error(f"Home Assistant connection could not be restored: {event.error}")
            self.events.notify(event)

    async def _reload_after_disconnect(self) -> None:
        client = self.client
        if client is not None:
            await client.close()
        self.events.notify(ConnectionEvent(ConnectionEventType.RELOAD_REQUESTED,
                                           reason="disconnected", reconnect=True))

    async def _settle_after_reconnect(self) -> None:
        client = self.client
        try:
            await self._probe_readiness(client)
        except (ConnectionError, CommandError, asyncio.TimeoutError) as e:
            # the transport reports the loss again on its own
            self.logger.warning(f"Readiness probe after reconnect failed: {e}")
            return
        if self.config.reconnect_grace > 0:
            await asyncio.sleep(self.config.reconnect_grace)
        if not self._closed and client is self.client:
            self.events.notify(ConnectionEvent(ConnectionEventType.CONNECTED, reconnect=True))

    # ------------------------------------------------------------------ #
    #  Forced reconnect
    # ------------------------------------------------------------------ #
    def _start_timer(self) -> None:
        interval = self.config.forced_reconnect_interval
        if interval is None or interval <= 0 or self._timer_task is not None:
            return
        self._timer_task = asyncio.create_task(self._forced_reconnect_loop(interval),
                                               name="forced-reconnect")

    def _stop_timer(self) -> None:
        task, self._timer_task = self._timer_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _forced_reconnect_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.logger.info("Forcing periodic reconnect")
            self.events.notify(ConnectionEvent(ConnectionEventType.RELOAD_REQUESTED,
                                               reason="forced reconnect", reconnect=True))

    # ------------------------------------------------------------------ #
    #  Teardown
    # ------------------------------------------------------------------ #
    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_timer()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        client, self.client = self.client, None
        if client is not None:
            await client.close()
        self.events.clear()
        self.logger.debug("Connection manager closed")
