"""
Event/Command Bus Client Framework
Base abstract class, configuration and subscription handle for bus clients
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional
import logging

from multiclick.core.patterns.observer import ConnectionEvent, ConnectionEventType, EventSubject
from multiclick.core.patterns.state_machine import ClientState, StateMachine


EventCallback = Callable[[Dict[str, Any]], None]


class BusClientConfig:
    """Configuration class for bus clients and the connection manager."""

    def __init__(self,
                 url: str,
                 token: str,
                 full_reinit: bool = True,
                 retry_delay: float = 5.0,
                 probe_timeout: float = 2.0,
                 reconnect_grace: float = 30.0,
                 forced_reconnect_interval: Optional[float] = 600.0,
                 command_timeout: float = 10.0,
                 reconnect_attempts: int = 10,
                 unsubscribe_attempts: int = 3):
        self.url = url
        self.token = token
        self.full_reinit = full_reinit
        self.retry_delay = retry_delay
        self.probe_timeout = probe_timeout
        self.reconnect_grace = reconnect_grace
        self.forced_reconnect_interval = forced_reconnect_interval
        self.command_timeout = command_timeout
        self.reconnect_attempts = reconnect_attempts
        self.unsubscribe_attempts = unsubscribe_attempts

    @classmethod
    def from_settings(cls, url: str, token: str, settings) -> "BusClientConfig":
        return cls(
            url=url,
            token=token,
            full_reinit=settings.FULL_REINIT,
            retry_delay=settings.CONNECT_RETRY_DELAY,
            probe_timeout=settings.PROBE_TIMEOUT,
            reconnect_grace=settings.RECONNECT_GRACE,
            forced_reconnect_interval=settings.FORCED_RECONNECT_INTERVAL,
            command_timeout=settings.COMMAND_TIMEOUT,
            reconnect_attempts=settings.RECONNECT_ATTEMPTS,
        )

    def __repr__(self) -> str:
        return f"BusClientConfig(url={self.url!r}, full_reinit={self.full_reinit})"


class Subscription:
    """Handle for one live bus subscription.

    Owned by whoever asked for it. ``unsubscribe`` releases it exactly once;
    later calls are no-ops.
    """

    def __init__(self, client: "BaseBusClient", message: Dict[str, Any],
                 callback: EventCallback, resubscribe: bool):
        self._client = client
        self.message = message
        self.callback = callback
        self.resubscribe = resubscribe
        self.id: Optional[int] = None
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        await self._client._release(self)

    def __repr__(self) -> str:
        state = "active" if self.active else "released"
        return f"Subscription(id={self.id}, {self.message.get('type')}, {state})"


class BaseBusClient(ABC):
    """
    Abstract base class for event/command bus clients.

    Subclasses own the transport; the base class owns the connection state
    machine and the lifecycle event subject that the connection manager
    listens to.
    """

    def __init__(self, config: BusClientConfig):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)
        self.machine = StateMachine(ClientState.DISCONNECTED)
        self.events = EventSubject(f"{self.__class__.__name__}.events")

    # Abstract methods that subclasses must implement
    @abstractmethod
    async def connect(self) -> None:
        """Open and authenticate the transport. Raises ConnectTransportError."""

    @abstractmethod
    async def close(self) -> None:
        """Close the transport for good. Safe to call multiple times."""

    @abstractmethod
    async def send_message(self, message: Dict[str, Any]) -> int:
        """Send *message* without waiting for its result; returns the message id."""

    @abstractmethod
    async def send_command(self, message: Dict[str, Any]) -> Any:
        """Send *message* and wait for its result."""

    @abstractmethod
    async def subscribe_message(self, callback: EventCallback, message: Dict[str, Any],
                                resubscribe: bool = True) -> Subscription:
        """Register *callback* for the events produced by the subscription *message*."""

    @abstractmethod
    async def _release(self, subscription: Subscription) -> None:
        """Forget *subscription* locally and unsubscribe it on the bus."""

    # Common implementations
    def _set_state(self, nxt: ClientState) -> None:
        current = self.machine.state
        if not self.machine.transition(nxt) and current is not nxt:
            self.logger.debug(f"Ignoring state change {current.name} -> {nxt.name}")

    def _emit(self, event_type: ConnectionEventType, **kwargs) -> None:
        self.events.notify(ConnectionEvent(event_type, **kwargs))

    # Utility methods
    def get_connection_state(self) -> ClientState:
        """Get current connection state."""
        return self.machine.state

    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self.machine.state is ClientState.CONNECTED
