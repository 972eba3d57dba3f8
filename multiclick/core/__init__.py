# multiclick/core/__init__.py
"""Core infrastructure components for the multi-click button bridge."""

# Import order: most fundamental to most specific

from .exceptions import (
    MultiClickError,
    ConfigLoadError,
    BusError,
    ConnectTransportError,
    AuthenticationError,
    CommandError,
    ReadinessTimeout,
    ReconnectExhausted,
    DispatchIndexError,
)

from .patterns.state_machine import StateMachine, ClientState
from .patterns.observer import (
    ConnectionEvent,
    ConnectionEventType,
    EventSubject,
)


__all__ = [
    "StateMachine",
    "ClientState",
    "ConnectionEvent",
    "ConnectionEventType",
    "EventSubject",
    "MultiClickError",
    "ConfigLoadError",
    "BusError",
    "ConnectTransportError",
    "AuthenticationError",
    "CommandError",
    "ReadinessTimeout",
    "ReconnectExhausted",
    "DispatchIndexError",
]
