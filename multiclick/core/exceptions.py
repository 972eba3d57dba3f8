"""
Centralised exception definitions for the multi-click button bridge.
All custom exceptions should inherit from MultiClickError.
"""

class MultiClickError(Exception):
    """Base class for every custom exception thrown by this project."""

class ConfigLoadError(MultiClickError):
    """The configuration script is missing, malformed, raised, or has the wrong shape.

    Delivered as a value by the config source and watcher, never raised across
    the reload boundary.
    """

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path

class BusError(MultiClickError):
    """Generic failure talking to the Home Assistant event/command bus."""

class ConnectTransportError(BusError):
    """Opening or authenticating the websocket failed; retried with fixed backoff."""

class AuthenticationError(ConnectTransportError):
    """The bus rejected the access token."""

class CommandError(BusError):
    """The bus answered a command with ``success: false``."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code

class ReadinessTimeout(BusError):
    """The readiness probe did not observe its own self-test event in time."""

class ReconnectExhausted(BusError):
    """The transport can no longer re-establish the connection."""

class DispatchIndexError(MultiClickError):
    """An "on" press resolved to an empty action list."""
