"""Event/command bus client implementations."""

from .base_protocol_client import (
    BaseBusClient,
    BusClientConfig,
    Subscription,
)

from .ha_websocket_client import HomeAssistantClient, websocket_url

__all__ = [
    # Base classes
    'BaseBusClient',
    'BusClientConfig',
    'Subscription',

    # Implementations
    'HomeAssistantClient',
    'websocket_url',
]
