"""Business services: configuration loading, connection and button handling."""

from .config_source import ConfigSource, SAFE_BUILTINS
from .config_watcher import ConfigWatcher
from .connection_manager import ConnectionManager, PROBE_EVENT_TYPE
from .button_dispatcher import ButtonDispatcher, ButtonPress

__all__ = [
    'ConfigSource',
    'SAFE_BUILTINS',
    'ConfigWatcher',
    'ConnectionManager',
    'PROBE_EVENT_TYPE',
    'ButtonDispatcher',
    'ButtonPress',
]
