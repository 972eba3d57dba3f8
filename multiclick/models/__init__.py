"""Data models and domain objects."""

from .config_models import (
    Action,
    ButtonSpec,
    Configuration,
    Trigger,
)

__all__ = [
    'Action',
    'ButtonSpec',
    'Configuration',
    'Trigger',
]
