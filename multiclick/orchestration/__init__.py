# multiclick/orchestration/__init__.py
"""Orchestration layer with command pattern and state management."""

from .state_machine import SupervisorStateMachine, SupervisorState
from .commands import (
    BringUpCommand,
    ConnectCommand,
    AttachButtonsCommand
)
from .supervisor import (
    Supervisor,
    EXIT_OK,
    EXIT_CONFIG_ERROR,
    EXIT_RECONNECT_FAILED
)

__all__ = [
    'Supervisor',
    'SupervisorStateMachine',
    'SupervisorState',
    'BringUpCommand',
    'ConnectCommand',
    'AttachButtonsCommand',
    'EXIT_OK',
    'EXIT_CONFIG_ERROR',
    'EXIT_RECONNECT_FAILED'
]
