"""Multi-click button bridge for Home Assistant - Main Package"""

__version__ = '1.0.0'
__author__ = 'Your Team'
__description__ = 'Cycles scenes on repeated presses of Home Assistant buttons, with hot-reloaded configuration'

# Core patterns - most fundamental
from .core import StateMachine, EventSubject, MultiClickError, ConfigLoadError

# Models - domain objects
from .models import Action, ButtonSpec, Configuration, Trigger

# Protocols
from .protocols import BusClientConfig, HomeAssistantClient

# Services - business logic
from .services import ConfigSource, ConfigWatcher, ConnectionManager, ButtonDispatcher

# Orchestration
from .orchestration import Supervisor

__all__ = [
    # Core
    'StateMachine',
    'EventSubject',
    'MultiClickError',
    'ConfigLoadError',

    # Models
    'Action',
    'ButtonSpec',
    'Configuration',
    'Trigger',

    # Protocols
    'BusClientConfig',
    'HomeAssistantClient',

    # Services
    'ConfigSource',
    'ConfigWatcher',
    'ConnectionManager',
    'ButtonDispatcher',

    # Orchestration
    'Supervisor',
]
