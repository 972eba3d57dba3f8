from .time_helpers import before, after, between, now, parse_time
from .config_helpers import (
    device_trigger,
    event_trigger,
    hue_trigger,
    rodret_trigger,
    call_service,
    activate_scene,
    light_off_action,
)

__all__ = [
    'before',
    'after',
    'between',
    'now',
    'parse_time',
    'device_trigger',
    'event_trigger',
    'hue_trigger',
    'rodret_trigger',
    'call_service',
    'activate_scene',
    'light_off_action',
]
