"""Trigger and action constructors exposed to configuration scripts."""
from typing import Any, Dict, Optional


def device_trigger(device_id: str, subtype: str, *, domain: str = "mqtt",
                   type: str = "action") -> Dict[str, Any]:
    return {
        "trigger": "device",
        "domain": domain,
        "device_id": device_id,
        "type": type,
        "subtype": subtype,
    }


def event_trigger(event_type: str, event_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    trigger: Dict[str, Any] = {"trigger": "event", "event_type": event_type}
    if event_data:
        trigger["event_data"] = dict(event_data)
    return trigger


def hue_trigger(state: str, device_id: str) -> Dict[str, Any]:
    """Hue dimmer switch via zigbee2mqtt: ``on-press`` / ``off-press``."""
    return device_trigger(device_id, f"{state}-press")


def rodret_trigger(state: str, device_id: str) -> Dict[str, Any]:
    """IKEA RODRET via zigbee2mqtt: plain ``on`` / ``off``."""
    return device_trigger(device_id, state)


def call_service(domain: str, service: str, target: Optional[Dict[str, Any]] = None,
                 **service_data: Any) -> Dict[str, Any]:
    action: Dict[str, Any] = {"domain": domain, "service": service}
    if target:
        action["target"] = dict(target)
    if service_data:
        action["service_data"] = service_data
    return action


def activate_scene(scene_id: str) -> Dict[str, Any]:
    return call_service("scene", "turn_on", {"entity_id": scene_id})


def light_off_action(device_id: str) -> Dict[str, Any]:
    return call_service("light", "turn_off", {"device_id": device_id})
