# Button behaviour for multiclick. Reloaded automatically when saved.
#
# Available names: env, getenv, now, before, after, between, device_trigger,
# event_trigger, hue_trigger, rodret_trigger, call_service, activate_scene,
# light_off_action. Imports and file access are not available.

if "HA_TOKEN" not in env:
    raise RuntimeError("HA_TOKEN must be set in the environment or .env")

LIVING_ROOM_DIMMER = "2c4b8d0f1a3e5c7b9d1f3a5c7e9b1d3f"
LIVING_ROOM_LIGHTS = "8e0a2c4e6a8c0e2a4c6e8a0c2e4a6c8e"
OFFICE_DIMMER = "5d7f9b1d3f5b7d9f1b3d5f7b9d1f3b5d"
OFFICE_LIGHTS = "1f3b5d7f9b1d3f5b7d9f1b3d5f7b9d1f"


def office_scenes():
    if between("08:00", "18:00"):
        return [activate_scene("scene.office_concentrate"),
                activate_scene("scene.office_bright")]
    return [activate_scene("scene.office_relax"),
            activate_scene("scene.office_dimmed"),
            activate_scene("scene.office_nightlight")]


config = {
    "home_assistant_url": getenv("HA_URL", "http://192.168.178.4:8123"),
    "long_lived_token": env["HA_TOKEN"],
    "buttons": [
        {
            "name": "Living Room Hue Dimmer",
            "off": {
                "trigger": hue_trigger("off", LIVING_ROOM_DIMMER),
                "action": light_off_action(LIVING_ROOM_LIGHTS),
            },
            "on": {
                "trigger": hue_trigger("on", LIVING_ROOM_DIMMER),
                "actions": [
                    activate_scene("scene.living_room_bright"),
                    activate_scene("scene.living_room_read"),
                    activate_scene("scene.living_room_relax"),
                ],
            },
        },
        {
            "name": "Office Hue Dimmer",
            "off": {
                "trigger": hue_trigger("off", OFFICE_DIMMER),
                "action": light_off_action(OFFICE_LIGHTS),
            },
            "on": {
                "trigger": hue_trigger("on", OFFICE_DIMMER),
                "actions": office_scenes,
            },
        },
    ],
}
