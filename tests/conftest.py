"""Shared fixtures: an in-memory Home Assistant websocket server."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from multiclick.models import Configuration
from multiclick.protocols import BusClientConfig, HomeAssistantClient
from multiclick.utils import activate_scene, hue_trigger, light_off_action


TOKEN = "secret-token"
HA_URL = "http://ha.test:8123"


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------


class FakeWebSocket:
    """Client side of one fake websocket; frames from the server are queued."""

    def __init__(self, server: "FakeHomeAssistant"):
        self.server = server
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.push({"type": "auth_required", "ha_version": "2024.6.0"})

    def push(self, message: Any) -> None:
        if not self.closed:
            self.incoming.put_nowait(json.dumps(message))

    async def recv(self) -> str:
        frame = await self.incoming.get()
        if frame is None:
            raise ConnectionResetError("socket closed")
        return frame

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        frame = await self.incoming.get()
        if frame is None:
            raise StopAsyncIteration
        return frame

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.server.handle(self, json.loads(data))

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.incoming.put_nowait(None)
        self.server.forget(self)


class FakeHomeAssistant:
    """Just enough of the Home Assistant websocket API for the bridge."""

    def __init__(self, token: str = TOKEN):
        self.token = token
        self.refuse = 0
        self.probe_failures = 0
        self.fail_subscribe = False
        self.connect_attempts = 0
        self.sockets: List[FakeWebSocket] = []
        self.subscriptions: Dict[Tuple[FakeWebSocket, int], Dict[str, Any]] = {}
        self.unsubscribed: List[int] = []
        self.calls: List[Dict[str, Any]] = []
        self.fired: List[str] = []

    async def connect(self, url: str) -> FakeWebSocket:
        self.connect_attempts += 1
        self.last_url = url
        if self.refuse > 0:
            self.refuse -= 1
            raise ConnectionRefusedError("connection refused")
        ws = FakeWebSocket(self)
        self.sockets.append(ws)
        return ws

    # -- server side ------------------------------------------------------ #
    def handle(self, ws: FakeWebSocket, msg: Dict[str, Any]) -> None:
        mtype, mid = msg.get("type"), msg.get("id")
        if mtype == "auth":
            ok = msg.get("access_token") == self.token
            ws.push({"type": "auth_ok" if ok else "auth_invalid",
                     **({} if ok else {"message": "Invalid access token"})})
        elif mtype == "subscribe_trigger":
            # only device triggers; the readiness probe keeps working
            if self.fail_subscribe and msg["trigger"].get("trigger") == "device":
                self._result(ws, mid, False)
                return
            self.subscriptions[(ws, mid)] = msg["trigger"]
            self._result(ws, mid)
        elif mtype == "unsubscribe_events":
            self.subscriptions.pop((ws, msg["subscription"]), None)
            self.unsubscribed.append(msg["subscription"])
            self._result(ws, mid)
        elif mtype == "fire_event":
            self.fired.append(msg["event_type"])
            self._result(ws, mid)
            if self.probe_failures > 0:
                self.probe_failures -= 1
                return
            for (sock, sid), trigger in list(self.subscriptions.items()):
                if sock is ws and trigger.get("event_type") == msg["event_type"]:
                    ws.push({"id": sid, "type": "event",
                             "event": {"variables": {"trigger": dict(trigger)}}})
        elif mtype == "call_service":
            self.calls.append(msg)
            self._result(ws, mid)
        elif mtype == "ping":
            ws.push({"id": mid, "type": "pong"})
        else:
            self._result(ws, mid, False)

    def _result(self, ws: FakeWebSocket, mid: int, success: bool = True) -> None:
        if success:
            ws.push({"id": mid, "type": "result", "success": True, "result": None})
        else:
            ws.push({"id": mid, "type": "result", "success": False,
                     "error": {"code": "unknown_error", "message": "rejected"}})

    def forget(self, ws: FakeWebSocket) -> None:
        if ws in self.sockets:
            self.sockets.remove(ws)
        for key in [k for k in self.subscriptions if k[0] is ws]:
            del self.subscriptions[key]

    # -- test controls ---------------------------------------------------- #
    def press(self, device_id: str, subtype: str) -> int:
        """Fire a device trigger; returns how many subscriptions matched."""
        matched = 0
        for (ws, sid), trigger in list(self.subscriptions.items()):
            if trigger.get("device_id") == device_id and trigger.get("subtype") == subtype:
                ws.push({"id": sid, "type": "event",
                         "event": {"variables": {"trigger": dict(trigger)}}})
                matched += 1
        return matched

    def drop(self) -> None:
        """Server-side disconnect of every open socket."""
        for ws in list(self.sockets):
            ws.closed = True
            ws.incoming.put_nowait(None)
            self.forget(ws)

    def device_subscriptions(self) -> List[Dict[str, Any]]:
        return [t for t in self.subscriptions.values() if t.get("trigger") == "device"]

    def scenes(self) -> List[str]:
        return [c["target"]["entity_id"] for c in self.calls if c["domain"] == "scene"]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout)


# ---------------------------------------------------------------------------
# Configuration helpers
# ---------------------------------------------------------------------------


def hue_button(name: str, device: str, lights: str, actions) -> Dict[str, Any]:
    return {
        "name": name,
        "off": {"trigger": hue_trigger("off", device), "action": light_off_action(lights)},
        "on": {"trigger": hue_trigger("on", device), "actions": actions},
    }


def scenes(*names: str) -> List[Dict[str, Any]]:
    return [activate_scene(f"scene.{n}") for n in names]


def make_configuration(*buttons: Dict[str, Any], verbose: bool = False) -> Configuration:
    if not buttons:
        buttons = (hue_button("Living Room", "dimmer-1", "lights-1", scenes("a", "b")),)
    return Configuration.from_row({
        "home_assistant_url": HA_URL,
        "long_lived_token": TOKEN,
        "buttons": list(buttons),
        "verbose": verbose,
    })


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def server() -> FakeHomeAssistant:
    return FakeHomeAssistant()


@pytest.fixture
def bus_config() -> BusClientConfig:
    return BusClientConfig(
        url=HA_URL,
        token=TOKEN,
        retry_delay=0.01,
        probe_timeout=0.05,
        reconnect_grace=0,
        forced_reconnect_interval=None,
        command_timeout=0.5,
        reconnect_attempts=3,
    )


@pytest.fixture
def client_factory(server: FakeHomeAssistant) -> Callable[[BusClientConfig], HomeAssistantClient]:
    return lambda cfg: HomeAssistantClient(cfg, ws_connect=server.connect)
