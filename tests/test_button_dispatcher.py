"""Tests for per-button press handling."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

import pytest

from multiclick.services import ButtonDispatcher, ButtonPress, ConnectionManager

from conftest import hue_button, make_configuration, scenes, wait_until


class StubConnection:
    """Records outgoing messages and hands out no-op subscriptions."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.callbacks: list = []
        self.fail_send = False

    async def subscribe(self, trigger, callback, resubscribe=None):
        self.callbacks.append(callback)
        return _StubSubscription()

    async def send(self, message):
        if self.fail_send:
            raise ConnectionError("offline")
        self.sent.append(message)
        return len(self.sent)

    def scenes(self) -> List[str]:
        return [m["target"]["entity_id"] for m in self.sent if m["domain"] == "scene"]


class _StubSubscription:

    def __init__(self):
        self.released = 0

    async def unsubscribe(self):
        self.released += 1


def _button(actions):
    return make_configuration(hue_button("Dimmer", "dimmer-1", "lights-1", actions)).buttons[0]


class TestHandlePress:

    @pytest.mark.asyncio
    async def test_on_presses_cycle_through_actions(self):
        conn = StubConnection()
        dispatcher = ButtonDispatcher(_button(scenes("a", "b", "c")), conn)
        for _ in range(4):
            await dispatcher.handle_press(ButtonPress.ON)
        assert conn.scenes() == ["scene.a", "scene.b", "scene.c", "scene.a"]
        assert all(m["type"] == "call_service" for m in conn.sent)

    @pytest.mark.asyncio
    async def test_on_on_off_on(self):
        conn = StubConnection()
        dispatcher = ButtonDispatcher(_button(scenes("a", "b", "c")), conn)
        for press in (ButtonPress.ON, ButtonPress.ON, ButtonPress.OFF, ButtonPress.ON):
            await dispatcher.handle_press(press)

        assert [m["domain"] + "." + m["service"] for m in conn.sent] == [
            "scene.turn_on", "scene.turn_on", "light.turn_off", "scene.turn_on",
        ]
        assert conn.scenes() == ["scene.a", "scene.b", "scene.a"]
        assert conn.sent[2]["target"] == {"device_id": "lights-1"}

    @pytest.mark.asyncio
    async def test_shrinking_dynamic_list_is_clamped(self):
        current = [scenes("a", "b", "c", "d", "e", "f")]
        conn = StubConnection()
        dispatcher = ButtonDispatcher(_button(lambda: current[0]), conn)
        dispatcher.cycle.count = 5
        current[0] = scenes("x", "y")

        await dispatcher.handle_press(ButtonPress.ON)
        assert conn.scenes() == ["scene.y"]
        assert dispatcher.cycle.count == 0

    @pytest.mark.asyncio
    async def test_empty_dynamic_list_is_a_no_op(self, caplog):
        conn = StubConnection()
        dispatcher = ButtonDispatcher(_button(lambda: []), conn)
        with caplog.at_level(logging.WARNING):
            assert await dispatcher.handle_press(ButtonPress.ON) is None
        assert conn.sent == []
        assert dispatcher.cycle.count == 0
        assert "empty" in caplog.text

    @pytest.mark.asyncio
    async def test_verbose_logs_presses_at_info(self, caplog):
        conn = StubConnection()
        dispatcher = ButtonDispatcher(_button(scenes("a")), conn, verbose=True)
        with caplog.at_level(logging.INFO):
            await dispatcher.handle_press(ButtonPress.ON)
        assert "Received 'on' for 'Dimmer'" in caplog.text

    @pytest.mark.asyncio
    async def test_quiet_mode_logs_presses_at_debug(self, caplog):
        conn = StubConnection()
        dispatcher = ButtonDispatcher(_button(scenes("a")), conn)
        with caplog.at_level(logging.INFO):
            await dispatcher.handle_press(ButtonPress.ON)
        assert "Received" not in caplog.text


class TestQueue:

    @pytest.mark.asyncio
    async def test_presses_processed_in_order(self):
        conn = StubConnection()
        dispatcher = ButtonDispatcher(_button(scenes("a", "b")), conn)
        await dispatcher.attach()
        on_cb, off_cb = conn.callbacks

        for callback in (on_cb, on_cb, off_cb, on_cb):
            callback({})
        await wait_until(lambda: len(conn.sent) == 4)
        assert conn.scenes() == ["scene.a", "scene.b", "scene.a"]
        await dispatcher.detach()

    @pytest.mark.asyncio
    async def test_send_failure_does_not_stop_worker(self):
        conn = StubConnection()
        dispatcher = ButtonDispatcher(_button(scenes("a", "b")), conn)
        await dispatcher.attach()
        on_cb, _off_cb = conn.callbacks

        conn.fail_send = True
        on_cb({})
        await asyncio.sleep(0.01)
        conn.fail_send = False
        on_cb({})
        await wait_until(lambda: conn.sent)
        # the failed press still advanced the cycle
        assert conn.scenes() == ["scene.b"]
        await dispatcher.detach()

    @pytest.mark.asyncio
    async def test_events_after_detach_are_ignored(self):
        conn = StubConnection()
        dispatcher = ButtonDispatcher(_button(scenes("a", "b")), conn)
        on_sub, off_sub = await dispatcher.attach()
        on_cb, _off_cb = conn.callbacks

        await dispatcher.detach()
        await dispatcher.detach()
        on_cb({})
        await asyncio.sleep(0.01)

        assert conn.sent == []
        assert on_sub.released == 1 and off_sub.released == 1
        assert not dispatcher.attached


class TestAgainstServer:

    @pytest.mark.asyncio
    async def test_press_on_device_dispatches_scene(self, server, bus_config, client_factory):
        manager = ConnectionManager(bus_config, client_factory=client_factory)
        await manager.connect()
        dispatcher = ButtonDispatcher(_button(scenes("a", "b")), manager)
        await dispatcher.attach()
        assert len(server.device_subscriptions()) == 2

        server.press("dimmer-1", "on-press")
        await wait_until(lambda: len(server.calls) == 1)
        server.press("dimmer-1", "on-press")
        await wait_until(lambda: len(server.calls) == 2)
        server.press("dimmer-1", "off-press")
        await wait_until(lambda: len(server.calls) == 3)
        server.press("dimmer-1", "on-press")
        await wait_until(lambda: len(server.calls) == 4)

        assert server.scenes() == ["scene.a", "scene.b", "scene.a"]
        assert server.calls[2]["service"] == "turn_off"

        await dispatcher.detach()
        assert server.device_subscriptions() == []
        await manager.close()
