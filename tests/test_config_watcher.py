"""Tests for the single-flight configuration watcher."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, List

import pytest
from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from multiclick.core.exceptions import ConfigLoadError
from multiclick.models import Configuration
from multiclick.services import ConfigSource, ConfigWatcher
from multiclick.services.config_watcher import ConfigFileHandler

from test_config_source import ENV, ONE_BUTTON, _write


class FakeObserver:
    """Stands in for watchdog's Observer; events are injected by the test."""

    def __init__(self):
        self.handlers: dict = {}
        self.started = False
        self.stopped = False
        self.schedule_calls = 0

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass

    def schedule(self, handler, path, recursive=False):
        self.schedule_calls += 1
        watch = object()
        self.handlers[watch] = (handler, path)
        return watch

    def unschedule(self, watch):
        del self.handlers[watch]

    def emit(self, event) -> None:
        for handler, _path in list(self.handlers.values()):
            handler.dispatch(event)


class Recorder:

    def __init__(self, delay: float = 0.0):
        self.results: List[Any] = []
        self.delay = delay

    async def __call__(self, result):
        self.results.append(result)
        if self.delay:
            await asyncio.sleep(self.delay)


async def _settle(count: int = 5) -> None:
    for _ in range(count):
        await asyncio.sleep(0)


class TestConfigFileHandler:

    def test_only_the_config_file_counts(self, tmp_path):
        hits = []
        target = tmp_path / "multiclick.config.py"
        handler = ConfigFileHandler(target, lambda: hits.append(1))

        handler.dispatch(FileModifiedEvent(str(tmp_path / "other.py")))
        handler.dispatch(FileModifiedEvent(str(target)))
        handler.dispatch(FileCreatedEvent(str(target)))
        handler.dispatch(FileMovedEvent(str(tmp_path / ".tmp123"), str(target)))
        assert len(hits) == 3


class TestConfigWatcher:

    @pytest.mark.asyncio
    async def test_initial_load_delivered_before_watching(self, tmp_path):
        observer = FakeObserver()
        watcher = ConfigWatcher(ConfigSource(_write(tmp_path, ONE_BUTTON), environ=ENV),
                                debounce=0, observer_factory=lambda: observer)
        recorder = Recorder()
        await watcher.monitor(recorder)

        assert len(recorder.results) == 1
        assert isinstance(recorder.results[0], Configuration)
        assert observer.started
        assert watcher.watching
        assert list(observer.handlers.values())[0][1] == str(tmp_path)
        await watcher.stop()
        assert observer.stopped

    @pytest.mark.asyncio
    async def test_change_triggers_reload(self, tmp_path):
        path = _write(tmp_path, ONE_BUTTON)
        observer = FakeObserver()
        watcher = ConfigWatcher(ConfigSource(path, environ=ENV), debounce=0.01,
                                observer_factory=lambda: observer)
        recorder = Recorder()
        await watcher.monitor(recorder)

        path.write_text("config = None\n", encoding="utf-8")
        observer.emit(FileModifiedEvent(str(path)))
        await asyncio.sleep(0.05)
        await _settle()

        assert len(recorder.results) == 2
        assert isinstance(recorder.results[1], ConfigLoadError)
        assert watcher.reload_count == 1
        assert watcher.watching
        await watcher.stop()

    @pytest.mark.asyncio
    async def test_notifications_during_reload_are_dropped(self, tmp_path):
        path = _write(tmp_path, ONE_BUTTON)
        observer = FakeObserver()
        watcher = ConfigWatcher(ConfigSource(path, environ=ENV), debounce=0.01,
                                observer_factory=lambda: observer)
        recorder = Recorder(delay=0.05)
        await watcher.monitor(recorder)

        observer.emit(FileModifiedEvent(str(path)))
        await _settle()
        assert not watcher.watching
        for _ in range(5):
            observer.emit(FileModifiedEvent(str(path)))
            # a notification already queued on the loop is ignored too
            watcher._on_file_changed()
        await asyncio.sleep(0.15)
        await _settle()

        assert watcher.reload_count == 1
        assert len(recorder.results) == 2
        assert watcher.watching
        await watcher.stop()

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_watching(self, tmp_path):
        path = _write(tmp_path, ONE_BUTTON)
        observer = FakeObserver()
        watcher = ConfigWatcher(ConfigSource(path, environ=ENV), debounce=0,
                                observer_factory=lambda: observer)
        calls = []

        async def on_change(result):
            calls.append(result)
            if len(calls) > 1:
                raise RuntimeError("boom")

        await watcher.monitor(on_change)
        observer.emit(FileModifiedEvent(str(path)))
        await asyncio.sleep(0.02)
        await _settle()

        assert len(calls) == 2
        assert watcher.watching
        await watcher.stop()

    @pytest.mark.asyncio
    async def test_stop_before_watching_skips_observer(self, tmp_path):
        observer = FakeObserver()
        watcher = ConfigWatcher(ConfigSource(_write(tmp_path, ONE_BUTTON), environ=ENV),
                                debounce=0, observer_factory=lambda: observer)

        async def on_change(result):
            await watcher.stop()

        await watcher.monitor(on_change)
        assert not observer.started
        assert not watcher.watching
