"""Hot reload of the configuration script, single-flight."""
from __future__ import annotations
import asyncio, logging, os
from pathlib import Path
from typing import Awaitable, Callable, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from multiclick.services.config_source import ConfigSource, LoadResult

OnChange = Callable[[LoadResult], Awaitable[None]]


class ConfigFileHandler(FileSystemEventHandler):
    """Forwards writes, creations and renames onto one file; runs on the observer thread."""

    RELEVANT = {EVENT_TYPE_MODIFIED, EVENT_TYPE_CREATED, EVENT_TYPE_MOVED}

    def __init__(self, path: Path, notify: Callable[[], None]):
        super().__init__()
        self.path = os.path.abspath(path)
        self.notify = notify

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in self.RELEVANT:
            return
        for candidate in (event.src_path, getattr(event, "dest_path", "")):
            if candidate and os.path.abspath(os.fsdecode(candidate)) == self.path:
                self.notify()
                return


class ConfigWatcher:
    """
    Watches the configuration file and feeds every (re)load to ``on_change``.

    The watch is removed before a reload starts and only scheduled again one
    loop iteration after ``on_change`` has finished, so notifications that
    arrive while a reload is in flight are dropped instead of queueing more
    reloads.
    """

    def __init__(self, source: ConfigSource, debounce: float = 0.2,
                 observer_factory: Callable[[], Observer] = Observer):
        self.source = source
        self.debounce = debounce
        self.log = logging.getLogger(self.__class__.__name__)
        self.reload_count = 0
        self._observer_factory = observer_factory
        self._observer = None
        self._handler: Optional[ConfigFileHandler] = None
        self._watch = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_change: Optional[OnChange] = None
        self._reload_task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def watching(self) -> bool:
        return self._watch is not None

    # --------------------------------------------------------------------- #
    #  Public API
    # --------------------------------------------------------------------- #
    async def monitor(self, on_change: OnChange) -> None:
        """Deliver the initial load to *on_change*, then watch for changes."""
        self._loop = asyncio.get_running_loop()
        self._on_change = on_change
        await on_change(self.source.load())
        if self._stopped:
            return

        self._handler = ConfigFileHandler(self.source.path, self._notify_threadsafe)
        self._observer = self._observer_factory()
        self._observer.start()
        self._rewatch()
        self.log.info(f"Watching {self.source.path} for changes")

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._unwatch()

        task = self._reload_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    # --------------------------------------------------------------------- #
    #  Watch cycle
    # --------------------------------------------------------------------- #
    def _notify_threadsafe(self) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._on_file_changed)

    def _on_file_changed(self) -> None:
        if self._stopped or self._watch is None:
            self.log.debug("Change notification ignored; reload already in flight")
            return
        self._unwatch()
        self._reload_task = self._loop.create_task(self._reload())

    async def _reload(self) -> None:
        try:
            if self.debounce > 0:
                await asyncio.sleep(self.debounce)
            self.reload_count += 1
            self.log.info(f"Configuration changed, reloading {self.source.path.name}")
            result = self.source.load()
            try:
                await self._on_change(result)
            except Exception as e:
                self.log.error(f"Error applying reloaded configuration: {e}", exc_info=True)
        finally:
            if not self._stopped:
                # one turn later, so a reload never re-enters from its own stack
                self._loop.call_soon(self._rewatch)

    def _rewatch(self) -> None:
        if self._stopped or self._watch is not None or self._observer is None:
            return
        self._watch = self._observer.schedule(
            self._handler, str(self.source.path.parent), recursive=False
        )

    def _unwatch(self) -> None:
        watch, self._watch = self._watch, None
        if watch is None or self._observer is None:
            return
        try:
            self._observer.unschedule(watch)
        except KeyError:
            self.log.debug(f"Watch on {self.source.path.parent} was already removed")
