import asyncio
import logging
from enum import Enum
from typing import Optional, Tuple

from multiclick.core.exceptions import ConfigLoadError, DispatchIndexError
from multiclick.models import Action, ButtonSpec
from multiclick.protocols.base_protocol_client import Subscription
from multiclick.triggers import ClickCycleState


class ButtonPress(Enum):
    ON = "on"
    OFF = "off"


class ButtonDispatcher:
    """
    Binds one configured button to the bus.

    Presses are queued by the subscription callbacks and handled one at a time
    by a worker task, so the click cycle of a button never sees two presses
    interleave.
    """

    def __init__(self, button: ButtonSpec, connection, verbose: bool = False):
        self.button = button
        self.connection = connection
        self.verbose = verbose
        self.cycle = ClickCycleState()
        self.logger = logging.getLogger(f"{self.__class__.__name__}_{button.name}")
        self._queue: "asyncio.Queue[ButtonPress]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._on_sub: Optional[Subscription] = None
        self._off_sub: Optional[Subscription] = None
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    async def attach(self) -> Tuple[Subscription, Subscription]:
        """Subscribe the button's "on" and "off" triggers and start the worker."""
        self._attached = True
        self._worker = asyncio.create_task(self._consume(), name=f"button-{self.button.name}")
        try:
            self._on_sub = await self.connection.subscribe(
                self.button.on_trigger, lambda _event: self._enqueue(ButtonPress.ON))
            self._off_sub = await self.connection.subscribe(
                self.button.off_trigger, lambda _event: self._enqueue(ButtonPress.OFF))
        except BaseException:
            await self.detach()
            raise
        self.logger.debug("Subscribed to on/off triggers")
        return self._on_sub, self._off_sub

    def _enqueue(self, press: ButtonPress) -> None:
        # a handle released mid-flight may still deliver one last event
        if self._attached:
            self._queue.put_nowait(press)

    async def _consume(self) -> None:
        while True:
            press = await self._queue.get()
            try:
                await self.handle_press(press)
            except ConnectionError as e:
                self.logger.warning(f"Could not dispatch '{press.value}': {e}")
            except Exception as e:
                self.logger.error(f"Error handling '{press.value}': {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def handle_press(self, press: ButtonPress) -> Optional[Action]:
        """Apply one press to the cycle and send the resulting action, if any."""
        level = logging.INFO if self.verbose else logging.DEBUG
        self.logger.log(level, f"Received '{press.value}' for '{self.button.name}'")

        if press is ButtonPress.OFF:
            self.cycle.reset()
            action = self.button.off_action
        else:
            try:
                actions = self.button.resolve_on_actions()
            except ConfigLoadError as e:
                self.logger.error(f"Cannot resolve actions: {e}")
                return None
            try:
                index = self.cycle.advance(len(actions))
            except DispatchIndexError as e:
                self.logger.warning(f"Ignoring press: {e}")
                return None
            action = actions[index]

        await self.connection.send(action.to_message())
        self.logger.log(level, f"Dispatched {action}")
        return action

    async def detach(self) -> None:
        """Release both subscriptions and stop the worker. Safe to call twice."""
        if not self._attached:
            return
        self._attached = False

        on_sub, off_sub = self._on_sub, self._off_sub
        self._on_sub = self._off_sub = None
        for sub in (on_sub, off_sub):
            if sub is not None:
                await sub.unsubscribe()

        worker, self._worker = self._worker, None
        if worker is not None and worker is not asyncio.current_task():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

