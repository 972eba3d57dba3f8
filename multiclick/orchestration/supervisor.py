from typing import Any, Callable, Dict, List, Optional, Set
import asyncio
import logging
import signal

from multiclick.core.exceptions import ConfigLoadError, ReconnectExhausted
from multiclick.core.patterns.observer import ConnectionEvent, ConnectionEventType
from multiclick.models import Configuration
from .state_machine import SupervisorStateMachine, SupervisorState
from .commands import BringUpCommand, ConnectCommand, AttachButtonsCommand

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RECONNECT_FAILED = 2

class Supervisor:
    """Runs the button stack for the current configuration.

    Every valid configuration, every reload request from the connection
    manager and every shutdown goes through one lock, so at most one
    bring-up or teardown is in progress at a time.
    """

    BRING_UP_SEQUENCE = (ConnectCommand, AttachButtonsCommand)

    def __init__(self, watcher, manager_factory: Callable[[Configuration], Any],
                 retry_delay: float = 5.0):
        self.watcher = watcher
        self.manager_factory = manager_factory
        self.retry_delay = retry_delay
        self.state_machine = SupervisorStateMachine()
        self.configuration: Optional[Configuration] = None
        self.context: Dict[str, Any] = {}
        self.executed_commands: List[BringUpCommand] = []
        self.exit_code: Optional[int] = None
        self.cycles = 0
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = asyncio.Lock()
        self._bring_up_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._exit: Optional[asyncio.Future] = None

    @property
    def state(self) -> SupervisorState:
        return self.state_machine.current_state

    @property
    def manager(self):
        return self.context.get("manager")

    @property
    def dispatchers(self) -> list:
        return self.context.get("dispatchers", [])

    async def run(self) -> int:
        """Load the configuration, keep the stack up and return the exit code."""
        loop = asyncio.get_running_loop()
        self._exit = loop.create_future()
        if self.exit_code is not None:
            self._exit.set_result(self.exit_code)
        installed = self._install_signal_handlers(loop)
        try:
            await self.watcher.monitor(self.on_config)
            return await self._exit
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            await self.watcher.stop()
            current = asyncio.current_task()
            for task in list(self._tasks):
                if task is not current:
                    task.cancel()

    def _install_signal_handlers(self, loop) -> list:
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no signal handler support
                continue
            installed.append(sig)
        return installed

    def _on_signal(self, sig) -> None:
        self.logger.info(f"Received {signal.Signals(sig).name}, shutting down")
        self._spawn(self.shutdown(EXIT_OK))

    # ------------------------------------------------------------------ #
    #  Inputs
    # ------------------------------------------------------------------ #
    async def on_config(self, result) -> None:
        """Receive every load result from the watcher."""
        if isinstance(result, ConfigLoadError):
            if self.configuration is None:
                self.logger.error(f"Failed to load config file: {result}")
                await self.shutdown(EXIT_CONFIG_ERROR)
            else:
                self.logger.error(f"Failed to reload config file, keeping the previous configuration: {result}")
            return

        # a newer configuration supersedes a bring-up that is still blocking
        task = self._bring_up_task
        if task is not None and not task.done():
            self.logger.info("Cancelling bring-up in progress for the new configuration")
            task.cancel()
        self._spawn(self._cycle(result, reason="configuration loaded"))

    def request_reinit(self, reason: str, reconnect: bool = False, source=None) -> asyncio.Task:
        """Schedule a teardown and bring-up with the current configuration."""
        return self._spawn(self._cycle(None, reason=reason, reconnect=reconnect, source=source))

    def _on_connection_event(self, manager, event: ConnectionEvent) -> None:
        if event.event_type is ConnectionEventType.RELOAD_REQUESTED:
            self.logger.info(f"Re-initializing: {event.reason}")
            self.request_reinit(event.reason, reconnect=event.reconnect, source=manager)
        elif event.event_type is ConnectionEventType.RECONNECT_FAILED:
            self.logger.error(f"Giving up: {event.error}")
            self._spawn(self.shutdown(EXIT_RECONNECT_FAILED))
        elif event.event_type is ConnectionEventType.DISCONNECTED:
            self.logger.warning("Lost connection to Home Assistant")

    # ------------------------------------------------------------------ #
    #  Cycle
    # ------------------------------------------------------------------ #
    async def _cycle(self, configuration: Optional[Configuration], reason: str,
                     reconnect: bool = False, source=None) -> None:
        async with self._lock:
            if self.state is SupervisorState.SHUTDOWN:
                return
            if source is not None and source is not self.manager:
                self.logger.debug(f"Ignoring stale request ({reason})")
                return
            configuration = configuration or self.configuration
            if configuration is None:
                return

            if self.state is SupervisorState.UP:
                await self._rollback_commands()
                self.state_machine.transition_to(SupervisorState.DOWN)
            self.configuration = configuration

            task = asyncio.create_task(self._bring_up(configuration, reconnect), name="bring-up")
            self._bring_up_task = task
            try:
                await asyncio.wait({task})
            finally:
                if not task.done():
                    task.cancel()
                    await asyncio.wait({task})
                self._bring_up_task = None

            if task.cancelled() or task.result():
                return

        if self.exit_code is None and self.state is SupervisorState.DOWN \
                and configuration is self.configuration:
            self.logger.warning(f"Bring-up failed, retrying in {self.retry_delay}s")
            self._spawn(self._retry(configuration, reconnect))

    async def _retry(self, configuration: Configuration, reconnect: bool) -> None:
        await asyncio.sleep(self.retry_delay)
        if self.state is SupervisorState.DOWN and configuration is self.configuration:
            await self._cycle(configuration, reason="retry", reconnect=reconnect)

    async def _bring_up(self, configuration: Configuration, reconnect: bool) -> bool:
        self.context = {
            "configuration": configuration,
            "manager_factory": self.manager_factory,
            "reconnect": reconnect,
            "on_event": self._on_connection_event,
        }
        self.executed_commands = []
        try:
            for command_class in self.BRING_UP_SEQUENCE:
                command = command_class(self.context)
                # registered before execute so a partial step is rolled back too
                self.executed_commands.append(command)
                result = await command.execute()
                if not result.get("success", False):
                    self.logger.error(f"{command_class.__name__} failed: {result.get('error')}")
                    await self._rollback_commands()
                    return False
                self.context.update(result)
        except asyncio.CancelledError:
            self.logger.info("Bring-up cancelled, rolling back")
            await self._rollback_commands()
            raise
        except ReconnectExhausted as e:
            # shutdown is already scheduled by the RECONNECT_FAILED event
            self.logger.error(f"Bring-up aborted: {e}")
            await self._rollback_commands()
            return False
        except Exception as e:
            self.logger.error(f"Bring-up failed: {e}", exc_info=True)
            await self._rollback_commands()
            return False

        self.state_machine.transition_to(SupervisorState.UP)
        self.cycles += 1
        self.logger.info(f"Bring-up completed with {len(configuration.buttons)} button(s)")
        return True

    async def _rollback_commands(self) -> None:
        """Rollback executed commands in reverse order"""
        for command in reversed(self.executed_commands):
            try:
                await command.rollback()
            except Exception as e:
                self.logger.error(f"Error during rollback: {e}")
        self.executed_commands.clear()

    # ------------------------------------------------------------------ #
    #  Shutdown
    # ------------------------------------------------------------------ #
    async def shutdown(self, code: int = EXIT_OK) -> None:
        if self.exit_code is not None:
            return
        self.exit_code = code
        task = self._bring_up_task
        if task is not None and not task.done():
            task.cancel()
        async with self._lock:
            await self._rollback_commands()
            self.state_machine.transition_to(SupervisorState.SHUTDOWN)
        self.logger.info(f"Shutdown completed (exit code {code})")
        if self._exit is not None and not self._exit.done():
            self._exit.set_result(code)

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #
    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until no scheduled cycle, retry or shutdown is left."""
        current = asyncio.current_task()
        while True:
            pending = [t for t in self._tasks if t is not current and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
