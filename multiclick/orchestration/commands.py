from abc import ABC, abstractmethod
from typing import Any, Dict
import asyncio
import logging

from multiclick.services.button_dispatcher import ButtonDispatcher

class BringUpCommand(ABC):
    """One step of bringing the button stack up; rollback is its teardown"""

    def __init__(self, context: Dict[str, Any]):
        self.context = context
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    async def execute(self) -> Dict[str, Any]:
        """Execute the command and return results"""
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Undo the command's effects"""
        pass

class ConnectCommand(BringUpCommand):
    """Create a connection manager and wait until its session is ready"""

    async def execute(self) -> Dict[str, Any]:
        configuration = self.context.get("configuration")
        manager_factory = self.context.get("manager_factory")
        if configuration is None or manager_factory is None:
            raise ValueError("configuration and manager_factory are required in context")

        manager = manager_factory(configuration)
        # stored first so a cancelled connect is still rolled back
        self.context["manager"] = manager
        on_event = self.context.get("on_event")
        if on_event is not None:
            manager.events.subscribe(lambda event: on_event(manager, event))

        await manager.connect(reconnect=self.context.get("reconnect", False))
        return {"manager": manager, "success": True}

    async def rollback(self) -> None:
        manager = self.context.pop("manager", None)
        if manager is not None:
            await manager.close()

class AttachButtonsCommand(BringUpCommand):
    """Create one dispatcher per configured button and subscribe its triggers"""

    async def execute(self) -> Dict[str, Any]:
        configuration = self.context["configuration"]
        manager = self.context["manager"]

        dispatchers = [ButtonDispatcher(button, manager, verbose=configuration.verbose)
                       for button in configuration.buttons]
        self.context["dispatchers"] = dispatchers

        results = await asyncio.gather(*(d.attach() for d in dispatchers), return_exceptions=True)
        failures = [(d, r) for d, r in zip(dispatchers, results) if isinstance(r, BaseException)]
        for dispatcher, error in failures:
            self.logger.error(f"Failed to attach '{dispatcher.button.name}': {error}")
        if failures:
            return {"success": False, "error": f"{len(failures)} button(s) failed to attach"}

        self.logger.info(f"Subscribed {len(dispatchers)} button(s)")
        return {"dispatchers": dispatchers, "success": True}

    async def rollback(self) -> None:
        dispatchers = self.context.pop("dispatchers", [])
        for dispatcher in dispatchers:
            try:
                await dispatcher.detach()
            except Exception as e:
                self.logger.error(f"Error detaching '{dispatcher.button.name}': {e}")
        if dispatchers:
            self.logger.info("Unsubscribed from all triggers.")
