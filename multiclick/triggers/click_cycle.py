# multiclick/triggers/click_cycle.py
from datetime import datetime
from typing import Any, Dict, Optional

from multiclick.core.exceptions import DispatchIndexError


class ClickCycleState:
    """Per-button position in the "on" action cycle.

    ``count`` is only ever read through :meth:`advance`, which clamps it to the
    length of the list resolved for *this* press; a dynamic list may have shrunk
    since the previous one.
    """

    def __init__(self):
        self.count: int = 0
        self.last_change: Optional[datetime] = None
        self.press_count: int = 0

    def advance(self, length: int) -> int:
        """Return the index to dispatch for an "on" press and step the cycle."""
        if length <= 0:
            raise DispatchIndexError("resolved action list is empty")
        index = min(self.count, length - 1)
        self.count = (self.count + 1) % length
        self._touch()
        return index

    def reset(self) -> None:
        self.count = 0
        self._touch()

    def _touch(self) -> None:
        self.last_change = datetime.now()
        self.press_count += 1

    def get_execution_metadata(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "last_change": self.last_change,
            "press_count": self.press_count,
        }
