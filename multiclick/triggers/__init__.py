"""Per-button click-cycle state."""

from .click_cycle import ClickCycleState

__all__ = [
    'ClickCycleState',
]
