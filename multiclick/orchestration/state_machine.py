from enum import Enum, auto
import logging

class SupervisorState(Enum):
    DOWN = auto()
    UP = auto()
    SHUTDOWN = auto()

class SupervisorStateMachine:
    """Tracks whether the button stack is running"""

    def __init__(self):
        self.current_state = SupervisorState.DOWN
        self.logger = logging.getLogger(self.__class__.__name__)
        self.valid_transitions = {
            SupervisorState.DOWN: {SupervisorState.UP, SupervisorState.SHUTDOWN},
            SupervisorState.UP: {SupervisorState.DOWN, SupervisorState.SHUTDOWN},
            SupervisorState.SHUTDOWN: set()
        }

    def can_transition_to(self, new_state: SupervisorState) -> bool:
        return new_state in self.valid_transitions.get(self.current_state, set())

    def transition_to(self, new_state: SupervisorState) -> bool:
        if self.can_transition_to(new_state):
            self.logger.info(f"State transition: {self.current_state.name} -> {new_state.name}")
            self.current_state = new_state
            return True
        else:
            self.logger.error(f"Invalid state transition: {self.current_state.name} -> {new_state.name}")
            return False
