from enum import Enum, auto
from typing import Dict, List

class ClientState(Enum):
    DISCONNECTED  = auto()
    CONNECTING    = auto()
    CONNECTED     = auto()
    RECONNECTING  = auto()
    CLOSED        = auto()

class StateMachine:
    """Transport connection states; CLOSED is terminal."""

    def __init__(self, initial: ClientState = ClientState.DISCONNECTED):
        self._state = initial
        self._trans: Dict[ClientState, List[ClientState]] = {
            ClientState.DISCONNECTED: [ClientState.CONNECTING, ClientState.CLOSED],
            ClientState.CONNECTING:   [ClientState.CONNECTED, ClientState.DISCONNECTED,
                                       ClientState.CLOSED],
            ClientState.CONNECTED:    [ClientState.RECONNECTING, ClientState.DISCONNECTED,
                                       ClientState.CLOSED],
            ClientState.RECONNECTING: [ClientState.CONNECTED, ClientState.DISCONNECTED,
                                       ClientState.CLOSED],
            ClientState.CLOSED:       [],
        }

    @property
    def state(self) -> ClientState: return self._state

    def can(self, nxt: ClientState) -> bool: return nxt in self._trans[self._state]

    def transition(self, nxt: ClientState) -> bool:
        if self.can(nxt):
            self._state = nxt
            return True
        return False
