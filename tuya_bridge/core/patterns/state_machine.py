from enum import Enum, auto
from typing import Dict, List

class LinkState(Enum):
    DISCONNECTED  = auto()
    CONNECTING    = auto()
    CONNECTED     = auto()
    SHUTDOWN      = auto()

class StateMachine:
    def __init__(self, initial: LinkState = LinkState.DISCONNECTED):
        self._state = initial
        self._trans: Dict[LinkState, List[LinkState]] = {
            LinkState.DISCONNECTED: [LinkState.CONNECTING, LinkState.SHUTDOWN],
            LinkState.CONNECTING:   [LinkState.CONNECTED, LinkState.DISCONNECTED,
                                     LinkState.SHUTDOWN],
            LinkState.CONNECTED:    [LinkState.DISCONNECTED, LinkState.SHUTDOWN],
            LinkState.SHUTDOWN:     [],
        }

    @property
    def state(self) -> LinkState: return self._state

    def can(self, nxt: LinkState) -> bool: return nxt in self._trans[self._state]

    def transition(self, nxt: LinkState) -> bool:
        if self.can(nxt):
            self._state = nxt
            return True
        return False
