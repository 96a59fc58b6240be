from enum import Enum, auto
import logging

class BridgeState(Enum):
    INITIALIZING = auto()
    DEVICE_LIST_LOAD = auto()
    BUS_CONNECT = auto()
    DEVICE_CREATION = auto()
    DEVICE_STARTUP = auto()
    OPERATIONAL = auto()
    ERROR_RECOVERY = auto()
    SHUTDOWN = auto()

# startup walks these phases in order; any of them can fail into ERROR_RECOVERY
STARTUP_PHASES = (
    BridgeState.DEVICE_LIST_LOAD,
    BridgeState.BUS_CONNECT,
    BridgeState.DEVICE_CREATION,
    BridgeState.DEVICE_STARTUP,
    BridgeState.OPERATIONAL,
)


def _bridge_transitions():
    transitions = {BridgeState.INITIALIZING: {STARTUP_PHASES[0]}}
    for phase, following in zip(STARTUP_PHASES, STARTUP_PHASES[1:]):
        transitions[phase] = {following, BridgeState.ERROR_RECOVERY}
    transitions[BridgeState.OPERATIONAL] = {BridgeState.ERROR_RECOVERY}
    # a failed startup may be retried from the device list
    transitions[BridgeState.ERROR_RECOVERY] = {BridgeState.DEVICE_LIST_LOAD}
    # a stop signal can arrive in any phase
    for targets in transitions.values():
        targets.add(BridgeState.SHUTDOWN)
    transitions[BridgeState.SHUTDOWN] = set()
    return transitions


class BridgeStateMachine:
    """Tracks the bridge through startup, operation and shutdown"""

    def __init__(self):
        self.current_state = BridgeState.INITIALIZING
        self.logger = logging.getLogger(self.__class__.__name__)
        self.valid_transitions = _bridge_transitions()

    @property
    def operational(self) -> bool:
        return self.current_state == BridgeState.OPERATIONAL

    @property
    def stopped(self) -> bool:
        return self.current_state == BridgeState.SHUTDOWN

    def can_transition_to(self, new_state: BridgeState) -> bool:
        return new_state in self.valid_transitions.get(self.current_state, set())

    def transition_to(self, new_state: BridgeState) -> bool:
        if self.can_transition_to(new_state):
            self.logger.info(f"State transition: {self.current_state.name} -> {new_state.name}")
            self.current_state = new_state
            return True
        else:
            self.logger.error(f"Invalid state transition: {self.current_state.name} -> {new_state.name}")
            return False
