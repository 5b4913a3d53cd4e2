"""
Component 5: Run State
Execution state of the mission sequence.

Tracks the logical state of the whole run, validates transitions, and logs
the history of states. Wraps the generic StateMachine.
"""

import logging
import time
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from .state_machine import StateMachine

log = logging.getLogger(__name__)


class RunStateEnum(str, Enum):
    """All states of the mission sequencer. Values are the wire names."""
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    NEXT = "next"              # awaiting confirmation to begin the next mission
    DISCONNECTED = "disconnected"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


# States in which exactly one mission is active.
ACTIVE_STATES = frozenset({
    RunStateEnum.RUNNING,
    RunStateEnum.PAUSED,
    RunStateEnum.DISCONNECTED,
})

# Type alias for a state log entry: (timestamp, from_state, to_state)
StateLogEntry = Tuple[float, RunStateEnum, RunStateEnum]

StateChangeListener = Callable[[RunStateEnum], None]


def get_run_transitions() -> Dict[RunStateEnum, Set[RunStateEnum]]:
    """Builds and returns the transition map for the run FSM."""
    transitions: Dict[RunStateEnum, Set[RunStateEnum]] = {
        RunStateEnum.READY: {
            RunStateEnum.RUNNING,
        },
        RunStateEnum.RUNNING: {
            RunStateEnum.PAUSED,
            RunStateEnum.NEXT,
            RunStateEnum.DISCONNECTED,
            RunStateEnum.ERROR,
        },
        RunStateEnum.PAUSED: {
            RunStateEnum.RUNNING,
            RunStateEnum.DISCONNECTED,
            RunStateEnum.ERROR,
        },
        RunStateEnum.NEXT: {
            RunStateEnum.RUNNING,
        },
        RunStateEnum.DISCONNECTED: {
            RunStateEnum.RUNNING,
            RunStateEnum.PAUSED,
            RunStateEnum.ERROR,
        },
        RunStateEnum.ERROR: set(),
    }

    # Stop (or sequence completion) always returns to READY.
    for state, targets in transitions.items():
        if state != RunStateEnum.READY:
            targets.add(RunStateEnum.READY)

    return transitions


class RunState:
    """
    Manages the run state, validates transitions, and logs state history.
    """

    def __init__(self, start_state: RunStateEnum = RunStateEnum.READY):
        self._state_history: List[StateLogEntry] = []
        self._listeners: List[StateChangeListener] = []

        self._fsm = StateMachine(
            initial_state=start_state,
            transitions=get_run_transitions()
        )
        self._fsm.add_listener(self._log_and_notify)
        log.debug(f"[RunState] Initial state: {start_state}")

    def _log_and_notify(self, from_state: RunStateEnum, to_state: RunStateEnum):
        self._state_history.append((time.monotonic(), from_state, to_state))
        log.info(f"[RunState] Transition: {from_state} -> {to_state}")

        for listener in list(self._listeners):
            try:
                listener(to_state)
            except Exception as e:
                log.error(f"[RunState] Error in listener {listener}: {e}")

    def add_listener(self, listener: StateChangeListener):
        """Register a callback function to be called on state changes."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def can_transition(self, new_state: RunStateEnum) -> bool:
        return self._fsm.can_transition(new_state)

    def transition(self, new_state: RunStateEnum) -> None:
        """
        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        self._fsm.transition(new_state)

    @property
    def current(self) -> RunStateEnum:
        return self._fsm.current

    @property
    def previous(self) -> Optional[RunStateEnum]:
        if not self._state_history:
            return None
        return self._state_history[-1][1]

    @property
    def history(self) -> List[StateLogEntry]:
        """Returns a copy of the state history log."""
        return list(self._state_history)

    def __str__(self) -> str:
        return f"RunState(current={self.current})"
