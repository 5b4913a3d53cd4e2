"""
Generic Finite State Machine (FSM) Implementation

This provides a simplified, reusable state machine class that can be
used by other components, such as the RunState of the mission sequencer.
"""

import logging
from typing import Any, Callable, Dict, List, Set

log = logging.getLogger(__name__)

# Type alias for a state
State = Any
# Type alias for a listener callback
TransitionListener = Callable[[State, State], None]  # (from_state, to_state)


class StateMachineError(Exception):
    """Custom exception for FSM errors."""
    pass


class InvalidTransitionError(StateMachineError):
    """Raised when a transition is not allowed from the current state."""

    def __init__(self, from_state: State, to_state: State, reason: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        message = f"Invalid transition: {from_state} -> {to_state}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class StateMachine:
    """A generic, reusable Finite State Machine."""

    def __init__(self, initial_state: State, transitions: Dict[State, Set[State]]):
        """
        Initializes the state machine.

        Args:
            initial_state: The state to start in.
            transitions: A dictionary mapping a state to a set of
                         valid states it can transition to.
        """
        self._current_state: State = initial_state
        self._transitions: Dict[State, Set[State]] = transitions
        self._listeners: List[TransitionListener] = []

    @property
    def current(self) -> State:
        """Returns the current state."""
        return self._current_state

    def add_listener(self, listener: TransitionListener):
        """Register a callback function to be called on successful transitions."""
        self._listeners.append(listener)

    def _notify_listeners(self, from_state: State, to_state: State):
        """Notify all registered listeners of a state change."""
        for listener in self._listeners:
            try:
                listener(from_state, to_state)
            except Exception as e:
                log.error(f"[StateMachine] Error in listener {listener}: {e}")

    def can_transition(self, new_state: State) -> bool:
        if self._current_state == new_state:
            return True
        return new_state in self._transitions.get(self._current_state, set())

    def transition(self, new_state: State) -> None:
        """
        Moves to a new state. Staying in the current state is a no-op
        and does not notify listeners.

        Raises:
            InvalidTransitionError: If new_state is not reachable from
                                    the current state.
        """
        if self._current_state == new_state:
            return

        if not self.can_transition(new_state):
            raise InvalidTransitionError(self._current_state, new_state)

        from_state = self._current_state
        self._current_state = new_state
        self._notify_listeners(from_state, new_state)
