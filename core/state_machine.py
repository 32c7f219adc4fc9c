"""
Resolution State Machine
------------------------
Tracks the resolution of one name criterion.

    SEARCHING → FOUND | NOT_FOUND | ERROR

While searching, the orchestrator records what it saw (a match, a
within-source duplicate, a source error). conclude() picks the terminal
state from those observations and logs the transition.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Set
import logging


class ResolutionState(Enum):
    """States of a single name resolution."""
    SEARCHING = auto()   # Pulling candidates from the sources
    FOUND = auto()       # At least one command accumulated
    NOT_FOUND = auto()   # Sources exhausted without a match
    ERROR = auto()       # A source failed and nothing was found


@dataclass
class StateTransition:
    """Record of a state transition."""
    name: str
    from_state: ResolutionState
    to_state: ResolutionState
    timestamp: datetime
    reason: str
    metadata: Dict = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"StateTransition({self.name}: {self.from_state.name} → "
            f"{self.to_state.name}, reason='{self.reason}')"
        )


VALID_TRANSITIONS: Dict[ResolutionState, Set[ResolutionState]] = {
    ResolutionState.SEARCHING: {
        ResolutionState.FOUND, ResolutionState.NOT_FOUND, ResolutionState.ERROR,
    },
    ResolutionState.FOUND: set(),
    ResolutionState.NOT_FOUND: set(),
    ResolutionState.ERROR: set(),
}


class ResolutionStateMachine:
    """
    Per-name resolution state.

    found, duplicate_seen, failed and capped are sticky: once set during
    the search they stay set for the rest of it.
    """

    def __init__(self, name: str, is_pattern: bool = False):
        self.name = name
        self.is_pattern = is_pattern
        self.found = False
        self.duplicate_seen = False
        self.failed = False
        self.capped = False
        self._state = ResolutionState.SEARCHING
        self._history: List[StateTransition] = []
        self._listeners: List[Callable[[StateTransition], None]] = []
        self._logger = logging.getLogger("cmdscope.state")

        self._logger.debug(f"Resolving '{name}' (pattern={is_pattern})")

    @property
    def state(self) -> ResolutionState:
        return self._state

    @property
    def history(self) -> List[StateTransition]:
        return self._history.copy()

    def mark_found(self) -> None:
        self.found = True

    def mark_duplicate(self) -> None:
        self.duplicate_seen = True

    def mark_failed(self) -> None:
        self.failed = True

    def mark_capped(self) -> None:
        """The result cap stopped the search before the sources ran out."""
        self.capped = True

    def can_transition(self, to_state: ResolutionState) -> bool:
        return to_state in VALID_TRANSITIONS.get(self._state, set())

    def transition(
        self,
        to_state: ResolutionState,
        reason: str,
        metadata: Optional[Dict] = None
    ) -> StateTransition:
        """
        Move to a new state.

        Raises:
            ValueError: If the transition is not valid
        """
        if not self.can_transition(to_state):
            valid_names = [s.name for s in VALID_TRANSITIONS.get(self._state, set())]
            raise ValueError(
                f"Invalid transition: {self._state.name} → {to_state.name}. "
                f"Valid targets: {valid_names}"
            )

        transition = StateTransition(
            name=self.name,
            from_state=self._state,
            to_state=to_state,
            timestamp=datetime.now(),
            reason=reason,
            metadata=metadata or {},
        )

        old_state = self._state
        self._state = to_state
        self._history.append(transition)

        self._logger.debug(
            f"'{self.name}': {old_state.name} → {to_state.name} (reason: {reason})"
        )

        for listener in self._listeners:
            try:
                listener(transition)
            except Exception as e:
                self._logger.warning(f"Listener error: {e}")

        return transition

    def conclude(self) -> ResolutionState:
        """Enter the terminal state matching what the search observed."""
        if self._state != ResolutionState.SEARCHING:
            return self._state

        if self.found:
            self.transition(ResolutionState.FOUND, "command accumulated")
        elif self.failed:
            self.transition(ResolutionState.ERROR, "source error")
        else:
            if self.capped:
                reason = "result cap reached"
            elif self.duplicate_seen:
                reason = "within-source duplicate"
            else:
                reason = "sources exhausted"
            self.transition(ResolutionState.NOT_FOUND, reason)
        return self._state

    @property
    def should_report_not_found(self) -> bool:
        """A literal name with no match that was searched to the end without a duplicate."""
        return (
            self._state == ResolutionState.NOT_FOUND
            and not self.is_pattern
            and not self.duplicate_seen
            and not self.capped
        )

    def add_listener(self, callback: Callable[[StateTransition], None]) -> None:
        """Add a state change listener."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[StateTransition], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)
