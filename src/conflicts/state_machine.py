"""Per-article conflict resolution state machine."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class ConflictState(Enum):
    """Conflict lifecycle states.

    State transitions:
        DIVERGED -> RESOLVED_REMOTE: Remote value chosen
        RESOLVED_REMOTE -> LOGGED: Entry appended to the conflict log
    """

    DIVERGED = auto()
    RESOLVED_REMOTE = auto()
    LOGGED = auto()


class ConflictStateError(Exception):
    """Raised when an invalid conflict state transition is attempted."""

    def __init__(self, from_state: ConflictState, to_state: ConflictState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid conflict state transition: {from_state.name} -> {to_state.name}"
        )


class ConflictStateMachine:
    """State machine for one article's conflict within one sync session.

    A resolved conflict is never revisited: LOGGED is terminal.
    """

    VALID_TRANSITIONS: ClassVar[dict[ConflictState, set[ConflictState]]] = {
        ConflictState.DIVERGED: {ConflictState.RESOLVED_REMOTE},
        ConflictState.RESOLVED_REMOTE: {ConflictState.LOGGED},
        ConflictState.LOGGED: set(),  # Terminal state
    }

    def __init__(self, article_id: str) -> None:
        """Initialize the state machine in DIVERGED state.

        Args:
            article_id: Article identifier for logging.
        """
        self._article_id = article_id
        self._state = ConflictState.DIVERGED
        self._log = logger.bind(article_id=article_id, component="conflicts")

    @property
    def state(self) -> ConflictState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: ConflictState) -> bool:
        """Check if a transition to the given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: ConflictState) -> None:
        """Transition to a new state.

        Raises:
            ConflictStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise ConflictStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "conflict_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_terminal(self) -> bool:
        """Check if the conflict has been logged."""
        return self._state == ConflictState.LOGGED
