"""
Ingestion pipeline states and legal transitions.

Lifecycle:
    RESOLVING → PROBING → DECIDING → (PASSTHROUGH | TRANSCODING)
              → CLEANING → COMMITTING → DONE

FAILED is reachable from every non-terminal state.

INVARIANT: DONE and FAILED are terminal. Once a run reaches either,
no further transition is allowed.
"""

from enum import Enum
from typing import FrozenSet, Set, Tuple


class PipelineState(str, Enum):
    """Stage of one ingestion run."""

    RESOLVING = "resolving"
    PROBING = "probing"
    DECIDING = "deciding"
    PASSTHROUGH = "passthrough"
    TRANSCODING = "transcoding"
    CLEANING = "cleaning"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class IllegalTransition(RuntimeError):
    """Raised when the pipeline attempts a transition outside the table. A bug, never user error."""

    def __init__(self, current_state: PipelineState, target_state: PipelineState):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid pipeline state transition: {current_state.value} -> {target_state.value}"
        )


TERMINAL_STATES: FrozenSet[PipelineState] = frozenset({
    PipelineState.DONE,
    PipelineState.FAILED,
})


_TRANSITIONS: Set[Tuple[PipelineState, PipelineState]] = {
    (PipelineState.RESOLVING, PipelineState.PROBING),
    (PipelineState.PROBING, PipelineState.DECIDING),
    (PipelineState.DECIDING, PipelineState.PASSTHROUGH),
    (PipelineState.DECIDING, PipelineState.TRANSCODING),
    (PipelineState.PASSTHROUGH, PipelineState.CLEANING),
    (PipelineState.TRANSCODING, PipelineState.CLEANING),
    (PipelineState.CLEANING, PipelineState.COMMITTING),
    (PipelineState.COMMITTING, PipelineState.DONE),
}


def is_terminal(state: PipelineState) -> bool:
    return state in TERMINAL_STATES


def can_transition(from_state: PipelineState, to_state: PipelineState) -> bool:
    """
    Check if a pipeline transition is legal.

    Any non-terminal state may fail. Terminal states never move.
    """
    if is_terminal(from_state):
        return False
    if to_state == PipelineState.FAILED:
        return True
    return (from_state, to_state) in _TRANSITIONS


def validate_transition(from_state: PipelineState, to_state: PipelineState) -> None:
    """
    Raises:
        IllegalTransition: If the transition is not allowed
    """
    if not can_transition(from_state, to_state):
        raise IllegalTransition(from_state, to_state)
