"""Intent lifecycle state machine.

This module validates and applies state transitions on Intent snapshots,
maintaining the transition log and the lifecycle timestamps.

States:
    proposed → classified → awaiting_approval → approved → running → completed
                          ↘ approved                              ↘ failed

Terminal states: completed, failed, rejected, canceled.

Transitions are pure value transformations: ``transition`` returns a new
Intent and never modifies its input. Callers transitioning the same intent
concurrently must serialize themselves.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Union

from lattice.errors import ErrorCode, LatticeError
from lattice.intents.models import Intent, IntentState, TransitionEntry


logger = logging.getLogger(__name__)


StateLike = Union[IntentState, str]


# Valid state transitions map
#
# Key design decisions:
# - Only classified intents can request approval or be auto-approved
# - A pending approval can be decided either way, or withdrawn
# - Approved work can still be canceled before it starts
# - Terminal states have no outgoing transitions
VALID_TRANSITIONS: Dict[IntentState, List[IntentState]] = {
    IntentState.PROPOSED: [
        IntentState.CLASSIFIED,
    ],
    IntentState.CLASSIFIED: [
        IntentState.AWAITING_APPROVAL,
        IntentState.APPROVED,
    ],
    IntentState.AWAITING_APPROVAL: [
        IntentState.APPROVED,
        IntentState.REJECTED,
        IntentState.CANCELED,
    ],
    IntentState.APPROVED: [
        IntentState.RUNNING,
        IntentState.CANCELED,
    ],
    IntentState.RUNNING: [
        IntentState.COMPLETED,
        IntentState.FAILED,
    ],
    IntentState.COMPLETED: [],
    IntentState.FAILED: [],
    IntentState.REJECTED: [],
    IntentState.CANCELED: [],
}

TERMINAL_STATES: FrozenSet[IntentState] = frozenset(
    state for state, targets in VALID_TRANSITIONS.items() if not targets
)

# Timestamp field stamped when an intent enters a state
LIFECYCLE_TIMESTAMPS: Dict[IntentState, str] = {
    IntentState.CLASSIFIED: "classified_at",
    IntentState.APPROVED: "approved_at",
    IntentState.RUNNING: "started_at",
    IntentState.COMPLETED: "completed_at",
    IntentState.FAILED: "completed_at",
}


class InvalidStateError(LatticeError):
    """Raised when a value is not one of the recognized lifecycle states.

    Attributes:
        state: The unrecognized value.
    """

    code = ErrorCode.INVALID_STATE

    def __init__(self, state: object):
        self.state = state
        super().__init__(
            f"Invalid intent state: {state!r}",
            details={"state": str(state)},
        )


class InvalidTransitionError(LatticeError):
    """Raised when an invalid state transition is attempted.

    Attributes:
        from_state: The current state.
        to_state: The attempted target state.
    """

    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, from_state: IntentState, to_state: IntentState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition from {from_state.value} to {to_state.value}",
            details={"from": from_state.value, "to": to_state.value},
        )


def coerce_state(state: StateLike) -> IntentState:
    """Convert a state or its string value into an IntentState.

    Raises:
        InvalidStateError: If the value is not a recognized state.
    """
    if isinstance(state, IntentState):
        return state
    try:
        return IntentState(state)
    except ValueError:
        raise InvalidStateError(state) from None


def valid_states() -> List[IntentState]:
    """Return all lifecycle states."""
    return list(VALID_TRANSITIONS)


def valid_transitions(state: StateLike) -> List[IntentState]:
    """Return the states reachable from ``state`` in one transition.

    Returns an empty list for terminal states.

    Raises:
        InvalidStateError: If ``state`` is not a recognized state.

    Example:
        >>> valid_transitions(IntentState.RUNNING)
        [<IntentState.COMPLETED: 'completed'>, <IntentState.FAILED: 'failed'>]
    """
    return list(VALID_TRANSITIONS[coerce_state(state)])


def is_terminal(state: StateLike) -> bool:
    """Check whether a state is terminal (has no outgoing transitions).

    Unrecognized values are simply not terminal.
    """
    try:
        return IntentState(state) in TERMINAL_STATES
    except ValueError:
        return False


def is_valid_transition(from_state: StateLike, to_state: StateLike) -> bool:
    """Check if a transition between two recognized states is allowed."""
    try:
        return coerce_state(to_state) in VALID_TRANSITIONS[coerce_state(from_state)]
    except InvalidStateError:
        return False


def transition(
    intent: Intent,
    new_state: StateLike,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
) -> Intent:
    """Transition an intent to a new state.

    Validates the target, prepends a TransitionEntry to the log, refreshes
    ``updated_at`` and stamps the lifecycle timestamp that belongs to the
    new state, if any.

    Args:
        intent: The current intent snapshot.
        new_state: The target state.
        actor: Who triggered the transition.
        reason: Why the transition happened.

    Returns:
        A new Intent in ``new_state``. ``intent`` itself is unchanged.

    Raises:
        InvalidStateError: If ``new_state`` is not a recognized state.
        InvalidTransitionError: If ``new_state`` is not reachable from the
            intent's current state.

    Example:
        >>> approved = transition(intent, IntentState.APPROVED, actor="github")
        >>> approved.transition_log[0].to_state
        <IntentState.APPROVED: 'approved'>
    """
    target = coerce_state(new_state)
    current = intent.state

    if target not in VALID_TRANSITIONS[current]:
        logger.warning(
            "Invalid intent transition attempted",
            extra={
                "intent_id": intent.id,
                "from_state": current.value,
                "to_state": target.value,
            },
        )
        raise InvalidTransitionError(current, target)

    now = datetime.now(timezone.utc)

    entry = TransitionEntry(
        from_state=current,
        to_state=target,
        timestamp=now,
        actor=actor,
        reason=reason,
    )

    update = {
        "state": target,
        "updated_at": now,
        "transition_log": (entry,) + intent.transition_log,
    }

    timestamp_field = LIFECYCLE_TIMESTAMPS.get(target)
    if timestamp_field is not None:
        update[timestamp_field] = now

    logger.debug(
        "Transitioning intent",
        extra={
            "intent_id": intent.id,
            "from_state": current.value,
            "to_state": target.value,
            "actor": actor,
        },
    )

    return intent.model_copy(update=update)
