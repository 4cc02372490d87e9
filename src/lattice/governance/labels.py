"""Mapping between intent states and governance issue labels.

Only three states are represented on the governance issue. The awaiting
label is applied by Lattice itself; humans decide by applying the approved
or rejected label, so only those two map back to a state.
"""

from enum import Enum
from typing import List

from lattice.errors import ErrorCode, LatticeError
from lattice.intents.models import IntentState


class GovernanceLabel(str, Enum):
    """Labels Lattice applies to or reads from governance issues."""

    AWAITING_APPROVAL = "intent-awaiting-approval"
    APPROVED = "intent-approved"
    REJECTED = "intent-rejected"


_STATE_TO_LABEL = {
    IntentState.AWAITING_APPROVAL: GovernanceLabel.AWAITING_APPROVAL,
    IntentState.APPROVED: GovernanceLabel.APPROVED,
    IntentState.REJECTED: GovernanceLabel.REJECTED,
}

_LABEL_TO_STATE = {
    GovernanceLabel.APPROVED.value: IntentState.APPROVED,
    GovernanceLabel.REJECTED.value: IntentState.REJECTED,
}


class NoLabelError(LatticeError):
    """Raised when a state has no governance label."""

    code = ErrorCode.NO_LABEL

    def __init__(self, state: object):
        self.state = state
        super().__init__(
            f"No governance label for state: {state!r}",
            details={"state": str(state)},
        )


class UnknownLabelError(LatticeError):
    """Raised when a label does not map to a human decision."""

    code = ErrorCode.UNKNOWN_LABEL

    def __init__(self, label: object):
        self.label = label
        super().__init__(
            f"Label does not map to an intent state: {label!r}",
            details={"label": str(label)},
        )


def for_state(state: object) -> str:
    """Return the governance label for an intent state.

    Args:
        state: An IntentState or its string value.

    Returns:
        The label string.

    Raises:
        NoLabelError: If the state is not awaiting_approval, approved or
            rejected, or is not a state at all.

    Example:
        >>> for_state(IntentState.APPROVED)
        'intent-approved'
    """
    try:
        label = _STATE_TO_LABEL.get(IntentState(state))
    except ValueError:
        label = None

    if label is None:
        raise NoLabelError(state)
    return label.value


def to_state(label: str) -> IntentState:
    """Return the intent state a human-applied label stands for.

    Raises:
        UnknownLabelError: For anything but the approved and rejected labels.
    """
    if isinstance(label, GovernanceLabel):
        label = label.value
    state = _LABEL_TO_STATE.get(label) if isinstance(label, str) else None
    if state is None:
        raise UnknownLabelError(label)
    return state


def is_valid(label: object) -> bool:
    """Check whether a string is one of the governance labels."""
    return isinstance(label, str) and label in all_labels()


def all_labels() -> List[str]:
    return [label.value for label in GovernanceLabel]
