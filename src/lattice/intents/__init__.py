"""Intents and their lifecycle.

This module manages intent progression through lifecycle states:
- proposed → classified → awaiting_approval → approved → running
- → completed | failed, with rejected and canceled as early exits

Intents are immutable values; every transition returns a new snapshot with
an audit entry prepended to its transition log.
"""

from lattice.intents.lifecycle import (
    InvalidStateError,
    InvalidTransitionError,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    is_terminal,
    is_valid_transition,
    transition,
    valid_states,
    valid_transitions,
)
from lattice.intents.models import (
    Classification,
    Intent,
    IntentKind,
    IntentSource,
    IntentState,
    IntentValidationError,
    SourceType,
    TransitionEntry,
    generate_intent_id,
    new_action,
    new_inquiry,
    new_maintenance,
)

__all__ = [
    # Models
    "Classification",
    "Intent",
    "IntentKind",
    "IntentSource",
    "IntentState",
    "IntentValidationError",
    "SourceType",
    "TransitionEntry",
    "generate_intent_id",
    "new_action",
    "new_inquiry",
    "new_maintenance",
    # Lifecycle
    "InvalidStateError",
    "InvalidTransitionError",
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    "is_terminal",
    "is_valid_transition",
    "transition",
    "valid_states",
    "valid_transitions",
]
