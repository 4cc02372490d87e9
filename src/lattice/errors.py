"""Shared error taxonomy for the Lattice governance core.

Every domain error raised by this package derives from LatticeError and
carries an ErrorCode so callers (and the HTTP layer) can branch on a stable
machine-readable value instead of matching exception messages.

Error categories:
- Validation: INVALID_STATE, INVALID_TRANSITION, INVALID_INTENT, WRONG_STATE
- Protocol decode: INVALID_SENTINEL, NOT_A_LATTICE_COMMENT, NOT_A_RESPONSE
- Lookup: NOT_FOUND, NO_LABEL, UNKNOWN_LABEL
- Runtime: ACTOR_NOT_RUNNING
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    INVALID_STATE = "invalid_state"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_INTENT = "invalid_intent"
    INVALID_SENTINEL = "invalid_sentinel"
    NOT_A_LATTICE_COMMENT = "not_a_lattice_comment"
    NOT_A_RESPONSE = "not_a_response"
    NOT_FOUND = "not_found"
    NO_LABEL = "no_label"
    UNKNOWN_LABEL = "unknown_label"
    WRONG_STATE = "wrong_state"
    ACTOR_NOT_RUNNING = "actor_not_running"


class LatticeError(Exception):
    """Base class for all Lattice domain errors.

    Attributes:
        code: The machine-readable error code.
        message: Human-readable error message.
        details: Optional structured context about the failure.
    """

    code: ErrorCode

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Render the error for logs and API responses."""
        return {
            "error": self.code.value,
            "message": self.message,
            **self.details,
        }
