"""Intent data models.

This module defines the data models for intents, the unit of work in Lattice:
- IntentState: Enum of all lifecycle states
- IntentKind: Enum of intent kinds
- IntentSource: Where an intent came from
- TransitionEntry: Record of a lifecycle transition
- Intent: Immutable snapshot of an intent and its audit trail

Intents are frozen pydantic models. Every change produces a new value, so a
snapshot handed to another task can never change underneath it.
"""

import base64
import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from lattice.errors import ErrorCode, LatticeError


class IntentState(str, Enum):
    """Lifecycle states an intent moves through.

    State Flow:
        proposed → classified → awaiting_approval → approved → running
        → completed | failed

    ``classified`` may skip straight to ``approved`` for safe intents.
    ``awaiting_approval`` may end in ``rejected`` or ``canceled``, and
    ``approved`` may be ``canceled`` before it runs.

    Attributes:
        PROPOSED: Created, not yet classified.
        CLASSIFIED: Safety tier assigned.
        AWAITING_APPROVAL: Waiting for a human decision on the governance issue.
        APPROVED: Cleared to run.
        RUNNING: Being executed by a worker.
        COMPLETED: Finished successfully.
        FAILED: Execution failed.
        REJECTED: A human rejected the intent.
        CANCELED: Withdrawn before execution.
    """

    PROPOSED = "proposed"
    CLASSIFIED = "classified"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"
    CANCELED = "canceled"


class IntentKind(str, Enum):
    """Kinds of intents.

    Attributes:
        ACTION: Produces side effects (deploy, modify infrastructure).
        INQUIRY: Requests human input or secrets.
        MAINTENANCE: Proposes system improvements.
    """

    ACTION = "action"
    INQUIRY = "inquiry"
    MAINTENANCE = "maintenance"


class SourceType(str, Enum):
    """Origins an intent may be proposed from."""

    SPRITE = "sprite"
    AGENT = "agent"
    CRON = "cron"
    OPERATOR = "operator"
    WEBHOOK = "webhook"


class Classification(str, Enum):
    """Safety tier assigned to an intent by an external classifier."""

    SAFE = "safe"
    CONTROLLED = "controlled"
    DANGEROUS = "dangerous"


INQUIRY_PAYLOAD_FIELDS = (
    "what_requested",
    "why_needed",
    "scope_of_impact",
    "expiration",
)


class IntentValidationError(LatticeError):
    """Raised when an intent cannot be built from the given fields.

    Attributes:
        field: The missing or invalid field.
    """

    code = ErrorCode.INVALID_INTENT

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(
            message or f"Missing or invalid intent field: {field}",
            details={"field": field},
        )


class IntentSource(BaseModel):
    """Reference to whatever proposed the intent."""

    model_config = ConfigDict(frozen=True)

    type: SourceType = Field(..., description="Kind of proposer")

    id: str = Field(..., min_length=1, description="Proposer identifier")


class TransitionEntry(BaseModel):
    """Record of a single lifecycle transition.

    Attributes:
        from_state: The state before the transition.
        to_state: The state after the transition.
        timestamp: When the transition occurred (UTC).
        actor: Who triggered the transition, if known.
        reason: Why the transition happened, if given.
    """

    model_config = ConfigDict(frozen=True)

    from_state: IntentState

    to_state: IntentState

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    actor: Optional[str] = None

    reason: Optional[str] = None


class Intent(BaseModel):
    """Immutable snapshot of an intent.

    The transition log is ordered newest first. Lifecycle timestamps are
    set by ``lattice.intents.lifecycle.transition`` and are never written
    by anything else.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Opaque intent identifier")

    kind: IntentKind

    state: IntentState = IntentState.PROPOSED

    source: IntentSource

    summary: str = Field(..., min_length=1)

    payload: Dict[str, Any] = Field(default_factory=dict)

    classification: Optional[Classification] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)

    affected_resources: List[str] = Field(default_factory=list)

    expected_side_effects: List[str] = Field(default_factory=list)

    rollback_strategy: Optional[str] = None

    inserted_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    classified_at: Optional[datetime] = None

    approved_at: Optional[datetime] = None

    started_at: Optional[datetime] = None

    completed_at: Optional[datetime] = None

    transition_log: Tuple[TransitionEntry, ...] = ()


def generate_intent_id() -> str:
    """Generate a new opaque intent identifier (``int_`` + 22 url-safe chars)."""
    raw = base64.urlsafe_b64encode(secrets.token_bytes(16)).rstrip(b"=")
    return "int_" + raw.decode("ascii")


def new_action(
    source: IntentSource,
    summary: str,
    payload: Dict[str, Any],
    affected_resources: List[str],
    expected_side_effects: List[str],
    metadata: Optional[Dict[str, Any]] = None,
    rollback_strategy: Optional[str] = None,
) -> Intent:
    """Create a new action intent.

    Actions produce side effects, so both the affected resources and the
    expected side effects must be declared up front.

    Raises:
        IntentValidationError: If a required list is empty.
    """
    if not affected_resources:
        raise IntentValidationError("affected_resources")
    if not expected_side_effects:
        raise IntentValidationError("expected_side_effects")

    return _build(
        IntentKind.ACTION,
        source,
        summary,
        payload,
        metadata=metadata,
        affected_resources=affected_resources,
        expected_side_effects=expected_side_effects,
        rollback_strategy=rollback_strategy,
    )


def new_inquiry(
    source: IntentSource,
    summary: str,
    payload: Dict[str, Any],
    metadata: Optional[Dict[str, Any]] = None,
) -> Intent:
    """Create a new inquiry intent.

    The payload must describe what is requested, why, the scope of impact
    and when the request expires.

    Raises:
        IntentValidationError: If a required payload field is missing.
    """
    for key in INQUIRY_PAYLOAD_FIELDS:
        if key not in payload:
            raise IntentValidationError(
                key, f"Inquiry payload is missing field: {key}"
            )

    return _build(IntentKind.INQUIRY, source, summary, payload, metadata=metadata)


def new_maintenance(
    source: IntentSource,
    summary: str,
    payload: Dict[str, Any],
    metadata: Optional[Dict[str, Any]] = None,
) -> Intent:
    """Create a new maintenance intent."""
    return _build(IntentKind.MAINTENANCE, source, summary, payload, metadata=metadata)


def _build(
    kind: IntentKind,
    source: IntentSource,
    summary: str,
    payload: Dict[str, Any],
    metadata: Optional[Dict[str, Any]] = None,
    affected_resources: Optional[List[str]] = None,
    expected_side_effects: Optional[List[str]] = None,
    rollback_strategy: Optional[str] = None,
) -> Intent:
    if not summary or not summary.strip():
        raise IntentValidationError("summary")
    if payload is None:
        raise IntentValidationError("payload")

    now = datetime.now(timezone.utc)

    return Intent(
        id=generate_intent_id(),
        kind=kind,
        state=IntentState.PROPOSED,
        source=source,
        summary=summary,
        payload=payload,
        metadata=metadata or {},
        affected_resources=affected_resources or [],
        expected_side_effects=expected_side_effects or [],
        rollback_strategy=rollback_strategy,
        inserted_at=now,
        updated_at=now,
    )
