"""Event models published on the Lattice event bus.

This module defines the messages exchanged between components:
- EventType: Enum of all event types
- ArtifactRegistered: An artifact link was recorded (topic "artifacts")
- PRRegistered / PRUpdated: Tracker changes (topic "prs")
- IntentTransitioned: An intent changed state (topic "intents")
- GovernanceReply / GovernanceLabelApplied: Human input from the governance
  issue (topic "governance")

Messages are frozen; subscribers share the same instance.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from lattice.artifacts.models import ArtifactLink
from lattice.governance.models import ParsedComment
from lattice.intents.models import IntentState
from lattice.prs.models import PullRequest


class EventType(str, Enum):
    """Types of events published on the bus.

    Attributes:
        ARTIFACT_REGISTERED: An artifact link was registered.
        PR_REGISTERED: A pull request started being tracked.
        PR_UPDATED: Fields of a tracked pull request changed.
        INTENT_TRANSITIONED: An intent moved to a new state.
        GOVERNANCE_REPLY: A human replied to a structured comment.
        GOVERNANCE_LABEL_APPLIED: A governance label was added to an issue.
    """

    ARTIFACT_REGISTERED = "artifact_registered"
    PR_REGISTERED = "pr_registered"
    PR_UPDATED = "pr_updated"
    INTENT_TRANSITIONED = "intent_transitioned"
    GOVERNANCE_REPLY = "governance_reply"
    GOVERNANCE_LABEL_APPLIED = "governance_label_applied"


class LatticeEvent(BaseModel):
    """Base class for bus messages."""

    model_config = ConfigDict(frozen=True)

    event_type: EventType

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert the event to a flat dictionary for structured logging.

        Returns:
            Dict[str, Any]: ``event_type``, ISO ``timestamp`` and the
            event-specific context.
        """
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            **self._log_details(),
        }

    def _log_details(self) -> Dict[str, Any]:
        return {}


class ArtifactRegistered(LatticeEvent):
    """An artifact link was recorded by the artifact registry."""

    event_type: Literal[EventType.ARTIFACT_REGISTERED] = EventType.ARTIFACT_REGISTERED

    link: ArtifactLink

    def _log_details(self) -> Dict[str, Any]:
        return {
            "intent_id": self.link.intent_id,
            "kind": self.link.kind.value,
            "role": self.link.role.value,
            "ref": self.link.ref,
        }


class PRRegistered(LatticeEvent):
    """A pull request started being tracked."""

    event_type: Literal[EventType.PR_REGISTERED] = EventType.PR_REGISTERED

    pr: PullRequest

    def _log_details(self) -> Dict[str, Any]:
        return {
            "repo": self.pr.repo,
            "number": self.pr.number,
            "intent_id": self.pr.intent_id,
        }


class FieldChange(BaseModel):
    """One changed field of a pull request."""

    model_config = ConfigDict(frozen=True)

    field: str

    old: Any = None

    new: Any = None


class PRUpdated(LatticeEvent):
    """Fields of a tracked pull request changed.

    ``changes`` is never empty: updates that change nothing are not
    published.
    """

    event_type: Literal[EventType.PR_UPDATED] = EventType.PR_UPDATED

    pr: PullRequest

    changes: Tuple[FieldChange, ...]

    def _log_details(self) -> Dict[str, Any]:
        return {
            "repo": self.pr.repo,
            "number": self.pr.number,
            "fields": [c.field for c in self.changes],
        }


class IntentTransitioned(LatticeEvent):
    """An intent moved from one lifecycle state to another."""

    event_type: Literal[EventType.INTENT_TRANSITIONED] = EventType.INTENT_TRANSITIONED

    intent_id: str

    from_state: IntentState

    to_state: IntentState

    actor: Optional[str] = None

    reason: Optional[str] = None

    def _log_details(self) -> Dict[str, Any]:
        return {
            "intent_id": self.intent_id,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "actor": self.actor,
        }


class GovernanceReply(LatticeEvent):
    """A human replied to a structured Lattice comment."""

    event_type: Literal[EventType.GOVERNANCE_REPLY] = EventType.GOVERNANCE_REPLY

    repo: str

    issue_number: int

    comment_id: Optional[int] = None

    author: Optional[str] = None

    comment: ParsedComment

    def _log_details(self) -> Dict[str, Any]:
        return {
            "repo": self.repo,
            "issue_number": self.issue_number,
            "comment_id": self.comment_id,
            "intent_id": self.comment.intent_id,
            "checked": list(self.comment.response.checked),
        }


class GovernanceLabelApplied(LatticeEvent):
    """A governance label was applied to an issue.

    ``state`` is the decision the label stands for, or None for the
    awaiting-approval label.
    """

    event_type: Literal[EventType.GOVERNANCE_LABEL_APPLIED] = (
        EventType.GOVERNANCE_LABEL_APPLIED
    )

    repo: str

    issue_number: int

    label: str

    state: Optional[IntentState] = None

    def _log_details(self) -> Dict[str, Any]:
        return {
            "repo": self.repo,
            "issue_number": self.issue_number,
            "label": self.label,
            "state": self.state.value if self.state else None,
        }
