"""Governance workflow bridging intents and GitHub issues.

This module provides the GovernanceManager class that drives the
human-in-the-loop approval flow for an intent on its governance issue:

1. Intent enters ``awaiting_approval``
2. ``open_governance_issue`` opens a labeled issue describing the intent,
   and ``request_approval`` posts the approval question on it
3. A human applies ``intent-approved``/``intent-rejected`` or checks an
   item of the approval checklist
4. ``sync_from_labels``/``sync_from_comment`` read the decision and
   transition the intent
5. ``post_outcome`` posts the execution summary
6. ``close`` leaves the issue labeled with the final state

All issue access goes through the IssueTracker protocol; the HTTP client
behind it is not part of this package.
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from lattice.errors import ErrorCode, LatticeError
from lattice.events.bus import EventBus, Topic
from lattice.events.models import IntentTransitioned
from lattice.governance import labels
from lattice.governance.comments import (
    Question,
    governance_issue_title,
    issue_body,
    question_comment,
    summary_comment,
)
from lattice.governance.labels import GovernanceLabel, NoLabelError
from lattice.governance.models import ExecutionPlan, ParsedComment, SentinelType
from lattice.governance.parser import try_parse_comment
from lattice.intents.lifecycle import is_terminal, transition
from lattice.intents.models import Intent, IntentState


logger = logging.getLogger(__name__)


DEFAULT_APPROVAL_QUESTIONS: Sequence[str] = (
    "Approve this intent",
    "Reject this intent",
)

# Checklist item numbers of the default approval questions
APPROVE_ITEM = 1
REJECT_ITEM = 2

GOVERNANCE_ACTOR = "github"

# Intent metadata key holding the governance issue number
GOVERNANCE_ISSUE_KEY = "governance_issue"


class GovernanceStateError(LatticeError):
    """Raised when an intent is in the wrong state for a governance operation.

    Attributes:
        intent_id: The intent.
        state: The intent's current state.
        operation: The attempted operation.
    """

    code = ErrorCode.WRONG_STATE

    def __init__(self, intent_id: str, state: IntentState, operation: str):
        self.intent_id = intent_id
        self.state = state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} intent {intent_id} in state {state.value}",
            details={
                "intent_id": intent_id,
                "state": state.value,
                "operation": operation,
            },
        )


@runtime_checkable
class IssueTracker(Protocol):
    """Protocol for the issue tracker holding governance issues.

    Implementations talk to GitHub (or a fake in tests). Failures are
    raised as exceptions and propagate to the caller.
    """

    async def create_issue(self, title: str, body: str, labels: Sequence[str]) -> int:
        """Open an issue with the given labels.

        Returns:
            The new issue number.
        """
        ...

    async def create_comment(self, issue_number: int, body: str) -> str:
        """Post a comment on an issue.

        Returns:
            A reference to the comment, usable with ``get_comment``.
        """
        ...

    async def apply_label(self, issue_number: int, label: str) -> None:
        """Add a label to an issue. Adding a present label is a no-op."""
        ...

    async def remove_label(self, issue_number: int, label: str) -> None:
        """Remove a label from an issue. Removing an absent label is a no-op."""
        ...

    async def get_comment(self, comment_ref: str) -> Optional[str]:
        """Get the current body of a comment, or None if it no longer exists."""
        ...


class ApprovalRequest(BaseModel):
    """Record of an approval request posted to a governance issue."""

    model_config = ConfigDict(frozen=True)

    intent_id: str

    issue_number: int

    comment_ref: str = Field(..., description="Reference of the question comment")

    label: str

    body: str


class GovernanceManager:
    """Manages the governance workflow of intents on GitHub issues.

    Attributes:
        issue_tracker: Access to governance issues.
        event_bus: Optional bus to publish IntentTransitioned on.

    Example:
        >>> manager = GovernanceManager(issue_tracker, event_bus=bus)
        >>> request = await manager.request_approval(intent, issue_number=7)
        >>> # ... a human checks "Approve this intent" ...
        >>> intent = await manager.sync_from_comment(intent, 7, request.comment_ref)
        >>> intent.state
        <IntentState.APPROVED: 'approved'>
    """

    def __init__(
        self,
        issue_tracker: IssueTracker,
        event_bus: Optional[EventBus] = None,
    ):
        self.issue_tracker = issue_tracker
        self.event_bus = event_bus

    async def open_governance_issue(
        self,
        intent: Intent,
        plan: Optional[ExecutionPlan] = None,
    ) -> Intent:
        """Open the governance issue for an intent awaiting approval.

        The issue describes the intent (classification, payload, affected
        resources, side effects, rollback strategy and source) and carries
        the awaiting-approval label.

        Returns:
            The intent with the issue number stored in its metadata under
            ``governance_issue``.

        Raises:
            GovernanceStateError: If the intent is not awaiting approval.
        """
        if intent.state != IntentState.AWAITING_APPROVAL:
            raise GovernanceStateError(intent.id, intent.state, "open governance issue for")

        issue_number = await self.issue_tracker.create_issue(
            governance_issue_title(intent),
            issue_body(intent, plan),
            [labels.for_state(IntentState.AWAITING_APPROVAL)],
        )

        logger.info(
            "Governance issue opened",
            extra={"intent_id": intent.id, "issue_number": issue_number},
        )

        metadata = {**intent.metadata, GOVERNANCE_ISSUE_KEY: issue_number}
        return intent.model_copy(update={"metadata": metadata})

    async def request_approval(
        self,
        intent: Intent,
        issue_number: int,
        questions: Optional[Iterable[Question]] = None,
    ) -> ApprovalRequest:
        """Label the governance issue and post the approval question.

        Args:
            intent: An intent in ``awaiting_approval``.
            issue_number: The governance issue.
            questions: Checklist items; defaults to approve/reject.

        Returns:
            The posted request.

        Raises:
            GovernanceStateError: If the intent is not awaiting approval.
        """
        if intent.state != IntentState.AWAITING_APPROVAL:
            raise GovernanceStateError(intent.id, intent.state, "request approval for")

        label = labels.for_state(IntentState.AWAITING_APPROVAL)
        body = question_comment(intent, questions or DEFAULT_APPROVAL_QUESTIONS)

        await self.issue_tracker.apply_label(issue_number, label)
        comment_ref = await self.issue_tracker.create_comment(issue_number, body)

        logger.info(
            "Approval requested",
            extra={
                "intent_id": intent.id,
                "issue_number": issue_number,
                "comment_ref": comment_ref,
            },
        )

        return ApprovalRequest(
            intent_id=intent.id,
            issue_number=issue_number,
            comment_ref=comment_ref,
            label=label,
            body=body,
        )

    @staticmethod
    def decision_from_labels(issue_labels: Iterable[str]) -> Optional[IntentState]:
        """Return the decision expressed by an issue's labels.

        The approved label wins when both decision labels are present.
        """
        present = set(issue_labels)
        if GovernanceLabel.APPROVED.value in present:
            return IntentState.APPROVED
        if GovernanceLabel.REJECTED.value in present:
            return IntentState.REJECTED
        return None

    @staticmethod
    def decision_from_response(parsed: ParsedComment) -> Optional[IntentState]:
        """Return the decision expressed by a reply to the approval question.

        Only item 1 checked approves and only item 2 checked rejects;
        anything else, including both, is no decision.
        """
        if parsed.type != SentinelType.QUESTION:
            return None

        checked = parsed.response.checked
        if checked == (APPROVE_ITEM,):
            return IntentState.APPROVED
        if checked == (REJECT_ITEM,):
            return IntentState.REJECTED
        return None

    async def apply_decision(
        self,
        intent: Intent,
        issue_number: int,
        decision: IntentState,
        actor: str = GOVERNANCE_ACTOR,
        reason: Optional[str] = None,
    ) -> Intent:
        """Transition an intent to a human decision and relabel the issue.

        Raises:
            ValueError: If ``decision`` is not approved or rejected.
            InvalidTransitionError: If the intent cannot take the decision.
        """
        decision = IntentState(decision)
        if decision not in (IntentState.APPROVED, IntentState.REJECTED):
            raise ValueError(f"Not a governance decision: {decision.value}")

        updated = transition(
            intent,
            decision,
            actor=actor,
            reason=reason or f"{decision.value} via governance issue #{issue_number}",
        )

        await self.issue_tracker.remove_label(issue_number, GovernanceLabel.AWAITING_APPROVAL.value)
        await self.issue_tracker.apply_label(issue_number, labels.for_state(decision))

        self._publish_transition(intent, updated)

        logger.info(
            "Governance decision applied",
            extra={
                "intent_id": intent.id,
                "issue_number": issue_number,
                "decision": decision.value,
                "actor": actor,
            },
        )
        return updated

    async def sync_from_labels(
        self,
        intent: Intent,
        issue_number: int,
        issue_labels: Iterable[str],
    ) -> Optional[Intent]:
        """Apply a decision found in the governance issue's labels.

        Returns:
            The transitioned intent, or None if no decision label is present.

        Raises:
            GovernanceStateError: If the intent is not awaiting approval.
        """
        if intent.state != IntentState.AWAITING_APPROVAL:
            raise GovernanceStateError(intent.id, intent.state, "sync")

        decision = self.decision_from_labels(issue_labels)
        if decision is None:
            return None

        return await self.apply_decision(
            intent,
            issue_number,
            decision,
            reason=f"{decision.value} via label on governance issue #{issue_number}",
        )

    async def sync_from_comment(
        self,
        intent: Intent,
        issue_number: int,
        comment_ref: str,
    ) -> Optional[Intent]:
        """Apply a decision found in a reply to the approval question.

        The decoded response is stored in the intent's metadata under
        ``governance_response``.

        Returns:
            The transitioned intent, or None if the comment is gone, is not
            a reply for this intent, or carries no decision.

        Raises:
            GovernanceStateError: If the intent is not awaiting approval.
        """
        if intent.state != IntentState.AWAITING_APPROVAL:
            raise GovernanceStateError(intent.id, intent.state, "sync")

        body = await self.issue_tracker.get_comment(comment_ref)
        if body is None:
            return None

        parsed = try_parse_comment(body)
        if parsed is None:
            return None

        if parsed.intent_id != intent.id:
            logger.debug(
                "Ignoring reply for another intent",
                extra={"intent_id": intent.id, "reply_intent_id": parsed.intent_id},
            )
            return None

        decision = self.decision_from_response(parsed)
        if decision is None:
            return None

        updated = await self.apply_decision(
            intent,
            issue_number,
            decision,
            reason=f"{decision.value} via reply on governance issue #{issue_number}",
        )

        metadata = {
            **updated.metadata,
            "governance_response": {
                "comment_ref": comment_ref,
                "checked": list(parsed.response.checked),
                "freeform": parsed.response.freeform,
            },
        }
        return updated.model_copy(update={"metadata": metadata})

    async def post_outcome(
        self,
        intent: Intent,
        issue_number: int,
        result: Mapping[str, Any],
    ) -> str:
        """Post an execution summary comment on the governance issue.

        Returns:
            The reference of the posted comment.
        """
        comment_ref = await self.issue_tracker.create_comment(
            issue_number,
            summary_comment(intent, result),
        )

        logger.info(
            "Outcome posted",
            extra={"intent_id": intent.id, "issue_number": issue_number, "comment_ref": comment_ref},
        )
        return comment_ref

    async def close(self, intent: Intent, issue_number: int) -> None:
        """Leave the governance issue labeled with the intent's final state.

        Raises:
            GovernanceStateError: If the intent is not in a terminal state.
        """
        if not is_terminal(intent.state):
            raise GovernanceStateError(intent.id, intent.state, "close governance for")

        await self.issue_tracker.remove_label(issue_number, GovernanceLabel.AWAITING_APPROVAL.value)

        try:
            label = labels.for_state(intent.state)
        except NoLabelError:
            label = None

        if label is not None:
            await self.issue_tracker.apply_label(issue_number, label)

        logger.info(
            "Governance closed",
            extra={"intent_id": intent.id, "issue_number": issue_number, "state": intent.state.value},
        )

    def _publish_transition(self, before: Intent, after: Intent) -> None:
        if self.event_bus is None:
            return

        entry = after.transition_log[0]
        self.event_bus.publish(
            Topic.INTENTS,
            IntentTransitioned(
                intent_id=after.id,
                from_state=before.state,
                to_state=after.state,
                actor=entry.actor,
                reason=entry.reason,
            ),
        )
