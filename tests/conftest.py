"""Pytest configuration and shared fixtures for all tests."""

import asyncio
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

from lattice.intents import (
    Intent,
    IntentSource,
    IntentState,
    SourceType,
    new_action,
    transition,
)


# Path through the lifecycle to reach each state from proposed
STATE_PATHS: Dict[IntentState, List[IntentState]] = {
    IntentState.PROPOSED: [],
    IntentState.CLASSIFIED: [IntentState.CLASSIFIED],
    IntentState.AWAITING_APPROVAL: [IntentState.CLASSIFIED, IntentState.AWAITING_APPROVAL],
    IntentState.APPROVED: [IntentState.CLASSIFIED, IntentState.APPROVED],
    IntentState.RUNNING: [IntentState.CLASSIFIED, IntentState.APPROVED, IntentState.RUNNING],
    IntentState.COMPLETED: [
        IntentState.CLASSIFIED,
        IntentState.APPROVED,
        IntentState.RUNNING,
        IntentState.COMPLETED,
    ],
    IntentState.FAILED: [
        IntentState.CLASSIFIED,
        IntentState.APPROVED,
        IntentState.RUNNING,
        IntentState.FAILED,
    ],
    IntentState.REJECTED: [
        IntentState.CLASSIFIED,
        IntentState.AWAITING_APPROVAL,
        IntentState.REJECTED,
    ],
    IntentState.CANCELED: [
        IntentState.CLASSIFIED,
        IntentState.AWAITING_APPROVAL,
        IntentState.CANCELED,
    ],
}


def make_intent(summary: str = "Deploy web to staging", **metadata) -> Intent:
    """Create a proposed action intent."""
    return new_action(
        IntentSource(type=SourceType.AGENT, id="agent-7"),
        summary,
        {"service": "web"},
        affected_resources=["app:web"],
        expected_side_effects=["restart web"],
        metadata=metadata or None,
    )


def intent_in_state(state: IntentState, intent: Optional[Intent] = None) -> Intent:
    """Walk an intent through valid transitions until it reaches ``state``."""
    intent = intent or make_intent()
    for step in STATE_PATHS[state]:
        intent = transition(intent, step, actor="test")
    return intent


def run_async(coro):
    """Run an async coroutine synchronously for testing."""
    return asyncio.run(coro)


class InMemoryIssueTracker:
    """In-memory IssueTracker recording issues, comments and labels."""

    def __init__(self) -> None:
        self.issues: Dict[int, Tuple[str, str]] = {}
        self.comments: Dict[str, Tuple[int, str]] = {}
        self.labels: Dict[int, Set[str]] = {}
        self.calls: List[Tuple[str, int, str]] = []

    async def create_issue(self, title: str, body: str, labels: Sequence[str]) -> int:
        issue_number = len(self.issues) + 1
        self.issues[issue_number] = (title, body)
        self.labels[issue_number] = set(labels)
        self.calls.append(("create_issue", issue_number, title))
        return issue_number

    async def create_comment(self, issue_number: int, body: str) -> str:
        ref = f"comment-{len(self.comments) + 1}"
        self.comments[ref] = (issue_number, body)
        self.calls.append(("create_comment", issue_number, ref))
        return ref

    async def apply_label(self, issue_number: int, label: str) -> None:
        self.labels.setdefault(issue_number, set()).add(label)
        self.calls.append(("apply_label", issue_number, label))

    async def remove_label(self, issue_number: int, label: str) -> None:
        self.labels.setdefault(issue_number, set()).discard(label)
        self.calls.append(("remove_label", issue_number, label))

    async def get_comment(self, comment_ref: str) -> Optional[str]:
        entry = self.comments.get(comment_ref)
        return entry[1] if entry else None

    def edit_comment(self, comment_ref: str, body: str) -> None:
        issue_number, _ = self.comments[comment_ref]
        self.comments[comment_ref] = (issue_number, body)


@pytest.fixture
def intent() -> Intent:
    return make_intent()


@pytest.fixture
def issue_tracker() -> InMemoryIssueTracker:
    return InMemoryIssueTracker()
