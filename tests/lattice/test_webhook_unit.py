"""Unit tests for the GitHub webhook handler."""

import asyncio

import pytest

from conftest import run_async
from lattice.events import EventBus, GovernanceLabelApplied, GovernanceReply, PRUpdated, Topic
from lattice.governance import SentinelType
from lattice.intents import IntentState
from lattice.prs import PRState, PullRequest, ReviewState
from lattice.prs.tracker import PRTracker
from lattice.webhook import (
    IssueCommentEvent,
    PullRequestEvent,
    WebhookHandler,
    WebhookStatus,
)


REPO = "org/repo"
SENTINEL = "<!-- lattice:question intent_id=int_abc -->"


# =============================================================================
# Payload Builders
# =============================================================================


def repository():
    return {"full_name": REPO, "name": "repo", "owner": {"login": "org"}}


def pull_request_payload(number=42, action="closed", state="closed", merged=True, **pr_fields):
    pr = {
        "number": number,
        "title": "Add feature",
        "state": state,
        "merged": merged,
        "mergeable": None,
        "draft": False,
        "html_url": f"https://github.com/{REPO}/pull/{number}",
        "head": {"ref": "feature"},
        "base": {"ref": "main"},
    }
    pr.update(pr_fields)
    return {"action": action, "pull_request": pr, "repository": repository()}


def review_payload(number=42, action="submitted", state="APPROVED"):
    return {
        "action": action,
        "review": {"state": state, "user": {"login": "reviewer"}},
        "pull_request": {"number": number},
        "repository": repository(),
    }


def comment_payload(body, action="created", issue_number=7):
    return {
        "action": action,
        "issue": {"number": issue_number},
        "comment": {"id": 555, "body": body, "user": {"login": "alice"}},
        "repository": repository(),
    }


def label_payload(label, action="labeled"):
    return {
        "action": action,
        "issue": {"number": 7},
        "label": {"name": label},
        "sender": {"login": "alice"},
        "repository": repository(),
    }


def drain(subscription):
    messages = []
    while True:
        try:
            messages.append(subscription.get_nowait())
        except asyncio.QueueEmpty:
            return messages


async def dispatch(event_name, payload, tracked=()):
    """Dispatch one delivery against a tracker holding the ``tracked`` PRs."""
    bus = EventBus()
    async with PRTracker(bus) as tracker:
        for number in tracked:
            await tracker.register(PullRequest(repo=REPO, number=number))
        prs = bus.subscribe(Topic.PRS)
        governance = bus.subscribe(Topic.GOVERNANCE)
        result = await WebhookHandler(tracker, bus).dispatch(event_name, payload)
        return result, tracker, drain(prs), drain(governance)


# =============================================================================
# Parsing
# =============================================================================


class TestParse:
    """Tests for WebhookHandler.parse."""

    @pytest.fixture
    def handler(self):
        bus = EventBus()
        return WebhookHandler(PRTracker(bus), bus)

    def test_merged_pull_request(self, handler):
        event = handler.parse("pull_request", pull_request_payload())

        assert isinstance(event, PullRequestEvent)
        assert event.state == PRState.MERGED
        assert event.head_branch == "feature"
        assert event.base_branch == "main"
        assert "mergeable" not in event.tracked_changes()
        assert event.tracked_changes()["url"] == f"https://github.com/{REPO}/pull/42"

    def test_closed_unmerged_pull_request(self, handler):
        event = handler.parse("pull_request", pull_request_payload(merged=False, mergeable=True))

        assert event.state == PRState.CLOSED
        assert event.tracked_changes()["mergeable"] is True

    def test_repo_from_owner_and_name(self, handler):
        payload = comment_payload("hi")
        payload["repository"] = {"name": "repo", "owner": {"login": "org"}}

        event = handler.parse("issue_comment", payload)

        assert isinstance(event, IssueCommentEvent)
        assert event.repo == REPO
        assert event.comment_id == 555
        assert event.author == "alice"

    @pytest.mark.parametrize(
        "event_name,payload",
        [
            ("push", {"ref": "main"}),
            ("pull_request", []),
            ("pull_request", {"action": "opened", "repository": repository()}),
            ("pull_request", pull_request_payload(state="weird", merged=False)),
            ("pull_request", pull_request_payload(number=0)),
            ("pull_request_review", review_payload(action="edited")),
            ("pull_request_review", review_payload(state="PENDING")),
            ("issue_comment", comment_payload("hi", action="deleted")),
            ("issues", label_payload("intent-approved", action="unlabeled")),
            ("issues", {"action": "labeled", "issue": {"number": 7}, "label": {"name": "x"}}),
        ],
    )
    def test_unsupported_or_malformed(self, handler, event_name, payload):
        assert handler.parse(event_name, payload) is None


# =============================================================================
# Dispatch
# =============================================================================


class TestDispatchPullRequests:
    """Pull request deliveries update tracked pull requests only."""

    def test_tracked_pull_request_updated(self):
        result, tracker, prs, _ = run_async(dispatch("pull_request", pull_request_payload(), tracked=[42]))

        assert result.status == WebhookStatus.PROCESSED
        assert result.details == {"repo": REPO, "number": 42}
        pr = tracker.get(REPO, 42)
        assert pr.state == PRState.MERGED
        assert pr.title == "Add feature"
        assert len(prs) == 1
        assert isinstance(prs[0], PRUpdated)
        assert {c.field for c in prs[0].changes} == {"state", "title", "head_branch", "base_branch", "url"}

    def test_partial_payload_keeps_stored_fields(self):
        async def scenario():
            bus = EventBus()
            async with PRTracker(bus) as tracker:
                await tracker.register(
                    PullRequest(
                        repo=REPO,
                        number=42,
                        title="Add feature",
                        head_branch="feature",
                        base_branch="main",
                        draft=True,
                    )
                )
                payload = {
                    "action": "closed",
                    "pull_request": {"number": 42, "state": "closed", "merged": True},
                    "repository": repository(),
                }
                await WebhookHandler(tracker, bus).dispatch("pull_request", payload)
                return tracker.get(REPO, 42)

        pr = run_async(scenario())

        assert pr.state == PRState.MERGED
        assert pr.title == "Add feature"
        assert pr.head_branch == "feature"
        assert pr.base_branch == "main"
        assert pr.draft is True

    def test_partial_payload_reports_only_carried_fields(self):
        bus = EventBus()
        payload = {
            "action": "edited",
            "pull_request": {"number": 42, "state": "open", "title": "Renamed"},
            "repository": repository(),
        }

        event = WebhookHandler(PRTracker(bus), bus).parse("pull_request", payload)

        assert event.tracked_changes() == {"state": PRState.OPEN, "title": "Renamed"}

    def test_untracked_pull_request_ignored(self):
        result, tracker, prs, _ = run_async(dispatch("pull_request", pull_request_payload()))

        assert result.status == WebhookStatus.IGNORED
        assert result.reason == "untracked pull request"
        assert tracker.all() == []
        assert prs == []

    @pytest.mark.parametrize(
        "action,state,expected",
        [
            ("submitted", "APPROVED", ReviewState.APPROVED),
            ("submitted", "changes_requested", ReviewState.CHANGES_REQUESTED),
            ("submitted", "COMMENTED", ReviewState.COMMENTED),
            ("dismissed", "APPROVED", ReviewState.PENDING),
        ],
    )
    def test_review_state(self, action, state, expected):
        result, tracker, _, _ = run_async(
            dispatch("pull_request_review", review_payload(action=action, state=state), tracked=[42])
        )

        assert result.status == WebhookStatus.PROCESSED
        assert tracker.get(REPO, 42).review_state == expected

    def test_unsupported_event_ignored(self):
        result, _, _, _ = run_async(dispatch("push", {}))

        assert result.status == WebhookStatus.IGNORED
        assert result.event_name == "push"


class TestDispatchGovernance:
    """Comment and label deliveries become governance events."""

    def test_reply_published(self):
        body = f"- [x] **1.** Approve this intent\n{SENTINEL}"

        result, _, _, governance = run_async(dispatch("issue_comment", comment_payload(body)))

        assert result.status == WebhookStatus.PROCESSED
        assert result.details["intent_id"] == "int_abc"
        assert len(governance) == 1
        reply = governance[0]
        assert isinstance(reply, GovernanceReply)
        assert reply.issue_number == 7
        assert reply.comment_id == 555
        assert reply.author == "alice"
        assert reply.comment.type == SentinelType.QUESTION
        assert reply.comment.response.checked == (1,)

    @pytest.mark.parametrize("body", ["thanks!", SENTINEL, ""])
    def test_non_replies_ignored(self, body):
        result, _, _, governance = run_async(dispatch("issue_comment", comment_payload(body)))

        assert result.status == WebhookStatus.IGNORED
        assert result.reason == "not a governance reply"
        assert governance == []

    @pytest.mark.parametrize(
        "label,state",
        [
            ("intent-approved", IntentState.APPROVED),
            ("intent-rejected", IntentState.REJECTED),
            ("intent-awaiting-approval", None),
        ],
    )
    def test_governance_label_published(self, label, state):
        result, _, _, governance = run_async(dispatch("issues", label_payload(label)))

        assert result.status == WebhookStatus.PROCESSED
        assert len(governance) == 1
        event = governance[0]
        assert isinstance(event, GovernanceLabelApplied)
        assert event.label == label
        assert event.state == state

    def test_other_labels_ignored(self):
        result, _, _, governance = run_async(dispatch("issues", label_payload("bug")))

        assert result.status == WebhookStatus.IGNORED
        assert result.reason == "not a governance label"
        assert governance == []
