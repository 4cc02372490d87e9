"""Unit tests for the pull request tracker actor."""

import asyncio

import pytest

from conftest import run_async
from lattice.artifacts import ArtifactKind, ArtifactLink, ArtifactRole
from lattice.artifacts.registry import ArtifactRegistry
from lattice.events import EventBus, EventType, PRRegistered, PRUpdated, Topic
from lattice.prs import CIStatus, PRState, PullRequest, ReviewState
from lattice.prs.tracker import PRNotFoundError, PRTracker


REPO = "org/repo"


# =============================================================================
# Helper Functions
# =============================================================================


def drain(subscription):
    """Return every message waiting on a subscription."""
    messages = []
    while True:
        try:
            messages.append(subscription.get_nowait())
        except asyncio.QueueEmpty:
            return messages


async def wait_for_pr(tracker, repo, number, timeout=1.0):
    """Poll the tracker until a pull request shows up."""

    async def poll():
        while tracker.get(repo, number) is None:
            await asyncio.sleep(0.01)
        return tracker.get(repo, number)

    return await asyncio.wait_for(poll(), timeout)


def link(ref, url=None, kind=ArtifactKind.PULL_REQUEST, intent_id="int_abc", run_id="run-1"):
    return ArtifactLink(
        intent_id=intent_id,
        run_id=run_id,
        kind=kind,
        ref=ref,
        url=url,
        role=ArtifactRole.OUTPUT,
    )


# =============================================================================
# Registration
# =============================================================================


class TestRegister:
    """Tests for PRTracker.register."""

    def test_register_publishes_once_and_first_wins(self):
        async def scenario():
            bus = EventBus()
            subscription = bus.subscribe(Topic.PRS)
            async with PRTracker(bus) as tracker:
                first = PullRequest(repo=REPO, number=1002, title="first", intent_id="int_a")
                second = PullRequest(repo=REPO, number=1002, title="second", intent_id="int_b")
                returned_first = await tracker.register(first)
                returned_second = await tracker.register(second)
                return tracker, first, returned_first, returned_second, drain(subscription)

        tracker, first, returned_first, returned_second, events = run_async(scenario())

        assert returned_first == first
        assert returned_second == first
        assert tracker.get(REPO, 1002).title == "first"
        assert tracker.for_intent("int_b") == []
        assert len(events) == 1
        assert isinstance(events[0], PRRegistered)
        assert events[0].event_type == EventType.PR_REGISTERED

    def test_same_number_in_different_repos(self):
        async def scenario():
            async with PRTracker(EventBus()) as tracker:
                await tracker.register(PullRequest(repo="org/a", number=1))
                await tracker.register(PullRequest(repo="org/b", number=1))
                return tracker

        tracker = run_async(scenario())
        assert len(tracker.all()) == 2

    def test_get_unknown(self):
        assert PRTracker(EventBus()).get(REPO, 1) is None


# =============================================================================
# Updates
# =============================================================================


class TestUpdate:
    """Tests for PRTracker.update_pr."""

    def test_single_change_publishes_one_field_change(self):
        async def scenario():
            bus = EventBus()
            async with PRTracker(bus) as tracker:
                original = await tracker.register(PullRequest(repo=REPO, number=7))
                subscription = bus.subscribe(Topic.PRS)
                updated = await tracker.update_pr(REPO, 7, {"review_state": "approved"})
                return original, updated, drain(subscription)

        original, updated, events = run_async(scenario())

        assert updated.review_state == ReviewState.APPROVED
        assert updated.updated_at >= original.updated_at
        assert updated.created_at == original.created_at
        assert len(events) == 1
        event = events[0]
        assert isinstance(event, PRUpdated)
        assert event.pr == updated
        assert len(event.changes) == 1
        change = event.changes[0]
        assert change.field == "review_state"
        assert change.old == ReviewState.PENDING
        assert change.new == ReviewState.APPROVED

    def test_identical_update_publishes_nothing(self):
        async def scenario():
            bus = EventBus()
            async with PRTracker(bus) as tracker:
                original = await tracker.register(
                    PullRequest(repo=REPO, number=7, title="Add feature", draft=True)
                )
                subscription = bus.subscribe(Topic.PRS)
                updated = await tracker.update_pr(
                    REPO, 7, {"title": "Add feature", "draft": True, "state": "open"}
                )
                return original, updated, drain(subscription)

        original, updated, events = run_async(scenario())

        assert updated == original
        assert events == []

    def test_only_changed_fields_are_reported(self):
        async def scenario():
            bus = EventBus()
            async with PRTracker(bus) as tracker:
                await tracker.register(PullRequest(repo=REPO, number=7, title="Add feature"))
                subscription = bus.subscribe(Topic.PRS)
                await tracker.update_pr(
                    REPO,
                    7,
                    {"title": "Add feature", "ci_status": CIStatus.FAILURE, "mergeable": False},
                )
                return drain(subscription)

        events = run_async(scenario())
        assert [c.field for c in events[0].changes] == ["ci_status", "mergeable"]

    def test_intent_reindexed(self):
        async def scenario():
            async with PRTracker(EventBus()) as tracker:
                await tracker.register(PullRequest(repo=REPO, number=7, intent_id="int_a"))
                await tracker.update_pr(REPO, 7, {"intent_id": "int_b"})
                return tracker

        tracker = run_async(scenario())
        assert tracker.for_intent("int_a") == []
        assert [pr.number for pr in tracker.for_intent("int_b")] == [7]

    def test_untracked_pr(self):
        async def scenario():
            async with PRTracker(EventBus()) as tracker:
                with pytest.raises(PRNotFoundError) as exc_info:
                    await tracker.update_pr(REPO, 99, {"title": "x"})
                return exc_info.value

        error = run_async(scenario())
        assert error.to_dict() == {
            "error": "not_found",
            "message": "Pull request not tracked: org/repo#99",
            "repo": REPO,
            "number": 99,
        }

    @pytest.mark.parametrize(
        "changes",
        [
            {"number": 8},
            {"repo": "org/other"},
            {"created_at": None},
            {"state": "reopened"},
            {"review_state": "meh"},
        ],
    )
    def test_invalid_updates(self, changes):
        async def scenario():
            async with PRTracker(EventBus()) as tracker:
                await tracker.register(PullRequest(repo=REPO, number=7))
                with pytest.raises(ValueError):
                    await tracker.update_pr(REPO, 7, changes)
                return tracker

        tracker = run_async(scenario())
        assert tracker.get(REPO, 7).state == PRState.OPEN


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    """Tests for by_state, needs_attention and for_intent."""

    def test_queries(self):
        async def scenario():
            async with PRTracker(EventBus()) as tracker:
                await tracker.register(PullRequest(repo=REPO, number=1, intent_id="int_a"))
                await tracker.register(
                    PullRequest(
                        repo=REPO,
                        number=2,
                        intent_id="int_a",
                        review_state=ReviewState.CHANGES_REQUESTED,
                    )
                )
                await tracker.register(
                    PullRequest(repo=REPO, number=3, ci_status=CIStatus.FAILURE)
                )
                await tracker.register(PullRequest(repo=REPO, number=4, mergeable=False))
                await tracker.register(
                    PullRequest(
                        repo=REPO,
                        number=5,
                        state=PRState.MERGED,
                        review_state=ReviewState.CHANGES_REQUESTED,
                    )
                )
                return tracker

        tracker = run_async(scenario())

        assert [pr.number for pr in tracker.for_intent("int_a")] == [1, 2]
        assert [pr.number for pr in tracker.by_state("open")] == [1, 2, 3, 4]
        assert [pr.number for pr in tracker.by_state(PRState.MERGED)] == [5]
        assert tracker.by_state(PRState.CLOSED) == []
        assert sorted(pr.number for pr in tracker.needs_attention()) == [2, 3, 4]

        with pytest.raises(ValueError):
            tracker.by_state("draft")

    def test_merge_ready(self):
        assert PullRequest(
            repo=REPO, number=1, review_state=ReviewState.APPROVED, mergeable=True
        ).merge_ready
        assert not PullRequest(
            repo=REPO,
            number=1,
            review_state=ReviewState.APPROVED,
            mergeable=True,
            ci_status=CIStatus.FAILURE,
        ).merge_ready
        assert not PullRequest(repo=REPO, number=1, mergeable=True).merge_ready


# =============================================================================
# Auto-registration from artifact links
# =============================================================================


class TestAutoRegistration:
    """The tracker follows pull request links registered as artifacts."""

    def test_pull_request_link_is_tracked(self):
        async def scenario():
            bus = EventBus()
            async with PRTracker(bus) as tracker, ArtifactRegistry(bus) as registry:
                await registry.register(
                    link(2001, url="https://github.com/org/artifact-repo/pull/2001")
                )
                return await wait_for_pr(tracker, "org/artifact-repo", 2001)

        pr = run_async(scenario())

        assert pr.intent_id == "int_abc"
        assert pr.run_id == "run-1"
        assert pr.url == "https://github.com/org/artifact-repo/pull/2001"
        assert pr.state == PRState.OPEN

    def test_default_repo_used_without_url(self):
        async def scenario():
            bus = EventBus()
            async with PRTracker(bus, default_repo=REPO) as tracker, ArtifactRegistry(bus) as registry:
                await registry.register(link("31"))
                return await wait_for_pr(tracker, REPO, 31)

        assert run_async(scenario()).number == 31

    @pytest.mark.parametrize(
        "artifact",
        [
            link(5, kind=ArtifactKind.ISSUE),
            link("feature-branch", kind=ArtifactKind.BRANCH),
            link("abc"),
            link(0),
            link("٣"),
            link(9),
        ],
    )
    def test_links_that_are_not_tracked(self, artifact):
        tracker = PRTracker(EventBus())
        assert tracker.pr_from_link(artifact) is None

    def test_pr_from_link_prefers_url_repo(self):
        tracker = PRTracker(EventBus(), default_repo=REPO)
        pr = tracker.pr_from_link(link(12, url="https://github.com/acme/widgets/pull/12"))

        assert pr.key == ("acme/widgets", 12)

    def test_listener_stops_with_tracker(self):
        async def scenario():
            bus = EventBus()
            tracker = PRTracker(bus)
            await tracker.start()
            assert bus.subscriber_count(Topic.ARTIFACTS) == 1
            await tracker.stop()
            return bus.subscriber_count(Topic.ARTIFACTS), tracker._listener

        count, listener = run_async(scenario())
        assert count == 0
        assert listener is None
