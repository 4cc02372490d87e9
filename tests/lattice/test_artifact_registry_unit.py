"""Unit tests for the artifact registry actor."""

import pytest

from conftest import run_async
from lattice.actor import ActorNotRunningError
from lattice.artifacts import ArtifactKind, ArtifactLink, ArtifactRole
from lattice.artifacts.registry import ArtifactRegistry
from lattice.events import ArtifactRegistered, EventBus, EventType, Topic


def pr_link(intent_id="int_abc", ref=2001, run_id=None, role=ArtifactRole.OUTPUT):
    return ArtifactLink(
        intent_id=intent_id,
        run_id=run_id,
        kind=ArtifactKind.PULL_REQUEST,
        ref=ref,
        url=f"https://github.com/org/artifact-repo/pull/{ref}",
        role=role,
    )


def issue_link(intent_id="int_abc", ref=7):
    return ArtifactLink(
        intent_id=intent_id,
        kind=ArtifactKind.ISSUE,
        ref=ref,
        role=ArtifactRole.GOVERNANCE,
    )


class TestArtifactRegistry:
    """Tests for ArtifactRegistry."""

    def test_register_indexes_and_publishes(self):
        async def scenario():
            bus = EventBus()
            subscription = bus.subscribe(Topic.ARTIFACTS)
            async with ArtifactRegistry(bus) as registry:
                link = pr_link(run_id="run-1")
                returned = await registry.register(link)
                event = subscription.get_nowait()
                return registry, link, returned, event

        registry, link, returned, event = run_async(scenario())

        assert returned == link
        assert isinstance(event, ArtifactRegistered)
        assert event.event_type == EventType.ARTIFACT_REGISTERED
        assert event.link == link
        assert registry.lookup_by_intent("int_abc") == [link]
        assert registry.lookup_by_ref(ArtifactKind.PULL_REQUEST, 2001) == [link]
        assert registry.lookup_by_ref("pull_request", 2001) == [link]
        assert registry.lookup_by_run("run-1") == [link]
        assert registry.all() == [link]

    def test_lookups_keep_registration_order(self):
        async def scenario():
            async with ArtifactRegistry(EventBus()) as registry:
                links = [issue_link(), pr_link(ref=1), pr_link(ref=2), pr_link(intent_id="int_other", ref=3)]
                for link in links:
                    await registry.register(link)
                return registry, links

        registry, links = run_async(scenario())

        assert registry.lookup_by_intent("int_abc") == links[:3]
        assert registry.lookup_by_intent("int_other") == [links[3]]
        assert registry.lookup_by_ref(ArtifactKind.ISSUE, 7) == [links[0]]
        assert registry.all() == links

    def test_duplicate_links_are_recorded_twice(self):
        async def scenario():
            async with ArtifactRegistry(EventBus()) as registry:
                link = pr_link()
                await registry.register(link)
                await registry.register(link)
                return registry

        registry = run_async(scenario())
        assert len(registry.lookup_by_ref(ArtifactKind.PULL_REQUEST, 2001)) == 2

    def test_unknown_lookups_are_empty(self):
        registry = ArtifactRegistry(EventBus())

        assert registry.lookup_by_intent("missing") == []
        assert registry.lookup_by_ref(ArtifactKind.COMMIT, "abc123") == []
        assert registry.lookup_by_run("missing") == []
        with pytest.raises(ValueError):
            registry.lookup_by_ref("wiki", 1)

    def test_links_without_run_are_not_run_indexed(self):
        async def scenario():
            async with ArtifactRegistry(EventBus()) as registry:
                await registry.register(pr_link())
                return registry

        registry = run_async(scenario())
        assert registry._by_run == {}

    def test_lookups_return_copies(self):
        async def scenario():
            async with ArtifactRegistry(EventBus()) as registry:
                await registry.register(pr_link())
                return registry

        registry = run_async(scenario())
        registry.lookup_by_intent("int_abc").clear()
        registry.all().clear()

        assert len(registry.lookup_by_intent("int_abc")) == 1
        assert len(registry.all()) == 1

    def test_reset_forgets_everything(self):
        async def scenario():
            async with ArtifactRegistry(EventBus()) as registry:
                await registry.register(pr_link(run_id="run-1"))
                await registry.reset()
                return registry

        registry = run_async(scenario())

        assert registry.all() == []
        assert registry.lookup_by_intent("int_abc") == []
        assert registry.lookup_by_run("run-1") == []

    def test_register_requires_running_actor(self):
        async def scenario():
            registry = ArtifactRegistry(EventBus())
            with pytest.raises(ActorNotRunningError):
                await registry.register(pr_link())

        run_async(scenario())
