"""Artifact registry actor.

Records links between intents and the GitHub artifacts they produce and
publishes an ArtifactRegistered event on the ``artifacts`` topic for each
one. The PR tracker listens to that topic to start tracking pull requests.

Links are kept in registration order. Registering the same link twice
records it twice.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from lattice.actor import Actor
from lattice.artifacts.models import ArtifactKind, ArtifactLink
from lattice.events.bus import EventBus, Topic
from lattice.events.models import ArtifactRegistered


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Register:
    link: ArtifactLink


@dataclass(frozen=True)
class _Reset:
    pass


class ArtifactRegistry(Actor):
    """Registry of artifact links, indexed by intent, reference and run.

    Writes go through the actor inbox; lookups read the indexes directly
    and return new lists.

    Example:
        >>> async with ArtifactRegistry(bus) as registry:
        ...     await registry.register(link)
        ...     registry.lookup_by_intent("int_abc")
        [ArtifactLink(...)]
    """

    def __init__(self, event_bus: EventBus, name: str = "artifact_registry"):
        super().__init__(name=name)
        self.event_bus = event_bus
        self._links: List[ArtifactLink] = []
        self._by_intent: Dict[str, List[ArtifactLink]] = {}
        self._by_ref: Dict[Tuple[ArtifactKind, Any], List[ArtifactLink]] = {}
        self._by_run: Dict[str, List[ArtifactLink]] = {}

    async def register(self, link: ArtifactLink) -> ArtifactLink:
        """Record a link and publish ArtifactRegistered.

        Returns:
            The registered link.
        """
        return await self.call(_Register(link))

    async def reset(self) -> None:
        """Forget every link."""
        await self.call(_Reset())

    def lookup_by_intent(self, intent_id: str) -> List[ArtifactLink]:
        return list(self._by_intent.get(intent_id, ()))

    def lookup_by_ref(
        self,
        kind: Union[ArtifactKind, str],
        ref: Union[int, str],
    ) -> List[ArtifactLink]:
        """Return the links to one artifact, e.g. every link to PR 42."""
        return list(self._by_ref.get((ArtifactKind(kind), ref), ()))

    def lookup_by_run(self, run_id: str) -> List[ArtifactLink]:
        return list(self._by_run.get(run_id, ()))

    def all(self) -> List[ArtifactLink]:
        return list(self._links)

    def handle(self, message: Any) -> Optional[ArtifactLink]:
        if isinstance(message, _Register):
            return self._register(message.link)
        if isinstance(message, _Reset):
            self._reset()
            return None
        raise TypeError(f"Unexpected message: {type(message).__name__}")

    def _register(self, link: ArtifactLink) -> ArtifactLink:
        self._links.append(link)
        self._by_intent.setdefault(link.intent_id, []).append(link)
        self._by_ref.setdefault((link.kind, link.ref), []).append(link)
        if link.run_id is not None:
            self._by_run.setdefault(link.run_id, []).append(link)

        logger.info(
            "Artifact registered",
            extra={
                "intent_id": link.intent_id,
                "kind": link.kind.value,
                "ref": link.ref,
                "role": link.role.value,
            },
        )

        self.event_bus.publish(Topic.ARTIFACTS, ArtifactRegistered(link=link))
        return link

    def _reset(self) -> None:
        self._links.clear()
        self._by_intent.clear()
        self._by_ref.clear()
        self._by_run.clear()

        logger.info("Artifact registry reset")
