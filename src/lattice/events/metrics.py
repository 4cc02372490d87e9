"""Prometheus metrics for Lattice observability.

Metrics are exposed at the ``/metrics`` endpoint in Prometheus text format.

Metrics Defined:
- lattice_artifacts_registered_total: Counter of artifact links by kind and role
- lattice_prs_registered_total: Counter of newly tracked pull requests by repo
- lattice_pr_field_updates_total: Counter of changed pull request fields
- lattice_intent_transitions_total: Counter of intent transitions

The MetricsRecorder subscribes to the event bus and updates the counters
from the events the registries publish.
"""

import asyncio
import logging
from typing import List, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    generate_latest,
)

from lattice.events.bus import EventBus, Subscription, Topic
from lattice.events.models import (
    ArtifactRegistered,
    IntentTransitioned,
    LatticeEvent,
    PRRegistered,
    PRUpdated,
)


logger = logging.getLogger(__name__)


class LatticeMetrics:
    """Container for all Lattice Prometheus metrics.

    Supports custom registries for testing.

    Metrics:
        artifacts_registered_total: Labels: kind, role
        prs_registered_total: Labels: repo
        pr_field_updates_total: Labels: field
        intent_transitions_total: Labels: from_state, to_state

    Example:
        >>> metrics = LatticeMetrics(registry=CollectorRegistry())
        >>> metrics.record_pr_registered("org/repo")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize Lattice metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.artifacts_registered_total = Counter(
            "lattice_artifacts_registered_total",
            "Total number of artifact links registered",
            labelnames=["kind", "role"],
            registry=self.registry,
        )

        self.prs_registered_total = Counter(
            "lattice_prs_registered_total",
            "Total number of pull requests registered for tracking",
            labelnames=["repo"],
            registry=self.registry,
        )

        # One increment per changed field, not per update
        self.pr_field_updates_total = Counter(
            "lattice_pr_field_updates_total",
            "Total number of tracked pull request field changes",
            labelnames=["field"],
            registry=self.registry,
        )

        self.intent_transitions_total = Counter(
            "lattice_intent_transitions_total",
            "Total number of intent state transitions",
            labelnames=["from_state", "to_state"],
            registry=self.registry,
        )

    def record_artifact_registered(self, kind: str, role: str) -> None:
        self.artifacts_registered_total.labels(kind=kind, role=role).inc()

    def record_pr_registered(self, repo: str) -> None:
        self.prs_registered_total.labels(repo=repo).inc()

    def record_pr_field_update(self, field: str) -> None:
        self.pr_field_updates_total.labels(field=field).inc()

    def record_intent_transition(self, from_state: str, to_state: str) -> None:
        self.intent_transitions_total.labels(
            from_state=from_state,
            to_state=to_state,
        ).inc()

    def record_event(self, event: LatticeEvent) -> None:
        """Update the counters an event contributes to.

        Events without a metric are ignored.
        """
        if isinstance(event, ArtifactRegistered):
            self.record_artifact_registered(event.link.kind.value, event.link.role.value)
        elif isinstance(event, PRRegistered):
            self.record_pr_registered(event.pr.repo)
        elif isinstance(event, PRUpdated):
            for change in event.changes:
                self.record_pr_field_update(change.field)
        elif isinstance(event, IntentTransitioned):
            self.record_intent_transition(event.from_state.value, event.to_state.value)


# Global metrics instance for the default registry
_default_metrics: Optional[LatticeMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> LatticeMetrics:
    """Get or create the Lattice metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.

    Returns:
        LatticeMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        # Custom registry requested, create new instance
        return LatticeMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = LatticeMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus metrics output for the /metrics endpoint.

    Args:
        registry: Optional Prometheus registry. If None, uses the
                  default REGISTRY.

    Returns:
        bytes: Prometheus metrics in text format.
    """
    target_registry = registry or REGISTRY
    return generate_latest(target_registry)


class MetricsRecorder:
    """Feeds bus events into LatticeMetrics.

    Subscribes to the artifacts, prs and intents topics and runs one
    consumer task per subscription. A failure to record one event is
    logged and does not stop the consumer.

    Attributes:
        metrics: The LatticeMetrics instance to update.
    """

    TOPICS = (Topic.ARTIFACTS, Topic.PRS, Topic.INTENTS)

    def __init__(
        self,
        event_bus: EventBus,
        metrics: Optional[LatticeMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.event_bus = event_bus
        if metrics is not None:
            self._metrics = metrics
        else:
            self._metrics = get_metrics(registry)
        self._subscriptions: List[Subscription] = []
        self._tasks: List[asyncio.Task] = []

    @property
    def metrics(self) -> LatticeMetrics:
        return self._metrics

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return

        for topic in self.TOPICS:
            subscription = self.event_bus.subscribe(topic)
            self._subscriptions.append(subscription)
            self._tasks.append(
                asyncio.create_task(
                    self._consume(subscription),
                    name=f"metrics:{topic.value}",
                )
            )

        logger.info("Metrics recorder started")

    async def stop(self) -> None:
        """Stop consuming after the events already delivered are recorded."""
        for subscription in self._subscriptions:
            subscription.close()

        await asyncio.gather(*self._tasks)

        self._subscriptions.clear()
        self._tasks.clear()

        logger.info("Metrics recorder stopped")

    async def _consume(self, subscription: Subscription) -> None:
        async for event in subscription:
            try:
                self._metrics.record_event(event)
            except Exception as e:
                logger.error(
                    "Failed to update metrics for event: %s",
                    str(e),
                    extra={
                        "topic": subscription.topic,
                        "event_type": type(event).__name__,
                        "error": str(e),
                    },
                )
