"""Event bus, event models and metrics.

Event Bus:
- EventBus: In-process topic fan-out with per-subscriber queues
- Subscription: Async-iterable view of one topic
- Topic: Well-known topics (artifacts, prs, intents, governance)
- get_event_bus: Get or create the process-wide bus

Event Models:
- ArtifactRegistered, PRRegistered, PRUpdated, FieldChange
- IntentTransitioned, GovernanceReply, GovernanceLabelApplied

Metrics:
- LatticeMetrics: Container for all Prometheus metrics
- MetricsRecorder: Feeds bus events into the metrics
- get_metrics / generate_metrics_output: Access and render for /metrics
"""

from lattice.events.bus import EventBus, Subscription, Topic, get_event_bus
from lattice.events.metrics import (
    LatticeMetrics,
    MetricsRecorder,
    generate_metrics_output,
    get_metrics,
)
from lattice.events.models import (
    ArtifactRegistered,
    EventType,
    FieldChange,
    GovernanceLabelApplied,
    GovernanceReply,
    IntentTransitioned,
    LatticeEvent,
    PRRegistered,
    PRUpdated,
)

__all__ = [
    # Bus
    "EventBus",
    "Subscription",
    "Topic",
    "get_event_bus",
    # Event models
    "ArtifactRegistered",
    "EventType",
    "FieldChange",
    "GovernanceLabelApplied",
    "GovernanceReply",
    "IntentTransitioned",
    "LatticeEvent",
    "PRRegistered",
    "PRUpdated",
    # Metrics
    "LatticeMetrics",
    "MetricsRecorder",
    "generate_metrics_output",
    "get_metrics",
]
