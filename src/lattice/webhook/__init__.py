"""GitHub webhook handling.

Parses webhook deliveries into typed events, applies pull request updates
to the tracker and publishes governance replies and label decisions on the
event bus.
"""

from lattice.webhook.handler import WebhookHandler
from lattice.webhook.models import (
    IssueCommentEvent,
    IssueLabelEvent,
    PullRequestEvent,
    PullRequestReviewEvent,
    WebhookEventName,
    WebhookResult,
    WebhookStatus,
)

__all__ = [
    "IssueCommentEvent",
    "IssueLabelEvent",
    "PullRequestEvent",
    "PullRequestReviewEvent",
    "WebhookEventName",
    "WebhookHandler",
    "WebhookResult",
    "WebhookStatus",
]
