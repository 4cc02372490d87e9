"""GitHub webhook event models.

This module defines the typed events Lattice extracts from GitHub webhook
payloads:
- PullRequestEvent: ``pull_request`` (any action), refreshes a tracked PR
- PullRequestReviewEvent: ``pull_request_review`` submitted or dismissed
- IssueCommentEvent: ``issue_comment`` created or edited, possibly a
  governance reply
- IssueLabelEvent: ``issues`` labeled, possibly a governance decision

The models use Pydantic for validation, consistent with the rest of the
package.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from lattice.prs.models import PRState, ReviewState


class WebhookEventName(str, Enum):
    """Values of the ``X-GitHub-Event`` header Lattice handles."""

    PULL_REQUEST = "pull_request"
    PULL_REQUEST_REVIEW = "pull_request_review"
    ISSUE_COMMENT = "issue_comment"
    ISSUES = "issues"


# Fields reported only when the payload carries them
OPTIONAL_TRACKED_FIELDS = ("title", "draft", "head_branch", "base_branch", "url", "mergeable")


class PullRequestEvent(BaseModel):
    """Snapshot of a pull request carried by a ``pull_request`` event."""

    model_config = ConfigDict(frozen=True)

    action: str

    repo: str = Field(..., min_length=1, description='Repository in "owner/repo" format')

    number: int = Field(..., gt=0)

    title: Optional[str] = None

    state: PRState

    mergeable: Optional[bool] = Field(
        default=None,
        description="None while GitHub has not computed mergeability",
    )

    draft: Optional[bool] = None

    head_branch: Optional[str] = None

    base_branch: Optional[str] = None

    url: Optional[str] = None

    def tracked_changes(self) -> Dict[str, Any]:
        """Tracker fields this event reports.

        Only fields the payload carried are reported, so a partial payload
        never clears a stored value. Mergeability is only reported once
        GitHub has computed it.
        """
        changes: Dict[str, Any] = {"state": self.state}
        for field in OPTIONAL_TRACKED_FIELDS:
            value = getattr(self, field)
            if value is not None:
                changes[field] = value
        return changes


class PullRequestReviewEvent(BaseModel):
    """A review submitted on, or dismissed from, a pull request."""

    model_config = ConfigDict(frozen=True)

    action: str

    repo: str = Field(..., min_length=1)

    number: int = Field(..., gt=0)

    review_state: ReviewState

    reviewer: Optional[str] = None


class IssueCommentEvent(BaseModel):
    """A comment created or edited on an issue."""

    model_config = ConfigDict(frozen=True)

    action: str

    repo: str = Field(..., min_length=1)

    issue_number: int = Field(..., gt=0)

    comment_id: Optional[int] = None

    author: Optional[str] = None

    body: str = ""


class IssueLabelEvent(BaseModel):
    """A label added to an issue."""

    model_config = ConfigDict(frozen=True)

    repo: str = Field(..., min_length=1)

    issue_number: int = Field(..., gt=0)

    label: str = Field(..., min_length=1)

    sender: Optional[str] = None


WebhookEvent = Union[
    PullRequestEvent,
    PullRequestReviewEvent,
    IssueCommentEvent,
    IssueLabelEvent,
]


class WebhookStatus(str, Enum):
    """Outcome of dispatching a webhook delivery."""

    PROCESSED = "processed"
    IGNORED = "ignored"


class WebhookResult(BaseModel):
    """Result of dispatching a webhook delivery.

    Attributes:
        status: Whether the delivery led to any change or publication.
        event_name: The ``X-GitHub-Event`` value.
        reason: Why the delivery was ignored, if it was.
        details: Context about what was done.
    """

    status: WebhookStatus

    event_name: str

    reason: Optional[str] = None

    details: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ignored(cls, event_name: str, reason: str) -> "WebhookResult":
        return cls(status=WebhookStatus.IGNORED, event_name=event_name, reason=reason)

    @classmethod
    def processed(cls, event_name: str, **details: Any) -> "WebhookResult":
        return cls(status=WebhookStatus.PROCESSED, event_name=event_name, details=details)
