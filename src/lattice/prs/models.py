"""Pull request models.

This module defines the PullRequest snapshot tracked by the PR tracker,
together with the closed sets describing its lifecycle:
- PRState: open, closed or merged
- ReviewState: aggregate review outcome
- CIStatus: aggregate status of the checks
"""

from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class PRState(str, Enum):
    """Pull request states."""

    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


class ReviewState(str, Enum):
    """Aggregate review state of a pull request.

    Attributes:
        PENDING: No reviews yet.
        APPROVED: At least one approval and no outstanding change requests.
        CHANGES_REQUESTED: At least one reviewer requested changes.
        COMMENTED: Only comment reviews.
    """

    PENDING = "pending"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    COMMENTED = "commented"


class CIStatus(str, Enum):
    """Aggregate status of a pull request's checks."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


# Fields update_pr may change. Identity and timestamps are owned by the tracker.
UPDATABLE_FIELDS: FrozenSet[str] = frozenset(
    {
        "title",
        "head_branch",
        "base_branch",
        "state",
        "review_state",
        "mergeable",
        "ci_status",
        "draft",
        "intent_id",
        "run_id",
        "url",
    }
)


class PullRequest(BaseModel):
    """Snapshot of a tracked pull request.

    Identity is ``(repo, number)``. Snapshots are immutable; the tracker
    replaces them as updates arrive.

    Example:
        >>> pr = PullRequest(repo="org/repo", number=42, title="Add feature")
        >>> pr.key
        ('org/repo', 42)
    """

    model_config = ConfigDict(frozen=True)

    repo: str = Field(
        ...,
        min_length=1,
        description='Repository in "owner/repo" format',
    )

    number: int = Field(..., gt=0, description="Pull request number")

    intent_id: Optional[str] = Field(
        default=None,
        description="Intent that produced the pull request",
    )

    run_id: Optional[str] = None

    title: Optional[str] = None

    head_branch: Optional[str] = None

    base_branch: Optional[str] = None

    state: PRState = PRState.OPEN

    review_state: ReviewState = ReviewState.PENDING

    mergeable: Optional[bool] = Field(
        default=None,
        description="None while GitHub has not computed mergeability",
    )

    ci_status: Optional[CIStatus] = None

    draft: bool = False

    url: Optional[str] = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    @property
    def key(self) -> Tuple[str, int]:
        return (self.repo, self.number)

    @property
    def needs_attention(self) -> bool:
        """Open and blocked by requested changes, failing CI or a conflict."""
        if self.state != PRState.OPEN:
            return False
        return (
            self.review_state == ReviewState.CHANGES_REQUESTED
            or self.ci_status == CIStatus.FAILURE
            or self.mergeable is False
        )

    @property
    def merge_ready(self) -> bool:
        """Open, approved, mergeable and not failing CI."""
        return (
            self.state == PRState.OPEN
            and self.review_state == ReviewState.APPROVED
            and self.mergeable is True
            and self.ci_status in (CIStatus.SUCCESS, None)
        )
