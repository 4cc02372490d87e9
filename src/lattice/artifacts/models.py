"""Artifact link models.

An ArtifactLink ties an intent (and optionally one of its runs) to a GitHub
entity it produced or used, giving traceability in both directions: from an
intent to everything it touched, and from a pull request back to the intent
that opened it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ArtifactKind(str, Enum):
    """GitHub entity types an intent can be linked to."""

    ISSUE = "issue"
    PULL_REQUEST = "pull_request"
    BRANCH = "branch"
    COMMIT = "commit"


class ArtifactRole(str, Enum):
    """How an artifact relates to its intent.

    Attributes:
        GOVERNANCE: The issue used for approval.
        OUTPUT: Something the intent produced.
        INPUT: Something the intent consumed.
        RELATED: Anything else worth tracing.
    """

    GOVERNANCE = "governance"
    OUTPUT = "output"
    INPUT = "input"
    RELATED = "related"


class ArtifactLink(BaseModel):
    """Link between an intent and a GitHub artifact.

    Attributes:
        intent_id: The intent the artifact belongs to.
        run_id: The run that produced the artifact, if any.
        kind: The type of GitHub entity.
        ref: Issue or pull request number, branch name or commit SHA.
        url: Web URL of the artifact, if known.
        role: How the artifact relates to the intent.
        created_at: When the link was recorded (UTC).

    Example:
        >>> link = ArtifactLink(
        ...     intent_id="int_abc",
        ...     kind=ArtifactKind.PULL_REQUEST,
        ...     ref=2001,
        ...     role=ArtifactRole.OUTPUT,
        ...     url="https://github.com/org/artifact-repo/pull/2001",
        ... )
    """

    model_config = ConfigDict(frozen=True)

    intent_id: str = Field(..., min_length=1)

    run_id: Optional[str] = None

    kind: ArtifactKind

    ref: Union[int, str] = Field(
        ...,
        description="Issue/PR number, branch name or commit SHA",
    )

    url: Optional[str] = None

    role: ArtifactRole

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
