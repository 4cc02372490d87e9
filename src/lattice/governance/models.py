"""Data models for the governance comment protocol.

This module defines:
- SentinelType: Enum of structured comment types
- Sentinel: Decoded machine marker of a structured comment
- Response: Decoded human reply (checked items plus free text)
- ParsedComment: Sentinel and response merged for a single comment
- StepStatus, PlanStep, ExecutionPlan: Plan content rendered into plan comments
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class SentinelType(str, Enum):
    """Types of structured comments posted to governance issues.

    Attributes:
        QUESTION: Approval or input request with a numbered checklist.
        PLAN: Proposed execution plan awaiting approval.
        SUMMARY: Execution outcome.
        PROGRESS: Step progress update.
    """

    QUESTION = "question"
    PLAN = "plan"
    SUMMARY = "summary"
    PROGRESS = "progress"


class Sentinel(BaseModel):
    """Machine-readable marker embedded in a structured comment.

    Wire format: ``<!-- lattice:<type> intent_id=<id>[ key=value ...] -->``
    """

    model_config = ConfigDict(frozen=True)

    type: SentinelType

    attrs: Dict[str, str] = Field(
        ...,
        description="Sentinel attributes, always including intent_id",
    )

    @property
    def intent_id(self) -> str:
        return self.attrs["intent_id"]

    @property
    def version(self) -> Optional[str]:
        """Plan version, present only on plan sentinels."""
        return self.attrs.get("version")


class Response(BaseModel):
    """Structured content of a human reply.

    Attributes:
        checked: Ascending, de-duplicated 1-based indices of checked items.
        freeform: Trimmed prose with template boilerplate removed.
    """

    model_config = ConfigDict(frozen=True)

    checked: Tuple[int, ...] = ()

    freeform: str = ""


class ParsedComment(BaseModel):
    """A structured comment decoded into its sentinel and its response."""

    model_config = ConfigDict(frozen=True)

    type: SentinelType

    intent_id: str

    attrs: Dict[str, str] = Field(default_factory=dict)

    response: Response


class StepStatus(str, Enum):
    """Execution status of a plan step."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class PlanStep(BaseModel):
    """One step of an execution plan."""

    model_config = ConfigDict(frozen=True)

    description: str = Field(..., min_length=1)

    skill: Optional[str] = Field(
        default=None,
        description="Capability or tool the step will use",
    )

    status: StepStatus = StepStatus.PENDING


class ExecutionPlan(BaseModel):
    """Execution plan proposed for an intent.

    When ``rendered_markdown`` is non-empty it is posted as-is instead of
    rendering ``steps``.
    """

    model_config = ConfigDict(frozen=True)

    steps: List[PlanStep] = Field(default_factory=list)

    rendered_markdown: Optional[str] = None

    version: int = Field(default=1, ge=1)
