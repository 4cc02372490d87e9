"""Human-in-the-loop governance on GitHub issues.

This package provides:
- Governance labels and their mapping to intent states
- The structured comment protocol: sentinel-marked comments rendered by
  ``comments`` and decoded back by ``parser``
- The governance issue title and body

The GovernanceManager workflow lives in ``lattice.governance.manager``.
"""

from lattice.governance.comments import (
    escape_markup,
    governance_issue_title,
    issue_body,
    plan_comment,
    progress_comment,
    question_comment,
    render_sentinel,
    summary_comment,
)
from lattice.governance.labels import (
    GovernanceLabel,
    NoLabelError,
    UnknownLabelError,
)
from lattice.governance.models import (
    ExecutionPlan,
    ParsedComment,
    PlanStep,
    Response,
    Sentinel,
    SentinelType,
    StepStatus,
)
from lattice.governance.parser import (
    InvalidSentinelError,
    NotALatticeCommentError,
    NotAResponseError,
    extract_sentinel,
    parse_comment,
    parse_response,
    try_parse_comment,
)

__all__ = [
    # Labels
    "GovernanceLabel",
    "NoLabelError",
    "UnknownLabelError",
    # Models
    "ExecutionPlan",
    "ParsedComment",
    "PlanStep",
    "Response",
    "Sentinel",
    "SentinelType",
    "StepStatus",
    # Comments
    "escape_markup",
    "governance_issue_title",
    "issue_body",
    "plan_comment",
    "progress_comment",
    "question_comment",
    "render_sentinel",
    "summary_comment",
    # Parser
    "InvalidSentinelError",
    "NotALatticeCommentError",
    "NotAResponseError",
    "extract_sentinel",
    "parse_comment",
    "parse_response",
    "try_parse_comment",
]
