"""Structured comment templates for human-in-the-loop governance.

This module renders GitHub-flavored markdown comments carrying a sentinel
marker, an HTML comment invisible to readers, so that Lattice can later read
back the replies and route them to the right intent:

    <!-- lattice:question intent_id=int_xxx -->

Comment types:
- question_comment: numbered checklist a human answers by checking boxes
- plan_comment: proposed execution plan with approval instructions
- summary_comment: execution outcome, duration and artifacts
- progress_comment: current step of a running plan

The governance issue itself is rendered by governance_issue_title and
issue_body.

Decoding lives in ``lattice.governance.parser``.
"""

import json
import re
from typing import Any, Iterable, Mapping, Optional, Union

from lattice.governance.labels import GovernanceLabel
from lattice.governance.models import ExecutionPlan, SentinelType, StepStatus
from lattice.intents.models import Classification, Intent, IntentKind


HEADER_QUESTION = "## Lattice needs your input"
HEADER_PLAN = "## Proposed Execution Plan"
HEADER_PROGRESS = "## Progress Update"

INTENT_PREFIX = "**Intent:**"
DURATION_PREFIX = "**Duration:**"
STEP_PREFIX = "**Step:**"
RESPOND_PREFIX = "**How to respond:**"
APPROVE_PREFIX = "**To approve:**"
REJECT_PREFIX = "**To reject:**"
FOOTER_PREFIX = "_Posted by"

RESPONSE_INSTRUCTIONS = (
    f"{RESPOND_PREFIX} Reply to this comment with your answers. "
    "Check the boxes above or write your response below."
)
APPROVE_INSTRUCTIONS = f"{APPROVE_PREFIX} Add the `intent-approved` label to this issue."
REJECT_INSTRUCTIONS = f"{REJECT_PREFIX} Add the `intent-rejected` label."

FOOTER = f"{FOOTER_PREFIX} Lattice._"

# Plain marker at the end of a governance issue, not a comment sentinel
TRACE_MARKER = "<!-- lattice:intent_id={intent_id} -->"

_CLASSIFICATION_COLORS = {
    Classification.SAFE: "green",
    Classification.CONTROLLED: "yellow",
    Classification.DANGEROUS: "red",
}

_INQUIRY_LABELS = (
    ("what_requested", "**What is requested:**"),
    ("why_needed", "**Why it is needed:**"),
    ("scope_of_impact", "**Scope of impact:**"),
    ("expiration", "**Expiration:**"),
)

_ATTR_KEY_PATTERN = re.compile(r"^\w+$")

_STEP_CHECKBOXES = {
    StepStatus.COMPLETED: "[x]",
    StepStatus.RUNNING: "[~]",
    StepStatus.FAILED: "[!]",
    StepStatus.SKIPPED: "[-]",
    StepStatus.PENDING: "[ ]",
}

Question = Union[str, Mapping[str, Any]]


def render_sentinel(
    sentinel_type: Union[SentinelType, str],
    intent_id: str,
    **attrs: Any,
) -> str:
    """Render a sentinel marker.

    Args:
        sentinel_type: The comment type.
        intent_id: The intent the comment belongs to.
        **attrs: Extra attributes, rendered as ``key=value`` in order.

    Returns:
        ``<!-- lattice:<type> intent_id=<id>[ key=value ...] -->``

    Raises:
        ValueError: If the type is unknown, a key is not a word, or a value
            is empty or contains whitespace.

    Example:
        >>> render_sentinel(SentinelType.PLAN, "int_abc", version=2)
        '<!-- lattice:plan intent_id=int_abc version=2 -->'
    """
    kind = SentinelType(sentinel_type)

    tokens = []
    for key, value in (("intent_id", intent_id), *attrs.items()):
        text = str(value)
        if not _ATTR_KEY_PATTERN.match(key):
            raise ValueError(f"Invalid sentinel attribute name: {key!r}")
        if not text or any(ch.isspace() for ch in text) or "-->" in text:
            raise ValueError(f"Invalid sentinel attribute value for {key}: {text!r}")
        tokens.append(f"{key}={text}")

    return f"<!-- lattice:{kind.value} {' '.join(tokens)} -->"


def question_comment(intent: Intent, questions: Iterable[Question]) -> str:
    """Render a question comment for an intent.

    Each question becomes an unchecked, numbered checklist item:
    ``- [ ] **N.** Question text``. Questions may be plain strings or
    mappings with a ``text`` key. Questions that are empty after
    sanitizing are skipped.

    Args:
        intent: The intent the questions are about.
        questions: The questions, in display order.

    Returns:
        The comment body.

    Example:
        >>> print(question_comment(intent, ["Approve this intent"]))
        ## Lattice needs your input
        ...
        - [ ] **1.** Approve this intent
        ...
    """
    if isinstance(questions, (str, Mapping)):
        questions = [questions]

    texts = [sanitize(_question_text(q)) for q in questions]
    checklist = "\n".join(
        f"- [ ] **{i}.** {text}"
        for i, text in enumerate((t for t in texts if t), start=1)
    )

    sections = [
        HEADER_QUESTION,
        _intent_line(intent),
        checklist,
        RESPONSE_INSTRUCTIONS,
        f"{render_sentinel(SentinelType.QUESTION, intent.id)}\n{FOOTER}",
    ]
    return "\n\n".join(s for s in sections if s)


def plan_comment(intent: Intent, plan: ExecutionPlan) -> str:
    """Render a plan comment showing the proposed execution plan.

    Uses the plan's pre-rendered markdown when present, otherwise renders
    the steps as a numbered list with a status box per step.
    """
    if plan.rendered_markdown and plan.rendered_markdown.strip():
        body = escape_markup(plan.rendered_markdown.strip())
    else:
        body = _render_plan_steps(plan)

    sentinel = render_sentinel(SentinelType.PLAN, intent.id, version=plan.version)

    sections = [
        HEADER_PLAN,
        _intent_line(intent),
        body,
        f"{APPROVE_INSTRUCTIONS}\n{REJECT_INSTRUCTIONS}",
        f"{sentinel}\n{FOOTER}",
    ]
    return "\n\n".join(sections)


def summary_comment(intent: Intent, result: Mapping[str, Any]) -> str:
    """Render an execution summary comment.

    Args:
        intent: The executed intent. Artifacts are listed from
            ``intent.metadata["artifacts"]`` (mappings with ``label`` or
            ``type`` and an optional ``url``).
        result: Execution result with optional ``status`` ("success" or
            "failure"), ``duration_ms``, ``output`` and ``error`` keys.

    Returns:
        The comment body.
    """
    status = result.get("status")
    if status == "success":
        heading = "## Execution Completed"
    elif status == "failure":
        heading = "## Execution Failed"
    else:
        heading = "## Execution Outcome"

    details = f"{_intent_line(intent)}\n{DURATION_PREFIX} {format_duration(result.get('duration_ms'))}"

    sections = [heading, details]

    if result.get("error") is not None:
        sections.append(f"### Error\n\n```\n{escape_markup(_format_value(result['error']))}\n```")
    elif result.get("output") is not None:
        sections.append(f"### Output\n\n```\n{escape_markup(_format_value(result['output']))}\n```")

    artifacts = intent.metadata.get("artifacts")
    if isinstance(artifacts, list) and artifacts:
        items = "\n".join(_format_artifact(a) for a in artifacts)
        sections.append(f"### Artifacts\n\n{items}")

    sections.append(f"{render_sentinel(SentinelType.SUMMARY, intent.id)}\n{FOOTER}")
    return "\n\n".join(sections)


def progress_comment(
    intent: Intent,
    current_step: Optional[int] = None,
    total_steps: Optional[int] = None,
    message: Optional[str] = None,
) -> str:
    """Render a progress update comment for a running plan."""
    current = "?" if current_step is None else current_step
    total = "?" if total_steps is None else total_steps

    sections = [
        HEADER_PROGRESS,
        f"{INTENT_PREFIX} `{intent.id}`\n{STEP_PREFIX} {current} of {total}",
        escape_markup(message) if message else "Execution in progress.",
        f"{render_sentinel(SentinelType.PROGRESS, intent.id)}\n{FOOTER}",
    ]
    return "\n\n".join(sections)


def governance_issue_title(intent: Intent) -> str:
    """Render the title of an intent's governance issue.

    Example:
        >>> governance_issue_title(intent)
        '[Intent/Action] Deploy web to staging'
    """
    summary = " ".join(intent.summary.split()) or "No summary"
    return f"[Intent/{intent.kind.value.capitalize()}] {summary}"


def issue_body(intent: Intent, plan: Optional[ExecutionPlan] = None) -> str:
    """Render the body of an intent's governance issue.

    Sections, in order, with empty ones left out:

    - Intent Summary: kind and summary
    - Classification: safety tier, when classified
    - Payload: one line per key
    - Affected Resources, Expected Side Effects, Rollback Strategy
    - Inquiry Details: for inquiries, the requested fields or ``N/A``
    - Execution Plan: when a plan is given
    - Source: proposer type and id
    - Approval: label instructions
    - Traceability marker carrying the intent id

    Args:
        intent: The intent awaiting approval.
        plan: Optional execution plan to include.

    Returns:
        The issue body.
    """
    sections = [
        f"## Intent Summary\n\n**Kind:** {intent.kind.value}\n"
        f"**Summary:** {sanitize(intent.summary) or 'No summary'}",
    ]

    if intent.classification is not None:
        color = _CLASSIFICATION_COLORS[intent.classification]
        sections.append(f"## Classification\n\n**Level:** {intent.classification.value} ({color})")

    if intent.payload:
        lines = "\n".join(
            f"- **{sanitize(str(key))}:** {sanitize(_format_inline(value))}"
            for key, value in intent.payload.items()
        )
        sections.append(f"## Payload\n\n{lines}")

    if intent.affected_resources:
        sections.append(f"## Affected Resources\n\n{_bullets(intent.affected_resources)}")

    if intent.expected_side_effects:
        sections.append(f"## Expected Side Effects\n\n{_bullets(intent.expected_side_effects)}")

    if intent.rollback_strategy:
        sections.append(f"## Rollback Strategy\n\n{sanitize(intent.rollback_strategy)}")

    if intent.kind == IntentKind.INQUIRY:
        details = "\n".join(
            f"{label} {sanitize(_format_inline(intent.payload.get(key, 'N/A')))}"
            for key, label in _INQUIRY_LABELS
        )
        sections.append(f"## Inquiry Details\n\n{details}")

    if plan is not None:
        if plan.rendered_markdown and plan.rendered_markdown.strip():
            plan_body = escape_markup(plan.rendered_markdown.strip())
        else:
            plan_body = _render_plan_steps(plan)
        sections.append(f"## Execution Plan\n\n{plan_body}")

    sections.append(
        f"## Source\n\n**Type:** {intent.source.type.value}\n"
        f"**ID:** `{sanitize(intent.source.id)}`"
    )
    sections.append(
        "## Approval\n\n"
        f"To approve this intent, add the `{GovernanceLabel.APPROVED.value}` label.\n"
        f"To reject this intent, add the `{GovernanceLabel.REJECTED.value}` label.\n\n"
        "---\n"
        "_Created by Lattice governance. Do not modify the intent payload directly._"
    )
    sections.append(TRACE_MARKER.format(intent_id=intent.id))

    return "\n\n".join(sections)


def sanitize(text: str) -> str:
    """Collapse text to a single line safe for a markdown list item.

    Args:
        text: The raw text.

    Returns:
        The text with line breaks replaced by spaces, runs of whitespace
        collapsed, the ends trimmed and HTML comment markup escaped.
        Empty string if nothing remains.
    """
    if not text:
        return ""
    return escape_markup(" ".join(text.split()))


def escape_markup(text: str) -> str:
    """Escape HTML comment delimiters so text can never open a sentinel.

    ``<!--`` and ``-->`` become ``&lt;!--`` and ``--&gt;``, which GitHub
    renders back as the literal characters.
    """
    return text.replace("<!--", "&lt;!--").replace("-->", "--&gt;")


def format_duration(duration_ms: Any) -> str:
    """Format a duration in milliseconds for display ("850ms", "1.5s")."""
    if isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float)):
        return "N/A"
    if duration_ms < 1000:
        return f"{duration_ms}ms"
    return f"{round(duration_ms / 1000, 1)}s"


def _intent_line(intent: Intent) -> str:
    summary = sanitize(intent.summary) or "No summary"
    return f"{INTENT_PREFIX} `{intent.id}` - {summary}"


def _question_text(question: Question) -> str:
    if isinstance(question, Mapping):
        return str(question.get("text", ""))
    return str(question)


def _render_plan_steps(plan: ExecutionPlan) -> str:
    if not plan.steps:
        return "_No steps defined._"

    lines = []
    for i, step in enumerate(plan.steps, start=1):
        skill = f" `{sanitize(step.skill)}`" if step.skill else ""
        lines.append(f"{i}. {_STEP_CHECKBOXES[step.status]} {sanitize(step.description)}{skill}")
    return "\n".join(lines)


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, default=str, sort_keys=True)


def _format_artifact(artifact: Any) -> str:
    if not isinstance(artifact, Mapping):
        return f"- {sanitize(str(artifact))}"
    label = sanitize(str(artifact.get("label") or artifact.get("type") or "artifact"))
    url = escape_markup(str(artifact["url"])) if artifact.get("url") else None
    return f"- [{label}]({url})" if url else f"- {label}"


def _format_inline(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, sort_keys=True)


def _bullets(items: Iterable[Any]) -> str:
    return "\n".join(f"- {sanitize(str(item))}" for item in items)
