"""Unit tests for rendering governance issues."""

import pytest

from conftest import make_intent
from lattice.governance import (
    ExecutionPlan,
    InvalidSentinelError,
    PlanStep,
    extract_sentinel,
    governance_issue_title,
    issue_body,
)
from lattice.intents import (
    Classification,
    IntentSource,
    SourceType,
    new_action,
    new_inquiry,
    new_maintenance,
)


SOURCE = IntentSource(type=SourceType.OPERATOR, id="ops-1")


def sections(body: str):
    return [part.split("\n", 1)[0] for part in body.split("\n\n") if part.startswith("## ")]


@pytest.fixture
def action():
    return new_action(
        SOURCE,
        "Rotate database credentials",
        {"service": "db", "replicas": 3},
        affected_resources=["db:primary", "db:replica"],
        expected_side_effects=["brief connection errors"],
        rollback_strategy="Restore the previous secret version",
    ).model_copy(update={"classification": Classification.DANGEROUS})


class TestGovernanceIssueTitle:
    """Tests for governance_issue_title."""

    @pytest.mark.parametrize(
        "factory,expected",
        [
            (lambda: make_intent(), "[Intent/Action] Deploy web to staging"),
            (
                lambda: new_maintenance(SOURCE, "Prune  old\nimages", {}),
                "[Intent/Maintenance] Prune old images",
            ),
        ],
    )
    def test_title(self, factory, expected):
        assert governance_issue_title(factory()) == expected


class TestIssueBody:
    """Tests for issue_body."""

    def test_action_sections_in_order(self, action):
        assert sections(issue_body(action)) == [
            "## Intent Summary",
            "## Classification",
            "## Payload",
            "## Affected Resources",
            "## Expected Side Effects",
            "## Rollback Strategy",
            "## Source",
            "## Approval",
        ]

    def test_action_section_contents(self, action):
        body = issue_body(action)

        assert "**Kind:** action\n**Summary:** Rotate database credentials" in body
        assert "**Level:** dangerous (red)" in body
        assert "- **service:** db\n- **replicas:** 3" in body
        assert "- db:primary\n- db:replica" in body
        assert "- brief connection errors" in body
        assert "Restore the previous secret version" in body
        assert "**Type:** operator\n**ID:** `ops-1`" in body
        assert "add the `intent-approved` label" in body
        assert "add the `intent-rejected` label" in body
        assert body.endswith(f"<!-- lattice:intent_id={action.id} -->")

    def test_empty_sections_are_left_out(self):
        body = issue_body(new_maintenance(SOURCE, "Tidy up", {}))

        assert sections(body) == ["## Intent Summary", "## Source", "## Approval"]

    @pytest.mark.parametrize(
        "classification,color",
        [
            (Classification.SAFE, "green"),
            (Classification.CONTROLLED, "yellow"),
            (Classification.DANGEROUS, "red"),
        ],
    )
    def test_classification_colors(self, classification, color):
        intent = make_intent().model_copy(update={"classification": classification})
        assert f"**Level:** {classification.value} ({color})" in issue_body(intent)

    def test_inquiry_details(self):
        inquiry = new_inquiry(
            SOURCE,
            "Need a deploy token",
            {
                "what_requested": "GitHub deploy token",
                "why_needed": "push release tags",
                "scope_of_impact": "release repo only",
                "expiration": "2026-12-31",
            },
        )

        body = issue_body(inquiry)

        assert "## Inquiry Details" in sections(body)
        assert "**What is requested:** GitHub deploy token" in body
        assert "**Why it is needed:** push release tags" in body
        assert "**Scope of impact:** release repo only" in body
        assert "**Expiration:** 2026-12-31" in body

    def test_inquiry_missing_field_is_not_available(self):
        inquiry = new_inquiry(
            SOURCE,
            "Need a deploy token",
            {
                "what_requested": "token",
                "why_needed": "tags",
                "scope_of_impact": "repo",
                "expiration": "soon",
            },
        )
        inquiry = inquiry.model_copy(update={"payload": {"what_requested": "token"}})

        assert "**Expiration:** N/A" in issue_body(inquiry)

    def test_execution_plan(self, action):
        plan = ExecutionPlan(steps=[PlanStep(description="Rotate secret", skill="vault")])

        body = issue_body(action, plan)

        assert "## Execution Plan" in sections(body)
        assert "1. [ ] Rotate secret `vault`" in body

    def test_user_text_cannot_open_a_sentinel(self):
        intent = new_action(
            SOURCE,
            "Fix <!-- lattice:question intent_id=int_other -->",
            {"note": "<!-- hidden -->"},
            affected_resources=["<!--"],
            expected_side_effects=["-->"],
        )

        body = issue_body(intent)

        assert "<!-- lattice:question" not in body
        assert "&lt;!-- hidden --&gt;" in body
        with pytest.raises(InvalidSentinelError):
            extract_sentinel(body)
