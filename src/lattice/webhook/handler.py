"""GitHub webhook handler.

This module provides the WebhookHandler class that turns GitHub webhook
deliveries into tracker updates and governance events. Signature validation
is handled upstream before deliveries reach this service, so incoming
requests are trusted.

Dispatch:
- pull_request: refresh title, state, branches, draft and mergeability of
  a tracked pull request
- pull_request_review: refresh the review state of a tracked pull request
- issue_comment: publish GovernanceReply for replies to Lattice comments
- issues (labeled): publish GovernanceLabelApplied for governance labels

GitHub Webhook Payload Structure (pull_request event):
{
  "action": "closed",
  "pull_request": {
    "number": 42,
    "title": "Add feature",
    "state": "closed",
    "merged": true,
    "mergeable": null,
    "draft": false,
    "html_url": "https://github.com/org/repo/pull/42",
    "head": {"ref": "feature"},
    "base": {"ref": "main"}
  },
  "repository": {"full_name": "org/repo"}
}
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from lattice.events.bus import EventBus, Topic
from lattice.events.models import GovernanceLabelApplied, GovernanceReply
from lattice.governance import labels
from lattice.governance.labels import UnknownLabelError
from lattice.governance.parser import try_parse_comment
from lattice.prs.models import PRState, ReviewState
from lattice.prs.tracker import PRTracker
from lattice.webhook.models import (
    IssueCommentEvent,
    IssueLabelEvent,
    PullRequestEvent,
    PullRequestReviewEvent,
    WebhookEvent,
    WebhookEventName,
    WebhookResult,
)

logger = logging.getLogger(__name__)


COMMENT_ACTIONS = ("created", "edited")
REVIEW_ACTIONS = ("submitted", "dismissed")

_REVIEW_STATES = {
    "approved": ReviewState.APPROVED,
    "changes_requested": ReviewState.CHANGES_REQUESTED,
    "commented": ReviewState.COMMENTED,
    "dismissed": ReviewState.PENDING,
}


class WebhookHandler:
    """Handler for GitHub webhook deliveries.

    Attributes:
        pr_tracker: Tracker receiving pull request updates.
        event_bus: Bus receiving governance events.

    Example:
        >>> handler = WebhookHandler(tracker, bus)
        >>> result = await handler.dispatch("pull_request_review", payload)
        >>> result.status
        <WebhookStatus.PROCESSED: 'processed'>
    """

    def __init__(self, pr_tracker: PRTracker, event_bus: EventBus) -> None:
        self.pr_tracker = pr_tracker
        self.event_bus = event_bus

    def parse(self, event_name: str, payload: Dict[str, Any]) -> Optional[WebhookEvent]:
        """Parse a webhook payload into a typed event.

        Args:
            event_name: The ``X-GitHub-Event`` header value.
            payload: The raw webhook payload.

        Returns:
            The typed event, or None for unsupported events and actions
            and for malformed payloads.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        try:
            name = WebhookEventName(event_name)
        except ValueError:
            logger.debug("Ignoring unsupported event type: %s", event_name)
            return None

        try:
            if name == WebhookEventName.PULL_REQUEST:
                return self._parse_pull_request(payload)
            if name == WebhookEventName.PULL_REQUEST_REVIEW:
                return self._parse_review(payload)
            if name == WebhookEventName.ISSUE_COMMENT:
                return self._parse_comment(payload)
            return self._parse_label(payload)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(
                "Malformed %s payload: %s",
                event_name,
                str(e),
                extra={"event_name": event_name, "error": str(e)},
            )
            return None

    async def dispatch(self, event_name: str, payload: Dict[str, Any]) -> WebhookResult:
        """Parse a delivery and apply it.

        Raises:
            ValueError: If a tracked pull request rejects the update.
        """
        event = self.parse(event_name, payload)
        if event is None:
            return WebhookResult.ignored(event_name, "unsupported or malformed event")

        if isinstance(event, PullRequestEvent):
            return await self._update_tracked(
                event_name, event.repo, event.number, event.tracked_changes()
            )

        if isinstance(event, PullRequestReviewEvent):
            return await self._update_tracked(
                event_name, event.repo, event.number, {"review_state": event.review_state}
            )

        if isinstance(event, IssueCommentEvent):
            return self._publish_reply(event_name, event)

        return self._publish_label(event_name, event)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------
    async def _update_tracked(
        self,
        event_name: str,
        repo: str,
        number: int,
        changes: Dict[str, Any],
    ) -> WebhookResult:
        if self.pr_tracker.get(repo, number) is None:
            logger.debug("Ignoring untracked pull request %s#%s", repo, number)
            return WebhookResult.ignored(event_name, "untracked pull request")

        pr = await self.pr_tracker.update_pr(repo, number, changes)
        return WebhookResult.processed(event_name, repo=pr.repo, number=pr.number)

    def _publish_reply(self, event_name: str, event: IssueCommentEvent) -> WebhookResult:
        parsed = try_parse_comment(event.body)
        if parsed is None:
            return WebhookResult.ignored(event_name, "not a governance reply")

        self.event_bus.publish(
            Topic.GOVERNANCE,
            GovernanceReply(
                repo=event.repo,
                issue_number=event.issue_number,
                comment_id=event.comment_id,
                author=event.author,
                comment=parsed,
            ),
        )

        logger.info(
            "Governance reply received",
            extra={
                "repo": event.repo,
                "issue_number": event.issue_number,
                "intent_id": parsed.intent_id,
            },
        )
        return WebhookResult.processed(
            event_name,
            repo=event.repo,
            issue_number=event.issue_number,
            intent_id=parsed.intent_id,
        )

    def _publish_label(self, event_name: str, event: IssueLabelEvent) -> WebhookResult:
        if not labels.is_valid(event.label):
            return WebhookResult.ignored(event_name, "not a governance label")

        try:
            state = labels.to_state(event.label)
        except UnknownLabelError:
            state = None

        self.event_bus.publish(
            Topic.GOVERNANCE,
            GovernanceLabelApplied(
                repo=event.repo,
                issue_number=event.issue_number,
                label=event.label,
                state=state,
            ),
        )

        logger.info(
            "Governance label applied",
            extra={"repo": event.repo, "issue_number": event.issue_number, "label": event.label},
        )
        return WebhookResult.processed(
            event_name,
            repo=event.repo,
            issue_number=event.issue_number,
            label=event.label,
        )

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------
    def _parse_pull_request(self, payload: Dict[str, Any]) -> Optional[PullRequestEvent]:
        pr = payload.get("pull_request")
        if not isinstance(pr, dict):
            logger.warning("Missing or invalid 'pull_request' field in payload")
            return None

        if pr.get("merged"):
            state = PRState.MERGED
        else:
            state = PRState(pr.get("state"))

        return PullRequestEvent(
            action=payload.get("action") or "",
            repo=self._repo_name(payload),
            number=pr.get("number"),
            title=pr.get("title"),
            state=state,
            mergeable=pr.get("mergeable"),
            draft=pr.get("draft"),
            head_branch=self._ref(pr.get("head")),
            base_branch=self._ref(pr.get("base")),
            url=pr.get("html_url"),
        )

    def _parse_review(self, payload: Dict[str, Any]) -> Optional[PullRequestReviewEvent]:
        action = payload.get("action")
        if action not in REVIEW_ACTIONS:
            logger.debug("Ignoring unsupported review action: %s", action)
            return None

        review = payload.get("review")
        pr = payload.get("pull_request")
        if not isinstance(review, dict) or not isinstance(pr, dict):
            logger.warning("Missing 'review' or 'pull_request' field in payload")
            return None

        key = "dismissed" if action == "dismissed" else str(review.get("state", "")).lower()
        review_state = _REVIEW_STATES.get(key)
        if review_state is None:
            logger.debug("Ignoring review with state: %s", review.get("state"))
            return None

        return PullRequestReviewEvent(
            action=action,
            repo=self._repo_name(payload),
            number=pr.get("number"),
            review_state=review_state,
            reviewer=self._login(review.get("user")),
        )

    def _parse_comment(self, payload: Dict[str, Any]) -> Optional[IssueCommentEvent]:
        action = payload.get("action")
        if action not in COMMENT_ACTIONS:
            logger.debug("Ignoring unsupported comment action: %s", action)
            return None

        issue = payload.get("issue")
        comment = payload.get("comment")
        if not isinstance(issue, dict) or not isinstance(comment, dict):
            logger.warning("Missing 'issue' or 'comment' field in payload")
            return None

        return IssueCommentEvent(
            action=action,
            repo=self._repo_name(payload),
            issue_number=issue.get("number"),
            comment_id=comment.get("id"),
            author=self._login(comment.get("user")),
            body=comment.get("body") or "",
        )

    def _parse_label(self, payload: Dict[str, Any]) -> Optional[IssueLabelEvent]:
        if payload.get("action") != "labeled":
            logger.debug("Ignoring unsupported issues action: %s", payload.get("action"))
            return None

        issue = payload.get("issue")
        label = payload.get("label")
        if not isinstance(issue, dict) or not isinstance(label, dict):
            logger.warning("Missing 'issue' or 'label' field in payload")
            return None

        return IssueLabelEvent(
            repo=self._repo_name(payload),
            issue_number=issue.get("number"),
            label=label.get("name"),
            sender=self._login(payload.get("sender")),
        )

    def _repo_name(self, payload: Dict[str, Any]) -> str:
        repository = payload.get("repository")
        if not isinstance(repository, dict):
            raise ValueError("missing repository")

        full_name = repository.get("full_name")
        if isinstance(full_name, str) and full_name:
            return full_name

        owner = self._login(repository.get("owner"))
        name = repository.get("name")
        if not owner or not isinstance(name, str) or not name:
            raise ValueError("missing repository name")
        return f"{owner}/{name}"

    @staticmethod
    def _login(user: Any) -> Optional[str]:
        if isinstance(user, dict) and isinstance(user.get("login"), str):
            return user["login"]
        return None

    @staticmethod
    def _ref(branch: Any) -> Optional[str]:
        if isinstance(branch, dict) and isinstance(branch.get("ref"), str):
            return branch["ref"]
        return None
