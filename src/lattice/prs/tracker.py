"""Pull request tracker actor.

Tracks pull requests created by Lattice, keyed by ``(repo, number)``, and
answers lookups by intent, state and attention status.

Events published on the ``prs`` topic:
- PRRegistered: a new pull request is tracked
- PRUpdated: fields of a tracked pull request changed

The tracker subscribes to the ``artifacts`` topic and starts tracking a
pull request whenever an artifact link of kind ``pull_request`` with a
numeric reference is registered. The repository comes from the link's
GitHub URL, or from the configured default repository.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from lattice.actor import Actor, ActorNotRunningError
from lattice.artifacts.models import ArtifactKind, ArtifactLink
from lattice.errors import ErrorCode, LatticeError
from lattice.events.bus import EventBus, Subscription, Topic
from lattice.events.models import ArtifactRegistered, FieldChange, PRRegistered, PRUpdated
from lattice.prs.models import UPDATABLE_FIELDS, PRState, PullRequest


logger = logging.getLogger(__name__)


PR_URL_PATTERN = re.compile(r"github\.com/([^/]+/[^/]+)/pull/")


class PRNotFoundError(LatticeError):
    """Raised when updating a pull request that is not tracked.

    Attributes:
        repo: The repository.
        number: The pull request number.
    """

    code = ErrorCode.NOT_FOUND

    def __init__(self, repo: str, number: int):
        self.repo = repo
        self.number = number
        super().__init__(
            f"Pull request not tracked: {repo}#{number}",
            details={"repo": repo, "number": number},
        )


@dataclass(frozen=True)
class _Register:
    pr: PullRequest


@dataclass(frozen=True)
class _Update:
    repo: str
    number: int
    changes: Dict[str, Any]


class PRTracker(Actor):
    """Registry of tracked pull requests.

    The first registration of a ``(repo, number)`` wins: later
    registrations return the stored pull request unchanged. Updates only
    publish when at least one field actually changes.

    Attributes:
        event_bus: Bus to publish on and to listen for artifact links.
        default_repo: Repository used for pull request links whose URL
            does not name one.

    Example:
        >>> async with PRTracker(bus, default_repo="org/repo") as tracker:
        ...     await tracker.register(PullRequest(repo="org/repo", number=42))
        ...     await tracker.update_pr("org/repo", 42, {"review_state": "approved"})
    """

    def __init__(
        self,
        event_bus: EventBus,
        default_repo: Optional[str] = None,
        name: str = "pr_tracker",
    ):
        super().__init__(name=name)
        self.event_bus = event_bus
        self.default_repo = default_repo
        self._prs: Dict[Tuple[str, int], PullRequest] = {}
        self._by_intent: Dict[str, List[Tuple[str, int]]] = {}
        self._subscription: Optional[Subscription] = None
        self._listener: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------
    async def register(self, pr: PullRequest) -> PullRequest:
        """Start tracking a pull request.

        Returns:
            The tracked pull request: ``pr`` if it was new, otherwise the
            one registered first.
        """
        return await self.call(_Register(pr))

    async def update_pr(
        self,
        repo: str,
        number: int,
        changes: Mapping[str, Any],
    ) -> PullRequest:
        """Update fields of a tracked pull request.

        Args:
            repo: Repository in "owner/repo" format.
            number: Pull request number.
            changes: Field values to set. Enum fields accept their string
                values.

        Returns:
            The pull request after the update.

        Raises:
            PRNotFoundError: If the pull request is not tracked.
            ValueError: If a field is not updatable or a value is invalid.
        """
        return await self.call(_Update(repo, number, dict(changes)))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    def get(self, repo: str, number: int) -> Optional[PullRequest]:
        return self._prs.get((repo, number))

    def for_intent(self, intent_id: str) -> List[PullRequest]:
        """Return the pull requests produced by an intent."""
        return [self._prs[key] for key in self._by_intent.get(intent_id, ())]

    def by_state(self, state: Union[PRState, str]) -> List[PullRequest]:
        """Return the pull requests in a state.

        Raises:
            ValueError: If ``state`` is not a PRState.
        """
        target = PRState(state)
        return [pr for pr in self._prs.values() if pr.state == target]

    def needs_attention(self) -> List[PullRequest]:
        """Return open pull requests blocked by reviews, CI or conflicts."""
        return [pr for pr in self._prs.values() if pr.needs_attention]

    def all(self) -> List[PullRequest]:
        return list(self._prs.values())

    # -------------------------------------------------------------------------
    # Actor
    # -------------------------------------------------------------------------
    async def on_start(self) -> None:
        self._subscription = self.event_bus.subscribe(Topic.ARTIFACTS)
        self._listener = asyncio.create_task(
            self._listen(self._subscription),
            name=f"{self.name}:artifacts",
        )

    async def on_stop(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        if self._listener is not None:
            await self._listener
        self._subscription = None
        self._listener = None

    def handle(self, message: Any) -> PullRequest:
        if isinstance(message, _Register):
            return self._register(message.pr)
        if isinstance(message, _Update):
            return self._update(message.repo, message.number, message.changes)
        raise TypeError(f"Unexpected message: {type(message).__name__}")

    def _register(self, pr: PullRequest) -> PullRequest:
        existing = self._prs.get(pr.key)
        if existing is not None:
            return existing

        self._prs[pr.key] = pr
        if pr.intent_id:
            self._by_intent.setdefault(pr.intent_id, []).append(pr.key)

        logger.info(
            "Pull request registered",
            extra={"repo": pr.repo, "number": pr.number, "intent_id": pr.intent_id},
        )

        self.event_bus.publish(Topic.PRS, PRRegistered(pr=pr))
        return pr

    def _update(self, repo: str, number: int, changes: Dict[str, Any]) -> PullRequest:
        current = self._prs.get((repo, number))
        if current is None:
            raise PRNotFoundError(repo, number)

        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(unknown)}")

        # Validates and coerces the new values
        candidate = PullRequest.model_validate({**current.model_dump(), **changes})

        delta = [
            FieldChange(field=field, old=getattr(current, field), new=getattr(candidate, field))
            for field in changes
            if getattr(current, field) != getattr(candidate, field)
        ]
        if not delta:
            return current

        update = {change.field: change.new for change in delta}
        update["updated_at"] = datetime.now(timezone.utc)
        updated = current.model_copy(update=update)

        self._prs[updated.key] = updated
        if updated.intent_id != current.intent_id:
            self._reindex_intent(updated.key, current.intent_id, updated.intent_id)

        logger.info(
            "Pull request updated",
            extra={
                "repo": repo,
                "number": number,
                "fields": [change.field for change in delta],
            },
        )

        self.event_bus.publish(Topic.PRS, PRUpdated(pr=updated, changes=tuple(delta)))
        return updated

    def _reindex_intent(
        self,
        key: Tuple[str, int],
        old_intent_id: Optional[str],
        new_intent_id: Optional[str],
    ) -> None:
        if old_intent_id and key in self._by_intent.get(old_intent_id, ()):
            self._by_intent[old_intent_id].remove(key)
            if not self._by_intent[old_intent_id]:
                del self._by_intent[old_intent_id]
        if new_intent_id:
            self._by_intent.setdefault(new_intent_id, []).append(key)

    # -------------------------------------------------------------------------
    # Auto-registration
    # -------------------------------------------------------------------------
    async def _listen(self, subscription: Subscription) -> None:
        async for event in subscription:
            if not isinstance(event, ArtifactRegistered):
                continue
            try:
                pr = self.pr_from_link(event.link)
                if pr is not None:
                    self.cast(_Register(pr))
            except ActorNotRunningError:
                logger.warning(
                    "Tracker stopped before auto-registering pull request",
                    extra={"intent_id": event.link.intent_id, "ref": event.link.ref},
                )
            except Exception as e:
                logger.error(
                    "Failed to auto-register pull request: %s",
                    str(e),
                    extra={"intent_id": event.link.intent_id, "error": str(e)},
                )

    def pr_from_link(self, link: ArtifactLink) -> Optional[PullRequest]:
        """Build the pull request an artifact link points to.

        Returns:
            The pull request, or None if the link is not a numbered pull
            request or no repository can be determined.
        """
        if link.kind != ArtifactKind.PULL_REQUEST:
            return None

        number = _pr_number(link.ref)
        if number is None:
            logger.debug(
                "Skipping pull request link without a number",
                extra={"intent_id": link.intent_id, "ref": link.ref},
            )
            return None

        repo = self._repo_for(link)
        if repo is None:
            logger.warning(
                "Skipping pull request link with no repository",
                extra={"intent_id": link.intent_id, "ref": link.ref, "url": link.url},
            )
            return None

        return PullRequest(
            repo=repo,
            number=number,
            intent_id=link.intent_id,
            run_id=link.run_id,
            url=link.url,
            created_at=link.created_at,
            updated_at=link.created_at,
        )

    def _repo_for(self, link: ArtifactLink) -> Optional[str]:
        if link.url:
            match = PR_URL_PATTERN.search(link.url)
            if match:
                return match.group(1)
        return self.default_repo


def _pr_number(ref: Union[int, str]) -> Optional[int]:
    if isinstance(ref, bool):
        return None
    if isinstance(ref, int):
        return ref if ref > 0 else None
    if isinstance(ref, str) and ref.isascii() and ref.isdigit() and int(ref) > 0:
        return int(ref)
    return None
