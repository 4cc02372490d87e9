"""Pull requests tracked by Lattice.

The tracker actor lives in ``lattice.prs.tracker``.
"""

from lattice.prs.models import (
    UPDATABLE_FIELDS,
    CIStatus,
    PRState,
    PullRequest,
    ReviewState,
)

__all__ = [
    "UPDATABLE_FIELDS",
    "CIStatus",
    "PRState",
    "PullRequest",
    "ReviewState",
]
