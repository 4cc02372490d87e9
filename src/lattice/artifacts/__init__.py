"""Artifact links between intents and GitHub entities.

The registry actor lives in ``lattice.artifacts.registry``.
"""

from lattice.artifacts.models import ArtifactKind, ArtifactLink, ArtifactRole

__all__ = [
    "ArtifactKind",
    "ArtifactLink",
    "ArtifactRole",
]
