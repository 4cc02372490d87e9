"""Lattice governance core for autonomous agent intents.

This package provides:
- The intent lifecycle state machine with an auditable transition log
- Governance label mapping between intent states and GitHub issue labels
- The sentinel comment protocol for approval questions and human replies
- An artifact registry and a pull request tracker kept in sync over an
  in-process event bus
- A FastAPI application exposing health, metrics and the GitHub webhook
"""

__version__ = "0.1.0"
