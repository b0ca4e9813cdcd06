"""Git-facing components: history planning, classification and commits."""

from .diff import ModelChangeDetector
from .history import RevisionWindowPlanner
from .publisher import CommitComposer, parse_trailers
from .repository import GitRepository

__all__ = [
    "CommitComposer",
    "GitRepository",
    "ModelChangeDetector",
    "RevisionWindowPlanner",
    "parse_trailers",
]
