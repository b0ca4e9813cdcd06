"""Mirror smithy-rs history into a generated SDK repository."""

from .errors import (
    BuildFailure,
    ConfigError,
    GitOperationError,
    HistoryDivergence,
    LockHeld,
    MergeConflict,
    SyncError,
)
from .orchestrator import SyncOrchestrator, SyncOutcome

__version__ = "0.1.0"

__all__ = [
    "BuildFailure",
    "ConfigError",
    "GitOperationError",
    "HistoryDivergence",
    "LockHeld",
    "MergeConflict",
    "SyncError",
    "SyncOrchestrator",
    "SyncOutcome",
]
