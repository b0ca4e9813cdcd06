"""Error taxonomy for sync runs."""

from __future__ import annotations

from typing import Optional, Sequence


class SyncError(RuntimeError):
    """Base class for failures that abort a sync run."""

    exit_code = 1
    kind = "sync_error"

    def __init__(
        self,
        message: str,
        *,
        revision: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.revision = revision
        self.path = path


class ConfigError(SyncError):
    """Raised when a pattern file, manifest or config file is malformed."""

    exit_code = 2
    kind = "config_error"


class HistoryDivergence(SyncError):
    """Raised when the last synced revision is not an ancestor of upstream HEAD."""

    exit_code = 3
    kind = "history_divergence"


class BuildFailure(SyncError):
    """Raised when the generator invocation fails or times out."""

    exit_code = 4
    kind = "build_failure"

    def __init__(
        self,
        message: str,
        *,
        exit_code: Optional[int] = None,
        log: str = "",
        transient: bool = True,
        revision: Optional[str] = None,
    ) -> None:
        super().__init__(message, revision=revision)
        self.build_exit_code = exit_code
        self.log = log
        self.transient = transient


class MergeConflict(SyncError):
    """Raised when generated output targets a protected path."""

    exit_code = 5
    kind = "merge_conflict"

    def __init__(
        self,
        message: str,
        *,
        path: str,
        pattern: Optional[str] = None,
        revision: Optional[str] = None,
    ) -> None:
        super().__init__(message, revision=revision, path=path)
        self.pattern = pattern


class LockHeld(SyncError):
    """Raised when another run already holds the target repository lock."""

    exit_code = 6
    kind = "lock_held"


class GitOperationError(SyncError):
    """Raised when an underlying git command fails."""

    exit_code = 7
    kind = "git_error"

    def __init__(
        self,
        message: str,
        *,
        args: Sequence[str] = (),
        stderr: str = "",
        revision: Optional[str] = None,
    ) -> None:
        super().__init__(message, revision=revision)
        self.command = list(args)
        self.stderr = stderr


__all__ = [
    "BuildFailure",
    "ConfigError",
    "GitOperationError",
    "HistoryDivergence",
    "LockHeld",
    "MergeConflict",
    "SyncError",
]
