"""Exclusive per-target run lock."""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import Optional, Type

from ..errors import LockHeld
from ..logging import get_logger


class RunLock:
    """Lock file created with ``O_EXCL``; acquisition never blocks.

    A lock file left behind by a process that no longer exists is reclaimed.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._held = False
        self.logger = get_logger("lock")

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = self._create()
        except FileExistsError as exc:
            if not self._holder_is_dead():
                raise LockHeld(
                    f"Another sync run holds {self.path} ({self.describe_holder()})"
                ) from exc
            self.logger.warning(
                "Reclaiming stale run lock %s (%s is no longer running)",
                self.path,
                self.describe_holder(),
            )
            self.path.unlink(missing_ok=True)
            try:
                fd = self._create()
            except FileExistsError as retry_exc:
                raise LockHeld(
                    f"Another sync run holds {self.path} ({self.describe_holder()})"
                ) from retry_exc
        try:
            payload = {"pid": os.getpid(), "acquired_at": datetime.now(UTC).isoformat()}
            os.write(fd, json.dumps(payload).encode("utf-8"))
        finally:
            os.close(fd)
        self._held = True
        self.logger.debug("Acquired run lock %s", self.path)

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            self.logger.warning("Run lock %s disappeared before release", self.path)
        self._held = False
        self.logger.debug("Released run lock %s", self.path)

    def describe_holder(self) -> str:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return "holder unknown"
        if not isinstance(payload, dict):
            return "holder unknown"
        return f"pid {payload.get('pid', '?')} since {payload.get('acquired_at', '?')}"

    def _create(self) -> int:
        return os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)

    def _holder_pid(self) -> Optional[int]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(payload, dict):
            return None
        pid = payload.get("pid")
        if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
            return None
        return pid

    def _holder_is_dead(self) -> bool:
        """True only when the recorded pid names no running process."""
        pid = self._holder_pid()
        if pid is None:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        except PermissionError:
            # Alive, owned by another user.
            return False
        return False

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.release()


__all__ = ["RunLock"]
