"""Process helpers for lock tests."""

from __future__ import annotations

import subprocess
import sys


def finished_pid() -> int:
    """Return the pid of a child process that has already exited and been reaped."""
    child = subprocess.Popen([sys.executable, "-c", "pass"])
    child.wait()
    return child.pid


__all__ = ["finished_pid"]
