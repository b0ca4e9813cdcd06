"""Helper utilities for constructing temporary git repositories in tests."""

from __future__ import annotations

import os
import shutil
import subprocess
import textwrap
from pathlib import Path
from typing import Iterable, Mapping

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


class RepoBuilder:
    """Utility for writing files into a throwaway git repository and committing them."""

    def __init__(self, tmp_path: Path, name: str = "repo") -> None:
        self.root = tmp_path / name
        self.root.mkdir()
        self.git("init", "--quiet")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")

    def write(self, files: Mapping[str, str]) -> None:
        """Write `path -> contents` entries into the repository."""
        for relative, content in files.items():
            path = self.root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            normalised = textwrap.dedent(content).lstrip("\n")
            path.write_text(normalised, encoding="utf-8")

    def remove(self, paths: Iterable[str]) -> None:
        for relative in paths:
            (self.root / relative).unlink()

    def commit(
        self,
        message: str,
        files: Mapping[str, str] | None = None,
        *,
        author: str = "Upstream Dev",
        email: str = "dev@example.com",
    ) -> str:
        """Write ``files``, commit everything, and return the new commit id."""
        if files:
            self.write(files)
        self.git("add", "--all")
        self.git("commit", "--quiet", "--allow-empty", "-m", message, env=_identity(author, email))
        return self.head()

    def merge(self, branch: str, message: str) -> str:
        """Merge ``branch`` into the current branch with a merge commit."""
        env = _identity("Upstream Dev", "dev@example.com")
        self.git("merge", "--quiet", "--no-ff", "-m", message, branch, env=env)
        return self.head()

    def head(self) -> str:
        return self.git("rev-parse", "HEAD").strip()

    def read(self, relative: str) -> str:
        return (self.root / relative).read_text(encoding="utf-8")

    def log_subjects(self) -> list[str]:
        output = self.git("log", "--format=%s", "--first-parent")
        return [line for line in output.splitlines() if line]

    def commit_count(self) -> int:
        if subprocess.run(
            ["git", "rev-parse", "--verify", "HEAD"],
            cwd=self.root,
            capture_output=True,
        ).returncode:
            return 0
        return int(self.git("rev-list", "--count", "HEAD").strip())

    def git(self, *args: str, env: dict[str, str] | None = None) -> str:
        completed = subprocess.run(
            ["git", *args],
            cwd=self.root,
            env=env,
            check=True,
            text=True,
            capture_output=True,
        )
        return completed.stdout

    def path(self) -> Path:
        """Return the repository root path."""
        return self.root


def _identity(author: str, email: str) -> dict[str, str]:
    env = os.environ.copy()
    env.update(
        {
            "GIT_AUTHOR_NAME": author,
            "GIT_AUTHOR_EMAIL": email,
            "GIT_COMMITTER_NAME": author,
            "GIT_COMMITTER_EMAIL": email,
        }
    )
    return env


__all__ = ["RepoBuilder", "requires_git"]
