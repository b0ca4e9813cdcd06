"""Thin wrapper over the git command line."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors import GitOperationError
from ..logging import get_logger
from ..models import UpstreamRevision

_EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


class GitRepository:
    """Runs git commands against one repository through an injectable runner."""

    def __init__(self, path: Path | str, runner: Callable[..., str] | None = None) -> None:
        self.path = Path(path)
        self._runner = runner or self._default_runner
        self.logger = get_logger("git")

    def is_repository(self) -> bool:
        return (self.path / ".git").exists()

    # ------------------------------------------------------------------
    # Revisions

    def resolve(self, ref: str) -> str:
        """Return the full commit id for ``ref``."""
        output = self.run(["git", "rev-parse", "--verify", f"{ref}^{{commit}}"])
        return output.strip()

    def revision_exists(self, revision: str) -> bool:
        try:
            self.run(["git", "cat-file", "-e", f"{revision}^{{commit}}"])
        except GitOperationError:
            return False
        return True

    def head(self) -> Optional[str]:
        """Return HEAD's commit id, or ``None`` for a repository without commits."""
        if not self.revision_exists("HEAD"):
            return None
        return self.resolve("HEAD")

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        args = ["git", "merge-base", "--is-ancestor", ancestor, descendant]
        try:
            self._runner(args, cwd=self.path, env=None, capture_output=True)
        except subprocess.CalledProcessError as exc:
            if exc.returncode == 1:
                return False
            raise _wrap(exc, args) from exc
        return True

    def first_parent_range(self, base: str, head: str) -> List[str]:
        """Return first-parent commits in ``base..head``, oldest first."""
        output = self.run(
            ["git", "rev-list", "--first-parent", "--reverse", f"{base}..{head}"]
        )
        return [line.strip() for line in output.splitlines() if line.strip()]

    def read_revision(self, revision: str) -> UpstreamRevision:
        output = self.run(
            ["git", "show", "-s", "--format=%H%x00%P%x00%an%x00%ae%x00%aI%x00%B", revision]
        )
        fields = output.split("\x00", 5)
        if len(fields) != 6:
            raise GitOperationError(
                f"Unexpected `git show` output for {revision}", revision=revision
            )
        commit_id, parents_raw, author_name, author_email, authored_at, message = fields
        parents = tuple(parents_raw.split())
        base = parents[0] if parents else _EMPTY_TREE
        changed = self.run(["git", "diff-tree", "-r", "--name-only", "--no-commit-id", base, commit_id.strip()])
        return UpstreamRevision(
            id=commit_id.strip(),
            parents=parents,
            changed_paths=tuple(line for line in changed.splitlines() if line.strip()),
            author_name=author_name,
            author_email=author_email,
            authored_at=authored_at,
            message=message.strip(),
        )

    def commit_messages(self) -> List[Tuple[str, str, str]]:
        """Return ``(commit id, committer date, message)`` on HEAD's first-parent chain, oldest first."""
        if self.head() is None:
            return []
        output = self.run(
            ["git", "log", "--first-parent", "--reverse", "--format=%H%x1f%cI%x1f%B%x1e", "HEAD"]
        )
        records: List[Tuple[str, str, str]] = []
        for record in output.split("\x1e"):
            if not record.strip():
                continue
            commit_id, committed_at, message = record.strip("\n").split("\x1f", 2)
            records.append((commit_id.strip(), committed_at.strip(), message.strip()))
        return records

    # ------------------------------------------------------------------
    # Working tree

    def git_dir(self) -> Path:
        output = self.run(["git", "rev-parse", "--absolute-git-dir"])
        return Path(output.strip())

    def status(self) -> List[str]:
        output = self.run(["git", "status", "--porcelain", "--untracked-files=all"])
        return [line for line in output.splitlines() if line.strip()]

    def is_clean(self) -> bool:
        return not self.status()

    def stage_all(self) -> None:
        self.run(["git", "add", "--all", "--", "."])

    def has_staged_changes(self) -> bool:
        args = ["git", "diff", "--cached", "--quiet"]
        try:
            self._runner(args, cwd=self.path, env=None, capture_output=True)
        except subprocess.CalledProcessError as exc:
            if exc.returncode == 1:
                return True
            raise _wrap(exc, args) from exc
        return False

    def commit(self, message: str, *, env: Dict[str, str] | None = None) -> str:
        self.run(["git", "commit", "--quiet", "-m", message], env=env)
        return self.resolve("HEAD")

    def reset_hard(self, ref: str = "HEAD") -> None:
        if self.head() is None:
            return
        self.run(["git", "reset", "--hard", "--quiet", ref])

    def push(self, remote: str, branch: Optional[str] = None) -> None:
        refspec = f"HEAD:{branch}" if branch else "HEAD"
        self.run(["git", "push", remote, refspec])

    def add_worktree(self, destination: Path, revision: str) -> None:
        self.run(["git", "worktree", "add", "--detach", "--force", str(destination), revision])

    def remove_worktree(self, destination: Path) -> None:
        self.run(["git", "worktree", "remove", "--force", str(destination)])

    # ------------------------------------------------------------------
    # Helpers

    def run(
        self,
        args: Sequence[str],
        *,
        env: Dict[str, str] | None = None,
        capture_output: bool = True,
    ) -> str:
        self.logger.debug("%s $ %s", self.path, " ".join(args))
        try:
            return self._runner(list(args), cwd=self.path, env=env, capture_output=capture_output)
        except subprocess.CalledProcessError as exc:
            raise _wrap(exc, args) from exc
        except OSError as exc:
            raise GitOperationError(f"Failed to run {' '.join(args)}: {exc}", args=args) from exc

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
        capture_output: bool = False,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            env=env,
            check=True,
            text=True,
            capture_output=capture_output,
        )
        if capture_output:
            return completed.stdout
        return ""


def commit_env(
    *,
    author_name: str,
    author_email: str,
    committer_name: str,
    committer_email: str,
    author_date: str | None = None,
) -> Dict[str, str]:
    """Return an environment carrying explicit author and committer identities."""
    env = os.environ.copy()
    env["GIT_AUTHOR_NAME"] = author_name
    env["GIT_AUTHOR_EMAIL"] = author_email
    env["GIT_COMMITTER_NAME"] = committer_name
    env["GIT_COMMITTER_EMAIL"] = committer_email
    if author_date:
        env["GIT_AUTHOR_DATE"] = author_date
    return env


def _wrap(exc: subprocess.CalledProcessError, args: Sequence[str]) -> GitOperationError:
    stderr = exc.stderr if isinstance(exc.stderr, str) else ""
    detail = stderr.strip() or f"exit status {exc.returncode}"
    return GitOperationError(
        f"`{' '.join(args)}` failed: {detail}", args=args, stderr=stderr
    )


__all__ = ["GitRepository", "commit_env"]
