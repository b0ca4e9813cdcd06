"""A stand-in generator that reads its output straight out of the upstream repository."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List, Set, Tuple

from sdksync.build.builder import BuildResult
from sdksync.errors import BuildFailure
from sdksync.manifest import VersionManifest
from sdksync.merge.tree import MemoryTree

OUTPUT_PREFIX = "codegen/out/"


class TreeCopyGenerator:
    """Emits every upstream file under ``codegen/out/`` with that prefix removed.

    Stands in for the real gradle build: deterministic for a revision pair and
    cheap enough to run on every test.
    """

    def __init__(self, upstream_root: Path) -> None:
        self.upstream_root = Path(upstream_root)
        self.calls: List[Tuple[str, str]] = []
        self.fail_revisions: Set[str] = set()

    def build(self, generator_revision: str, examples_revision: str) -> BuildResult:
        self.calls.append((generator_revision, examples_revision))
        if generator_revision in self.fail_revisions:
            raise BuildFailure(
                "Build exited with status 1",
                exit_code=1,
                log="compilation failed",
                transient=False,
                revision=generator_revision,
            )
        files: Dict[str, bytes] = {}
        listing = self._git("ls-tree", "-r", "--name-only", generator_revision).decode("utf-8")
        for path in listing.splitlines():
            if path.startswith(OUTPUT_PREFIX):
                files[path[len(OUTPUT_PREFIX):]] = self._git("show", f"{generator_revision}:{path}")
        return BuildResult(
            tree=MemoryTree(files),
            manifest=VersionManifest(generator_revision, examples_revision),
        )

    def factory(self, upstream, examples_path, config):  # type: ignore[no-untyped-def]
        return self

    def _git(self, *args: str) -> bytes:
        return subprocess.run(
            ["git", *args], cwd=self.upstream_root, check=True, capture_output=True
        ).stdout


__all__ = ["OUTPUT_PREFIX", "TreeCopyGenerator"]
