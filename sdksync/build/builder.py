"""Invoking the code generator for one (generator, examples) revision pair."""

from __future__ import annotations

import shutil
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Sequence

from ..config import BuildConfig
from ..errors import BuildFailure, ConfigError, GitOperationError
from ..git.repository import GitRepository
from ..logging import get_logger
from ..manifest import MANIFEST_FILENAME, VersionManifest
from ..merge.tree import DirectoryTree, VirtualTree

_LOG_TAIL_CHARS = 4000


@dataclass
class BuildResult:
    """Generated output for one iteration; ``discard`` releases its storage."""

    tree: VirtualTree
    manifest: VersionManifest
    log: str = ""
    _cleanup: Optional[Callable[[], None]] = field(default=None, repr=False)

    def discard(self) -> None:
        if self._cleanup is not None:
            cleanup, self._cleanup = self._cleanup, None
            cleanup()


class ArtifactBuilder(Protocol):
    """Produces a generated tree and version manifest for a revision pair.

    Implementations must be idempotent: identical inputs give byte-identical
    output apart from the revisions pinned in the manifest.
    """

    def build(self, generator_revision: str, examples_revision: str) -> BuildResult:
        ...


class CommandArtifactBuilder:
    """Runs the configured generator command in a disposable worktree."""

    def __init__(
        self,
        generator: GitRepository,
        examples_path: Path,
        config: BuildConfig | None = None,
        *,
        manifest_file: str = MANIFEST_FILENAME,
        runner: Callable[..., subprocess.CompletedProcess] | None = None,
        scratch_dir: Path | None = None,
    ) -> None:
        self.generator = generator
        self.examples_path = Path(examples_path)
        self.config = config or BuildConfig()
        self.manifest_file = manifest_file
        self.scratch_dir = scratch_dir
        self._runner = runner or self._default_runner
        self.logger = get_logger("builder")

    def build(self, generator_revision: str, examples_revision: str) -> BuildResult:
        workdir = Path(tempfile.mkdtemp(prefix="sdksync-build-", dir=self.scratch_dir))
        worktree = workdir / "smithy-rs"
        try:
            self.generator.add_worktree(worktree, generator_revision)
        except GitOperationError:
            shutil.rmtree(workdir, ignore_errors=True)
            raise

        def cleanup() -> None:
            self._cleanup(workdir, worktree)

        try:
            log = self._invoke(worktree, generator_revision, examples_revision)
            output_dir = worktree / self.config.output_dir
            if not output_dir.is_dir():
                raise BuildFailure(
                    f"Generator did not produce {self.config.output_dir}",
                    log=log,
                    transient=False,
                    revision=generator_revision,
                )
            manifest = self._read_manifest(output_dir, log, generator_revision, examples_revision)
        except BaseException:
            cleanup()
            raise

        tree = DirectoryTree(output_dir, exclude=(self.manifest_file, ".git"))
        return BuildResult(tree=tree, manifest=manifest, log=log, _cleanup=cleanup)

    # ------------------------------------------------------------------
    # Internals

    def _invoke(self, worktree: Path, generator_revision: str, examples_revision: str) -> str:
        placeholders: Dict[str, str] = {
            "{generator_revision}": generator_revision,
            "{examples_revision}": examples_revision,
            "{examples_path}": str(self.examples_path),
            "{output_dir}": str(worktree / self.config.output_dir),
        }
        args = [_expand(part, placeholders) for part in self.config.command]
        self.logger.info(
            "Building %s with examples %s", generator_revision[:10], examples_revision[:10]
        )
        self.logger.debug("Build command: %s", " ".join(args))
        try:
            completed = self._runner(args, cwd=worktree, timeout=self.config.timeout)
        except subprocess.TimeoutExpired as exc:
            raise BuildFailure(
                f"Build timed out after {self.config.timeout:g}s",
                log=_tail(_text(exc.stdout) + _text(exc.stderr)),
                revision=generator_revision,
            ) from exc
        except OSError as exc:
            raise BuildFailure(
                f"Failed to start build command: {exc}",
                transient=False,
                revision=generator_revision,
            ) from exc

        log = _tail(_text(completed.stdout) + _text(completed.stderr))
        if completed.returncode != 0:
            raise BuildFailure(
                f"Build exited with status {completed.returncode}",
                exit_code=completed.returncode,
                log=log,
                revision=generator_revision,
            )
        return log

    def _read_manifest(
        self, output_dir: Path, log: str, generator_revision: str, examples_revision: str
    ) -> VersionManifest:
        manifest_path = output_dir / self.manifest_file
        if not manifest_path.is_file():
            raise BuildFailure(
                f"Generator output is missing {self.manifest_file}",
                log=log,
                transient=False,
                revision=generator_revision,
            )
        try:
            manifest = VersionManifest.parse(
                manifest_path.read_text(encoding="utf-8"), source=self.manifest_file
            )
        except (ConfigError, UnicodeDecodeError) as exc:
            raise BuildFailure(
                f"Generator produced a malformed {self.manifest_file}: {exc}",
                log=log,
                transient=False,
                revision=generator_revision,
            ) from exc
        if (
            manifest.smithy_rs_revision != generator_revision
            or manifest.aws_doc_sdk_examples_revision != examples_revision
        ):
            raise BuildFailure(
                f"{self.manifest_file} pins {manifest.smithy_rs_revision}/"
                f"{manifest.aws_doc_sdk_examples_revision}, expected "
                f"{generator_revision}/{examples_revision}",
                log=log,
                transient=False,
                revision=generator_revision,
            )
        return manifest

    def _cleanup(self, workdir: Path, worktree: Path) -> None:
        try:
            self.generator.remove_worktree(worktree)
        except GitOperationError as exc:
            self.logger.warning("Failed to remove build worktree %s: %s", worktree, exc)
        shutil.rmtree(workdir, ignore_errors=True)

    @staticmethod
    def _default_runner(
        args: Sequence[str], *, cwd: Path, timeout: float | None = None
    ) -> subprocess.CompletedProcess:
        return subprocess.run(
            list(args),
            cwd=str(cwd),
            check=False,
            text=True,
            capture_output=True,
            timeout=timeout,
        )


def build_with_retry(
    builder: ArtifactBuilder,
    generator_revision: str,
    examples_revision: str,
    *,
    retries: int = 2,
    backoff_base: float = 5.0,
    backoff_max: float = 60.0,
    sleep: Callable[[float], None] = time.sleep,
) -> BuildResult:
    """Run ``builder`` and retry transient failures with exponential backoff."""
    logger = get_logger("builder")
    attempt = 0
    while True:
        try:
            return builder.build(generator_revision, examples_revision)
        except BuildFailure as exc:
            if exc.revision is None:
                exc.revision = generator_revision
            if not exc.transient or attempt >= retries:
                if attempt:
                    logger.error(
                        "Build of %s failed after %d attempts", generator_revision[:10], attempt + 1
                    )
                raise
            delay = min(backoff_base * (2**attempt), backoff_max)
            logger.warning(
                "Build of %s failed (%s); retrying in %.1fs (attempt %d of %d)",
                generator_revision[:10],
                exc,
                delay,
                attempt + 2,
                retries + 1,
            )
            sleep(delay)
            attempt += 1


def _expand(part: str, placeholders: Dict[str, str]) -> str:
    for key, value in placeholders.items():
        part = part.replace(key, value)
    return part


def _text(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value if isinstance(value, str) else ""


def _tail(log: str) -> str:
    return log[-_LOG_TAIL_CHARS:]


__all__ = ["ArtifactBuilder", "BuildResult", "CommandArtifactBuilder", "build_with_retry"]
