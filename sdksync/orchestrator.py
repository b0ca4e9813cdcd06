"""Drives one sync run from planning through the last mirror commit."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set

from .build.builder import ArtifactBuilder, BuildResult, CommandArtifactBuilder, build_with_retry
from .config import SyncConfig, load_config
from .errors import ConfigError, GitOperationError, LockHeld, SyncError
from .git.diff import ModelChangeDetector
from .git.history import RevisionWindowPlanner
from .git.publisher import CommitComposer
from .git.repository import GitRepository
from .handwritten import HandwrittenFileFilter, normalise_path
from .logging import get_logger, revision_logger
from .manifest import VersionManifest
from .merge.merger import MergePlan, TreeMerger
from .merge.tree import DirectoryTree
from .models import CommitRecord, LedgerEntry, PlannedRevision, RevisionWindow, UpstreamRevision
from .stores.ledger import SyncLedger
from .stores.lock import RunLock

BuilderFactory = Callable[[GitRepository, Path, SyncConfig], ArtifactBuilder]


class RunState(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    BUILDING = "building"
    MERGING = "merging"
    COMMITTING = "committing"
    FAILED = "failed"


VALID_TRANSITIONS: Dict[RunState, Set[RunState]] = {
    RunState.IDLE: {RunState.PLANNING},
    RunState.PLANNING: {RunState.BUILDING, RunState.IDLE, RunState.FAILED},
    RunState.BUILDING: {RunState.MERGING, RunState.FAILED},
    RunState.MERGING: {RunState.COMMITTING, RunState.FAILED},
    RunState.COMMITTING: {RunState.BUILDING, RunState.IDLE, RunState.FAILED},
    RunState.FAILED: set(),
}


class RunStateMachine:
    """Tracks the state of one run and rejects transitions the table does not allow."""

    def __init__(self) -> None:
        self.state = RunState.IDLE
        self.history: List[RunState] = [RunState.IDLE]

    def transition(self, target: RunState) -> None:
        if target not in VALID_TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid run transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def fail(self) -> None:
        if self.state is not RunState.FAILED:
            self.transition(RunState.FAILED)


@dataclass
class SyncOutcome:
    """Typed result of a sync invocation."""

    status: str
    state: RunState
    window: Optional[RevisionWindow] = None
    planned: List[PlannedRevision] = field(default_factory=list)
    ledger_entries: List[LedgerEntry] = field(default_factory=list)
    commits: List[CommitRecord] = field(default_factory=list)
    failed_revision: Optional[str] = None
    error: Optional[SyncError] = None

    @property
    def ok(self) -> bool:
        return self.status in {"synced", "up_to_date", "dry_run"}


@dataclass
class _RunContext:
    config: SyncConfig
    target: GitRepository
    upstream: GitRepository
    examples: GitRepository
    ledger: SyncLedger
    merger: TreeMerger
    composer: CommitComposer
    builder: ArtifactBuilder
    staging_root: Path
    outcome: SyncOutcome
    applied: Optional[MergePlan] = None


def _default_builder_factory(
    upstream: GitRepository, examples_path: Path, config: SyncConfig
) -> ArtifactBuilder:
    return CommandArtifactBuilder(
        upstream, examples_path, config.build, manifest_file=config.manifest_file
    )


class SyncOrchestrator:
    """Replays upstream generator history into the target repository."""

    def __init__(
        self,
        *,
        builder_factory: BuilderFactory | None = None,
        git_runner: Callable[..., str] | None = None,
        config: SyncConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._builder_factory = builder_factory or _default_builder_factory
        self._git_runner = git_runner
        self._config_override = config
        self._sleep = sleep
        self.logger = get_logger("orchestrator")

    def run_sync(
        self,
        smithy_rs_path: str | Path,
        examples_path: str | Path,
        target_path: str | Path,
        *,
        revision: str | None = None,
        examples_revision: str | None = None,
        max_revisions: int | None = None,
        dry_run: bool = False,
        push: bool | None = None,
    ) -> SyncOutcome:
        """Sync the target repository up to ``revision`` (upstream HEAD by default)."""
        target_root = Path(target_path).expanduser().resolve()
        target = GitRepository(target_root, self._git_runner)
        if not target.is_repository():
            raise ConfigError(f"{target_root} is not a git repository")

        lock = RunLock(target.git_dir() / "sdksync.lock")
        try:
            lock.acquire()
        except LockHeld as exc:
            self.logger.info("%s; exiting without changes", exc)
            return SyncOutcome(status="lock_held", state=RunState.IDLE, error=exc)

        try:
            return self._run_locked(
                Path(smithy_rs_path).expanduser().resolve(),
                Path(examples_path).expanduser().resolve(),
                target,
                revision=revision,
                examples_revision=examples_revision,
                max_revisions=max_revisions,
                dry_run=dry_run,
                push=push,
            )
        finally:
            lock.release()

    def read_ledger(self, target_path: str | Path) -> SyncLedger:
        target = GitRepository(Path(target_path).expanduser().resolve(), self._git_runner)
        if not target.is_repository():
            raise ConfigError(f"{target.path} is not a git repository")
        return SyncLedger.load(target, read_only=True)

    # ------------------------------------------------------------------
    # Run

    def _run_locked(
        self,
        smithy_rs_path: Path,
        examples_path: Path,
        target: GitRepository,
        *,
        revision: str | None,
        examples_revision: str | None,
        max_revisions: int | None,
        dry_run: bool,
        push: bool | None,
    ) -> SyncOutcome:
        machine = RunStateMachine()
        outcome = SyncOutcome(status="failed", state=machine.state)
        context: Optional[_RunContext] = None
        current: Optional[str] = None
        try:
            machine.transition(RunState.PLANNING)
            context = self._prepare(smithy_rs_path, examples_path, target, outcome)
            config = context.config
            if not target.is_clean():
                raise GitOperationError(
                    f"Target repository {target.path} has uncommitted changes; refusing to sync"
                )

            examples_head = context.examples.resolve(examples_revision or "HEAD")
            planner = RevisionWindowPlanner(context.upstream)
            window = planner.plan(
                context.ledger.last_synced,
                revision,
                max_revisions=max_revisions if max_revisions is not None else config.max_revisions,
            )
            outcome.window = window
            outcome.planned = ModelChangeDetector(config.model_paths).plan_builds(window)
            self._log_plan(window, outcome.planned)

            if dry_run:
                machine.transition(RunState.IDLE)
                outcome.status = "dry_run"
                outcome.state = machine.state
                return outcome

            if window.is_empty:
                current = window.head
                self._maybe_refresh_examples(context, machine, window.head, examples_head)
            else:
                pending_skipped: List[UpstreamRevision] = []
                for item in outcome.planned:
                    if not item.build:
                        self.logger.debug(
                            "Skipping non-model revision %s (%s)",
                            item.revision.short_id,
                            item.revision.subject,
                        )
                        pending_skipped.append(item.revision)
                        continue
                    current = item.revision.id
                    self._sync_revision(
                        context,
                        machine,
                        item.revision.id,
                        examples_head,
                        revision=item.revision,
                        folded=pending_skipped,
                    )
                    pending_skipped = []
            current = None

            should_push = config.commit.push if push is None else push
            if should_push and outcome.commits:
                context.composer.push(config.commit.remote, config.commit.branch)

            outcome.status = "synced" if outcome.commits or outcome.ledger_entries else "up_to_date"
            machine.transition(RunState.IDLE)
        except SyncError as exc:
            if exc.revision is None:
                exc.revision = current
            self._fail(machine, outcome, exc, context, target)
        except Exception:
            failed_in = machine.state
            machine.fail()
            outcome.state = machine.state
            if failed_in is not RunState.PLANNING:
                self._restore_target(target, context.applied if context else None)
            raise
        outcome.state = machine.state
        return outcome

    def _prepare(
        self,
        smithy_rs_path: Path,
        examples_path: Path,
        target: GitRepository,
        outcome: SyncOutcome,
    ) -> _RunContext:
        config = self._config_override or load_config(target.path)
        upstream = GitRepository(smithy_rs_path, self._git_runner)
        examples = GitRepository(examples_path, self._git_runner)
        for name, repository in (("smithy-rs", upstream), ("aws-doc-sdk-examples", examples)):
            if not repository.is_repository():
                raise ConfigError(f"{name} path {repository.path} is not a git repository")

        handwritten = HandwrittenFileFilter.load(target.path, pattern_file=config.handwritten_file)
        ledger = SyncLedger.load(target)
        return _RunContext(
            config=config,
            target=target,
            upstream=upstream,
            examples=examples,
            ledger=ledger,
            merger=TreeMerger(handwritten),
            composer=CommitComposer(target, bot=config.bot, template=config.commit.template),
            builder=self._builder_factory(upstream, examples_path, config),
            staging_root=target.git_dir() / "sdksync" / "staging",
            outcome=outcome,
        )

    def _maybe_refresh_examples(
        self,
        context: _RunContext,
        machine: RunStateMachine,
        head: str,
        examples_head: str,
    ) -> None:
        manifest = VersionManifest.load(context.target.path / context.config.manifest_file)
        if manifest is None or manifest.aws_doc_sdk_examples_revision == examples_head:
            self.logger.info("Target already reflects smithy-rs %s", head[:10])
            return
        self.logger.info(
            "aws-doc-sdk-examples moved from %s to %s; rebuilding smithy-rs %s",
            manifest.aws_doc_sdk_examples_revision[:10],
            examples_head[:10],
            head[:10],
        )
        self._sync_revision(
            context,
            machine,
            head,
            examples_head,
            subject=f"Update aws-doc-sdk-examples to {examples_head}",
        )

    def _sync_revision(
        self,
        context: _RunContext,
        machine: RunStateMachine,
        revision_id: str,
        examples_revision: str,
        *,
        revision: UpstreamRevision | None = None,
        folded: Sequence[UpstreamRevision] = (),
        subject: str | None = None,
    ) -> None:
        log = revision_logger(self.logger, revision_id)
        config = context.config

        machine.transition(RunState.BUILDING)
        log.info("Building generated output")
        result = build_with_retry(
            context.builder,
            revision_id,
            examples_revision,
            retries=config.build.retries,
            backoff_base=config.build.backoff_base,
            backoff_max=config.build.backoff_max,
            sleep=self._sleep,
        )
        try:
            machine.transition(RunState.MERGING)
            plan = self._plan_merge(context, result)
            log.info("Merge plan: %s", plan.describe())

            machine.transition(RunState.COMMITTING)
            parent_commit = context.target.head() or ""
            commit_id: Optional[str] = None
            if not plan.is_noop:
                context.applied = plan
                context.merger.apply(plan, context.target.path, context.staging_root)
                commit_id = context.composer.commit(
                    result.manifest,
                    changed_files=plan.changed_count,
                    revision=revision,
                    folded=folded,
                    subject=subject,
                )
                context.applied = None
        finally:
            result.discard()

        if commit_id is not None:
            context.outcome.commits.append(
                CommitRecord(
                    commit_id=commit_id,
                    smithy_rs_revision=result.manifest.smithy_rs_revision,
                    aws_doc_sdk_examples_revision=result.manifest.aws_doc_sdk_examples_revision,
                    changed_files=plan.changed_count,
                    folded=tuple(item.id for item in folded),
                )
            )
        else:
            log.info("Generated output unchanged; advancing ledger without a commit")

        if revision is None:
            return
        for skipped in folded:
            self._record(context, skipped.id, parent_commit, "skipped")
        if commit_id is not None:
            self._record(context, revision_id, commit_id, "mirror")
        else:
            self._record(context, revision_id, context.target.head() or "", "noop")

    def _plan_merge(self, context: _RunContext, result: BuildResult) -> MergePlan:
        config = context.config
        result.manifest.validate(
            smithy_rs_resolves=context.upstream.revision_exists,
            examples_resolves=context.examples.revision_exists,
        )
        engine_names = {
            normalise_path(config.manifest_file),
            normalise_path(config.generated_record_file),
        }
        generated = sorted(
            path
            for path in (normalise_path(entry) for entry in result.tree.paths())
            if path not in engine_names
        )
        record = ("\n".join(generated) + "\n") if generated else ""
        return context.merger.plan(
            result.tree,
            DirectoryTree(context.target.path),
            previous_record=self._read_record(context),
            engine_files={
                config.manifest_file: result.manifest.render().encode("utf-8"),
                config.generated_record_file: record.encode("utf-8"),
            },
        )

    def _read_record(self, context: _RunContext) -> List[str]:
        path = context.target.path / context.config.generated_record_file
        if not path.exists():
            return []
        return [line.strip() for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]

    def _record(self, context: _RunContext, upstream: str, local: str, kind: str) -> None:
        entry = context.ledger.append(upstream, local, kind=kind)
        context.outcome.ledger_entries.append(entry)

    # ------------------------------------------------------------------
    # Failure handling

    def _fail(
        self,
        machine: RunStateMachine,
        outcome: SyncOutcome,
        exc: SyncError,
        context: Optional[_RunContext],
        target: GitRepository,
    ) -> None:
        failed_in = machine.state
        machine.fail()
        outcome.status = "failed"
        outcome.error = exc
        outcome.failed_revision = exc.revision
        self.logger.error(
            "Sync failed while %s%s: %s",
            failed_in.value,
            f" revision {exc.revision}" if exc.revision else "",
            exc,
        )
        if exc.path:
            self.logger.error("Offending path: %s", exc.path)
        log_text = getattr(exc, "log", "")
        if log_text:
            self.logger.debug("Build log tail:\n%s", log_text)
        if failed_in is not RunState.PLANNING:
            self._restore_target(target, context.applied if context else None)

    def _restore_target(self, target: GitRepository, applied: Optional[MergePlan]) -> None:
        """Return the working tree to the last committed state."""
        try:
            target.reset_hard()
        except GitOperationError as exc:
            self.logger.error("Failed to reset target after failure: %s", exc)
            return
        if applied is None:
            return
        new_paths = list(applied.adds) + list(applied.engine_writes)
        for path in new_paths:
            candidate = target.path / path
            if candidate.is_file() and _is_untracked(target, path):
                candidate.unlink()

    def _log_plan(self, window: RevisionWindow, planned: Sequence[PlannedRevision]) -> None:
        if window.is_empty:
            self.logger.info("No new upstream revisions after %s", (window.base or "")[:10])
            return
        builds = sum(1 for item in planned if item.build)
        self.logger.info(
            "Planned %d upstream revisions (%d builds)%s%s",
            len(planned),
            builds,
            " [bulk import]" if window.bulk_import else "",
            " [truncated]" if window.truncated else "",
        )
        for item in planned:
            self.logger.debug(
                "  %s %s %s",
                item.revision.short_id,
                "build" if item.build else "skip ",
                item.revision.subject,
            )


def _is_untracked(target: GitRepository, path: str) -> bool:
    output = target.run(["git", "ls-files", "--", path])
    return not output.strip()


__all__ = ["RunState", "RunStateMachine", "SyncOrchestrator", "SyncOutcome", "VALID_TRANSITIONS"]
