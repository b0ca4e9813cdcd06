"""Computing and applying generated-output changes to the target tree."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from ..errors import ConfigError, MergeConflict
from ..handwritten import HandwrittenFileFilter, normalise_path
from ..logging import get_logger
from .tree import VirtualTree


@dataclass
class MergePlan:
    """Explicit add/modify/delete set between generated output and the target."""

    source: VirtualTree
    adds: List[str] = field(default_factory=list)
    modifies: List[str] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)
    generated: List[str] = field(default_factory=list)
    engine_writes: Dict[str, bytes] = field(default_factory=dict)
    skipped_deletes: List[str] = field(default_factory=list)

    @property
    def writes(self) -> List[str]:
        return sorted(self.adds + self.modifies)

    @property
    def changed_count(self) -> int:
        """Number of generated files added, modified or deleted."""
        return len(self.adds) + len(self.modifies) + len(self.deletes)

    @property
    def is_noop(self) -> bool:
        return self.changed_count == 0 and not self.engine_writes

    def describe(self) -> str:
        parts = [
            f"{len(self.adds)} added",
            f"{len(self.modifies)} modified",
            f"{len(self.deletes)} deleted",
        ]
        if self.engine_writes:
            parts.append(f"metadata: {', '.join(sorted(self.engine_writes))}")
        return ", ".join(parts)


class TreeMerger:
    """Diffs a generated tree against the target, never touching protected paths."""

    def __init__(self, handwritten: HandwrittenFileFilter) -> None:
        self.handwritten = handwritten
        self.logger = get_logger("merger")

    def plan(
        self,
        generated: VirtualTree,
        target: VirtualTree,
        *,
        previous_record: Sequence[str] = (),
        engine_files: Mapping[str, bytes] | None = None,
    ) -> MergePlan:
        plan = MergePlan(source=generated)
        engine_files = {
            _inside_target(path, "Metadata"): data for path, data in (engine_files or {}).items()
        }

        generated_paths: Set[str] = set()
        for path in generated.paths():
            normalized = _inside_target(path, "Generated output")
            if normalized in engine_files:
                continue
            pattern = self.handwritten.matching_pattern(normalized)
            if pattern is not None:
                raise MergeConflict(
                    f"Generated output writes protected path {normalized} (matched by `{pattern}`)",
                    path=normalized,
                    pattern=pattern,
                )
            generated_paths.add(normalized)
            current = target.read(normalized)
            if current is None:
                plan.adds.append(normalized)
            elif current != generated.read(normalized):
                plan.modifies.append(normalized)

        recorded = {_inside_target(entry, "Generated-files record") for entry in previous_record}
        for path in sorted(recorded):
            if path in generated_paths or path in engine_files:
                continue
            if self.handwritten.is_protected(path):
                plan.skipped_deletes.append(path)
                continue
            if target.read(path) is not None:
                plan.deletes.append(path)

        for path, data in engine_files.items():
            if self.handwritten.is_protected(path):
                raise ConfigError(f"{path} is managed by sdksync and cannot be listed as handwritten")
            if target.read(path) != data:
                plan.engine_writes[path] = data

        plan.adds.sort()
        plan.modifies.sort()
        plan.generated = sorted(generated_paths)
        if plan.skipped_deletes:
            self.logger.warning(
                "Leaving %d previously generated paths that are now protected: %s",
                len(plan.skipped_deletes),
                ", ".join(plan.skipped_deletes[:5]),
            )
        return plan

    def apply(self, plan: MergePlan, target_root: Path, staging_root: Path) -> None:
        """Stage every new file, then swap them into ``target_root``.

        Originals of affected paths are journaled under ``staging_root`` so a
        failure during the swap restores the previous tree before re-raising.
        """
        root = target_root.resolve()
        for path in [*plan.writes, *plan.engine_writes, *plan.deletes]:
            if not (root / path).resolve().is_relative_to(root):
                raise MergeConflict(f"Refusing to write {path} outside {target_root}", path=path)

        stage_dir = staging_root / "stage"
        backup_dir = staging_root / "backup"
        if staging_root.exists():
            shutil.rmtree(staging_root)
        stage_dir.mkdir(parents=True)
        backup_dir.mkdir(parents=True)

        writes: Dict[str, Path] = {}
        try:
            for path in plan.writes:
                data = plan.source.read(path)
                if data is None:
                    raise FileNotFoundError(f"Generated file {path} vanished before staging")
                writes[path] = _stage(stage_dir, path, data)
            for path, data in plan.engine_writes.items():
                writes[path] = _stage(stage_dir, path, data)
        except Exception:
            shutil.rmtree(staging_root, ignore_errors=True)
            raise

        journal: List[Tuple[str, bool]] = []
        try:
            for path in sorted(set(writes) | set(plan.deletes)):
                if self.handwritten.is_protected(path) and path not in plan.engine_writes:
                    raise MergeConflict(f"Refusing to touch protected path {path}", path=path)
                destination = target_root / path
                had_original = destination.is_file() or destination.is_symlink()
                if had_original:
                    backup = backup_dir / path
                    backup.parent.mkdir(parents=True, exist_ok=True)
                    os.replace(destination, backup)
                journal.append((path, had_original))
                staged = writes.get(path)
                if staged is not None:
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    os.replace(staged, destination)
        except Exception:
            self.logger.error("Merge failed mid-swap; restoring %d paths", len(journal))
            _rollback(journal, target_root, backup_dir)
            shutil.rmtree(staging_root, ignore_errors=True)
            raise

        _prune_empty_dirs(target_root, plan.deletes)
        shutil.rmtree(staging_root, ignore_errors=True)
        self.logger.debug("Applied merge: %s", plan.describe())


def _inside_target(path: str, origin: str) -> str:
    """Normalise ``path`` and reject anything that would resolve outside the target root."""
    normalized = normalise_path(path)
    segments = normalized.split("/")
    if path.replace("\\", "/").strip().startswith("/") or not normalized or ".." in segments:
        raise MergeConflict(f"{origin} path {path!r} escapes the target repository", path=path)
    return normalized


def _stage(stage_dir: Path, path: str, data: bytes) -> Path:
    staged = stage_dir / path
    staged.parent.mkdir(parents=True, exist_ok=True)
    staged.write_bytes(data)
    return staged


def _rollback(journal: Sequence[Tuple[str, bool]], target_root: Path, backup_dir: Path) -> None:
    for path, had_original in reversed(journal):
        destination = target_root / path
        if destination.is_file() or destination.is_symlink():
            destination.unlink()
        if had_original:
            destination.parent.mkdir(parents=True, exist_ok=True)
            os.replace(backup_dir / path, destination)


def _prune_empty_dirs(target_root: Path, deleted: Sequence[str]) -> None:
    root = target_root.resolve()
    for path in deleted:
        parent: Optional[Path] = (target_root / path).parent
        while parent is not None and parent.resolve() != root:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent


__all__ = ["MergePlan", "TreeMerger"]
