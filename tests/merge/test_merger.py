"""Tests for merge planning and staged application."""

from __future__ import annotations

from pathlib import Path

import pytest

from sdksync.errors import ConfigError, MergeConflict
from sdksync.handwritten import HandwrittenFileFilter
from sdksync.merge.merger import MergePlan, TreeMerger
from sdksync.merge.tree import DirectoryTree, MemoryTree


def _seed(root: Path, files: dict[str, str]) -> None:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def _merger(*patterns: str) -> TreeMerger:
    return TreeMerger(HandwrittenFileFilter(list(patterns)))


def test_plan_classifies_adds_modifies_and_record_deletes(tmp_path: Path) -> None:
    target = tmp_path / "target"
    _seed(
        target,
        {
            "sdk/s3/lib.rs": "old",
            "sdk/ec2/lib.rs": "same",
            "sdk/gone/lib.rs": "stale",
            "notes.txt": "not generated",
        },
    )
    generated = MemoryTree(
        {"sdk/s3/lib.rs": "new", "sdk/ec2/lib.rs": "same", "sdk/sqs/lib.rs": "added"}
    )

    plan = _merger().plan(
        generated,
        DirectoryTree(target),
        previous_record=["sdk/s3/lib.rs", "sdk/ec2/lib.rs", "sdk/gone/lib.rs"],
    )

    assert plan.adds == ["sdk/sqs/lib.rs"]
    assert plan.modifies == ["sdk/s3/lib.rs"]
    assert plan.deletes == ["sdk/gone/lib.rs"]
    assert plan.changed_count == 3
    assert "notes.txt" not in plan.deletes


def test_plan_raises_when_generator_writes_protected_path(tmp_path: Path) -> None:
    target = tmp_path / "target"
    _seed(target, {"README.md": "handwritten"})

    with pytest.raises(MergeConflict) as excinfo:
        _merger("README.md").plan(MemoryTree({"README.md": "generated"}), DirectoryTree(target))
    assert excinfo.value.path == "README.md"
    assert excinfo.value.pattern == "README.md"


@pytest.mark.parametrize("path", ["../escape.rs", "sdk/../../escape.rs", "sdk/s3/../../../escape.rs"])
def test_plan_rejects_generated_paths_outside_target(tmp_path: Path, path: str) -> None:
    target = tmp_path / "target"
    _seed(target, {"README.md": "mine"})

    with pytest.raises(MergeConflict, match="escapes the target repository") as excinfo:
        _merger().plan(MemoryTree({path: "payload", "sdk/s3/lib.rs": "ok"}), DirectoryTree(target))

    assert excinfo.value.path == path
    assert not (tmp_path / "escape.rs").exists()


@pytest.mark.parametrize("entry", ["../outside.txt", "/etc/hosts", ""])
def test_plan_rejects_record_entries_outside_target(tmp_path: Path, entry: str) -> None:
    target = tmp_path / "target"
    _seed(target, {"sdk/s3/lib.rs": "old"})

    with pytest.raises(MergeConflict, match="Generated-files record"):
        _merger().plan(
            MemoryTree({"sdk/s3/lib.rs": "new"}), DirectoryTree(target), previous_record=[entry]
        )


def test_apply_refuses_plan_that_leaves_target(tmp_path: Path) -> None:
    target = tmp_path / "target"
    _seed(target, {"a.txt": "original"})
    plan = MergePlan(source=MemoryTree({"../escape.rs": "payload"}), adds=["../escape.rs"])

    with pytest.raises(MergeConflict, match="outside"):
        _merger().apply(plan, target, tmp_path / "staging")

    assert not (tmp_path / "escape.rs").exists()
    assert (target / "a.txt").read_text(encoding="utf-8") == "original"


def test_plan_never_deletes_protected_paths(tmp_path: Path) -> None:
    target = tmp_path / "target"
    _seed(target, {"examples/main.rs": "kept"})

    plan = _merger("examples/").plan(
        MemoryTree(), DirectoryTree(target), previous_record=["examples/main.rs"]
    )

    assert plan.deletes == []
    assert plan.skipped_deletes == ["examples/main.rs"]


def test_engine_files_are_written_only_when_changed(tmp_path: Path) -> None:
    target = tmp_path / "target"
    _seed(target, {"versions.toml": "pinned\n"})

    unchanged = _merger().plan(
        MemoryTree(), DirectoryTree(target), engine_files={"versions.toml": b"pinned\n"}
    )
    changed = _merger().plan(
        MemoryTree(), DirectoryTree(target), engine_files={"versions.toml": b"bumped\n"}
    )

    assert unchanged.is_noop
    assert not changed.is_noop
    assert changed.changed_count == 0
    assert changed.engine_writes == {"versions.toml": b"bumped\n"}


def test_engine_file_listed_as_handwritten_is_config_error(tmp_path: Path) -> None:
    target = tmp_path / "target"
    target.mkdir()

    with pytest.raises(ConfigError):
        _merger("versions.toml").plan(
            MemoryTree(), DirectoryTree(target), engine_files={"versions.toml": b"x"}
        )


def test_apply_swaps_files_and_prunes_empty_directories(tmp_path: Path) -> None:
    target = tmp_path / "target"
    _seed(target, {"sdk/s3/lib.rs": "old", "sdk/gone/lib.rs": "stale", "README.md": "mine"})
    merger = _merger("README.md")
    plan = merger.plan(
        MemoryTree({"sdk/s3/lib.rs": "new", "sdk/sqs/lib.rs": "added"}),
        DirectoryTree(target),
        previous_record=["sdk/s3/lib.rs", "sdk/gone/lib.rs"],
        engine_files={".generated-files": b"sdk/s3/lib.rs\nsdk/sqs/lib.rs\n"},
    )

    merger.apply(plan, target, tmp_path / "staging")

    assert (target / "sdk/s3/lib.rs").read_text(encoding="utf-8") == "new"
    assert (target / "sdk/sqs/lib.rs").read_text(encoding="utf-8") == "added"
    assert not (target / "sdk/gone").exists()
    assert (target / "README.md").read_text(encoding="utf-8") == "mine"
    assert (target / ".generated-files").read_bytes() == b"sdk/s3/lib.rs\nsdk/sqs/lib.rs\n"
    assert not (tmp_path / "staging").exists()


def test_apply_rolls_back_when_swap_fails(tmp_path: Path) -> None:
    target = tmp_path / "target"
    # A plain file named "sdk" makes creating sdk/new.rs fail mid-swap.
    _seed(target, {"a.txt": "original", "sdk": "not a directory"})
    merger = _merger()
    plan = merger.plan(
        MemoryTree({"a.txt": "replaced", "sdk/new.rs": "added"}), DirectoryTree(target)
    )

    with pytest.raises(OSError):
        merger.apply(plan, target, tmp_path / "staging")

    assert (target / "a.txt").read_text(encoding="utf-8") == "original"
    assert (target / "sdk").read_text(encoding="utf-8") == "not a directory"
    assert not (tmp_path / "staging").exists()
