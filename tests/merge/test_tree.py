"""Tests for the virtual tree views."""

from __future__ import annotations

from pathlib import Path

from sdksync.merge.tree import DirectoryTree, MemoryTree


def test_memory_tree_normalises_paths_and_encodes_text() -> None:
    tree = MemoryTree({"./sdk/s3/lib.rs": "fn main() {}"})
    tree.write("sdk/raw.bin", b"\x00\x01")

    assert list(tree.paths()) == ["sdk/raw.bin", "sdk/s3/lib.rs"]
    assert tree.read("sdk/s3/lib.rs") == b"fn main() {}"
    assert "sdk/raw.bin" in tree
    tree.delete("sdk/raw.bin")
    assert len(tree) == 1


def test_directory_tree_skips_excluded_entries(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text("ref", encoding="utf-8")
    (tmp_path / "sdk" / "s3").mkdir(parents=True)
    (tmp_path / "sdk" / "s3" / "lib.rs").write_text("code", encoding="utf-8")
    (tmp_path / "versions.toml").write_text("pins", encoding="utf-8")

    tree = DirectoryTree(tmp_path, exclude=(".git", "versions.toml"))

    assert list(tree.paths()) == ["sdk/s3/lib.rs"]
    assert tree.read("sdk/s3/lib.rs") == b"code"
    assert tree.read("missing.rs") is None
