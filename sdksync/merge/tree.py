"""Virtual file trees the merger diffs against."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping, Optional, Protocol

from ..handwritten import normalise_path


class VirtualTree(Protocol):
    """Read-only view of a file tree keyed by relative forward-slash paths."""

    def paths(self) -> Iterable[str]:
        ...

    def read(self, path: str) -> Optional[bytes]:
        ...


class MemoryTree:
    """A tree held entirely in memory."""

    def __init__(self, files: Mapping[str, bytes | str] | None = None) -> None:
        self._files: Dict[str, bytes] = {}
        for path, content in (files or {}).items():
            self.write(path, content)

    def paths(self) -> Iterable[str]:
        return sorted(self._files)

    def read(self, path: str) -> Optional[bytes]:
        return self._files.get(normalise_path(path))

    def write(self, path: str, content: bytes | str) -> None:
        data = content.encode("utf-8") if isinstance(content, str) else content
        self._files[normalise_path(path)] = data

    def delete(self, path: str) -> None:
        self._files.pop(normalise_path(path), None)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and normalise_path(path) in self._files

    def __len__(self) -> int:
        return len(self._files)


class DirectoryTree:
    """A tree backed by a directory on disk; file contents are read lazily."""

    def __init__(self, root: Path, *, exclude: Iterable[str] = (".git",)) -> None:
        self.root = Path(root)
        self._exclude = {normalise_path(entry) for entry in exclude}

    def paths(self) -> Iterable[str]:
        return sorted(self._walk())

    def read(self, path: str) -> Optional[bytes]:
        target = self.root / normalise_path(path)
        if not target.is_file():
            return None
        return target.read_bytes()

    def _walk(self) -> Iterator[str]:
        for current, dirnames, filenames in os.walk(self.root):
            rel_dir = Path(current).relative_to(self.root).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"
            dirnames[:] = sorted(
                name for name in dirnames if f"{prefix}{name}" not in self._exclude
            )
            for filename in filenames:
                rel = f"{prefix}{filename}"
                if rel not in self._exclude:
                    yield rel


__all__ = ["DirectoryTree", "MemoryTree", "VirtualTree"]
