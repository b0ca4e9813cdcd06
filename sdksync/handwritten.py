"""Protection rules for hand-authored files in the target repository."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .errors import ConfigError

HANDWRITTEN_FILENAME = ".handwritten"

_VCS_METADATA = (".git",)


def normalise_path(path: str) -> str:
    """Return ``path`` as a clean, relative, forward-slash path."""
    normalized = path.replace("\\", "/").strip()
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


@dataclass(frozen=True)
class ProtectionRule:
    """An exact path or, when ``directory`` is set, a directory prefix."""

    pattern: str
    directory: bool

    def matches(self, path: str) -> bool:
        if self.directory:
            return path == self.pattern or path.startswith(f"{self.pattern}/")
        return path == self.pattern


class HandwrittenFileFilter:
    """Decides which target paths the merger must never write or delete.

    Patterns are evaluated in file order without globbing: ``docs/`` protects
    everything beneath ``docs``, while ``README.md`` protects that exact path
    and, if it names a directory in the target, everything beneath it.
    """

    def __init__(
        self,
        patterns: Sequence[str] = (),
        *,
        pattern_file: str = HANDWRITTEN_FILENAME,
    ) -> None:
        self.pattern_file = normalise_path(pattern_file)
        self.rules: List[ProtectionRule] = [_build_rule(raw) for raw in patterns]

    @classmethod
    def parse(
        cls, text: str, *, pattern_file: str = HANDWRITTEN_FILENAME
    ) -> "HandwrittenFileFilter":
        return cls(_pattern_lines(text), pattern_file=pattern_file)

    @classmethod
    def load(
        cls, repo_root: Path, *, pattern_file: str = HANDWRITTEN_FILENAME
    ) -> "HandwrittenFileFilter":
        path = repo_root / pattern_file
        if not path.exists():
            return cls((), pattern_file=pattern_file)
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ConfigError(f"{pattern_file} is not valid UTF-8") from exc
        return cls.parse(text, pattern_file=pattern_file)

    @property
    def patterns(self) -> List[str]:
        return [
            f"{rule.pattern}/" if rule.directory else rule.pattern for rule in self.rules
        ]

    def is_protected(self, path: str) -> bool:
        normalized = normalise_path(path)
        if _is_vcs_metadata(normalized) or normalized == self.pattern_file:
            return True
        return self.matching_pattern(normalized) is not None

    def matching_pattern(self, path: str) -> Optional[str]:
        """Return the pattern protecting ``path``, for diagnostics."""
        normalized = normalise_path(path)
        if _is_vcs_metadata(normalized):
            return _VCS_METADATA[0]
        if normalized == self.pattern_file:
            return self.pattern_file
        for rule in self.rules:
            if rule.matches(normalized):
                return rule.pattern
            # An exact entry that names a directory protects its contents too.
            if not rule.directory and normalized.startswith(f"{rule.pattern}/"):
                return rule.pattern
        return None

    def protected(self, paths: Iterable[str]) -> List[str]:
        return sorted(path for path in paths if self.is_protected(path))


def _pattern_lines(text: str) -> List[str]:
    lines: List[str] = []
    for raw in text.splitlines():
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        lines.append(stripped)
    return lines


def _build_rule(raw: str) -> ProtectionRule:
    directory = raw.replace("\\", "/").rstrip().endswith("/")
    pattern = normalise_path(raw).rstrip("/")
    if not pattern:
        raise ConfigError(f"Invalid handwritten pattern: {raw!r}")
    if ".." in pattern.split("/"):
        raise ConfigError(f"Handwritten pattern cannot contain '..': {raw!r}")
    if any(ch in pattern for ch in "*?["):
        raise ConfigError(
            f"Handwritten pattern {raw!r} uses glob syntax; list exact paths or directories"
        )
    return ProtectionRule(pattern=pattern, directory=directory)


def _is_vcs_metadata(path: str) -> bool:
    first = path.split("/", 1)[0]
    return first in _VCS_METADATA


__all__ = ["HANDWRITTEN_FILENAME", "HandwrittenFileFilter", "ProtectionRule", "normalise_path"]
