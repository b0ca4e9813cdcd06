"""Durable, append-only record of which upstream revisions were synced."""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from ..errors import ConfigError
from ..git.publisher import parse_trailers
from ..git.repository import GitRepository
from ..logging import get_logger
from ..models import LedgerEntry

_LEDGER_VERSION = 1
LEDGER_KINDS = ("mirror", "noop", "skipped")


class SyncLedger:
    """Maps upstream revisions to target commits, oldest first.

    Entries are appended to ``<git-dir>/sdksync/ledger.jsonl``. Mirror
    entries can always be rebuilt from the target's commit trailers, so the
    file is trusted only while its mirror entries agree with that history.
    """

    def __init__(self, path: Path | None, entries: Iterable[LedgerEntry] = ()) -> None:
        self._path = path
        self._entries: List[LedgerEntry] = list(entries)
        self.logger = get_logger("ledger")

    @classmethod
    def load(cls, target: GitRepository, *, read_only: bool = False) -> "SyncLedger":
        """Load the ledger of ``target``, rebuilding it from history when it disagrees.

        A ``read_only`` ledger never touches the file: a disagreeing file is
        reported and left alone, and the returned ledger cannot be appended
        to durably. Queries made without the run lock use this mode.
        """
        path = target.git_dir() / "sdksync" / "ledger.jsonl"
        history = reconstruct_entries(target)
        stored = _read_entries(path)
        agrees = _mirror_keys(stored) == _mirror_keys(history)

        if read_only:
            if not agrees and stored:
                get_logger("ledger").info(
                    "Ledger file %s disagrees with target history; showing %d entries from commits",
                    path,
                    len(history),
                )
            return cls(None, stored if agrees else history)

        if agrees:
            return cls(path, stored)

        ledger = cls(path, history)
        if stored:
            ledger.logger.warning(
                "Ledger file %s disagrees with target history; rebuilt %d entries from commits",
                path,
                len(history),
            )
        ledger._rewrite()
        return ledger

    @property
    def entries(self) -> Tuple[LedgerEntry, ...]:
        return tuple(self._entries)

    @property
    def last_synced(self) -> Optional[str]:
        """Upstream revision the next run re-plans from."""
        return self._entries[-1].upstream_revision_id if self._entries else None

    @property
    def last_mirror(self) -> Optional[LedgerEntry]:
        for entry in reversed(self._entries):
            if entry.kind == "mirror":
                return entry
        return None

    def __contains__(self, revision: object) -> bool:
        return any(entry.upstream_revision_id == revision for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def append(
        self,
        upstream_revision_id: str,
        local_commit_id: str,
        *,
        kind: str = "mirror",
        timestamp: datetime | None = None,
    ) -> LedgerEntry:
        if kind not in LEDGER_KINDS:
            raise ValueError(f"Unknown ledger entry kind: {kind}")
        if upstream_revision_id in self:
            raise ValueError(f"Upstream revision {upstream_revision_id} is already in the ledger")
        entry = LedgerEntry(
            upstream_revision_id=upstream_revision_id,
            local_commit_id=local_commit_id,
            timestamp=timestamp or datetime.now(UTC),
            kind=kind,
        )
        self._entries.append(entry)
        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(_entry_to_line(entry))
                handle.flush()
                os.fsync(handle.fileno())
        return entry

    def verify_ancestry(self, is_ancestor: Callable[[str, str], bool]) -> None:
        """Raise ``ValueError`` unless every entry descends from the one before it."""
        for previous, current in zip(self._entries, self._entries[1:]):
            if not is_ancestor(previous.upstream_revision_id, current.upstream_revision_id):
                raise ValueError(
                    f"Ledger entry {current.upstream_revision_id} does not descend from "
                    f"{previous.upstream_revision_id}"
                )

    def _rewrite(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temporary = self._path.with_suffix(".tmp")
        temporary.write_text(
            "".join(_entry_to_line(entry) for entry in self._entries), encoding="utf-8"
        )
        os.replace(temporary, self._path)


def reconstruct_entries(target: GitRepository) -> List[LedgerEntry]:
    """Rebuild mirror entries purely from the target's commit messages."""
    entries: List[LedgerEntry] = []
    seen: set[str] = set()
    for commit_id, committed_at, message in target.commit_messages():
        trailers = parse_trailers(message)
        if trailers is None or trailers.smithy_rs_revision in seen:
            continue
        seen.add(trailers.smithy_rs_revision)
        entries.append(
            LedgerEntry(
                upstream_revision_id=trailers.smithy_rs_revision,
                local_commit_id=commit_id,
                timestamp=_parse_timestamp(committed_at),
                kind="mirror",
            )
        )
    return entries


def _mirror_keys(entries: Sequence[LedgerEntry]) -> List[Tuple[str, str]]:
    return [
        (entry.upstream_revision_id, entry.local_commit_id)
        for entry in entries
        if entry.kind == "mirror"
    ]


def _entry_to_line(entry: LedgerEntry) -> str:
    payload = {
        "version": _LEDGER_VERSION,
        "upstream_revision_id": entry.upstream_revision_id,
        "local_commit_id": entry.local_commit_id,
        "timestamp": entry.timestamp.isoformat().replace("+00:00", "Z"),
        "kind": entry.kind,
    }
    return json.dumps(payload, sort_keys=True) + "\n"


def _read_entries(path: Path) -> List[LedgerEntry]:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise ConfigError(f"Failed to read ledger {path}: {exc}") from exc

    entries: List[LedgerEntry] = []
    for line in lines:
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            # A torn final write; everything before it is still valid.
            break
        entry = _entry_from_dict(payload)
        if entry is None:
            break
        entries.append(entry)
    return entries


def _entry_from_dict(payload: object) -> Optional[LedgerEntry]:
    if not isinstance(payload, dict) or payload.get("version") != _LEDGER_VERSION:
        return None
    upstream = payload.get("upstream_revision_id")
    local = payload.get("local_commit_id")
    timestamp = payload.get("timestamp")
    kind = payload.get("kind", "mirror")
    if not isinstance(upstream, str) or not isinstance(local, str):
        return None
    if not isinstance(timestamp, str) or kind not in LEDGER_KINDS:
        return None
    return LedgerEntry(
        upstream_revision_id=upstream,
        local_commit_id=local,
        timestamp=_parse_timestamp(timestamp),
        kind=kind,
    )


def _parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.fromtimestamp(0, UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


__all__ = ["LEDGER_KINDS", "SyncLedger", "reconstruct_entries"]
