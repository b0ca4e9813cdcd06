"""Core data models shared across sdksync components."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class UpstreamRevision:
    """A single commit read from the generator repository history."""

    id: str
    parents: Tuple[str, ...]
    changed_paths: Tuple[str, ...]
    author_name: str
    author_email: str
    authored_at: str
    message: str

    @property
    def short_id(self) -> str:
        return self.id[:7]

    @property
    def subject(self) -> str:
        lines = self.message.strip().splitlines()
        return lines[0] if lines else ""

    @property
    def body(self) -> str:
        lines = self.message.strip().splitlines()
        return "\n".join(lines[1:]).strip()


@dataclass(frozen=True)
class PlannedRevision:
    """A window entry annotated with whether it needs its own build."""

    revision: UpstreamRevision
    model_affecting: bool
    build: bool


@dataclass
class RevisionWindow:
    """Ordered, oldest-first revisions to replay in one run."""

    base: Optional[str]
    head: str
    revisions: List[UpstreamRevision] = field(default_factory=list)
    truncated: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.revisions

    @property
    def bulk_import(self) -> bool:
        return self.base is None


@dataclass(frozen=True)
class LedgerEntry:
    """Maps one upstream revision to the target commit that reflects it."""

    upstream_revision_id: str
    local_commit_id: str
    timestamp: datetime
    kind: str = "mirror"


@dataclass(frozen=True)
class CommitRecord:
    """A mirror commit produced during a run."""

    commit_id: str
    smithy_rs_revision: str
    aws_doc_sdk_examples_revision: str
    changed_files: int
    folded: Sequence[str] = ()
