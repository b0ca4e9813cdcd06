"""Planning which upstream revisions a sync run replays."""

from __future__ import annotations

from typing import Optional

from ..errors import HistoryDivergence
from ..logging import get_logger
from ..models import RevisionWindow
from .repository import GitRepository


class RevisionWindowPlanner:
    """Computes the oldest-first window of upstream revisions to replay.

    The window holds every first-parent revision strictly after
    ``last_synced`` up to and including ``head``. A first run (no synced
    revision yet) collapses history to ``head`` alone.
    """

    def __init__(self, upstream: GitRepository) -> None:
        self.upstream = upstream
        self.logger = get_logger("planner")

    def plan(
        self,
        last_synced: Optional[str],
        head: Optional[str] = None,
        *,
        max_revisions: Optional[int] = None,
    ) -> RevisionWindow:
        head_id = self.upstream.resolve(head or "HEAD")

        if last_synced is None:
            self.logger.info("No synced revision recorded; bulk importing %s", head_id)
            return RevisionWindow(
                base=None, head=head_id, revisions=[self.upstream.read_revision(head_id)]
            )

        if not self.upstream.revision_exists(last_synced):
            raise HistoryDivergence(
                f"Last synced revision {last_synced} no longer exists upstream",
                revision=last_synced,
            )
        if last_synced == head_id:
            return RevisionWindow(base=last_synced, head=head_id)
        if not self.upstream.is_ancestor(last_synced, head_id):
            raise HistoryDivergence(
                f"Last synced revision {last_synced} is not an ancestor of {head_id}; "
                "upstream history was rewritten",
                revision=last_synced,
            )

        revision_ids = self.upstream.first_parent_range(last_synced, head_id)
        if not revision_ids:
            raise HistoryDivergence(
                f"Last synced revision {last_synced} is not on the first-parent history of {head_id}",
                revision=last_synced,
            )
        truncated = False
        if max_revisions is not None and len(revision_ids) > max_revisions:
            self.logger.info(
                "Window holds %d revisions; limiting this run to the oldest %d",
                len(revision_ids),
                max_revisions,
            )
            revision_ids = revision_ids[:max_revisions]
            truncated = True

        revisions = [self.upstream.read_revision(revision_id) for revision_id in revision_ids]
        if revisions[0].parents[:1] != (last_synced,):
            raise HistoryDivergence(
                f"Last synced revision {last_synced} is not on the first-parent history of {head_id}; "
                f"{revisions[0].id} does not descend from it",
                revision=last_synced,
            )
        self.logger.debug(
            "Planned %d revisions from %s to %s", len(revisions), last_synced, revisions[-1].id
        )
        return RevisionWindow(
            base=last_synced, head=head_id, revisions=revisions, truncated=truncated
        )


__all__ = ["RevisionWindowPlanner"]
