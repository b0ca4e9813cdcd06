"""Classifying upstream revisions by whether they change generated output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from ..config import DEFAULT_MODEL_PATHS
from ..handwritten import normalise_path
from ..models import PlannedRevision, RevisionWindow, UpstreamRevision


@dataclass(frozen=True)
class ModelPathRule:
    """A path prefix whose changes influence generated code."""

    prefix: str

    def matches(self, path: str) -> bool:
        return _prefix_matches(normalise_path(path), self.prefix)


@dataclass(frozen=True)
class ChangeClassification:
    """Summary of why a revision was (or was not) considered model-affecting."""

    revision: str
    model_affecting: bool
    matched_paths: Sequence[str]


class ModelChangeDetector:
    """Maps upstream revisions to model-affecting or not."""

    def __init__(self, model_paths: Sequence[str] | None = None) -> None:
        prefixes = model_paths if model_paths is not None else DEFAULT_MODEL_PATHS
        self.rules: Sequence[ModelPathRule] = tuple(
            ModelPathRule(prefix=normalise_path(prefix)) for prefix in prefixes if prefix.strip()
        )

    def is_model_affecting(self, revision: UpstreamRevision) -> bool:
        return self.classify(revision).model_affecting

    def classify(self, revision: UpstreamRevision) -> ChangeClassification:
        matched = [
            path
            for path in revision.changed_paths
            if any(rule.matches(path) for rule in self.rules)
        ]
        return ChangeClassification(
            revision=revision.id, model_affecting=bool(matched), matched_paths=matched
        )

    def plan_builds(self, window: RevisionWindow) -> List[PlannedRevision]:
        """Annotate each window revision with whether it gets its own build.

        Model-affecting revisions are always built. The newest revision of the
        window is built too, so the manifest ends up pinned to the true HEAD.
        """
        planned: List[PlannedRevision] = []
        last_index = len(window.revisions) - 1
        for index, revision in enumerate(window.revisions):
            model_affecting = window.bulk_import or self.is_model_affecting(revision)
            planned.append(
                PlannedRevision(
                    revision=revision,
                    model_affecting=model_affecting,
                    build=model_affecting or index == last_index,
                )
            )
        return planned


def _prefix_matches(path: str, prefix: str) -> bool:
    if prefix.endswith("/"):
        return path.startswith(prefix)
    return path == prefix or path.startswith(f"{prefix}/")


__all__ = ["ChangeClassification", "ModelChangeDetector", "ModelPathRule"]
