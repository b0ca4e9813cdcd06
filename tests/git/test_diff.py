"""Tests for model-affecting change detection."""

from __future__ import annotations

from sdksync.git.diff import ModelChangeDetector
from sdksync.models import RevisionWindow, UpstreamRevision


def _revision(revision_id: str, *paths: str) -> UpstreamRevision:
    return UpstreamRevision(
        id=revision_id,
        parents=(),
        changed_paths=paths,
        author_name="Dev",
        author_email="dev@example.com",
        authored_at="2024-01-01T00:00:00+00:00",
        message=f"change {revision_id}",
    )


def test_detector_matches_directory_prefixes_and_exact_files() -> None:
    detector = ModelChangeDetector(["aws/sdk/aws-models/", "gradle.properties", "codegen"])

    assert detector.is_model_affecting(_revision("a", "aws/sdk/aws-models/s3.json"))
    assert detector.is_model_affecting(_revision("b", "gradle.properties"))
    assert detector.is_model_affecting(_revision("c", "codegen/src/Main.kt"))
    assert not detector.is_model_affecting(_revision("d", "codegen-extra/file"))
    assert not detector.is_model_affecting(_revision("e", "aws/sdk/gradle.properties"))
    assert not detector.is_model_affecting(_revision("f", "README.md", ".github/ci.yml"))


def test_classify_reports_matching_paths() -> None:
    detector = ModelChangeDetector(["codegen/"])

    classification = detector.classify(_revision("a", "README.md", "codegen/x.kt"))

    assert classification.model_affecting
    assert list(classification.matched_paths) == ["codegen/x.kt"]


def test_default_model_paths_cover_models_and_runtime() -> None:
    detector = ModelChangeDetector()

    assert detector.is_model_affecting(_revision("a", "aws/sdk/aws-models/dynamodb.json"))
    assert detector.is_model_affecting(_revision("b", "rust-runtime/aws-smithy-http/src/lib.rs"))
    assert not detector.is_model_affecting(_revision("c", "tools/ci-build/script.sh"))


def test_plan_builds_skips_non_model_revisions_except_the_newest() -> None:
    detector = ModelChangeDetector(["codegen/"])
    window = RevisionWindow(
        base="base",
        head="d",
        revisions=[
            _revision("a", "codegen/a.kt"),
            _revision("b", "README.md"),
            _revision("c", "codegen/c.kt"),
            _revision("d", "docs/notes.md"),
        ],
    )

    planned = detector.plan_builds(window)

    assert [(item.revision.id, item.model_affecting, item.build) for item in planned] == [
        ("a", True, True),
        ("b", False, False),
        ("c", True, True),
        ("d", False, True),
    ]


def test_plan_builds_treats_bulk_import_as_model_affecting() -> None:
    detector = ModelChangeDetector(["codegen/"])
    window = RevisionWindow(base=None, head="a", revisions=[_revision("a", "README.md")])

    planned = detector.plan_builds(window)

    assert planned[0].model_affecting and planned[0].build
