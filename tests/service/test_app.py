"""Tests for the FastAPI service mode."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

try:
    from fastapi.testclient import TestClient
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    pytest.skip("fastapi not installed", allow_module_level=True)

from sdksync.errors import ConfigError, MergeConflict
from sdksync.models import CommitRecord
from sdksync.orchestrator import RunState, SyncOutcome
from sdksync.service import create_app
from sdksync.stores.ledger import SyncLedger

SMITHY = "a" * 40
EXAMPLES = "b" * 40


class _StubOrchestrator:
    def __init__(self) -> None:
        self.sync_calls: list[dict[str, object]] = []
        self.outcome = SyncOutcome(
            status="synced",
            state=RunState.IDLE,
            commits=[
                CommitRecord(
                    commit_id="c" * 40,
                    smithy_rs_revision=SMITHY,
                    aws_doc_sdk_examples_revision=EXAMPLES,
                    changed_files=4,
                )
            ],
        )

    def run_sync(self, smithy_rs, examples, target, **kwargs):  # type: ignore[no-untyped-def]
        self.sync_calls.append({"smithy_rs": smithy_rs, "examples": examples, "target": target, **kwargs})
        return self.outcome

    def read_ledger(self, target: str) -> SyncLedger:
        if target == "missing":
            raise ConfigError("missing is not a git repository")
        ledger = SyncLedger(None)
        ledger.append(SMITHY, "c" * 40, timestamp=datetime(2024, 1, 1, tzinfo=UTC))
        return ledger


@pytest.fixture
def orchestrator() -> _StubOrchestrator:
    return _StubOrchestrator()


@pytest.fixture
def client(orchestrator: _StubOrchestrator) -> TestClient:
    return TestClient(create_app(lambda: orchestrator))


def _payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "smithy_rs": "/src/smithy-rs",
        "aws_doc_sdk_examples": "/src/aws-doc-sdk-examples",
        "target": "/src/aws-sdk-rust",
    }
    payload.update(overrides)
    return payload


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_sync_endpoint_reports_commits(client: TestClient, orchestrator: _StubOrchestrator) -> None:
    response = client.post("/sync", json=_payload(max_revisions=3, dry_run=False))

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "synced"
    assert data["state"] == "idle"
    assert data["commits"][0]["smithy_rs_revision"] == SMITHY
    assert data["commits"][0]["changed_files"] == 4
    assert orchestrator.sync_calls[0]["max_revisions"] == 3
    assert orchestrator.sync_calls[0]["target"] == "/src/aws-sdk-rust"


def test_sync_failure_maps_error_kind_to_status(
    client: TestClient, orchestrator: _StubOrchestrator
) -> None:
    error = MergeConflict("protected", path="README.md", revision=SMITHY)
    orchestrator.outcome = SyncOutcome(
        status="failed", state=RunState.FAILED, failed_revision=SMITHY, error=error
    )

    response = client.post("/sync", json=_payload())

    assert response.status_code == 409
    assert response.json() == {
        "kind": "merge_conflict",
        "detail": "protected",
        "revision": SMITHY,
        "path": "README.md",
    }


def test_ledger_endpoint_lists_entries(client: TestClient) -> None:
    response = client.get("/ledger", params={"target": "/src/aws-sdk-rust"})

    assert response.status_code == 200
    data = response.json()
    assert data["last_synced"] == SMITHY
    assert data["entries"][0]["kind"] == "mirror"
    assert data["entries"][0]["timestamp"].startswith("2024-01-01")


def test_ledger_endpoint_reports_config_errors(client: TestClient) -> None:
    response = client.get("/ledger", params={"target": "missing"})

    assert response.status_code == 422
    assert response.json()["kind"] == "config_error"
