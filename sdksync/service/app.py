"""FastAPI application entrypoint for sdksync service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional

from fastapi import Depends, FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import SyncError
from ..orchestrator import SyncOrchestrator, SyncOutcome

_STATUS_CODES = {
    "config_error": 422,
    "history_divergence": 409,
    "merge_conflict": 409,
    "lock_held": 409,
    "build_failure": 502,
    "git_error": 500,
}


class SyncRequest(BaseModel):
    smithy_rs: str
    aws_doc_sdk_examples: str
    target: str
    revision: Optional[str] = None
    examples_revision: Optional[str] = None
    max_revisions: Optional[int] = None
    dry_run: bool = False
    push: Optional[bool] = None


class CommitModel(BaseModel):
    commit_id: str
    smithy_rs_revision: str
    aws_doc_sdk_examples_revision: str
    changed_files: int


class SyncResponse(BaseModel):
    status: str
    state: str
    commits: List[CommitModel] = []
    synced_revisions: List[str] = []
    planned_revisions: List[str] = []


class LedgerEntryModel(BaseModel):
    upstream_revision_id: str
    local_commit_id: str
    timestamp: str
    kind: str


class LedgerResponse(BaseModel):
    last_synced: Optional[str] = None
    entries: List[LedgerEntryModel] = []


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator()


def _error_payload(error: SyncError, revision: Optional[str] = None) -> dict[str, Any]:
    return {
        "kind": error.kind,
        "detail": str(error),
        "revision": revision or error.revision,
        "path": error.path,
    }


def create_app(
    orchestrator_factory: Callable[[], SyncOrchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing sync operations."""

    app = FastAPI(title="sdksync Service", version="1.0.0")

    async def get_orchestrator() -> SyncOrchestrator:
        # One orchestrator per request; run state lives in the target repository.
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/sync", response_model=SyncResponse)
    async def sync(
        payload: SyncRequest,
        orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        def _run_sync() -> SyncOutcome:
            return orchestrator.run_sync(
                payload.smithy_rs,
                payload.aws_doc_sdk_examples,
                payload.target,
                revision=payload.revision,
                examples_revision=payload.examples_revision,
                max_revisions=payload.max_revisions,
                dry_run=payload.dry_run,
                push=payload.push,
            )

        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(None, _run_sync)

        if outcome.error is not None:
            return JSONResponse(
                status_code=_STATUS_CODES.get(outcome.error.kind, 500),
                content=_error_payload(outcome.error, outcome.failed_revision),
            )

        return SyncResponse(
            status=outcome.status,
            state=outcome.state.value,
            commits=[
                CommitModel(
                    commit_id=commit.commit_id,
                    smithy_rs_revision=commit.smithy_rs_revision,
                    aws_doc_sdk_examples_revision=commit.aws_doc_sdk_examples_revision,
                    changed_files=commit.changed_files,
                )
                for commit in outcome.commits
            ],
            synced_revisions=[entry.upstream_revision_id for entry in outcome.ledger_entries],
            planned_revisions=[item.revision.id for item in outcome.planned],
        )

    @app.get("/ledger", response_model=LedgerResponse)
    async def ledger(
        target: str = Query(..., description="Path to the target repository"),
        orchestrator: SyncOrchestrator = Depends(get_orchestrator),
    ) -> LedgerResponse:
        loaded = orchestrator.read_ledger(target)
        return LedgerResponse(
            last_synced=loaded.last_synced,
            entries=[
                LedgerEntryModel(
                    upstream_revision_id=entry.upstream_revision_id,
                    local_commit_id=entry.local_commit_id,
                    timestamp=entry.timestamp.isoformat(),
                    kind=entry.kind,
                )
                for entry in loaded.entries
            ],
        )

    @app.exception_handler(SyncError)
    async def sync_error_handler(_: Any, exc: SyncError) -> JSONResponse:
        return JSONResponse(
            status_code=_STATUS_CODES.get(exc.kind, 500), content=_error_payload(exc)
        )

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=host, port=port)


__all__ = ["create_app", "run_service"]
