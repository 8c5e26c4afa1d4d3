"""History endpoints: log, diff, show, restore and commit recovery."""

from __future__ import annotations

from fastapi import APIRouter, Query

from pagevault.docstore.deps import ActorDep, WorkspaceDep
from pagevault.docstore.errors import HistoryCommitFailedError
from pagevault.docstore.models.api import (
    RecommitRequest,
    ReconcileResponse,
    RestoreRequest,
    RevisionContentResponse,
    StatusResponse,
    encode_content,
)
from pagevault.docstore.models.history import Diff, MutationResult, RevisionPage

router = APIRouter(prefix="/history", tags=["history"])


@router.get("/log", response_model=RevisionPage)
async def revision_log(
    ws: WorkspaceDep,
    path: str = "",
    limit: int = Query(default=50, ge=1, le=500),
    cursor: str | None = None,
) -> RevisionPage:
    """Revisions touching ``path``, newest first.  Pass ``next_cursor`` back as ``cursor``."""
    return await ws.history.log(path, limit=limit, cursor=cursor)


@router.get("/diff", response_model=Diff)
async def revision_diff(ws: WorkspaceDep, path: str, from_rev: str, to_rev: str) -> Diff:
    return await ws.history.diff(path, from_rev, to_rev)


@router.get("/show", response_model=RevisionContentResponse)
async def show_revision(ws: WorkspaceDep, path: str, revision: str) -> RevisionContentResponse:
    """A file's content as of ``revision``."""
    result = await ws.history.show(path, revision)
    content, encoding = encode_content(result.content)
    return RevisionContentResponse(revision=result.revision, path=result.path, content=content, encoding=encoding)


@router.post("/restore", response_model=MutationResult)
async def restore_revision(body: RestoreRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    return await ws.history.restore(body.path, body.revision, actor=actor)


@router.get("/status", response_model=StatusResponse)
async def history_status(ws: WorkspaceDep) -> StatusResponse:
    """Paths changed on disk but not yet committed."""
    return StatusResponse(uncommitted=await ws.history.uncommitted())


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(ws: WorkspaceDep, actor: ActorDep) -> ReconcileResponse:
    return ReconcileResponse(revision_id=await ws.history.reconcile(actor))


@router.post("/recommit", response_model=MutationResult)
async def recommit(body: RecommitRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    """Retry the commit of a mutation that failed with ``history_commit_failed``."""
    operation = body.operation
    paths = [p for p in (operation.path, operation.destination) if p is not None]
    failure = HistoryCommitFailedError(operation, paths, actor or ws.settings.default_actor)
    return await ws.files.recommit(failure)
