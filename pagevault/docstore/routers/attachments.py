"""Attachment endpoints.

Uploads take the raw request body and stream it to disk chunk by chunk;
downloads stream the file back.  Neither holds a whole attachment in memory.
"""

from __future__ import annotations

import mimetypes
from urllib.parse import quote

from fastapi import APIRouter, Request, status
from fastapi.responses import StreamingResponse

from pagevault.docstore.deps import ActorDep, WorkspaceDep
from pagevault.docstore.models.history import MutationResult
from pagevault.docstore.models.nodes import FileNode

router = APIRouter(prefix="/attachments", tags=["attachments"])


@router.post("/upload", response_model=MutationResult, status_code=status.HTTP_201_CREATED)
async def upload_attachment(request: Request, name: str, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    """Store the request body as attachment ``name`` (e.g. ``images/logo.png``)."""
    return await ws.files.upload_attachment(name, request.stream(), actor=actor)


@router.get("/download")
async def download_attachment(name: str, ws: WorkspaceDep) -> StreamingResponse:
    node, chunks = await ws.files.open_attachment(name)
    media_type = mimetypes.guess_type(node.name)[0] or "application/octet-stream"
    headers = {
        "Content-Length": str(node.size),
        "Content-Disposition": f"inline; filename*=UTF-8''{quote(node.name)}",
    }
    return StreamingResponse(chunks, media_type=media_type, headers=headers)


@router.get("/list", response_model=list[FileNode])
async def list_attachments(ws: WorkspaceDep, folder: str = "") -> list[FileNode]:
    return await ws.files.list_attachments(folder)
