"""File tree endpoints (RPC-style).

All write operations use POST; reads use GET.  Paths travel as the ``path``
query parameter on reads and in the JSON body on writes.
"""

from __future__ import annotations

from fastapi import APIRouter, status

from pagevault.docstore.deps import ActorDep, WorkspaceDep
from pagevault.docstore.models.api import (
    ContentResponse,
    MoveIntoRequest,
    PathRequest,
    RelocateRequest,
    WriteRequest,
    encode_content,
)
from pagevault.docstore.models.history import MutationResult
from pagevault.docstore.models.nodes import FileNode, FolderNode

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/list", response_model=list[FileNode])
async def list_files(ws: WorkspaceDep, path: str = "") -> list[FileNode]:
    """Immediate children of a directory, directories first."""
    return await ws.files.list(path)


@router.get("/tree", response_model=FolderNode)
async def folder_tree(ws: WorkspaceDep, path: str = "") -> FolderNode:
    return await ws.files.tree(path)


@router.get("/stat", response_model=FileNode)
async def stat_file(ws: WorkspaceDep, path: str) -> FileNode:
    return await ws.files.stat(path)


@router.get("/read", response_model=ContentResponse)
async def read_file(ws: WorkspaceDep, path: str) -> ContentResponse:
    """Read a file.  Non-UTF-8 content comes back base64-encoded."""
    result = await ws.files.read(path)
    content, encoding = encode_content(result.content)
    return ContentResponse(node=result.node, content=content, encoding=encoding)


@router.post("/create", response_model=MutationResult, status_code=status.HTTP_201_CREATED)
async def create_file(body: WriteRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    return await ws.files.create(body.path, body.content, actor=actor)


@router.post("/update", response_model=MutationResult)
async def update_file(body: WriteRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    return await ws.files.update(body.path, body.content, actor=actor)


@router.post("/delete", response_model=MutationResult)
async def delete_file(body: PathRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    """Delete a file, or a directory and everything beneath it."""
    return await ws.files.delete(body.path, actor=actor)


@router.post("/rename", response_model=MutationResult)
async def rename_file(body: RelocateRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    return await ws.files.rename(body.path, body.destination, actor=actor)


@router.post("/move", response_model=MutationResult)
async def move_file(body: RelocateRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    return await ws.files.move(body.path, body.destination, actor=actor)


@router.post("/move-into", response_model=MutationResult)
async def move_into_folder(body: MoveIntoRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    """Move a node under ``folder``, keeping its name."""
    return await ws.files.move_into(body.path, body.folder, actor=actor)


@router.post("/mkdir", response_model=MutationResult, status_code=status.HTTP_201_CREATED)
async def make_directory(body: PathRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
    return await ws.files.mkdir(body.path, actor=actor)
