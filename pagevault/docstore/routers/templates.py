"""Page template listing."""

from __future__ import annotations

from fastapi import APIRouter

from pagevault.docstore.deps import WorkspaceDep
from pagevault.docstore.models.nodes import Template

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("/list", response_model=list[Template])
async def list_templates(ws: WorkspaceDep) -> list[Template]:
    return await ws.files.list_templates()
