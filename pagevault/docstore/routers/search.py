"""Full-text search endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from pagevault.docstore.deps import WorkspaceDep
from pagevault.docstore.models.search import SearchHit, SearchOptions, SearchResult

router = APIRouter(prefix="/search", tags=["search"])


def search_options(
    path: str = "",
    case_sensitive: bool = False,
    max_results: Annotated[int | None, Query(gt=0)] = None,
    include_attachments: bool = False,
    extensions: Annotated[list[str] | None, Query()] = None,
) -> SearchOptions:
    """Build ``SearchOptions`` from query parameters (``extensions`` may repeat)."""
    return SearchOptions(
        path=path,
        case_sensitive=case_sensitive,
        max_results=max_results,
        include_attachments=include_attachments,
        extensions=extensions,
    )


OptionsDep = Annotated[SearchOptions, Depends(search_options)]


@router.get("", response_model=list[SearchResult])
async def search(ws: WorkspaceDep, q: str, options: OptionsDep) -> list[SearchResult]:
    """Every occurrence of ``q`` with its 1-based line and column."""
    return [result async for result in ws.search.search(q, options)]


@router.get("/count", response_model=list[SearchHit])
async def count(ws: WorkspaceDep, q: str, options: OptionsDep) -> list[SearchHit]:
    """Per-file match counts, most matches first."""
    return await ws.search.count(q, options)
