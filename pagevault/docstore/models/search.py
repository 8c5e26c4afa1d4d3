"""Search request / result models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SearchOptions(BaseModel):
    path: str = ""
    """Restrict the scan to this subtree."""

    case_sensitive: bool = False
    max_results: int | None = Field(default=None, gt=0)
    """Capped by the ``max_search_results`` setting; ``None`` means the cap."""

    include_attachments: bool = False
    extensions: list[str] | None = None
    """Only scan files with one of these suffixes (``".md"`` or ``"md"``)."""


class SearchResult(BaseModel):
    """One occurrence of the query.  ``line`` and ``column`` are 1-based."""

    path: str
    line: int
    column: int
    text: str


class SearchHit(BaseModel):
    """Per-file match count, used for relevance ranking."""

    path: str
    matches: int
    snippet: str
