"""API request / response schemas for the HTTP surface.

Thin wrappers between HTTP and the core models:

- **Request** bodies carry paths and text content as JSON.
- **Content** responses carry file bytes as text when they decode as UTF-8,
  otherwise base64 (see ``encode_content``).
- **Error** bodies are ``{"error": kind, "detail": message}``.
"""

from __future__ import annotations

import base64

from pydantic import BaseModel

from pagevault.docstore.models.history import OperationDescriptor, Revision
from pagevault.docstore.models.nodes import FileNode

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class PathRequest(BaseModel):
    path: str


class WriteRequest(BaseModel):
    """Create or overwrite a text document."""

    path: str
    content: str = ""


class RelocateRequest(BaseModel):
    """Rename / move ``path`` to ``destination``."""

    path: str
    destination: str


class MoveIntoRequest(BaseModel):
    """Move ``path`` under ``folder`` keeping its name."""

    path: str
    folder: str = ""


class RestoreRequest(BaseModel):
    path: str
    revision: str


class RecommitRequest(BaseModel):
    """Retry the commit of a mutation that answered ``history_commit_failed``.

    Echo back the ``operation`` from that error body.  The paths to commit are
    derived from it.
    """

    operation: OperationDescriptor


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ContentResponse(BaseModel):
    node: FileNode
    content: str
    encoding: str = "utf-8"
    """``utf-8`` or ``base64``."""


class RevisionContentResponse(BaseModel):
    revision: Revision
    path: str
    content: str
    encoding: str = "utf-8"


class StatusResponse(BaseModel):
    uncommitted: list[str]


class ReconcileResponse(BaseModel):
    revision_id: str | None = None


class ErrorResponse(BaseModel):
    error: str
    detail: str


def encode_content(data: bytes) -> tuple[str, str]:
    """``(text, encoding)`` for JSON transport of raw file bytes."""
    try:
        return data.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        return base64.b64encode(data).decode("ascii"), "base64"
