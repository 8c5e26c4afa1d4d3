"""Data models for the document store."""

from pagevault.docstore.models.api import (
    ContentResponse,
    ErrorResponse,
    MoveIntoRequest,
    PathRequest,
    RecommitRequest,
    ReconcileResponse,
    RelocateRequest,
    RestoreRequest,
    RevisionContentResponse,
    StatusResponse,
    WriteRequest,
)
from pagevault.docstore.models.enums import ErrorKind, NodeKind, OperationKind
from pagevault.docstore.models.history import (
    Diff,
    MutationResult,
    OperationDescriptor,
    Revision,
    RevisionContent,
    RevisionPage,
)
from pagevault.docstore.models.nodes import FileContent, FileNode, FolderNode, Template
from pagevault.docstore.models.search import SearchHit, SearchOptions, SearchResult

__all__ = [
    # API schemas
    "ContentResponse",
    # History
    "Diff",
    # Enums
    "ErrorKind",
    "ErrorResponse",
    # Nodes
    "FileContent",
    "FileNode",
    "FolderNode",
    "MoveIntoRequest",
    "MutationResult",
    "NodeKind",
    "OperationDescriptor",
    "OperationKind",
    "PathRequest",
    "RecommitRequest",
    "ReconcileResponse",
    "RelocateRequest",
    "RestoreRequest",
    "Revision",
    "RevisionContent",
    "RevisionContentResponse",
    "RevisionPage",
    # Search
    "SearchHit",
    "SearchOptions",
    "SearchResult",
    "StatusResponse",
    "Template",
    "WriteRequest",
]
