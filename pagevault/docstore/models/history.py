"""History data models.

A revision is one git commit.  Its message carries a machine-readable
``OperationDescriptor`` as ``Key: value`` trailers so ``log`` can rebuild the
descriptor without a side database.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from pagevault.docstore.models.enums import OperationKind
from pagevault.docstore.models.nodes import FileNode


class OperationDescriptor(BaseModel):
    """What a mutation did, as recorded in its commit."""

    kind: OperationKind
    path: str = ""
    destination: str | None = None
    """Target path for rename / move."""

    restored_from: str | None = None
    """Revision id whose content was written back, when the mutation is a restore."""

    def summary(self) -> str:
        """One-line commit subject, e.g. ``rename: a.md -> b.md``."""
        target = self.path or "/"
        if self.destination is not None:
            target = f"{target} -> {self.destination}"
        if self.restored_from:
            target = f"{target} (restored from {self.restored_from[:12]})"
        return f"{self.kind.value}: {target}"


class Revision(BaseModel):
    """Immutable history entry."""

    id: str
    timestamp: datetime
    author: str
    operation: OperationDescriptor
    summary: str = ""


class RevisionPage(BaseModel):
    """A slice of ``log`` output.  Pass ``next_cursor`` back to continue."""

    revisions: list[Revision] = Field(default_factory=list)
    next_cursor: str | None = None


class RevisionContent(BaseModel):
    """A file's bytes as they were at a given revision."""

    revision: Revision
    path: str
    content: bytes


class Diff(BaseModel):
    path: str
    from_revision: str
    to_revision: str
    patch: str = ""
    binary: bool = False


class MutationResult(BaseModel):
    """Outcome of a File Store mutation.

    ``revision_id`` is ``None`` when the mutation left nothing to commit
    (a no-op update, an empty directory).
    """

    operation: OperationDescriptor
    node: FileNode | None = None
    revision_id: str | None = None
