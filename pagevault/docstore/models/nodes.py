"""Tree data models: file nodes, content and the folder tree."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from pagevault.docstore.models.enums import NodeKind


class FileNode(BaseModel):
    """Metadata for one path in the workspace tree.

    ``path`` is workspace-relative with ``/`` separators; the root is ``""``.
    """

    path: str
    name: str
    kind: NodeKind
    size: int = 0
    modified_at: datetime
    attachment: bool = False

    @property
    def is_dir(self) -> bool:
        return self.kind == NodeKind.DIRECTORY


class FileContent(BaseModel):
    """A file's metadata together with its bytes."""

    node: FileNode
    content: bytes

    @property
    def text(self) -> str:
        """Content decoded as UTF-8.  Raises ``UnicodeDecodeError`` for binary files."""
        return self.content.decode("utf-8")


class FolderNode(BaseModel):
    """Directory-only tree used for navigation sidebars."""

    name: str
    path: str
    children: list[FolderNode] = Field(default_factory=list)


class Template(BaseModel):
    """A page template: a text document from the templates folder."""

    name: str
    """File name without its extension, e.g. ``meeting-notes``."""

    path: str
    content: str
