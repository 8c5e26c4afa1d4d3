"""Path validation for client-supplied workspace paths.

Every File Store and Search Engine entry point funnels raw paths through
``PathValidator.resolve`` before touching the disk.  Resolution is purely
lexical:

- ``\\`` becomes ``/``; empty and ``.`` segments are dropped
- ``..`` pops the previous segment and fails if there is none left
- absolute paths, drive letters and control characters are rejected
- length, depth and per-segment size are bounded
- the git metadata directory is not addressable at any depth

The result is a ``SafePath``: a normalized, root-relative string with ``/``
separators where ``""`` denotes the workspace root.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import NewType

from pagevault.docstore.errors import InvalidPathError

SafePath = NewType("SafePath", str)

ROOT = SafePath("")

VCS_DIR = ".git"

MAX_SEGMENT_BYTES = 255

_DRIVE_RE = re.compile(r"^[A-Za-z]:")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")


class PathValidator:
    """Resolves raw paths against one workspace root."""

    def __init__(
        self,
        root: str | Path,
        *,
        max_length: int = 1024,
        max_depth: int = 32,
        attachments_dir: str = ".attachments",
    ) -> None:
        self.root = Path(root).resolve()
        self.max_length = max_length
        self.max_depth = max_depth
        self.attachments_dir = SafePath(attachments_dir.strip("/"))

    def resolve(self, raw: str) -> SafePath:
        """Normalize *raw* into a ``SafePath`` or raise ``InvalidPathError``."""
        if not isinstance(raw, str):
            msg = f"Path must be a string, got {type(raw).__name__}"
            raise InvalidPathError(msg)
        if _CONTROL_RE.search(raw):
            msg = "Path contains a control character"
            raise InvalidPathError(msg, path=raw)
        if len(raw) > self.max_length:
            msg = f"Path longer than {self.max_length} characters"
            raise InvalidPathError(msg, path=raw)

        text = raw.replace("\\", "/")
        if text.startswith("/") or _DRIVE_RE.match(text):
            msg = f"Absolute paths are not allowed: '{raw}'"
            raise InvalidPathError(msg, path=raw)

        parts: list[str] = []
        for segment in text.split("/"):
            if segment in ("", "."):
                continue
            if segment == "..":
                if not parts:
                    msg = f"Path escapes the workspace root: '{raw}'"
                    raise InvalidPathError(msg, path=raw)
                parts.pop()
                continue
            if len(segment.encode("utf-8")) > MAX_SEGMENT_BYTES:
                msg = f"Path segment longer than {MAX_SEGMENT_BYTES} bytes"
                raise InvalidPathError(msg, path=raw)
            if segment.casefold() == VCS_DIR:
                msg = f"'{VCS_DIR}' is reserved for version control"
                raise InvalidPathError(msg, path=raw)
            parts.append(segment)

        if len(parts) > self.max_depth:
            msg = f"Path deeper than {self.max_depth} segments"
            raise InvalidPathError(msg, path=raw)
        return SafePath("/".join(parts))

    def to_os_path(self, path: SafePath) -> Path:
        """Absolute filesystem path for *path*.

        Also follows symlinks on the existing prefix, so a link planted inside
        the workspace cannot be used to reach outside it.
        """
        target = self.root / path if path else self.root
        real = os.path.realpath(target)
        root = str(self.root)
        if real != root and not real.startswith(root + os.sep):
            msg = f"Path resolves outside the workspace root: '{path}'"
            raise InvalidPathError(msg, path=path)
        return target

    def is_attachment(self, path: SafePath) -> bool:
        prefix = self.attachments_dir
        return path == prefix or path.startswith(prefix + "/")

    def attachment(self, name: str) -> SafePath:
        """Resolve *name* relative to the attachments subtree."""
        inner = self.resolve(name)
        if not inner:
            msg = "Attachment name is required"
            raise InvalidPathError(msg, path=name)
        return SafePath(f"{self.attachments_dir}/{inner}")


def parent(path: SafePath) -> SafePath:
    return SafePath(path.rpartition("/")[0])


def name(path: SafePath) -> str:
    return path.rpartition("/")[2]


def join(base: SafePath, child: str) -> SafePath:
    return SafePath(f"{base}/{child}" if base else child)


def ancestors(path: SafePath) -> list[SafePath]:
    """Proper ancestors of *path*, nearest the root first (root excluded)."""
    parts = path.split("/")[:-1] if path else []
    return [SafePath("/".join(parts[: i + 1])) for i in range(len(parts))]


def is_within(path: SafePath, base: SafePath) -> bool:
    """``True`` when *path* equals *base* or lies beneath it."""
    if not base:
        return True
    return path == base or path.startswith(base + "/")
