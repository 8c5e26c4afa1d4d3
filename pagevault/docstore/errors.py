"""Typed failures raised by the document store core.

Every exception carries a stable ``kind`` (``ErrorKind``) so callers can pick
a response without inspecting message text.  Each class also derives from the
closest builtin so generic ``except LookupError`` style handling still works.

The core never raises HTTP exceptions; that translation belongs to the
routers (see ``app.py``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from pagevault.docstore.models.enums import ErrorKind

if TYPE_CHECKING:
    from pagevault.docstore.models.history import OperationDescriptor
    from pagevault.docstore.models.nodes import FileNode


class DocStoreError(Exception):
    """Base class for all document store failures."""

    kind: ClassVar[ErrorKind]

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class InvalidPathError(DocStoreError, ValueError):
    kind = ErrorKind.INVALID_PATH


class NotFoundError(DocStoreError, LookupError):
    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(DocStoreError, FileExistsError):
    kind = ErrorKind.ALREADY_EXISTS


class InvalidParentError(DocStoreError, ValueError):
    kind = ErrorKind.INVALID_PARENT


class NothingToCommitError(DocStoreError):
    """The staged change set is empty.  Not fatal: callers treat it as success."""

    kind = ErrorKind.NOTHING_TO_COMMIT


class RevisionNotFoundError(DocStoreError, LookupError):
    kind = ErrorKind.REVISION_NOT_FOUND

    def __init__(self, revision: str, *, path: str | None = None) -> None:
        super().__init__(f"Revision '{revision}' not found", path=path)
        self.revision = revision


class IOFailureError(DocStoreError, OSError):
    kind = ErrorKind.IO_FAILURE


class SizeLimitExceededError(DocStoreError, ValueError):
    kind = ErrorKind.SIZE_LIMIT_EXCEEDED

    def __init__(self, size: int, limit: int, *, path: str | None = None) -> None:
        super().__init__(f"Content exceeds {limit} bytes (got at least {size})", path=path)
        self.size = size
        self.limit = limit


class HistoryCommitFailedError(DocStoreError):
    """The filesystem mutation succeeded but its commit did not.

    The change is real and visible.  Everything needed to retry just the
    commit step is kept on the exception; pass it to ``FileStore.recommit``.
    """

    kind = ErrorKind.HISTORY_COMMIT_FAILED

    def __init__(
        self,
        operation: OperationDescriptor,
        paths: list[str],
        actor: str,
        *,
        node: FileNode | None = None,
        reason: str = "",
    ) -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"Commit failed for '{operation.summary()}'{detail}", path=operation.path)
        self.operation = operation
        self.paths = paths
        self.actor = actor
        self.node = node
        self.reason = reason
