"""Shared enumerations used across the document store."""

from __future__ import annotations

from enum import StrEnum

# -- Tree --------------------------------------------------------------------


class NodeKind(StrEnum):
    FILE = "file"
    DIRECTORY = "directory"


# -- History -----------------------------------------------------------------


class OperationKind(StrEnum):
    """What a revision records.

    The first five are user mutations.  ``INIT`` marks the empty root commit
    and ``RECONCILE`` a sweep of changes made outside the store.
    """

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RENAME = "rename"
    MOVE = "move"
    INIT = "init"
    RECONCILE = "reconcile"


# -- Errors ------------------------------------------------------------------


class ErrorKind(StrEnum):
    """Stable failure codes.  The HTTP layer maps these to status codes."""

    INVALID_PATH = "invalid_path"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID_PARENT = "invalid_parent"
    NOTHING_TO_COMMIT = "nothing_to_commit"
    HISTORY_COMMIT_FAILED = "history_commit_failed"
    REVISION_NOT_FOUND = "revision_not_found"
    IO_FAILURE = "io_failure"
    SIZE_LIMIT_EXCEEDED = "size_limit_exceeded"
