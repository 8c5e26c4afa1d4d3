"""History engine -- one git commit per document store mutation.

The engine owns the repository at the workspace root.  It is async at the
edges and pushes every git call into the thread pool while holding a single
repository lock: git's index is shared by the whole working tree, so staging
and committing for two paths must not overlap even when the File Store lets
their filesystem steps run concurrently.

Commit messages are structured so ``log`` can rebuild what happened::

    rename: notes/a.md -> notes/b.md

    Operation: rename
    Path: notes/a.md
    Destination: notes/b.md
    Actor: alice

Restores write through the File Store, so history is only ever appended to.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Any, TypeVar

import anyio
from anyio import to_thread
from loguru import logger

from pagevault.docstore.errors import (
    NothingToCommitError,
    NotFoundError,
    RevisionNotFoundError,
)
from pagevault.docstore.models.enums import OperationKind
from pagevault.docstore.models.history import (
    Diff,
    MutationResult,
    OperationDescriptor,
    Revision,
    RevisionContent,
    RevisionPage,
)

if TYPE_CHECKING:
    from pagevault.docstore.context import Workspace
    from pagevault.docstore.history.git import GitBackend

T = TypeVar("T")

SERVICE_NAME = "PageVault"

_TRAILER_RE = re.compile(r"^(Operation|Path|Destination|Actor|Restored-From): ?(.*)$")
_SLUG_RE = re.compile(r"[^A-Za-z0-9._-]+")
_SPACE_RE = re.compile(r"\s+")


def clean_actor(actor: str) -> str:
    """Collapse whitespace and drop control characters so *actor* fits on one trailer line."""
    printable = "".join(ch if ch.isprintable() else " " for ch in actor)
    return _SPACE_RE.sub(" ", printable).strip() or "anonymous"


def format_message(operation: OperationDescriptor, actor: str) -> str:
    """Commit message for *operation*: summary line plus parseable trailers."""
    trailers = [f"Operation: {operation.kind.value}", f"Path: {operation.path}"]
    if operation.destination is not None:
        trailers.append(f"Destination: {operation.destination}")
    if operation.restored_from:
        trailers.append(f"Restored-From: {operation.restored_from}")
    trailers.append(f"Actor: {actor}")
    return operation.summary() + "\n\n" + "\n".join(trailers) + "\n"


def parse_log(raw: bytes) -> list[Revision]:
    """Parse ``GitBackend.log`` output into revisions, newest first."""
    revisions: list[Revision] = []
    for record in raw.decode("utf-8", errors="replace").split("\x1e"):
        record = record.strip("\n")
        if not record:
            continue
        commit_id, timestamp, author, body = record.split("\x1f", 3)
        revisions.append(_parse_revision(commit_id, timestamp, author, body))
    return revisions


def _parse_revision(commit_id: str, timestamp: str, author: str, body: str) -> Revision:
    lines = body.strip().splitlines()
    summary = lines[0] if lines else ""
    fields: dict[str, str] = {}
    for line in lines[1:]:
        match = _TRAILER_RE.match(line)
        if match:
            fields[match.group(1)] = match.group(2)

    try:
        kind = OperationKind(fields.get("Operation", ""))
    except ValueError:
        # Commits made outside the store (e.g. by hand) have no trailers.
        kind = OperationKind.RECONCILE

    operation = OperationDescriptor(
        kind=kind,
        path=fields.get("Path", ""),
        destination=fields.get("Destination"),
        restored_from=fields.get("Restored-From") or None,
    )
    return Revision(
        id=commit_id,
        timestamp=datetime.fromisoformat(timestamp),
        author=fields.get("Actor", author),
        operation=operation,
        summary=summary,
    )


class HistoryEngine:
    """Stage-and-commit wrapper exposing log / diff / show / restore."""

    def __init__(self, workspace: Workspace, git: GitBackend) -> None:
        self._ws = workspace
        self._git = git
        self._repo_lock = anyio.Lock()
        self._author_domain = workspace.settings.author_domain

    def _author(self, actor: str) -> tuple[str, str]:
        name = clean_actor(actor)
        slug = _SLUG_RE.sub("-", name).strip("-") or "anonymous"
        return name, f"{slug}@{self._author_domain}"

    async def _git_call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        async with self._repo_lock:
            return await to_thread.run_sync(partial(func, *args, **kwargs))

    # -- Lifecycle -------------------------------------------------------------

    async def initialize(self) -> str | None:
        """Create the repository with an empty root commit.  Idempotent.

        Returns the root commit id when one was created, else ``None``.
        """
        async with self._repo_lock:
            return await to_thread.run_sync(self._initialize_sync)

    def _initialize_sync(self) -> str | None:
        git = self._git
        if not git.is_repository():
            logger.info("History: initialising repository at {}", git.root)
            git.init(name=SERVICE_NAME, email=f"service@{self._author_domain}")
        if git.has_head():
            return None
        operation = OperationDescriptor(kind=OperationKind.INIT)
        name, email = self._author(self._ws.settings.default_actor)
        revision = git.commit(
            format_message(operation, name),
            author_name=name,
            author_email=email,
            allow_empty=True,
        )
        logger.info("History: root commit {}", revision[:12])
        return revision

    # -- Commit ----------------------------------------------------------------

    async def commit(self, operation: OperationDescriptor, paths: Sequence[str], actor: str) -> str:
        """Stage *paths* and commit them as one revision.

        Raises ``NothingToCommitError`` if the staged change set for *paths*
        is empty, which makes re-committing a clean tree harmless.
        """
        return await self._git_call(self._commit_sync, operation, list(paths), actor)

    def _commit_sync(self, operation: OperationDescriptor, paths: list[str], actor: str) -> str:
        git = self._git
        git.stage(paths)
        changed = git.staged_changes(paths)
        if not changed:
            raise NothingToCommitError(f"No changes to commit for '{operation.summary()}'", path=operation.path)

        # Commit the requested paths that actually changed; unrelated staged
        # entries (e.g. from an earlier failed commit) are left alone.
        scope = [p for p in paths if any(not p or c == p or c.startswith(p + "/") for c in changed)]
        name, email = self._author(actor)
        revision = git.commit(
            format_message(operation, name),
            author_name=name,
            author_email=email,
            paths=scope,
        )
        logger.info("History: {} -> {} ({} file(s), actor={})", operation.summary(), revision[:12], len(changed), name)
        return revision

    async def reconcile(self, actor: str | None = None) -> str | None:
        """Commit every working-tree change made outside the store.

        Returns the new revision id, or ``None`` if the tree was clean.  Holds
        the tree gate exclusively so no store mutation is mid-flight.
        """
        actor = actor or self._ws.settings.default_actor
        operation = OperationDescriptor(kind=OperationKind.RECONCILE)
        async with self._ws.locks.hold(exclusive=True):
            pending = await self._git_call(self._git.status)
            if not pending:
                return None
            logger.warning("History: reconciling {} uncommitted path(s)", len(pending))
            try:
                return await self._git_call(self._commit_sync, operation, [""], actor)
            except NothingToCommitError:
                return None

    async def uncommitted(self) -> list[str]:
        """Paths whose working-tree state is not in HEAD."""
        return await self._git_call(self._git.status)

    # -- Read ------------------------------------------------------------------

    async def resolve(self, revision: str, *, path: str | None = None) -> str:
        """Full commit id for *revision*.  Raises ``RevisionNotFoundError``."""
        full = await self._git_call(self._git.verify_commit, revision)
        if full is None:
            raise RevisionNotFoundError(revision, path=path)
        return full

    async def log(self, path: str = "", *, limit: int = 50, cursor: str | None = None) -> RevisionPage:
        """Revisions touching *path* (the whole tree for ``""``), newest first.

        *cursor* is the ``next_cursor`` of a previous page; the page then
        resumes strictly after that revision.
        """
        safe = self._ws.paths.resolve(path)
        limit = max(1, limit)
        start = "HEAD" if cursor is None else await self.resolve(cursor, path=safe)
        # One extra entry tells us whether another page exists; one more when
        # resuming, since the cursor revision itself comes back first.
        fetch = limit + 1 + (1 if cursor is not None else 0)
        raw = await self._git_call(self._git.log, start, path=safe, limit=fetch)
        revisions = parse_log(raw)
        if cursor is not None and revisions and revisions[0].id == start:
            revisions = revisions[1:]

        page = revisions[:limit]
        next_cursor = page[-1].id if len(revisions) > limit else None
        return RevisionPage(revisions=page, next_cursor=next_cursor)

    async def get(self, revision: str) -> Revision:
        """Metadata for a single revision."""
        full = await self.resolve(revision)
        raw = await self._git_call(self._git.log, full, limit=1)
        return parse_log(raw)[0]

    async def diff(self, path: str, rev_a: str, rev_b: str) -> Diff:
        safe = self._ws.paths.resolve(path)
        full_a = await self.resolve(rev_a, path=safe)
        full_b = await self.resolve(rev_b, path=safe)
        patch, binary = await self._git_call(self._git.diff, full_a, full_b, safe)
        return Diff(path=safe, from_revision=full_a, to_revision=full_b, patch=patch, binary=binary)

    async def show(self, path: str, revision: str) -> RevisionContent:
        """Content of *path* as of *revision*.

        Raises ``RevisionNotFoundError`` for unknown revisions and
        ``NotFoundError`` if the path was not a file at that point.
        """
        safe = self._ws.paths.resolve(path)
        meta = await self.get(revision)
        content = await self._git_call(self._git.blob, meta.id, safe)
        if content is None:
            msg = f"'{safe}' does not exist at revision {meta.id[:12]}"
            raise NotFoundError(msg, path=safe)
        return RevisionContent(revision=meta, path=safe, content=content)

    # -- Restore ---------------------------------------------------------------

    async def restore(self, path: str, revision: str, *, actor: str | None = None) -> MutationResult:
        """Write *path*'s content at *revision* back as a new revision.

        Goes through the File Store (``update`` if the path exists, ``create``
        otherwise), so earlier revisions are never touched.  Restoring content
        identical to the current state yields no new revision.
        """
        historical = await self.show(path, revision)
        files = self._ws.files
        if await files.exists(historical.path):
            return await files.update(
                historical.path, historical.content, actor=actor, restored_from=historical.revision.id
            )
        return await files.create(historical.path, historical.content, actor=actor, restored_from=historical.revision.id)
