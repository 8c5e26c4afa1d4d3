"""Local filesystem File Store.

Path-addressed CRUD over the workspace tree.  The root mirrors the logical
tree 1:1::

    {root}/notes/todo.md
    {root}/.attachments/diagram.png
    {root}/.git/                      (History Engine only, never exposed)

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Writes are atomic: data is written to a temporary file in the target's
directory, then renamed over the target, so concurrent readers see either the
old or the new content and never a torn write.

Every mutation runs as one critical section (see ``locks.py``)::

    lock -> filesystem step -> History Engine commit -> unlock

If the filesystem step fails nothing is committed.  If the commit fails the
change stays on disk and ``HistoryCommitFailedError`` is raised so the caller
can retry only the commit with ``recommit``.  Once the filesystem step has
started the section is shielded from cancellation, so a cancelled request
never leaves a change behind without its commit.
"""

from __future__ import annotations

import contextlib
import errno
import os
import shutil
import tempfile
from collections.abc import AsyncIterable, AsyncIterator, Callable
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

import anyio
from anyio import to_thread
from anyio.lowlevel import checkpoint
from loguru import logger

from pagevault.docstore.errors import (
    AlreadyExistsError,
    DocStoreError,
    HistoryCommitFailedError,
    InvalidParentError,
    InvalidPathError,
    IOFailureError,
    NothingToCommitError,
    NotFoundError,
    SizeLimitExceededError,
)
from pagevault.docstore.models.enums import NodeKind, OperationKind
from pagevault.docstore.models.history import MutationResult, OperationDescriptor
from pagevault.docstore.models.nodes import FileContent, FileNode, FolderNode, Template
from pagevault.docstore.store.paths import ROOT, VCS_DIR, SafePath, ancestors, is_within, join, name

if TYPE_CHECKING:
    from pagevault.docstore.context import Workspace

T = TypeVar("T")

TEMP_PREFIX = ".~pv-"
"""Prefix of in-flight temp files.  Hidden from ``list`` and excluded from git."""

DEFAULT_CHUNK_SIZE = 64 * 1024

_RECOMMIT_KINDS = frozenset(
    {OperationKind.CREATE, OperationKind.UPDATE, OperationKind.DELETE, OperationKind.RENAME, OperationKind.MOVE}
)


class FileStore:
    """Filesystem operations over one workspace, with a commit per mutation."""

    def __init__(self, workspace: Workspace) -> None:
        self._ws = workspace
        self._paths = workspace.paths
        self._root = workspace.paths.root

    def _os_path(self, path: SafePath) -> Path:
        return self._paths.to_os_path(path)

    def _limit_for(self, path: SafePath) -> int:
        settings = self._ws.settings
        return settings.max_attachment_size if self._paths.is_attachment(path) else settings.max_file_size

    async def _run(self, func: Callable[..., T], *args: object) -> T:
        """Run a sync helper in the thread pool, mapping raw ``OSError`` to ``IOFailureError``."""
        try:
            return await to_thread.run_sync(partial(func, *args))
        except DocStoreError:
            raise
        except OSError as exc:
            msg = f"{exc.strerror or exc.__class__.__name__}: {exc.filename or ''}".strip(": ")
            raise IOFailureError(msg) from exc

    # -- Read ------------------------------------------------------------------

    async def read(self, path: str) -> FileContent:
        """Content and metadata of a file.  Raises ``NotFoundError`` if absent."""
        safe = self._paths.resolve(path)
        return await self._run(_read_file, self._os_path(safe), safe, self._paths.is_attachment(safe))

    async def stat(self, path: str) -> FileNode:
        safe = self._paths.resolve(path)
        os_path = self._os_path(safe)
        if not await to_thread.run_sync(os.path.lexists, os_path):
            msg = f"'{safe}' not found"
            raise NotFoundError(msg, path=safe)
        return await self._run(_node, os_path, safe, self._paths.is_attachment(safe))

    async def exists(self, path: str) -> bool:
        safe = self._paths.resolve(path)
        return await to_thread.run_sync(os.path.lexists, self._os_path(safe))

    async def list(self, path: str = "") -> list[FileNode]:
        """Immediate children of a directory, directories first."""
        safe = self._paths.resolve(path)
        return await self._run(_list_dir, self._os_path(safe), safe, self._paths.is_attachment)

    async def tree(self, path: str = "") -> FolderNode:
        """Recursive directory-only tree.  Hidden (dot) directories are skipped."""
        safe = self._paths.resolve(path)
        return await self._run(_folder_tree, self._os_path(safe), safe)

    # -- Write -----------------------------------------------------------------

    async def create(
        self,
        path: str,
        content: bytes | str = b"",
        *,
        actor: str | None = None,
        restored_from: str | None = None,
    ) -> MutationResult:
        """Create a file.  Missing parent directories are created.

        Raises ``AlreadyExistsError`` if anything exists at *path* and
        ``InvalidParentError`` if an ancestor is a file.
        """
        safe = self._require_non_root(path)
        data = self._encode(safe, content)
        operation = OperationDescriptor(kind=OperationKind.CREATE, path=safe, restored_from=restored_from)
        step = partial(_create_file, self._root, self._os_path(safe), safe, data, self._paths.is_attachment(safe))
        return await self._mutate(operation, [safe], step, actor)

    async def update(
        self,
        path: str,
        content: bytes | str,
        *,
        actor: str | None = None,
        restored_from: str | None = None,
    ) -> MutationResult:
        """Atomically replace a file's content.  Raises ``NotFoundError`` if absent."""
        safe = self._require_non_root(path)
        data = self._encode(safe, content)
        operation = OperationDescriptor(kind=OperationKind.UPDATE, path=safe, restored_from=restored_from)
        step = partial(_update_file, self._os_path(safe), safe, data, self._paths.is_attachment(safe))
        return await self._mutate(operation, [safe], step, actor)

    async def delete(self, path: str, *, actor: str | None = None) -> MutationResult:
        """Remove a file, or a directory with everything beneath it."""
        safe = self._require_non_root(path)
        operation = OperationDescriptor(kind=OperationKind.DELETE, path=safe)
        step = partial(_delete_node, self._os_path(safe), safe)
        return await self._mutate(operation, [safe], step, actor, exclusive=True)

    async def rename(self, old_path: str, new_path: str, *, actor: str | None = None) -> MutationResult:
        return await self._relocate(OperationKind.RENAME, old_path, new_path, actor)

    async def move(self, old_path: str, new_path: str, *, actor: str | None = None) -> MutationResult:
        return await self._relocate(OperationKind.MOVE, old_path, new_path, actor)

    async def move_into(self, old_path: str, folder: str, *, actor: str | None = None) -> MutationResult:
        """Move *old_path* under *folder*, keeping its name."""
        src = self._require_non_root(old_path)
        dest_dir = self._paths.resolve(folder)
        return await self.move(src, join(dest_dir, name(src)), actor=actor)

    async def mkdir(self, path: str, *, actor: str | None = None) -> MutationResult:
        """Create a directory and any missing parents.

        git does not track empty directories, so this normally yields no
        revision.
        """
        safe = self._require_non_root(path)
        operation = OperationDescriptor(kind=OperationKind.CREATE, path=safe)
        step = partial(_make_dir, self._root, self._os_path(safe), safe, self._paths.is_attachment(safe))
        return await self._mutate(operation, [safe], step, actor)

    async def _relocate(self, kind: OperationKind, old_path: str, new_path: str, actor: str | None) -> MutationResult:
        src = self._require_non_root(old_path)
        dst = self._require_non_root(new_path)
        if self._paths.is_attachment(src) != self._paths.is_attachment(dst):
            msg = f"Cannot {kind.value} across the attachments boundary: '{src}' -> '{dst}'"
            raise InvalidParentError(msg, path=dst)
        if src != dst and is_within(dst, src):
            msg = f"Cannot {kind.value} '{src}' into itself"
            raise InvalidParentError(msg, path=dst)

        operation = OperationDescriptor(kind=kind, path=src, destination=dst)
        step = partial(
            _relocate_node,
            self._root,
            self._os_path(src),
            self._os_path(dst),
            src,
            dst,
            self._paths.is_attachment(dst),
        )
        return await self._mutate(operation, [src, dst], step, actor, exclusive=True)

    # -- Attachments -----------------------------------------------------------

    async def upload_attachment(
        self,
        attachment: str,
        chunks: AsyncIterable[bytes],
        *,
        actor: str | None = None,
    ) -> MutationResult:
        """Stream *chunks* into a new attachment.

        The body is spooled to a hidden temp file under the attachments
        subtree first (outside any lock, enforcing ``max_attachment_size`` as
        it goes); only the final rename and the commit run in the critical
        section.
        """
        safe = self._paths.attachment(attachment)
        limit = self._limit_for(safe)
        spool_dir = self._os_path(self._paths.attachments_dir)
        tmp_path = await self._run(_spool_file, spool_dir)
        try:
            size = 0
            async with await anyio.open_file(tmp_path, "wb") as f:
                async for chunk in chunks:
                    size += len(chunk)
                    if size > limit:
                        raise SizeLimitExceededError(size, limit, path=safe)
                    await f.write(chunk)

            operation = OperationDescriptor(kind=OperationKind.CREATE, path=safe)
            step = partial(_place_file, self._root, tmp_path, self._os_path(safe), safe)
            result = await self._mutate(operation, [safe], step, actor)
        finally:
            with anyio.CancelScope(shield=True):
                await to_thread.run_sync(_discard, tmp_path)
        return result

    async def open_attachment(
        self,
        attachment: str,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> tuple[FileNode, AsyncIterator[bytes]]:
        """Metadata plus a chunk iterator for streaming an attachment out."""
        safe = self._paths.attachment(attachment)
        node = await self.stat(safe)
        if node.is_dir:
            msg = f"'{safe}' is a directory"
            raise NotFoundError(msg, path=safe)
        os_path = self._os_path(safe)

        async def _chunks() -> AsyncIterator[bytes]:
            # Opened on first iteration so an unconsumed stream holds no handle.
            try:
                handle = await anyio.open_file(os_path, "rb")
            except FileNotFoundError:
                msg = f"'{safe}' not found"
                raise NotFoundError(msg, path=safe) from None
            async with handle:
                while chunk := await handle.read(chunk_size):
                    yield chunk

        return node, _chunks()

    async def list_attachments(self, folder: str = "") -> list[FileNode]:
        """Attachment files directly under *folder* of the attachments subtree."""
        safe = self._paths.attachment(folder) if self._paths.resolve(folder) else self._paths.attachments_dir
        os_path = self._os_path(safe)
        if not await to_thread.run_sync(os.path.isdir, os_path):
            return []
        nodes = await self._run(_list_dir, os_path, safe, self._paths.is_attachment)
        return [n for n in nodes if not n.is_dir]

    # -- Templates -------------------------------------------------------------

    async def list_templates(self) -> list[Template]:
        """Text documents directly under ``templates_dir``, sorted by name.

        Returns ``[]`` when the folder does not exist.  Binary files are skipped.
        """
        safe = self._paths.resolve(self._ws.settings.templates_dir)
        if safe == ROOT:
            msg = "The templates folder cannot be the workspace root"
            raise InvalidPathError(msg, path=safe)
        return await self._run(_read_templates, self._os_path(safe), safe)

    # -- Commit recovery -------------------------------------------------------

    async def recommit(self, failure: HistoryCommitFailedError) -> MutationResult:
        """Retry only the commit step of a failed mutation.

        The paths to commit are derived from ``failure.operation`` and the
        operation must still describe the tree on disk: a removed source is
        gone, a created or moved target is present.  Idempotent: if the change
        was committed in the meantime (or by ``reconcile``) this returns with
        ``revision_id=None``.
        """
        operation = failure.operation
        if operation.kind not in _RECOMMIT_KINDS:
            msg = f"Only user mutations can be recommitted, not '{operation.kind.value}'"
            raise InvalidPathError(msg, path=operation.path)
        moved = operation.kind in (OperationKind.RENAME, OperationKind.MOVE)
        if moved != (operation.destination is not None):
            msg = f"'{operation.kind.value}' recommit has an unexpected destination"
            raise InvalidPathError(msg, path=operation.path)

        src = self._require_non_root(operation.path)
        dst = self._require_non_root(operation.destination) if operation.destination is not None else None
        paths = [src] if dst is None else [src, dst]
        operation = operation.model_copy(update={"path": src, "destination": dst})

        async with self._ws.locks.hold(*paths):
            present = {p: await self._run(os.path.lexists, self._paths.to_os_path(p)) for p in paths}
            expected = {src: operation.kind in (OperationKind.CREATE, OperationKind.UPDATE)}
            if dst is not None:
                expected[dst] = True
            if present != expected:
                msg = f"'{operation.summary()}' does not match the workspace"
                raise InvalidParentError(msg, path=src)
            with anyio.CancelScope(shield=True):
                revision = await self._commit(operation, list(paths), failure.actor, failure.node)
        return MutationResult(operation=operation, node=failure.node, revision_id=revision)

    # -- Internals -------------------------------------------------------------

    def _require_non_root(self, path: str) -> SafePath:
        safe = self._paths.resolve(path)
        if safe == ROOT:
            msg = "The workspace root cannot be modified directly"
            raise InvalidPathError(msg, path=path)
        return safe

    def _encode(self, path: SafePath, content: bytes | str) -> bytes:
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        limit = self._limit_for(path)
        if len(data) > limit:
            raise SizeLimitExceededError(len(data), limit, path=path)
        return data

    async def _mutate(
        self,
        operation: OperationDescriptor,
        paths: list[SafePath],
        step: Callable[[], FileNode | None],
        actor: str | None,
        *,
        exclusive: bool = False,
    ) -> MutationResult:
        actor = actor or self._ws.settings.default_actor
        async with self._ws.locks.hold(*paths, exclusive=exclusive):
            # Last point at which cancellation aborts the operation cleanly.
            await checkpoint()
            with anyio.CancelScope(shield=True):
                node = await self._run(step)
                logger.debug("Store: {} applied (actor={})", operation.summary(), actor)
                revision = await self._commit(operation, list(paths), actor, node)
        return MutationResult(operation=operation, node=node, revision_id=revision)

    async def _commit(
        self,
        operation: OperationDescriptor,
        paths: list[str],
        actor: str,
        node: FileNode | None,
    ) -> str | None:
        try:
            return await self._ws.history.commit(operation, paths, actor)
        except NothingToCommitError:
            logger.debug("Store: nothing to commit for {}", operation.summary())
            return None
        except (DocStoreError, OSError) as exc:
            logger.warning("Store: commit failed for {}: {}", operation.summary(), exc)
            raise HistoryCommitFailedError(operation, paths, actor, node=node, reason=str(exc)) from exc


# -- Sync helpers (run in thread pool) -----------------------------------------


def _node(os_path: Path, path: SafePath, attachment: bool) -> FileNode:
    st = os.stat(os_path)
    is_dir = os.path.isdir(os_path)
    return FileNode(
        path=path,
        name=name(path) if path else "",
        kind=NodeKind.DIRECTORY if is_dir else NodeKind.FILE,
        size=0 if is_dir else st.st_size,
        modified_at=datetime.fromtimestamp(st.st_mtime, tz=UTC),
        attachment=attachment,
    )


def _atomic_write(path: Path, data: bytes) -> None:
    """Write data atomically: temp file + rename.

    Ensures readers never see a partially-written file.  The temp file is
    created in the same directory so ``os.replace`` is atomic on POSIX.
    An existing file keeps its permission bits.
    """
    try:
        mode = os.stat(path).st_mode & 0o777
    except FileNotFoundError:
        mode = 0o644
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=TEMP_PREFIX, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _ensure_parents(root: Path, path: SafePath) -> None:
    """Create missing ancestors of *path*; fail if one of them is not a directory."""
    for ancestor in ancestors(path):
        os_path = root / ancestor
        if os.path.isdir(os_path):
            continue
        msg = f"Ancestor '{ancestor}' of '{path}' is not a directory"
        if os.path.lexists(os_path):
            raise InvalidParentError(msg, path=path)
        try:
            os.mkdir(os_path)
        except FileExistsError:
            # Created concurrently by a write to a sibling path.
            if not os.path.isdir(os_path):
                raise InvalidParentError(msg, path=path) from None


def _check_parent_exists(root: Path, path: SafePath) -> None:
    """Fail unless every ancestor of *path* already exists as a directory."""
    for ancestor in ancestors(path):
        if not os.path.isdir(root / ancestor):
            msg = f"Destination parent '{ancestor}' does not exist or is not a directory"
            raise InvalidParentError(msg, path=path)


def _create_file(root: Path, os_path: Path, path: SafePath, data: bytes, attachment: bool) -> FileNode:
    if os.path.lexists(os_path):
        msg = f"'{path}' already exists"
        raise AlreadyExistsError(msg, path=path)
    _ensure_parents(root, path)
    _atomic_write(os_path, data)
    return _node(os_path, path, attachment)


def _update_file(os_path: Path, path: SafePath, data: bytes, attachment: bool) -> FileNode:
    if not os.path.isfile(os_path):
        msg = f"'{path}' not found" if not os.path.lexists(os_path) else f"'{path}' is not a file"
        raise NotFoundError(msg, path=path)
    _atomic_write(os_path, data)
    return _node(os_path, path, attachment)


def _make_dir(root: Path, os_path: Path, path: SafePath, attachment: bool) -> FileNode:
    if os.path.lexists(os_path):
        msg = f"'{path}' already exists"
        raise AlreadyExistsError(msg, path=path)
    _ensure_parents(root, path)
    os.mkdir(os_path)
    return _node(os_path, path, attachment)


def _delete_node(os_path: Path, path: SafePath) -> None:
    if not os.path.lexists(os_path):
        msg = f"'{path}' not found"
        raise NotFoundError(msg, path=path)
    if os.path.isdir(os_path) and not os.path.islink(os_path):
        shutil.rmtree(os_path)
    else:
        os.unlink(os_path)


def _relocate_node(
    root: Path, src_os: Path, dst_os: Path, src: SafePath, dst: SafePath, attachment: bool
) -> FileNode:
    if not os.path.lexists(src_os):
        msg = f"'{src}' not found"
        raise NotFoundError(msg, path=src)
    if os.path.lexists(dst_os):
        msg = f"'{dst}' already exists"
        raise AlreadyExistsError(msg, path=dst)
    _check_parent_exists(root, dst)

    try:
        os.rename(src_os, dst_os)
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise
        logger.debug("Store: cross-device rename {} -> {}, copying", src, dst)
        _copy_then_delete(src_os, dst_os)
    return _node(dst_os, dst, attachment)


def _copy_then_delete(src: Path, dst: Path) -> None:
    """Fallback for renames across mount points; undoes the copy on failure."""
    try:
        if os.path.isdir(src) and not os.path.islink(src):
            shutil.copytree(src, dst, symlinks=True)
        else:
            shutil.copy2(src, dst, follow_symlinks=False)
    except BaseException:
        _discard(dst)
        raise
    try:
        if os.path.isdir(src) and not os.path.islink(src):
            shutil.rmtree(src)
        else:
            os.unlink(src)
    except BaseException:
        # Source is (partly) still there: drop the copy so only one remains.
        if os.path.lexists(src):
            _discard(dst)
        raise


def _discard(path: str | Path) -> None:
    """Remove a file or directory tree if present.  Never raises."""
    with contextlib.suppress(OSError):
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        else:
            os.unlink(path)


def _spool_file(spool_dir: Path) -> str:
    """Create an empty hidden temp file for a streamed upload."""
    if os.path.lexists(spool_dir) and not os.path.isdir(spool_dir):
        msg = f"Attachments location '{spool_dir.name}' is not a directory"
        raise InvalidParentError(msg)
    spool_dir.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=spool_dir, prefix=TEMP_PREFIX, suffix=".upload")
    os.close(fd)
    return tmp_path


def _place_file(root: Path, tmp_path: str, os_path: Path, path: SafePath) -> FileNode:
    if os.path.lexists(os_path):
        msg = f"'{path}' already exists"
        raise AlreadyExistsError(msg, path=path)
    _ensure_parents(root, path)
    os.chmod(tmp_path, 0o644)
    os.replace(tmp_path, os_path)
    return _node(os_path, path, True)


def _read_file(os_path: Path, path: SafePath, attachment: bool) -> FileContent:
    if not os.path.lexists(os_path):
        msg = f"'{path}' not found"
        raise NotFoundError(msg, path=path)
    if os.path.isdir(os_path):
        msg = f"'{path}' is a directory"
        raise NotFoundError(msg, path=path)
    with open(os_path, "rb") as f:
        data = f.read()
    return FileContent(node=_node(os_path, path, attachment), content=data)


def _read_templates(os_path: Path, path: SafePath) -> list[Template]:
    if not os.path.isdir(os_path):
        return []
    templates: list[Template] = []
    with os.scandir(os_path) as it:
        for entry in it:
            if _hidden(entry.name) or not entry.is_file(follow_symlinks=False):
                continue
            with open(entry.path, "rb") as f:
                data = f.read()
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError:
                continue
            templates.append(Template(name=Path(entry.name).stem, path=join(path, entry.name), content=text))
    templates.sort(key=lambda t: (t.name.casefold(), t.path))
    return templates


def _hidden(entry_name: str) -> bool:
    return entry_name.casefold() == VCS_DIR or entry_name.startswith(TEMP_PREFIX)


def _list_dir(os_path: Path, path: SafePath, is_attachment: Callable[[SafePath], bool]) -> list[FileNode]:
    if not os.path.isdir(os_path):
        msg = f"Directory '{path}' not found" if not os.path.lexists(os_path) else f"'{path}' is not a directory"
        raise NotFoundError(msg, path=path)
    nodes: list[FileNode] = []
    with os.scandir(os_path) as it:
        for entry in it:
            if _hidden(entry.name):
                continue
            child = join(path, entry.name)
            try:
                nodes.append(_node(Path(entry.path), child, is_attachment(child)))
            except FileNotFoundError:
                # Removed between scandir and stat.
                continue
    nodes.sort(key=lambda n: (not n.is_dir, n.name.casefold()))
    return nodes


def _folder_tree(os_path: Path, path: SafePath) -> FolderNode:
    if not os.path.isdir(os_path):
        msg = f"Directory '{path}' not found"
        raise NotFoundError(msg, path=path)
    children: list[FolderNode] = []
    with os.scandir(os_path) as it:
        entries = sorted(
            (e for e in it if e.is_dir(follow_symlinks=False) and not e.name.startswith(".")),
            key=lambda e: e.name.casefold(),
        )
    for entry in entries:
        children.append(_folder_tree(Path(entry.path), join(path, entry.name)))
    return FolderNode(name=name(path) if path else "root", path=path, children=children)
