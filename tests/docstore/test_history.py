"""Tests for HistoryEngine: commit, log, diff, show, restore and recovery."""

from __future__ import annotations

import pytest

from pagevault.docstore.context import Workspace
from pagevault.docstore.errors import (
    HistoryCommitFailedError,
    InvalidParentError,
    InvalidPathError,
    NothingToCommitError,
    NotFoundError,
    RevisionNotFoundError,
)
from pagevault.docstore.history.engine import clean_actor, format_message, parse_log
from pagevault.docstore.history.git import GitCommandError
from pagevault.docstore.models.enums import OperationKind
from pagevault.docstore.models.history import OperationDescriptor
from pagevault.docstore.settings import VaultSettings


async def _ids(ws: Workspace, path: str = "") -> list[str]:
    page = await ws.history.log(path, limit=500)
    return [r.id for r in page.revisions]


# -- Initialisation ----------------------------------------------------------------


async def test_initialize_creates_root_commit(workspace: Workspace) -> None:
    page = await workspace.history.log()
    assert len(page.revisions) == 1
    root = page.revisions[0]
    assert root.operation.kind == OperationKind.INIT
    assert root.author == "tester"
    assert page.next_cursor is None


async def test_open_is_idempotent(workspace: Workspace, settings: VaultSettings) -> None:
    await workspace.files.create("a.md", "a")
    before = await _ids(workspace)

    reopened = await Workspace.open(settings)

    assert await _ids(reopened) == before
    assert await reopened.history.initialize() is None


async def test_reconcile_on_open(workspace: Workspace, settings: VaultSettings) -> None:
    (workspace.root / "external.md").write_text("written by hand", encoding="utf-8")
    assert await workspace.history.uncommitted() == ["external.md"]

    reopened = await Workspace.open(settings)

    newest = (await reopened.history.log(limit=1)).revisions[0]
    assert newest.operation.kind == OperationKind.RECONCILE
    assert await reopened.history.uncommitted() == []
    assert await reopened.history.reconcile() is None


# -- Commit ------------------------------------------------------------------------


async def test_commit_twice_yields_nothing_to_commit(workspace: Workspace) -> None:
    (workspace.root / "a.md").write_text("a", encoding="utf-8")
    operation = OperationDescriptor(kind=OperationKind.CREATE, path="a.md")

    revision = await workspace.history.commit(operation, ["a.md"], "alice")
    assert revision
    with pytest.raises(NothingToCommitError):
        await workspace.history.commit(operation, ["a.md"], "alice")


async def test_commit_only_touches_affected_paths(workspace: Workspace) -> None:
    (workspace.root / "mine.md").write_text("mine", encoding="utf-8")
    (workspace.root / "other.md").write_text("other", encoding="utf-8")

    operation = OperationDescriptor(kind=OperationKind.CREATE, path="mine.md")
    await workspace.history.commit(operation, ["mine.md"], "alice")

    assert await workspace.history.uncommitted() == ["other.md"]


def test_message_roundtrip() -> None:
    operation = OperationDescriptor(
        kind=OperationKind.RENAME,
        path="a b.md",
        destination="dir/c.md",
        restored_from="0123456789abcdef",
    )
    message = format_message(operation, "Alice Example")
    raw = f"{'f' * 40}\x1f2026-01-02T03:04:05+00:00\x1fPageVault\x1f{message}\x1e\n".encode()

    [revision] = parse_log(raw)

    assert revision.operation == operation
    assert revision.author == "Alice Example"
    assert revision.summary == "rename: a b.md -> dir/c.md (restored from 0123456789ab)"


def test_parse_foreign_commit() -> None:
    raw = f"{'e' * 40}\x1f2026-01-02T03:04:05+02:00\x1fSomeone\x1fmanual fix\n\x1e\n".encode()
    [revision] = parse_log(raw)
    assert revision.operation.kind == OperationKind.RECONCILE
    assert revision.author == "Someone"
    assert revision.summary == "manual fix"


def test_clean_actor() -> None:
    assert clean_actor("  Alice   Example ") == "Alice Example"
    assert clean_actor("eve\nOperation: delete\r\nActor: alice") == "eve Operation: delete Actor: alice"
    assert clean_actor("\n\t") == "anonymous"


async def test_actor_cannot_inject_trailers(workspace: Workspace) -> None:
    result = await workspace.files.create("a.md", "x", actor="eve\nOperation: delete\nActor: alice")

    newest = (await workspace.history.log(limit=1)).revisions[0]
    assert newest.id == result.revision_id
    assert newest.operation.kind == OperationKind.CREATE
    assert newest.operation.path == "a.md"
    assert newest.author == "eve Operation: delete Actor: alice"


# -- Log -----------------------------------------------------------------------------


async def test_log_pagination(workspace: Workspace) -> None:
    for i in range(5):
        await workspace.files.create(f"f{i}.md", str(i))

    seen: list[str] = []
    cursor = None
    pages = 0
    while True:
        page = await workspace.history.log(limit=2, cursor=cursor)
        pages += 1
        seen.extend(r.id for r in page.revisions)
        if page.next_cursor is None:
            break
        cursor = page.next_cursor

    assert pages == 3
    assert len(seen) == 6
    assert len(set(seen)) == 6
    assert seen == await _ids(workspace)


async def test_log_per_path(workspace: Workspace) -> None:
    await workspace.files.create("a.md", "1")
    await workspace.files.create("b.md", "1")
    await workspace.files.update("a.md", "2")

    page = await workspace.history.log("a.md")

    assert [r.operation.kind for r in page.revisions] == [OperationKind.UPDATE, OperationKind.CREATE]
    assert all(r.operation.path == "a.md" for r in page.revisions)


async def test_log_unknown_cursor(workspace: Workspace) -> None:
    with pytest.raises(RevisionNotFoundError):
        await workspace.history.log(cursor="deadbeef" * 5)


# -- Diff / show ---------------------------------------------------------------------


async def test_diff(workspace: Workspace) -> None:
    first = await workspace.files.create("a.md", "one\n")
    second = await workspace.files.update("a.md", "two\n")

    diff = await workspace.history.diff("a.md", first.revision_id, second.revision_id)

    assert diff.from_revision == first.revision_id
    assert diff.to_revision == second.revision_id
    assert "-one" in diff.patch
    assert "+two" in diff.patch
    assert not diff.binary


async def test_diff_binary(workspace: Workspace) -> None:
    first = await workspace.files.create("img.bin", b"\x00\x01\x02")
    second = await workspace.files.update("img.bin", b"\x00\x03\x04")

    diff = await workspace.history.diff("img.bin", first.revision_id, second.revision_id)
    assert diff.binary


async def test_diff_unknown_revision(workspace: Workspace) -> None:
    result = await workspace.files.create("a.md", "x")
    with pytest.raises(RevisionNotFoundError):
        await workspace.history.diff("a.md", result.revision_id, "not-a-revision")
    with pytest.raises(RevisionNotFoundError):
        await workspace.history.diff("a.md", "--output=/tmp/x", result.revision_id)


async def test_show(workspace: Workspace) -> None:
    first = await workspace.files.create("a.md", "old")
    await workspace.files.update("a.md", "new")

    shown = await workspace.history.show("a.md", first.revision_id)

    assert shown.content == b"old"
    assert shown.revision.id == first.revision_id
    with pytest.raises(NotFoundError):
        await workspace.history.show("never.md", first.revision_id)
    with pytest.raises(RevisionNotFoundError):
        await workspace.history.show("a.md", "0" * 40)


# -- Restore -------------------------------------------------------------------------


async def test_restore(workspace: Workspace) -> None:
    first = await workspace.files.create("a.md", "version 1")
    await workspace.files.update("a.md", "version 2")
    before = await _ids(workspace)

    result = await workspace.history.restore("a.md", first.revision_id, actor="carol")

    assert (await workspace.files.read("a.md")).text == "version 1"
    after = await _ids(workspace)
    assert len(after) == len(before) + 1
    assert after[1:] == before
    newest = (await workspace.history.log(limit=1)).revisions[0]
    assert newest.id == result.revision_id
    assert newest.operation.kind == OperationKind.UPDATE
    assert newest.operation.restored_from == first.revision_id
    assert newest.author == "carol"


async def test_restore_deleted_file(workspace: Workspace) -> None:
    first = await workspace.files.create("gone.md", "keep me")
    await workspace.files.delete("gone.md")

    result = await workspace.history.restore("gone.md", first.revision_id)

    assert result.operation.kind == OperationKind.CREATE
    assert (await workspace.files.read("gone.md")).text == "keep me"


async def test_restore_unknown_revision(workspace: Workspace) -> None:
    await workspace.files.create("a.md", "x")
    with pytest.raises(RevisionNotFoundError):
        await workspace.history.restore("a.md", "f" * 40)


# -- Commit failure and recovery -----------------------------------------------------


async def test_commit_failure_then_recommit(workspace: Workspace, monkeypatch) -> None:
    before = await _ids(workspace)

    def broken_commit(*_args, **_kwargs):
        raise GitCommandError(["commit"], 128, "fatal: unable to write new index file")

    monkeypatch.setattr(workspace.git, "commit", broken_commit)
    with pytest.raises(HistoryCommitFailedError) as excinfo:
        await workspace.files.create("a.md", "kept", actor="dave")
    monkeypatch.undo()

    failure = excinfo.value
    assert failure.paths == ["a.md"]
    assert failure.actor == "dave"
    assert failure.node is not None
    assert isinstance(failure.__cause__, GitCommandError)

    # The mutation stays on disk but is not in history yet.
    assert (await workspace.files.read("a.md")).text == "kept"
    assert await _ids(workspace) == before
    assert await workspace.history.uncommitted() == ["a.md"]

    result = await workspace.files.recommit(failure)

    assert result.revision_id is not None
    assert len(await _ids(workspace)) == len(before) + 1
    newest = (await workspace.history.log(limit=1)).revisions[0]
    assert newest.operation.kind == OperationKind.CREATE
    assert newest.author == "dave"

    # Retrying over a clean tree never duplicates the revision.
    again = await workspace.files.recommit(failure)
    assert again.revision_id is None
    assert len(await _ids(workspace)) == len(before) + 1


async def test_recommit_failed_rename(workspace: Workspace, monkeypatch) -> None:
    await workspace.files.create("a.md", "body")

    def broken_commit(*_args, **_kwargs):
        raise GitCommandError(["commit"], 128, "fatal: index.lock exists")

    monkeypatch.setattr(workspace.git, "commit", broken_commit)
    with pytest.raises(HistoryCommitFailedError) as excinfo:
        await workspace.files.rename("a.md", "b.md")
    monkeypatch.undo()

    result = await workspace.files.recommit(excinfo.value)

    assert result.revision_id is not None
    assert result.operation.destination == "b.md"
    assert await workspace.history.uncommitted() == []


async def test_recommit_rejects_forged_operations(workspace: Workspace) -> None:
    await workspace.files.create("kept.md", "v1")
    (workspace.root / "kept.md").write_text("edited by hand", encoding="utf-8")
    before = await _ids(workspace)

    def forged(kind: OperationKind, path: str, destination: str | None = None) -> HistoryCommitFailedError:
        operation = OperationDescriptor(kind=kind, path=path, destination=destination)
        return HistoryCommitFailedError(operation, [""], "mallory")

    with pytest.raises(InvalidPathError):
        await workspace.files.recommit(forged(OperationKind.RECONCILE, ""))
    with pytest.raises(InvalidPathError):
        await workspace.files.recommit(forged(OperationKind.UPDATE, ""))
    with pytest.raises(InvalidPathError):
        await workspace.files.recommit(forged(OperationKind.UPDATE, "kept.md", "other.md"))
    with pytest.raises(InvalidParentError):
        await workspace.files.recommit(forged(OperationKind.DELETE, "kept.md"))
    with pytest.raises(InvalidParentError):
        await workspace.files.recommit(forged(OperationKind.CREATE, "ghost.md"))

    assert await _ids(workspace) == before
    assert await workspace.history.uncommitted() == ["kept.md"]
