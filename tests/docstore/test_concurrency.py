"""Concurrent mutations and cancellation against a real workspace."""

from __future__ import annotations

import anyio

from pagevault.docstore.context import Workspace


async def _revision_count(ws: Workspace) -> int:
    return len((await ws.history.log(limit=500)).revisions)


async def test_concurrent_updates_same_path(workspace: Workspace) -> None:
    await workspace.files.create("p.md", "c0")
    before = await _revision_count(workspace)

    async with anyio.create_task_group() as tg:
        tg.start_soon(workspace.files.update, "p.md", "c1")
        tg.start_soon(workspace.files.update, "p.md", "c2")

    assert (await workspace.files.read("p.md")).text in {"c1", "c2"}
    assert await _revision_count(workspace) == before + 2
    assert await workspace.history.uncommitted() == []


async def test_concurrent_creates_different_paths(workspace: Workspace) -> None:
    before = await _revision_count(workspace)

    async with anyio.create_task_group() as tg:
        for i in range(8):
            tg.start_soon(workspace.files.create, f"dir{i % 2}/n{i}.md", f"note {i}")

    assert await _revision_count(workspace) == before + 8
    assert await workspace.history.uncommitted() == []
    for i in range(8):
        assert (await workspace.files.read(f"dir{i % 2}/n{i}.md")).text == f"note {i}"


async def test_rename_racing_updates(workspace: Workspace) -> None:
    await workspace.files.create("a.md", "a")
    await workspace.files.create("b.md", "b")

    async with anyio.create_task_group() as tg:
        tg.start_soon(workspace.files.rename, "a.md", "c.md")
        tg.start_soon(workspace.files.update, "b.md", "b2")

    assert (await workspace.files.read("c.md")).text == "a"
    assert (await workspace.files.read("b.md")).text == "b2"
    assert await workspace.history.uncommitted() == []


async def test_cancel_while_waiting_for_lock(workspace: Workspace) -> None:
    await workspace.files.create("p.md", "old")
    before = await _revision_count(workspace)
    release = anyio.Event()
    cancelled: list[bool] = []

    async def holder() -> None:
        async with workspace.locks.hold("p.md"):
            await release.wait()

    async def writer() -> None:
        with anyio.move_on_after(0.05) as scope:
            await workspace.files.update("p.md", "new")
        cancelled.append(scope.cancelled_caught)
        release.set()

    async with anyio.create_task_group() as tg:
        tg.start_soon(holder)
        await anyio.sleep(0.01)
        tg.start_soon(writer)

    assert cancelled == [True]
    assert (await workspace.files.read("p.md")).text == "old"
    assert await _revision_count(workspace) == before
    assert workspace.locks.active_count == 0


async def test_cancel_after_start_completes_mutation(workspace: Workspace) -> None:
    before = await _revision_count(workspace)
    started = anyio.Event()
    original_commit = workspace.history.commit

    async def slow_commit(*args, **kwargs):
        started.set()
        await anyio.sleep(0.05)
        return await original_commit(*args, **kwargs)

    workspace.history.commit = slow_commit  # type: ignore[method-assign]

    async with anyio.create_task_group() as tg:
        tg.start_soon(workspace.files.create, "shielded.md", "x")
        await started.wait()
        tg.cancel_scope.cancel()

    # The filesystem step had begun, so the commit still went through.
    assert (await workspace.files.read("shielded.md")).text == "x"
    assert await _revision_count(workspace) == before + 1
    assert await workspace.history.uncommitted() == []
