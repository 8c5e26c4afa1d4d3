"""In-process lock arena for mutation critical sections.

A mutation's critical section covers both its filesystem step and its commit,
so two writers to the same path can never interleave.  Two layers:

- **Tree gate**: shared/exclusive.  Single-path writes (create, update,
  upload) hold it shared; operations that can touch whole subtrees
  (delete, rename, move) hold it exclusively.
- **Path locks**: one ``anyio.Lock`` per normalized path, created on demand
  and dropped again once nobody holds or waits for it.

Locks are always taken gate first, then paths in sorted order, which rules
out lock-order deadlocks between concurrent multi-path operations.
Ephemeral: empty on process restart.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

import anyio
from loguru import logger


class _TreeGate:
    """Writer-preferring shared/exclusive lock built on ``anyio.Condition``."""

    def __init__(self) -> None:
        self._cond = anyio.Condition()
        self._shared = 0
        self._exclusive = False
        self._exclusive_waiting = 0

    @asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        async with self._cond:
            while self._exclusive or self._exclusive_waiting:
                await self._cond.wait()
            self._shared += 1
        try:
            yield
        finally:
            with anyio.CancelScope(shield=True):
                async with self._cond:
                    self._shared -= 1
                    self._cond.notify_all()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._cond:
            self._exclusive_waiting += 1
            try:
                while self._exclusive or self._shared:
                    await self._cond.wait()
            finally:
                self._exclusive_waiting -= 1
                if not self._exclusive and not self._shared:
                    # Wake shared waiters that queued behind us if we were cancelled.
                    self._cond.notify_all()
            self._exclusive = True
        try:
            yield
        finally:
            with anyio.CancelScope(shield=True):
                async with self._cond:
                    self._exclusive = False
                    self._cond.notify_all()


class LockArena:
    """Per-path lock handles keyed by normalized path."""

    def __init__(self) -> None:
        self._gate = _TreeGate()
        self._locks: dict[str, anyio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, *paths: str, exclusive: bool = False) -> AsyncIterator[None]:
        """Hold the critical section for *paths*.

        Released on every exit path, including cancellation while waiting.
        """
        keys = sorted(set(paths))
        async with AsyncExitStack() as stack:
            await stack.enter_async_context(self._gate.exclusive() if exclusive else self._gate.shared())
            for key in keys:
                await stack.enter_async_context(self._path_lock(key))
            logger.trace("Locks: holding {} (exclusive={})", keys, exclusive)
            yield

    @asynccontextmanager
    async def _path_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = anyio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    # -- Query -----------------------------------------------------------------

    @property
    def active_count(self) -> int:
        """Number of paths currently held or waited on."""
        return len(self._locks)

    def is_held(self, path: str) -> bool:
        lock = self._locks.get(path)
        return lock is not None and lock.locked()
