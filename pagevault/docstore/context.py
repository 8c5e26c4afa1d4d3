"""Workspace context.

One ``Workspace`` owns everything rooted at a single directory: settings,
path validator, lock arena, git backend and the three components.  It is
built explicitly (never a module global) so tests can open isolated
workspaces side by side in temporary directories, and the FastAPI app keeps
its instance on ``app.state``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from anyio import to_thread
from loguru import logger

from pagevault.docstore.history.engine import HistoryEngine
from pagevault.docstore.history.git import GitBackend
from pagevault.docstore.locks import LockArena
from pagevault.docstore.search import SearchEngine
from pagevault.docstore.settings import VaultSettings
from pagevault.docstore.store.local import FileStore
from pagevault.docstore.store.paths import PathValidator


@dataclass
class Workspace:
    """Wiring for one workspace root.

    Use ``Workspace.open`` to get a ready-to-use instance; the constructor
    alone does not touch the disk.
    """

    settings: VaultSettings
    root: Path = field(init=False)
    paths: PathValidator = field(init=False)
    locks: LockArena = field(init=False)
    git: GitBackend = field(init=False)

    # -- Components (need the fields above) ------------------------------------
    history: HistoryEngine = field(init=False)
    files: FileStore = field(init=False)
    search: SearchEngine = field(init=False)

    def __post_init__(self) -> None:
        s = self.settings
        self.root = Path(s.root_path).expanduser().resolve()
        self.paths = PathValidator(
            self.root,
            max_length=s.max_path_length,
            max_depth=s.max_path_depth,
            attachments_dir=s.attachments_dir,
        )
        self.locks = LockArena()
        self.git = GitBackend(self.root, binary=s.git_binary, timeout=s.git_timeout)
        self.history = HistoryEngine(self, self.git)
        self.files = FileStore(self)
        self.search = SearchEngine(self)

    @classmethod
    async def open(cls, settings: VaultSettings) -> Workspace:
        """Create the root if needed, initialise history and reconcile.

        Idempotent: opening an existing workspace only reconciles changes
        made outside the service (when ``reconcile_on_start`` is set).
        """
        ws = cls(settings)
        await to_thread.run_sync(lambda: ws.root.mkdir(parents=True, exist_ok=True))
        logger.info("Workspace: {} (attachments={})", ws.root, ws.paths.attachments_dir)
        await ws.history.initialize()
        if settings.reconcile_on_start:
            revision = await ws.history.reconcile()
            if revision:
                logger.info("Workspace: reconciled external changes as {}", revision[:12])
        return ws
