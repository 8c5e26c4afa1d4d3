"""Shared test fixtures: isolated workspaces in temporary directories.

Every workspace test gets its own root under ``tmp_path`` with a fresh git
repository, so tests never share state.  Tests that need a workspace are
skipped when no ``git`` binary is available.
"""

from __future__ import annotations

import shutil
from collections.abc import Iterator

import pytest

from pagevault.docstore.context import Workspace
from pagevault.docstore.settings import VaultSettings, _get_settings_cached

HAS_GIT = shutil.which("git") is not None


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if HAS_GIT:
        return
    skip = pytest.mark.skip(reason="git binary not available")
    for item in items:
        if "workspace" in getattr(item, "fixturenames", ()):
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Drop the cached settings so env overrides made by a test take effect."""
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()


@pytest.fixture
def settings(tmp_path) -> VaultSettings:
    """Small limits so size checks are cheap to exercise."""
    return VaultSettings(
        _env_file=None,
        root_path=str(tmp_path / "vault"),
        max_file_size=1024,
        max_attachment_size=4096,
        max_search_results=50,
        snippet_width=40,
        default_actor="tester",
    )


@pytest.fixture
async def workspace(settings: VaultSettings) -> Workspace:
    return await Workspace.open(settings)
