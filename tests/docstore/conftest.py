"""Shared fixtures for HTTP-level tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from pagevault.docstore.app import app
from pagevault.docstore.context import Workspace


@pytest.fixture
async def client(workspace: Workspace) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app with a temporary workspace.

    The app lifespan does NOT run under ``ASGITransport``, so the workspace
    is placed on ``app.state`` directly.
    """
    app.state.workspace = workspace

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.workspace = None
