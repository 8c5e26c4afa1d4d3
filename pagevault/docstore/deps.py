"""FastAPI dependency injection for the workspace and the acting user.

Usage in route handlers::

    @router.post("/create")
    async def create_file(body: WriteRequest, ws: WorkspaceDep, actor: ActorDep) -> MutationResult:
        ...

``get_workspace`` raises HTTP 503 if the lifespan has not opened a workspace.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from pagevault.docstore.context import Workspace


async def get_workspace(request: Request) -> Workspace:
    """Return the workspace opened during lifespan."""
    workspace: Workspace | None = getattr(request.app.state, "workspace", None)
    if workspace is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Workspace not initialised.",
        )
    return workspace


async def get_actor(x_actor: Annotated[str | None, Header()] = None) -> str | None:
    """Commit author from the ``X-Actor`` header; ``None`` falls back to ``default_actor``."""
    if x_actor is None:
        return None
    return x_actor.strip() or None


# -- Annotated type aliases for concise route signatures ---------------------

WorkspaceDep = Annotated[Workspace, Depends(get_workspace)]
"""Annotated dependency: the shared workspace."""

ActorDep = Annotated[str | None, Depends(get_actor)]
"""Annotated dependency: acting user for commit attribution."""
