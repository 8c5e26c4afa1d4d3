from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from loguru import logger

from pagevault.docstore.context import Workspace
from pagevault.docstore.errors import DocStoreError, HistoryCommitFailedError
from pagevault.docstore.log import setup_logging
from pagevault.docstore.models.enums import ErrorKind
from pagevault.docstore.settings import get_settings

# ---------------------------------------------------------------------------
# Typed failures -> HTTP
# ---------------------------------------------------------------------------
ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_PATH: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_PARENT: status.HTTP_409_CONFLICT,
    ErrorKind.NOTHING_TO_COMMIT: status.HTTP_200_OK,
    ErrorKind.HISTORY_COMMIT_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.REVISION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.IO_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.SIZE_LIMIT_EXCEEDED: status.HTTP_413_CONTENT_TOO_LARGE,
}


async def docstore_error_handler(_request: Request, exc: DocStoreError) -> JSONResponse:
    code = ERROR_STATUS.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if code >= 500:
        logger.error("Request failed ({}): {}", exc.kind.value, exc)
    body: dict[str, object] = {"error": exc.kind.value, "detail": str(exc)}
    if isinstance(exc, HistoryCommitFailedError):
        # Enough for the client to call /api/history/recommit.
        body["operation"] = exc.operation.model_dump(mode="json")
        body["paths"] = exc.paths
    return JSONResponse(status_code=code, content=body)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)

    logger.info("PageVault starting (host={}, port={})", settings.host, settings.port)
    _app.state.workspace = await Workspace.open(settings)

    yield

    # -- Shutdown --------------------------------------------------------------
    workspace: Workspace = _app.state.workspace
    pending = await workspace.history.uncommitted()
    if pending:
        logger.warning("PageVault shutting down with {} uncommitted path(s)", len(pending))
    logger.info("PageVault shutting down")
    _app.state.workspace = None


app = FastAPI(title="PageVault", lifespan=lifespan)
app.add_exception_handler(DocStoreError, docstore_error_handler)

# ---------------------------------------------------------------------------
# API router -- all backend endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


# -- Document store routers --------------------------------------------------
from pagevault.docstore.routers.attachments import router as attachments_router  # noqa: E402
from pagevault.docstore.routers.files import router as files_router  # noqa: E402
from pagevault.docstore.routers.history import router as history_router  # noqa: E402
from pagevault.docstore.routers.search import router as search_router  # noqa: E402
from pagevault.docstore.routers.templates import router as templates_router  # noqa: E402

api.include_router(files_router)
api.include_router(attachments_router)
api.include_router(history_router)
api.include_router(search_router)
api.include_router(templates_router)

app.include_router(api)
