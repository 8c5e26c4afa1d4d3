"""Service configuration loaded from PAGEVAULT_* environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VaultSettings(BaseSettings):
    """PageVault document store settings.

    All fields are read from environment variables with the ``PAGEVAULT_``
    prefix.  For example, ``PAGEVAULT_ROOT_PATH=/srv/notes`` maps to
    ``root_path``.
    """

    model_config = SettingsConfigDict(
        env_prefix="PAGEVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_file: str | None = None
    """Optional path for a rotating log file in addition to stderr."""

    # -- Workspace -------------------------------------------------------------
    root_path: str = "./data"
    """Workspace root.  Holds the document tree and the git repository."""

    attachments_dir: str = ".attachments"
    """Reserved top-level subtree for binary attachments."""

    templates_dir: str = ".templates"
    """Folder whose text documents are offered as starting points for new pages."""

    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)
    """Upper bound (bytes) for text documents."""

    max_attachment_size: int = Field(default=50 * 1024 * 1024, gt=0)
    """Upper bound (bytes) for anything stored under ``attachments_dir``."""

    max_path_length: int = Field(default=1024, gt=0)
    max_path_depth: int = Field(default=32, gt=0)

    # -- Search ----------------------------------------------------------------
    max_search_results: int = Field(default=200, gt=0)
    """Hard cap applied to every search, whatever the caller asks for."""

    snippet_width: int = Field(default=200, gt=0)
    """Matched lines longer than this are trimmed around the match."""

    # -- History ---------------------------------------------------------------
    default_actor: str = "system"
    """Commit author used when a caller does not identify itself."""

    author_domain: str = "pagevault.local"
    """Domain used to synthesise author emails (``{actor}@{author_domain}``)."""

    git_binary: str = "git"
    git_timeout: float = Field(default=30.0, gt=0)
    """Seconds before a single git invocation is abandoned."""

    reconcile_on_start: bool = True
    """Commit working-tree changes made outside the service when opening."""

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000


def get_settings() -> VaultSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``_get_settings_cached.cache_clear()`` in tests to
    force a re-read after overriding env vars.
    """
    return _get_settings_cached()


@lru_cache(maxsize=1)
def _get_settings_cached() -> VaultSettings:
    return VaultSettings()
