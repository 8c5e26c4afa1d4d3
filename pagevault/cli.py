import click


def _settings(root: str | None, **overrides: object):
    from pagevault.docstore.settings import VaultSettings

    if root is not None:
        overrides["root_path"] = root
    return VaultSettings(**overrides)


def _open(settings):
    """Open the workspace for *settings*; call inside ``anyio.run``."""
    from pagevault.docstore.context import Workspace
    from pagevault.docstore.log import setup_logging

    setup_logging(settings.log_level, settings.log_file)
    return Workspace.open(settings)


def _run_async(func):
    """``anyio.run`` with store failures reported as click errors."""
    import anyio

    from pagevault.docstore.errors import DocStoreError

    try:
        return anyio.run(func)
    except DocStoreError as exc:
        raise click.ClickException(f"{exc.kind.value}: {exc}") from exc


root_option = click.option(
    "--root",
    default=None,
    type=click.Path(file_okay=False),
    help="Workspace root (default: from PAGEVAULT_ROOT_PATH or ./data).",
)


@click.group()
def main() -> None:
    """PageVault - version-controlled document store."""


@main.command()
@root_option
@click.option("--host", default=None, help="Bind host (default: from PAGEVAULT_HOST or 0.0.0.0).")
@click.option("--port", default=None, type=int, help="Bind port (default: from PAGEVAULT_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(root: str | None, host: str | None, port: int | None, reload: bool) -> None:
    """Start the HTTP server."""
    import os

    import uvicorn

    if root is not None:
        # The app reads its settings from the environment at startup.
        os.environ["PAGEVAULT_ROOT_PATH"] = root
    settings = _settings(root)

    uvicorn.run(
        "pagevault.docstore.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


@main.command()
@root_option
def init(root: str | None) -> None:
    """Create the workspace and its history if they do not exist yet."""
    settings = _settings(root, reconcile_on_start=False)

    async def _run() -> str:
        ws = await _open(settings)
        page = await ws.history.log(limit=1)
        return page.revisions[0].id if page.revisions else ""

    head = _run_async(_run)
    click.echo(f"Workspace ready at {settings.root_path} (HEAD {head[:12]}).")


@main.command()
@root_option
@click.option("--actor", default=None, help="Author recorded on the commit.")
def reconcile(root: str | None, actor: str | None) -> None:
    """Commit changes made to the workspace outside the service."""
    settings = _settings(root, reconcile_on_start=False)

    async def _run() -> str | None:
        ws = await _open(settings)
        return await ws.history.reconcile(actor)

    revision = _run_async(_run)
    if revision is None:
        click.echo("Nothing to reconcile.")
    else:
        click.echo(f"Reconciled as {revision[:12]}.")


@main.command()
@root_option
@click.argument("path", default="")
@click.option("-n", "--limit", default=20, show_default=True, help="Number of revisions to show.")
def log(root: str | None, path: str, limit: int) -> None:
    """Show the revision history of PATH (default: the whole tree)."""
    settings = _settings(root, reconcile_on_start=False)

    async def _run():
        ws = await _open(settings)
        return await ws.history.log(path, limit=limit)

    page = _run_async(_run)
    for rev in page.revisions:
        click.echo(f"{rev.id[:12]}  {rev.timestamp:%Y-%m-%d %H:%M:%S}  {rev.author:<16}  {rev.summary}")
    if page.next_cursor:
        click.echo(f"... more (cursor {page.next_cursor[:12]})")


@main.command()
@root_option
@click.argument("query")
@click.option("--path", default="", help="Only search this subtree.")
@click.option("-c", "--case-sensitive", is_flag=True, default=False)
@click.option("-e", "--ext", "extensions", multiple=True, help="Only files with this extension (repeatable).")
@click.option("-n", "--max-results", default=None, type=click.IntRange(min=1))
def search(
    root: str | None,
    query: str,
    path: str,
    case_sensitive: bool,
    extensions: tuple[str, ...],
    max_results: int | None,
) -> None:
    """Search current documents for QUERY."""
    from pagevault.docstore.models.search import SearchOptions

    settings = _settings(root, reconcile_on_start=False)
    options = SearchOptions(
        path=path,
        case_sensitive=case_sensitive,
        extensions=list(extensions) or None,
        max_results=max_results,
    )

    async def _run():
        ws = await _open(settings)
        return [r async for r in ws.search.search(query, options)]

    results = _run_async(_run)
    for r in results:
        click.echo(f"{r.path}:{r.line}:{r.column}: {r.text}")
    if not results:
        click.echo("No matches.")


if __name__ == "__main__":
    main()
