"""Point-in-time substring search over the current tree.

There is no index: every search walks the tree through the File Store
(``list`` / ``read``), one directory listing and one file at a time, and
yields matches as it finds them.  Consumers may stop iterating whenever they
like; nothing is read past that point.

Files that do not decode as UTF-8 (or look binary) are skipped, as is the
attachments subtree unless ``include_attachments`` is set.  Files deleted
while a scan is running are skipped too.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from loguru import logger

from pagevault.docstore.errors import NotFoundError
from pagevault.docstore.models.nodes import FileNode
from pagevault.docstore.models.search import SearchHit, SearchOptions, SearchResult

if TYPE_CHECKING:
    from pagevault.docstore.context import Workspace

_BINARY_SNIFF = 8192


class SearchEngine:
    def __init__(self, workspace: Workspace) -> None:
        self._ws = workspace

    def _cap(self, options: SearchOptions) -> int:
        cap = self._ws.settings.max_search_results
        return min(options.max_results, cap) if options.max_results else cap

    async def search(self, query: str, options: SearchOptions | None = None) -> AsyncIterator[SearchResult]:
        """Yield every occurrence of *query*, depth first, up to the result cap.

        Empty or whitespace-only queries yield nothing.
        """
        options = options or SearchOptions()
        if not query.strip():
            return
        pattern = _compile(query, options.case_sensitive)
        limit = self._cap(options)
        width = self._ws.settings.snippet_width

        emitted = 0
        async for node, text in self._documents(options):
            for line_no, line in enumerate(_lines(text), start=1):
                for match in pattern.finditer(line):
                    yield SearchResult(
                        path=node.path,
                        line=line_no,
                        column=match.start() + 1,
                        text=snippet(line, match.start(), match.end(), width),
                    )
                    emitted += 1
                    if emitted >= limit:
                        return

    async def count(self, query: str, options: SearchOptions | None = None) -> list[SearchHit]:
        """Per-file match counts, most matches first (ties by path)."""
        options = options or SearchOptions()
        if not query.strip():
            return []
        pattern = _compile(query, options.case_sensitive)
        width = self._ws.settings.snippet_width

        hits: list[SearchHit] = []
        async for node, text in self._documents(options):
            matches = list(pattern.finditer(text))
            if not matches:
                continue
            first = matches[0]
            line_start = text.rfind("\n", 0, first.start()) + 1
            line_end = text.find("\n", first.end())
            line = text[line_start : line_end if line_end != -1 else len(text)]
            hits.append(
                SearchHit(
                    path=node.path,
                    matches=len(matches),
                    snippet=snippet(line, first.start() - line_start, first.end() - line_start, width),
                )
            )
        hits.sort(key=lambda h: (-h.matches, h.path))
        return hits[: self._cap(options)]

    # -- Walk ------------------------------------------------------------------

    async def _documents(self, options: SearchOptions) -> AsyncIterator[tuple[FileNode, str]]:
        """Decoded text of every file the options select, depth first."""
        files = self._ws.files
        paths = self._ws.paths
        start = paths.resolve(options.path)
        suffixes = _suffixes(options.extensions)

        def wanted(node: FileNode) -> bool:
            if node.attachment and not options.include_attachments:
                return False
            return suffixes is None or node.name.lower().endswith(suffixes)

        root = await files.stat(start)
        if not root.is_dir:
            pending_files = [root] if wanted(root) else []
            stack: list[str] = []
        else:
            pending_files = []
            stack = [start]

        while pending_files or stack:
            if not pending_files:
                directory = stack.pop()
                try:
                    listing = await files.list(directory)
                except NotFoundError:
                    if directory == start:
                        raise
                    continue
                children = [n for n in listing if n.is_dir and (options.include_attachments or not n.attachment)]
                stack.extend(n.path for n in reversed(children))
                pending_files = [n for n in listing if not n.is_dir and wanted(n)]
                continue

            node = pending_files.pop(0)
            try:
                content = await files.read(node.path)
            except NotFoundError:
                logger.debug("Search: {} vanished during scan", node.path)
                continue
            text = _decode(content.content)
            if text is not None:
                yield node, text


def _compile(query: str, case_sensitive: bool) -> re.Pattern[str]:
    return re.compile(re.escape(query), 0 if case_sensitive else re.IGNORECASE)


def _lines(text: str) -> list[str]:
    """Split on newlines only.  Form feeds and Unicode line separators stay inside a line."""
    return [line.removesuffix("\r") for line in text.split("\n")]


def _suffixes(extensions: list[str] | None) -> tuple[str, ...] | None:
    if not extensions:
        return None
    return tuple(("." + e.lstrip(".")).lower() for e in extensions if e.strip("."))


def _decode(data: bytes) -> str | None:
    if b"\x00" in data[:_BINARY_SNIFF]:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def snippet(line: str, start: int, end: int, width: int) -> str:
    """Trim *line* to at most *width* characters around ``line[start:end]``.

    Trimmed sides are marked with ``...``.
    """
    line = line.rstrip("\r")
    if len(line) <= width:
        return line
    context = max(0, width - (end - start)) // 2
    begin = max(0, start - context)
    stop = min(len(line), begin + width)
    begin = max(0, stop - width)
    text = line[begin:stop]
    if begin > 0:
        text = "..." + text
    if stop < len(line):
        text += "..."
    return text
