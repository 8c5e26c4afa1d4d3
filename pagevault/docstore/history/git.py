"""Thin synchronous wrapper around the ``git`` command line.

All methods block and are meant to run in the thread pool (the History
Engine calls them through ``anyio.to_thread.run_sync`` while holding its
repository lock).  Output is kept as bytes so binary blobs survive intact.

Invocations run with:

- literal pathspecs, so file names such as ``:notes`` or ``*.md`` are never
  treated as pathspec magic
- ``LC_ALL=C`` and no terminal prompts, so failures are deterministic
- a per-call timeout; an expired timeout surfaces as ``GitCommandError``
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from loguru import logger

from pagevault.docstore.errors import IOFailureError

TEMP_PATTERN = ".~pv-*"
"""Atomic-write temp files; excluded from the repository."""


class GitCommandError(IOFailureError):
    """A git invocation failed, timed out, or git is not installed."""

    def __init__(self, args: Sequence[str], returncode: int | None, stderr: str) -> None:
        command = " ".join(args[:2])
        super().__init__(f"git {command} failed ({returncode}): {stderr.strip()}")
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr


class GitBackend:
    """Runs git commands against the repository at ``root``."""

    def __init__(self, root: str | Path, *, binary: str = "git", timeout: float = 30.0) -> None:
        self.root = Path(root)
        self.binary = binary
        self.timeout = timeout
        env = dict(os.environ)
        env.update(
            GIT_LITERAL_PATHSPECS="1",
            GIT_TERMINAL_PROMPT="0",
            LC_ALL="C",
        )
        self._env = env

    def run(
        self,
        *args: str,
        check: bool = True,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[bytes]:
        cmd = [
            self.binary,
            "-c",
            "core.quotepath=off",
            "-c",
            "commit.gpgsign=false",
            "-c",
            "core.autocrlf=false",
            *args,
        ]
        run_env = self._env if env is None else {**self._env, **env}
        try:
            result = subprocess.run(  # noqa: S603
                cmd,
                cwd=self.root,
                env=run_env,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise GitCommandError(args, None, f"git binary not found: {self.binary}") from exc
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(args, None, f"timed out after {self.timeout}s") from exc

        if check and result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace")
            logger.debug("git {} -> {}: {}", args[0], result.returncode, stderr.strip())
            raise GitCommandError(args, result.returncode, stderr)
        return result

    def output(self, *args: str) -> str:
        """Run a command and return its stdout decoded and stripped."""
        return self.run(*args).stdout.decode("utf-8", errors="replace").strip()

    # -- Repository ------------------------------------------------------------

    def is_repository(self) -> bool:
        if not (self.root / ".git").exists():
            return False
        result = self.run("rev-parse", "--is-inside-work-tree", check=False)
        return result.returncode == 0 and result.stdout.strip() == b"true"

    def has_head(self) -> bool:
        return self.run("rev-parse", "--verify", "-q", "HEAD", check=False).returncode == 0

    def init(self, *, name: str, email: str) -> None:
        """``git init`` plus a local identity and the temp-file exclude rule."""
        self.run("init", "-q")
        self.run("config", "user.name", name)
        self.run("config", "user.email", email)
        exclude = self.root / ".git" / "info" / "exclude"
        exclude.parent.mkdir(parents=True, exist_ok=True)
        existing = exclude.read_text(encoding="utf-8") if exclude.exists() else ""
        if TEMP_PATTERN not in existing.splitlines():
            with exclude.open("a", encoding="utf-8") as f:
                f.write(f"\n{TEMP_PATTERN}\n")

    def verify_commit(self, revision: str) -> str | None:
        """Full hash of *revision*, or ``None`` if it does not name a commit."""
        if not revision or revision.startswith("-"):
            return None
        result = self.run("rev-parse", "--verify", "-q", f"{revision}^{{commit}}", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.decode("ascii").strip()

    # -- Staging ---------------------------------------------------------------

    def stage(self, paths: Sequence[str]) -> None:
        """Stage the current state of *paths*: additions, edits and removals."""
        present = [p or "." for p in paths if not p or os.path.lexists(self.root / p)]
        vanished = [p for p in paths if p and not os.path.lexists(self.root / p)]
        if present:
            self.run("add", "-A", "--", *present)
        if vanished:
            self.run("rm", "-r", "-q", "--cached", "--ignore-unmatch", "--", *vanished)

    def staged_changes(self, paths: Sequence[str] = ()) -> list[str]:
        """Files whose staged state differs from HEAD, limited to *paths*."""
        pathspec = ["--", *[p or "." for p in paths]] if paths else []
        raw = self.run("diff", "--cached", "--no-renames", "--name-only", "-z", "HEAD", *pathspec).stdout
        return [p for p in raw.decode("utf-8").split("\0") if p]

    def commit(
        self,
        message: str,
        *,
        author_name: str,
        author_email: str,
        paths: Sequence[str] = (),
        allow_empty: bool = False,
    ) -> str:
        """Create a commit and return its hash.

        With *paths*, only those paths are committed (``git commit -- paths``),
        whatever else happens to be staged.
        """
        args = ["commit", "-q", "--no-verify", "-m", message]
        if allow_empty:
            args.append("--allow-empty")
        if paths:
            args.extend(["--", *[p or "." for p in paths]])
        env = {"GIT_AUTHOR_NAME": author_name, "GIT_AUTHOR_EMAIL": author_email}
        self.run(*args, env=env)
        return self.output("rev-parse", "HEAD")

    def status(self) -> list[str]:
        """Paths with uncommitted changes (staged, unstaged or untracked)."""
        raw = self.run("status", "--porcelain=v1", "-z", "--untracked-files=all").stdout
        entries = raw.decode("utf-8").split("\0")
        paths: list[str] = []
        i = 0
        while i < len(entries):
            entry = entries[i]
            i += 1
            if len(entry) < 4:
                continue
            code, path = entry[:2], entry[3:]
            paths.append(path)
            if "R" in code or "C" in code:
                # -z puts the rename source in the following field.
                paths.append(entries[i])
                i += 1
        return sorted(set(paths))

    # -- Reading ---------------------------------------------------------------

    def log(self, revision: str, *, path: str = "", limit: int | None = None) -> bytes:
        args = ["log", "--format=%H%x1f%aI%x1f%an%x1f%B%x1e"]
        if limit is not None:
            args.append(f"-n{limit}")
        args.append(revision)
        if path:
            args.extend(["--", path])
        return self.run(*args).stdout

    def blob(self, revision: str, path: str) -> bytes | None:
        """Raw bytes of *path* at *revision*, or ``None`` if it is not a file there."""
        obj = f"{revision}:{path}"
        kind = self.run("cat-file", "-t", obj, check=False)
        if kind.returncode != 0 or kind.stdout.strip() != b"blob":
            return None
        return self.run("cat-file", "blob", obj).stdout

    def diff(self, rev_a: str, rev_b: str, path: str) -> tuple[str, bool]:
        """Unified patch between two revisions and whether any file is binary."""
        pathspec = ["--", path] if path else []
        numstat = self.run("diff", "--numstat", rev_a, rev_b, *pathspec).stdout.decode("utf-8", errors="replace")
        binary = any(line.startswith("-\t-\t") for line in numstat.splitlines())
        patch = self.run("diff", rev_a, rev_b, *pathspec).stdout.decode("utf-8", errors="replace")
        return patch, binary
