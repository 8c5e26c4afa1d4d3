"""Unit tests for PathValidator and the path helpers.

Pure string handling -- no git required.
"""

from __future__ import annotations

import os

import pytest

from pagevault.docstore.errors import InvalidPathError
from pagevault.docstore.store.paths import PathValidator, ancestors, is_within, join, name, parent


@pytest.fixture
def validator(tmp_path) -> PathValidator:
    return PathValidator(tmp_path, max_length=64, max_depth=4)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("notes/todo.md", "notes/todo.md"),
        ("notes//todo.md", "notes/todo.md"),
        ("./notes/./todo.md", "notes/todo.md"),
        ("notes\\sub\\todo.md", "notes/sub/todo.md"),
        ("notes/sub/../todo.md", "notes/todo.md"),
        ("notes/", "notes"),
        ("", ""),
        (".", ""),
        ("a/..", ""),
    ],
)
def test_resolve_normalizes(validator: PathValidator, raw: str, expected: str) -> None:
    assert validator.resolve(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "../../etc/passwd",
        "a/../../b",
        "..",
        "/etc/passwd",
        "\\server\\share",
        "C:/Windows",
        "c:relative",
        "notes/\x00evil",
        "a\nOperation: delete",
        "notes/line\rbreak.md",
        "tab\there.md",
        ".git",
        ".git/config",
        "notes/.GIT/HEAD",
        "a/b/c/d/e",
        "x" * 65,
    ],
)
def test_resolve_rejects(validator: PathValidator, raw: str) -> None:
    with pytest.raises(InvalidPathError):
        validator.resolve(raw)


def test_resolve_rejects_long_segment(tmp_path) -> None:
    validator = PathValidator(tmp_path)
    with pytest.raises(InvalidPathError):
        validator.resolve("é" * 128)  # 256 bytes in UTF-8
    assert validator.resolve("e" * 255) == "e" * 255


def test_resolve_rejects_non_string(validator: PathValidator) -> None:
    with pytest.raises(InvalidPathError):
        validator.resolve(None)  # type: ignore[arg-type]


def test_invalid_path_is_value_error(validator: PathValidator) -> None:
    with pytest.raises(ValueError):
        validator.resolve("../x")


def test_git_like_names_are_allowed(validator: PathValidator) -> None:
    assert validator.resolve(".gitignore") == ".gitignore"
    assert validator.resolve("notes/.github") == "notes/.github"


def test_to_os_path(validator: PathValidator, tmp_path) -> None:
    assert validator.to_os_path(validator.resolve("")) == tmp_path.resolve()
    assert validator.to_os_path(validator.resolve("a/b.md")) == tmp_path.resolve() / "a" / "b.md"


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks not supported")
def test_to_os_path_rejects_symlink_escape(tmp_path) -> None:
    root = tmp_path / "root"
    outside = tmp_path / "outside"
    root.mkdir()
    outside.mkdir()
    (root / "link").symlink_to(outside, target_is_directory=True)

    validator = PathValidator(root)
    with pytest.raises(InvalidPathError):
        validator.to_os_path(validator.resolve("link/secret.txt"))


def test_attachments(validator: PathValidator) -> None:
    assert validator.attachment("img/logo.png") == ".attachments/img/logo.png"
    assert validator.is_attachment(validator.resolve(".attachments/img/logo.png"))
    assert validator.is_attachment(validator.resolve(".attachments"))
    assert not validator.is_attachment(validator.resolve(".attachments-old/x"))
    with pytest.raises(InvalidPathError):
        validator.attachment("")
    with pytest.raises(InvalidPathError):
        validator.attachment("../notes/a.md")


def test_helpers() -> None:
    assert parent("a/b/c.md") == "a/b"
    assert parent("c.md") == ""
    assert name("a/b/c.md") == "c.md"
    assert join("", "a") == "a"
    assert join("a", "b") == "a/b"
    assert ancestors("a/b/c.md") == ["a", "a/b"]
    assert ancestors("c.md") == []
    assert is_within("a/b", "a")
    assert is_within("a", "a")
    assert is_within("anything", "")
    assert not is_within("ab", "a")
