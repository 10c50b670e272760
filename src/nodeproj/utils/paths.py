"""Path utilities to normalize project-relative paths and lookup keys."""

from __future__ import annotations

import os
from pathlib import Path

__all__ = [
    "ensure_project_root",
    "is_subpath",
    "normalize_rel_path",
    "path_key",
]


def ensure_project_root(project_root: Path | str) -> Path:
    """Resolve a project root to an absolute, expanded Path.

    Returns
    -------
    Path
        Absolute project root.
    """
    return Path(project_root).expanduser().resolve()


def normalize_rel_path(path: str | Path) -> str:
    """Return a POSIX-style relative path (keeps subdirs, strips backslashes).

    Returns
    -------
    str
        Normalized path with forward slashes.
    """
    return Path(path).as_posix()


def path_key(path: Path | str) -> str:
    """
    Return the lookup key used for per-file bookkeeping.

    Keys are absolute, normalized and case-folded where the platform
    compares paths case-insensitively, so events and tree nodes that spell
    the same file differently land on the same key.

    Returns
    -------
    str
        Normalized absolute path string.
    """
    return os.path.normcase(os.path.abspath(os.fspath(path)))


def is_subpath(parent: Path | str, child: Path | str) -> bool:
    """Return True when ``child`` equals or lies beneath ``parent`` (lexically)."""
    parent_key = path_key(parent)
    child_key = path_key(child)
    if child_key == parent_key:
        return True
    return child_key.startswith(parent_key.rstrip(os.sep) + os.sep)
