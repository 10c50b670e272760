"""Recursive scanner for paths that exceed the platform's addressable length."""

from __future__ import annotations

import errno
import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from anyio import to_thread

log = logging.getLogger(__name__)

# One less than MAX_PATH (260) and the directory limit (248) for the terminating NUL.
MAX_FILE_PATH_LENGTH: Final[int] = 260 - 1
MAX_DIRECTORY_PATH_LENGTH: Final[int] = 248 - 1


@dataclass(frozen=True)
class PathLimits:
    """Maximum canonical path lengths for files and directories."""

    max_file: int = MAX_FILE_PATH_LENGTH
    max_directory: int = MAX_DIRECTORY_PATH_LENGTH

    def limit_for(self, *, is_directory: bool) -> int:
        """Return the applicable limit for an entry."""
        return self.max_directory if is_directory else self.max_file


DEFAULT_LIMITS: Final[PathLimits] = PathLimits()


@dataclass(frozen=True)
class LongPathRecord:
    """A file or directory whose full path is too long."""

    full_path: str
    relative_path: str
    is_directory: bool


class _PathTooLong(Exception):
    """Canonicalization refused the path because of its length."""


def _canonical_length(full_path: str) -> int:
    try:
        return len(os.path.abspath(full_path))
    except OSError as exc:
        if exc.errno == errno.ENAMETOOLONG:
            raise _PathTooLong(full_path) from exc
        raise


def _list_directory(directory: str) -> list[tuple[str, bool]] | None:
    """
    Read one directory level and close the handle before returning.

    Returns
    -------
    list[tuple[str, bool]] | None
        ``(name, is_directory)`` pairs, or None when the directory cannot be listed.
    """
    entries: list[tuple[str, bool]] = []
    try:
        with os.scandir(directory) as it:
            for entry in it:
                if entry.name in {".", ".."}:
                    continue
                try:
                    is_directory = entry.is_dir(follow_symlinks=False)
                except OSError:
                    continue
                entries.append((entry.name, is_directory))
    except OSError as exc:
        log.debug("Cannot list %s: %s", directory, exc)
        return None
    entries.sort()
    return entries


def find_long_paths(
    base_path: Path | str,
    limits: PathLimits = DEFAULT_LIMITS,
) -> Iterator[LongPathRecord]:
    """
    Yield entries under ``base_path`` whose canonical path is too long.

    Too-long directories are reported once and never descended into, since a
    length-respecting tool cannot reach their children anyway. Only one
    directory listing is open at a time; it is fully read and closed before
    anything is yielded, so abandoning the iterator early leaks nothing.

    Parameters
    ----------
    base_path
        Root of the walk. A root that cannot be listed yields nothing.
    limits
        File and directory length limits.

    Yields
    ------
    LongPathRecord
        One record per too-long entry, in sorted order per directory level.
    """
    base = os.fspath(base_path)
    if not base.endswith(os.sep):
        base += os.sep
    yield from _walk(base, "", limits)


def _walk(base: str, relative: str, limits: PathLimits) -> Iterator[LongPathRecord]:
    entries = _list_directory(base + relative)
    if entries is None:
        return

    for name, is_directory in entries:
        child_relative = f"{relative}{os.sep}{name}" if relative else name
        full_child_path = base + child_relative
        try:
            is_too_long = _canonical_length(full_child_path) > limits.limit_for(
                is_directory=is_directory
            )
        except _PathTooLong:
            is_too_long = True
        except (OSError, ValueError):
            continue

        if is_too_long:
            yield LongPathRecord(
                full_path=full_child_path,
                relative_path=child_relative,
                is_directory=is_directory,
            )
        elif is_directory:
            yield from _walk(base, child_relative, limits)


def collect_long_paths(
    roots: Iterable[Path | str | None],
    limits: PathLimits = DEFAULT_LIMITS,
) -> list[LongPathRecord]:
    """
    Scan several roots independently and concatenate their violations.

    ``None`` roots are skipped so optional locations (such as an unset
    intermediate output directory) can be passed through unchanged.

    Returns
    -------
    list[LongPathRecord]
        Violations from every root, in root order.
    """
    records: list[LongPathRecord] = []
    for root in roots:
        if root is None:
            continue
        found = list(find_long_paths(root, limits))
        log.debug("Long-path scan of %s found %d entries", root, len(found))
        records.extend(found)
    return records


async def audit_long_paths(
    roots: Iterable[Path | str | None],
    limits: PathLimits = DEFAULT_LIMITS,
) -> list[LongPathRecord]:
    """
    Run :func:`collect_long_paths` on a worker thread.

    Returns
    -------
    list[LongPathRecord]
        Violations from every root.
    """
    root_list = list(roots)
    return await to_thread.run_sync(collect_long_paths, root_list, limits)
