"""Filesystem path auditing."""

from nodeproj.paths.long_paths import (
    DEFAULT_LIMITS,
    MAX_DIRECTORY_PATH_LENGTH,
    MAX_FILE_PATH_LENGTH,
    LongPathRecord,
    PathLimits,
    audit_long_paths,
    collect_long_paths,
    find_long_paths,
)

__all__ = [
    "DEFAULT_LIMITS",
    "MAX_DIRECTORY_PATH_LENGTH",
    "MAX_FILE_PATH_LENGTH",
    "LongPathRecord",
    "PathLimits",
    "audit_long_paths",
    "collect_long_paths",
    "find_long_paths",
]
