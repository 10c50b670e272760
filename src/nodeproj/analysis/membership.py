"""Error/warning file sets driven by analyzer events."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class AnalyzerEventKind(StrEnum):
    """Membership changes an analyzer reports for a file."""

    ERROR_ADDED = "error_added"
    ERROR_REMOVED = "error_removed"
    WARNING_ADDED = "warning_added"
    WARNING_REMOVED = "warning_removed"

    @property
    def is_added(self) -> bool:
        """True for the two "added" kinds."""
        return self in {AnalyzerEventKind.ERROR_ADDED, AnalyzerEventKind.WARNING_ADDED}

    @property
    def is_error(self) -> bool:
        """True for the two error kinds."""
        return self in {AnalyzerEventKind.ERROR_ADDED, AnalyzerEventKind.ERROR_REMOVED}


@dataclass(frozen=True)
class AnalyzerEvent:
    """One event emitted by an analyzer."""

    kind: AnalyzerEventKind
    path: str


@dataclass
class FileMembership:
    """Files that currently have errors or warnings, keyed by path key."""

    files_with_errors: set[str] = field(default_factory=set)
    files_with_warnings: set[str] = field(default_factory=set)

    def apply(self, kind: AnalyzerEventKind, key: str, *, is_tracked: bool) -> bool:
        """
        Apply one event to the sets.

        Added events only land for tracked on-disk members; removals always
        apply and removing an absent key is a no-op.

        Returns
        -------
        bool
            True when a set changed.
        """
        target = self.files_with_errors if kind.is_error else self.files_with_warnings
        if kind.is_added:
            if not is_tracked or key in target:
                return False
            target.add(key)
            return True
        if key not in target:
            return False
        target.discard(key)
        return True

    def clear(self) -> None:
        self.files_with_errors.clear()
        self.files_with_warnings.clear()
