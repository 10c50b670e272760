"""Reference-counted ownership of analyzer instances."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from nodeproj.analysis.membership import AnalyzerEvent
from nodeproj.config.models import AnalysisLevel, AnalysisOptions

log = logging.getLogger(__name__)

EventEmitter = Callable[[AnalyzerEvent], None]


@dataclass(frozen=True)
class SubmittedFile:
    """A file an analyzer currently covers."""

    path: str
    is_member: bool
    is_manifest: bool = False


class Analyzer(Protocol):
    """Opaque analysis engine scoped to one project root."""

    max_log_length: int
    save_to_disk: bool

    def analyze_file(self, path: str, *, is_member: bool) -> None:
        """Queue a source file for analysis."""
        ...

    def analyze_manifest(self, path: str) -> None:
        """Queue a dependency manifest (package.json) for analysis."""
        ...

    def snapshot(self) -> Iterable[SubmittedFile]:
        """Return the files currently covered."""
        ...

    def replaces(self, previous: Analyzer) -> None:
        """Take over whatever internal state ``previous`` can hand over."""
        ...

    def reload_complete(self) -> None:
        """Drop cached results for files that were not resubmitted."""
        ...

    def dispose(self) -> None:
        """Release the engine's resources."""
        ...


class AnalyzerFactory(Protocol):
    """Builds an analyzer that reports events through ``emit``."""

    def __call__(
        self,
        project_root: Path,
        options: AnalysisOptions,
        emit: EventEmitter,
    ) -> Analyzer:
        """Create an analyzer."""
        ...


class RefCount:
    """Thread-safe counter whose final release is reported exactly once."""

    def __init__(self, initial: int = 1) -> None:
        if initial < 0:
            message = f"Reference count cannot start negative ({initial})"
            raise ValueError(message)
        self._count = initial
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        """Current number of holders."""
        with self._lock:
            return self._count

    def acquire(self) -> int:
        """
        Add a holder.

        Returns
        -------
        int
            Count after the increment.

        Raises
        ------
        RuntimeError
            When the count already reached zero; a released resource cannot be revived.
        """
        with self._lock:
            if self._count == 0:
                message = "Cannot acquire a released reference"
                raise RuntimeError(message)
            self._count += 1
            return self._count

    def release(self) -> bool:
        """
        Drop a holder.

        Returns
        -------
        bool
            True only for the release that brings the count to zero. Releasing
            an already-zero count is a no-op returning False.
        """
        with self._lock:
            if self._count == 0:
                return False
            self._count -= 1
            return self._count == 0


class AnalyzerHandle:
    """
    One analysis session owned by a project.

    The handle starts with a single user (its creator). Every additional
    holder calls :meth:`add_user`; every holder calls :meth:`remove_user`
    when done. The analyzer is disposed by the call that drops the count to
    zero and never again.
    """

    def __init__(
        self,
        analyzer: Analyzer,
        *,
        project_root: Path,
        options: AnalysisOptions,
    ) -> None:
        self.analyzer = analyzer
        self.project_root = project_root
        self.options = options
        self.refs = RefCount()
        self._disposed = False
        analyzer.max_log_length = options.max_log_length
        analyzer.save_to_disk = options.save_to_disk

    @classmethod
    def create(
        cls,
        factory: AnalyzerFactory,
        project_root: Path,
        options: AnalysisOptions,
        emit: EventEmitter,
    ) -> AnalyzerHandle:
        """
        Build a handle around a freshly constructed analyzer.

        Returns
        -------
        AnalyzerHandle
            Handle with one user.
        """
        analyzer = factory(project_root, options, emit)
        return cls(analyzer, project_root=project_root, options=options)

    @property
    def analysis_level(self) -> AnalysisLevel:
        """Analysis level the handle was built with."""
        return self.options.analysis_level

    @property
    def max_log_length(self) -> int:
        """Log-size limit applied to the analyzer."""
        return self.options.max_log_length

    @property
    def save_to_disk(self) -> bool:
        """Whether the analyzer persists results."""
        return self.options.save_to_disk

    @property
    def disposed(self) -> bool:
        """True once the analyzer has been released."""
        return self._disposed

    def add_user(self) -> int:
        """Register another holder and return the new count."""
        return self.refs.acquire()

    def remove_user(self) -> bool:
        """
        Release one holder, disposing the analyzer on the last release.

        Returns
        -------
        bool
            True when this call disposed the analyzer.
        """
        if not self.refs.release():
            return False
        self._disposed = True
        log.debug("Disposing analyzer for %s", self.project_root)
        self.analyzer.dispose()
        return True

    def __repr__(self) -> str:
        return (
            f"AnalyzerHandle(project_root={self.project_root!s}, "
            f"level={self.analysis_level.value}, refs={self.refs.count})"
        )
