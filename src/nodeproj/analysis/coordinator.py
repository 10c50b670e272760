"""Own the project's analyzer, swap it on configuration changes, and track diagnostics."""

from __future__ import annotations

import logging
import os
import threading
import weakref
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from nodeproj.analysis.handle import AnalyzerFactory, AnalyzerHandle, EventEmitter
from nodeproj.analysis.membership import AnalyzerEvent, AnalyzerEventKind, FileMembership
from nodeproj.analysis.tree import NodeKind, NodeRemovedError, ProjectNode
from nodeproj.config.models import AnalysisOptions
from nodeproj.services.errors import AnalyzerConstructionError, ConfigurationError, problem
from nodeproj.utils.paths import is_subpath, normalize_rel_path, path_key

log = logging.getLogger(__name__)


@dataclass
class ReanalysisStats:
    """Counters from one reanalysis walk."""

    files: int = 0
    manifests: int = 0
    failed: int = 0
    pruned_branches: int = 0
    members: set[str] = field(default_factory=set)

    @property
    def submitted(self) -> int:
        """Files plus manifests handed to the analyzer."""
        return self.files + self.manifests


class AnalysisCoordinator:
    """
    Single owner of a project's current analyzer.

    The coordinator holds one reference on the current handle. Swaps build
    and feed the replacement first, publish it, migrate onto it from the
    handle it displaced, and only then drop the reference on that handle, so
    the project always has a live analyzer. Error/warning membership is updated through
    :meth:`on_analyzer_event`, the one dispatch point every analyzer emits to.
    """

    def __init__(
        self,
        factory: AnalyzerFactory,
        *,
        intermediate_output_dir: Path | None = None,
        analysis_ignored_dirs: Iterable[str] = (),
    ) -> None:
        self.factory = factory
        self.intermediate_output_dir = intermediate_output_dir
        self.analysis_ignored_dirs = tuple(analysis_ignored_dirs)
        self._ignored_segments = tuple(
            "/" + entry.replace("\\", "/").strip("/").casefold() + "/"
            for entry in self.analysis_ignored_dirs
        )
        self.membership = FileMembership()
        self._current: AnalyzerHandle | None = None
        self._superseded: weakref.WeakSet[AnalyzerHandle] = weakref.WeakSet()
        self._members: set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Handle lifecycle
    # ------------------------------------------------------------------

    @property
    def current(self) -> AnalyzerHandle | None:
        """The handle new work is submitted to."""
        return self._current

    def _build_handle(self, project_root: Path, options: AnalysisOptions) -> AnalyzerHandle:
        handle_ref: list[AnalyzerHandle] = []
        emit = self._emitter_for(handle_ref)
        try:
            handle = AnalyzerHandle.create(self.factory, project_root, options, emit)
        except Exception as exc:
            raise AnalyzerConstructionError(
                problem(
                    code="analysis.construction_failed",
                    title="Analyzer could not be created",
                    detail=str(exc),
                    extras={"project_root": str(project_root), "level": options.analysis_level.value},
                )
            ) from exc
        handle_ref.append(handle)
        log.info(
            "Analyzer created for %s (level=%s, max_log_length=%d, save_to_disk=%s)",
            project_root,
            options.analysis_level.value,
            options.max_log_length,
            options.save_to_disk,
        )
        return handle

    def _emitter_for(self, handle_ref: list[AnalyzerHandle]) -> EventEmitter:
        def emit(event: AnalyzerEvent) -> None:
            source = handle_ref[0] if handle_ref else None
            # Removals are always safe; additions from a superseded analyzer are stale.
            if event.kind.is_added and source is not None and source in self._superseded:
                log.debug("Dropping %s from superseded analyzer: %s", event.kind, event.path)
                return
            self.on_analyzer_event(event.kind, event.path)

        return emit

    def _publish(self, handle: AnalyzerHandle) -> AnalyzerHandle | None:
        with self._lock:
            previous = self._current
            self._current = handle
            if previous is not None:
                self._superseded.add(previous)
        return previous

    @staticmethod
    def _release(handle: AnalyzerHandle | None) -> None:
        if handle is not None and handle.remove_user():
            log.debug("Released previous analyzer for %s", handle.project_root)

    def reload(
        self,
        project_root: Path,
        options: AnalysisOptions,
        tree: ProjectNode | None = None,
    ) -> AnalyzerHandle:
        """
        Create a fresh analyzer for ``project_root`` and make it current.

        Parameters
        ----------
        project_root
            Existing project directory.
        options
            Analyzer preferences.
        tree
            Optional hierarchy to submit once the new analyzer is current.

        Returns
        -------
        AnalyzerHandle
            The new current handle.

        Raises
        ------
        ConfigurationError
            When ``project_root`` is not an existing directory.
        AnalyzerConstructionError
            When the analyzer factory fails; the previous handle stays current.
        """
        if not project_root.is_dir():
            raise ConfigurationError.missing_project_root(project_root)
        handle = self._build_handle(project_root, options)
        self._release(self._publish(handle))
        if tree is not None:
            stats = self.reanalyze_tree(tree, handle)
            log.info(
                "Reload submitted %d files and %d manifests (%d failed)",
                stats.files,
                stats.manifests,
                stats.failed,
            )
            self._retain_members(stats.members)
            handle.analyzer.reload_complete()
        return handle

    def switch_analyzer(self, old: AnalyzerHandle, new: AnalyzerHandle) -> int:
        """
        Migrate the files ``old`` covers onto ``new``.

        The snapshot is copied once up front; work ``old`` finishes after the
        copy is irrelevant because ``new`` re-analyzes everything it receives.

        Returns
        -------
        int
            Number of files resubmitted to ``new``.
        """
        snapshot = tuple(old.analyzer.snapshot())
        migrated = 0
        for item in snapshot:
            try:
                if item.is_manifest:
                    new.analyzer.analyze_manifest(item.path)
                else:
                    new.analyzer.analyze_file(item.path, is_member=item.is_member)
            except Exception as exc:  # noqa: BLE001
                log.warning("Failed to migrate %s to new analyzer: %s", item.path, exc)
                continue
            migrated += 1
        new.analyzer.replaces(old.analyzer)
        log.debug("Migrated %d of %d files to new analyzer", migrated, len(snapshot))
        return migrated

    def apply_options(
        self,
        options: AnalysisOptions,
        tree: ProjectNode | None = None,
    ) -> AnalyzerHandle:
        """
        React to a change in analyzer preferences.

        A new analyzer is built and fed the whole tree before the old one is
        retired. Unchanged options are a no-op. Migration and release target
        whichever handle the publish actually replaced, which may be newer
        than the one current on entry if a reload ran during the walk.

        Returns
        -------
        AnalyzerHandle
            The current handle after the change.

        Raises
        ------
        RuntimeError
            When no analyzer was loaded yet.
        AnalyzerConstructionError
            When the replacement analyzer cannot be created.
        """
        old = self._current
        if old is None:
            message = "apply_options called before reload"
            raise RuntimeError(message)
        if old.options == options:
            return old

        new = self._build_handle(old.project_root, options)
        stats: ReanalysisStats | None = None
        if tree is not None:
            stats = self.reanalyze_tree(tree, new)
            log.debug("Submitted %d items to replacement analyzer", stats.submitted)
        replaced = self._publish(new)
        if replaced is not None:
            self.switch_analyzer(replaced, new)
        self._release(replaced)
        if stats is not None:
            self._retain_members(stats.members)
        log.info(
            "Analysis options changed (level %s -> %s)",
            old.analysis_level.value,
            new.analysis_level.value,
        )
        return new

    def close(self) -> None:
        """Release the current analyzer and forget all bookkeeping."""
        with self._lock:
            handle = self._current
            self._current = None
            if handle is not None:
                self._superseded.add(handle)
            self.membership.clear()
            self._members.clear()
        self._release(handle)

    # ------------------------------------------------------------------
    # Reanalysis
    # ------------------------------------------------------------------

    def reanalyze_tree(self, root: ProjectNode, handle: AnalyzerHandle) -> ReanalysisStats:
        """
        Submit every analyzable file under ``root`` to ``handle``.

        Each child is submitted before its own subtree is walked. A node that
        vanishes mid-walk ends only its own branch; a failing submission is
        logged and skipped.

        Returns
        -------
        ReanalysisStats
            Counters for the walk.
        """
        stats = ReanalysisStats()
        self._reanalyze(root, handle, stats)
        return stats

    def _reanalyze(self, node: ProjectNode, handle: AnalyzerHandle, stats: ReanalysisStats) -> None:
        try:
            children = tuple(node.children())
        except NodeRemovedError:
            stats.pruned_branches += 1
            log.debug("Node removed during reanalysis: %s", node.path)
            return

        for child in children:
            self._submit(child, handle, stats)
            self._reanalyze(child, handle, stats)

    def _submit(self, node: ProjectNode, handle: AnalyzerHandle, stats: ReanalysisStats) -> None:
        kind = node.kind
        if kind is NodeKind.OTHER:
            return
        try:
            if kind is NodeKind.MANIFEST:
                handle.analyzer.analyze_manifest(node.path)
                stats.manifests += 1
                return
            if not node.should_analyze:
                return
            if node.is_member:
                self.track_member(node.path)
                stats.members.add(path_key(node.path))
            handle.analyzer.analyze_file(node.path, is_member=node.is_member)
            stats.files += 1
        except NodeRemovedError:
            stats.pruned_branches += 1
        except Exception as exc:  # noqa: BLE001
            stats.failed += 1
            log.warning("Failed to submit %s for analysis: %s", node.path, exc)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def track_member(self, path: str | Path) -> None:
        """Record ``path`` as an on-disk project member."""
        with self._lock:
            self._members.add(path_key(path))

    def forget_member(self, path: str | Path) -> None:
        """Stop treating ``path`` as an on-disk project member."""
        with self._lock:
            self._members.discard(path_key(path))

    def _retain_members(self, walked: set[str]) -> None:
        # Members the latest walk did not reach are no longer on disk.
        with self._lock:
            stale = self._members - walked
            self._members &= walked
        if stale:
            log.debug("Dropped %d stale members after reanalysis", len(stale))

    def is_member(self, path: str | Path) -> bool:
        """Return True when ``path`` is a tracked on-disk member."""
        with self._lock:
            return path_key(path) in self._members

    def on_analyzer_event(self, kind: AnalyzerEventKind, path: str | Path) -> bool:
        """
        Apply one analyzer event to the error/warning sets.

        Returns
        -------
        bool
            True when a set changed.
        """
        key = path_key(path)
        with self._lock:
            return self.membership.apply(kind, key, is_tracked=key in self._members)

    @property
    def files_with_errors(self) -> frozenset[str]:
        """Snapshot of files that currently have errors."""
        with self._lock:
            return frozenset(self.membership.files_with_errors)

    @property
    def files_with_warnings(self) -> frozenset[str]:
        """Snapshot of files that currently have warnings."""
        with self._lock:
            return frozenset(self.membership.files_with_warnings)

    # ------------------------------------------------------------------
    # Non-member inclusion
    # ------------------------------------------------------------------

    def includes_non_member(self, path: str | Path) -> bool:
        """
        Decide whether a non-member file should still be analyzed.

        Files under the intermediate output directory, or under any folder
        named in the analysis-ignored list, are excluded.

        Returns
        -------
        bool
            True when the file should be analyzed.
        """
        if self.intermediate_output_dir is not None and is_subpath(
            self.intermediate_output_dir, path
        ):
            return False
        if not self._ignored_segments:
            return True
        parent = normalize_rel_path(Path(os.fspath(path)).parent).casefold().rstrip("/") + "/"
        return not any(segment in parent for segment in self._ignored_segments)
