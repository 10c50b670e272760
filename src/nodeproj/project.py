"""Per-project composition of the analyzer coordinator, typings, and long-path checks."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Collection, Iterable
from pathlib import Path

from nodeproj.analysis.coordinator import AnalysisCoordinator
from nodeproj.analysis.handle import AnalyzerFactory, AnalyzerHandle
from nodeproj.analysis.tree import MANIFEST_FILE_NAME, DiskNode, ProjectNode, build_disk_tree
from nodeproj.config.models import AnalysisOptions, ProjectSettings
from nodeproj.remediation.workflow import (
    DedupAction,
    LongPathPreference,
    NpmDedupAction,
    RemediationChooser,
    RemediationOutcome,
    RemediationWorkflow,
)
from nodeproj.services.errors import log_problem, problem
from nodeproj.tooling.tool_runner import ToolRunner
from nodeproj.tooling.typings import (
    OutputSink,
    PackageRequirement,
    TypingsOutcome,
    TypingsReconciler,
    read_manifest_requirements,
)

log = logging.getLogger(__name__)

BuildStep = Callable[[], Awaitable[bool]]


class ProjectSession:
    """Everything one open project needs, wired from its settings."""

    def __init__(
        self,
        settings: ProjectSettings,
        factory: AnalyzerFactory,
        chooser: RemediationChooser,
        *,
        runner: ToolRunner | None = None,
        dedup: DedupAction | None = None,
    ) -> None:
        self.settings = settings
        self.runner = runner or ToolRunner(tools_config=settings.tools)
        self.tree: ProjectNode | None = None
        self.coordinator = AnalysisCoordinator(
            factory,
            intermediate_output_dir=settings.intermediate_output_dir,
            analysis_ignored_dirs=settings.analysis_ignored_dirs,
        )
        self.typings = TypingsReconciler(self.runner)
        self.remediation = RemediationWorkflow(
            project_root=settings.project_root,
            intermediate_output_dir=settings.intermediate_output_dir,
            chooser=chooser,
            dedup=dedup or NpmDedupAction(self.runner, settings.project_root),
            preference=LongPathPreference(enabled=settings.check_for_long_paths),
        )

    @property
    def project_root(self) -> Path:
        """Absolute project root."""
        return self.settings.project_root

    def build_tree(self, members: Collection[str] | None = None) -> DiskNode:
        """
        Mirror the project directory as a hierarchy.

        Non-member files are analyzed according to
        :meth:`AnalysisCoordinator.includes_non_member`.

        Returns
        -------
        DiskNode
            Root of the hierarchy.
        """
        return build_disk_tree(
            self.project_root,
            members=members,
            include_non_member=self.coordinator.includes_non_member,
        )

    def open(self, tree: ProjectNode | None = None) -> AnalyzerHandle:
        """Load the project's analyzer and submit ``tree``; the tree is kept for later swaps."""
        handle = self.coordinator.reload(self.project_root, self.settings.analysis, tree)
        self.tree = tree
        return handle

    def update_analysis(
        self,
        options: AnalysisOptions,
        tree: ProjectNode | None = None,
    ) -> AnalyzerHandle:
        """
        Apply new analyzer preferences, swapping analyzers when they differ.

        The replacement analyzer is fed ``tree``, or the tree the session was
        opened with when none is given.

        Returns
        -------
        AnalyzerHandle
            The current handle after the change.
        """
        if tree is None:
            tree = self.tree
        handle = self.coordinator.apply_options(options, tree)
        self.tree = tree
        self.settings = self.settings.model_copy(update={"analysis": options})
        return handle

    async def reconcile_typings(
        self,
        npm_root: Path,
        required: Iterable[PackageRequirement | str] | None = None,
        sink: OutputSink | None = None,
    ) -> TypingsOutcome:
        """
        Acquire typings for ``required`` (defaults to the manifest's dependencies).

        Returns
        -------
        TypingsOutcome
            Result of the acquisition.
        """
        if required is None:
            required = read_manifest_requirements(self.project_root / MANIFEST_FILE_NAME)
        return await self.typings.acquire(npm_root, self.project_root, required, sink)

    async def check_long_paths(self) -> RemediationOutcome:
        """
        Run the long-path remediation workflow.

        Returns
        -------
        RemediationOutcome
            Outcome of the run; a suppression is written back to the settings.
        """
        outcome = await self.remediation.run()
        if outcome is RemediationOutcome.SUPPRESSED:
            self.settings = self.settings.model_copy(update={"check_for_long_paths": False})
        return outcome

    async def build(self, step: BuildStep) -> bool:
        """
        Run the long-path check, then ``step``.

        A failing check or a raising build step reports the build as failed.

        Returns
        -------
        bool
            True when the build step ran and succeeded.
        """
        try:
            await self.check_long_paths()
        except Exception as exc:  # noqa: BLE001
            log_problem(
                log,
                problem(
                    code="build.long_path_check_failed",
                    title="Long path check failed",
                    detail=str(exc),
                    extras={"project_root": str(self.project_root)},
                ),
            )
            return False
        try:
            return bool(await step())
        except Exception as exc:  # noqa: BLE001
            log_problem(
                log,
                problem(
                    code="build.failed",
                    title="Build step raised",
                    detail=str(exc),
                    extras={"project_root": str(self.project_root)},
                ),
            )
            return False

    def close(self) -> None:
        """Release the analyzer."""
        self.coordinator.close()
        self.tree = None
