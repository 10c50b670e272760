"""Long-path remediation loop: scan, offer actions, rescan until clean or declined."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from nodeproj.paths.long_paths import DEFAULT_LIMITS, LongPathRecord, PathLimits, audit_long_paths
from nodeproj.tooling.tool_runner import (
    ToolExecutionError,
    ToolLaunchError,
    ToolName,
    ToolNotFoundError,
    ToolRunner,
)

log = logging.getLogger(__name__)

DEDUP_DID_NOT_HELP = (
    "Deduplicating packages did not shorten every path. The remaining paths "
    "need to be shortened manually."
)

DedupAction = Callable[[], Awaitable[None]]


class RemediationAction(StrEnum):
    """Choices offered to the user when long paths are found."""

    DEDUP = "dedup"
    DEFER = "defer"
    SUPPRESS = "suppress"


class RemediationOutcome(StrEnum):
    """How a remediation run ended."""

    SKIPPED = "skipped"
    CLEAN = "clean"
    DEFERRED = "deferred"
    SUPPRESSED = "suppressed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RemediationPrompt:
    """What the user is shown at one decision point."""

    violations: tuple[LongPathRecord, ...]
    actions: tuple[RemediationAction, ...]
    notes: tuple[str, ...] = ()


class RemediationChooser(Protocol):
    """Presentation layer for the decision point."""

    async def __call__(self, prompt: RemediationPrompt) -> RemediationAction | None:
        """Return the chosen action, or None when the user cancels."""
        ...


@dataclass
class LongPathPreference:
    """The persisted "check for long paths" switch."""

    enabled: bool = True


@dataclass
class RemediationWorkflow:
    """
    Drive the long-path check for one project.

    Only one run is active at a time; a run requested while another is in
    progress returns ``SKIPPED`` immediately.
    """

    project_root: Path
    intermediate_output_dir: Path | None
    chooser: RemediationChooser
    dedup: DedupAction
    preference: LongPathPreference = field(default_factory=LongPathPreference)
    limits: PathLimits = DEFAULT_LIMITS
    _running: bool = field(default=False, init=False, repr=False)

    @property
    def running(self) -> bool:
        """True while a run is in progress."""
        return self._running

    async def scan(self) -> list[LongPathRecord]:
        """Return violations under the project root and intermediate output root."""
        return await audit_long_paths(
            (self.project_root, self.intermediate_output_dir),
            self.limits,
        )

    async def run(self) -> RemediationOutcome:
        """
        Run the check and loop over user decisions until it converges.

        Returns
        -------
        RemediationOutcome
            Why the run ended.
        """
        if self._running or not self.preference.enabled:
            return RemediationOutcome.SKIPPED
        self._running = True
        try:
            return await self._loop()
        finally:
            self._running = False

    async def _loop(self) -> RemediationOutcome:
        actions = list(RemediationAction)
        notes: list[str] = []
        while True:
            violations = await self.scan()
            if not violations:
                return RemediationOutcome.CLEAN
            log.info("%d paths under %s exceed the length limit", len(violations), self.project_root)

            choice = await self.chooser(
                RemediationPrompt(
                    violations=tuple(violations),
                    actions=tuple(actions),
                    notes=tuple(notes),
                )
            )
            if choice is None:
                return RemediationOutcome.CANCELLED
            if choice is RemediationAction.DEFER:
                return RemediationOutcome.DEFERRED
            if choice is RemediationAction.SUPPRESS:
                self.preference.enabled = False
                return RemediationOutcome.SUPPRESSED
            if choice is not RemediationAction.DEDUP or RemediationAction.DEDUP not in actions:
                message = f"Action {choice!r} was not offered"
                raise ValueError(message)

            # Offered once per run, whether or not it helps.
            actions.remove(RemediationAction.DEDUP)
            try:
                await self.dedup()
            except Exception as exc:  # noqa: BLE001
                log.warning("Deduplication failed: %s", exc)
            notes.append(DEDUP_DID_NOT_HELP)


class NpmDedupAction:
    """Run ``npm dedup`` in the project root through the tool runner."""

    def __init__(self, runner: ToolRunner, project_root: Path) -> None:
        self.runner = runner
        self.project_root = project_root

    async def __call__(self) -> None:
        """
        Run the deduplication.

        Raises
        ------
        RuntimeError
            When npm is missing, cannot start, times out, or exits non-zero.
        """
        try:
            result = await self.runner.run_async(
                ToolName.NPM,
                ["dedup"],
                cwd=self.project_root,
                on_stdout=lambda line: log.info("npm: %s", line),
                on_stderr=lambda line: log.warning("npm: %s", line),
                kill_on_failure=True,
            )
        except (ToolNotFoundError, ToolLaunchError, ToolExecutionError) as exc:
            message = f"npm dedup failed: {exc}"
            raise RuntimeError(message) from exc
        if not result.ok:
            message = f"npm dedup exited with code {result.returncode}"
            raise RuntimeError(message)


def format_violations(violations: Sequence[LongPathRecord]) -> list[str]:
    """
    Render violations as bullet lines for a prompt.

    Returns
    -------
    list[str]
        One line per violation, directories marked with a trailing separator.
    """
    lines: list[str] = []
    for record in violations:
        suffix = "/" if record.is_directory else ""
        lines.append(f"• {record.relative_path}{suffix} ({record.full_path})")
    return lines
