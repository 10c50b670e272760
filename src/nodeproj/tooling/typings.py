"""Acquire TypeScript declaration packages (typings) for a project's dependencies."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Final, Protocol

from anyio import to_thread

from nodeproj.config.models import ToolsConfig
from nodeproj.tooling.tool_runner import (
    ToolExecutionError,
    ToolLaunchError,
    ToolName,
    ToolRunner,
)

log = logging.getLogger(__name__)

TYPINGS_DIRECTORY_NAME: Final[str] = "typings"
DECLARATION_GLOB: Final[str] = "*.d.ts"


@dataclass(frozen=True)
class PackageRequirement:
    """A declared dependency that has an associated typings package."""

    name: str


class OutputSink(Protocol):
    """Line-oriented destination for installer output and status messages."""

    def write_line(self, line: str) -> None:
        """Write an informational line."""
        ...

    def write_error_line(self, line: str) -> None:
        """Write an error line."""
        ...


class LoggingSink:
    """OutputSink that forwards lines to a logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or log

    def write_line(self, line: str) -> None:
        self.logger.info("%s", line)

    def write_error_line(self, line: str) -> None:
        self.logger.error("%s", line)


class TypingsOutcome(StrEnum):
    """Result of one acquisition attempt."""

    UP_TO_DATE = "up_to_date"
    INSTALLED = "installed"
    INSTALLER_NOT_FOUND = "installer_not_found"
    FAILED_TO_START = "failed_to_start"
    EXITED_NONZERO = "exited_nonzero"

    @property
    def ok(self) -> bool:
        """Return True for the two successful outcomes."""
        return self in {TypingsOutcome.UP_TO_DATE, TypingsOutcome.INSTALLED}


def _iter_declaration_owners(typings_root: Path) -> Iterator[str]:
    resolved_root = typings_root.resolve()
    for declaration in typings_root.rglob(DECLARATION_GLOB):
        if not declaration.is_file():
            continue
        parent = declaration.parent
        # Declarations must sit inside a per-package folder, never in the root itself.
        if parent == typings_root or parent.name == TYPINGS_DIRECTORY_NAME:
            continue
        if not parent.resolve().is_relative_to(resolved_root):
            continue
        yield parent.name


def current_typings(project_root: Path) -> set[str]:
    """
    Return the names of packages that already have typings installed.

    Always recomputed from disk so an interrupted acquisition converges on
    the next run.

    Returns
    -------
    set[str]
        Package folder names under ``<project_root>/typings``.
    """
    typings_root = project_root / TYPINGS_DIRECTORY_NAME
    if not typings_root.is_dir():
        return set()
    return set(_iter_declaration_owners(typings_root))


def typings_to_acquire(
    project_root: Path,
    required: Iterable[PackageRequirement | str],
) -> list[str]:
    """
    Compute required package names that have no typings yet.

    Order of ``required`` is kept and duplicates are dropped.

    Returns
    -------
    list[str]
        Names to pass to the installer.
    """
    installed = current_typings(project_root)
    missing: list[str] = []
    seen: set[str] = set()
    for requirement in required:
        name = requirement.name if isinstance(requirement, PackageRequirement) else requirement
        if name in installed or name in seen:
            continue
        seen.add(name)
        missing.append(name)
    return missing


def install_arguments(names: Sequence[str]) -> list[str]:
    """
    Build the installer argument vector.

    Returns
    -------
    list[str]
        ``install <names...> --save``.
    """
    return ["install", *names, "--save"]


def read_manifest_requirements(package_json: Path) -> list[PackageRequirement]:
    """
    Read runtime dependency names from a ``package.json`` manifest.

    Returns
    -------
    list[PackageRequirement]
        One requirement per ``dependencies`` entry, in manifest order. A missing
        or malformed manifest yields no requirements.
    """
    if not package_json.is_file():
        return []
    try:
        payload = json.loads(package_json.read_text(encoding="utf8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        log.warning("Failed to read %s: %s", package_json, exc)
        return []
    dependencies = payload.get("dependencies") if isinstance(payload, dict) else None
    if not isinstance(dependencies, dict):
        return []
    return [PackageRequirement(name=str(name)) for name in dependencies]


class TypingsReconciler:
    """Diff installed typings against requirements and drive the installer."""

    def __init__(self, runner: ToolRunner, tools_config: ToolsConfig | None = None) -> None:
        self.runner = runner
        self.tools_config = tools_config or runner.tools_config

    def installer_path(self, npm_root: Path) -> Path | None:
        """Return the installer under ``npm_root`` or None when absent."""
        candidate = npm_root / self.tools_config.tsd_bin
        return candidate if candidate.is_file() else None

    async def acquire(
        self,
        npm_root: Path,
        project_root: Path,
        required: Iterable[PackageRequirement | str],
        sink: OutputSink | None = None,
    ) -> TypingsOutcome:
        """
        Install typings for every required package that lacks them.

        Parameters
        ----------
        npm_root
            Directory holding the installer executable.
        project_root
            Project whose ``typings`` folder is reconciled; the installer runs here.
        required
            Packages the project depends on.
        sink
            Optional destination for installer output and status lines.

        Returns
        -------
        TypingsOutcome
            ``UP_TO_DATE`` or ``INSTALLED`` on success, otherwise the failure reason.
        """
        requirements = list(required)
        missing = await to_thread.run_sync(typings_to_acquire, project_root, requirements)
        if not missing:
            log.debug("Typings up to date for %s", project_root)
            return TypingsOutcome.UP_TO_DATE

        installer = await to_thread.run_sync(self.installer_path, npm_root)
        if installer is None:
            log.warning("Typings installer %s not found under %s", self.tools_config.tsd_bin, npm_root)
            if sink is not None:
                sink.write_error_line(
                    f"{self.tools_config.tsd_bin} is not installed under {npm_root}; "
                    "typings were not acquired."
                )
            return TypingsOutcome.INSTALLER_NOT_FOUND

        log.info("Acquiring typings for %s: %s", project_root, ", ".join(missing))
        try:
            result = await self.runner.run_async(
                ToolName.TSD,
                install_arguments(missing),
                executable=installer,
                cwd=project_root,
                on_stdout=sink.write_line if sink is not None else None,
                on_stderr=sink.write_error_line if sink is not None else None,
                kill_on_failure=True,
            )
        except ToolLaunchError as exc:
            log.warning("%s", exc)
            if sink is not None:
                sink.write_error_line(str(exc))
                sink.write_error_line("could not start tsd")
            return TypingsOutcome.FAILED_TO_START
        except ToolExecutionError as exc:
            log.warning("%s", exc)
            if sink is not None:
                sink.write_error_line("tsd install timed out.")
            return TypingsOutcome.EXITED_NONZERO

        if not result.ok:
            log.warning("tsd install exited with code %d", result.returncode)
            if sink is not None:
                sink.write_error_line(
                    f"An error occurred while installing typings (exit code {result.returncode})."
                )
            return TypingsOutcome.EXITED_NONZERO

        if sink is not None:
            sink.write_line("Typings install completed.")
        return TypingsOutcome.INSTALLED


async def acquire_typings(
    npm_root: Path,
    project_root: Path,
    required: Iterable[PackageRequirement | str],
    sink: OutputSink | None = None,
    *,
    tools_config: ToolsConfig | None = None,
) -> bool:
    """
    Install missing typings and report success.

    Returns
    -------
    bool
        True when typings were already present or installed successfully.
    """
    reconciler = TypingsReconciler(ToolRunner(tools_config=tools_config))
    outcome = await reconciler.acquire(npm_root, project_root, required, sink)
    return outcome.ok
