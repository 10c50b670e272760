"""External tool orchestration: installer runs and typings reconciliation."""

from nodeproj.tooling.tool_runner import (
    ToolExecutionError,
    ToolLaunchError,
    ToolName,
    ToolNotFoundError,
    ToolRunner,
    ToolRunResult,
)
from nodeproj.tooling.typings import (
    LoggingSink,
    OutputSink,
    PackageRequirement,
    TypingsOutcome,
    TypingsReconciler,
    acquire_typings,
    current_typings,
    read_manifest_requirements,
    typings_to_acquire,
)

__all__ = [
    "LoggingSink",
    "OutputSink",
    "PackageRequirement",
    "ToolExecutionError",
    "ToolLaunchError",
    "ToolName",
    "ToolNotFoundError",
    "ToolRunResult",
    "ToolRunner",
    "TypingsOutcome",
    "TypingsReconciler",
    "acquire_typings",
    "current_typings",
    "read_manifest_requirements",
    "typings_to_acquire",
]
