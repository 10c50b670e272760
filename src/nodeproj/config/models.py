"""
Configuration models used by the nodeproj CLI and project sessions.

These Pydantic models normalize analysis preferences, project layout, and
external tool paths so the analyzer coordinator, typings reconciler, and
long-path remediation can rely on consistent settings.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from nodeproj.services.errors import ConfigurationError, problem
from nodeproj.utils.paths import ensure_project_root

if TYPE_CHECKING:
    from nodeproj.tooling.tool_runner import ToolName


DEFAULT_TOOL_TIMEOUT_S = 600.0
DEFAULT_MAX_LOG_LENGTH = 1000
DEFAULT_TSD_BIN = "tsd.cmd" if os.name == "nt" else "tsd"
DEFAULT_NPM_BIN = "npm.cmd" if os.name == "nt" else "npm"
SETTINGS_FILE_NAME = "nodeproj.yaml"


class AnalysisLevel(StrEnum):
    """How much work the analyzer spends per file."""

    NONE = "none"
    QUICK = "quick"
    MEDIUM = "medium"
    HIGH = "high"


class AnalysisOptions(BaseModel):
    """
    Hot-swappable analyzer preferences.

    Any change to these values is applied by building a new analyzer and
    migrating the project onto it.
    """

    model_config = ConfigDict(frozen=True)

    analysis_level: AnalysisLevel = Field(
        AnalysisLevel.HIGH,
        description="Analysis depth passed to the analyzer factory",
    )
    max_log_length: int = Field(
        DEFAULT_MAX_LOG_LENGTH,
        ge=0,
        description="Upper bound on retained analyzer log entries",
    )
    save_to_disk: bool = Field(
        default=True,
        description="Persist analysis results between sessions",
    )


class ToolsConfig(BaseModel):
    """External tool configuration used by typings acquisition and remediation."""

    tsd_bin: str = Field(DEFAULT_TSD_BIN, description="Installer file name under the npm root")
    npm_bin: str = Field(DEFAULT_NPM_BIN, description="Path to npm binary")
    default_timeout_s: float = Field(
        DEFAULT_TOOL_TIMEOUT_S,
        gt=0,
        description="Default timeout (seconds) for external tool invocations",
    )

    @classmethod
    def default(cls) -> ToolsConfig:
        """
        Return a fully-populated tool configuration with baked-in defaults.

        Returns
        -------
        ToolsConfig
            Configuration populated with built-in binary names.
        """
        return cls.model_validate({})

    @classmethod
    def with_overrides(cls, **overrides: str | float) -> ToolsConfig:
        """
        Construct a ToolsConfig using defaults merged with provided overrides.

        Returns
        -------
        ToolsConfig
            Fully-populated configuration with overrides applied.
        """
        return cls.default().model_copy(update=overrides)

    def resolve_path(self, tool: ToolName | str) -> str:
        """
        Return the configured executable path for a tool or fall back to its name.

        Returns
        -------
        str
            Executable path or name to invoke.
        """
        name = str(tool)
        mapping = {
            "tsd": self.tsd_bin,
            "npm": self.npm_bin,
        }
        return str(mapping.get(name, name))

    def build_env(self, *, base_env: Mapping[str, str] | None = None) -> dict[str, str]:
        """
        Construct an environment mapping for a tool invocation.

        The current process environment is inherited so installers can find
        node and their own caches; ``base_env`` entries win.

        Returns
        -------
        dict[str, str]
            Environment variables to supply to the subprocess call.
        """
        env = dict(os.environ)
        env.update(base_env or {})
        return env


class ProjectSettings(BaseModel):
    """
    Per-project settings for one Node.js project.

    Layout assumed::

      project_root/
        package.json
        typings/<package>/*.d.ts
        obj/            (intermediate output, configurable)
    """

    project_root: Path = Field(..., description="Path to the project root directory")
    intermediate_output_path: Path = Field(
        default=Path("obj"),
        description="Intermediate build output, relative to project_root unless absolute",
    )
    analysis_ignored_dirs: tuple[str, ...] = Field(
        default=(),
        description="Directory names whose non-member files are never analyzed",
    )
    check_for_long_paths: bool = Field(
        default=True,
        description="Run the long-path check before builds",
    )
    analysis: AnalysisOptions = Field(default_factory=AnalysisOptions)
    tools: ToolsConfig = Field(default_factory=ToolsConfig.default)

    @field_validator("project_root", "intermediate_output_path", mode="before")
    @classmethod
    def _expand_user(cls, v: Path | str) -> Path:
        return Path(v).expanduser()

    @field_validator("analysis_ignored_dirs", mode="before")
    @classmethod
    def _split_ignored(cls, v: str | list[str] | tuple[str, ...] | None) -> tuple[str, ...]:
        # Project files store these as a single ';'-separated property.
        if v is None:
            return ()
        raw = v.split(";") if isinstance(v, str) else list(v)
        return tuple(entry.strip().strip("\\/") for entry in raw if entry and entry.strip())

    @model_validator(mode="after")
    def _resolve_root(self) -> ProjectSettings:
        self.project_root = ensure_project_root(self.project_root)
        return self

    @property
    def intermediate_output_dir(self) -> Path:
        """Absolute intermediate output directory."""
        return (self.project_root / self.intermediate_output_path).resolve()


def load_project_settings(path: Path, **overrides: Any) -> ProjectSettings:
    """
    Load project settings from a YAML file.

    A relative ``project_root`` (or a missing one) is resolved against the
    directory holding the settings file.

    Parameters
    ----------
    path
        Settings file to read.
    **overrides
        Top-level keys that replace values from the file.

    Returns
    -------
    ProjectSettings
        Validated settings.

    Raises
    ------
    ConfigurationError
        When the file is missing, is not a mapping, or fails validation.
    """
    if not path.is_file():
        raise ConfigurationError(
            problem(
                code="config.settings_missing",
                title="Settings file not found",
                detail=f"No settings file at {path}",
                extras={"path": str(path)},
            )
        )
    with path.open("r", encoding="utf8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                problem(
                    code="config.settings_unreadable",
                    title="Settings file is not valid YAML",
                    detail=str(exc),
                    extras={"path": str(path)},
                )
            ) from exc

    if not isinstance(data, dict):
        raise ConfigurationError(
            problem(
                code="config.settings_invalid",
                title="Settings file must contain a mapping",
                detail=f"{path} holds {type(data).__name__}, expected a mapping",
                extras={"path": str(path)},
            )
        )

    data.update(overrides)
    root = Path(str(data.get("project_root", "."))).expanduser()
    if not root.is_absolute():
        root = path.parent / root
    data["project_root"] = root

    try:
        return ProjectSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            problem(
                code="config.settings_invalid",
                title="Settings failed validation",
                detail=str(exc),
                extras={"path": str(path)},
            )
        ) from exc
