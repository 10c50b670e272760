"""Configuration models and helpers for normalizing project settings consumed by nodeproj."""

from nodeproj.config.models import (
    SETTINGS_FILE_NAME,
    AnalysisLevel,
    AnalysisOptions,
    ProjectSettings,
    ToolsConfig,
    load_project_settings,
)

__all__ = [
    "SETTINGS_FILE_NAME",
    "AnalysisLevel",
    "AnalysisOptions",
    "ProjectSettings",
    "ToolsConfig",
    "load_project_settings",
]
