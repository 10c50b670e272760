"""Shared service-level helpers (error taxonomy)."""

from nodeproj.services.errors import (
    AnalyzerConstructionError,
    ConfigurationError,
    ProblemDetail,
    ProblemError,
    log_problem,
    problem,
)

__all__ = [
    "AnalyzerConstructionError",
    "ConfigurationError",
    "ProblemDetail",
    "ProblemError",
    "log_problem",
    "problem",
]
