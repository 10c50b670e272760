"""Analyzer lifecycle: reference-counted handles, tree reanalysis, diagnostics membership."""

from nodeproj.analysis.coordinator import AnalysisCoordinator, ReanalysisStats
from nodeproj.analysis.handle import (
    Analyzer,
    AnalyzerFactory,
    AnalyzerHandle,
    RefCount,
    SubmittedFile,
)
from nodeproj.analysis.membership import AnalyzerEvent, AnalyzerEventKind, FileMembership
from nodeproj.analysis.tree import (
    DiskNode,
    NodeKind,
    NodeRemovedError,
    ProjectNode,
    build_disk_tree,
    classify,
)

__all__ = [
    "AnalysisCoordinator",
    "Analyzer",
    "AnalyzerEvent",
    "AnalyzerEventKind",
    "AnalyzerFactory",
    "AnalyzerHandle",
    "DiskNode",
    "FileMembership",
    "NodeKind",
    "NodeRemovedError",
    "ProjectNode",
    "ReanalysisStats",
    "RefCount",
    "SubmittedFile",
    "build_disk_tree",
    "classify",
]
