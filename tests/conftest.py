"""Pytest configuration for the nodeproj test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from nodeproj.analysis.coordinator import AnalysisCoordinator
from tests._helpers.fakes import FakeAnalyzerFactory


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Provide an empty project directory.

    Returns
    -------
    Path
        Existing directory under the test's temp path.
    """
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def factory() -> FakeAnalyzerFactory:
    """Provide a recording analyzer factory.

    Returns
    -------
    FakeAnalyzerFactory
        Factory whose ``created`` list holds every analyzer built.
    """
    return FakeAnalyzerFactory()


@pytest.fixture
def coordinator(factory: FakeAnalyzerFactory, project_root: Path) -> AnalysisCoordinator:
    """Provide a coordinator wired to the recording factory.

    Returns
    -------
    AnalysisCoordinator
        Coordinator with ``obj`` as intermediate output and ``bower_components`` ignored.
    """
    return AnalysisCoordinator(
        factory,
        intermediate_output_dir=project_root / "obj",
        analysis_ignored_dirs=("bower_components",),
    )
