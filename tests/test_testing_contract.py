"""Guardrails keeping the suite on real wiring: fakes from tests/_helpers, real installers, no patching."""

from __future__ import annotations

import re
from pathlib import Path

import pytest

TEST_ROOT = Path(__file__).resolve().parent
SELF_PATH = TEST_ROOT / "test_testing_contract.py"


FORBIDDEN_PATTERNS: dict[str, re.Pattern[str]] = {
    "monkeypatch": re.compile(r"\bmonkeypatch\b"),
    "mock-library": re.compile(r"\b(?:unittest\.mock|pytest_mock|mocker)\b"),
    "sys.path-mutation": re.compile(r"sys\.path"),
    "bare-assert": re.compile(r"^\s*assert\s", re.MULTILINE),
    "direct-subprocess": re.compile(r"^\s*(?:import|from)\s+subprocess\b", re.MULTILINE),
    "private-import": re.compile(r"from\s+nodeproj[.\w]*\s+import\s+(?:\(\s*)?_"),
    "sleep-synchronization": re.compile(r"\btime\.sleep\("),
}


def _iter_test_files() -> list[Path]:
    return [path for path in TEST_ROOT.rglob("*.py") if path != SELF_PATH]


def test_testing_charter_forbidden_patterns() -> None:
    """
    Fail when a test reaches around the fakes and real tool scripts.

    Analyzer behaviour goes through ``tests/_helpers/fakes.py``, installers are
    real shell scripts driven by ``ToolRunner``, and checks report through
    ``pytest.fail``. Patching, sleeps, and underscore-prefixed imports from
    ``nodeproj`` are rejected.
    """
    violations: list[str] = []
    for path in _iter_test_files():
        content = path.read_text(encoding="utf-8")
        violations.extend(
            f"{label}: {path.relative_to(TEST_ROOT)}"
            for label, pattern in FORBIDDEN_PATTERNS.items()
            if pattern.search(content)
        )
    if violations:
        pytest.fail("Testing charter violations detected:\n" + "\n".join(sorted(violations)))


def test_test_directories_are_not_packages() -> None:
    """Test areas are plain directories; shared code lives in tests/_helpers."""
    packages = sorted(str(path.relative_to(TEST_ROOT)) for path in TEST_ROOT.rglob("__init__.py"))
    if packages:
        pytest.fail(f"Unexpected __init__.py files in tests: {packages}")
