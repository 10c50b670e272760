"""Ensure subprocess usage is centralized in the tool runner."""

from __future__ import annotations

from pathlib import Path

import pytest


def test_no_direct_subprocess_usage_outside_tool_runner() -> None:
    """Fail when subprocess usage appears outside the tool runner module."""
    repo_root = Path(__file__).resolve().parents[2]
    src_root = repo_root / "src" / "nodeproj"
    allowed = {Path("src/nodeproj/tooling/tool_runner.py")}
    patterns = ("create_subprocess_exec(", "create_subprocess_shell(", "subprocess.run(", "Popen(", "os.system(")

    violations: list[str] = []
    for path in src_root.rglob("*.py"):
        rel_path = path.relative_to(repo_root)
        if rel_path in allowed:
            continue
        content = path.read_text(encoding="utf8")
        if any(pattern in content for pattern in patterns):
            violations.append(str(rel_path))

    if violations:
        pytest.fail(f"Direct subprocess usage found in: {', '.join(sorted(violations))}")
