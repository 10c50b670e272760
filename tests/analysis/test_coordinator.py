"""Tests for analyzer swaps, tree reanalysis, and non-member inclusion."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from nodeproj.analysis.coordinator import AnalysisCoordinator
from nodeproj.analysis.membership import AnalyzerEventKind
from nodeproj.analysis.tree import NodeKind, build_disk_tree
from nodeproj.config.models import AnalysisLevel, AnalysisOptions
from nodeproj.services.errors import AnalyzerConstructionError, ConfigurationError
from nodeproj.utils.paths import path_key
from tests._helpers.fakes import FakeAnalyzerFactory, FakeNode

QUICK = AnalysisOptions(analysis_level=AnalysisLevel.QUICK)


def _sample_tree(root: Path) -> FakeNode:
    return FakeNode(
        path=str(root),
        child_nodes=[
            FakeNode(path=str(root / "package.json"), kind=NodeKind.MANIFEST),
            FakeNode(
                path=str(root / "lib"),
                child_nodes=[
                    FakeNode(path=str(root / "lib" / "a.js"), kind=NodeKind.SOURCE),
                    FakeNode(
                        path=str(root / "lib" / "gen.js"),
                        kind=NodeKind.SOURCE,
                        is_member=False,
                    ),
                    FakeNode(
                        path=str(root / "lib" / "skip.js"),
                        kind=NodeKind.SOURCE,
                        is_member=False,
                        should_analyze=False,
                    ),
                ],
            ),
            FakeNode(path=str(root / "README.md")),
            FakeNode(path=str(root / "z.js"), kind=NodeKind.SOURCE),
        ],
    )


def test_reload_requires_existing_root(coordinator: AnalysisCoordinator, tmp_path: Path) -> None:
    """A missing project root raises a configuration error."""
    with pytest.raises(ConfigurationError) as excinfo:
        coordinator.reload(tmp_path / "missing", AnalysisOptions())
    if excinfo.value.problem_detail.code != "config.project_root_missing":
        pytest.fail(f"Unexpected code {excinfo.value.problem_detail.code}")


def test_reload_submits_tree_and_completes(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """Each child is submitted before its subtree; manifests and flags are honoured."""
    handle = coordinator.reload(project_root, AnalysisOptions(), _sample_tree(project_root))

    analyzer = factory.created[0]
    expected = [
        str(project_root / "package.json"),
        str(project_root / "lib" / "a.js"),
        str(project_root / "lib" / "gen.js"),
        str(project_root / "z.js"),
    ]
    if analyzer.submissions != expected:
        pytest.fail(f"Unexpected submission order {analyzer.submissions}")
    if analyzer.files[str(project_root / "lib" / "gen.js")]:
        pytest.fail("Non-member should be submitted as non-member")
    if analyzer.reload_completed != 1:
        pytest.fail("reload_complete should be signalled once")
    if coordinator.current is not handle:
        pytest.fail("New handle should be current")
    if not coordinator.is_member(project_root / "lib" / "a.js"):
        pytest.fail("Member sources should be tracked")
    if coordinator.is_member(project_root / "lib" / "gen.js"):
        pytest.fail("Non-members should not be tracked")


def test_reload_releases_previous_handle_after_publishing(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """A second reload disposes the first analyzer once the new one is current."""
    first = coordinator.reload(project_root, AnalysisOptions())
    second = coordinator.reload(project_root, AnalysisOptions())

    if not first.disposed or factory.created[0].dispose_count != 1:
        pytest.fail("Previous analyzer should be disposed once")
    if second.disposed or coordinator.current is not second:
        pytest.fail("New analyzer should be live and current")


def test_reload_keeps_extra_holders_alive(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """A handle borrowed by another holder survives the swap until released."""
    first = coordinator.reload(project_root, AnalysisOptions())
    first.add_user()

    coordinator.reload(project_root, AnalysisOptions())
    if first.disposed:
        pytest.fail("Borrowed handle disposed too early")
    first.remove_user()

    if factory.created[0].dispose_count != 1:
        pytest.fail("Borrowed handle should dispose on its last release")


def test_construction_failure_keeps_previous_handle(project_root: Path) -> None:
    """A failing factory raises and leaves the current analyzer untouched."""
    factory = FakeAnalyzerFactory()
    coordinator = AnalysisCoordinator(factory)
    first = coordinator.reload(project_root, AnalysisOptions())
    factory.raise_on_create = True

    with pytest.raises(AnalyzerConstructionError):
        coordinator.reload(project_root, AnalysisOptions())
    with pytest.raises(AnalyzerConstructionError):
        coordinator.apply_options(QUICK)

    if coordinator.current is not first or first.disposed:
        pytest.fail("Previous handle should remain current and live")


def test_reanalyze_prunes_vanished_branches(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """A node removed mid-walk ends its own branch only."""
    handle = coordinator.reload(project_root, AnalysisOptions())
    tree = FakeNode(
        path=str(project_root),
        child_nodes=[
            FakeNode(
                path=str(project_root / "gone"),
                vanished=True,
                child_nodes=[FakeNode(path=str(project_root / "gone" / "x.js"), kind=NodeKind.SOURCE)],
            ),
            FakeNode(path=str(project_root / "kept.js"), kind=NodeKind.SOURCE),
        ],
    )

    stats = coordinator.reanalyze_tree(tree, handle)

    if factory.created[0].submissions != [str(project_root / "kept.js")]:
        pytest.fail(f"Unexpected submissions {factory.created[0].submissions}")
    if stats.pruned_branches != 1 or stats.files != 1:
        pytest.fail(f"Unexpected stats {stats}")


def test_reanalyze_continues_after_submission_failure(project_root: Path) -> None:
    """A failing file is counted and the walk continues."""
    bad = str(project_root / "bad.js")
    factory = FakeAnalyzerFactory(fail_on=frozenset({bad}))
    coordinator = AnalysisCoordinator(factory)
    handle = coordinator.reload(project_root, AnalysisOptions())
    tree = FakeNode(
        path=str(project_root),
        child_nodes=[
            FakeNode(path=bad, kind=NodeKind.SOURCE),
            FakeNode(path=str(project_root / "good.js"), kind=NodeKind.SOURCE),
        ],
    )

    stats = coordinator.reanalyze_tree(tree, handle)

    if (stats.failed, stats.files) != (1, 1):
        pytest.fail(f"Unexpected stats {stats}")
    if factory.created[0].submissions != [str(project_root / "good.js")]:
        pytest.fail(f"Unexpected submissions {factory.created[0].submissions}")


def test_switch_analyzer_resubmits_everything(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """Every file the old analyzer covered reaches the new one."""
    old = coordinator.reload(project_root, AnalysisOptions(), _sample_tree(project_root))
    new = coordinator.reload(project_root, QUICK)
    old_analyzer, new_analyzer = factory.created

    migrated = coordinator.switch_analyzer(old, new)

    if migrated != len(old_analyzer.submissions):
        pytest.fail(f"Migrated {migrated} of {len(old_analyzer.submissions)}")
    if sorted(new_analyzer.submissions) != sorted(old_analyzer.submissions):
        pytest.fail(f"Unexpected resubmissions {new_analyzer.submissions}")
    if new_analyzer.files != old_analyzer.files:
        pytest.fail("Membership flags should carry over")
    if new_analyzer.replaced != [old_analyzer]:
        pytest.fail("New analyzer should take over the old one's state")


def test_apply_options_requires_loaded_analyzer(coordinator: AnalysisCoordinator) -> None:
    """Changing options before any reload is an error."""
    with pytest.raises(RuntimeError, match="before reload"):
        coordinator.apply_options(QUICK)


def test_apply_options_is_noop_when_unchanged(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """Equal options keep the current analyzer."""
    handle = coordinator.reload(project_root, AnalysisOptions())

    result = coordinator.apply_options(AnalysisOptions())

    if result is not handle or len(factory.created) != 1:
        pytest.fail("No swap should happen for equal options")


def test_apply_options_swaps_and_migrates(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """A changed option builds a new analyzer, feeds it, and retires the old one."""
    tree = _sample_tree(project_root)
    old = coordinator.reload(project_root, AnalysisOptions(), tree)
    options = AnalysisOptions(max_log_length=5)

    new = coordinator.apply_options(options, tree)

    old_analyzer, new_analyzer = factory.created
    if coordinator.current is not new or new.options != options:
        pytest.fail("New handle should be current with new options")
    if not old.disposed or old_analyzer.dispose_count != 1:
        pytest.fail("Old analyzer should be disposed once")
    if set(new_analyzer.submissions) != set(old_analyzer.submissions):
        pytest.fail(f"Unexpected submissions {new_analyzer.submissions}")
    if new_analyzer.max_log_length != 5:
        pytest.fail("Log limit not applied")


def test_reload_during_option_swap_releases_every_analyzer(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """A reload published mid-walk is migrated from and disposed exactly once."""
    coordinator.reload(project_root, AnalysisOptions(), _sample_tree(project_root))
    fired: list[bool] = []

    def _reload_once() -> None:
        if not fired:
            fired.append(True)
            coordinator.reload(project_root, AnalysisOptions(max_log_length=7))

    tree = _sample_tree(project_root)
    tree.on_children = _reload_once

    new = coordinator.apply_options(QUICK, tree)
    first, replacement, intermediate = factory.created
    if coordinator.current is not new or replacement.replaced != [intermediate]:
        pytest.fail("Replacement should take over the handle it actually replaced")
    superseded = (first.dispose_count, intermediate.dispose_count)
    if superseded != (1, 1):
        pytest.fail(f"Superseded analyzers disposed {superseded} times")
    coordinator.close()

    counts = [analyzer.dispose_count for analyzer in factory.created]
    if counts != [1, 1, 1]:
        pytest.fail(f"Every analyzer should be disposed exactly once: {counts}")


def test_reload_forgets_members_missing_from_new_tree(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """Files dropped from the hierarchy stop accepting added events."""
    gone = project_root / "a.js"
    kept = project_root / "b.js"

    def _tree(*paths: Path) -> FakeNode:
        return FakeNode(
            path=str(project_root),
            child_nodes=[FakeNode(path=str(path), kind=NodeKind.SOURCE) for path in paths],
        )

    coordinator.reload(project_root, AnalysisOptions(), _tree(gone, kept))
    coordinator.reload(project_root, AnalysisOptions(), _tree(kept))
    current = factory.created[1]
    current.report(AnalyzerEventKind.ERROR_ADDED, str(gone))
    current.report(AnalyzerEventKind.ERROR_ADDED, str(kept))

    if coordinator.is_member(gone):
        pytest.fail("Dropped file should no longer be a member")
    if coordinator.files_with_errors != {path_key(kept)}:
        pytest.fail(f"Unexpected error set {coordinator.files_with_errors}")


def test_close_releases_current(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """Closing disposes the analyzer and clears bookkeeping."""
    coordinator.reload(project_root, AnalysisOptions(), _sample_tree(project_root))

    coordinator.close()

    if coordinator.current is not None or factory.created[0].dispose_count != 1:
        pytest.fail("Analyzer should be released on close")
    if coordinator.is_member(project_root / "lib" / "a.js"):
        pytest.fail("Members should be forgotten on close")


def test_includes_non_member(coordinator: AnalysisCoordinator, project_root: Path) -> None:
    """Intermediate output and ignored folders are excluded."""
    cases = {
        project_root / "lib" / "gen.js": True,
        project_root / "obj" / "Debug" / "out.js": False,
        project_root / "bower_components" / "jq" / "jq.js": False,
        project_root / "lib" / "Bower_Components" / "x.js": False,
        project_root / "bower_components_extra" / "x.js": True,
    }
    for path, expected in cases.items():
        if coordinator.includes_non_member(path) is not expected:
            pytest.fail(f"includes_non_member({path}) should be {expected}")


def test_build_disk_tree_drives_reanalysis(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """A tree mirrored from disk submits members and included non-members."""
    for relative in ("package.json", "index.js", "obj/out.js", "node_modules/dep/x.js", "notes.txt"):
        target = project_root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("", encoding="utf8")
    index = project_root / "index.js"
    tree = build_disk_tree(
        project_root,
        members=[str(index), str(project_root / "package.json")],
        include_non_member=coordinator.includes_non_member,
    )

    coordinator.reload(project_root, AnalysisOptions(), tree)

    analyzer = factory.created[0]
    submitted = {os.path.relpath(path, project_root) for path in analyzer.submissions}
    if submitted != {"index.js", "package.json"}:
        pytest.fail(f"Unexpected submissions {sorted(submitted)}")
    if path_key(index) not in {path_key(p) for p in analyzer.files}:
        pytest.fail("index.js should be submitted")


def test_disk_node_removal_prunes_walk(
    coordinator: AnalysisCoordinator,
    factory: FakeAnalyzerFactory,
    project_root: Path,
) -> None:
    """A removed DiskNode no longer contributes files."""
    (project_root / "lib").mkdir()
    (project_root / "lib" / "a.js").write_text("", encoding="utf8")
    (project_root / "b.js").write_text("", encoding="utf8")
    tree = build_disk_tree(project_root)
    lib = next(node for node in tree.children() if node.path.endswith("lib"))
    lib.remove()

    coordinator.reload(project_root, AnalysisOptions(), tree)

    if factory.created[0].submissions != [str(project_root / "b.js")]:
        pytest.fail(f"Unexpected submissions {factory.created[0].submissions}")
