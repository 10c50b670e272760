"""CLI entrypoint for long-path audits, typings acquisition, and settings checks."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Callable, Iterable
from dataclasses import asdict
from functools import partial
from pathlib import Path

import anyio

from nodeproj.analysis.tree import MANIFEST_FILE_NAME
from nodeproj.config.models import SETTINGS_FILE_NAME, ToolsConfig, load_project_settings
from nodeproj.paths.long_paths import (
    MAX_DIRECTORY_PATH_LENGTH,
    MAX_FILE_PATH_LENGTH,
    PathLimits,
    audit_long_paths,
)
from nodeproj.remediation.workflow import format_violations
from nodeproj.services.errors import ProblemError, log_problem, problem
from nodeproj.tooling.tool_runner import ToolRunner
from nodeproj.tooling.typings import (
    LoggingSink,
    PackageRequirement,
    TypingsReconciler,
    read_manifest_requirements,
)
from nodeproj.utils.paths import ensure_project_root

LOG = logging.getLogger("nodeproj.cli")

NPM_ROOT_ENV = "NODEPROJ_NPM_ROOT"

CommandHandler = Callable[[argparse.Namespace], int]


# ---------------------------------------------------------------------------
# Argument parsing / logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure logging based on -v/--verbose count.

    0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nodeproj",
        description="Node.js project maintenance: long-path audits and typings acquisition.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (-v for INFO, -vv for DEBUG)",
    )
    subparsers = parser.add_subparsers(dest="command")

    p_long = subparsers.add_parser("long-paths", help="List paths exceeding the length limit")
    p_long.add_argument("roots", nargs="+", type=Path, help="Directories to scan")
    p_long.add_argument(
        "--max-file",
        type=int,
        default=MAX_FILE_PATH_LENGTH,
        help=f"Maximum file path length (default: {MAX_FILE_PATH_LENGTH})",
    )
    p_long.add_argument(
        "--max-directory",
        type=int,
        default=MAX_DIRECTORY_PATH_LENGTH,
        help=f"Maximum directory path length (default: {MAX_DIRECTORY_PATH_LENGTH})",
    )
    p_long.add_argument("--json", action="store_true", help="Emit JSON records")
    p_long.set_defaults(func=_cmd_long_paths)

    p_typings = subparsers.add_parser("typings", help="Install missing typings")
    p_typings.add_argument(
        "--project-root",
        type=Path,
        default=Path(),
        help="Project root (default: current directory)",
    )
    p_typings.add_argument(
        "--npm-root",
        type=Path,
        default=None,
        help=f"Directory holding the installer (default: ${NPM_ROOT_ENV})",
    )
    p_typings.add_argument(
        "--tsd-bin",
        default=None,
        help="Installer file name under the npm root",
    )
    p_typings.add_argument(
        "packages",
        nargs="*",
        help="Package names (default: dependencies from package.json)",
    )
    p_typings.set_defaults(func=_cmd_typings)

    p_settings = subparsers.add_parser("settings", help="Validate a project settings file")
    p_settings.add_argument(
        "path",
        type=Path,
        nargs="?",
        default=Path(SETTINGS_FILE_NAME),
        help=f"Settings YAML file (default: {SETTINGS_FILE_NAME})",
    )
    p_settings.set_defaults(func=_cmd_settings)

    return parser


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_long_paths(args: argparse.Namespace) -> int:
    limits = PathLimits(max_file=args.max_file, max_directory=args.max_directory)
    violations = anyio.run(audit_long_paths, list(args.roots), limits)
    if args.json:
        sys.stdout.write(json.dumps([asdict(record) for record in violations], indent=2) + "\n")
    else:
        for line in format_violations(violations):
            sys.stdout.write(line + "\n")
    LOG.info("Found %d long paths", len(violations))
    return 1 if violations else 0


def _cmd_typings(args: argparse.Namespace) -> int:
    npm_root = args.npm_root or (Path(os.environ[NPM_ROOT_ENV]) if NPM_ROOT_ENV in os.environ else None)
    if npm_root is None:
        log_problem(
            LOG,
            problem(
                code="cli.npm_root_missing",
                title="npm root not set",
                detail=f"Pass --npm-root or set {NPM_ROOT_ENV}",
            ),
        )
        return 2
    tools = ToolsConfig.with_overrides(tsd_bin=args.tsd_bin) if args.tsd_bin else ToolsConfig.default()
    project_root = ensure_project_root(args.project_root)
    required: list[PackageRequirement] = (
        [PackageRequirement(name=name) for name in args.packages]
        if args.packages
        else read_manifest_requirements(project_root / MANIFEST_FILE_NAME)
    )
    reconciler = TypingsReconciler(ToolRunner(tools_config=tools))
    outcome = anyio.run(
        partial(reconciler.acquire, npm_root, project_root, required, LoggingSink(LOG))
    )
    sys.stdout.write(f"{outcome.value}\n")
    return 0 if outcome.ok else 1


def _cmd_settings(args: argparse.Namespace) -> int:
    settings = load_project_settings(args.path)
    sys.stdout.write(settings.model_dump_json(indent=2) + "\n")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Iterable[str] | None = None) -> int:
    """
    CLI entrypoint for nodeproj commands.

    Parameters
    ----------
    argv:
        Optional argument list (defaults to sys.argv).

    Returns
    -------
    int
        Exit code (0 on success).
    """
    parser = _make_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        func: CommandHandler = args.func
        return int(func(args))
    except ProblemError as exc:
        log_problem(LOG, exc.problem_detail)
        return 1
    except Exception as exc:  # noqa: BLE001 pragma: no cover - error path
        log_problem(
            LOG,
            problem(
                code="cli.failure",
                title="CLI command failed",
                detail=str(exc),
                extras={"command": args.command},
            ),
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
