"""Structured runners for external tools with streamed output and typed results."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import time
from asyncio.subprocess import PIPE
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from nodeproj.config.models import ToolsConfig

log = logging.getLogger(__name__)

LineCallback = Callable[[str], None]


class ToolName(StrEnum):
    """Supported external tools invoked by the project system."""

    TSD = "tsd"
    NPM = "npm"


@dataclass(frozen=True)
class ToolRunResult:
    """Structured output from a tool invocation."""

    tool: ToolName
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration_s: float

    @property
    def ok(self) -> bool:
        """Return True when the tool completed successfully."""
        return self.returncode == 0


class ToolNotFoundError(RuntimeError):
    """Raised when a configured tool cannot be resolved on the host."""

    def __init__(self, tool: ToolName, configured_path: str) -> None:
        message = f"Tool {tool.value} not found (configured as {configured_path!r})"
        super().__init__(message)
        self.tool = tool
        self.configured_path = configured_path


class ToolLaunchError(RuntimeError):
    """Raised when the operating system refuses to start a tool process."""

    def __init__(self, tool: ToolName, command: Sequence[str], cause: OSError) -> None:
        message = f"Tool {tool.value} could not be started: {cause}"
        super().__init__(message)
        self.tool = tool
        self.command = tuple(command)


class ToolExecutionError(RuntimeError):
    """Raised when a tool invocation fails irrecoverably (e.g., timeout)."""

    def __init__(self, result: ToolRunResult) -> None:
        message = (
            f"Tool {result.tool.value} failed (code={result.returncode})\n"
            f"Args: {result.args}\n"
            f"stderr: {result.stderr.strip()}"
        )
        super().__init__(message)
        self.result = result


def _kill_quietly(proc: asyncio.subprocess.Process) -> None:
    # The process may already have exited and been reaped.
    with contextlib.suppress(ProcessLookupError):
        proc.kill()


async def _pump_lines(
    stream: asyncio.StreamReader | None,
    collected: list[str],
    on_line: LineCallback | None,
) -> None:
    if stream is None:
        return
    while True:
        raw = await stream.readline()
        if not raw:
            return
        line = raw.decode(errors="replace").rstrip("\r\n")
        collected.append(line)
        if on_line is not None:
            on_line(line)


class ToolRunner:
    """Run external tools with line streaming and environment overrides."""

    def __init__(
        self,
        *,
        tools_config: ToolsConfig | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.tools_config = tools_config or ToolsConfig.default()
        self.base_env = dict(base_env or {})

    @staticmethod
    def _coerce_tool(tool: ToolName | str) -> ToolName:
        if isinstance(tool, ToolName):
            return tool
        try:
            return ToolName(tool)
        except ValueError as exc:
            message = f"Unknown tool {tool!r}"
            raise ValueError(message) from exc

    def resolve_executable(self, tool: ToolName) -> str:
        """
        Resolve the configured executable for ``tool``.

        Returns
        -------
        str
            Path to the executable.

        Raises
        ------
        ToolNotFoundError
            When neither the configured path nor a PATH lookup finds it.
        """
        configured = self.tools_config.resolve_path(tool)
        candidate_path = Path(configured)
        if candidate_path.is_file():
            return str(candidate_path)
        discovered = shutil.which(configured)
        if discovered is None:
            raise ToolNotFoundError(tool, configured)
        return discovered

    async def run_async(
        self,
        tool: ToolName | str,
        args: Sequence[str],
        *,
        executable: str | Path | None = None,
        cwd: Path | None = None,
        timeout_s: float | None = None,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
        kill_on_failure: bool = False,
    ) -> ToolRunResult:
        """
        Execute a tool asynchronously, streaming and capturing stdout/stderr.

        Parameters
        ----------
        tool
            Tool identifier to invoke.
        args
            Argument vector (without the executable).
        executable
            Explicit executable path; skips configuration lookup when given.
        cwd
            Optional working directory.
        timeout_s
            Optional timeout in seconds; defaults to the configured timeout.
        on_stdout, on_stderr
            Optional callbacks receiving each output line as it arrives.
        kill_on_failure
            Attempt to kill the process after a non-zero exit so no child of
            a failed run survives.

        Returns
        -------
        ToolRunResult
            Structured process result including stdout, stderr, and exit code.

        Raises
        ------
        ToolNotFoundError
            When the configured tool executable cannot be located.
        ToolLaunchError
            When the process could not be started.
        ToolExecutionError
            When the subprocess times out.
        """
        tool_enum = self._coerce_tool(tool)
        resolved = str(executable) if executable is not None else self.resolve_executable(tool_enum)
        cmd = [resolved, *args]
        env = self.tools_config.build_env(base_env=self.base_env)
        effective_timeout = timeout_s if timeout_s is not None else self.tools_config.default_timeout_s
        start_ts = time.perf_counter()

        log.debug("Starting %s: %s (cwd=%s)", tool_enum.value, cmd, cwd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd) if cwd is not None else None,
                stdout=PIPE,
                stderr=PIPE,
                env=env,
            )
        except OSError as exc:
            raise ToolLaunchError(tool_enum, cmd, exc) from exc

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _pump_lines(proc.stdout, stdout_lines, on_stdout),
                    _pump_lines(proc.stderr, stderr_lines, on_stderr),
                    proc.wait(),
                ),
                timeout=effective_timeout,
            )
        except TimeoutError as exc:
            _kill_quietly(proc)
            await proc.wait()
            result = ToolRunResult(
                tool=tool_enum,
                args=tuple(args),
                returncode=proc.returncode or 1,
                stdout="\n".join(stdout_lines),
                stderr="timed out",
                duration_s=time.perf_counter() - start_ts,
            )
            raise ToolExecutionError(result) from exc

        returncode = proc.returncode if proc.returncode is not None else 1
        if returncode != 0 and kill_on_failure:
            _kill_quietly(proc)

        duration = time.perf_counter() - start_ts
        log.debug("%s exited with %d after %.2fs", tool_enum.value, returncode, duration)
        return ToolRunResult(
            tool=tool_enum,
            args=tuple(args),
            returncode=returncode,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
            duration_s=duration,
        )
