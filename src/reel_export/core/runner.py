"""Subprocess runner for external tools (ffmpeg, yt-dlp).

A nonzero exit code is a normal return value; only a failure to start the
process raises. Cancelling the awaiting task terminates the process.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Callable, Sequence

from ..errors import LaunchError
from ..models import SubprocessResult

logger = logging.getLogger(__name__)

# Seconds to wait after SIGTERM before sending SIGKILL
TERMINATE_GRACE_SECONDS = 3.0

# asyncio StreamReader line limit; ffmpeg banners can exceed the 64 KiB default
STREAM_LIMIT = 1024 * 1024


class DiagnosticBuffer:
    """
    Bounded store for diagnostic lines.

    Keeps the first ``head_lines`` lines (banner, input probing) and the last
    ``tail_lines`` lines (the actual error), counting whatever falls between.
    """

    def __init__(self, head_lines: int = 40, tail_lines: int = 200, max_line_length: int = 2000):
        self.head_lines = head_lines
        self.max_line_length = max_line_length
        self._head: list[str] = []
        self._tail: deque[str] = deque(maxlen=tail_lines)
        self._omitted = 0

    def append(self, line: str) -> None:
        if len(line) > self.max_line_length:
            line = line[: self.max_line_length] + "..."
        if len(self._head) < self.head_lines:
            self._head.append(line)
            return
        if len(self._tail) == self._tail.maxlen:
            self._omitted += 1
        self._tail.append(line)

    @property
    def omitted(self) -> int:
        return self._omitted

    def text(self) -> str:
        lines = list(self._head)
        if self._omitted:
            lines.append(f"... [{self._omitted} lines omitted] ...")
        lines.extend(self._tail)
        return "\n".join(lines)


async def terminate_process(
    proc: asyncio.subprocess.Process,
    grace_seconds: float = TERMINATE_GRACE_SECONDS,
) -> None:
    """Send SIGTERM, wait briefly, then SIGKILL if the process is still alive."""
    if proc.returncode is not None:
        return

    logger.info(f"Terminating pid {proc.pid}")
    try:
        proc.terminate()
    except ProcessLookupError:
        return

    try:
        await asyncio.wait_for(proc.wait(), timeout=grace_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Process {proc.pid} did not terminate, sending SIGKILL")
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


async def run_subprocess(
    executable: str | Path,
    args: Sequence[str],
    *,
    on_stdout_line: Callable[[str], None] | None = None,
    cwd: str | Path | None = None,
    diagnostics: DiagnosticBuffer | None = None,
    grace_seconds: float = TERMINATE_GRACE_SECONDS,
) -> SubprocessResult:
    """
    Run an executable and wait for it to exit.

    Args:
        executable: Path to the executable (no PATH lookup is relied upon)
        args: Argument vector, excluding the executable
        on_stdout_line: Called for every stdout line (progress side-channel)
        cwd: Working directory for the process
        diagnostics: Buffer receiving stderr lines (a fresh one by default)
        grace_seconds: SIGTERM to SIGKILL delay on cancellation

    Returns:
        SubprocessResult with the exit code and the buffered stderr text

    Raises:
        LaunchError: The executable could not be started
        asyncio.CancelledError: The awaiting task was cancelled; the process
            has been terminated before this propagates
    """
    cmd = [str(executable), *[str(arg) for arg in args]]
    logger.debug(f"Launching: {' '.join(cmd)}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            limit=STREAM_LIMIT,
        )
    except FileNotFoundError as e:
        raise LaunchError(f"Executable not found: {executable}", str(e)) from e
    except PermissionError as e:
        raise LaunchError(f"Permission denied starting {executable}", str(e)) from e
    except OSError as e:
        raise LaunchError(f"Could not start {executable}", str(e)) from e

    buffer = diagnostics if diagnostics is not None else DiagnosticBuffer()

    async def read_stdout() -> None:
        assert proc.stdout is not None
        async for raw in proc.stdout:
            if on_stdout_line is not None:
                on_stdout_line(_decode(raw))

    async def read_stderr() -> None:
        assert proc.stderr is not None
        async for raw in proc.stderr:
            line = _decode(raw)
            if line:
                buffer.append(line)

    readers = [asyncio.create_task(read_stdout()), asyncio.create_task(read_stderr())]
    try:
        await asyncio.gather(*readers)
        exit_code = await proc.wait()
    except BaseException:
        # Cancellation, or the stdout callback raised
        for task in readers:
            task.cancel()
        await terminate_process(proc, grace_seconds)
        raise

    logger.debug(f"pid {proc.pid} exited with code {exit_code}")
    return SubprocessResult(exit_code=exit_code, diagnostic_text=buffer.text())
