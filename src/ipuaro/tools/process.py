"""Async subprocess execution shared by the git and run tools."""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path

from ..exceptions import IpuaroError
from ..logging import get_logger

logger = get_logger(__name__)

MAX_OUTPUT_SIZE = 200_000


@dataclass
class ProcessResult:
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int


def truncate_output(output: str, limit: int = MAX_OUTPUT_SIZE) -> str:
    if len(output) <= limit:
        return output
    return f"{output[:limit]}\n... (output truncated)"


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        proc.kill()
        await proc.wait()


async def run_process(
    args: list[str] | str,
    cwd: Path,
    timeout: float,
    shell: bool = False,
) -> ProcessResult:
    """Run a process and collect its output.

    The process is killed when the timeout expires or when the awaiting task
    is cancelled.

    Args:
        args: Argument vector, or a command line when shell is True
        cwd: Working directory
        timeout: Timeout in seconds
        shell: Run through the system shell

    Returns:
        The captured output and exit code

    Raises:
        IpuaroError: Of kind timeout when the process exceeds the timeout
    """
    env = {**os.environ, "FORCE_COLOR": "0", "NO_COLOR": "1", "CI": "true"}
    loop = asyncio.get_running_loop()
    start = loop.time()

    if shell:
        proc = await asyncio.create_subprocess_shell(
            args,
            cwd=cwd,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    else:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(proc)
        raise IpuaroError.timeout(
            f"Command timed out after {timeout:g} seconds",
            timeout_ms=int(timeout * 1000),
        )
    except asyncio.CancelledError:
        logger.info(f"killing cancelled process: {args}")
        await _kill(proc)
        raise

    return ProcessResult(
        stdout=truncate_output(stdout.decode("utf-8", errors="replace")),
        stderr=truncate_output(stderr.decode("utf-8", errors="replace")),
        exit_code=proc.returncode if proc.returncode is not None else -1,
        duration_ms=int((loop.time() - start) * 1000),
    )
