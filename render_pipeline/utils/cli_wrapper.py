"""Async wrapper for external command execution.

This module runs external tools (ffmpeg) without blocking the event loop by
executing ``subprocess.run()`` in a worker thread via ``asyncio.to_thread()``.

Critical Pattern:
- Workers MUST use this wrapper instead of subprocess.run() directly
- Every call has a timeout
- Non-zero exit codes raise CommandError carrying the captured stderr
"""

import asyncio
import os
import subprocess

from render_pipeline.utils.logging import get_logger

log = get_logger(__name__)

# Longest stdout/stderr excerpt written to logs
LOG_EXCERPT_CHARS = 500


class CommandError(Exception):
    """Raised when an external command exits with a non-zero code.

    Attributes:
        program (str): Executable name (e.g., "ffmpeg")
        exit_code (int): Process exit code
        stderr (str): Captured stderr output
    """

    def __init__(self, program: str, exit_code: int, stderr: str) -> None:
        self.program: str = program
        self.exit_code: int = exit_code
        self.stderr: str = stderr
        super().__init__(f"{program} failed with exit code {exit_code}: {stderr}")


def _excerpt(text: str) -> str:
    return text[:LOG_EXCERPT_CHARS] + "..." if len(text) > LOG_EXCERPT_CHARS else text


async def run_command(
    command: list[str],
    timeout: int = 600,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run an external command without blocking the async event loop.

    Args:
        command: Executable followed by its arguments
        timeout: Timeout in seconds (default: 600)
        env: Optional variables added to the parent environment for this call only

    Returns:
        CompletedProcess with stdout, stderr, returncode

    Raises:
        CommandError: If the command exits with non-zero code
        asyncio.TimeoutError: If the command exceeds timeout
        FileNotFoundError: If the executable cannot be found
        ValueError: If command is empty

    Example:
        >>> result = await run_command(["ffmpeg", "-version"], timeout=10)
        >>> print(result.stdout.splitlines()[0])
        "ffmpeg version 6.1 ..."
    """
    if not command:
        raise ValueError("command must not be empty")

    program = os.path.basename(command[0])
    log_args = [arg[:100] + "..." if len(arg) > 100 else arg for arg in command[1:]]
    log.info("command_start", program=program, args=log_args, timeout=timeout)

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    try:
        result = await asyncio.to_thread(
            subprocess.run,
            command,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            env=process_env,
        )
    except subprocess.TimeoutExpired as e:
        log.error("command_timeout", program=program, timeout=timeout)
        raise asyncio.TimeoutError(f"{program} exceeded timeout of {timeout}s") from e

    if result.returncode != 0:
        log.error(
            "command_error",
            program=program,
            exit_code=result.returncode,
            stderr=_excerpt(result.stderr),
        )
        raise CommandError(program, result.returncode, result.stderr)

    log.info("command_success", program=program, stdout=_excerpt(result.stdout))
    return result
