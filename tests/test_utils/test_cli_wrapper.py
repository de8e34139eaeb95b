"""Tests for the async command wrapper.

Uses the running interpreter as the external command so no ffmpeg is needed.
"""

import asyncio
import sys

import pytest

from render_pipeline.utils.cli_wrapper import CommandError, run_command


@pytest.mark.asyncio
class TestRunCommand:
    async def test_success_returns_completed_process(self):
        result = await run_command([sys.executable, "-c", "print('ok')"], timeout=30)

        assert result.returncode == 0
        assert result.stdout.strip() == "ok"

    async def test_non_zero_exit_raises_command_error(self):
        script = "import sys; sys.stderr.write('bad input'); sys.exit(3)"

        with pytest.raises(CommandError) as exc_info:
            await run_command([sys.executable, "-c", script], timeout=30)

        assert exc_info.value.exit_code == 3
        assert exc_info.value.stderr == "bad input"
        assert exc_info.value.program.startswith("python")

    async def test_timeout_raises_timeout_error(self):
        with pytest.raises(asyncio.TimeoutError):
            await run_command([sys.executable, "-c", "import time; time.sleep(5)"], timeout=1)

    async def test_missing_executable(self):
        with pytest.raises(FileNotFoundError):
            await run_command(["definitely-not-a-real-binary-xyz"], timeout=5)

    async def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            await run_command([])

    async def test_env_is_added_for_this_call(self):
        script = "import os; print(os.environ['RENDER_TEST_VAR'])"

        result = await run_command(
            [sys.executable, "-c", script], timeout=30, env={"RENDER_TEST_VAR": "42"}
        )

        assert result.stdout.strip() == "42"
