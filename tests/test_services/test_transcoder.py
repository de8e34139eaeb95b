"""Tests for the ffmpeg transcoder.

run_command is mocked: no ffmpeg binary is needed.
"""

import asyncio
import subprocess
from unittest.mock import AsyncMock

import pytest

from render_pipeline.services.transcoder import (
    FfmpegTranscoder,
    TranscodeOptions,
    build_drawtext_filter,
    escape_drawtext,
)
from render_pipeline.utils.cli_wrapper import CommandError
from render_pipeline.utils.result import Err, FailureKind, Ok


@pytest.fixture
def paths(tmp_path):
    input_path = tmp_path / "clip_input.mp4"
    input_path.write_bytes(b"source")
    return input_path, tmp_path / "clip_output.mp4"


def mock_run_command(mocker, side_effect=None):
    return mocker.patch(
        "render_pipeline.services.transcoder.run_command",
        new_callable=AsyncMock,
        side_effect=side_effect,
    )


class TestBuildCommand:
    def test_compression_arguments(self, paths):
        input_path, output_path = paths
        transcoder = FfmpegTranscoder(binary="ffmpeg")

        command = transcoder.build_command(input_path, output_path, TranscodeOptions(timeout=60))

        assert command == [
            "ffmpeg",
            "-i",
            str(input_path),
            "-y",
            "-vcodec",
            "libx264",
            "-crf",
            "28",
            str(output_path),
        ]

    def test_overlay_adds_video_filter(self, paths):
        input_path, output_path = paths
        transcoder = FfmpegTranscoder(binary="/usr/bin/ffmpeg")
        options = TranscodeOptions(timeout=60, overlay_text="Play now", font_path="/fonts/a.ttf")

        command = transcoder.build_command(input_path, output_path, options)

        assert command[0] == "/usr/bin/ffmpeg"
        vf_index = command.index("-vf")
        assert command[vf_index + 1].startswith("drawtext=text=Play now:fontfile=/fonts/a.ttf")
        assert command[-1] == str(output_path)

    def test_binary_defaults_from_environment(self, monkeypatch):
        monkeypatch.setenv("FFMPEG_BINARY", "/opt/ffmpeg/bin/ffmpeg")

        assert FfmpegTranscoder().binary == "/opt/ffmpeg/bin/ffmpeg"


class TestDrawtext:
    def test_escapes_filter_syntax(self):
        assert escape_drawtext("Score: 100%, go") == "Score\\: 100\\%\\, go"

    def test_escapes_quotes_and_backslashes(self):
        assert escape_drawtext("it's a\\b") == "it\\'s a\\\\b"

    def test_filter_without_font(self):
        drawtext = build_drawtext_filter("Hi")

        assert drawtext.startswith("drawtext=text=Hi:fontsize=48")
        assert "fontfile" not in drawtext
        assert drawtext.endswith("x=(w-text_w)/2:y=h-text_h-40")


@pytest.mark.asyncio
class TestTranscode:
    async def test_success_returns_output_path(self, mocker, paths):
        input_path, output_path = paths

        async def fake_run(command, timeout):
            output_path.write_bytes(b"h264")
            return subprocess.CompletedProcess(command, 0, "", "")

        run = mock_run_command(mocker, side_effect=fake_run)

        result = await FfmpegTranscoder(binary="ffmpeg").transcode(
            input_path, output_path, TranscodeOptions(timeout=120)
        )

        assert result == Ok(output_path)
        assert run.call_args.kwargs["timeout"] == 120

    async def test_non_zero_exit_returns_stderr(self, mocker, paths):
        input_path, output_path = paths
        mock_run_command(
            mocker,
            side_effect=CommandError("ffmpeg", 1, "Invalid data found when processing input\n"),
        )

        result = await FfmpegTranscoder(binary="ffmpeg").transcode(
            input_path, output_path, TranscodeOptions(timeout=60)
        )

        assert result == Err(FailureKind.TRANSCODE, "Invalid data found when processing input")

    async def test_timeout(self, mocker, paths):
        input_path, output_path = paths
        mock_run_command(mocker, side_effect=asyncio.TimeoutError("ffmpeg exceeded timeout"))

        result = await FfmpegTranscoder(binary="ffmpeg").transcode(
            input_path, output_path, TranscodeOptions(timeout=30)
        )

        assert isinstance(result, Err)
        assert result.detail == "ffmpeg timed out after 30s"

    async def test_missing_binary(self, mocker, paths):
        input_path, output_path = paths
        mock_run_command(mocker, side_effect=FileNotFoundError("ffmpeg"))

        result = await FfmpegTranscoder(binary="ffmpeg-missing").transcode(
            input_path, output_path, TranscodeOptions(timeout=30)
        )

        assert result == Err(FailureKind.TRANSCODE, "ffmpeg executable not found: ffmpeg-missing")

    async def test_empty_output_is_failure(self, mocker, paths):
        """GIVEN: ffmpeg exits 0 but writes nothing
        WHEN: transcode runs
        THEN: The result is a TRANSCODE error
        """
        input_path, output_path = paths
        mock_run_command(mocker)

        result = await FfmpegTranscoder(binary="ffmpeg").transcode(
            input_path, output_path, TranscodeOptions(timeout=30)
        )

        assert isinstance(result, Err)
        assert result.kind is FailureKind.TRANSCODE
        assert "produced no output" in result.detail
