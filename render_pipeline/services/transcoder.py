"""Transcoding step of the render pipeline (ffmpeg).

Compresses the downloaded asset to H.264 MP4 and optionally burns a text
overlay into the frames.

FFmpeg Command:
    ffmpeg -i <input> -y -vcodec libx264 -crf 28 [-vf drawtext=...] <output>

Architecture Pattern:
    - Transcoder protocol: the pipeline only depends on transcode(); tests
      inject a fake that needs no binary
    - FfmpegTranscoder runs ffmpeg through run_command (subprocess in a thread)
    - Failures are returned as Err(TRANSCODE, detail), never raised

Usage:
    transcoder = FfmpegTranscoder()
    result = await transcoder.transcode(input_path, output_path, TranscodeOptions.from_config())
    if isinstance(result, Err):
        ...
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from render_pipeline.config import (
    get_ffmpeg_binary,
    get_overlay_font_path,
    get_overlay_text,
    get_transcode_timeout,
)
from render_pipeline.utils.cli_wrapper import CommandError, run_command
from render_pipeline.utils.logging import get_logger
from render_pipeline.utils.result import Err, FailureKind, Ok, Result

log = get_logger(__name__)

VIDEO_CODEC = "libx264"
CONSTANT_RATE_FACTOR = 28

# Characters with special meaning inside an ffmpeg filter argument
_DRAWTEXT_ESCAPES = {
    "\\": "\\\\",
    ":": "\\:",
    "'": "\\'",
    "%": "\\%",
    ",": "\\,",
}


@dataclass(frozen=True)
class TranscodeOptions:
    """Per-call transcoding settings.

    Attributes:
        timeout: Execution budget in seconds.
        overlay_text: Text burned into the video, None for no overlay.
        font_path: Font file for the overlay (fontconfig lookup if None).
    """

    timeout: int
    overlay_text: str | None = None
    font_path: str | None = None

    @classmethod
    def from_config(cls) -> "TranscodeOptions":
        return cls(
            timeout=get_transcode_timeout(),
            overlay_text=get_overlay_text(),
            font_path=get_overlay_font_path(),
        )


class Transcoder(Protocol):
    async def transcode(
        self,
        input_path: Path,
        output_path: Path,
        options: TranscodeOptions,
    ) -> Result[Path]:
        """Transcode input_path into output_path.

        Returns:
            Ok(output_path) on success, Err(TRANSCODE, detail) otherwise.

        Raises:
            TranscodeFailure: Optional alternative to returning Err, e.g. for
                wrappers around tools that signal failure with exceptions.
                RenderPipeline records it as Err(TRANSCODE, stderr or message).
                FfmpegTranscoder never raises it.
        """
        ...


def escape_drawtext(text: str) -> str:
    """Escape text for use as a drawtext filter value.

    Example:
        >>> escape_drawtext("Score: 100%")
        'Score\\\\: 100\\\\%'
    """
    return "".join(_DRAWTEXT_ESCAPES.get(char, char) for char in text)


def build_drawtext_filter(text: str, font_path: str | None = None) -> str:
    """Build a drawtext filter centering text near the bottom of the frame."""
    parts = [f"text={escape_drawtext(text)}"]
    if font_path:
        parts.append(f"fontfile={escape_drawtext(font_path)}")
    parts.extend(
        [
            "fontsize=48",
            "fontcolor=white",
            "box=1",
            "boxcolor=black@0.5",
            "boxborderw=10",
            "x=(w-text_w)/2",
            "y=h-text_h-40",
        ]
    )
    return "drawtext=" + ":".join(parts)


class FfmpegTranscoder:
    """Transcoder backed by the ffmpeg CLI.

    Args:
        binary: ffmpeg executable (default from FFMPEG_BINARY).
    """

    def __init__(self, binary: str | None = None) -> None:
        self.binary = binary or get_ffmpeg_binary()

    def build_command(
        self,
        input_path: Path,
        output_path: Path,
        options: TranscodeOptions,
    ) -> list[str]:
        command = [
            self.binary,
            "-i",
            str(input_path),
            "-y",
            "-vcodec",
            VIDEO_CODEC,
            "-crf",
            str(CONSTANT_RATE_FACTOR),
        ]
        if options.overlay_text:
            command.extend(["-vf", build_drawtext_filter(options.overlay_text, options.font_path)])
        command.append(str(output_path))
        return command

    async def transcode(
        self,
        input_path: Path,
        output_path: Path,
        options: TranscodeOptions,
    ) -> Result[Path]:
        command = self.build_command(input_path, output_path, options)
        log.info(
            "transcode_start",
            input_path=str(input_path),
            output_path=str(output_path),
            overlay=options.overlay_text is not None,
            timeout=options.timeout,
        )

        try:
            await run_command(command, timeout=options.timeout)
        except CommandError as e:
            return Err(FailureKind.TRANSCODE, e.stderr.strip() or str(e))
        except asyncio.TimeoutError:
            return Err(FailureKind.TRANSCODE, f"ffmpeg timed out after {options.timeout}s")
        except FileNotFoundError:
            return Err(FailureKind.TRANSCODE, f"ffmpeg executable not found: {self.binary}")

        if not output_path.exists() or output_path.stat().st_size == 0:
            log.error("transcode_empty_output", output_path=str(output_path))
            return Err(FailureKind.TRANSCODE, f"ffmpeg produced no output at {output_path.name}")

        log.info(
            "transcode_complete",
            output_path=str(output_path),
            size_bytes=output_path.stat().st_size,
        )
        return Ok(output_path)
