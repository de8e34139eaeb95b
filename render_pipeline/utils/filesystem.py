"""Local scratch-file helpers for the render worker.

Every delivery gets its own input/output file pair in the temp directory.
File names carry a uuid4 suffix so concurrent deliveries never collide, even
across worker instances sharing a volume.

Layout:
    <RENDER_TEMP_DIR>/
    ├── <basename>_<uuid>_input.<ext>
    └── <basename>_<uuid>_output.mp4

Security:
    The basename comes from the asset key, which is external input. It is
    reduced to alphanumerics, underscores and dashes, and resolved paths are
    verified to stay inside the temp directory.

Usage:
    from render_pipeline.utils.filesystem import build_temp_paths, remove_temp_file

    paths = build_temp_paths(temp_dir, "projects/p1/assets/in.mp4")
    ...
    remove_temp_file(paths.input_path)
"""

import re
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from render_pipeline.utils.logging import get_logger

__all__ = [
    "OUTPUT_EXTENSION",
    "TempPaths",
    "build_temp_paths",
    "ensure_temp_dir",
    "remove_temp_file",
]

log = get_logger(__name__)

# ffmpeg output container
OUTPUT_EXTENSION = ".mp4"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]+")
_SAFE_EXTENSION = re.compile(r"^\.[a-zA-Z0-9]{1,10}$")
_MAX_BASENAME = 64


@dataclass(frozen=True)
class TempPaths:
    """Scratch file pair for a single delivery.

    Attributes:
        input_path: Where the downloaded asset is written
        output_path: Where ffmpeg writes the rendered file
    """

    input_path: Path
    output_path: Path


def ensure_temp_dir(temp_dir: Path) -> Path:
    """Create the temp directory if needed.

    Raises:
        OSError: If the directory cannot be created. The worker must not
            start without scratch storage.
    """
    temp_dir.mkdir(parents=True, exist_ok=True)
    log.info("temp_dir_ready", path=str(temp_dir))
    return temp_dir


def _verify_path_in_dir(path: Path, directory: Path) -> None:
    """Verify that the resolved path stays within directory.

    Raises:
        ValueError: If the resolved path escapes the directory
    """
    resolved = path.resolve()
    if not resolved.is_relative_to(directory.resolve()):
        raise ValueError(
            f"Path traversal detected: resolved path '{resolved}' is outside '{directory}'"
        )


def build_temp_paths(temp_dir: Path, asset_path: str) -> TempPaths:
    """Derive unique input/output paths for an asset key.

    Args:
        temp_dir: Scratch directory
        asset_path: Object key of the source asset (e.g., "projects/p1/assets/in.mp4")

    Returns:
        TempPaths with uuid-suffixed input and output file names

    Example:
        >>> paths = build_temp_paths(Path("/tmp/render"), "projects/p1/assets/in.mp4")
        >>> paths.input_path.name
        'in_3f2a..._input.mp4'
    """
    key = PurePosixPath(asset_path)
    extension = key.suffix if _SAFE_EXTENSION.match(key.suffix) else ""
    basename = _UNSAFE_CHARS.sub("_", key.stem)[:_MAX_BASENAME].strip("_") or "asset"

    input_path = temp_dir / f"{basename}_{uuid.uuid4()}_input{extension}"
    output_path = temp_dir / f"{basename}_{uuid.uuid4()}_output{OUTPUT_EXTENSION}"

    _verify_path_in_dir(input_path, temp_dir)
    _verify_path_in_dir(output_path, temp_dir)
    return TempPaths(input_path=input_path, output_path=output_path)


def remove_temp_file(path: Path | None) -> bool:
    """Delete a scratch file, best effort.

    Missing files are not an error. Other failures are logged and swallowed so
    cleanup never masks the outcome of the delivery.

    Returns:
        True if the file is gone afterwards, False if deletion failed.
    """
    if path is None:
        return True
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        log.warning("temp_file_cleanup_failed", path=str(path), error=str(e))
        return False
    return True
