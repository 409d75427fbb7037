"""
Media probing for tube-mirror.

After a download, the merged media file is examined with ffprobe (through
ffmpeg-python) and the result is kept next to it as <id>.<ext>.ffprobe.json.
A file ffprobe cannot read is treated as a failed fetch.
"""

import json
from pathlib import Path
from typing import Any

import ffmpeg

from tube_mirror.core.exceptions import ProbeError
from tube_mirror.core.logger import get_logger

logger = get_logger(__name__)


def probe_media(path: Path, binary: str = "ffprobe") -> dict[str, Any]:
    """
    Run ffprobe on a media file and return its parsed report.

    ffmpeg-python invokes `<binary> -show_format -show_streams -of json`.

    Args:
        path: Media file to examine.
        binary: ffprobe executable name or path.

    Returns:
        The decoded JSON report (keys "format" and "streams").

    Raises:
        ProbeError: If ffprobe cannot be run, exits non-zero, or prints
                    something that is not a JSON object.
    """
    logger.debug(f"Probing {path.name}")

    try:
        report = ffmpeg.probe(str(path), cmd=binary)
    except ffmpeg.Error as e:
        stderr = e.stderr.decode("utf-8", errors="replace") if e.stderr else ""
        raise ProbeError(
            f"ffprobe failed for {path.name}",
            details={"path": str(path), "stderr": stderr.strip()}
        ) from e
    except json.JSONDecodeError as e:
        raise ProbeError(
            f"ffprobe printed invalid JSON for {path.name}: {e}",
            details={"path": str(path)}
        ) from e
    except OSError as e:
        raise ProbeError(
            f"Failed to run {binary}: {e}",
            details={"path": str(path), "binary": binary}
        ) from e

    if not isinstance(report, dict):
        raise ProbeError(
            f"ffprobe report for {path.name} is not a JSON object",
            details={"path": str(path)}
        )
    return report


def write_probe_report(report: dict[str, Any], target: Path) -> None:
    """Write a probe report as the <id>.<ext>.ffprobe.json sidecar."""
    with open(target, "w", encoding="utf-8") as f:
        json.dump(report, f)
