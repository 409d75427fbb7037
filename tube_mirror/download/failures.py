"""
Download failure classification for tube-mirror.

yt-dlp reports why a video could not be fetched only in its stderr. A
failure is permanent (the video is tombstoned in unavailable_videos and
never retried) when the stderr names exactly one line for one of the known
phrases, checked in this order:

    "unavailable"
    "not available"
    "members on level"
    "has been removed for violating"
    "Private video"

A phrase found on several lines is ambiguous and is skipped in favour of
the next one. Anything that matches no phrase is a transient failure and
will be retried on the next run.

The reason stored is the text after the first ": " at or past column 7 of
the matching line, which strips yt-dlp's "ERROR: [youtube] <id>: " prefix:

    ERROR: [youtube] abc123: Private video. Sign in if you've been granted access
    -> "Private video. Sign in if you've been granted access"
"""

from dataclasses import dataclass

from tube_mirror.core.catalog import Catalog
from tube_mirror.core.logger import get_logger, log_unavailable_video

logger = get_logger(__name__)


UNAVAILABLE_PHRASES = (
    "unavailable",
    "not available",
    "members on level",
    "has been removed for violating",
    "Private video",
)

# Column from which the reason separator is searched
_REASON_SEARCH_START = 7


@dataclass(frozen=True)
class FailureClassification:
    """
    A permanent failure found in a downloader's stderr.

    Attributes:
        phrase: The phrase that matched.
        line: The single stderr line it matched.
        reason: Human-readable reason stored in the catalog.
    """
    phrase: str
    line: str
    reason: str


def extract_reason(line: str) -> str:
    """
    Cut the yt-dlp prefix off an error line.

    Lines without a separator past the prefix are returned stripped.
    """
    separator = line.find(":", _REASON_SEARCH_START)
    if separator == -1:
        return line.strip()
    return line[separator + 2:].strip()


def classify_failure(stderr: str) -> FailureClassification | None:
    """
    Decide whether a failed download is permanent.

    Args:
        stderr: Captured standard error of the failed download.

    Returns:
        The classification for a permanent failure, or None for a
        transient one.
    """
    lines = stderr.splitlines()

    for phrase in UNAVAILABLE_PHRASES:
        if phrase not in stderr:
            continue
        matching = [line for line in lines if phrase in line]
        if len(matching) != 1:
            continue
        return FailureClassification(
            phrase=phrase,
            line=matching[0],
            reason=extract_reason(matching[0]),
        )

    return None


def handle_download_failure(catalog: Catalog, video_id: str, stderr: str) -> str | None:
    """
    Log a failed download and tombstone it if the failure is permanent.

    Args:
        catalog: Catalog to record the tombstone in.
        video_id: Video whose download failed.
        stderr: Captured standard error of the download.

    Returns:
        The stored reason if the video was tombstoned, None otherwise.
    """
    logger.error(f"video {video_id} not available/download failed")

    classification = classify_failure(stderr)
    if classification is None:
        return None

    catalog.mark_unavailable(video_id, classification.reason)
    log_unavailable_video(logger, video_id, classification.reason)
    return classification.reason
