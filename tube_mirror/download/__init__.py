"""
Download module for tube-mirror.

Fetching a single video into the artifact store, probing it, and deciding
whether a failed fetch is permanent.

Usage:
    from tube_mirror.download import VideoFetcher, handle_download_failure

    result = fetcher.fetch(video_id)
    if result.downloader_failed:
        handle_download_failure(catalog, video_id, result.stderr)
"""

from tube_mirror.download.failures import (
    UNAVAILABLE_PHRASES,
    FailureClassification,
    classify_failure,
    handle_download_failure,
)
from tube_mirror.download.fetcher import FetchResult, VideoFetcher
from tube_mirror.download.prober import probe_media

__all__ = [
    "VideoFetcher",
    "FetchResult",
    "probe_media",
    "UNAVAILABLE_PHRASES",
    "FailureClassification",
    "classify_failure",
    "handle_download_failure",
]
