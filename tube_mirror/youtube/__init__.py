"""
YouTube integration module for tube-mirror.

Everything that knows what a YouTube URL or a yt-dlp document looks like.

Components:
    - classify_url: URL shape to ResourceKind
    - ResourceSnapshot: Entry list of a playlist or channel
    - VideoInfo: The .info.json fields the views need
    - YtDlp: Runs yt-dlp in per-invocation working directories

Usage:
    from tube_mirror.youtube import YtDlp, classify_url

    kind = classify_url(url)
    snapshot = YtDlp(config.downloader, data_dir, catalog).query_resource(url, kind)
    print(f"{snapshot.title}: {len(snapshot.entries)} entries")
"""

from tube_mirror.youtube.models import (
    ResourceKind,
    ResourceSnapshot,
    SnapshotKind,
    VideoInfo,
    classify_url,
    detect_snapshot_kind,
    video_id_from_url,
)
from tube_mirror.youtube.ytdlp import EXECS_DIRNAME, ProcessResult, YtDlp

__all__ = [
    # Models
    "ResourceKind",
    "SnapshotKind",
    "ResourceSnapshot",
    "VideoInfo",
    "classify_url",
    "detect_snapshot_kind",
    "video_id_from_url",
    # Runner
    "YtDlp",
    "ProcessResult",
    "EXECS_DIRNAME",
]
