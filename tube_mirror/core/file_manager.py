"""
File management for tube-mirror.

This module handles the storage architecture: one content-addressed store
holding every downloaded video exactly once, and several directory trees of
symlinks ("views") pointing into it.

Architecture:
    data directory/
    ├── stats.json
    ├── data/                                     # Artifact store (canonical files)
    │   └── d/Q/
    │       ├── dQw4w9WgXcQ.mkv
    │       ├── dQw4w9WgXcQ.info.json
    │       ├── dQw4w9WgXcQ.mkv.ffprobe.json
    │       └── dQw4w9WgXcQ.en.srt ...
    ├── tmp/<id>/                                 # Staging for running downloads
    ├── playlists/<title>_<playlist id>/          # Playlist views
    │   └── <video title>_<id>.mkv -> ../../data/d/Q/dQw4w9WgXcQ.mkv
    ├── channels/<channel>_<channel id>/          # Every fetched video, by channel
    └── explicit_channels/<channel>_<channel id>/ # Videos of channels in the URL list

Views carry no state of their own. They are derived from the catalog and the
artifact store and can be recreated at any time; ensure_view() is
idempotent.

Usage:
    from tube_mirror.core.file_manager import ArtifactStore, ViewBuilder

    store = ArtifactStore(data_dir)
    views = ViewBuilder(data_dir, store)

    store.ingest(video_id, staging_dir)
    views.ensure_view(video, playlist=snapshot)
"""

import json
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Any

from tube_mirror.core.exceptions import ConsistencyError
from tube_mirror.core.logger import get_logger
from tube_mirror.utils import ensure_directory, sanitize_filename

if TYPE_CHECKING:
    from tube_mirror.youtube.models import ResourceSnapshot, VideoInfo

logger = get_logger(__name__)


DATA_DIRNAME = "data"
STAGING_DIRNAME = "tmp"

PLAYLISTS_ROOT = "playlists"
CHANNELS_ROOT = "channels"
EXPLICIT_CHANNELS_ROOT = "explicit_channels"
VIEW_ROOTS = (PLAYLISTS_ROOT, CHANNELS_ROOT, EXPLICIT_CHANNELS_ROOT)

INFO_JSON_SUFFIX = ".info.json"
PROBE_JSON_SUFFIX = ".ffprobe.json"


def artifact_id_from_name(filename: str) -> str:
    """
    Return the video id a store file or link target belongs to.

    Example:
        artifact_id_from_name("dQw4w9WgXcQ.en.srt")  # "dQw4w9WgXcQ"
    """
    return filename.split(".", 1)[0]


class ArtifactStore:
    """
    Content-addressed store sharded by the first two characters of the id.

    Attributes:
        base_dir: Data directory.
        data_dir: Root of the store (base_dir/data).
        staging_root: Root of per-video staging directories (base_dir/tmp).
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir
        self.data_dir = base_dir / DATA_DIRNAME
        self.staging_root = base_dir / STAGING_DIRNAME

    def shard_dir(self, video_id: str) -> Path:
        """
        Directory holding every file of a video.

        Raises:
            ValueError: If the id is shorter than two characters.
        """
        if len(video_id) < 2:
            raise ValueError(f"video id too short to shard: {video_id!r}")
        return self.data_dir / video_id[0] / video_id[1]

    def media_path(self, video_id: str, ext: str) -> Path:
        return self.shard_dir(video_id) / f"{video_id}.{ext}"

    def info_path(self, video_id: str) -> Path:
        return self.shard_dir(video_id) / f"{video_id}{INFO_JSON_SUFFIX}"

    def read_info_json(self, video_id: str) -> dict[str, Any]:
        """
        Read a stored video's metadata sidecar.

        Raises:
            ConsistencyError: If the sidecar is missing or not a JSON object.
        """
        path = self.info_path(video_id)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConsistencyError(
                f"{video_id} reading video info failed: {e}",
                details={"video_id": video_id, "path": str(path)}
            ) from e

        if not isinstance(data, dict):
            raise ConsistencyError(
                f"{video_id} video info is not a JSON object",
                details={"video_id": video_id, "path": str(path)}
            )
        return data

    def staging_dir(self, video_id: str) -> Path:
        """Per-video staging directory, created if missing."""
        return ensure_directory(self.staging_root / video_id)

    def discard_staging(self, video_id: str) -> None:
        shutil.rmtree(self.staging_root / video_id, ignore_errors=True)

    def ingest(self, video_id: str, staging_dir: Path) -> list[Path]:
        """
        Move every file of a finished download into the store.

        Existing files of the same name are replaced. The staging directory
        is removed afterwards.

        Returns:
            Paths of the files now in the store.
        """
        shard = ensure_directory(self.shard_dir(video_id))
        moved = []

        for entry in sorted(staging_dir.iterdir()):
            if not entry.is_file():
                logger.warning(f"[{video_id}] ignoring non-file in staging: {entry.name}")
                continue
            target = shard / entry.name
            shutil.move(str(entry), str(target))
            moved.append(target)

        shutil.rmtree(staging_dir, ignore_errors=True)
        logger.debug(f"[{video_id}] moved {len(moved)} files into {shard}")
        return moved

    def files_for(self, video_id: str) -> list[Path]:
        """All store files belonging to a video (media and sidecars)."""
        shard = self.shard_dir(video_id)
        if not shard.is_dir():
            return []
        return sorted(
            entry for entry in shard.iterdir()
            if artifact_id_from_name(entry.name) == video_id
        )

    def remove(self, video_id: str) -> int:
        """
        Delete every store file of a video.

        Returns:
            Number of bytes reclaimed.
        """
        freed = 0
        for path in self.files_for(video_id):
            freed += path.stat().st_size
            path.unlink()
        return freed


class ViewBuilder:
    """
    Maintains the symlink views over the artifact store.

    Attributes:
        base_dir: Data directory containing the view roots.
        store: Artifact store the links point into.
    """

    def __init__(self, base_dir: Path, store: ArtifactStore) -> None:
        self.base_dir = base_dir
        self.store = store

    def ensure_roots(self) -> None:
        """Create the three view roots if they don't exist."""
        for root in VIEW_ROOTS:
            ensure_directory(self.base_dir / root)

    def view_dir(self, root: str, name: str, resource_id: str) -> Path:
        """Path of one view directory, e.g. playlists/<name>_<id>."""
        return self.base_dir / root / sanitize_filename(f"{name}_{resource_id}")

    def link_name(self, video: "VideoInfo") -> str:
        return sanitize_filename(f"{video.title}_{video.id}.{video.ext}")

    def ensure_view(
        self,
        video: "VideoInfo",
        playlist: "ResourceSnapshot | None" = None,
        explicit_channel: bool = False,
    ) -> list[Path]:
        """
        Make sure every view that should show a video does.

        The channel view is always ensured, the playlist view when a
        playlist is given, the explicit channel view on request. Existing
        links are left alone, so calling this twice is a no-op.

        Args:
            video: Stored video.
            playlist: Playlist (or shorts tab) being processed, if any.
            explicit_channel: Whether the video was reached through a
                              channel URL of the URL list.

        Returns:
            Links created by this call.
        """
        targets = []
        if playlist is not None:
            targets.append(self.view_dir(PLAYLISTS_ROOT, playlist.title, playlist.id))
        targets.append(self.view_dir(CHANNELS_ROOT, video.channel, video.channel_id))
        if explicit_channel:
            targets.append(self.view_dir(EXPLICIT_CHANNELS_ROOT, video.channel, video.channel_id))

        created = []
        for directory in targets:
            link = self._ensure_link(directory, video)
            if link is not None:
                created.append(link)
        return created

    def _ensure_link(self, directory: Path, video: "VideoInfo") -> Path | None:
        ensure_directory(directory)
        link_path = directory / self.link_name(video)

        if os.path.lexists(link_path):
            return None

        target = os.path.relpath(self.store.media_path(video.id, video.ext), directory)
        link_path.symlink_to(target)
        logger.debug(f"[{video.id}] linked {link_path.relative_to(self.base_dir)}")
        return link_path
