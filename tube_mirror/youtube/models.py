"""
Resource models for tube-mirror.

This module turns what the outside world hands us into typed values:

    classify_url()          URL shape -> ResourceKind (pure, no networking)
    ResourceSnapshot        yt-dlp --dump-single-json output of a playlist/channel
    VideoInfo               the fields of a video's .info.json the views need

URL shapes:
    https://www.youtube.com/watch?v=<id>          VIDEO
    https://www.youtube.com/playlist?list=<id>    PLAYLIST
    https://www.youtube.com/feed/history          PLAYLIST
    https://www.youtube.com/@handle/shorts        SHORTS (handled like a playlist)
    https://www.youtube.com/@handle               CHANNEL
    https://www.youtube.com/channel/<id>          CHANNEL
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import parse_qs, urlparse

from tube_mirror.core.exceptions import InvalidJsonError, ResourceError


class ResourceKind(Enum):
    """Kind of resource a URL points at."""
    VIDEO = "video"
    PLAYLIST = "playlist"
    CHANNEL = "channel"
    SHORTS = "shorts"

    @property
    def is_playlist_like(self) -> bool:
        return self in (ResourceKind.PLAYLIST, ResourceKind.SHORTS)


class SnapshotKind(Enum):
    """Kind of resource the downloader actually reported."""
    PLAYLIST = "PLAYLIST"
    CHANNEL = "CHANNEL"
    UNKNOWN = "UNKNOWN"


def classify_url(url: str) -> ResourceKind:
    """
    Decide what a resource URL points at from its shape alone.

    Args:
        url: Resource URL from the URL list.

    Returns:
        The ResourceKind.

    Raises:
        ResourceError: If the URL matches none of the known shapes.

    Examples:
        classify_url("https://www.youtube.com/watch?v=abc&list=PL1")  # VIDEO
        classify_url("https://www.youtube.com/playlist?list=PL1")     # PLAYLIST
        classify_url("https://www.youtube.com/@someone/shorts")       # SHORTS
        classify_url("https://www.youtube.com/@someone")              # CHANNEL
    """
    parts = urlparse(url.strip())
    query = parse_qs(parts.query, keep_blank_values=True)
    path = parts.path or ""

    if "v" in query:
        return ResourceKind.VIDEO
    if "list" in query or path.startswith("/feed/history"):
        return ResourceKind.PLAYLIST
    if path.rstrip("/").endswith("/shorts"):
        return ResourceKind.SHORTS
    if path.startswith("/@") or path.startswith("/channel/"):
        return ResourceKind.CHANNEL

    raise ResourceError(f"unknown url type {url}", details={"url": url})


def video_id_from_url(url: str) -> str:
    """
    Return the v= parameter of a watch URL.

    Raises:
        ResourceError: If the URL carries no video id.
    """
    values = parse_qs(urlparse(url.strip()).query).get("v") or []
    video_id = values[0].strip() if values else ""
    if not video_id:
        raise ResourceError(f"no video id in {url}", details={"url": url})
    return video_id


def detect_snapshot_kind(data: dict[str, Any]) -> SnapshotKind:
    """
    Tell a channel from a playlist in a --dump-single-json document.

    A document is a channel when its id is a handle, when it is the
    uploader's own id, or when it is the "<name> - Videos" tab playlist.
    Any other playlist document is a playlist.
    """
    data_id = str(data.get("id") or "")
    title = str(data.get("title") or "")
    is_playlist = data.get("_type") == "playlist"

    if (
        data_id.startswith("@")
        or (data_id != "" and data_id == data.get("uploader_id"))
        or (is_playlist and title.endswith("- Videos"))
    ):
        return SnapshotKind.CHANNEL
    if is_playlist:
        return SnapshotKind.PLAYLIST
    return SnapshotKind.UNKNOWN


@dataclass(frozen=True)
class ResourceSnapshot:
    """
    One query result for a playlist or channel.

    Used only to compute the diff of the current run; never persisted.

    Attributes:
        kind: What the downloader reported.
        id: Playlist or channel id.
        title: Human-readable name, used for the view directory.
        entries: Entry video ids in remote order.
        modified_date: Source modification marker (playlists only).
        playlist_count: Entry count declared by the source.
    """
    kind: SnapshotKind
    id: str
    title: str
    entries: tuple[str, ...]
    modified_date: str | None = None
    playlist_count: int = 0

    @classmethod
    def from_json(cls, data: Any) -> "ResourceSnapshot":
        """
        Build a snapshot from a parsed --dump-single-json document.

        Raises:
            ResourceError: If the document is not an object or has no id.
        """
        if not isinstance(data, dict):
            raise ResourceError("resource snapshot is not a JSON object")

        resource_id = data.get("id")
        if not isinstance(resource_id, str) or not resource_id:
            raise ResourceError(
                "resource snapshot has no id",
                details={"title": data.get("title")}
            )

        entries = tuple(
            str(entry["id"])
            for entry in (data.get("entries") or [])
            if isinstance(entry, dict) and entry.get("id")
        )

        playlist_count = data.get("playlist_count")
        if not isinstance(playlist_count, int):
            playlist_count = len(entries)

        modified_date = data.get("modified_date")

        return cls(
            kind=detect_snapshot_kind(data),
            id=resource_id,
            title=str(data.get("title") or resource_id),
            entries=entries,
            modified_date=str(modified_date) if modified_date is not None else None,
            playlist_count=playlist_count,
        )

    @classmethod
    def parse(cls, stdout: str) -> "ResourceSnapshot":
        """
        Parse the raw stdout of a metadata query.

        Raises:
            InvalidJsonError: If stdout is not JSON.
            ResourceError: If the JSON is not a usable snapshot.
        """
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise InvalidJsonError(str(e)) from e
        return cls.from_json(data)


@dataclass(frozen=True)
class VideoInfo:
    """
    The subset of a video's .info.json that names its artifact and views.

    Attributes:
        id: Video id.
        title: Video title.
        ext: Extension of the merged media file (e.g. "mkv").
        channel: Channel display name.
        channel_id: Channel id.
    """
    id: str
    title: str
    ext: str
    channel: str
    channel_id: str

    @classmethod
    def from_info_json(cls, data: Any) -> "VideoInfo":
        """
        Build from a parsed .info.json document.

        Raises:
            ValueError: If the document lacks the id or the extension.
        """
        if not isinstance(data, dict):
            raise ValueError("info json is not an object")

        video_id = data.get("id")
        ext = data.get("ext")
        if not video_id or not ext:
            raise ValueError("info json lacks 'id' or 'ext'")

        channel = data.get("channel") or data.get("uploader") or "Unknown"
        channel_id = data.get("channel_id") or data.get("uploader_id") or "unknown"

        return cls(
            id=str(video_id),
            title=str(data.get("title") or video_id),
            ext=str(ext),
            channel=str(channel),
            channel_id=str(channel_id),
        )

    @property
    def media_filename(self) -> str:
        return f"{self.id}.{self.ext}"
