"""
Durable synchronization catalog for tube-mirror (stats.json).

The catalog records what has been fetched, which resources were checked and
when, and which videos are tombstoned. It is a single JSON document owned by
exactly one process (see InstanceLock), so no file locking is done here.

Document layout:
    {
      "instance_count": 12,
      "fetch_invocation_count": 3456,
      "lists":    {"PL...": {"id", "last_checked", "modified_date",
                             "entry_count", "downloaded": [...]}},
      "channels": {"UC...": {"id", "last_checked", "last_video_id",
                             "downloaded": [...]}},
      "known_videos": [...],
      "unavailable_videos": {"<id>": "<reason>"},
      "deleted_videos": [...]
    }

Loading is merge-on-read: the on-disk document is deep-merged over the
defaults, so a file written by an older version (missing newer fields) loads
with those fields at their defaults. Keys this version does not know are
kept and written back unchanged.

Every mutator persists before returning. A crash therefore never loses more
than the operation that was in flight.

Usage:
    catalog = Catalog(data_dir / STATS_FILENAME)
    catalog.open()
    catalog.load()
    catalog.begin_instance()

    if not catalog.is_known(video_id):
        ...
        catalog.record_download(video_id)

    catalog.close()
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

from tube_mirror.core.exceptions import CatalogError
from tube_mirror.core.logger import get_logger

logger = get_logger(__name__)


STATS_FILENAME = "stats.json"

# Downloader invocations per execs/<bucket>/ directory
FETCH_BUCKET_SIZE = 100


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _default_document() -> dict[str, Any]:
    return {
        "instance_count": 0,
        "fetch_invocation_count": 0,
        "lists": {},
        "channels": {},
        "known_videos": [],
        "unavailable_videos": {},
        "deleted_videos": [],
    }


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Merge two JSON-like dictionaries field by field.

    Nested dictionaries are merged recursively; for any other value the one
    from `override` wins. Neither input is modified.

    Example:
        deep_merge({"a": 1, "b": {"c": 2, "d": 3}}, {"b": {"c": 5}})
        # {"a": 1, "b": {"c": 5, "d": 3}}
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _append_unique(ids: list[str], video_id: str) -> bool:
    if video_id in ids:
        return False
    ids.append(video_id)
    return True


@dataclass
class ListRecord:
    """
    Sync state of one playlist (or channel shorts tab).

    Attributes:
        id: Playlist id as reported by the downloader.
        last_checked: ISO-8601 UTC timestamp of the last check.
        modified_date: Source modification marker of the last processed
                       snapshot (e.g. "20240131"), None if never processed.
        entry_count: Entry count declared by the last processed snapshot.
        downloaded: Ids materialised in this playlist's view.
    """
    id: str
    last_checked: str | None = None
    modified_date: str | None = None
    entry_count: int = 0
    downloaded: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ListRecord":
        return cls(
            id=str(data.get("id", "")),
            last_checked=data.get("last_checked"),
            modified_date=data.get("modified_date"),
            entry_count=int(data.get("entry_count") or 0),
            downloaded=list(data.get("downloaded") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "last_checked": self.last_checked,
            "modified_date": self.modified_date,
            "entry_count": self.entry_count,
            "downloaded": list(self.downloaded),
        }


@dataclass
class ChannelRecord:
    """
    Sync state of one channel.

    Attributes:
        id: Channel id as reported by the downloader.
        last_checked: ISO-8601 UTC timestamp of the last check.
        last_video_id: First entry of the last processed snapshot.
        downloaded: Ids fetched while processing this channel.
    """
    id: str
    last_checked: str | None = None
    last_video_id: str = ""
    downloaded: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChannelRecord":
        return cls(
            id=str(data.get("id", "")),
            last_checked=data.get("last_checked"),
            last_video_id=data.get("last_video_id") or "",
            downloaded=list(data.get("downloaded") or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "last_checked": self.last_checked,
            "last_video_id": self.last_video_id,
            "downloaded": list(self.downloaded),
        }


class Catalog:
    """
    Single-writer JSON catalog backed by one open file handle.

    Attributes:
        path: Location of stats.json.
        instance_count: Successful startups, diagnostic only.
        fetch_invocation_count: Downloader invocations so far.
        lists: Playlist records keyed by playlist id.
        channels: Channel records keyed by channel id.
        known_videos: Ids fetched at least once.
        unavailable_videos: Tombstoned ids mapped to the reason.
        deleted_videos: Ids removed by the user (tombstone).
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: IO[bytes] | None = None
        self._extra: dict[str, Any] = {}
        self._reset()

    def _reset(self) -> None:
        self.instance_count = 0
        self.fetch_invocation_count = 0
        self.lists: dict[str, ListRecord] = {}
        self.channels: dict[str, ChannelRecord] = {}
        self.known_videos: set[str] = set()
        self.unavailable_videos: dict[str, str] = {}
        self.deleted_videos: set[str] = set()
        self._extra = {}

    def __enter__(self) -> "Catalog":
        self.open()
        self.load()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================================================================
    # File handling
    # =========================================================================

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self) -> "Catalog":
        """
        Open the backing file, creating it when it does not exist yet.

        Raises:
            CatalogError: If the file exists but cannot be opened.
        """
        if self._handle is not None:
            return self

        try:
            self._handle = open(self.path, "r+b")
        except FileNotFoundError:
            try:
                self._handle = open(self.path, "w+b")
            except OSError as e:
                raise CatalogError(
                    f"Failed to create catalog file: {e}",
                    details={"path": str(self.path), "original_error": str(e)}
                ) from e
        except OSError as e:
            raise CatalogError(
                f"Failed to open catalog file: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e

        return self

    def load(self) -> None:
        """
        Read the backing file and merge it over the defaults.

        An empty file yields the defaults.

        Raises:
            CatalogError: If the catalog is not open or the content is not a
                          JSON object of the expected shape.
        """
        handle = self._require_handle()

        try:
            handle.seek(0)
            raw = handle.read().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CatalogError(
                f"Failed to read catalog file: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e

        self._reset()

        if raw.strip() == "":
            logger.debug(f"Catalog {self.path} is empty, using defaults")
            return

        try:
            from_disk = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CatalogError(
                f"Catalog file corrupted: invalid JSON syntax ({e})",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e

        if not isinstance(from_disk, dict):
            raise CatalogError(
                "Catalog file must contain a JSON object",
                details={"path": str(self.path)}
            )

        try:
            self._apply_document(deep_merge(_default_document(), from_disk))
        except (TypeError, ValueError, AttributeError) as e:
            self._reset()
            raise CatalogError(
                f"Catalog file has an invalid structure: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e

    def save(self) -> None:
        """
        Write the full state at offset 0 and truncate to the new length.

        Raises:
            CatalogError: If the catalog is not open or the write fails.
        """
        handle = self._require_handle()
        data = json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

        try:
            handle.seek(0)
            handle.write(data)
            handle.truncate(len(data))
            handle.flush()
            os.fsync(handle.fileno())
        except OSError as e:
            raise CatalogError(
                f"Failed to write catalog file: {e}",
                details={"path": str(self.path), "original_error": str(e)}
            ) from e

    def close(self) -> None:
        """Persist once more and release the handle. Safe to call twice."""
        if self._handle is None:
            return

        try:
            self.save()
        finally:
            self._handle.close()
            self._handle = None

    def _require_handle(self) -> IO[bytes]:
        if self._handle is None:
            raise CatalogError(
                "Catalog file not opened",
                details={"path": str(self.path)}
            )
        return self._handle

    # =========================================================================
    # Serialization
    # =========================================================================

    def _apply_document(self, document: dict[str, Any]) -> None:
        known_keys = set(_default_document())

        self.instance_count = int(document["instance_count"] or 0)
        self.fetch_invocation_count = int(document["fetch_invocation_count"] or 0)
        self.lists = {
            key: ListRecord.from_dict({"id": key, **value})
            for key, value in document["lists"].items()
        }
        self.channels = {
            key: ChannelRecord.from_dict({"id": key, **value})
            for key, value in document["channels"].items()
        }
        self.known_videos = set(document["known_videos"])
        self.unavailable_videos = dict(document["unavailable_videos"])
        self.deleted_videos = set(document["deleted_videos"])
        self._extra = {k: v for k, v in document.items() if k not in known_keys}

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON document for the current in-memory state."""
        document = dict(self._extra)
        document.update({
            "instance_count": self.instance_count,
            "fetch_invocation_count": self.fetch_invocation_count,
            "lists": {key: record.to_dict() for key, record in self.lists.items()},
            "channels": {key: record.to_dict() for key, record in self.channels.items()},
            "known_videos": sorted(self.known_videos),
            "unavailable_videos": dict(self.unavailable_videos),
            "deleted_videos": sorted(self.deleted_videos),
        })
        return document

    # =========================================================================
    # Queries
    # =========================================================================

    def is_known(self, video_id: str) -> bool:
        return video_id in self.known_videos

    def is_unavailable(self, video_id: str) -> bool:
        return video_id in self.unavailable_videos

    def is_deleted(self, video_id: str) -> bool:
        return video_id in self.deleted_videos

    def list_record(self, list_id: str) -> ListRecord | None:
        return self.lists.get(list_id)

    def channel_record(self, channel_id: str) -> ChannelRecord | None:
        return self.channels.get(channel_id)

    def summary(self) -> dict[str, int]:
        """Counts used for the end-of-run statistics."""
        return {
            "instances": self.instance_count,
            "fetch_invocations": self.fetch_invocation_count,
            "playlists": len(self.lists),
            "channels": len(self.channels),
            "known_videos": len(self.known_videos),
            "unavailable_videos": len(self.unavailable_videos),
            "deleted_videos": len(self.deleted_videos),
        }

    # =========================================================================
    # Mutations (each one persists)
    # =========================================================================

    def begin_instance(self) -> int:
        """Count a successful startup and persist. Returns the new count."""
        self.instance_count += 1
        self.save()
        return self.instance_count

    def next_fetch_invocation(self) -> tuple[int, int]:
        """
        Reserve the next downloader invocation number.

        Returns:
            Tuple of (bucket, invocation number) used for execs/<bucket>/<n>/.
        """
        self.fetch_invocation_count += 1
        self.save()
        number = self.fetch_invocation_count
        return number // FETCH_BUCKET_SIZE, number

    def record_download(self, video_id: str) -> None:
        """Mark a video as fetched into the artifact store."""
        self.known_videos.add(video_id)
        self.save()

    def mark_unavailable(self, video_id: str, reason: str) -> None:
        """Tombstone a video that can never be fetched."""
        self.unavailable_videos[video_id] = reason
        self.save()

    def mark_deleted(self, video_id: str) -> None:
        """Tombstone a video the user removed. It stays in known_videos."""
        self.deleted_videos.add(video_id)
        self.save()

    def update_list(
        self,
        list_id: str,
        modified_date: str | None,
        entry_count: int,
    ) -> ListRecord:
        """
        Merge a processed playlist snapshot into its record.

        The downloaded list of an existing record is kept.
        """
        record = self.lists.get(list_id) or ListRecord(id=list_id)
        record.id = list_id
        record.last_checked = _now_iso()
        record.modified_date = modified_date
        record.entry_count = entry_count
        self.lists[list_id] = record
        self.save()
        return record

    def touch_list(self, list_id: str) -> None:
        """Refresh last_checked of an existing playlist record."""
        record = self.lists.get(list_id)
        if record is None:
            return
        record.last_checked = _now_iso()
        self.save()

    def add_list_download(self, list_id: str, video_id: str) -> None:
        record = self.lists.get(list_id)
        if record is None:
            record = self.lists[list_id] = ListRecord(id=list_id)
        if _append_unique(record.downloaded, video_id):
            self.save()

    def update_channel(self, channel_id: str, last_video_id: str | None = None) -> ChannelRecord:
        """
        Merge a processed channel snapshot into its record.

        last_video_id is only overwritten when given, so the record can be
        created before the walk and completed after it.
        """
        record = self.channels.get(channel_id) or ChannelRecord(id=channel_id)
        record.id = channel_id
        record.last_checked = _now_iso()
        if last_video_id is not None:
            record.last_video_id = last_video_id
        self.channels[channel_id] = record
        self.save()
        return record

    def add_channel_download(self, channel_id: str, video_id: str) -> None:
        record = self.channels.get(channel_id)
        if record is None:
            record = self.channels[channel_id] = ChannelRecord(id=channel_id)
        if _append_unique(record.downloaded, video_id):
            self.save()
