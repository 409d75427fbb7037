"""
Incremental synchronization for tube-mirror.

For every URL of the URL list the engine asks yt-dlp for the resource's
current entry list, diffs it against the catalog and only fetches what is
new. Each entry id falls in exactly one bucket:

    deleted             in deleted_videos (the user purged it; never again)
    already downloaded  in known_videos and not deleted: views ensured only
    to download         neither known, unavailable nor deleted
    (skipped)           in unavailable_videos: tombstoned, never retried

Playlists whose modification marker and entry count are unchanged since
the last run, and whose every entry has been fetched, are skipped without
querying entries further. Channels have no reliable marker and are always
walked.

A failure that concerns one resource (bad URL, query error, timeout,
invalid JSON, unexpected resource kind) is logged and the run moves on to
the next URL. A failure of the catalog itself propagates.

Usage:
    engine = SyncEngine(catalog, ytdlp, fetcher, store, views)
    engine.process_url_file(Path("urls.txt"))
    engine.log_stats()
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from tube_mirror.core.catalog import Catalog, ListRecord
from tube_mirror.core.exceptions import (
    ConfigError,
    ConsistencyError,
    DownloaderError,
    ResourceError,
)
from tube_mirror.core.file_manager import ArtifactStore, ViewBuilder
from tube_mirror.core.logger import get_logger
from tube_mirror.core.progress import FetchProgressBar
from tube_mirror.download.failures import handle_download_failure
from tube_mirror.download.fetcher import VideoFetcher
from tube_mirror.youtube.models import (
    ResourceKind,
    ResourceSnapshot,
    SnapshotKind,
    VideoInfo,
    classify_url,
    video_id_from_url,
)
from tube_mirror.youtube.ytdlp import YtDlp

logger = get_logger(__name__)


# =============================================================================
# Planning
# =============================================================================

@dataclass
class SyncPlan:
    """
    Partition of a resource's entries against the catalog.

    Attributes:
        to_download: Ids to fetch, in remote order.
        already_downloaded: Ids already in the store; only views are ensured.
        deleted_within_resource: Ids the user purged; reported only.
    """
    to_download: list[str] = field(default_factory=list)
    already_downloaded: list[str] = field(default_factory=list)
    deleted_within_resource: list[str] = field(default_factory=list)


def plan_entries(catalog: Catalog, ids: Iterable[str]) -> SyncPlan:
    """
    Split entry ids into the sync buckets.

    Blank ids are dropped and duplicates collapse onto their first
    occurrence. Tombstoned ids land in no bucket.

    Example:
        # catalog: known={a}, unavailable={b: "Private video"}
        plan_entries(catalog, ["a", "b", "c"])
        # SyncPlan(to_download=["c"], already_downloaded=["a"], ...)
    """
    plan = SyncPlan()
    seen = set()

    for raw_id in ids:
        video_id = raw_id.strip()
        if not video_id or video_id in seen:
            continue
        seen.add(video_id)

        if catalog.is_deleted(video_id):
            plan.deleted_within_resource.append(video_id)
        elif catalog.is_known(video_id):
            plan.already_downloaded.append(video_id)
        elif not catalog.is_unavailable(video_id):
            plan.to_download.append(video_id)

    return plan


def playlist_unchanged(record: ListRecord | None, snapshot: ResourceSnapshot) -> bool:
    """Whether a playlist can be skipped without walking its entries."""
    if record is None:
        return False
    return (
        record.modified_date == snapshot.modified_date
        and record.entry_count == snapshot.playlist_count
        and len(record.downloaded) == record.entry_count
    )


# =============================================================================
# Statistics
# =============================================================================

@dataclass
class SyncStats:
    """
    Counters for one sync run.

    Attributes:
        resources_checked: URLs processed without a resource-level error.
        resources_unchanged: Playlists skipped as unchanged.
        resources_failed: URLs abandoned after an error.
        videos_downloaded: Videos fetched into the store.
        videos_linked: Symlinks created.
        videos_failed: Fetches that failed transiently (retried next run).
        videos_unavailable: Videos tombstoned during this run.
    """
    resources_checked: int = 0
    resources_unchanged: int = 0
    resources_failed: int = 0
    videos_downloaded: int = 0
    videos_linked: int = 0
    videos_failed: int = 0
    videos_unavailable: int = 0


# =============================================================================
# Engine
# =============================================================================

class SyncEngine:
    """
    Drives one sync run over a URL list.

    All catalog access happens on the calling thread.

    Attributes:
        catalog: Open catalog.
        ytdlp: Downloader runner for metadata queries.
        fetcher: Single-video download step.
        store: Artifact store (for reading stored metadata back).
        views: Symlink view builder.
        query_timeout: Seconds before a metadata query is killed.
        stats: Counters of this run.
    """

    def __init__(
        self,
        catalog: Catalog,
        ytdlp: YtDlp,
        fetcher: VideoFetcher,
        store: ArtifactStore,
        views: ViewBuilder,
        query_timeout: float | None = None,
    ) -> None:
        self.catalog = catalog
        self.ytdlp = ytdlp
        self.fetcher = fetcher
        self.store = store
        self.views = views
        self.query_timeout = query_timeout
        self.stats = SyncStats()

    # =========================================================================
    # Entry Points
    # =========================================================================

    def process_url_file(self, url_file: Path) -> SyncStats:
        """
        Process every URL of a URL list in order.

        Blank lines and lines starting with "#" are skipped.

        Raises:
            ConfigError: If the URL list cannot be read.
        """
        try:
            with open(url_file, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError as e:
            raise ConfigError(
                f"Cannot read URL file: {url_file}",
                details={"path": str(url_file), "original_error": str(e)}
            ) from e

        urls = [line.strip() for line in lines]
        urls = [url for url in urls if url and not url.startswith("#")]
        logger.info(f"Processing {len(urls)} URLs from {url_file}")

        for url in urls:
            self.process_url(url)

        return self.stats

    def process_url(self, url: str) -> None:
        """Process one resource URL. Never raises for a per-resource failure."""
        try:
            kind = classify_url(url)
        except ResourceError as e:
            logger.error(str(e))
            self.stats.resources_failed += 1
            return

        logger.info(f"checking {kind.value} {url}")

        try:
            if kind is ResourceKind.VIDEO:
                self.process_video(video_id_from_url(url))
            else:
                snapshot = self.ytdlp.query_resource(url, kind, timeout=self.query_timeout)
                if kind.is_playlist_like:
                    self.process_playlist(snapshot, kind)
                else:
                    self.process_channel(snapshot)
        except (ResourceError, DownloaderError) as e:
            logger.error(f"error checking {kind.value} {url} {e}")
            self.stats.resources_failed += 1
            return

        self.stats.resources_checked += 1

    # =========================================================================
    # Resource Handlers
    # =========================================================================

    def process_playlist(
        self,
        snapshot: ResourceSnapshot,
        kind: ResourceKind = ResourceKind.PLAYLIST,
    ) -> None:
        """
        Sync a playlist (or a channel's shorts tab).

        Raises:
            ResourceError: If the snapshot is not a playlist.
        """
        if snapshot.kind is not SnapshotKind.PLAYLIST:
            raise ResourceError(
                f"expected a playlist, got {snapshot.kind.value}",
                details={"id": snapshot.id}
            )

        record = self.catalog.list_record(snapshot.id)
        self.catalog.touch_list(snapshot.id)

        if playlist_unchanged(record, snapshot):
            logger.info(f"not changed {kind.value} \"{snapshot.title}\"")
            self.stats.resources_unchanged += 1
            return

        plan = plan_entries(self.catalog, snapshot.entries)
        logger.info(
            f"playlist \"{snapshot.title}\" has {len(snapshot.entries)} videos of which "
            f"{len(plan.to_download)} need to be downloaded, "
            f"{len(plan.deleted_within_resource)} videos have been deleted"
        )

        for video_id in plan.already_downloaded:
            video = self._read_stored_video(video_id)
            if video is None:
                continue
            self._link(video, playlist=snapshot)
            self.catalog.add_list_download(snapshot.id, video_id)

        self._download_all(
            plan.to_download,
            snapshot.title,
            on_success=lambda video: self._on_playlist_download(snapshot, video),
        )

        self.catalog.update_list(snapshot.id, snapshot.modified_date, snapshot.playlist_count)

    def process_channel(self, snapshot: ResourceSnapshot) -> None:
        """
        Sync a channel. Every video lands in the channel and explicit
        channel views.

        Raises:
            ResourceError: If the snapshot is not a channel.
        """
        if snapshot.kind is not SnapshotKind.CHANNEL:
            raise ResourceError(
                f"expected a channel, got {snapshot.kind.value}",
                details={"id": snapshot.id}
            )

        self.catalog.update_channel(snapshot.id)

        plan = plan_entries(self.catalog, snapshot.entries)
        logger.info(
            f"channel \"{snapshot.title}\" has {len(snapshot.entries)} videos of which "
            f"{len(plan.to_download)} need to be downloaded, "
            f"{len(plan.deleted_within_resource)} videos have been deleted"
        )

        for video_id in plan.already_downloaded:
            video = self._read_stored_video(video_id)
            if video is None:
                continue
            self._link(video, explicit_channel=True)

        self._download_all(
            plan.to_download,
            snapshot.title,
            on_success=lambda video: self._on_channel_download(snapshot, video),
        )

        last_video_id = snapshot.entries[0] if snapshot.entries else ""
        self.catalog.update_channel(snapshot.id, last_video_id=last_video_id)

    def process_video(self, video_id: str) -> None:
        """Sync a single video URL. It gets a channel view only."""
        if self.catalog.is_deleted(video_id):
            logger.info(f"[{video_id}] deleted, skipping")
            return
        if self.catalog.is_unavailable(video_id):
            logger.info(f"[{video_id}] unavailable, skipping")
            return

        if self.catalog.is_known(video_id):
            video = self._read_stored_video(video_id)
            if video is not None:
                self._link(video)
            return

        self._download_all([video_id], video_id, on_success=self._link)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _download_all(self, video_ids: list[str], description: str, on_success) -> None:
        if not video_ids:
            return

        with FetchProgressBar(total=len(video_ids), description=description) as progress:
            for video_id in video_ids:
                result = self.fetcher.fetch(video_id)

                if result.success:
                    self.stats.videos_downloaded += 1
                    on_success(result.video)
                    progress.update(success=True)
                    continue

                unavailable = False
                if result.downloader_failed:
                    logger.error(f"[{video_id}] ytdlp return code {result.code}")
                    unavailable = handle_download_failure(
                        self.catalog, video_id, result.stderr
                    ) is not None

                if unavailable:
                    self.stats.videos_unavailable += 1
                else:
                    self.stats.videos_failed += 1
                progress.update(success=False, unavailable=unavailable)

    def _on_playlist_download(self, snapshot: ResourceSnapshot, video: VideoInfo) -> None:
        self.catalog.add_list_download(snapshot.id, video.id)
        self._link(video, playlist=snapshot)

    def _on_channel_download(self, snapshot: ResourceSnapshot, video: VideoInfo) -> None:
        self.catalog.add_channel_download(snapshot.id, video.id)
        self._link(video, explicit_channel=True)

    def _link(
        self,
        video: VideoInfo,
        playlist: ResourceSnapshot | None = None,
        explicit_channel: bool = False,
    ) -> None:
        created = self.views.ensure_view(video, playlist=playlist, explicit_channel=explicit_channel)
        self.stats.videos_linked += len(created)

    def _read_stored_video(self, video_id: str) -> VideoInfo | None:
        try:
            return VideoInfo.from_info_json(self.store.read_info_json(video_id))
        except (ConsistencyError, ValueError) as e:
            logger.error(f"{video_id} reading video info failed: {e}")
            return None

    # =========================================================================
    # Reporting
    # =========================================================================

    def log_stats(self) -> None:
        """Log the counters of this run and the catalog totals."""
        stats = self.stats
        summary = self.catalog.summary()

        logger.info("")
        logger.info("=" * 60)
        logger.info("SYNC COMPLETE")
        logger.info("=" * 60)
        logger.info(f"Resources checked:    {stats.resources_checked}")
        logger.info(f"Unchanged playlists:  {stats.resources_unchanged}")
        logger.info(f"Failed resources:     {stats.resources_failed}")
        logger.info(f"Videos downloaded:    {stats.videos_downloaded}")
        logger.info(f"Videos failed:        {stats.videos_failed}")
        logger.info(f"Videos unavailable:   {stats.videos_unavailable}")
        logger.info(f"Symlinks created:     {stats.videos_linked}")
        logger.info("-" * 60)
        logger.info(f"Known videos:         {summary['known_videos']}")
        logger.info(f"Unavailable videos:   {summary['unavailable_videos']}")
        logger.info(f"Deleted videos:       {summary['deleted_videos']}")
        logger.info("=" * 60)
