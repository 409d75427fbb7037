"""
Single-video download step for tube-mirror.

Fetching one video:
    1. Run yt-dlp into the staging directory tmp/<id>/ (the invocation
       itself runs in execs/<bucket>/<n>/, see YtDlp).
    2. Exit code 0:
       a. Read <id>.info.json from staging for the extension, title and
          channel.
       b. Probe <id>.<ext> with ffprobe and write <id>.<ext>.ffprobe.json.
       c. Move every staged file into data/<c1>/<c2>/ and drop staging.
       d. Record the id in known_videos (persisted).
    3. Non-zero exit: drop staging, leave the store untouched and hand the
       stderr back to the caller for classification.

A metadata or probe failure after a successful exit is a hard error for
that video only: nothing is recorded and the next run tries again.

Usage:
    fetcher = VideoFetcher(catalog, ytdlp, store, prober_binary="ffprobe")
    result = fetcher.fetch("dQw4w9WgXcQ")
    if result.success:
        views.ensure_view(result.video)
"""

import json
from dataclasses import dataclass

from tube_mirror.core.catalog import Catalog
from tube_mirror.core.exceptions import DownloaderError, ProbeError
from tube_mirror.core.file_manager import INFO_JSON_SUFFIX, PROBE_JSON_SUFFIX, ArtifactStore
from tube_mirror.core.logger import get_logger
from tube_mirror.download.prober import probe_media, write_probe_report
from tube_mirror.youtube.models import VideoInfo
from tube_mirror.youtube.ytdlp import YtDlp

logger = get_logger(__name__)


@dataclass
class FetchResult:
    """
    Outcome of one fetch.

    Attributes:
        video_id: The video fetched.
        success: Whether the video is now in the artifact store.
        code: yt-dlp exit code.
        stderr: yt-dlp stderr, for failure classification.
        video: Parsed metadata on success.
        error: Description of a hard error after a zero exit code.
    """
    video_id: str
    success: bool
    code: int = 0
    stderr: str = ""
    video: VideoInfo | None = None
    error: str | None = None

    @property
    def downloader_failed(self) -> bool:
        """True when yt-dlp itself reported the failure."""
        return not self.success and self.code != 0


class VideoFetcher:
    """
    Downloads single videos into the artifact store.

    Attributes:
        catalog: Catalog receiving record_download().
        ytdlp: Downloader runner.
        store: Artifact store receiving the files.
        prober_binary: ffprobe executable.
    """

    def __init__(
        self,
        catalog: Catalog,
        ytdlp: YtDlp,
        store: ArtifactStore,
        prober_binary: str = "ffprobe",
    ) -> None:
        self.catalog = catalog
        self.ytdlp = ytdlp
        self.store = store
        self.prober_binary = prober_binary

    def fetch(self, video_id: str) -> FetchResult:
        """
        Download one video and move it into the store.

        Returns:
            FetchResult describing the outcome. Never raises for a failure
            that concerns this video alone.

        Raises:
            DownloaderError: If yt-dlp cannot be run at all. Staging is
                             discarded first.
        """
        logger.info(f"[{video_id}] downloading")
        staging_dir = self.store.staging_dir(video_id)

        try:
            process = self.ytdlp.download_video(video_id, staging_dir)
        except DownloaderError:
            self.store.discard_staging(video_id)
            raise

        if process.code != 0:
            self.store.discard_staging(video_id)
            return FetchResult(
                video_id=video_id,
                success=False,
                code=process.code,
                stderr=process.stderr,
            )

        info_path = staging_dir / f"{video_id}{INFO_JSON_SUFFIX}"
        try:
            with open(info_path, "r", encoding="utf-8") as f:
                video = VideoInfo.from_info_json(json.load(f))
        except (OSError, ValueError) as e:
            return self._hard_error(video_id, f"{video_id} reading video info failed: {e}")

        media_path = staging_dir / video.media_filename
        try:
            report = probe_media(media_path, self.prober_binary)
        except ProbeError as e:
            return self._hard_error(video_id, str(e))

        write_probe_report(report, staging_dir / f"{video.media_filename}{PROBE_JSON_SUFFIX}")

        self.store.ingest(video_id, staging_dir)
        self.catalog.record_download(video_id)

        logger.info(f"[{video_id}] downloaded \"{video.title}\"")
        return FetchResult(video_id=video_id, success=True, video=video)

    def _hard_error(self, video_id: str, message: str) -> FetchResult:
        logger.error(message)
        self.store.discard_staging(video_id)
        return FetchResult(video_id=video_id, success=False, error=message)
