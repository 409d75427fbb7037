"""
yt-dlp invocation for tube-mirror.

Every call to the downloader runs as a child process in its own working
directory, execs/<bucket>/<n>/, where n is the catalog's persisted
invocation counter. The directory receives a command.json with the exact
command line and whatever page dumps yt-dlp writes there, so any past
invocation can be inspected or replayed.

Two kinds of invocation exist:

    query_resource()   metadata only (--flat-playlist --dump-single-json),
                       returns a ResourceSnapshot; optional kill timeout
    download_video()   full fetch of one video into a staging directory,
                       returns the exit code and the captured stderr

Usage:
    ytdlp = YtDlp(config.downloader, data_dir, catalog)

    snapshot = ytdlp.query_resource(url, ResourceKind.PLAYLIST, timeout=600)
    result = ytdlp.download_video(video_id, staging_dir)
    if result.code != 0:
        ...
"""

import json
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from tube_mirror.core.catalog import Catalog
from tube_mirror.core.config import DownloaderConfig
from tube_mirror.core.exceptions import (
    DownloaderError,
    DownloaderTimeoutError,
    NonZeroReturnCodeError,
)
from tube_mirror.core.logger import get_logger
from tube_mirror.utils import ensure_directory
from tube_mirror.youtube.models import ResourceKind, ResourceSnapshot

logger = get_logger(__name__)


EXECS_DIRNAME = "execs"
CACHE_DIRNAME = "cache"
COMMAND_FILENAME = "command.json"

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


# =============================================================================
# Downloader Options
# =============================================================================

# Appended to every invocation
COMMON_OPTIONS = [
    "--write-pages",
]

QUERY_OPTIONS = [
    "--no-simulate",
    "--write-all-thumbnails",
    "--write-info-json",
    "--write-playlist-metafiles",
    "--flat-playlist",
    "--no-overwrites",
    "--dump-single-json",
]

DOWNLOAD_OPTIONS = [
    "--concurrent-fragments", "8",
    "--throttled-rate", "500K",
    "--retries", "10",
    "--retry-sleep", "5",
    "--no-keep-fragments",
    "--buffer-size", "64K",
    "--no-restrict-filenames",
    "--windows-filenames",
    "--no-overwrites",
    "--continue",

    "--embed-metadata",
    "--embed-chapters",
    "--no-split-chapters",
    "--no-remove-chapters",
    "--no-embed-info-json",
    "--write-info-json",

    "--write-description",
    "--embed-thumbnail",
    "--write-all-thumbnails",

    "--progress",
    "--newline",

    "--video-multistreams",
    "--format",
    "(bestvideo*[height>1200]+bestvideo*[height>=900][height<=1200]+bestaudio)"
    "/(bestvideo*+bestaudio)/best",
    "--merge-output-format", "mkv",

    "--write-subs",
    "--write-auto-subs",
    "--embed-subs",
    "--sub-langs", "en,en-orig,en-uk,en-US,en-en-US,en-de,en-de-AT,en-GB,de",
    "--sub-format", "srt/best",
    "--convert-subs", "srt",

    "--sponsorblock-mark", "all",
    "--sponsorblock-chapter-title", "[SB]: %(category_names)l",
]


@dataclass(frozen=True)
class ProcessResult:
    """
    Outcome of one finished downloader process.

    Attributes:
        code: Exit code (0 on success).
        stdout: Captured standard output.
        stderr: Captured standard error, used to classify failures.
        workdir: The execs/<bucket>/<n>/ directory it ran in.
    """
    code: int
    stdout: str
    stderr: str
    workdir: Path


class YtDlp:
    """
    Runs yt-dlp as a child process with per-invocation working directories.

    Attributes:
        config: Downloader configuration (binary, cookies, extra args).
        data_dir: Data directory (parent of execs/, cache/, *_info/).
        catalog: Catalog providing the persisted invocation counter.
    """

    def __init__(self, config: DownloaderConfig, data_dir: Path, catalog: Catalog) -> None:
        self.config = config
        self.data_dir = data_dir
        self.catalog = catalog

    @property
    def executable(self) -> list[str]:
        """Command prefix: the configured binary or `python -m yt_dlp`."""
        if self.config.binary:
            return [self.config.binary]
        return [sys.executable, "-m", "yt_dlp"]

    # =========================================================================
    # Public API
    # =========================================================================

    def query_resource(
        self,
        url: str,
        kind: ResourceKind,
        timeout: float | None = None,
    ) -> ResourceSnapshot:
        """
        Fetch the flat entry list of a playlist or channel.

        The per-entry metadata yt-dlp writes along the way is archived under
        <kind>_info/<playlist id>/.

        Args:
            url: Resource URL.
            kind: Classified kind of the URL.
            timeout: Seconds before the process is killed. None waits forever.

        Returns:
            The parsed snapshot.

        Raises:
            DownloaderTimeoutError: If the timeout elapsed.
            NonZeroReturnCodeError: If yt-dlp exited non-zero.
            InvalidJsonError: If stdout is not JSON.
            ResourceError: If the JSON is not a usable snapshot.
        """
        info_dir = self.data_dir / f"{kind.value}_info"
        args = [
            *QUERY_OPTIONS,
            "--output", str(info_dir / "%(playlist_id)s" / "%(id)s.%(ext)s"),
        ]
        if kind is ResourceKind.PLAYLIST:
            args.extend(self._cookie_args())

        result = self._execute(args, [url], timeout=timeout)
        if result.code != 0:
            raise NonZeroReturnCodeError(
                result.code,
                details={"url": url, "workdir": str(result.workdir)}
            )

        return ResourceSnapshot.parse(result.stdout)

    def download_video(self, video_id: str, staging_dir: Path) -> ProcessResult:
        """
        Download one video with all sidecars into a staging directory.

        A non-zero exit code is returned, not raised: the caller classifies
        the failure from the stderr.

        Args:
            video_id: Video to fetch.
            staging_dir: Directory receiving <id>.<ext> and its sidecars.

        Raises:
            DownloaderError: If the process could not be started.
        """
        args = [
            *self._cookie_args(),
            "--output", str(staging_dir / "%(id)s.%(ext)s"),
            *DOWNLOAD_OPTIONS,
            *self.config.extra_args,
        ]

        result = self._execute(args, [WATCH_URL.format(video_id=video_id)])
        for line in result.stdout.splitlines():
            if line.strip():
                logger.debug(f"[{video_id}]{line}")
        return result

    # =========================================================================
    # Process Handling
    # =========================================================================

    def _cookie_args(self) -> list[str]:
        if self.config.cookie_file is None:
            return []
        return ["--cookies", str(self.config.cookie_file)]

    def _allocate_workdir(self) -> Path:
        bucket, number = self.catalog.next_fetch_invocation()
        return ensure_directory(self.data_dir / EXECS_DIRNAME / str(bucket) / str(number))

    def _execute(
        self,
        option_args: list[str],
        args: list[str],
        timeout: float | None = None,
    ) -> ProcessResult:
        final_args = [
            *option_args,
            *COMMON_OPTIONS,
            "--cache-dir", str(self.data_dir / CACHE_DIRNAME),
            *args,
        ]
        command = [*self.executable, *final_args]
        workdir = self._allocate_workdir()

        with open(workdir / COMMAND_FILENAME, "w", encoding="utf-8") as f:
            json.dump({"bin": self.executable, "args": final_args}, f)

        logger.debug(f"Running yt-dlp in {workdir}")

        try:
            completed = subprocess.run(
                command,
                cwd=workdir,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"Timeout of {timeout}s reached")
            raise DownloaderTimeoutError(
                timeout,
                details={"workdir": str(workdir)}
            ) from e
        except OSError as e:
            raise DownloaderError(
                f"Failed to start yt-dlp: {e}",
                details={"command": command[0], "workdir": str(workdir)}
            ) from e

        for line in completed.stderr.splitlines():
            if line.strip():
                logger.error(f"[STDERR] {line}")

        return ProcessResult(
            code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
            workdir=workdir,
        )
