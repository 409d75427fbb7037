# tests/test_ytdlp.py
"""Test yt-dlp process handling"""

import json
import subprocess
import sys

import pytest

from tube_mirror.core.config import DownloaderConfig
from tube_mirror.core.exceptions import (
    DownloaderError,
    DownloaderTimeoutError,
    NonZeroReturnCodeError,
)
from tube_mirror.youtube.models import ResourceKind, SnapshotKind
from tube_mirror.youtube.ytdlp import YtDlp


PLAYLIST_JSON = json.dumps({
    "_type": "playlist",
    "id": "PL1",
    "title": "Mix",
    "uploader_id": "@someone",
    "modified_date": "20240101",
    "playlist_count": 2,
    "entries": [{"id": "aaaaaaaaaaa"}, {"id": "bbbbbbbbbbb"}],
})


def downloader_config(binary="yt-dlp", cookie_file=None, extra_args=()):
    return DownloaderConfig(
        binary=binary,
        cookie_file=cookie_file,
        query_timeout=None,
        extra_args=tuple(extra_args),
    )


@pytest.fixture
def fake_run(monkeypatch):
    """Replace subprocess.run; returns the list of recorded calls"""
    calls = []
    outcome = {"returncode": 0, "stdout": PLAYLIST_JSON, "stderr": "", "raise": None}

    def run(command, **kwargs):
        calls.append((command, kwargs))
        if outcome["raise"] is not None:
            raise outcome["raise"]
        return subprocess.CompletedProcess(
            command, outcome["returncode"], outcome["stdout"], outcome["stderr"]
        )

    monkeypatch.setattr("tube_mirror.youtube.ytdlp.subprocess.run", run)
    return calls, outcome


class TestExecutable:
    """Test the command prefix"""

    def test_configured_binary(self, catalog, temp_dir):
        assert YtDlp(downloader_config(), temp_dir, catalog).executable == ["yt-dlp"]

    def test_module_fallback(self, catalog, temp_dir):
        ytdlp = YtDlp(downloader_config(binary=None), temp_dir, catalog)
        assert ytdlp.executable == [sys.executable, "-m", "yt_dlp"]


class TestQueryResource:
    """Test metadata queries"""

    def test_snapshot_and_exec_dir(self, catalog, temp_dir, fake_run):
        """Test the snapshot is parsed and the invocation is recorded"""
        calls, _ = fake_run
        ytdlp = YtDlp(downloader_config(), temp_dir, catalog)

        snapshot = ytdlp.query_resource("https://www.youtube.com/playlist?list=PL1", ResourceKind.PLAYLIST)

        assert snapshot.kind is SnapshotKind.PLAYLIST
        assert snapshot.entries == ("aaaaaaaaaaa", "bbbbbbbbbbb")

        workdir = temp_dir / "execs" / "0" / "1"
        command, kwargs = calls[0]
        assert kwargs["cwd"] == workdir
        assert kwargs["timeout"] is None
        assert command[0] == "yt-dlp"
        assert command[-1] == "https://www.youtube.com/playlist?list=PL1"
        assert "--flat-playlist" in command
        assert "--write-pages" in command
        assert command[command.index("--cache-dir") + 1] == str(temp_dir / "cache")

        recorded = json.loads((workdir / "command.json").read_text())
        assert recorded["bin"] == ["yt-dlp"]
        assert recorded["args"] == command[1:]
        assert catalog.fetch_invocation_count == 1

    def test_info_archive_path(self, catalog, temp_dir, fake_run):
        calls, _ = fake_run
        YtDlp(downloader_config(), temp_dir, catalog).query_resource(
            "https://www.youtube.com/@someone/shorts", ResourceKind.SHORTS
        )
        command = calls[0][0]
        output = command[command.index("--output") + 1]
        assert output == str(temp_dir / "shorts_info" / "%(playlist_id)s" / "%(id)s.%(ext)s")

    def test_exec_dirs_are_bucketed(self, catalog, temp_dir, fake_run):
        catalog.fetch_invocation_count = 199
        YtDlp(downloader_config(), temp_dir, catalog).query_resource(
            "https://www.youtube.com/playlist?list=PL1", ResourceKind.PLAYLIST
        )
        assert (temp_dir / "execs" / "2" / "200" / "command.json").exists()

    def test_cookies_only_for_playlists(self, catalog, temp_dir, fake_run):
        calls, _ = fake_run
        cookies = temp_dir / "cookies.txt"
        ytdlp = YtDlp(downloader_config(cookie_file=cookies), temp_dir, catalog)

        ytdlp.query_resource("https://www.youtube.com/playlist?list=PL1", ResourceKind.PLAYLIST)
        ytdlp.query_resource("https://www.youtube.com/@someone", ResourceKind.CHANNEL)

        assert "--cookies" in calls[0][0]
        assert "--cookies" not in calls[1][0]

    def test_non_zero_exit(self, catalog, temp_dir, fake_run):
        _, outcome = fake_run
        outcome.update(returncode=1, stdout="", stderr="ERROR: boom\n")

        with pytest.raises(NonZeroReturnCodeError):
            YtDlp(downloader_config(), temp_dir, catalog).query_resource(
                "https://www.youtube.com/playlist?list=PL1", ResourceKind.PLAYLIST
            )

    def test_timeout(self, catalog, temp_dir, fake_run):
        calls, outcome = fake_run
        outcome["raise"] = subprocess.TimeoutExpired(["yt-dlp"], 5)

        with pytest.raises(DownloaderTimeoutError):
            YtDlp(downloader_config(), temp_dir, catalog).query_resource(
                "https://www.youtube.com/playlist?list=PL1", ResourceKind.PLAYLIST, timeout=5
            )
        assert calls[0][1]["timeout"] == 5

    def test_missing_binary(self, catalog, temp_dir, fake_run):
        _, outcome = fake_run
        outcome["raise"] = FileNotFoundError("yt-dlp")

        with pytest.raises(DownloaderError):
            YtDlp(downloader_config(), temp_dir, catalog).query_resource(
                "https://www.youtube.com/playlist?list=PL1", ResourceKind.PLAYLIST
            )


class TestDownloadVideo:
    """Test single video downloads"""

    def test_returns_code_and_stderr(self, catalog, temp_dir, fake_run):
        """Test a failing download is returned, not raised"""
        calls, outcome = fake_run
        outcome.update(returncode=1, stdout="", stderr="ERROR: Private video\n")
        staging = temp_dir / "tmp" / "dQw4w9WgXcQ"
        ytdlp = YtDlp(downloader_config(extra_args=["--limit-rate", "1M"]), temp_dir, catalog)

        result = ytdlp.download_video("dQw4w9WgXcQ", staging)

        assert result.code == 1
        assert result.stderr == "ERROR: Private video\n"
        command = calls[0][0]
        assert command[-1] == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert command[command.index("--output") + 1] == str(staging / "%(id)s.%(ext)s")
        assert command[command.index("--limit-rate") + 1] == "1M"
        assert "--write-info-json" in command
