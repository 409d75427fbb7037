"""Test configuration and fixtures"""

import json
import tempfile
from pathlib import Path

import pytest

from tube_mirror.core.catalog import STATS_FILENAME, Catalog
from tube_mirror.core.file_manager import ArtifactStore, ViewBuilder
from tube_mirror.utils import ensure_directory
from tube_mirror.youtube.models import ResourceSnapshot, SnapshotKind
from tube_mirror.youtube.ytdlp import ProcessResult


def make_info(video_id, title=None, ext="mkv", channel="Test Channel", channel_id="UCtest"):
    """Minimal .info.json document for a video"""
    return {
        "id": video_id,
        "title": title or f"Video {video_id}",
        "ext": ext,
        "channel": channel,
        "channel_id": channel_id,
    }


def make_snapshot(
    entries,
    playlist_id="PLtest",
    title="Test Playlist",
    kind=SnapshotKind.PLAYLIST,
    modified_date="20240101",
):
    """Snapshot as returned by a metadata query"""
    return ResourceSnapshot(
        kind=kind,
        id=playlist_id,
        title=title,
        entries=tuple(entries),
        modified_date=modified_date,
        playlist_count=len(entries),
    )


def add_stored_video(store, video_id, media_bytes=b"media", **info_kwargs):
    """Put a finished video (media + info sidecar) into the artifact store"""
    info = make_info(video_id, **info_kwargs)
    shard = ensure_directory(store.shard_dir(video_id))
    (shard / f"{video_id}.{info['ext']}").write_bytes(media_bytes)
    (shard / f"{video_id}.info.json").write_text(json.dumps(info), encoding="utf-8")
    return info


class FakeYtDlp:
    """Stands in for YtDlp: canned snapshots and download outcomes"""

    def __init__(self):
        self.snapshots = {}
        self.downloads = {}
        self.query_calls = []
        self.download_calls = []

    def add_download(self, video_id, code=0, stderr="", **info_kwargs):
        self.downloads[video_id] = (code, stderr, make_info(video_id, **info_kwargs))

    def query_resource(self, url, kind, timeout=None):
        self.query_calls.append(url)
        value = self.snapshots[url]
        if isinstance(value, Exception):
            raise value
        return value

    def download_video(self, video_id, staging_dir):
        self.download_calls.append(video_id)
        code, stderr, info = self.downloads.get(
            video_id, (1, f"ERROR: [youtube] {video_id}: Connection reset", None)
        )
        if code == 0:
            (staging_dir / f"{video_id}.info.json").write_text(json.dumps(info), encoding="utf-8")
            (staging_dir / f"{video_id}.{info['ext']}").write_bytes(b"downloaded media")
            (staging_dir / f"{video_id}.en.srt").write_text("1\n00:00:00,000 --> 00:00:01,000\nhi\n")
        return ProcessResult(code=code, stdout="", stderr=stderr, workdir=staging_dir)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def catalog(temp_dir):
    """Open catalog in the temporary data directory"""
    catalog = Catalog(temp_dir / STATS_FILENAME)
    catalog.open()
    catalog.load()
    yield catalog
    catalog.close()


@pytest.fixture
def store(temp_dir):
    return ArtifactStore(temp_dir)


@pytest.fixture
def views(temp_dir, store):
    views = ViewBuilder(temp_dir, store)
    views.ensure_roots()
    return views


@pytest.fixture
def fake_ytdlp():
    return FakeYtDlp()


@pytest.fixture
def fake_probe(monkeypatch):
    """Replace ffprobe with a canned report; returns the list of probed paths"""
    probed = []

    def probe(path, binary="ffprobe"):
        probed.append(path)
        return {"format": {"filename": str(path), "format_name": "matroska,webm"}, "streams": []}

    monkeypatch.setattr("tube_mirror.download.fetcher.probe_media", probe)
    return probed
