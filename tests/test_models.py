# tests/test_models.py
"""Test URL classification and downloader documents"""

import json

import pytest

from tube_mirror.core.exceptions import InvalidJsonError, ResourceError
from tube_mirror.youtube.models import (
    ResourceKind,
    ResourceSnapshot,
    SnapshotKind,
    VideoInfo,
    classify_url,
    detect_snapshot_kind,
    video_id_from_url,
)


class TestClassifyUrl:
    """Test URL shapes"""

    @pytest.mark.parametrize("url, kind", [
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", ResourceKind.VIDEO),
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ&list=PL1", ResourceKind.VIDEO),
        ("https://www.youtube.com/playlist?list=PL1", ResourceKind.PLAYLIST),
        ("https://www.youtube.com/feed/history", ResourceKind.PLAYLIST),
        ("https://www.youtube.com/@someone/shorts", ResourceKind.SHORTS),
        ("https://www.youtube.com/@someone", ResourceKind.CHANNEL),
        ("https://www.youtube.com/@someone/videos", ResourceKind.CHANNEL),
        ("https://www.youtube.com/channel/UC123", ResourceKind.CHANNEL),
    ])
    def test_known_shapes(self, url, kind):
        """Test each supported URL shape"""
        assert classify_url(url) is kind

    def test_unknown_shape_raises(self):
        """Test an unsupported URL is a per-resource error"""
        with pytest.raises(ResourceError):
            classify_url("https://example.com/something")

    def test_playlist_like(self):
        """Test shorts tabs are handled like playlists"""
        assert ResourceKind.SHORTS.is_playlist_like
        assert ResourceKind.PLAYLIST.is_playlist_like
        assert not ResourceKind.CHANNEL.is_playlist_like

    def test_video_id_from_url(self):
        """Test extracting the v parameter"""
        assert video_id_from_url("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=1") == "dQw4w9WgXcQ"
        with pytest.raises(ResourceError):
            video_id_from_url("https://www.youtube.com/watch?v=")


class TestSnapshotKind:
    """Test telling channels from playlists"""

    def test_handle_id_is_channel(self):
        assert detect_snapshot_kind({"id": "@someone", "_type": "playlist"}) is SnapshotKind.CHANNEL

    def test_uploader_id_match_is_channel(self):
        data = {"id": "UC123", "uploader_id": "UC123", "_type": "playlist", "title": "Someone"}
        assert detect_snapshot_kind(data) is SnapshotKind.CHANNEL

    def test_videos_tab_is_channel(self):
        data = {"id": "UC123", "uploader_id": "@someone", "_type": "playlist", "title": "Someone - Videos"}
        assert detect_snapshot_kind(data) is SnapshotKind.CHANNEL

    def test_plain_playlist(self):
        data = {"id": "PL1", "uploader_id": "@someone", "_type": "playlist", "title": "Mix"}
        assert detect_snapshot_kind(data) is SnapshotKind.PLAYLIST

    def test_unknown(self):
        assert detect_snapshot_kind({"id": "dQw4w9WgXcQ", "_type": "video"}) is SnapshotKind.UNKNOWN


class TestResourceSnapshot:
    """Test parsing --dump-single-json output"""

    def test_parse_playlist(self):
        """Test entries, marker and count are read"""
        stdout = json.dumps({
            "_type": "playlist",
            "id": "PL1",
            "title": "Mix",
            "modified_date": "20240101",
            "playlist_count": 3,
            "entries": [{"id": "aaaaaaaaaaa"}, None, {"id": "bbbbbbbbbbb"}, {"title": "no id"}],
        })

        snapshot = ResourceSnapshot.parse(stdout)

        assert snapshot.kind is SnapshotKind.PLAYLIST
        assert snapshot.entries == ("aaaaaaaaaaa", "bbbbbbbbbbb")
        assert snapshot.modified_date == "20240101"
        assert snapshot.playlist_count == 3

    def test_missing_count_falls_back_to_entries(self):
        snapshot = ResourceSnapshot.from_json({"id": "PL1", "_type": "playlist", "entries": [{"id": "a1"}]})
        assert snapshot.playlist_count == 1
        assert snapshot.modified_date is None

    def test_invalid_json_raises(self):
        with pytest.raises(InvalidJsonError):
            ResourceSnapshot.parse("WARNING: something\n")

    def test_missing_id_raises(self):
        with pytest.raises(ResourceError):
            ResourceSnapshot.from_json({"_type": "playlist", "entries": []})


class TestVideoInfo:
    """Test reading .info.json documents"""

    def test_from_info_json(self):
        info = VideoInfo.from_info_json({
            "id": "dQw4w9WgXcQ", "title": "Song", "ext": "mkv",
            "channel": "Rick", "channel_id": "UC1",
        })
        assert info.media_filename == "dQw4w9WgXcQ.mkv"
        assert info.channel == "Rick"

    def test_uploader_fallback(self):
        info = VideoInfo.from_info_json({
            "id": "dQw4w9WgXcQ", "ext": "mkv", "uploader": "Rick", "uploader_id": "@rick",
        })
        assert info.channel == "Rick"
        assert info.channel_id == "@rick"
        assert info.title == "dQw4w9WgXcQ"

    def test_missing_ext_raises(self):
        with pytest.raises(ValueError):
            VideoInfo.from_info_json({"id": "dQw4w9WgXcQ"})
