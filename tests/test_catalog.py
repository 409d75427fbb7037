# tests/test_catalog.py
"""Test the stats.json catalog"""

import json

import pytest

from tube_mirror.core.catalog import STATS_FILENAME, Catalog, deep_merge
from tube_mirror.core.exceptions import CatalogError


def reopen(path):
    catalog = Catalog(path)
    catalog.open()
    catalog.load()
    return catalog


class TestCatalogFile:
    """Test opening, loading and saving"""

    def test_open_creates_missing_file(self, temp_dir):
        """Test a missing catalog is created and loads as defaults"""
        path = temp_dir / STATS_FILENAME
        catalog = reopen(path)

        assert path.exists()
        assert catalog.instance_count == 0
        assert catalog.known_videos == set()
        assert catalog.lists == {}
        catalog.close()

    def test_empty_file_loads_defaults(self, temp_dir):
        """Test an empty file is not an error"""
        path = temp_dir / STATS_FILENAME
        path.write_text("")

        catalog = reopen(path)
        assert catalog.fetch_invocation_count == 0
        assert catalog.unavailable_videos == {}
        catalog.close()

    def test_round_trip(self, temp_dir):
        """Test every mutation survives a reopen"""
        path = temp_dir / STATS_FILENAME
        catalog = reopen(path)
        catalog.begin_instance()
        catalog.record_download("aaaaaaaaaaa")
        catalog.mark_unavailable("bbbbbbbbbbb", "Private video")
        catalog.mark_deleted("ccccccccccc")
        catalog.update_list("PL1", "20240101", 3)
        catalog.add_list_download("PL1", "aaaaaaaaaaa")
        catalog.update_channel("UC1", last_video_id="aaaaaaaaaaa")
        catalog.close()

        loaded = reopen(path)
        assert loaded.instance_count == 1
        assert loaded.is_known("aaaaaaaaaaa")
        assert loaded.unavailable_videos == {"bbbbbbbbbbb": "Private video"}
        assert loaded.is_deleted("ccccccccccc")
        assert loaded.list_record("PL1").modified_date == "20240101"
        assert loaded.list_record("PL1").entry_count == 3
        assert loaded.list_record("PL1").downloaded == ["aaaaaaaaaaa"]
        assert loaded.channel_record("UC1").last_video_id == "aaaaaaaaaaa"
        loaded.close()

    def test_merge_on_load_fills_missing_fields(self, temp_dir):
        """Test an older document gets the newer fields at their defaults"""
        path = temp_dir / STATS_FILENAME
        path.write_text(json.dumps({
            "known_videos": ["aaaaaaaaaaa"],
            "lists": {"PL1": {"id": "PL1", "entry_count": 2}},
        }))

        catalog = reopen(path)
        assert catalog.is_known("aaaaaaaaaaa")
        assert catalog.deleted_videos == set()
        assert catalog.channels == {}
        assert catalog.list_record("PL1").downloaded == []
        catalog.close()

    def test_unknown_keys_are_preserved(self, temp_dir):
        """Test keys this version does not know are written back"""
        path = temp_dir / STATS_FILENAME
        path.write_text(json.dumps({"future_field": {"x": 1}}))

        catalog = reopen(path)
        catalog.record_download("aaaaaaaaaaa")
        catalog.close()

        document = json.loads(path.read_text())
        assert document["future_field"] == {"x": 1}
        assert document["known_videos"] == ["aaaaaaaaaaa"]

    def test_invalid_json_raises(self, temp_dir):
        """Test a corrupted file is a fatal error"""
        path = temp_dir / STATS_FILENAME
        path.write_text("{not json")

        catalog = Catalog(path)
        catalog.open()
        with pytest.raises(CatalogError):
            catalog.load()

    def test_non_object_raises(self, temp_dir):
        """Test a JSON array is rejected"""
        path = temp_dir / STATS_FILENAME
        path.write_text("[]")

        catalog = Catalog(path)
        catalog.open()
        with pytest.raises(CatalogError):
            catalog.load()

    @pytest.mark.parametrize("content", [
        '{"known_videos": null}',
        '{"lists": []}',
        '{"channels": {"UC1": "x"}}',
        '{"instance_count": "many"}',
    ])
    def test_wrong_field_types_raise(self, temp_dir, content):
        """Test a well-formed object with badly typed fields is rejected"""
        path = temp_dir / STATS_FILENAME
        path.write_text(content)

        catalog = Catalog(path)
        catalog.open()
        with pytest.raises(CatalogError) as exc_info:
            catalog.load()
        assert exc_info.value.details["path"] == str(path)
        assert catalog.known_videos == set()

    def test_save_truncates_shorter_content(self, temp_dir):
        """Test a shrinking document leaves no trailing bytes"""
        path = temp_dir / STATS_FILENAME
        catalog = reopen(path)
        for i in range(50):
            catalog.known_videos.add(f"video{i:06d}")
        catalog.save()

        catalog.known_videos.clear()
        catalog.save()
        catalog.close()

        document = json.loads(path.read_text())
        assert document["known_videos"] == []

    def test_save_without_open_raises(self, temp_dir):
        """Test persisting a catalog that was never opened"""
        catalog = Catalog(temp_dir / STATS_FILENAME)
        with pytest.raises(CatalogError):
            catalog.save()

    def test_close_is_idempotent(self, temp_dir):
        """Test closing twice"""
        catalog = reopen(temp_dir / STATS_FILENAME)
        catalog.close()
        catalog.close()
        assert not catalog.is_open

    def test_context_manager(self, temp_dir):
        """Test with-statement opens, loads and closes"""
        path = temp_dir / STATS_FILENAME
        with Catalog(path) as catalog:
            catalog.record_download("aaaaaaaaaaa")
        assert not catalog.is_open
        assert json.loads(path.read_text())["known_videos"] == ["aaaaaaaaaaa"]


class TestCatalogMutations:
    """Test the persisting mutators"""

    def test_mutations_persist_immediately(self, catalog):
        """Test the file reflects a mutation before close"""
        catalog.mark_unavailable("aaaaaaaaaaa", "Video unavailable")

        document = json.loads(catalog.path.read_text())
        assert document["unavailable_videos"] == {"aaaaaaaaaaa": "Video unavailable"}

    def test_fetch_invocation_buckets(self, catalog):
        """Test invocation numbers roll into buckets of 100"""
        catalog.fetch_invocation_count = 98

        assert catalog.next_fetch_invocation() == (0, 99)
        assert catalog.next_fetch_invocation() == (1, 100)
        assert json.loads(catalog.path.read_text())["fetch_invocation_count"] == 100

    def test_update_list_keeps_downloaded(self, catalog):
        """Test merging a new snapshot onto an existing record"""
        catalog.update_list("PL1", "20240101", 2)
        catalog.add_list_download("PL1", "aaaaaaaaaaa")

        record = catalog.update_list("PL1", "20240202", 5)

        assert record.downloaded == ["aaaaaaaaaaa"]
        assert record.modified_date == "20240202"
        assert record.entry_count == 5
        assert record.last_checked is not None

    def test_add_list_download_is_unique(self, catalog):
        """Test the same id is not listed twice"""
        catalog.add_list_download("PL1", "aaaaaaaaaaa")
        catalog.add_list_download("PL1", "aaaaaaaaaaa")
        assert catalog.list_record("PL1").downloaded == ["aaaaaaaaaaa"]

    def test_channel_records_stay_in_channel_bucket(self, catalog):
        """Test channels never land in the playlist bucket"""
        catalog.update_channel("UC1")
        catalog.add_channel_download("UC1", "aaaaaaaaaaa")
        catalog.update_channel("UC1", last_video_id="bbbbbbbbbbb")

        assert catalog.list_record("UC1") is None
        record = catalog.channel_record("UC1")
        assert record.downloaded == ["aaaaaaaaaaa"]
        assert record.last_video_id == "bbbbbbbbbbb"

    def test_deleted_can_overlap_known(self, catalog):
        """Test a deleted video stays known"""
        catalog.record_download("aaaaaaaaaaa")
        catalog.mark_deleted("aaaaaaaaaaa")
        assert catalog.is_known("aaaaaaaaaaa")
        assert catalog.is_deleted("aaaaaaaaaaa")

    def test_summary(self, catalog):
        """Test the summary counts"""
        catalog.record_download("aaaaaaaaaaa")
        catalog.mark_unavailable("bbbbbbbbbbb", "Private video")
        summary = catalog.summary()
        assert summary["known_videos"] == 1
        assert summary["unavailable_videos"] == 1
        assert summary["deleted_videos"] == 0


class TestDeepMerge:
    """Test the merge used on load"""

    def test_nested_merge(self):
        """Test nested dictionaries merge field by field"""
        merged = deep_merge({"a": 1, "b": {"c": 2, "d": 3}}, {"b": {"c": 5}})
        assert merged == {"a": 1, "b": {"c": 5, "d": 3}}

    def test_inputs_unchanged(self):
        """Test neither input is modified"""
        base = {"b": {"c": 2}}
        deep_merge(base, {"b": {"c": 5}})
        assert base == {"b": {"c": 2}}
