"""Tests for the on-disk AIXM dataset cache."""

from __future__ import annotations

import json

import pytest

from airac_updater.errors import CacheCorruption
from airac_updater.services.airac_cycle import cycle_from_ident
from airac_updater.services.dataset_cache import DatasetCache, dataset_slug, sha256_hex, write_atomic

CYCLE = cycle_from_ident("2502")
URL = "https://aip.dfs.de/datasets/rest/7/ED_Navaids_2025-02-20_2025-03-20_revision.xml"


class TestHelpers:
    def test_dataset_slug(self):
        assert dataset_slug("ED Navaids") == "ed_navaids"
        assert dataset_slug("ED AirportHeliport") == "ed_airportheliport"

    def test_write_atomic_leaves_no_temp_file(self, tmp_path):
        target = tmp_path / "sub" / "data.xml"
        write_atomic(target, b"<x/>")
        assert target.read_bytes() == b"<x/>"
        assert [p.name for p in target.parent.iterdir()] == ["data.xml"]


class TestDatasetCache:
    def test_constructor_has_no_side_effects(self, tmp_path):
        DatasetCache(tmp_path / "cache")
        assert not (tmp_path / "cache").exists()

    def test_store_and_read(self, tmp_path):
        cache = DatasetCache(tmp_path)
        ref = cache.store(CYCLE, "ED Navaids", URL, b"<data/>", etag='"abc"')

        assert ref.cycle == "2502"
        assert ref.sha256 == sha256_hex(b"<data/>")
        assert ref.size_bytes == 7
        assert cache.read(ref) == b"<data/>"
        assert (tmp_path / "2502" / "ed_navaids.xml").exists()

    def test_metadata_persisted(self, tmp_path):
        cache = DatasetCache(tmp_path)
        cache.store(CYCLE, "ED Navaids", URL, b"<data/>", etag='"abc"')

        meta = json.loads((tmp_path / "2502" / "metadata.json").read_text())
        assert meta["cycle"] == "2502"
        assert meta["datasets"]["ED Navaids"]["etag"] == '"abc"'

        ref = DatasetCache(tmp_path).lookup("2502", "ED Navaids")
        assert ref is not None
        assert ref.url == URL

    def test_lookup_missing(self, tmp_path):
        cache = DatasetCache(tmp_path)
        assert cache.lookup("2502", "ED Navaids") is None
        cache.store(CYCLE, "ED Navaids", URL, b"<data/>")
        assert cache.lookup("2502", "ED Routes") is None

    def test_unreadable_metadata_ignored(self, tmp_path):
        (tmp_path / "2502").mkdir()
        (tmp_path / "2502" / "metadata.json").write_text("{not json")
        assert DatasetCache(tmp_path).load_metadata("2502") is None

    def test_read_detects_tampering(self, tmp_path):
        cache = DatasetCache(tmp_path)
        ref = cache.store(CYCLE, "ED Navaids", URL, b"<data/>")
        (tmp_path / "2502" / "ed_navaids.xml").write_bytes(b"<tampered/>")

        with pytest.raises(CacheCorruption) as exc_info:
            cache.read(ref)
        assert exc_info.value.expected == ref.sha256

    def test_read_missing_file(self, tmp_path):
        cache = DatasetCache(tmp_path)
        ref = cache.store(CYCLE, "ED Navaids", URL, b"<data/>")
        (tmp_path / "2502" / "ed_navaids.xml").unlink()

        with pytest.raises(CacheCorruption):
            cache.read(ref)

    def test_discard(self, tmp_path):
        cache = DatasetCache(tmp_path)
        cache.store(CYCLE, "ED Navaids", URL, b"<data/>")
        cache.store(CYCLE, "ED Routes", URL, b"<routes/>")

        cache.discard("2502", "ED Navaids")

        assert cache.lookup("2502", "ED Navaids") is None
        assert cache.lookup("2502", "ED Routes") is not None
        assert not (tmp_path / "2502" / "ed_navaids.xml").exists()


class TestHousekeeping:
    def _populate(self, cache: DatasetCache, *idents: str) -> None:
        for ident in idents:
            cache.store(cycle_from_ident(ident), "ED Navaids", URL, ident.encode())

    def test_cached_cycles_sorted_across_centuries(self, tmp_path):
        cache = DatasetCache(tmp_path)
        self._populate(cache, "2502", "9813", "2413")
        (tmp_path / "not-a-cycle").mkdir()
        assert cache.cached_cycles() == ["9813", "2413", "2502"]

    def test_clean_old_cycles_keeps_previous(self, tmp_path):
        cache = DatasetCache(tmp_path)
        self._populate(cache, "2412", "2413", "2501", "2502")

        removed = cache.clean_old_cycles("2502")

        assert removed == ["2412", "2413"]
        assert cache.cached_cycles() == ["2501", "2502"]

    def test_clean_old_cycles_keep_none(self, tmp_path):
        cache = DatasetCache(tmp_path)
        self._populate(cache, "2501", "2502", "2503")

        assert cache.clean_old_cycles("2502", keep_previous=0) == ["2501"]
        # Newer cycles are never removed
        assert cache.cached_cycles() == ["2502", "2503"]

    def test_missing_cache_dir(self, tmp_path):
        assert DatasetCache(tmp_path / "nope").cached_cycles() == []
