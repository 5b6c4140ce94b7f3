"""Tests for the partitioned JSON store."""

import json
import os

import pytest

from oilscrape.errors import PersistenceError
from oilscrape.models import ProductRecord


def record(name, category, code, **kwargs) -> ProductRecord:
    return ProductRecord(
        name=name,
        url=f"https://www.doterra.com/TW/zh_TW/p/{code}",
        category=category,
        business_key=code,
        product_code=code,
        **kwargs,
    )


class TestReadWrite:
    """Partition reads and writes."""

    def test_missing_partition_is_empty(self, store):
        """A partition with no file reads as empty."""
        assert store.read("single-oils") == []

    def test_write_then_read(self, store):
        """Written records read back unchanged."""
        store.write("single-oils", [record("薰衣草精油", "single-oils", "30010001", cautions=["外用"])])

        loaded = store.read("single-oils")

        assert len(loaded) == 1
        assert loaded[0].name == "薰衣草精油"
        assert loaded[0].cautions == ["外用"]

    def test_file_is_indented_utf8(self, store):
        """Partitions are indented UTF-8 with a trailing newline."""
        store.write("single-oils", [record("薰衣草精油", "single-oils", "30010001")])

        text = store.partition_path("single-oils").read_text(encoding="utf-8")

        assert "薰衣草精油" in text
        assert text.startswith("[\n  {")
        assert text.endswith("\n")

    def test_category_defaults_to_partition(self, store, data_dir):
        """Records without a category take the partition name."""
        data_dir.mkdir(parents=True)
        (data_dir / "wellness.json").write_text(
            json.dumps([{"name": "益生菌", "url": "https://www.doterra.com/TW/zh_TW/p/pb-assist"}]),
            encoding="utf-8",
        )

        assert store.read("wellness")[0].category == "wellness"

    def test_unknown_keys_survive_round_trip(self, store, data_dir):
        """Unknown keys in a stored file are written back."""
        data_dir.mkdir(parents=True)
        (data_dir / "wellness.json").write_text(
            json.dumps([{"name": "益生菌", "url": "https://x/p/a", "category": "wellness", "legacyTag": "v1"}]),
            encoding="utf-8",
        )

        store.write("wellness", store.read("wellness"))

        saved = json.loads(store.partition_path("wellness").read_text(encoding="utf-8"))
        assert saved[0]["legacyTag"] == "v1"

    def test_corrupt_file_raises(self, store, data_dir):
        """Unparseable JSON is a persistence error."""
        data_dir.mkdir(parents=True)
        (data_dir / "skincare.json").write_text("[{not json", encoding="utf-8")

        with pytest.raises(PersistenceError, match="Corrupt JSON"):
            store.read("skincare")

    def test_failed_replace_keeps_previous_file(self, store, monkeypatch):
        """A write that fails mid-way leaves the old partition and no temp file."""
        store.write("single-oils", [record("薰衣草精油", "single-oils", "30010001")])
        path = store.partition_path("single-oils")
        before = path.read_bytes()

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", failing_replace)

        with pytest.raises(PersistenceError, match="disk full"):
            store.write("single-oils", [record("薄荷精油", "single-oils", "30020001")])

        assert path.read_bytes() == before
        assert not [p for p in path.parent.iterdir() if p.name.endswith(".tmp")]


class TestBackups:
    """Backup-before-write."""

    def test_first_write_makes_no_backup(self, store):
        """Nothing is backed up when no file existed."""
        store.write("single-oils", [record("薰衣草精油", "single-oils", "30010001")])

        assert not store.backup_dir.exists() or list(store.backup_dir.iterdir()) == []

    def test_second_write_backs_up_previous_content(self, store):
        """The backup holds the content from before the write."""
        store.write("single-oils", [record("薰衣草精油", "single-oils", "30010001")])
        previous = store.partition_path("single-oils").read_text(encoding="utf-8")

        store.write("single-oils", [
            record("薰衣草精油", "single-oils", "30010001"),
            record("薄荷精油", "single-oils", "30020001"),
        ])

        backups = list(store.backup_dir.glob("single-oils_*.json"))
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == previous

    def test_backups_never_overwrite_each_other(self, store):
        """Rapid writes each get their own backup file."""
        store.write("single-oils", [record("薰衣草精油", "single-oils", "30010001")])
        for _ in range(3):
            store.write("single-oils", [record("薰衣草精油", "single-oils", "30010001")])

        assert len(list(store.backup_dir.glob("single-oils_*.json"))) == 3


class TestAggregate:
    """The derived all-products view."""

    def test_aggregate_rebuilt_and_sorted(self, store):
        """The aggregate follows category order, then name."""
        store.write("onguard-collection", [record("保衛複方精油", "onguard-collection", "31010001")])
        store.write("single-oils", [
            record("薄荷精油", "single-oils", "30020001"),
            record("Basil Oil", "single-oils", "30030001"),
        ])

        aggregate = store.read_aggregate()

        assert [r.name for r in aggregate] == ["Basil Oil", "薄荷精油", "保衛複方精油"]

    def test_han_names_sort_by_stroke_count(self, store):
        """Chinese names within a category follow zh-TW collation."""
        store.write("single-oils", [
            record("乳香精油", "single-oils", "30040001"),
            record("佛手柑精油", "single-oils", "30050001"),
            record("冬青精油", "single-oils", "30060001"),
            record("天竺葵精油", "single-oils", "30070001"),
            record("山雞椒精油", "single-oils", "30080001"),
        ])

        names = [r.name for r in store.read_aggregate()]

        assert names == ["山雞椒精油", "天竺葵精油", "冬青精油", "佛手柑精油", "乳香精油"]

    def test_aggregate_is_not_writable(self, store):
        """The aggregate cannot be written as a partition."""
        with pytest.raises(ValueError):
            store.write("all-products", [])

    def test_unknown_partition_rejected(self, store):
        """Only known categories can be written."""
        with pytest.raises(ValueError):
            store.write("candles", [])

    def test_rebuild_count(self, store):
        """A deferred rebuild writes the aggregate and returns its size."""
        store.write("skincare", [record("保濕乳液", "skincare", "60200001")], rebuild=False)

        assert not store.aggregate_path.exists()
        assert store.rebuild_aggregate() == 1
        assert store.aggregate_path.exists()


class TestScrapeState:
    """Per-category resume state."""

    def test_state_round_trip(self, store):
        """The last page and link count are recorded with a timestamp."""
        assert store.get_scrape_state("single-oils") is None

        store.update_scrape_state("single-oils", 2, links_found=24)

        state = store.get_scrape_state("single-oils")
        assert state["last_page_scraped"] == 2
        assert state["links_found"] == 24
        assert "last_scraped_at" in state

    def test_state_keeps_other_categories(self, store):
        """Updating one category leaves the others in place."""
        store.update_scrape_state("single-oils", 1)
        store.update_scrape_state("wellness", 0)

        assert store.get_scrape_state("single-oils")["last_page_scraped"] == 1
