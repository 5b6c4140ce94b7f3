"""Category-partitioned JSON store with backup-before-write.

Each category lives in ``<data_dir>/<category>.json`` as an indented array
of product objects. ``all-products.json`` is derived from the partitions
and rewritten after every successful partition write; it is never a write
target itself.
"""

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import icu

from oilscrape.config import (
    AGGREGATE_NAME,
    BACKUP_DIR_NAME,
    CATEGORY_ORDER,
    DATA_DIR,
    STATE_FILE_NAME,
)
from oilscrape.errors import PersistenceError
from oilscrape.logging_config import get_logger, log_scrape_event
from oilscrape.models import CATEGORIES, ProductRecord

__all__ = ["CategoryStore", "aggregate_sort_key", "dump_records"]

logger = get_logger("store")

BACKUP_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S_%f"

# zh-TW collation orders Han names by stroke count
NAME_COLLATOR = icu.Collator.createInstance(icu.Locale("zh_TW"))


def aggregate_sort_key(record: ProductRecord):
    """Category order first, then zh-TW collated name, then key."""
    try:
        category_rank = CATEGORY_ORDER.index(record.category)
    except ValueError:
        category_rank = len(CATEGORY_ORDER)
    name = NAME_COLLATOR.getSortKey(record.name or "")
    return (category_rank, name, record.business_key or "")


def dump_records(records: List[ProductRecord]) -> str:
    """Serialize records as human-diffable JSON."""
    payload = [record.to_dict() for record in records]
    return json.dumps(payload, ensure_ascii=False, indent=2) + "\n"


class CategoryStore:
    """Reads and writes category partitions under one data directory."""

    def __init__(self, data_dir: Union[str, Path] = DATA_DIR):
        self.data_dir = Path(data_dir)
        self.backup_dir = self.data_dir / BACKUP_DIR_NAME
        self.state_path = self.data_dir / STATE_FILE_NAME

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def partition_path(self, partition: str) -> Path:
        return self.data_dir / f"{partition}.json"

    @property
    def aggregate_path(self) -> Path:
        return self.partition_path(AGGREGATE_NAME)

    def partitions(self) -> List[str]:
        """Known partitions, in aggregate order."""
        return list(CATEGORIES)

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def _load_json(self, path: Path) -> Any:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupt JSON in {path}: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e

    def read(self, partition: str) -> List[ProductRecord]:
        """Load a partition. A missing file is an empty partition."""
        path = self.partition_path(partition)
        if not path.exists():
            return []
        data = self._load_json(path)
        if not isinstance(data, list):
            raise PersistenceError(f"Expected a JSON array in {path}")

        records = []
        for item in data:
            if not isinstance(item, dict):
                logger.warning(f"Ignoring non-object entry in {path.name}")
                continue
            record = ProductRecord.from_dict(item)
            if not record.category:
                record.category = partition
            records.append(record)
        return records

    def read_all(self) -> Dict[str, List[ProductRecord]]:
        """Load every partition keyed by partition name."""
        return {partition: self.read(partition) for partition in self.partitions()}

    def read_aggregate(self) -> List[ProductRecord]:
        if not self.aggregate_path.exists():
            return []
        return [ProductRecord.from_dict(item) for item in self._load_json(self.aggregate_path)]

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def backup(self, partition: str) -> Optional[Path]:
        """Copy the current partition file into the backup directory.

        Returns the backup path, or None when there was nothing to back up.
        """
        source = self.partition_path(partition)
        if not source.exists():
            return None

        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)
        target = self.backup_dir / f"{partition}_{stamp}.json"
        suffix = 1
        while target.exists():
            target = self.backup_dir / f"{partition}_{stamp}-{suffix}.json"
            suffix += 1

        shutil.copy2(source, target)
        logger.debug(f"Backed up {source.name} to {target}")
        log_scrape_event("backup_created", {
            "partition": partition,
            "backup": str(target),
        }, level=logging.DEBUG)
        return target

    def _atomic_write(self, path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def write(self, partition: str, records: List[ProductRecord], rebuild: bool = True) -> None:
        """Persist a partition, backing up the previous file first.

        Raises:
            ValueError: If the partition is the derived aggregate or unknown
            PersistenceError: If the backup or the write fails; the previous
                file is left as it was
        """
        if partition == AGGREGATE_NAME:
            raise ValueError(f"{AGGREGATE_NAME} is derived and cannot be written directly")
        if partition not in CATEGORIES:
            raise ValueError(f"Unknown partition: {partition}")

        path = self.partition_path(partition)
        try:
            self.backup(partition)
            self._atomic_write(path, dump_records(records))
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

        logger.info(f"Saved {len(records)} records to {path.name}")
        log_scrape_event("partition_write", {
            "partition": partition,
            "records": len(records),
        })

        if rebuild:
            self.rebuild_aggregate()

    def rebuild_aggregate(self) -> int:
        """Regenerate the aggregate view from all partitions.

        Returns:
            Number of records in the aggregate
        """
        records = [record for partition in self.read_all().values() for record in partition]
        records.sort(key=aggregate_sort_key)
        try:
            self._atomic_write(self.aggregate_path, dump_records(records))
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.aggregate_path}: {e}") from e
        logger.debug(f"Rebuilt {self.aggregate_path.name} with {len(records)} records")
        return len(records)

    # -------------------------------------------------------------------------
    # Scrape state
    # -------------------------------------------------------------------------

    def _load_state(self) -> Dict[str, Dict[str, Any]]:
        if not self.state_path.exists():
            return {}
        data = self._load_json(self.state_path)
        return data if isinstance(data, dict) else {}

    def get_scrape_state(self, category: str) -> Optional[Dict[str, Any]]:
        """Get the pagination state for a category."""
        return self._load_state().get(category)

    def update_scrape_state(self, category: str, last_page: int, links_found: Optional[int] = None) -> None:
        """Record the last page discovered for a category."""
        state = self._load_state()
        entry = state.get(category, {})
        entry["last_page_scraped"] = last_page
        entry["last_scraped_at"] = datetime.now().isoformat(timespec="seconds")
        if links_found is not None:
            entry["links_found"] = links_found
        state[category] = entry
        try:
            self._atomic_write(self.state_path, json.dumps(state, ensure_ascii=False, indent=2, sort_keys=True) + "\n")
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.state_path}: {e}") from e
