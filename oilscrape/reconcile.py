"""Reconcile freshly scraped records against the persisted collection.

Records are matched by business key (product code, otherwise URL slug)
across every partition. Matches are merged field by field without ever
regressing a populated value to empty; unmatched records are classified
into a partition and inserted.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from oilscrape.config import CATEGORY_PROFILES, FALLBACK_PARTITION
from oilscrape.errors import ReconciliationError
from oilscrape.keys import (
    SLUG_KEY_PREFIX,
    derive_business_key,
    generate_product_id,
    normalize_product_code,
    slug_from_url,
)
from oilscrape.logging_config import get_logger, log_scrape_event
from oilscrape.models import CATEGORIES, LIST_FIELDS, SCALAR_FIELDS, ProductRecord
from oilscrape.text_utils import is_empty

__all__ = [
    "INSERT",
    "UPDATE",
    "SKIP",
    "IndexEntry",
    "ReconcileDecision",
    "ReconciliationIndex",
    "merge_records",
    "changed_fields",
    "classify_partition",
    "reconcile",
]

logger = get_logger("reconcile")

INSERT = "insert"
UPDATE = "update"
SKIP = "skip"

# Keyword classification order. More specific categories come first
# because the single-oil keywords match almost every oil product name.
CLASSIFICATION_ORDER = (
    "onguard-collection",
    "proprietary-blends",
    "skincare",
    "wellness",
    "accessories",
    "single-oils",
)


def _same_url(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").rstrip("/").lower() == (b or "").rstrip("/").lower()


@dataclass
class IndexEntry:
    key: str
    partition: str
    position: int
    record: ProductRecord


@dataclass
class ReconcileDecision:
    """Outcome of reconciling one record."""

    action: str
    partition: str
    key: str
    # The record to persist: the merged record for updates
    record: ProductRecord
    changed_fields: List[str] = field(default_factory=list)
    reason: str = ""


class ReconciliationIndex:
    """In-memory business-key index over all partitions.

    Built once per run and updated in place as decisions are applied. Each
    stored record is reachable by its business key, by its product code and
    by its URL slug, so a record first stored under a slug key is still
    found once its product code becomes known.
    """

    def __init__(self, partitions: Dict[str, List[ProductRecord]]):
        self._partitions: Dict[str, List[ProductRecord]] = {
            name: list(partitions.get(name, [])) for name in CATEGORIES
        }
        for name, records in partitions.items():
            if name not in self._partitions:
                logger.warning(f"Ignoring unknown partition {name!r} ({len(records)} records)")
        self._entries: Dict[str, IndexEntry] = {}
        self._aliases: Dict[str, str] = {}
        # key -> URL that resolved to it during this run
        self._seen: Dict[str, str] = {}
        self.duplicates: List[str] = []
        self._build()

    @classmethod
    def from_store(cls, store) -> "ReconciliationIndex":
        return cls(store.read_all())

    def _build(self) -> None:
        for partition, records in self._partitions.items():
            for position, record in enumerate(records):
                if not record.business_key:
                    record.business_key = derive_business_key(record.product_code, record.url) or ""
                key = record.business_key
                if not key:
                    logger.warning(f"Record without code or URL in {partition}: {record.name!r}")
                    continue
                if key in self._entries or key in self._aliases:
                    first = self._entries.get(key) or self._entries[self._aliases[key]]
                    self.duplicates.append(key)
                    logger.warning(
                        f"Duplicate business key {key} in {partition}[{position}] "
                        f"(first seen in {first.partition}[{first.position}])"
                    )
                    log_scrape_event("duplicate_key", {
                        "key": key,
                        "partition": partition,
                        "position": position,
                        "first_partition": first.partition,
                        "first_position": first.position,
                    }, level=logging.WARNING)
                    continue
                self._entries[key] = IndexEntry(key, partition, position, record)
                self._add_aliases(key, record)

        logger.info(f"Indexed {len(self._entries)} existing products across {len(self._partitions)} partitions")

    def _add_aliases(self, key: str, record: ProductRecord) -> None:
        candidates = [normalize_product_code(record.product_code)]
        slug = slug_from_url(record.url)
        if slug:
            candidates.append(f"{SLUG_KEY_PREFIX}{slug}")
        for alias in candidates:
            if alias and alias != key and alias not in self._entries:
                self._aliases.setdefault(alias, key)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries or key in self._aliases

    def lookup(self, record: ProductRecord) -> Optional[IndexEntry]:
        """Find the stored entry for a record by key, code or slug."""
        candidates = [record.business_key, normalize_product_code(record.product_code)]
        slug = slug_from_url(record.url)
        if slug:
            candidates.append(f"{SLUG_KEY_PREFIX}{slug}")
        for candidate in candidates:
            if not candidate:
                continue
            if candidate in self._entries:
                return self._entries[candidate]
            if candidate in self._aliases:
                return self._entries[self._aliases[candidate]]
        return None

    def get(self, key: str) -> Optional[IndexEntry]:
        if key in self._aliases:
            key = self._aliases[key]
        return self._entries.get(key)

    def seen_url(self, key: str) -> Optional[str]:
        """URL that resolved to ``key`` earlier in this run."""
        return self._seen.get(key)

    def mark_seen(self, key: str, url: str) -> None:
        self._seen.setdefault(key, url)

    def records(self, partition: str) -> List[ProductRecord]:
        return self._partitions[partition]

    def all_records(self) -> List[ProductRecord]:
        return [record for records in self._partitions.values() for record in records]

    def apply(self, decision: ReconcileDecision) -> None:
        """Apply an insert or update to the index and its partition lists."""
        if decision.action == INSERT:
            records = self._partitions[decision.partition]
            entry = IndexEntry(decision.key, decision.partition, len(records), decision.record)
            records.append(decision.record)
            self._entries[decision.key] = entry
            self._add_aliases(decision.key, decision.record)
        elif decision.action == UPDATE:
            entry = self._entries[decision.key]
            self._partitions[entry.partition][entry.position] = decision.record
            entry.record = decision.record
            self._add_aliases(decision.key, decision.record)


def merge_records(existing: ProductRecord, new: ProductRecord) -> ProductRecord:
    """Field-level fallback merge of ``new`` into a copy of ``existing``.

    Scalars only fill gaps. Lists are replaced wholesale by a non-empty new
    list and never by an empty one. Collections are unioned. Identity
    fields (id, business key, category) are never changed.
    """
    merged = copy.deepcopy(existing)
    merged.split_warnings = []

    if is_empty(merged.name) and not is_empty(new.name):
        merged.name = new.name
    if is_empty(merged.url) and not is_empty(new.url):
        merged.url = new.url

    for attr in SCALAR_FIELDS:
        if is_empty(getattr(merged, attr)) and not is_empty(getattr(new, attr)):
            setattr(merged, attr, getattr(new, attr))

    for attr in LIST_FIELDS:
        value = getattr(new, attr)
        if isinstance(value, list) and not is_empty(value):
            setattr(merged, attr, list(value))
        elif isinstance(value, str) and value.strip():
            setattr(merged, attr, value)

    for tag in new.collections:
        if tag and tag not in merged.collections:
            merged.collections.append(tag)

    return merged


def changed_fields(before: ProductRecord, after: ProductRecord) -> List[str]:
    """Serialized fields whose values differ between two records."""
    old, new = before.to_dict(), after.to_dict()
    return [key for key in new if old.get(key) != new[key]] + [key for key in old if key not in new]


def classify_partition(record: ProductRecord, hint: Optional[str] = None) -> str:
    """Pick the partition for a new record.

    A primary crawl category wins. Otherwise (no hint, or the catch-all
    collection listing) the name is matched against each category's
    keywords, falling back to the collection partition.
    """
    if hint in CATEGORIES and hint != FALLBACK_PARTITION:
        return hint

    haystack = " ".join(filter(None, [record.name, record.english_name])).lower()
    for category in CLASSIFICATION_ORDER:
        keywords = CATEGORY_PROFILES.get(category, {}).get("name_keywords", [])
        if any(keyword.lower() in haystack for keyword in keywords):
            return category
    return FALLBACK_PARTITION


def reconcile(
    record: ProductRecord,
    index: ReconciliationIndex,
    crawl_category: Optional[str] = None,
) -> ReconcileDecision:
    """Decide insert, update or skip for a normalized record.

    The index is not modified; call ``index.apply(decision)`` once the
    decision is accepted.

    Raises:
        ReconciliationError: If the record has no business key
    """
    if not record.business_key:
        raise ReconciliationError(f"No business key for {record.url}")

    entry = index.lookup(record)
    key = entry.key if entry else record.business_key

    previous_url = index.seen_url(key)
    if previous_url is not None and not _same_url(previous_url, record.url):
        logger.warning(
            f"KEY COLLISION: {key} from {record.url} already resolved from {previous_url} this run; "
            f"skipping. Check for a duplicate product or a bad key."
        )
        log_scrape_event("key_collision", {
            "key": key,
            "url": record.url,
            "previous_url": previous_url,
        }, level=logging.WARNING)
        partition = entry.partition if entry else classify_partition(record, crawl_category)
        return ReconcileDecision(SKIP, partition, key, record, reason="key_collision")
    index.mark_seen(key, record.url)

    if entry is not None:
        merged = merge_records(entry.record, record)
        changes = changed_fields(entry.record, merged)
        if not changes:
            return ReconcileDecision(SKIP, entry.partition, key, entry.record, reason="unchanged")
        return ReconcileDecision(UPDATE, entry.partition, key, merged, changed_fields=changes)

    partition = classify_partition(record, crawl_category)
    inserted = copy.copy(record)
    inserted.category = partition
    inserted.id = inserted.id or generate_product_id(partition, record.url)
    return ReconcileDecision(INSERT, partition, key, inserted, changed_fields=list(inserted.to_dict()))
