"""Convert raw extractor output into canonical product records."""

import logging
from typing import Iterable, List, Optional, Tuple, Union

from oilscrape.errors import MissingNameError
from oilscrape.keys import derive_business_key, name_from_slug, normalize_product_code
from oilscrape.logging_config import get_logger, log_scrape_event
from oilscrape.models import ProductRecord, RawFields
from oilscrape.text_utils import (
    SplitOutcome,
    clean_text,
    is_empty,
    parse_points,
    parse_price,
    split_list_text,
)
from oilscrape.url_validation import URLValidationError, validate_image_url

__all__ = ["normalize", "normalize_list", "normalize_paragraph"]

logger = get_logger("normalizer")

_PARAGRAPH_FIELDS = (
    "description",
    "product_introduction",
    "application_guide",
)
_SHORT_TEXT_FIELDS = (
    "english_name",
    "scientific_name",
    "aroma_description",
    "extraction_method",
    "plant_part",
    "volume",
)
_LIST_FIELDS = ("main_benefits", "main_ingredients", "usage_instructions", "cautions")


def normalize_paragraph(value: Union[str, List[str], None]) -> Optional[str]:
    """Join list input and tidy whitespace while keeping paragraph breaks."""
    if is_empty(value):
        return None
    if isinstance(value, list):
        value = "\n".join(v for v in value if not is_empty(v))
    lines = [clean_text(line) for line in value.splitlines()]
    text = "\n".join(line for line in lines if line)
    return text or None


def normalize_list(value: Union[str, List[str], None]) -> Tuple[List[str], Optional[SplitOutcome]]:
    """Turn raw list content into clean items.

    Items that came from list markup are kept as they are. A single string
    has no reliable delimiter and goes through the split heuristics; the
    outcome is returned so ambiguity can be reported.
    """
    if is_empty(value):
        return [], None
    if isinstance(value, list):
        items = [clean_text(v) for v in value if not is_empty(v)]
        items = [i for i in items if i]
        if len(items) > 1:
            return items, None
        value = items[0] if items else ""
    outcome = split_list_text(value)
    return outcome.items, outcome


def _record_ambiguity(record: ProductRecord, field_name: str, outcome: SplitOutcome) -> None:
    record.split_warnings.append(field_name)
    logger.warning(
        f"Ambiguous list split for {field_name} on {record.url}: "
        f"used {outcome.strategy}, conflicting {', '.join(outcome.conflicts)}"
    )
    log_scrape_event("split_ambiguity", {
        "url": record.url,
        "field": field_name,
        "strategy": outcome.strategy,
        "conflicts": outcome.conflicts,
        "items": len(outcome.items),
    }, level=logging.WARNING)


def normalize(
    raw: RawFields,
    category: str = "",
    collections: Optional[Iterable[str]] = None,
) -> ProductRecord:
    """Build a canonical record from raw fields.

    Args:
        raw: Extractor output for one detail page
        category: Partition hint; the reconciler decides the final partition
        collections: Collection tags to attach

    Returns:
        ProductRecord with typed values and a business key. The internal id
        is left empty; it is assigned on insert.

    Raises:
        MissingNameError: If no name can be recovered, not even from the URL
    """
    name = clean_text(raw.name) or name_from_slug(raw.url)
    if not name:
        raise MissingNameError(raw.url)

    record = ProductRecord(name=name, url=raw.url, category=category)

    for attr in _PARAGRAPH_FIELDS:
        setattr(record, attr, normalize_paragraph(getattr(raw, attr)))
    if record.description is None:
        record.description = ""

    for attr in _SHORT_TEXT_FIELDS:
        value = getattr(raw, attr)
        if isinstance(value, list):
            value = " ".join(value)
        setattr(record, attr, clean_text(value))

    for attr in _LIST_FIELDS:
        items, outcome = normalize_list(getattr(raw, attr))
        setattr(record, attr, items)
        if outcome is not None and outcome.ambiguous:
            _record_ambiguity(record, attr, outcome)

    record.product_code = normalize_product_code(raw.product_code)
    record.retail_price = parse_price(raw.retail_price)
    record.member_price = parse_price(raw.member_price)
    record.pv_points = parse_points(raw.pv_points)

    if raw.image_url:
        try:
            record.image_url = validate_image_url(raw.image_url) or None
        except URLValidationError as e:
            logger.debug(f"Dropping image URL for {raw.url}: {e}")

    record.business_key = derive_business_key(record.product_code, record.url) or ""

    for tag in collections or ():
        if tag and tag not in record.collections:
            record.collections.append(tag)

    return record
