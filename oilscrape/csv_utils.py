"""CSV export of the aggregate product view."""

import csv
from pathlib import Path
from typing import Dict, Iterable, List, Union

from oilscrape.logging_config import get_logger
from oilscrape.models import ProductRecord

__all__ = ["LIST_SEPARATOR", "CSV_COLUMNS", "product_to_row", "export_products_to_csv"]

logger = get_logger("csv_utils")

LIST_SEPARATOR = "|"

CSV_COLUMNS = [
    "business_key",
    "id",
    "category",
    "name",
    "english_name",
    "scientific_name",
    "product_code",
    "retail_price",
    "member_price",
    "pv_points",
    "volume",
    "description",
    "product_introduction",
    "application_guide",
    "aroma_description",
    "extraction_method",
    "plant_part",
    "main_benefits",
    "main_ingredients",
    "usage_instructions",
    "cautions",
    "collections",
    "url",
    "image_url",
]


def product_to_row(product: ProductRecord) -> Dict[str, str]:
    """Flatten a record into a CSV row. List fields are joined with '|'."""
    row: Dict[str, str] = {}
    for column in CSV_COLUMNS:
        value = getattr(product, column)
        if value is None:
            row[column] = ""
        elif isinstance(value, list):
            row[column] = LIST_SEPARATOR.join(value)
        elif column == "pv_points" and float(value).is_integer():
            row[column] = str(int(value))
        else:
            row[column] = str(value)
    return row


def export_products_to_csv(products: Iterable[ProductRecord], path: Union[str, Path]) -> int:
    """Write records to a CSV file (UTF-8 with BOM so spreadsheet apps detect it).

    Returns:
        Number of rows written
    """
    rows: List[Dict[str, str]] = [product_to_row(p) for p in products]
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", newline="", encoding="utf-8-sig") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)

    logger.info(f"Exported {len(rows)} products to {path}")
    return len(rows)

