"""Data models for product records."""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Union

__all__ = [
    "CATEGORIES",
    "LIST_FIELDS",
    "SCALAR_FIELDS",
    "DetailLink",
    "RawFields",
    "ProductRecord",
]

CATEGORIES = (
    "single-oils",
    "proprietary-blends",
    "skincare",
    "wellness",
    "accessories",
    "onguard-collection",
)

# Attribute name -> JSON key. Order here is the serialized key order.
_JSON_KEYS: Dict[str, str] = {
    "id": "id",
    "business_key": "businessKey",
    "name": "name",
    "english_name": "englishName",
    "scientific_name": "scientificName",
    "description": "description",
    "product_introduction": "productIntroduction",
    "application_guide": "applicationGuide",
    "aroma_description": "aromaDescription",
    "extraction_method": "extractionMethod",
    "plant_part": "plantPart",
    "main_benefits": "mainBenefits",
    "main_ingredients": "mainIngredients",
    "usage_instructions": "usageInstructions",
    "cautions": "cautions",
    "product_code": "productCode",
    "retail_price": "retailPrice",
    "member_price": "memberPrice",
    "pv_points": "pvPoints",
    "volume": "volume",
    "category": "category",
    "collections": "collections",
    "url": "url",
    "image_url": "imageUrl",
}

LIST_FIELDS = ("main_benefits", "main_ingredients", "usage_instructions", "cautions")

SCALAR_FIELDS = (
    "english_name",
    "scientific_name",
    "description",
    "product_introduction",
    "application_guide",
    "aroma_description",
    "extraction_method",
    "plant_part",
    "product_code",
    "retail_price",
    "member_price",
    "pv_points",
    "volume",
    "image_url",
)


@dataclass
class DetailLink:
    """A candidate detail page found on a listing page."""

    name: str
    url: str


@dataclass
class RawFields:
    """Untyped extractor output for one detail page.

    Every field may be missing. List-bearing fields hold either the items
    found in a list element or a single delimiter-joined string.
    """

    url: str
    name: Optional[str] = None
    english_name: Optional[str] = None
    scientific_name: Optional[str] = None
    description: Optional[str] = None
    product_introduction: Optional[str] = None
    application_guide: Optional[str] = None
    aroma_description: Optional[str] = None
    extraction_method: Optional[str] = None
    plant_part: Optional[str] = None
    main_benefits: Union[str, List[str], None] = None
    main_ingredients: Union[str, List[str], None] = None
    usage_instructions: Union[str, List[str], None] = None
    cautions: Union[str, List[str], None] = None
    product_code: Optional[str] = None
    retail_price: Optional[str] = None
    member_price: Optional[str] = None
    pv_points: Optional[str] = None
    volume: Optional[str] = None
    image_url: Optional[str] = None

    # Strategy name that produced each field, for diagnostics
    sources: Dict[str, str] = field(default_factory=dict)


@dataclass
class ProductRecord:
    """Canonical product entity persisted in a category partition."""

    # Required fields
    name: str
    url: str
    category: str

    business_key: str = ""
    id: str = ""

    english_name: Optional[str] = None
    scientific_name: Optional[str] = None

    description: str = ""
    product_introduction: Optional[str] = None
    application_guide: Optional[str] = None
    aroma_description: Optional[str] = None
    extraction_method: Optional[str] = None
    plant_part: Optional[str] = None

    main_benefits: List[str] = field(default_factory=list)
    main_ingredients: List[str] = field(default_factory=list)
    usage_instructions: List[str] = field(default_factory=list)
    # Older partitions hold cautions as one string
    cautions: Union[List[str], str] = field(default_factory=list)

    product_code: Optional[str] = None
    retail_price: Optional[int] = None
    member_price: Optional[int] = None
    pv_points: Optional[float] = None
    volume: Optional[str] = None

    collections: List[str] = field(default_factory=list)
    image_url: Optional[str] = None

    # Keys present in the source file that this model does not know about
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    # Fields whose list splitting was ambiguous during normalization; never persisted
    split_warnings: List[str] = field(default_factory=list, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with stable key order, omitting absent optional fields."""
        data: Dict[str, Any] = {}
        for attr, key in _JSON_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if attr == "pv_points" and isinstance(value, float) and value.is_integer():
                value = int(value)
            data[key] = list(value) if isinstance(value, list) else value
        for key in sorted(self.extra):
            if key not in data:
                data[key] = self.extra[key]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductRecord":
        """Build a record from its JSON form, tolerating missing fields."""
        known = {f.name for f in fields(cls)}
        by_key = {key: attr for attr, key in _JSON_KEYS.items()}
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            attr = by_key.get(key)
            if attr is None or attr not in known:
                extra[key] = value
                continue
            kwargs[attr] = value

        # Legacy files name the source URL productUrl
        if "url" not in kwargs and "productUrl" in extra:
            kwargs["url"] = extra.pop("productUrl")

        kwargs.setdefault("name", "")
        kwargs.setdefault("url", "")
        kwargs.setdefault("category", "")
        if kwargs.get("description") is None:
            kwargs["description"] = ""
        for attr in ("main_benefits", "main_ingredients", "usage_instructions", "collections"):
            value = kwargs.get(attr)
            if value is None:
                kwargs[attr] = []
            elif isinstance(value, str):
                kwargs[attr] = [value] if value.strip() else []
        if kwargs.get("cautions") is None:
            kwargs["cautions"] = []
        return cls(extra=extra, **kwargs)
