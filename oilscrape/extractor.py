"""Field extraction from rendered product detail pages.

Detail pages place section content inconsistently: a heading such as
"主要功效" may be followed by a paragraph, a list, a generic container or a
bare text node, and the same heading sits under different parents in the
single oil, blend and collection templates. Every field is therefore pulled
out by an ordered list of named strategies. Each strategy is a pure
function of the parsed document returning a value or None; the first
non-empty value wins.

Output is raw (strings and string lists). Typing and list splitting happen
in the normalizer.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup
from bs4.element import Comment, NavigableString, Tag

from oilscrape.config import EXACT_ONLY_LABELS, LEFT_COLUMN_CLASSES, SECTION_LABELS
from oilscrape.keys import name_from_slug
from oilscrape.logging_config import get_logger
from oilscrape.models import RawFields
from oilscrape.text_utils import clean_text, is_empty

__all__ = [
    "DetailDocument",
    "SectionContent",
    "FIELD_STRATEGIES",
    "find_section_label",
    "extract_section",
    "extract_description",
    "run_strategies",
    "extract_detail",
]

logger = get_logger("extractor")

RawValue = Union[str, List[str]]

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
# Inline elements some templates use as section titles
PSEUDO_HEADING_TAGS = ("strong", "b", "dt")
LIST_TAGS = ("ul", "ol")
CONTAINER_TAGS = ("div", "section", "article", "span", "dd", "td")
DECORATIVE_TAGS = ("hr", "br", "img", "picture", "svg", "script", "style", "noscript", "button", "figure", "iframe")
INLINE_TAGS = ("span", "strong", "b", "em", "i", "a", "small", "font", "u", "sup", "sub")

# A heading longer than this is prose, not a section title
MAX_LABEL_LENGTH = 20
# Sibling elements examined per column before giving up
LEFT_COLUMN_MAX_STEPS = 2
RIGHT_COLUMN_MAX_STEPS = 8

_ALL_LABELS = sorted({label for labels in SECTION_LABELS.values() for label in labels}, key=len, reverse=True)


def _label_text(tag: Tag) -> str:
    return tag.get_text(" ", strip=True).rstrip(":：").strip()


class DetailDocument:
    """Parsed detail page plus lazily computed views used by strategies."""

    def __init__(self, html: str, url: str = ""):
        self.url = url
        self.soup = BeautifulSoup(html or "", "html.parser")
        self._text: Optional[str] = None

    @property
    def text(self) -> str:
        """Flattened visible text of the page body."""
        if self._text is None:
            root = self.soup.body or self.soup
            for hidden in root.find_all(["script", "style", "noscript"]):
                hidden.decompose()
            self._text = re.sub(r"\s+", " ", root.get_text(" ", strip=True))
        return self._text


@dataclass
class SectionContent:
    """Content found under a section label."""

    items: List[str] = field(default_factory=list)
    text: str = ""

    @property
    def is_list(self) -> bool:
        return bool(self.items)

    @property
    def value(self) -> Optional[RawValue]:
        if self.items:
            return self.items
        return self.text or None

    @property
    def empty(self) -> bool:
        return not self.items and not self.text


# =============================================================================
# Section walking
# =============================================================================

def _is_label_like(tag: Tag) -> bool:
    if tag.name in HEADING_TAGS:
        return True
    if tag.name in PSEUDO_HEADING_TAGS:
        text = _label_text(tag)
        return 0 < len(text) <= MAX_LABEL_LENGTH and any(text.startswith(label) for label in _ALL_LABELS)
    return False


def find_section_label(soup: BeautifulSoup, labels: Sequence[str]) -> Optional[Tag]:
    """Locate the heading for a section.

    Exact matches on any heading win over substring matches; within each
    pass the vocabulary order decides. Labels in ``EXACT_ONLY_LABELS``
    never match by substring. Pseudo headings (bold text, dt) are
    only considered when no real heading matches.
    """
    for tag_names in (HEADING_TAGS, PSEUDO_HEADING_TAGS):
        candidates = [
            (tag, _label_text(tag))
            for tag in soup.find_all(list(tag_names))
        ]
        candidates = [(tag, text) for tag, text in candidates if 0 < len(text) <= MAX_LABEL_LENGTH]

        for label in labels:
            for tag, text in candidates:
                if text == label:
                    return tag
        for label in labels:
            if label in EXACT_ONLY_LABELS:
                continue
            for tag, text in candidates:
                if label in text:
                    return tag
    return None


def _in_left_column(tag: Tag) -> bool:
    for parent in tag.parents:
        classes = parent.get("class") or []
        if any(cls in LEFT_COLUMN_CLASSES for cls in classes):
            return True
    return False


def _section_anchor(label: Tag) -> Tag:
    """Climb out of wrappers that hold nothing but the label itself."""
    anchor = label
    label_text = _label_text(label)
    while anchor.parent is not None and anchor.parent.name not in ("body", "[document]", "html"):
        parent = anchor.parent
        if _label_text(parent) != label_text:
            break
        anchor = parent
    return anchor


def _is_stop(tag: Tag) -> bool:
    if _is_label_like(tag):
        return True
    # Wrapper around the next heading
    first = tag.find(list(HEADING_TAGS))
    return first is not None and _label_text(first) == _label_text(tag)


def _walk_to_content(anchor: Tag, left_column: bool) -> Optional[Tag]:
    """Return the first paragraph, list or non-empty container after the anchor.

    The left column holds values right next to their label, so only the
    immediately adjacent elements are considered there. The right column
    may put decorative elements in between, which are skipped.
    """
    max_steps = LEFT_COLUMN_MAX_STEPS if left_column else RIGHT_COLUMN_MAX_STEPS
    steps = 0
    for sibling in anchor.next_siblings:
        if isinstance(sibling, Comment):
            continue
        if isinstance(sibling, NavigableString):
            # Loose text under the label means an unstructured section
            if str(sibling).strip():
                return None
            continue
        if not isinstance(sibling, Tag):
            continue
        if _is_stop(sibling):
            return None
        if sibling.name in DECORATIVE_TAGS:
            continue
        steps += 1
        if steps > max_steps:
            return None
        if sibling.name in LIST_TAGS or sibling.name == "p" or sibling.name in CONTAINER_TAGS:
            if sibling.get_text(strip=True):
                return sibling
            continue
        if left_column:
            return None
    return None


def _content_of(tag: Tag) -> SectionContent:
    if tag.name in LIST_TAGS:
        items = [li.get_text(" ", strip=True) for li in tag.find_all("li")]
        return SectionContent(items=[i for i in items if i])

    lists = tag.find_all(list(LIST_TAGS))
    if lists:
        items = [li.get_text(" ", strip=True) for lst in lists for li in lst.find_all("li")]
        items = [i for i in items if i]
        outside = tag.get_text("", strip=True)
        for lst in lists:
            outside = outside.replace(lst.get_text("", strip=True), "")
        if items and not outside.strip():
            return SectionContent(items=items)

    for br in tag.find_all("br"):
        br.replace_with("\n")
    return SectionContent(text=tag.get_text("\n", strip=True))


def _text_node_walk(anchor: Tag) -> SectionContent:
    """Collect loose text and inline elements following the anchor.

    Stops at the next label or at the first block element with text.
    """
    parts: List[str] = []
    for sibling in anchor.next_siblings:
        if isinstance(sibling, Comment):
            continue
        if isinstance(sibling, NavigableString):
            text = str(sibling).strip()
            if text:
                parts.append(text)
            continue
        if not isinstance(sibling, Tag):
            continue
        if _is_stop(sibling):
            break
        if sibling.name in DECORATIVE_TAGS:
            continue
        text = sibling.get_text(" ", strip=True)
        if sibling.name not in INLINE_TAGS:
            if text:
                break
            continue
        if text:
            parts.append(text)
    return SectionContent(text="\n".join(parts))


def extract_section(soup: BeautifulSoup, labels: Sequence[str]) -> Optional[SectionContent]:
    """Find a labeled section and return its content, or None."""
    label = find_section_label(soup, labels)
    if label is None:
        return None
    anchor = _section_anchor(label)
    content_tag = _walk_to_content(anchor, _in_left_column(label))
    if content_tag is not None:
        content = _content_of(content_tag)
        if not content.empty:
            return content
    content = _text_node_walk(anchor)
    return None if content.empty else content


def extract_description(soup: BeautifulSoup) -> Optional[str]:
    """Description from the ``itemprop="description"`` element.

    Single oil pages fill the element itself. Collection pages leave it
    empty and put the text in its next sibling paragraph or container.
    """
    element = soup.select_one('[itemprop="description"]')
    if element is None:
        return None
    if element.name == "meta":
        return (element.get("content") or "").strip() or None
    text = element.get_text("\n", strip=True)
    if text:
        return text
    sibling = element.find_next_sibling()
    if sibling is not None and sibling.name in ("p", "div"):
        return sibling.get_text("\n", strip=True) or None
    return None


# =============================================================================
# Strategy factories
# =============================================================================

Strategy = Tuple[str, Callable[[DetailDocument], Optional[RawValue]]]


def section(field_name: str) -> Strategy:
    labels = SECTION_LABELS[field_name]

    def strategy(doc: DetailDocument) -> Optional[RawValue]:
        content = extract_section(doc.soup, labels)
        return content.value if content else None

    return ("section", strategy)


def css_text(name: str, selector: str) -> Strategy:
    def strategy(doc: DetailDocument) -> Optional[RawValue]:
        for el in doc.soup.select(selector):
            text = el.get_text(" ", strip=True)
            if text:
                return text
        return None

    return (name, strategy)


def css_list(name: str, selector: str) -> Strategy:
    def strategy(doc: DetailDocument) -> Optional[RawValue]:
        items = [el.get_text(" ", strip=True) for el in doc.soup.select(selector)]
        items = [i for i in items if i]
        return items or None

    return (name, strategy)


def meta_content(name: str, *keys: str) -> Strategy:
    def strategy(doc: DetailDocument) -> Optional[RawValue]:
        for key in keys:
            tag = doc.soup.find("meta", attrs={"property": key}) or doc.soup.find("meta", attrs={"name": key})
            if tag and tag.get("content", "").strip():
                return tag["content"].strip()
        return None

    return (name, strategy)


def text_regex(name: str, pattern: str, group: int = 0) -> Strategy:
    compiled = re.compile(pattern, re.IGNORECASE)

    def strategy(doc: DetailDocument) -> Optional[RawValue]:
        match = compiled.search(doc.text)
        if not match:
            return None
        return match.group(group).strip() or None

    return (name, strategy)


# =============================================================================
# Field-specific strategies
# =============================================================================

CJK_RE = re.compile(r"[㐀-鿿]")
LATIN_TAIL_RE = re.compile(r"([A-Za-z][A-Za-z'&®™ .\-]+)$")
BINOMIAL_RE = re.compile(r"^[A-Z][a-z]+(?: [a-z]+){1,2}(?: [A-Z][a-z]*\.?)?$")
SITE_SUFFIX_RE = re.compile(r"\s*[|｜\-–]\s*d[oō]TERRA.*$", re.IGNORECASE)


def _title_tag(doc: DetailDocument) -> Optional[RawValue]:
    title = doc.soup.title.get_text(strip=True) if doc.soup.title else ""
    title = SITE_SUFFIX_RE.sub("", title).strip()
    return title or None


def _og_title(doc: DetailDocument) -> Optional[RawValue]:
    tag = doc.soup.find("meta", attrs={"property": "og:title"})
    if tag is None or not tag.get("content"):
        return None
    return SITE_SUFFIX_RE.sub("", tag["content"]).strip() or None


def _latin_part_of_title(doc: DetailDocument) -> Optional[RawValue]:
    h1 = doc.soup.find("h1")
    if h1 is None:
        return None
    text = h1.get_text(" ", strip=True)
    if not CJK_RE.search(text):
        return None
    match = LATIN_TAIL_RE.search(text)
    if match and len(match.group(1).strip()) > 2:
        return match.group(1).strip()
    return None


def _italic_binomial(doc: DetailDocument) -> Optional[RawValue]:
    for el in doc.soup.find_all(["i", "em"]):
        text = el.get_text(" ", strip=True)
        if BINOMIAL_RE.match(text):
            return text
    return None


def _longest_paragraph(doc: DetailDocument) -> Optional[RawValue]:
    best = ""
    for p in doc.soup.find_all("p"):
        text = p.get_text(" ", strip=True)
        if len(text) > 100 and len(text) > len(best):
            best = text
    return best or None


def _itemprop_description(doc: DetailDocument) -> Optional[RawValue]:
    return extract_description(doc.soup)


def _gallery_image(doc: DetailDocument) -> Optional[RawValue]:
    selectors = [
        ".product-gallery img",
        ".main-image img",
        "[class*='hero'] img",
        ".product-image img",
    ]
    for selector in selectors:
        img = doc.soup.select_one(selector)
        if img is None:
            continue
        src = img.get("src") or img.get("data-src")
        if src and "placeholder" not in src:
            return src
    return None


def _media_image(doc: DetailDocument) -> Optional[RawValue]:
    for img in doc.soup.find_all("img"):
        src = img.get("src") or img.get("data-src") or ""
        lowered = src.lower()
        if "/medias/" in lowered and not any(x in lowered for x in ("logo", "icon", "banner", "placeholder")):
            return src
    return None


PRICE_AMOUNT = r"(?:NT\s*\$|\$)?\s*\d[\d,]*(?:\.\d+)?"
NT_AMOUNT_RE = re.compile(r"NT\s*\$\s*(\d[\d,]*)")


def _price_by_rank(rank: int) -> Callable[[DetailDocument], Optional[RawValue]]:
    """Unlabeled NT$ amounts: the highest is retail, the next member price."""

    def strategy(doc: DetailDocument) -> Optional[RawValue]:
        amounts = []
        for match in NT_AMOUNT_RE.finditer(doc.text):
            value = int(match.group(1).replace(",", ""))
            if value > 100:
                amounts.append(value)
        ranked = sorted(set(amounts), reverse=True)
        if len(ranked) > rank:
            return f"NT${ranked[rank]:,}"
        return None

    return strategy


FIELD_STRATEGIES: Dict[str, List[Strategy]] = {
    "name": [
        css_text("product_title", ".product-detail-header h1, [class*='product-title'] h1"),
        css_text("h1", "h1"),
        ("og_title", _og_title),
        ("title_tag", _title_tag),
    ],
    "english_name": [
        css_text("english_class", ".english-name, .product-english-name, [class*='english']"),
        css_text("lang_en", "h1 [lang='en'], .product-detail-header [lang='en']"),
        ("title_latin_part", _latin_part_of_title),
    ],
    "scientific_name": [
        section("scientific_name"),
        css_text("scientific_class", ".scientific, .scientific-name, [class*='latin']"),
        ("italic_binomial", _italic_binomial),
    ],
    "description": [
        ("itemprop_description", _itemprop_description),
        section("description"),
        css_text("description_class", ".product-description p, .product-description"),
        meta_content("meta_description", "og:description", "description"),
        ("longest_paragraph", _longest_paragraph),
    ],
    "product_introduction": [
        section("product_introduction"),
        css_text("introduction_class", ".product-introduction"),
    ],
    "application_guide": [
        section("application_guide"),
    ],
    "main_benefits": [
        section("main_benefits"),
        css_list("benefits_class", ".benefits-list li, .benefits li, [class*='benefit'] li"),
    ],
    "main_ingredients": [
        section("main_ingredients"),
        css_list("ingredients_class", ".main-ingredients li, .ingredients li, [class*='ingredient'] li"),
        css_text("ingredients_text", ".main-ingredients"),
    ],
    "usage_instructions": [
        section("usage_instructions"),
        css_list("usage_class", ".usage-instructions li, [class*='usage'] li"),
        css_text("usage_text", ".usage-instructions, [class*='usage']"),
    ],
    "cautions": [
        section("cautions"),
        css_text("cautions_class", ".cautions-content, [class*='caution']"),
    ],
    "aroma_description": [
        section("aroma_description"),
        css_text("aroma_class", ".aroma-description"),
        text_regex("aroma_label", r"(?:香味|香氣|氣味)\s*[:：]\s*([^。\s]{2,30})", group=1),
    ],
    "extraction_method": [
        section("extraction_method"),
        css_text("extraction_class", ".extraction-method"),
        text_regex("known_method", r"蒸氣蒸餾法|蒸汽蒸餾法|冷壓法|溶劑萃取|CO2萃取"),
    ],
    "plant_part": [
        section("plant_part"),
        css_text("plant_part_class", ".plant-part"),
    ],
    "image_url": [
        meta_content("og_image", "og:image"),
        ("gallery_image", _gallery_image),
        ("media_image", _media_image),
    ],
    # Commercial fields are not wrapped in labeled sections; they come from
    # the flattened page text.
    "product_code": [
        text_regex(
            "labeled_code",
            r"(?:產品編號|產品代碼|品號|商品編號|Item\s*(?:No\.?|Number|#))\s*[:：#]?\s*(\d{4}[\s-]?\d{2,6}|\d{4,10})",
            group=1,
        ),
        css_text("code_class", ".product-code, [itemprop='sku']"),
        text_regex("eight_digits", r"(?<!\d)\d{8}(?!\d)"),
    ],
    "retail_price": [
        text_regex("labeled_retail", rf"(?:建議售價|零售價|Retail(?:\s*Price)?)\s*[:：]?\s*{PRICE_AMOUNT}"),
        ("highest_nt_amount", _price_by_rank(0)),
    ],
    "member_price": [
        text_regex("labeled_member", rf"(?:會員價|批發價|Wholesale(?:\s*Price)?|Member(?:\s*Price)?)\s*[:：]?\s*{PRICE_AMOUNT}"),
        ("second_nt_amount", _price_by_rank(1)),
    ],
    "pv_points": [
        text_regex("labeled_pv", r"(?:PV|點數)\s*[:：]\s*\d+(?:\.\d+)?"),
        text_regex("trailing_pv", r"\d+(?:\.\d+)?\s*PV\b"),
    ],
    "volume": [
        text_regex(
            "labeled_volume",
            r"(?:規格|容量|內容量|Size)\s*[:：]?\s*(\d+(?:\.\d+)?\s*(?:ml|mL|ML|毫升|g|公克|粒|顆|錠))",
            group=1,
        ),
        css_text("size_class", ".product-size"),
        text_regex("first_volume", r"\d+(?:\.\d+)?\s*(?:ml|mL|毫升)"),
    ],
}


def run_strategies(doc: DetailDocument, strategies: Sequence[Strategy]) -> Tuple[Optional[RawValue], Optional[str]]:
    """Evaluate strategies in order; return the first non-empty value and its strategy name."""
    for name, strategy in strategies:
        try:
            value = strategy(doc)
        except (AttributeError, TypeError, ValueError, IndexError, KeyError) as e:
            logger.debug(f"Strategy {name} failed on {doc.url}: {e}")
            continue
        if not is_empty(value):
            return value, name
    return None, None


def extract_detail(html: str, url: str) -> RawFields:
    """Extract raw fields from a detail page.

    Never raises for a missing field: absent fields stay None. When no
    name is found on the page, a name derived from the URL slug is used.
    """
    doc = DetailDocument(html, url)
    raw = RawFields(url=url)

    for field_name, strategies in FIELD_STRATEGIES.items():
        value, source = run_strategies(doc, strategies)
        if value is None:
            continue
        if isinstance(value, str) and field_name not in (
            "description", "product_introduction", "main_benefits", "main_ingredients",
            "usage_instructions", "cautions", "application_guide",
        ):
            value = clean_text(value)
        setattr(raw, field_name, value)
        raw.sources[field_name] = source

    if is_empty(raw.name):
        fallback = name_from_slug(url)
        if fallback:
            raw.name = fallback
            raw.sources["name"] = "url_slug"

    found = sorted(raw.sources)
    logger.debug(f"Extracted {len(found)} fields from {url}: {', '.join(found)}")
    return raw
