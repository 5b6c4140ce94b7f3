"""Text cleanup, delimiter splitting and number parsing utilities."""

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

__all__ = [
    "ENUMERATION_COMMA",
    "FULLWIDTH_COMMA",
    "MIN_COMMA_SEGMENT_LENGTH",
    "LONG_TEXT_THRESHOLD",
    "SplitOutcome",
    "clean_text",
    "is_empty",
    "split_list_text",
    "parse_price",
    "parse_points",
]

# The enumeration comma is the explicit list marker in zh-TW copy
ENUMERATION_COMMA = "、"
FULLWIDTH_COMMA = "，"
PIPE_RE = re.compile(r"[|｜]")
SPACE_RUN_RE = re.compile(r"[ \t　]{2,}")
SENTENCE_RE = re.compile(r"[^。！？!?]+[。！？!?]?")
SENTENCE_END_RE = re.compile(r"[。！？!?]")
WHITESPACE_RE = re.compile(r"\s+")
BULLET_RE = re.compile(r"^(?:[•●・▪■◆\-*–]|\d{1,2}[.)、．](?!\d))\s*")

# A comma-split segment shorter than this is treated as part of one sentence
MIN_COMMA_SEGMENT_LENGTH = 4
# Only text longer than this is split into sentences
LONG_TEXT_THRESHOLD = 40


def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace and strip. Returns None for empty results."""
    if text is None:
        return None
    cleaned = WHITESPACE_RE.sub(" ", text).strip()
    return cleaned or None


def is_empty(value: object) -> bool:
    """True for None, blank strings and empty or all-blank lists."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return all(is_empty(v) for v in value)
    return False


def _clean_segments(parts: List[str]) -> List[str]:
    segments = []
    for part in parts:
        part = BULLET_RE.sub("", part.strip())
        part = part.rstrip("。;；").strip()
        part = WHITESPACE_RE.sub(" ", part)
        if part:
            segments.append(part)
    return segments


def _split_enumeration(text: str) -> Optional[List[str]]:
    if ENUMERATION_COMMA in text:
        return _clean_segments(text.split(ENUMERATION_COMMA))
    return None


def _split_pipe(text: str) -> Optional[List[str]]:
    # Pipe-joined lists are stored data; items are kept verbatim
    if "|" in text or "｜" in text:
        return [part for part in PIPE_RE.split(text) if part.strip()]
    return None


def _split_comma(text: str) -> Optional[List[str]]:
    if FULLWIDTH_COMMA not in text:
        return None
    parts = [p.strip() for p in text.split(FULLWIDTH_COMMA)]
    if all(len(p) > MIN_COMMA_SEGMENT_LENGTH for p in parts):
        return _clean_segments(parts)
    return None


def _split_space_runs(text: str) -> Optional[List[str]]:
    if SPACE_RUN_RE.search(text.strip()):
        return _clean_segments(SPACE_RUN_RE.split(text))
    return None


def _split_sentences(text: str) -> Optional[List[str]]:
    if len(text) > LONG_TEXT_THRESHOLD and SENTENCE_END_RE.search(text):
        return _clean_segments(SENTENCE_RE.findall(text))
    return None


# Priority order: first strategy that applies wins
_SPLITTERS: List[Tuple[str, Callable[[str], Optional[List[str]]]]] = [
    ("enumeration_comma", _split_enumeration),
    ("pipe", _split_pipe),
    ("fullwidth_comma", _split_comma),
    ("space_runs", _split_space_runs),
    ("sentences", _split_sentences),
]


@dataclass
class SplitOutcome:
    """Result of splitting one raw string into list items."""

    items: List[str]
    strategy: str
    # Other applicable strategies whose item count differs from the winner's
    conflicts: List[str] = field(default_factory=list)

    @property
    def ambiguous(self) -> bool:
        return bool(self.conflicts)


def split_list_text(text: Optional[str]) -> SplitOutcome:
    """Split a delimiter-ambiguous string into list items.

    Strategies are tried in priority order (enumeration comma, pipe,
    full-width comma with long segments, runs of spaces, sentences) and the
    first that applies wins. The remaining applicable strategies are still
    evaluated so that materially different readings are reported as
    conflicts instead of being silently dropped.
    """
    if text is None or not text.strip():
        return SplitOutcome(items=[], strategy="empty")

    text = text.replace("\r", "").replace("\n", "  ")

    winner: Optional[SplitOutcome] = None
    conflicts: List[str] = []
    for name, splitter in _SPLITTERS:
        items = splitter(text)
        if items is None:
            continue
        if winner is None:
            winner = SplitOutcome(items=items, strategy=name)
        elif len(items) != len(winner.items):
            conflicts.append(name)

    if winner is None:
        single = _clean_segments([text])
        return SplitOutcome(items=single, strategy="single")

    winner.conflicts = conflicts
    return winner


PRICE_NOISE_RE = re.compile(r"[,，\s]|NT\$|NTD|TWD|\$|元")
NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def parse_price(text: Optional[str]) -> Optional[int]:
    """Parse a price string such as 'NT$1,460' into an integer.

    Returns None when no number is present so that an unknown price is
    distinguishable from a confirmed zero.
    """
    if text is None:
        return None
    stripped = PRICE_NOISE_RE.sub("", str(text))
    match = NUMBER_RE.search(stripped)
    if not match:
        return None
    try:
        return int(float(match.group(0)))
    except ValueError:
        return None


def parse_points(text: Optional[str]) -> Optional[float]:
    """Parse a point value (PV) which may carry decimals."""
    if text is None:
        return None
    match = NUMBER_RE.search(str(text).replace(",", ""))
    if not match:
        return None
    return float(match.group(0))
