"""Best-effort extraction of structured data from free-form model text.

Model output is unreliable: JSON arrives wrapped in prose, truncated, fenced in
markdown or replaced by a numbered list. Each extraction strategy here is a pure
function ``text -> value | None``; strategies are tried in a fixed order and
the first one that yields a usable value wins. Nothing in this module raises on
bad input.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

FENCE_PATTERN = re.compile(r"```[a-zA-Z]*")
ARRAY_LITERAL_PATTERN = re.compile(
    r"\[\s*(['\"].*?['\"](\s*,\s*['\"].*?['\"])*)\s*\]", re.DOTALL
)
QUOTED_PATTERN = re.compile(r"\"([^\"\n]+)\"|(?<!\w)'([^'\n]+)'(?!\w)")
LIST_MARKER_PATTERN = re.compile(r"^(?:[-*•+]+\s*|\d+[.)]\s*|\d+\s+-\s+)")
OBJECT_SPAN_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class ListShape:
    """Expect a list of exactly ``count`` strings."""

    count: int
    default: str = "trending"


@dataclass(frozen=True)
class ObjectShape:
    """Expect a single JSON object."""


@dataclass
class ExtractionResult:
    """Value produced by the normalizer and the strategy that produced it."""

    value: Any
    strategy: str

    @property
    def fell_back(self) -> bool:
        """True when no real parse succeeded and a default was substituted."""
        return self.strategy in ("default", "none")


def strip_markdown_code_blocks(text: str) -> str:
    """Strip markdown code fences from AI response text.

    Args:
        text: Raw text that may contain markdown code blocks

    Returns:
        Cleaned text with fence markers removed
    """
    return FENCE_PATTERN.sub("", text or "").strip()


# =============================================================================
# List strategies
# =============================================================================


def _clean_items(items: list) -> list[str]:
    cleaned = []
    for item in items:
        if isinstance(item, (str, int, float)) and not isinstance(item, bool):
            text = str(item).strip()
            if text:
                cleaned.append(text)
    return cleaned


def parse_json_list(text: str) -> Optional[list[str]]:
    """Parse the whole text as a JSON array (or an object wrapping one)."""
    try:
        data = json.loads(strip_markdown_code_blocks(text))
    except (json.JSONDecodeError, TypeError):
        return None

    if isinstance(data, dict):
        lists = [v for v in data.values() if isinstance(v, list)]
        if len(lists) != 1:
            return None
        data = lists[0]
    if not isinstance(data, list):
        return None
    return _clean_items(data)


def parse_array_literal(text: str) -> Optional[list[str]]:
    """Find a bracket-delimited array of quoted strings and parse it."""
    match = ARRAY_LITERAL_PATTERN.search(text or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return _clean_items(data) if isinstance(data, list) else None


def parse_quoted_strings(text: str) -> Optional[list[str]]:
    """Collect every quoted string literal in document order."""
    found = []
    for double, single in QUOTED_PATTERN.findall(text or ""):
        literal = (double or single).strip()
        if literal:
            found.append(literal)
    return found or None


def parse_lines(text: str) -> Optional[list[str]]:
    """Treat each non-noise line as an item, minus bullets and numbering."""
    items = []
    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("```"):
            continue
        if "json" in stripped.lower() or "[" in stripped or "]" in stripped:
            continue
        stripped = LIST_MARKER_PATTERN.sub("", stripped)
        stripped = stripped.strip().rstrip(",").strip().strip("\"'").strip()
        if stripped:
            items.append(stripped)
    return items or None


LIST_STRATEGIES: list[tuple[str, Callable[[str], Optional[list[str]]]]] = [
    ("json", parse_json_list),
    ("array_literal", parse_array_literal),
    ("quoted_strings", parse_quoted_strings),
    ("lines", parse_lines),
]


# =============================================================================
# Object strategies
# =============================================================================


def parse_json_object(text: str) -> Optional[dict]:
    """Parse the whole text as a JSON object."""
    try:
        data = json.loads(strip_markdown_code_blocks(text))
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def parse_object_span(text: str) -> Optional[dict]:
    """Parse the greedy first-brace-to-last-brace span."""
    match = OBJECT_SPAN_PATTERN.search(text or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


OBJECT_STRATEGIES: list[tuple[str, Callable[[str], Optional[dict]]]] = [
    ("json", parse_json_object),
    ("object_span", parse_object_span),
]


# =============================================================================
# Public API
# =============================================================================


def extract_structured(
    raw_text: str, expected_shape: Union[ListShape, ObjectShape]
) -> ExtractionResult:
    """Extract the expected shape from raw model text.

    For a ListShape, a strategy wins only if it yields at least ``count``
    items; the result is then cut to exactly ``count``. When every strategy
    comes up short the result is a single-item list holding the default.

    For an ObjectShape the value is a dict, or None when nothing parsed.

    Args:
        raw_text: Model output
        expected_shape: ListShape or ObjectShape

    Returns:
        ExtractionResult naming the winning strategy
    """
    text = raw_text or ""

    if isinstance(expected_shape, ListShape):
        count = max(1, expected_shape.count)
        for name, strategy in LIST_STRATEGIES:
            items = strategy(text)
            if items and len(items) >= count:
                logger.debug(f"List extraction succeeded with '{name}' strategy")
                return ExtractionResult(value=items[:count], strategy=name)
            if items:
                logger.debug(
                    f"'{name}' strategy found {len(items)} items, need {count}"
                )
        logger.warning(
            f"Could not extract {count} items from model output; "
            f"using default '{expected_shape.default}'"
        )
        return ExtractionResult(value=[expected_shape.default], strategy="default")

    for name, strategy in OBJECT_STRATEGIES:
        obj = strategy(text)
        if obj is not None:
            return ExtractionResult(value=obj, strategy=name)
    return ExtractionResult(value=None, strategy="none")


# =============================================================================
# Section extraction
# =============================================================================


def _heading_pattern(heading: str) -> str:
    # Accepts "## Heading", "1. Heading", "**Heading:**", "Heading:" at line start
    return (
        r"^[ \t]*(?:#{1,6}[ \t]*)?(?:\d+[.)][ \t]*)?(?:\*\*|__)?[ \t]*"
        + re.escape(heading)
        + r"[ \t]*(?:\*\*|__)?[ \t]*(?::|$)[ \t]*(?:\*\*|__)?"
    )


def extract_sections(text: str, headings: list[str]) -> tuple[dict[str, str], int]:
    """Split heading-delimited text into named sections.

    One case-insensitive regex per heading captures everything after it up to
    the next known heading or the end of the text. Headings that never appear
    map to empty strings. If no heading matches at all, the whole text is
    placed under the first heading.

    Args:
        text: Model output
        headings: Known heading labels, first one receives the fallback

    Returns:
        Tuple of (sections keyed by heading, number of headings matched)
    """
    text = text or ""
    sections = {heading: "" for heading in headings}
    if not headings:
        return sections, 0

    any_heading = "|".join(_heading_pattern(h) for h in headings)
    matched = 0
    for heading in headings:
        pattern = re.compile(
            _heading_pattern(heading) + r"(?P<body>.*?)(?=" + any_heading + r"|\Z)",
            re.IGNORECASE | re.DOTALL | re.MULTILINE,
        )
        match = pattern.search(text)
        if match:
            matched += 1
            sections[heading] = match.group("body").strip()

    if matched == 0:
        logger.warning("No known headings found in model output; using raw text")
        sections[headings[0]] = text.strip()

    return sections, matched


def split_list_items(section: str) -> list[str]:
    """Break a section body into items, one per bullet or line."""
    items = []
    for line in (section or "").splitlines():
        stripped = LIST_MARKER_PATTERN.sub("", line.strip()).strip()
        if stripped:
            items.append(stripped)
    return items
