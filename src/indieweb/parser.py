"""
Microformats2 extraction for webmention sources.

Turns a fetched source document into an ExtractedInteraction: the
interaction type, the author card, the content, the published date and the
source's own URL.

Two strategies sit behind the same MicroformatExtractor.parse() interface:

    mf2:      structured parsing with mf2py (default)
    fallback: permissive regular expressions over the raw HTML

The fallback strategy is lossy. It looks for class names anywhere
in the document and does not understand nesting, so on pages with several
h-cards or h-entries it may pick values from the wrong one. Use it only where
mf2py is unsuitable.

Type detection checks properties in a fixed priority order, so an entry that
is both a like and a reply is classified as a like:

    like-of > repost-of > in-reply-to > bookmark-of > mention

References:
    - Microformats2: https://microformats.org/wiki/microformats2
    - h-entry: https://microformats.org/wiki/h-entry
"""

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import mf2py

from interactions.models import Author

logger = logging.getLogger(__name__)

STRATEGY_MF2 = "mf2"
STRATEGY_FALLBACK = "fallback"

# Checked in order; first property present on the entry wins
TYPE_PRIORITY = (
    ("like-of", "like"),
    ("repost-of", "repost"),
    ("in-reply-to", "reply"),
    ("bookmark-of", "bookmark"),
)


@dataclass
class ExtractedInteraction:
    """Normalized interaction data extracted from a source document."""
    type: str = "mention"
    author: Author = field(default_factory=Author)
    content: str = ""
    published: Optional[str] = None
    original_url: Optional[str] = None


class MicroformatExtractor:
    """Extract webmention data from HTML.

    Example:
        >>> extractor = MicroformatExtractor()
        >>> data = extractor.parse(html_body, "https://fed.brid.gy/r/abc")
        >>> data.type
        'like'
    """

    def __init__(self, strategy: str = STRATEGY_MF2):
        if strategy not in (STRATEGY_MF2, STRATEGY_FALLBACK):
            raise ValueError(f"Unknown microformats strategy: {strategy}")
        self.strategy = strategy

    def parse(self, html_body: str, source_url: str) -> ExtractedInteraction:
        """Parse ``html_body`` fetched from ``source_url``.

        Never raises; a document that cannot be parsed yields a plain mention
        with empty fields.
        """
        try:
            if self.strategy == STRATEGY_FALLBACK:
                return parse_fallback(html_body)
            return parse_mf2(html_body, source_url)
        except Exception as e:
            logger.warning(f"Microformats extraction failed for {source_url}: {e}")
            return ExtractedInteraction()


# =========================================================================
# Structured strategy (mf2py)
# =========================================================================

def parse_mf2(html_body: str, source_url: str) -> ExtractedInteraction:
    parsed = mf2py.parse(doc=html_body, url=source_url)
    items = parsed.get("items", [])

    hentry = _find_first_hentry(items)
    if not hentry:
        return ExtractedInteraction()

    properties = hentry.get("properties", {})
    return ExtractedInteraction(
        type=detect_interaction_type(properties),
        author=_extract_author(properties, items),
        content=_extract_content(properties),
        published=_first_str(properties.get("published", [])) or None,
        original_url=_first_str(properties.get("url", [])) or None,
    )


def _find_first_hentry(items: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Recursively find the first h-entry in parsed microformats items."""
    for item in items:
        if not isinstance(item, dict):
            continue
        if "h-entry" in item.get("type", []):
            return item
        found = _find_first_hentry(item.get("children", []))
        if found:
            return found
    return None


def detect_interaction_type(properties: Dict[str, Any]) -> str:
    """Determine the interaction type from h-entry properties."""
    for prop, mention_type in TYPE_PRIORITY:
        if properties.get(prop):
            return mention_type
    return "mention"


def _extract_author(properties: Dict[str, Any], items: List[Dict[str, Any]]) -> Author:
    authors = properties.get("author", [])
    if authors:
        author = authors[0]
        if isinstance(author, dict) and isinstance(author.get("properties"), dict):
            return _card_to_author(author["properties"])
        if isinstance(author, str):
            return Author(name=author)

    # Fall back to the first top-level h-card of the document
    for item in items:
        if isinstance(item, dict) and "h-card" in item.get("type", []):
            return _card_to_author(item.get("properties", {}))

    return Author()


def _card_to_author(props: Dict[str, Any]) -> Author:
    return Author(
        name=_first_str(props.get("name", [])),
        url=_first_str(props.get("url", [])),
        photo=_first_str(props.get("photo", [])),
    )


def _extract_content(properties: Dict[str, Any]) -> str:
    contents = properties.get("content", [])
    if contents:
        content = contents[0]
        if isinstance(content, dict):
            return str(content.get("html") or content.get("value") or "")
        return str(content)

    for prop in ("summary", "name"):
        value = _first_str(properties.get(prop, []))
        if value:
            return value

    return ""


def _first_str(values: Any) -> str:
    """Return the first string value from an mf2 property list, or "".

    mf2py represents some values as dicts (``{"value": ..., "alt": ...}`` for
    photos, embedded h-cards for urls), in which case their ``value`` is used.
    """
    if not isinstance(values, list):
        return ""
    for v in values:
        if isinstance(v, str):
            return v
        if isinstance(v, dict) and isinstance(v.get("value"), str):
            return v["value"]
    return ""


# =========================================================================
# Permissive fallback strategy (regular expressions)
# =========================================================================

def _class_pattern(name: str) -> str:
    return r'class=["\'][^"\']*\b' + re.escape(name) + r'\b[^"\']*["\']'


_FALLBACK_TYPES = [
    (re.compile(_class_pattern("u-like-of"), re.IGNORECASE), "like"),
    (re.compile(_class_pattern("u-repost-of"), re.IGNORECASE), "repost"),
    (re.compile(_class_pattern("u-in-reply-to"), re.IGNORECASE), "reply"),
    (re.compile(_class_pattern("u-bookmark-of"), re.IGNORECASE), "bookmark"),
]
_AUTHOR_NAME = re.compile(_class_pattern("p-name") + r'[^>]*>([^<]+)<', re.IGNORECASE)
_U_URL = re.compile(r'<a[^>]*' + _class_pattern("u-url") + r'[^>]*href=["\']([^"\']+)["\']', re.IGNORECASE)
_U_PHOTO = re.compile(r'<img[^>]*' + _class_pattern("u-photo") + r'[^>]*src=["\']([^"\']+)["\']', re.IGNORECASE)
_E_CONTENT = re.compile(
    r'<[^>]*' + _class_pattern("e-content") + r'[^>]*>(.*?)</(?:div|p|article|section)>',
    re.IGNORECASE | re.DOTALL,
)
_P_CONTENT = re.compile(
    r'<[^>]*' + _class_pattern("p-content") + r'[^>]*>(.*?)</(?:div|p|article|section)>',
    re.IGNORECASE | re.DOTALL,
)
_PUBLISHED = re.compile(
    r'<time[^>]*' + _class_pattern("dt-published") + r'[^>]*datetime=["\']([^"\']+)["\']',
    re.IGNORECASE,
)
_CONTENT_TAGS = re.compile(r'</?(?!(?:p|br|a|em|strong)\b)[a-zA-Z][^>]*>', re.IGNORECASE)


def parse_fallback(html_body: str) -> ExtractedInteraction:
    """Best-effort extraction with regular expressions.

    Lossy: takes the first matching class name anywhere in the document.
    """
    result = ExtractedInteraction()

    for pattern, mention_type in _FALLBACK_TYPES:
        if pattern.search(html_body):
            result.type = mention_type
            break

    match = _AUTHOR_NAME.search(html_body)
    if match:
        result.author.name = html.unescape(match.group(1)).strip()

    match = _U_URL.search(html_body)
    if match:
        result.author.url = match.group(1)
        result.original_url = match.group(1)

    match = _U_PHOTO.search(html_body)
    if match:
        result.author.photo = match.group(1)

    match = _E_CONTENT.search(html_body) or _P_CONTENT.search(html_body)
    if match:
        result.content = _CONTENT_TAGS.sub("", match.group(1)).strip()

    match = _PUBLISHED.search(html_body)
    if match:
        result.published = match.group(1)

    return result
