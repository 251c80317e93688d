"""
Allow-list HTML sanitization for received webmention content.

Rules applied by ContentSanitizer.sanitize():
    1. <script> and <style> elements are removed together with their content,
       and HTML comments are dropped.
    2. Every tag outside ALLOWED_TAGS is stripped; its text is kept.
    3. Retained tags other than <a> and <img> are rebuilt without attributes.
       <a> and <img> are rebuilt from their allowed attributes only (rules 4
       and 5), so inline event handlers never survive.
    4. <img> keeps only src and alt, HTML-escaped.
    5. <a> keeps only an escaped href and always gets rel="nofollow noopener";
       an anchor without a usable href is replaced by its text.
    6. The result is truncated to max_content_length characters, with "..."
       appended when truncated.

With sanitization disabled only step 6 runs. That mode is unsafe and meant
for sources you fully trust.

Example:
    >>> ContentSanitizer().sanitize('<p onclick="x()">hi<script>bad()</script></p>')
    '<p>hi</p>'
"""

import html
import re
from typing import Optional

from config import SanitizerConfig

ALLOWED_TAGS = frozenset({
    "p", "br", "a", "em", "strong", "b", "i", "u", "s",
    "blockquote", "pre", "code", "ul", "ol", "li", "img",
})

TRUNCATION_MARKER = "..."

_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:")

_DROP_ELEMENTS = re.compile(r'<(script|style)\b[^>]*>.*?</\1\s*>', re.IGNORECASE | re.DOTALL)
_UNCLOSED_DROP = re.compile(r'<(?:script|style)\b[^>]*>.*\Z', re.IGNORECASE | re.DOTALL)
_COMMENTS = re.compile(r'<!--.*?(?:-->|\Z)', re.DOTALL)
_TAG = re.compile(r'<(/?)([a-zA-Z][a-zA-Z0-9]*)\b([^>]*)>')
_STRAY_TAG_OPEN = re.compile(
    r"<(?!/?(?:" + "|".join(sorted(ALLOWED_TAGS, key=len, reverse=True)) + r")\b[^<>]*>)"
)
_ANCHOR = re.compile(r'<a\b([^>]*)>(.*?)</a\s*>', re.IGNORECASE | re.DOTALL)
_OPEN_ANCHOR = re.compile(r'<a\b([^>]*)>', re.IGNORECASE)
_REWRITTEN_TAGS = frozenset({"a", "img"})
_IMG = re.compile(r'<img\b([^>]*)>', re.IGNORECASE)


def _attribute(attrs: str, name: str) -> Optional[str]:
    match = re.search(
        r'''(?:^|[\s/])''' + name + r'''\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))''',
        attrs,
        re.IGNORECASE,
    )
    if not match:
        return None
    value = next(group for group in match.groups() if group is not None)
    return html.unescape(value)


def _is_safe_url(url: str) -> bool:
    compact = re.sub(r'[\s\x00-\x1f]+', '', url).lower()
    return not compact.startswith(_UNSAFE_SCHEMES)


def _anchor_open_tag(attrs: str) -> Optional[str]:
    href = _attribute(attrs, "href")
    if href is None or not _is_safe_url(href):
        return None
    return f'<a href="{html.escape(href)}" rel="nofollow noopener">'


class ContentSanitizer:
    """Sanitize and truncate extracted webmention content.

    Attributes:
        enabled: When False, only truncation is applied
        max_content_length: Maximum number of characters kept
    """

    def __init__(
        self,
        enabled: bool = SanitizerConfig.enabled,
        max_content_length: int = SanitizerConfig.max_content_length,
    ):
        self.enabled = enabled
        self.max_content_length = max_content_length

    @classmethod
    def from_config(cls, settings: SanitizerConfig) -> "ContentSanitizer":
        return cls(enabled=settings.enabled, max_content_length=settings.max_content_length)

    def sanitize(self, content: Optional[str]) -> str:
        if not content:
            return ""
        if self.enabled:
            content = self._clean(content)
        return self._truncate(content)

    def _clean(self, content: str) -> str:
        content = _DROP_ELEMENTS.sub("", content)
        content = _UNCLOSED_DROP.sub("", content)
        content = _COMMENTS.sub("", content)
        content = _TAG.sub(self._filter_tag, content)
        # Any "<" that does not open an allowed tag is escaped
        content = _STRAY_TAG_OPEN.sub("&lt;", content)
        content = _IMG.sub(self._rewrite_img, content)
        content = _ANCHOR.sub(self._rewrite_anchor, content)
        # Opening anchors left over (no closing tag, nested) are rebuilt alone
        content = _OPEN_ANCHOR.sub(lambda m: _anchor_open_tag(m.group(1)) or "", content)
        return content

    @staticmethod
    def _filter_tag(match: re.Match) -> str:
        closing, name, attrs = match.group(1), match.group(2).lower(), match.group(3)
        if name not in ALLOWED_TAGS:
            return ""
        if closing:
            return f"</{name}>"
        if name not in _REWRITTEN_TAGS:
            return f"<{name}>"
        return f"<{name}{attrs}>"

    @staticmethod
    def _rewrite_img(match: re.Match) -> str:
        attrs = match.group(1)
        new_attrs = []

        src = _attribute(attrs, "src")
        if src is not None and _is_safe_url(src):
            new_attrs.append(f'src="{html.escape(src)}"')
        alt = _attribute(attrs, "alt")
        if alt is not None:
            new_attrs.append(f'alt="{html.escape(alt)}"')

        if not new_attrs:
            return "<img>"
        return "<img " + " ".join(new_attrs) + ">"

    @staticmethod
    def _rewrite_anchor(match: re.Match) -> str:
        attrs, text = match.group(1), match.group(2)
        open_tag = _anchor_open_tag(attrs)
        if open_tag is None:
            return text
        return f"{open_tag}{text}</a>"

    def _truncate(self, content: str) -> str:
        if len(content) > self.max_content_length:
            return content[: self.max_content_length] + TRUNCATION_MARKER
        return content
