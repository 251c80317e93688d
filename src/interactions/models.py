"""Data model for received webmentions."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

WEBMENTION_TYPES = ("like", "repost", "reply", "bookmark", "mention")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class Author:
    name: str = ""
    url: str = ""
    photo: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "Author":
        if not isinstance(data, dict):
            return cls()
        return cls(
            name=str(data.get("name") or ""),
            url=str(data.get("url") or ""),
            photo=str(data.get("photo") or ""),
        )


@dataclass
class Webmention:
    """A received webmention.

    Attributes:
        id: Opaque identifier (``wm_`` + 12 hex characters)
        source: URL of the remote resource that mentions the target
        target: Local page URL being mentioned
        type: One of like, repost, reply, bookmark, mention
        author: Author card extracted from the source
        content: Sanitized HTML content
        published: ISO-8601 timestamp claimed by the source, if any
        received: ISO-8601 timestamp assigned when the webmention was accepted
        original_url: The source's own u-url, if declared
    """
    id: str
    source: str
    target: str
    type: str = "mention"
    author: Author = field(default_factory=Author)
    content: str = ""
    published: Optional[str] = None
    received: str = ""
    original_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Webmention":
        return cls(
            id=str(data.get("id", "")),
            source=str(data.get("source", "")),
            target=str(data.get("target", "")),
            type=data.get("type") if data.get("type") in WEBMENTION_TYPES else "mention",
            author=Author.from_dict(data.get("author")),
            content=str(data.get("content") or ""),
            published=data.get("published") or None,
            received=str(data.get("received") or ""),
            original_url=data.get("original_url") or None,
        )

    @property
    def received_at(self) -> datetime:
        return parse_timestamp(self.received)

    @property
    def display_date(self) -> datetime:
        """Timestamp used for display ordering: published, else received."""
        return parse_timestamp(self.published or self.received)


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse an ISO-8601 timestamp; unparseable or empty values sort as the epoch."""
    if not value:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
