"""File-backed storage for received webmentions, one JSON document per page slug."""

from __future__ import annotations

import logging
import os
import re
from typing import Callable, Dict, List, Optional

from jsonschema import ValidationError as SchemaValidationError, validate
from config import BridgeConfig
from schema import WEBMENTION_SCHEMA

from interactions.locking import exclusive_lock, read_json, write_json_atomic
from interactions.models import Webmention

logger = logging.getLogger(__name__)

_UNSAFE_SLUG_CHARS = re.compile(r"[^a-zA-Z0-9_-]")

# Type -> key in get_counts()
_COUNT_KEYS = {
    "like": "likes",
    "repost": "reposts",
    "reply": "replies",
    "bookmark": "bookmarks",
    "mention": "mentions",
}


def sanitize_slug(slug: str) -> str:
    """Map a page slug to a filesystem-safe storage key.

    Raises:
        ValueError: If the slug is empty
    """
    safe = _UNSAFE_SLUG_CHARS.sub("_", (slug or "").strip())
    if not safe:
        raise ValueError("Slug must not be empty")
    return safe


def is_safe_path(base_path: str, file_path: str) -> bool:
    """Check that ``file_path`` resolves inside ``base_path``."""
    base = os.path.realpath(base_path)
    target = os.path.realpath(file_path)
    return os.path.commonpath([base, target]) == base


def count_by_type(mentions: List[Webmention]) -> Dict[str, int]:
    """Per-type counts plus total for an already loaded list of webmentions."""
    counts = {key: 0 for key in _COUNT_KEYS.values()}
    for m in mentions:
        counts[_COUNT_KEYS.get(m.type, "mentions")] += 1
    counts["total"] = len(mentions)
    return counts


class WebmentionStore:
    """Per-slug webmention documents stored as JSON files.

    Writers take an exclusive per-slug lock for the whole read-modify-write
    cycle and replace the document atomically. Readers never lock.

    Attributes:
        storage_path: Directory holding ``<slug>.json`` documents
        sort_order: "asc" or "desc" ordering for get_by_slug()
        cache_enabled: Whether writes emit the invalidation signal
    """

    def __init__(
        self,
        storage_path: str,
        sort_order: str = "desc",
        invalidate_cache: Optional[Callable[[str], None]] = None,
        cache_enabled: bool = True,
    ):
        self.storage_path = storage_path
        self.sort_order = sort_order
        self.cache_enabled = cache_enabled
        self._invalidate_cache = invalidate_cache
        os.makedirs(self.storage_path, mode=0o755, exist_ok=True)

    @classmethod
    def from_config(
        cls,
        settings: BridgeConfig,
        invalidate_cache: Optional[Callable[[str], None]] = None,
    ) -> WebmentionStore:
        """Build a store under ``<storage_path>/webmentions``."""
        return cls(
            os.path.join(settings.storage_path, "webmentions"),
            sort_order=settings.sort_order,
            invalidate_cache=invalidate_cache,
            cache_enabled=settings.cache_enabled,
        )

    def save(self, slug: str, mention: Webmention) -> bool:
        """Store a webmention, replacing any existing one with the same source.

        Returns:
            True if the document was written, False if the record was invalid
        """
        record = mention.to_dict()
        try:
            validate(instance=record, schema=WEBMENTION_SCHEMA)
        except SchemaValidationError as e:
            logger.error(f"Invalid webmention for {slug} from {mention.source}: {e.message}")
            return False

        path, lock_path = self._paths(slug)
        with exclusive_lock(lock_path):
            records = self._load(path)

            for i, existing in enumerate(records):
                if existing.get("source") == mention.source:
                    records[i] = record
                    logger.debug(f"Replacing webmention from {mention.source} for {slug}")
                    break
            else:
                records.append(record)

            records.sort(key=lambda r: Webmention.from_dict(r).received_at, reverse=True)
            self._write(path, records)

        self._signal(slug)
        return True

    def get_by_slug(self, slug: str, mention_type: Optional[str] = None) -> List[Webmention]:
        """Get webmentions for a slug, optionally of a single type.

        Sorted by published date (received date when absent) in the configured
        order. Unknown slugs yield an empty list.
        """
        path, _ = self._paths(slug)
        mentions = [Webmention.from_dict(r) for r in self._load(path)]

        if mention_type is not None:
            mentions = [m for m in mentions if m.type == mention_type]

        mentions.sort(key=lambda m: m.display_date, reverse=self.sort_order == "desc")
        return mentions

    def get_counts(self, slug: str) -> Dict[str, int]:
        """Count webmentions for a slug by type."""
        return count_by_type(self.get_by_slug(slug))

    def has_webmentions(self, slug: str) -> bool:
        path, _ = self._paths(slug)
        return bool(self._load(path))

    def delete(self, slug: str, mention_id: str) -> bool:
        """Delete one webmention by ID. Returns whether anything was removed."""
        path, lock_path = self._paths(slug)
        with exclusive_lock(lock_path):
            records = self._load(path)
            remaining = [r for r in records if r.get("id") != mention_id]
            if len(remaining) == len(records):
                return False
            self._write(path, remaining)

        logger.info(f"Deleted webmention {mention_id} for {slug}")
        self._signal(slug)
        return True

    def delete_all(self, slug: str) -> None:
        """Delete every webmention stored for a slug."""
        path, lock_path = self._paths(slug)
        with exclusive_lock(lock_path):
            try:
                os.unlink(path)
            except FileNotFoundError:
                return

        logger.info(f"Deleted all webmentions for {slug}")
        self._signal(slug)

    def _paths(self, slug: str) -> tuple[str, str]:
        key = sanitize_slug(slug)
        path = os.path.join(self.storage_path, f"{key}.json")
        if not is_safe_path(self.storage_path, path):
            raise ValueError(f"Unsafe slug: {slug!r}")
        return path, os.path.join(self.storage_path, f".{key}.lock")

    @staticmethod
    def _load(path: str) -> List[Dict]:
        data = read_json(path, [])
        if not isinstance(data, list):
            logger.error(f"Webmention document {path} is not a list, ignoring it")
            return []
        return [r for r in data if isinstance(r, dict)]

    @staticmethod
    def _write(path: str, records: List[Dict]) -> None:
        write_json_atomic(path, records, indent=4, ensure_ascii=False)

    def _signal(self, slug: str) -> None:
        if not self.cache_enabled or self._invalidate_cache is None:
            return
        try:
            self._invalidate_cache(slug)
        except Exception as e:
            logger.error(f"Cache invalidation failed for {slug}: {e}")
