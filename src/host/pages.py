"""
Site page index.

The webmention pipeline needs three things from the site it serves: resolve a
target URL path to a local page, read a page's canonical URL and date, and
read/write the page's bridge metadata (publish / nobridge / published_at /
reply_to). PageIndex provides them from a pages.yml file:

    pages:
      - slug: post-1
        route: /blog/post-1
        date: 2026-10-01T12:00:00Z
        bridgyfed:
          publish: true
          reply_to: https://mastodon.social/@user/123456

``url`` may be given per page; otherwise it is the site URL plus the route.
"""
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import yaml

from interactions.locking import exclusive_lock

logger = logging.getLogger(__name__)

METADATA_KEY = "bridgyfed"


@dataclass
class Page:
    """A local page that can receive and send webmentions."""
    slug: str
    route: str
    url: str
    date: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def bridge(self) -> Dict[str, Any]:
        """The page's bridge metadata block (created on first access)."""
        block = self.metadata.get(METADATA_KEY)
        if not isinstance(block, dict):
            block = {}
            self.metadata[METADATA_KEY] = block
        return block


def _parse_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid page date: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_route(path: str) -> str:
    path = "/" + (path or "").strip().strip("/")
    return path


class PageIndex:
    """YAML-backed lookup of local pages by route or slug."""

    def __init__(self, pages_file: str, site_url: str = ""):
        self.pages_file = pages_file
        self.site_url = site_url.rstrip("/")
        self._lock = threading.Lock()
        self._pages: Dict[str, Page] = {}
        self.reload()

    def reload(self) -> None:
        """(Re)load pages from the YAML file. A missing file yields no pages."""
        pages: Dict[str, Page] = {}
        try:
            with open(self.pages_file, "r") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning(f"Pages file not found: {self.pages_file}")
            data = {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing pages file {self.pages_file}: {e}")
            data = {}

        entries = data.get("pages", []) if isinstance(data, dict) else []
        for entry in entries:
            page = self._page_from_entry(entry)
            if page:
                pages[page.slug] = page

        with self._lock:
            self._pages = pages
        logger.info(f"Loaded {len(pages)} page(s) from {self.pages_file}")

    def _page_from_entry(self, entry: Any) -> Optional[Page]:
        if not isinstance(entry, dict) or not entry.get("slug"):
            logger.warning(f"Skipping page entry without slug: {entry!r}")
            return None
        slug = str(entry["slug"])
        route = _normalize_route(str(entry.get("route") or slug))
        try:
            page_date = _parse_date(entry.get("date"))
        except ValueError as e:
            logger.warning(f"Skipping page {slug}: {e}")
            return None

        metadata = {METADATA_KEY: dict(entry.get(METADATA_KEY) or {})}
        return Page(
            slug=slug,
            route=route,
            url=str(entry.get("url") or f"{self.site_url}{route}"),
            date=page_date,
            metadata=metadata,
        )

    def find(self, path: str) -> Optional[Page]:
        """Find a page by URL path (trailing slash insensitive) or by slug."""
        route = _normalize_route(path)
        with self._lock:
            pages = list(self._pages.values())
        for page in pages:
            if page.route == route:
                return page
        for page in pages:
            if "/" + page.slug == route:
                return page
        return None

    def get(self, slug: str) -> Optional[Page]:
        with self._lock:
            return self._pages.get(slug)

    def all(self) -> List[Page]:
        with self._lock:
            return list(self._pages.values())

    def save_metadata(self, page: Page) -> None:
        """Write a page's bridge metadata back to the pages file."""
        lock_path = os.path.join(
            os.path.dirname(os.path.abspath(self.pages_file)),
            f".{os.path.basename(self.pages_file)}.lock",
        )
        with exclusive_lock(lock_path):
            try:
                with open(self.pages_file, "r") as f:
                    data = yaml.safe_load(f) or {}
            except FileNotFoundError:
                data = {}

            entries = data.setdefault("pages", [])
            for entry in entries:
                if isinstance(entry, dict) and str(entry.get("slug")) == page.slug:
                    entry[METADATA_KEY] = dict(page.bridge)
                    break
            else:
                entries.append({
                    "slug": page.slug,
                    "route": page.route,
                    "url": page.url,
                    "date": page.date.isoformat(),
                    METADATA_KEY: dict(page.bridge),
                })

            tmp_path = f"{self.pages_file}.tmp"
            with open(tmp_path, "w") as f:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
            os.replace(tmp_path, self.pages_file)

        with self._lock:
            self._pages[page.slug] = page
        logger.debug(f"Saved bridge metadata for page {page.slug}")
