"""
Host site collaborators.

The webmention pipeline reaches the site it serves only through these:
    - PageIndex: page lookup by URL path, page URL/date, bridge metadata
    - SlugCache: per-slug response cache invalidated after each write
"""

from host.cache import SlugCache
from host.pages import Page, PageIndex

__all__ = ["Page", "PageIndex", "SlugCache"]
