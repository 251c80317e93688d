"""
Pytest configuration and shared fixtures for all tests.

This module provides shared fixtures for the test suite, including:
- A pages.yml with a few local pages
- Microformats2 source documents as the bridge serves them
- Mocked requests sessions for the source fetcher and the bridge sender
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import requests

from host import Page, PageIndex


SITE_URL = "https://blog.example.com"

LIKE_SOURCE_HTML = """
<html><body>
  <article class="h-entry">
    <a class="u-like-of" href="https://blog.example.com/blog/post-1"></a>
    <a class="u-in-reply-to" href="https://blog.example.com/blog/post-1"></a>
    <div class="p-author h-card">
      <a class="p-name u-url" href="https://mastodon.social/@alice">Alice</a>
      <img class="u-photo" src="https://files.mastodon.social/alice.png" alt="">
    </div>
    <div class="e-content"><p>Nice post!</p><script>alert(1)</script></div>
    <time class="dt-published" datetime="2026-10-02T09:00:00+00:00">Oct 2</time>
    <a class="u-url" href="https://mastodon.social/@alice/111"></a>
  </article>
</body></html>
"""

PAGES_YAML = """
pages:
  - slug: post-1
    route: /blog/post-1
    date: 2026-10-01T12:00:00Z
    bridgyfed:
      publish: true
  - slug: post-2
    route: /blog/post-2/
    date: 2026-10-05T12:00:00Z
    bridgyfed:
      publish: true
      reply_to: https://mastodon.social/@bob/222
  - slug: hidden
    route: /blog/hidden
    date: 2026-10-05T12:00:00Z
    bridgyfed:
      publish: true
      nobridge: true
"""


@pytest.fixture
def pages_file(tmp_path):
    """A pages.yml holding three pages."""
    path = tmp_path / "pages.yml"
    path.write_text(PAGES_YAML)
    return path


@pytest.fixture
def pages(pages_file):
    return PageIndex(str(pages_file), site_url=SITE_URL)


@pytest.fixture
def make_page():
    """Factory for in-memory pages dated ``age_days`` ago."""
    def _make(slug="post-1", age_days=1, **bridge):
        return Page(
            slug=slug,
            route=f"/blog/{slug}",
            url=f"{SITE_URL}/blog/{slug}",
            date=datetime.now(timezone.utc) - timedelta(days=age_days),
            metadata={"bridgyfed": dict(bridge)},
        )
    return _make


@pytest.fixture
def make_response():
    """Factory for MagicMocks standing in for a requests.Response."""
    def _make(status_code=200, body=b"", text=None, headers=None):
        response = MagicMock(spec=requests.Response)
        response.status_code = status_code
        response.headers = dict(headers or {})
        response.iter_content.return_value = [body] if body else []
        response.text = text if text is not None else body.decode("utf-8", errors="replace")
        return response
    return _make


@pytest.fixture
def make_session():
    """Factory for MagicMock sessions whose get/post return ``response``."""
    def _make(response=None, side_effect=None):
        session = MagicMock()
        session.get.return_value = response
        session.post.return_value = response
        if side_effect is not None:
            session.get.side_effect = side_effect
            session.post.side_effect = side_effect
        return session
    return _make


@pytest.fixture
def like_source_html():
    return LIKE_SOURCE_HTML
