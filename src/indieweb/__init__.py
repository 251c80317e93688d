"""
IndieWeb module for fedbridge.

Receives webmentions for the site's pages and sends webmentions announcing
new pages to the federation bridge (Bridgy Fed).

Features:
    - Webmention receiving pipeline (rate limit, validation, fetch, microformats,
      sanitization, storage)
    - Outbound webmentions to the bridge, including replies to remote posts
    - Publish hook stamping pages once they are bridged

Usage:
    >>> from indieweb import WebmentionSender, publish_page
    >>>
    >>> sender = WebmentionSender.from_config(settings.send)
    >>> result = publish_page(page, sender, pages)
"""

from indieweb.errors import (
    FetchError,
    RateLimitedError,
    StorageError,
    ValidationError,
    WebmentionError,
)
from indieweb.fetcher import SourceFetcher
from indieweb.parser import ExtractedInteraction, MicroformatExtractor
from indieweb.publisher import publish_page
from indieweb.rate_limit import RateLimiter, RateLimitSweeper
from indieweb.receiver import ReceiveResponse, WebmentionReceiver
from indieweb.sanitizer import ContentSanitizer
from indieweb.webmention import SendResult, WebmentionSender

__all__ = [
    "ContentSanitizer",
    "ExtractedInteraction",
    "FetchError",
    "MicroformatExtractor",
    "RateLimitSweeper",
    "RateLimitedError",
    "RateLimiter",
    "ReceiveResponse",
    "SendResult",
    "SourceFetcher",
    "StorageError",
    "ValidationError",
    "WebmentionError",
    "WebmentionReceiver",
    "WebmentionSender",
    "publish_page",
]
