"""
Webmention receiving pipeline.

Implements the W3C Webmention receiving flow for pages of this site, with
the checks a public endpoint needs:

    1. Method must be POST                                   (else 405)
    2. Per-client rate limit                                 (else 429)
    3. source and target present                             (else 400)
    4. Both absolute http(s) URLs                            (else 400)
    5. source host on the allow-list (exact or subdomain)    (else 403)
    6. target resolves to a local page                       (else 400)
    7. Fetch source                                          (else 400, generic)
    8. Extract microformats (never fails)
    9. Sanitize content
   10. Store under the page slug (replaces an earlier delivery from the same source)
   11. 202 Accepted with the webmention id

Every failure is raised as a WebmentionError and converted into a status and
JSON body in handle(); nothing escapes that boundary. The pipeline is
synchronous and nothing is stored unless every step before step 10 succeeded.

References:
    - W3C Webmention: https://www.w3.org/TR/webmention/
"""

import hashlib
import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from indieweb.errors import RateLimitedError, StorageError, ValidationError, WebmentionError
from indieweb.fetcher import SourceFetcher
from indieweb.parser import MicroformatExtractor
from indieweb.rate_limit import RateLimiter, hash_client_address
from indieweb.sanitizer import ContentSanitizer
from interactions.models import Webmention
from interactions.storage import WebmentionStore

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048


@dataclass
class ReceiveResponse:
    """Status code and JSON body returned to the webmention sender."""
    status: int
    body: Dict[str, Any] = field(default_factory=dict)


def generate_webmention_id(source: str) -> str:
    """Generate an opaque ``wm_`` + 12 hex character identifier."""
    seed = f"{source}:{time.time_ns()}:{secrets.token_hex(8)}".encode()
    return "wm_" + hashlib.md5(seed).hexdigest()[:12]


def _is_valid_url(url: str) -> bool:
    """Check if a string is a valid absolute HTTP(S) URL."""
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    try:
        parsed = urlparse(url)
        return parsed.scheme in ("http", "https") and bool(parsed.hostname)
    except ValueError:
        return False


def is_allowed_source(source: str, allowed_sources: List[str]) -> bool:
    """Check whether the source host is allowed, exactly or as a subdomain."""
    host = (urlparse(source).hostname or "").lower().rstrip(".")
    if not host:
        return False
    for allowed in allowed_sources:
        allowed = allowed.lower().strip(".")
        if host == allowed or host.endswith("." + allowed):
            return True
    return False


def strip_locale_prefix(path: str, languages: List[str]) -> str:
    """Remove a leading ``/<lang>/`` segment for any configured language."""
    for lang in languages:
        prefix = f"/{lang}/"
        if path.startswith(prefix):
            return path[len(prefix) - 1:]
        if path == f"/{lang}":
            return "/"
    return path


class WebmentionReceiver:
    """Orchestrates validation, fetch, extraction, sanitization and storage.

    Collaborators are injected so each step can be replaced in tests.

    Attributes:
        store: WebmentionStore receiving accepted webmentions
        pages: Page lookup with a ``find(path)`` method
        rate_limiter: Per-client RateLimiter
        fetcher: SourceFetcher used for the source document
        extractor: MicroformatExtractor
        sanitizer: ContentSanitizer applied to extracted content
        allowed_sources: Hosts allowed to send webmentions
        languages: Locale path prefixes stripped before page lookup
        request_timeout: Overall seconds allowed for the fetch phase
    """

    def __init__(
        self,
        store: WebmentionStore,
        pages: Any,
        rate_limiter: RateLimiter,
        fetcher: SourceFetcher,
        extractor: MicroformatExtractor,
        sanitizer: ContentSanitizer,
        allowed_sources: List[str],
        languages: Optional[List[str]] = None,
        request_timeout: Optional[float] = None,
    ):
        self.store = store
        self.pages = pages
        self.rate_limiter = rate_limiter
        self.fetcher = fetcher
        self.extractor = extractor
        self.sanitizer = sanitizer
        self.allowed_sources = list(allowed_sources)
        self.languages = list(languages or [])
        self.request_timeout = request_timeout

    def handle(self, method: str, form: Mapping[str, Any], client_address: str) -> ReceiveResponse:
        """Run the receiving pipeline for one request."""
        try:
            mention_id = self._receive(method, form, client_address)
        except WebmentionError as e:
            if e.detail:
                logger.warning(f"Webmention rejected ({e.status_code}): {e.detail}")
            return ReceiveResponse(e.status_code, {"error": e.message})

        return ReceiveResponse(202, {"status": "Accepted", "id": mention_id})

    def _receive(self, method: str, form: Mapping[str, Any], client_address: str) -> str:
        if (method or "").upper() != "POST":
            raise ValidationError("Method Not Allowed", status_code=405)

        client_id = hash_client_address(client_address or "0.0.0.0")
        if not self.rate_limiter.allow(client_id):
            logger.warning(f"Rate limit exceeded for client {client_id[:12]}")
            raise RateLimitedError()

        source = str(form.get("source") or "").strip()
        target = str(form.get("target") or "").strip()
        if not source or not target:
            raise ValidationError("Missing source or target")

        if not _is_valid_url(source) or not _is_valid_url(target):
            raise ValidationError("Invalid URL", detail=f"source={source[:200]!r} target={target[:200]!r}")

        if not is_allowed_source(source, self.allowed_sources):
            raise ValidationError("Source not allowed", status_code=403, detail=f"source host not allowed: {source}")

        path = strip_locale_prefix(urlparse(target).path or "/", self.languages)
        page = self.pages.find(path)
        if page is None:
            raise ValidationError("Target not found", detail=f"no page for target {target}")

        deadline = time.monotonic() + self.request_timeout if self.request_timeout else None
        html_body = self.fetcher.fetch_text(source, deadline=deadline)

        data = self.extractor.parse(html_body, source)

        mention = Webmention(
            id=generate_webmention_id(source),
            source=source,
            target=target,
            type=data.type,
            author=data.author,
            content=self.sanitizer.sanitize(data.content),
            published=data.published,
            received=datetime.now(timezone.utc).isoformat(),
            original_url=data.original_url,
        )

        try:
            stored = self.store.save(page.slug, mention)
        except (OSError, ValueError) as e:
            raise StorageError(detail=f"failed to store webmention for {page.slug}: {e}")
        if not stored:
            raise StorageError(detail=f"webmention for {page.slug} failed validation")

        logger.info(f"Received {mention.type} webmention for {page.route}: source={source}, id={mention.id}")
        return mention.id
