"""
Constrained fetching of webmention source documents.

The fetcher performs one GET per redirect hop with:
    - connect/read timeout (default 5s)
    - response size cap (default 1 MiB, body truncated beyond it)
    - redirects followed by hand up to a cap (default 5), each hop
      re-checked against the scheme and SSRF rules
    - mandatory TLS certificate and hostname verification
    - optional SSRF guard rejecting private/loopback destinations
    - optional caller deadline checked while the body streams in

Any failure is raised as FetchError; the caller maps it to a generic client
error and keeps the detail for the logs.
"""

import ipaddress
import logging
import re
import socket
import time
from typing import Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests

from config import FetchConfig
from indieweb.errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = "Webmention (fedbridge; +https://github.com/wpowiertowski/fedbridge)"
_CHUNK_SIZE = 8192
REDIRECT_STATUS_CODES = (301, 302, 303, 307, 308)

_CHARSET = re.compile(r'charset\s*=\s*["\']?([A-Za-z0-9._:-]+)', re.IGNORECASE)
_META_CHARSET = re.compile(rb'<meta[^>]+charset\s*=\s*["\']?([A-Za-z0-9._:-]+)', re.IGNORECASE)


def _is_private_or_loopback(url: str) -> bool:
    """Check if a URL resolves to a private or loopback address.

    Args:
        url: The URL to check.

    Returns:
        True if the URL resolves to a private/loopback address.
    """
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        if not hostname:
            return True

        infos = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        for family, _, _, _, sockaddr in infos:
            ip_str = sockaddr[0]
            addr = ipaddress.ip_address(ip_str)
            if addr.is_private or addr.is_loopback or addr.is_reserved or addr.is_link_local:
                logger.warning(
                    f"Blocked request to private/loopback address: url={url}, resolved={ip_str}"
                )
                return True
    except (socket.gaierror, ValueError, OSError) as e:
        logger.warning(f"DNS resolution failed for URL {url}: {e}")
        return True

    return False


def _build_session() -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    return session


class SourceFetcher:
    """Fetch webmention sources under strict time and size limits."""

    def __init__(
        self,
        timeout: float = FetchConfig.timeout,
        max_content_size: int = FetchConfig.max_content_size,
        max_redirects: int = FetchConfig.max_redirects,
        block_private_addresses: bool = FetchConfig.block_private_addresses,
    ):
        self.timeout = timeout
        self.max_content_size = max_content_size
        self.max_redirects = max_redirects
        self.block_private_addresses = block_private_addresses

    @classmethod
    def from_config(cls, settings: FetchConfig) -> "SourceFetcher":
        return cls(
            timeout=settings.timeout,
            max_content_size=settings.max_content_size,
            max_redirects=settings.max_redirects,
            block_private_addresses=settings.block_private_addresses,
        )

    def fetch(self, url: str, deadline: Optional[float] = None) -> bytes:
        """Fetch ``url`` and return at most ``max_content_size`` bytes of body.

        Args:
            url: Absolute http(s) URL to fetch
            deadline: Optional ``time.monotonic()`` value after which the
                      download is abandoned

        Returns:
            Raw response body (possibly truncated to the size limit)

        Raises:
            FetchError: On any transport, TLS, status, redirect, size or
                        deadline failure
        """
        body, _ = self._fetch(url, deadline)
        return body

    def fetch_text(self, url: str, deadline: Optional[float] = None) -> str:
        """Fetch ``url`` and decode it with the charset the source declares."""
        body, encoding = self._fetch(url, deadline)
        return decode_body(body, encoding or sniff_meta_charset(body))

    def _fetch(self, url: str, deadline: Optional[float]) -> Tuple[bytes, Optional[str]]:
        self._check_destination(url)
        self._effective_timeout(deadline)

        session = _build_session()
        try:
            current = url
            for _ in range(self.max_redirects + 1):
                response = self._get(session, current, self._effective_timeout(deadline))
                try:
                    location = response.headers.get("Location")
                    if response.status_code in REDIRECT_STATUS_CODES and location:
                        current = urljoin(current, location)
                        logger.debug(f"Following redirect from {url} to {current}")
                        self._check_destination(current)
                        continue
                    if response.status_code >= 400:
                        raise FetchError(f"Source returned HTTP {response.status_code}: {current}")
                    body = self._read_bounded(response, current, deadline)
                    return body, charset_from_content_type(response.headers.get("Content-Type", ""))
                finally:
                    response.close()
            raise FetchError(f"Too many redirects fetching {url}")
        finally:
            session.close()

    def _check_destination(self, url: str) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise FetchError(f"Unsupported URL scheme: {url}")
        if self.block_private_addresses and _is_private_or_loopback(url):
            raise FetchError(f"Source resolves to a private or loopback address: {url}")

    @staticmethod
    def _get(session: requests.Session, url: str, timeout: float) -> requests.Response:
        try:
            return session.get(
                url,
                headers={"Accept": "text/html, application/xhtml+xml, */*"},
                timeout=timeout,
                allow_redirects=False,
                stream=True,
                verify=True,
            )
        except requests.exceptions.SSLError as e:
            raise FetchError(f"TLS verification failed for {url}: {e}")
        except requests.exceptions.Timeout:
            raise FetchError(f"Timeout fetching {url}")
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Error fetching {url}: {e}")

    def _effective_timeout(self, deadline: Optional[float]) -> float:
        if deadline is None:
            return self.timeout
        left = deadline - time.monotonic()
        if left <= 0:
            raise FetchError("Request deadline expired before fetch")
        return min(self.timeout, left)

    def _read_bounded(self, response: requests.Response, url: str, deadline: Optional[float]) -> bytes:
        chunks = []
        bytes_read = 0
        try:
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                if deadline is not None and time.monotonic() > deadline:
                    raise FetchError(f"Request deadline expired while reading {url}")
                if not chunk:
                    continue
                chunks.append(chunk)
                bytes_read += len(chunk)
                if bytes_read >= self.max_content_size:
                    if bytes_read > self.max_content_size:
                        logger.warning(
                            f"Source larger than {self.max_content_size} bytes, truncating: {url}"
                        )
                    break
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Error reading {url}: {e}")

        return b"".join(chunks)[: self.max_content_size]


def decode_body(body: bytes, encoding: Optional[str] = None) -> str:
    """Decode a fetched body with the declared encoding, falling back to UTF-8."""
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def charset_from_content_type(content_type: str) -> Optional[str]:
    """Return the charset parameter of a Content-Type header, if any."""
    match = _CHARSET.search(content_type or "")
    return match.group(1) if match else None


def sniff_meta_charset(body: bytes) -> Optional[str]:
    """Return the charset declared by a <meta> tag near the top of the document."""
    match = _META_CHARSET.search(body[:2048])
    return match.group(1).decode("ascii") if match else None
