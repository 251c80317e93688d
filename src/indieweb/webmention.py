"""
Outbound webmentions to the federation bridge.

When a page is published, the bridge (Bridgy Fed by default) is notified
with a single form-encoded webmention:

    POST https://fed.brid.gy/webmention
    Content-Type: application/x-www-form-urlencoded

    source={page-url}&target=https://fed.brid.gy/

Replies to a fediverse post use the remote post URL as target instead.

Only 201 Created and 202 Accepted count as success. Every outcome, including
transport failures, is returned as a SendResult; nothing is raised to the
caller. There are no retries: a failed send leaves the page unpublished so the
host can try again later.

Usage:
    >>> from indieweb.webmention import WebmentionSender
    >>> sender = WebmentionSender.from_config(settings.send)
    >>> result = sender.send(page)
    >>> if not result.success:
    ...     logger.error(result.message)

References:
    - W3C Webmention: https://www.w3.org/TR/webmention/
    - Bridgy Fed: https://fed.brid.gy/docs
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse

import requests

from config import SendConfig

logger = logging.getLogger(__name__)

WEBMENTION_USER_AGENT = "Webmention (fedbridge; +https://github.com/wpowiertowski/fedbridge)"
SUCCESS_STATUS_CODES = (201, 202)


def _build_session() -> requests.Session:
    """Build a requests Session with the bridge User-Agent."""
    session = requests.Session()
    session.headers["User-Agent"] = WEBMENTION_USER_AGENT
    return session


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class SendResult:
    """Result of a webmention send attempt.

    Attributes:
        success: Whether the bridge accepted the webmention
        message: Human-readable status, including the HTTP status and response
                 body (or the exception text) on failure
        status_code: HTTP status code from the response (0 when none was received)
    """
    success: bool
    message: str
    status_code: int = 0


class WebmentionSender:
    """Send webmentions for local pages to the federation bridge.

    Attributes:
        endpoint: Bridge webmention endpoint
        bridge_target: Generic target URL used for new posts
        max_post_age_days: Pages older than this are never sent
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        endpoint: str = SendConfig.bridge_endpoint,
        bridge_target: str = SendConfig.bridge_target,
        max_post_age_days: int = SendConfig.max_post_age_days,
        timeout: float = SendConfig.timeout,
    ):
        self.endpoint = endpoint
        self.bridge_target = bridge_target
        self.max_post_age_days = max_post_age_days
        self.timeout = timeout

    @classmethod
    def from_config(cls, settings: SendConfig) -> "WebmentionSender":
        return cls(
            endpoint=settings.bridge_endpoint,
            bridge_target=settings.bridge_target,
            max_post_age_days=settings.max_post_age_days,
            timeout=settings.timeout,
        )

    def send(self, page: Any, now: Optional[datetime] = None) -> SendResult:
        """Announce a newly published page to the bridge."""
        rejection = self._precheck(page, now)
        if rejection:
            return rejection
        return self._post(page.url, self.bridge_target, "Webmention sent successfully")

    def send_reply(self, page: Any, reply_to_url: str, now: Optional[datetime] = None) -> SendResult:
        """Send a page as a reply to a remote fediverse post."""
        rejection = self._precheck(page, now)
        if rejection:
            return rejection

        parsed = urlparse(reply_to_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return SendResult(success=False, message=f"Invalid reply target URL: {reply_to_url!r}")

        return self._post(page.url, reply_to_url, "Reply webmention sent successfully")

    def _precheck(self, page: Any, now: Optional[datetime]) -> Optional[SendResult]:
        now = _as_utc(now or datetime.now(timezone.utc))
        age = now - _as_utc(page.date)
        if age.total_seconds() > self.max_post_age_days * 86400:
            logger.info(f"Not sending webmention for {page.url}: older than {self.max_post_age_days} days")
            return SendResult(success=False, message=f"Post too old (>{self.max_post_age_days} days)")

        if page.bridge.get("nobridge"):
            logger.info(f"Not sending webmention for {page.url}: nobridge is set")
            return SendResult(success=False, message="nobridge is set")

        return None

    def _post(self, source_url: str, target_url: str, success_message: str) -> SendResult:
        logger.info(f"Sending webmention: source={source_url}, target={target_url}, endpoint={self.endpoint}")

        session = _build_session()
        try:
            response = session.post(
                self.endpoint,
                data={"source": source_url, "target": target_url},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
                verify=True,
            )
        except Exception as e:
            logger.error(f"Webmention request failed: endpoint={self.endpoint}, source={source_url}, error={e}")
            return SendResult(success=False, message=f"Exception: {e}")
        finally:
            session.close()

        if response.status_code in SUCCESS_STATUS_CODES:
            logger.info(
                f"Webmention accepted: source={source_url}, target={target_url}, "
                f"status_code={response.status_code}"
            )
            return SendResult(success=True, message=success_message, status_code=response.status_code)

        body = response.text or "No response"
        logger.warning(
            f"Webmention rejected: source={source_url}, target={target_url}, "
            f"status_code={response.status_code}, body={body[:200]!r}"
        )
        return SendResult(
            success=False,
            message=f"HTTP {response.status_code}: {body}",
            status_code=response.status_code,
        )
