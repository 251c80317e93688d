"""
Publish hook for local pages.

Called by the host after a page is saved. A page is announced to the bridge
once: when its bridge metadata has ``publish: true``, ``nobridge`` is not set
and ``published_at`` is still empty. A page with ``reply_to`` is sent as a
reply to that remote post instead.

On success ``published_at`` is stamped and written back through the page
index, so later saves of the same page do not send again.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from indieweb.webmention import SendResult, WebmentionSender

logger = logging.getLogger(__name__)

PUBLISHED_AT_FORMAT = "%Y-%m-%d %H:%M:%S"


def should_publish(page: Any) -> bool:
    bridge = page.bridge
    return bool(bridge.get("publish")) and not bridge.get("nobridge") and not bridge.get("published_at")


def publish_page(
    page: Any,
    sender: WebmentionSender,
    pages: Any,
    now: Optional[datetime] = None,
) -> Optional[SendResult]:
    """Send the bridge webmention for a page if it is due.

    Args:
        page: Page with ``url``, ``date`` and ``bridge`` metadata
        sender: WebmentionSender used for the outbound request
        pages: Page index with a ``save_metadata(page)`` method
        now: Current time (defaults to now, UTC)

    Returns:
        The SendResult, or None when the page was not due for publishing
    """
    if not should_publish(page):
        logger.debug(f"Page {page.slug} not due for bridging")
        return None

    reply_to = page.bridge.get("reply_to")
    if reply_to:
        result = sender.send_reply(page, reply_to, now=now)
    else:
        result = sender.send(page, now=now)

    if not result.success:
        logger.warning(f"Bridging page {page.slug} failed: {result.message}")
        return result

    stamp = (now or datetime.now(timezone.utc)).strftime(PUBLISHED_AT_FORMAT)
    page.bridge["published_at"] = stamp
    pages.save_metadata(page)
    logger.info(f"Bridged page {page.slug} at {stamp}")
    return result
