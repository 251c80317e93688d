#!/usr/bin/env python3
"""Send the bridge webmention for one page, as the host does after saving it."""

import argparse
import logging
import sys

from config import BridgeConfig, load_config
from host import PageIndex
from indieweb import WebmentionSender, publish_page


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("slug", help="Slug of the page to publish")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yml (defaults to FEDBRIDGE_CONFIG or the nearest config.yml)",
    )
    parser.add_argument(
        "--pages",
        default=None,
        help="Path to the pages file (defaults to site.pages_file)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = BridgeConfig.from_dict(load_config(args.config))
    pages = PageIndex(args.pages or settings.site.pages_file, site_url=settings.site.url)

    page = pages.get(args.slug)
    if page is None:
        print(f"Page not found: {args.slug}")
        return 1

    result = publish_page(page, WebmentionSender.from_config(settings.send), pages)
    if result is None:
        print(f"Page {args.slug} is not due for bridging, nothing sent")
        return 0

    print(result.message)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
