"""
fedbridge HTTP surface - Flask application.

Routes:
    {webmention path}                    Webmention receiving endpoint (all methods;
                                         anything but POST answers 405)
    GET /api/webmentions/<slug>          Stored webmentions and counts for a page
                                         (optional ?type=like|repost|reply|bookmark|mention)
    GET /api/webmentions/<slug>/counts   Counts only
    GET /.well-known/host-meta[.json]    302 to the bridge
    GET /.well-known/webfinger           302 to the bridge, query string preserved
    GET /.well-known/atproto-did         302 to the bridge's atproto-did for this host
    GET /@<username>                     302 to the bridge profile of this site
    GET /health                          Liveness probe

Every response advertises the webmention endpoint with a Link header so
senders can discover it from any page served by this app:

    Link: <https://example.com/webmention>; rel="webmention"

Collaborators are injected through create_app() so tests can swap in fakes;
anything not passed is built from configuration.

Example:
    >>> app = create_app(config)
    >>> client = app.test_client()
    >>> client.post("/webmention", data={"source": src, "target": tgt})
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote, urlparse

from flask import Flask, current_app, jsonify, redirect, request
from flask_cors import CORS

from config import BridgeConfig, load_config
from host import PageIndex, SlugCache
from indieweb import (
    ContentSanitizer,
    MicroformatExtractor,
    RateLimiter,
    SourceFetcher,
    WebmentionReceiver,
    WebmentionSender,
)
from interactions.models import WEBMENTION_TYPES
from interactions.storage import WebmentionStore, count_by_type

# Logging is configured in fedbridge.py main() - this module uses the configured logger
logger = logging.getLogger(__name__)

BRIDGE_BASE_URL = "https://fed.brid.gy"


def client_address() -> str:
    """Best-effort client IP: first X-Forwarded-For hop, X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    return forwarded or request.headers.get("X-Real-IP", "").strip() or request.remote_addr or ""


def create_app(
    config: Optional[Dict[str, Any]] = None,
    *,
    store: Optional[WebmentionStore] = None,
    rate_limiter: Optional[RateLimiter] = None,
    fetcher: Optional[SourceFetcher] = None,
    extractor: Optional[MicroformatExtractor] = None,
    sanitizer: Optional[ContentSanitizer] = None,
    pages: Optional[Any] = None,
    cache: Optional[SlugCache] = None,
    sender: Optional[WebmentionSender] = None,
) -> Flask:
    """Factory function to create and configure the Flask application.

    Args:
        config: Raw configuration dictionary (loaded from config.yml when None)
        store: WebmentionStore (built under storage.path when None)
        rate_limiter: Per-client RateLimiter
        fetcher: SourceFetcher for webmention sources
        extractor: MicroformatExtractor
        sanitizer: ContentSanitizer
        pages: Page index with find/get/save_metadata
        cache: SlugCache for API responses
        sender: WebmentionSender used by the publish flow

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    if config is None:
        config = load_config()
    settings = BridgeConfig.from_dict(config)

    if settings.cors_enabled:
        if settings.cors_origins:
            CORS(app, origins=settings.cors_origins)
            logger.info(f"CORS enabled for origins: {settings.cors_origins}")
        else:
            logger.warning("CORS enabled but no origins configured")
    else:
        logger.info("CORS is disabled in configuration")

    if cache is None:
        cache = SlugCache()
    if store is None:
        store = WebmentionStore.from_config(settings, invalidate_cache=cache.invalidate)
    if rate_limiter is None:
        rate_limiter = RateLimiter.from_config(settings.rate_limit, settings.storage_path)
    if pages is None:
        pages = PageIndex(settings.site.pages_file, site_url=settings.site.url)

    receiver = WebmentionReceiver(
        store=store,
        pages=pages,
        rate_limiter=rate_limiter,
        fetcher=fetcher or SourceFetcher.from_config(settings.fetch),
        extractor=extractor or MicroformatExtractor(settings.parser_strategy),
        sanitizer=sanitizer or ContentSanitizer.from_config(settings.sanitizer),
        allowed_sources=settings.allowed_sources,
        languages=settings.site.languages,
        request_timeout=settings.fetch.timeout * 2,
    )

    app.config["BRIDGE_SETTINGS"] = settings
    app.config["WEBMENTION_STORE"] = store
    app.config["WEBMENTION_RECEIVER"] = receiver
    app.config["RATE_LIMITER"] = rate_limiter
    app.config["PAGE_INDEX"] = pages
    app.config["SLUG_CACHE"] = cache
    app.config["WEBMENTION_SENDER"] = sender or WebmentionSender.from_config(settings.send)

    logger.info(
        f"Webmention endpoint at {settings.webmention_path}, "
        f"allowed sources: {settings.allowed_sources}"
    )

    def site_root() -> str:
        return settings.site.url or request.host_url.rstrip("/")

    @app.after_request
    def add_webmention_link(response):
        response.headers.add("Link", f'<{site_root()}{settings.webmention_path}>; rel="webmention"')
        return response

    @app.route(
        settings.webmention_path,
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
        endpoint="webmention",
    )
    def receive_webmention():
        """Webmention receiving endpoint.

        Example:
            $ curl -X POST http://localhost:5000/webmention \\
                   -d source=https://fed.brid.gy/r/... -d target=https://example.com/post
            {"status": "Accepted", "id": "wm_1a2b3c4d5e6f"}
        """
        form = request.form if request.method == "POST" else {}
        result = current_app.config["WEBMENTION_RECEIVER"].handle(request.method, form, client_address())
        response = jsonify(result.body)
        response.status_code = result.status
        if result.status == 405:
            response.headers["Allow"] = "POST"
        return response

    @app.route("/api/webmentions/<slug>", methods=["GET"])
    def get_webmentions(slug: str):
        """Stored webmentions for a page, newest first by default.

        Example:
            GET /api/webmentions/post-1?type=like

            Response:
            {
              "slug": "post-1",
              "webmentions": [{"id": "wm_...", "type": "like", ...}],
              "counts": {"likes": 1, "reposts": 0, "replies": 0,
                         "bookmarks": 0, "mentions": 0, "total": 1}
            }
        """
        mention_type = request.args.get("type") or None
        if mention_type is not None and mention_type not in WEBMENTION_TYPES:
            return jsonify({"error": "Invalid type"}), 400

        cache: SlugCache = current_app.config["SLUG_CACHE"]
        cached = cache.get(slug, variant=mention_type or "")
        if cached is not None:
            return jsonify(cached), 200

        store: WebmentionStore = current_app.config["WEBMENTION_STORE"]
        generation = cache.generation(slug)
        try:
            # One read of the document so the list and its counts agree
            mentions = store.get_by_slug(slug)
        except ValueError:
            logger.warning(f"Invalid slug rejected: {slug[:50]!r}")
            return jsonify({"error": "Invalid slug"}), 400

        counts = count_by_type(mentions)
        if mention_type is not None:
            mentions = [m for m in mentions if m.type == mention_type]

        payload = {
            "slug": slug,
            "webmentions": [m.to_dict() for m in mentions],
            "counts": counts,
        }
        cache.set(slug, payload, variant=mention_type or "", generation=generation)
        return jsonify(payload), 200

    @app.route("/api/webmentions/<slug>/counts", methods=["GET"])
    def get_webmention_counts(slug: str):
        try:
            counts = current_app.config["WEBMENTION_STORE"].get_counts(slug)
        except ValueError:
            logger.warning(f"Invalid slug rejected: {slug[:50]!r}")
            return jsonify({"error": "Invalid slug"}), 400
        return jsonify(counts), 200

    @app.route("/.well-known/host-meta", methods=["GET"])
    @app.route("/.well-known/host-meta.json", methods=["GET"])
    @app.route("/.well-known/webfinger", methods=["GET"])
    def well_known_redirect():
        location = f"{BRIDGE_BASE_URL}{request.path}"
        query = request.query_string.decode("utf-8", errors="replace")
        if query and request.path == "/.well-known/webfinger":
            location = f"{location}?{query}"
        logger.debug(f"Redirecting {request.path} to {location}")
        return redirect(location, code=302)

    @app.route("/.well-known/atproto-did", methods=["GET"])
    def atproto_did_redirect():
        host = urlparse(site_root()).hostname or request.host
        return redirect(
            f"{BRIDGE_BASE_URL}/.well-known/atproto-did?protocol=web&id={quote(host, safe='')}",
            code=302,
        )

    @app.route("/@<username>", methods=["GET"])
    def profile_redirect(username: str):
        return redirect(f"{BRIDGE_BASE_URL}/r/{site_root()}", code=302)

    @app.route("/health", methods=["GET"])
    def health_check():
        """Health check endpoint for monitoring and load balancers.

        Example:
            $ curl http://localhost:5000/health
            {"status": "healthy"}
        """
        return jsonify({"status": "healthy"}), 200

    return app
