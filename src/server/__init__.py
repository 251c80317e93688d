"""fedbridge HTTP server package.

Key Components:
    create_app: Flask application factory wiring the webmention pipeline,
                the webmention API and the bridge redirects

Endpoints:
    POST /webmention: Receives webmentions from the federation bridge
    GET /api/webmentions/<slug>: Stored webmentions for a page
    GET /health: Health check endpoint for monitoring

Usage:
    Start the server:
        $ fedbridge

    Test with curl:
        $ curl -X POST http://localhost:5000/webmention \
               -d source=https://fed.brid.gy/r/https://mastodon.social/@alice/1 \
               -d target=https://example.com/blog/post-1
"""
from .app import create_app

__all__ = ["create_app"]
