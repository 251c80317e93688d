"""
fedbridge entry point.

Embeds Gunicorn to serve the webmention Flask app, which:
1. Receives webmentions from the federation bridge (POST /webmention)
2. Rate limits, validates, fetches and parses each source
3. Stores sanitized webmentions per page slug
4. Serves stored webmentions (GET /api/webmentions/<slug>)
5. Redirects WebFinger / host-meta / atproto-did lookups to the bridge

A RateLimitSweeper thread runs in each worker and removes expired rate limit
records.

Example:
    Run via console script:
        $ fedbridge
        Starting Gunicorn for fedbridge
        Gunicorn server is ready to accept webmentions
"""

import logging
import os
import runpy
import sys
from logging.handlers import RotatingFileHandler

logger = logging.getLogger(__name__)

LOG_FILE = "fedbridge.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(debug: bool = False, log_file: str = LOG_FILE) -> None:
    """Configure the root logger with a rotating file and stdout.

    Args:
        debug: Log at DEBUG instead of INFO
        log_file: Path of the rotating log file (10MB, 3 backups)
    """
    log_level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear any existing handlers to avoid duplicates (e.g., from gunicorn)
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    log_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3
    )
    log_handler.setLevel(log_level)
    log_handler.setFormatter(formatter)
    root_logger.addHandler(log_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def is_debug_enabled(argv=None) -> bool:
    """Debug is on with --debug or FEDBRIDGE_DEBUG=true/1/yes."""
    argv = sys.argv[1:] if argv is None else argv
    if "--debug" in argv:
        return True
    return os.environ.get("FEDBRIDGE_DEBUG", "").lower() in ("true", "1", "yes")


def main(debug: bool = False) -> None:
    """Main entry point for the fedbridge console command.

    Args:
        debug: Enable debug logging and disable the worker timeout for
               breakpoint debugging. Can be set via --debug flag or the
               FEDBRIDGE_DEBUG environment variable.

    Gunicorn Configuration (src/server/gunicorn_config.py):
        - One gthread worker with 4 threads, logs to stdout/stderr
        - 30s worker timeout (0 in debug mode)
    """
    from gunicorn.app.base import BaseApplication

    from config import BridgeConfig, load_config
    from indieweb import RateLimiter, RateLimitSweeper
    from server import create_app

    debug = debug or is_debug_enabled()
    configure_logging(debug)

    if debug:
        logger.info("Debug mode enabled: verbose logging and worker timeout disabled for breakpoint debugging")

    logger.info("Loading configuration from config.yml")
    config = load_config()
    settings = BridgeConfig.from_dict(config)

    rate_limiter = RateLimiter.from_config(settings.rate_limit, settings.storage_path)
    if settings.rate_limit.enabled:
        logger.info(
            f"  - Rate limit: {settings.rate_limit.max_requests} requests per "
            f"{settings.rate_limit.window_seconds}s"
        )
    else:
        logger.info("  - Rate limiting disabled")

    app = create_app(config, rate_limiter=rate_limiter)

    config_path = os.path.join(os.path.dirname(__file__), "..", "server", "gunicorn_config.py")

    class StandaloneApplication(BaseApplication):
        """Custom Gunicorn application for embedding within the fedbridge entry point."""

        def __init__(self, app, options=None):
            self.options = options or {}
            self.application = app
            super().__init__()

        def load_config(self):
            config_file = self.options.get("config")
            if config_file:
                self.cfg.set("config", config_file)
                for key, value in runpy.run_path(config_file).items():
                    if key in self.cfg.settings and value is not None:
                        self.cfg.set(key.lower(), value)

            def post_worker_init_hook(worker):
                """Start the rate limit sweeper after worker initialization."""
                if not settings.rate_limit.enabled:
                    return
                sweeper = RateLimitSweeper(rate_limiter, settings.rate_limit.effective_sweep_interval)
                sweeper.start()
                worker.log.info(f"Rate limit sweeper started in worker {worker.pid}")

            self.cfg.set("post_worker_init", post_worker_init_hook)

            if self.options.get("debug"):
                self.cfg.set("timeout", 0)

        def load(self):
            return self.application

    options = {
        "config": config_path,
        "debug": debug,
    }
    StandaloneApplication(app, options).run()


# Allow running as a script for development/testing
if __name__ == "__main__":
    main()
