"""
Configuration Module for fedbridge.

This module provides configuration loading and management for the fedbridge
application. Configuration is loaded from config.yml and mapped once into a
typed BridgeConfig structure, so every recognised option and its default
lives in exactly one place.

Usage:
    >>> from config import load_config, BridgeConfig
    >>> settings = BridgeConfig.from_dict(load_config())
    >>> if settings.rate_limit.enabled:
    ...     # Enforce the per-client sliding window
"""
import os
import yaml
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional


logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = "./data/bridgyfed"
DEFAULT_ALLOWED_SOURCES = ["fed.brid.gy", "brid.gy"]
DEFAULT_BRIDGY_FED_ENDPOINT = "https://fed.brid.gy/webmention"
DEFAULT_BRIDGY_FED_TARGET = "https://fed.brid.gy/"
DEFAULT_WEBMENTION_PATH = "/webmention"
DEFAULT_PAGES_FILE = "./pages.yml"

SORT_ORDERS = ("asc", "desc")
PARSER_STRATEGIES = ("mf2", "fallback")


@dataclass
class RateLimitConfig:
    """Per-client sliding window settings."""
    enabled: bool = True
    max_requests: int = 10
    window_seconds: int = 60
    sweep_interval_seconds: Optional[int] = None

    @property
    def effective_sweep_interval(self) -> int:
        return self.sweep_interval_seconds or self.window_seconds * 2


@dataclass
class FetchConfig:
    """Limits applied when fetching a webmention source."""
    timeout: float = 5.0
    max_content_size: int = 1_048_576
    max_redirects: int = 5
    block_private_addresses: bool = True


@dataclass
class SanitizerConfig:
    enabled: bool = True
    max_content_length: int = 2000


@dataclass
class SendConfig:
    """Outbound notification settings for the federation bridge."""
    bridge_endpoint: str = DEFAULT_BRIDGY_FED_ENDPOINT
    bridge_target: str = DEFAULT_BRIDGY_FED_TARGET
    max_post_age_days: int = 14
    timeout: float = 10.0


@dataclass
class SiteConfig:
    url: str = ""
    languages: List[str] = field(default_factory=list)
    pages_file: str = DEFAULT_PAGES_FILE


@dataclass
class BridgeConfig:
    """Typed view over config.yml.

    Attributes:
        storage_path: Directory holding webmention documents and rate limit records
        allowed_sources: Hosts (or parent domains) allowed to send webmentions
        rate_limit: Sliding window settings
        fetch: Source fetch limits
        sanitizer: Content sanitization settings
        send: Federation bridge settings
        site: Local site settings used for target lookup and redirects
        parser_strategy: "mf2" (structured parser) or "fallback" (regex)
        sort_order: "asc" or "desc" display order for stored webmentions
        cache_enabled: Whether saves emit a cache invalidation signal
        webmention_path: Local path of the receiving endpoint
        cors_enabled: Whether CORS headers are added
        cors_origins: Allowed CORS origins
    """
    storage_path: str = DEFAULT_STORAGE_PATH
    allowed_sources: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_SOURCES))
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    sanitizer: SanitizerConfig = field(default_factory=SanitizerConfig)
    send: SendConfig = field(default_factory=SendConfig)
    site: SiteConfig = field(default_factory=SiteConfig)
    parser_strategy: str = "mf2"
    sort_order: str = "desc"
    cache_enabled: bool = True
    webmention_path: str = DEFAULT_WEBMENTION_PATH
    cors_enabled: bool = False
    cors_origins: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> "BridgeConfig":
        """Build a typed configuration from the raw config.yml mapping.

        Missing keys take the dataclass defaults. Values of the wrong type or
        outside their allowed range are logged and replaced by the default.

        Args:
            config: Dictionary returned by load_config() (may be None)

        Returns:
            Fully populated BridgeConfig
        """
        config = config or {}
        defaults = cls()

        storage = _section(config, "storage")
        security = _section(config, "security")
        rate = _section(security, "rate_limit")
        display = _section(config, "display")
        parser = _section(config, "parser")
        cache = _section(config, "cache")
        advanced = _section(config, "advanced")
        webmention = _section(config, "webmention")
        site = _section(config, "site")
        cors = _section(config, "cors")

        rate_limit = RateLimitConfig(
            enabled=_bool(rate, "enabled", defaults.rate_limit.enabled),
            max_requests=_positive_int(rate, "max_requests", defaults.rate_limit.max_requests),
            window_seconds=_positive_int(rate, "window_seconds", defaults.rate_limit.window_seconds),
            sweep_interval_seconds=_positive_int(
                rate, "sweep_interval_seconds", defaults.rate_limit.sweep_interval_seconds
            ),
        )
        fetch = FetchConfig(
            timeout=_positive_float(security, "fetch_timeout", defaults.fetch.timeout),
            max_content_size=_positive_int(security, "max_content_size", defaults.fetch.max_content_size),
            max_redirects=_positive_int(security, "max_redirects", defaults.fetch.max_redirects),
            block_private_addresses=_bool(
                security, "block_private_addresses", defaults.fetch.block_private_addresses
            ),
        )
        sanitizer = SanitizerConfig(
            enabled=_bool(security, "sanitize_html", defaults.sanitizer.enabled),
            max_content_length=_positive_int(
                security, "max_content_length", defaults.sanitizer.max_content_length
            ),
        )
        send = SendConfig(
            bridge_endpoint=str(webmention.get("bridgy_fed_endpoint") or defaults.send.bridge_endpoint),
            bridge_target=str(webmention.get("bridgy_fed_target") or defaults.send.bridge_target),
            max_post_age_days=_positive_int(advanced, "max_post_age_days", defaults.send.max_post_age_days),
            timeout=_positive_float(webmention, "send_timeout", defaults.send.timeout),
        )

        languages = site.get("languages") or []
        if not isinstance(languages, list):
            logger.warning(f"Invalid site.languages {languages!r}; expected a list")
            languages = []
        site_config = SiteConfig(
            url=str(site.get("url") or defaults.site.url).rstrip("/"),
            languages=[str(lang).strip("/") for lang in languages if str(lang).strip("/")],
            pages_file=str(site.get("pages_file") or defaults.site.pages_file),
        )

        allowed_sources = security.get("allowed_sources", defaults.allowed_sources)
        if not isinstance(allowed_sources, list):
            logger.warning(f"Invalid security.allowed_sources {allowed_sources!r}; using defaults")
            allowed_sources = defaults.allowed_sources

        order = str(display.get("replies_order", defaults.sort_order)).lower()
        if order not in SORT_ORDERS:
            logger.warning(f"Invalid display.replies_order {order!r}; falling back to {defaults.sort_order}")
            order = defaults.sort_order

        strategy = str(parser.get("strategy", defaults.parser_strategy)).lower()
        if strategy not in PARSER_STRATEGIES:
            logger.warning(f"Unknown parser.strategy {strategy!r}; falling back to {defaults.parser_strategy}")
            strategy = defaults.parser_strategy

        path = str(webmention.get("endpoint") or defaults.webmention_path)
        if not path.startswith("/"):
            path = "/" + path

        cors_origins = cors.get("origins") or defaults.cors_origins

        return cls(
            storage_path=str(storage.get("path") or defaults.storage_path),
            allowed_sources=[str(s).strip().lower() for s in allowed_sources if str(s).strip()],
            rate_limit=rate_limit,
            fetch=fetch,
            sanitizer=sanitizer,
            send=send,
            site=site_config,
            parser_strategy=strategy,
            sort_order=order,
            cache_enabled=_bool(cache, "enabled", defaults.cache_enabled),
            webmention_path=path,
            cors_enabled=_bool(cors, "enabled", defaults.cors_enabled),
            cors_origins=list(cors_origins) if isinstance(cors_origins, list) else defaults.cors_origins,
        )


def _section(config: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = config.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning(f"Configuration section '{key}' must be a mapping, ignoring {value!r}")
        return {}
    return value


def _bool(section: Dict[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "1", "yes", "false", "0", "no"):
        return value.lower() in ("true", "1", "yes")
    logger.warning(f"Invalid boolean for '{key}': {value!r}; using {default}")
    return default


def _positive_int(section: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    value = section.get(key, default)
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer for '{key}': {value!r}; using {default}")
        return default
    if number <= 0:
        logger.warning(f"'{key}' must be positive, got {number}; using {default}")
        return default
    return number


def _positive_float(section: Dict[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid number for '{key}': {value!r}; using {default}")
        return default
    if number <= 0:
        logger.warning(f"'{key}' must be positive, got {number}; using {default}")
        return default
    return number


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from config.yml file.

    Args:
        config_path: Path to config.yml file. If None, looks in the current
                    directory, its parents, and the FEDBRIDGE_CONFIG
                    environment variable.

    Returns:
        Dictionary containing configuration settings

    Example:
        >>> config = load_config()
        >>> allowed = config.get("security", {}).get("allowed_sources", [])
    """
    if config_path is None:
        config_path = os.environ.get("FEDBRIDGE_CONFIG") or None

    if config_path is None:
        # Try to find config.yml in current directory or parent directories
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            candidate = parent / "config.yml"
            if candidate.exists():
                config_path = str(candidate)
                break

    if config_path is None:
        logger.warning("config.yml not found, using default configuration")
        return get_default_config()

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
            if not isinstance(config, dict):
                logger.warning("Configuration root must be a mapping, using default configuration")
                return get_default_config()
            logger.info(f"Loaded configuration from {config_path}")
            return config
    except FileNotFoundError:
        logger.warning(f"Configuration file not found: {config_path}")
        return get_default_config()
    except yaml.YAMLError as e:
        logger.error(f"Error parsing configuration file: {e}")
        return get_default_config()


def get_default_config() -> Dict[str, Any]:
    """Return default configuration when config.yml is not available.

    The mapping has the config.yml layout and is derived from the BridgeConfig
    dataclass defaults, so BridgeConfig.from_dict(get_default_config()) equals
    BridgeConfig().

    Returns:
        Dictionary with default configuration values
    """
    defaults = BridgeConfig()
    return {
        "storage": {"path": defaults.storage_path},
        "site": {
            "url": defaults.site.url,
            "languages": list(defaults.site.languages),
            "pages_file": defaults.site.pages_file,
        },
        "security": {
            "allowed_sources": list(defaults.allowed_sources),
            "rate_limit": {
                "enabled": defaults.rate_limit.enabled,
                "max_requests": defaults.rate_limit.max_requests,
                "window_seconds": defaults.rate_limit.window_seconds,
            },
            "fetch_timeout": defaults.fetch.timeout,
            "max_content_size": defaults.fetch.max_content_size,
            "max_redirects": defaults.fetch.max_redirects,
            "block_private_addresses": defaults.fetch.block_private_addresses,
            "sanitize_html": defaults.sanitizer.enabled,
            "max_content_length": defaults.sanitizer.max_content_length,
        },
        "parser": {"strategy": defaults.parser_strategy},
        "display": {"replies_order": defaults.sort_order},
        "cache": {"enabled": defaults.cache_enabled},
        "advanced": {"max_post_age_days": defaults.send.max_post_age_days},
        "webmention": {
            "endpoint": defaults.webmention_path,
            "bridgy_fed_endpoint": defaults.send.bridge_endpoint,
            "bridgy_fed_target": defaults.send.bridge_target,
            "send_timeout": defaults.send.timeout,
        },
        "cors": {
            "enabled": defaults.cors_enabled,
            "origins": list(defaults.cors_origins),
        },
    }
