"""
Unit Tests for Configuration Module.

This test suite validates configuration loading and the typed BridgeConfig
view, including fallback to defaults for invalid values.
"""
import os
import tempfile
from unittest.mock import patch

from config import (
    BridgeConfig,
    DEFAULT_BRIDGY_FED_ENDPOINT,
    get_default_config,
    load_config,
)


def test_get_default_config():
    """Test default configuration values."""
    config = get_default_config()

    assert config["storage"]["path"] == "./data/bridgyfed"
    assert config["security"]["allowed_sources"] == ["fed.brid.gy", "brid.gy"]
    assert config["security"]["rate_limit"]["max_requests"] == 10
    assert config["cors"]["enabled"] is False


def test_default_config_matches_dataclass_defaults():
    """The fallback mapping and an empty file produce the same settings."""
    assert BridgeConfig.from_dict(get_default_config()) == BridgeConfig()
    assert BridgeConfig.from_dict({}) == BridgeConfig()


def test_invalid_values_fall_back_to_dataclass_defaults():
    settings = BridgeConfig.from_dict({
        "security": {"rate_limit": {"max_requests": -1}, "fetch_timeout": "slow", "max_content_length": 0},
        "advanced": {"max_post_age_days": "soon"},
    })
    defaults = BridgeConfig()
    assert settings.rate_limit.max_requests == defaults.rate_limit.max_requests
    assert settings.fetch.timeout == defaults.fetch.timeout
    assert settings.sanitizer.max_content_length == defaults.sanitizer.max_content_length
    assert settings.send.max_post_age_days == defaults.send.max_post_age_days


def test_load_config_from_project_root():
    """Test loading config.yml from project root."""
    config = load_config()

    assert "security" in config
    assert "allowed_sources" in config["security"]


def test_load_config_with_explicit_path():
    """Test loading config from explicit path."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yml", delete=False) as f:
        f.write("""
storage:
  path: /var/lib/fedbridge
security:
  allowed_sources:
    - fed.brid.gy
""")
        temp_path = f.name

    try:
        config = load_config(temp_path)
        assert config["storage"]["path"] == "/var/lib/fedbridge"
        assert config["security"]["allowed_sources"] == ["fed.brid.gy"]
    finally:
        os.unlink(temp_path)


def test_load_config_from_environment(tmp_path):
    """FEDBRIDGE_CONFIG points at the config file when no path is given."""
    path = tmp_path / "custom.yml"
    path.write_text("storage:\n  path: /srv/bridge\n")

    with patch.dict(os.environ, {"FEDBRIDGE_CONFIG": str(path)}):
        config = load_config()

    assert config["storage"]["path"] == "/srv/bridge"


def test_load_config_file_not_found():
    """Test loading config when file doesn't exist."""
    config = load_config("/nonexistent/path/config.yml")

    assert config == get_default_config()


def test_load_config_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yml"
    path.write_text("storage: [unclosed\n")

    assert load_config(str(path)) == get_default_config()


def test_load_config_non_mapping_root(tmp_path):
    path = tmp_path / "list.yml"
    path.write_text("- just\n- a list\n")

    assert load_config(str(path)) == get_default_config()


class TestBridgeConfig:
    """Test suite for the typed configuration view."""

    def test_defaults_from_empty_config(self):
        settings = BridgeConfig.from_dict({})

        assert settings.storage_path == "./data/bridgyfed"
        assert settings.allowed_sources == ["fed.brid.gy", "brid.gy"]
        assert settings.rate_limit.enabled is True
        assert settings.rate_limit.max_requests == 10
        assert settings.rate_limit.window_seconds == 60
        assert settings.rate_limit.effective_sweep_interval == 120
        assert settings.fetch.timeout == 5.0
        assert settings.fetch.max_content_size == 1048576
        assert settings.fetch.max_redirects == 5
        assert settings.fetch.block_private_addresses is True
        assert settings.sanitizer.enabled is True
        assert settings.sanitizer.max_content_length == 2000
        assert settings.send.bridge_endpoint == DEFAULT_BRIDGY_FED_ENDPOINT
        assert settings.send.max_post_age_days == 14
        assert settings.send.timeout == 10.0
        assert settings.parser_strategy == "mf2"
        assert settings.sort_order == "desc"
        assert settings.cache_enabled is True
        assert settings.webmention_path == "/webmention"
        assert settings.cors_enabled is False

    def test_none_config(self):
        assert BridgeConfig.from_dict(None) == BridgeConfig()

    def test_full_config(self):
        settings = BridgeConfig.from_dict({
            "storage": {"path": "/data"},
            "security": {
                "allowed_sources": ["Fed.Brid.Gy "],
                "rate_limit": {"enabled": False, "max_requests": 3, "window_seconds": 10,
                               "sweep_interval_seconds": 5},
                "fetch_timeout": 2,
                "max_content_size": 1000,
                "max_redirects": 2,
                "block_private_addresses": False,
                "sanitize_html": False,
                "max_content_length": 50,
            },
            "parser": {"strategy": "fallback"},
            "display": {"replies_order": "ASC"},
            "cache": {"enabled": False},
            "advanced": {"max_post_age_days": 7},
            "webmention": {
                "endpoint": "incoming/webmention",
                "bridgy_fed_endpoint": "https://bridge.example/webmention",
                "send_timeout": 3,
            },
            "site": {"url": "https://example.com/", "languages": ["en", "/de/"], "pages_file": "/p.yml"},
            "cors": {"enabled": True, "origins": ["https://example.com"]},
        })

        assert settings.storage_path == "/data"
        assert settings.allowed_sources == ["fed.brid.gy"]
        assert settings.rate_limit.enabled is False
        assert settings.rate_limit.max_requests == 3
        assert settings.rate_limit.effective_sweep_interval == 5
        assert settings.fetch.timeout == 2.0
        assert settings.fetch.max_content_size == 1000
        assert settings.fetch.block_private_addresses is False
        assert settings.sanitizer.enabled is False
        assert settings.sanitizer.max_content_length == 50
        assert settings.parser_strategy == "fallback"
        assert settings.sort_order == "asc"
        assert settings.cache_enabled is False
        assert settings.send.max_post_age_days == 7
        assert settings.send.bridge_endpoint == "https://bridge.example/webmention"
        assert settings.send.timeout == 3.0
        assert settings.webmention_path == "/incoming/webmention"
        assert settings.site.url == "https://example.com"
        assert settings.site.languages == ["en", "de"]
        assert settings.site.pages_file == "/p.yml"
        assert settings.cors_enabled is True
        assert settings.cors_origins == ["https://example.com"]

    def test_invalid_values_fall_back_to_defaults(self):
        settings = BridgeConfig.from_dict({
            "security": {
                "rate_limit": {"max_requests": 0, "window_seconds": "soon"},
                "fetch_timeout": -1,
                "allowed_sources": "fed.brid.gy",
            },
            "display": {"replies_order": "random"},
            "parser": {"strategy": "lxml"},
            "site": {"languages": "en"},
        })

        assert settings.rate_limit.max_requests == 10
        assert settings.rate_limit.window_seconds == 60
        assert settings.fetch.timeout == 5.0
        assert settings.allowed_sources == ["fed.brid.gy", "brid.gy"]
        assert settings.sort_order == "desc"
        assert settings.parser_strategy == "mf2"
        assert settings.site.languages == []
