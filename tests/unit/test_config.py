"""
Unit tests for configuration loading.

Tests cover:
- Defaults
- Environment parsing for every section
- Locale fallback parsing
- Cross-section validation
"""

import logging

import pytest

from docsync.config import (
    CacheConfig,
    LocaleConfig,
    RemoteConfig,
    ServiceConfig,
    StoreBackend,
    SyncConfig,
    WebhookConfig,
    parse_fallbacks,
)


@pytest.fixture
def required_env(monkeypatch):
    """Set the variables every configuration needs."""
    monkeypatch.setenv("CONTENT_SPACE", "space1")
    monkeypatch.setenv("CONTENT_ACCESS_TOKEN", "secret-token")
    return monkeypatch


class TestDefaults:
    """Tests for default values."""

    def test_service_defaults(self):
        config = ServiceConfig()

        assert config.store_backend == StoreBackend.SQLITE
        assert config.sync.state_key == "sync:token"
        assert config.sync.retry_limit == 2
        assert config.locale.default_locale == "en-US"
        assert not config.cache.enabled
        assert not config.webhook.auth_enabled


class TestFromEnv:
    """Tests for ServiceConfig.from_env."""

    def test_minimal(self, required_env):
        config = ServiceConfig.from_env()

        assert config.remote.space == "space1"
        assert config.remote.access_token == "secret-token"
        assert config.remote.environment is None

    def test_sections(self, required_env):
        required_env.setenv("STORE_BACKEND", "LAZY")
        required_env.setenv("CONTENT_ENVIRONMENT", "staging")
        required_env.setenv("CONTENT_RETRY_LIMIT", "5")
        required_env.setenv("CACHE_TTL_SECONDS", "60")
        required_env.setenv("CACHE_MAX_ENTRIES", "1000")
        required_env.setenv("DEFAULT_LOCALE", "es-MX")
        required_env.setenv("LOCALE_FALLBACKS", "es-MX:es-US, es-US:en-US")
        required_env.setenv("SYNC_RETRY_LIMIT", "4")
        required_env.setenv("SYNC_ON_START", "false")
        required_env.setenv("WEBHOOK_PORT", "9000")
        required_env.setenv("WEBHOOK_USERNAME", "hook")
        required_env.setenv("WEBHOOK_PASSWORD", "pw")

        config = ServiceConfig.from_env()

        assert config.store_backend == StoreBackend.LAZY
        assert config.remote.environment == "staging"
        assert config.remote.retry_limit == 5
        assert config.cache == CacheConfig(enabled=False, ttl_seconds=60.0, max_entries=1000)
        assert config.locale == LocaleConfig("es-MX", {"es-MX": "es-US", "es-US": "en-US"})
        assert config.sync.retry_limit == 4
        assert not config.sync.initial_sync
        assert config.webhook.port == 9000
        assert config.webhook.auth_enabled

    def test_sqlite_settings(self, required_env):
        required_env.setenv("SQLITE_PATH", "/tmp/docs.db")
        required_env.setenv("SQLITE_WAL_MODE", "false")

        config = ServiceConfig.from_env()

        assert config.storage.sqlite_path == "/tmp/docs.db"
        assert not config.storage.wal_mode

    def test_invalid_backend(self, required_env):
        required_env.setenv("STORE_BACKEND", "redis")

        with pytest.raises(ValueError, match="Invalid STORE_BACKEND"):
            ServiceConfig.from_env()

    def test_missing_space(self, monkeypatch):
        monkeypatch.delenv("CONTENT_SPACE", raising=False)
        monkeypatch.setenv("CONTENT_ACCESS_TOKEN", "t")

        with pytest.raises(ValueError, match="CONTENT_SPACE"):
            ServiceConfig.from_env()

    def test_section_from_env(self, monkeypatch):
        monkeypatch.setenv("CONTENT_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("SYNC_STATE_KEY", "state:main")
        monkeypatch.setenv("WEBHOOK_ENABLED", "false")

        assert RemoteConfig.from_env().timeout_seconds == 2.5
        assert SyncConfig.from_env().state_key == "state:main"
        assert not WebhookConfig.from_env().enabled


class TestParseFallbacks:
    """Tests for parse_fallbacks."""

    def test_empty(self):
        assert parse_fallbacks(None) == {}
        assert parse_fallbacks("") == {}

    def test_pairs(self):
        assert parse_fallbacks("es-MX:es-US,,es-US:en-US") == {"es-MX": "es-US", "es-US": "en-US"}

    @pytest.mark.parametrize("value", ["es-MX", "es-MX:", ":en-US"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid locale fallback"):
            parse_fallbacks(value)


class TestValidate:
    """Tests for ServiceConfig.validate."""

    def valid(self, **changes):
        defaults = {"remote": RemoteConfig(space="s", access_token="tok-secret")}
        defaults.update(changes)
        return ServiceConfig(**defaults)

    def test_valid(self):
        self.valid().validate()

    def test_missing_token(self):
        with pytest.raises(ValueError, match="CONTENT_ACCESS_TOKEN"):
            ServiceConfig(remote=RemoteConfig(space="s")).validate()

    def test_negative_retry_limit(self):
        with pytest.raises(ValueError, match="SYNC_RETRY_LIMIT"):
            self.valid(sync=SyncConfig(retry_limit=-1)).validate()

    def test_username_without_password(self):
        with pytest.raises(ValueError, match="WEBHOOK_PASSWORD"):
            self.valid(webhook=WebhookConfig(username="hook")).validate()

    def test_lazy_with_cache_warns(self, caplog):
        config = self.valid(store_backend=StoreBackend.LAZY, cache=CacheConfig(enabled=True))

        with caplog.at_level(logging.WARNING, logger="docsync.config"):
            config.validate()

        assert "redundant" in caplog.text

    def test_log_config_redacts_token(self, caplog):
        config = self.valid(webhook=WebhookConfig(username="hook", password="pw-secret"))

        with caplog.at_level(logging.INFO, logger="docsync.config"):
            config.log_config()

        assert "Service configuration loaded" in caplog.text
        for record in caplog.records:
            assert "pw-secret" not in str(record.__dict__)
            assert "tok-secret" not in str(record.__dict__)
