"""
Configuration management for docsync.

All configuration is done via environment variables. This module provides
typed configuration sections with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Access tokens and webhook passwords are never logged
    - Sections are immutable once loaded

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Parse every new variable in the section's from_env()
    - Extend ServiceConfig.validate() for cross-section rules
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported storage engines."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    REMOTE = "remote"
    LAZY = "lazy"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def parse_fallbacks(value: str | None) -> dict[str, str]:
    """Parse a fallback chain like ``es-MX:es-US,es-US:en-US``.

    Raises:
        ValueError: If a pair is not of the form locale:fallback
    """
    fallbacks: dict[str, str] = {}
    for pair in (value or "").split(","):
        pair = pair.strip()
        if not pair:
            continue
        locale, sep, fallback = pair.partition(":")
        if not sep or not locale.strip() or not fallback.strip():
            raise ValueError(f"Invalid locale fallback '{pair}'. Expected locale:fallback")
        fallbacks[locale.strip()] = fallback.strip()
    return fallbacks


@dataclass(frozen=True)
class RemoteConfig:
    """Remote content API configuration.

    Attributes:
        space: Space identifier
        environment: Environment name (None for the default environment)
        access_token: Delivery API access token
        base_url: API host
        timeout_seconds: Per-request timeout
        retry_limit: Retries for rate limits and transient failures
        retry_wait_seconds: Initial retry backoff, doubled per retry
        max_retry_wait_seconds: Upper bound for a single backoff
    """

    space: str = ""
    environment: str | None = None
    access_token: str = ""
    base_url: str = "https://cdn.contentful.com"
    timeout_seconds: float = 10.0
    retry_limit: int = 3
    retry_wait_seconds: float = 1.0
    max_retry_wait_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> RemoteConfig:
        """Load configuration from environment variables."""
        return cls(
            space=os.getenv("CONTENT_SPACE", ""),
            environment=os.getenv("CONTENT_ENVIRONMENT") or None,
            access_token=os.getenv("CONTENT_ACCESS_TOKEN", ""),
            base_url=os.getenv("CONTENT_BASE_URL", "https://cdn.contentful.com"),
            timeout_seconds=float(os.getenv("CONTENT_TIMEOUT_SECONDS", "10")),
            retry_limit=int(os.getenv("CONTENT_RETRY_LIMIT", "3")),
            retry_wait_seconds=float(os.getenv("CONTENT_RETRY_WAIT_SECONDS", "1")),
            max_retry_wait_seconds=float(os.getenv("CONTENT_MAX_RETRY_WAIT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        sqlite_path: Database file for the sqlite backend
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
        cache_size_pages: SQLite cache size in pages (negative = KB)
    """

    sqlite_path: str = "/var/lib/docsync/content.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    cache_size_pages: int = -16000  # 16MB

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            sqlite_path=os.getenv("SQLITE_PATH", "/var/lib/docsync/content.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
            cache_size_pages=int(os.getenv("SQLITE_CACHE_SIZE", "-16000")),
        )


@dataclass(frozen=True)
class CacheConfig:
    """Document cache configuration.

    Attributes:
        enabled: Whether the caching middleware wraps local backends
        ttl_seconds: Lifetime of cached documents
        max_entries: Size bound for the cache (0 = unbounded)
    """

    enabled: bool = False
    ttl_seconds: float = 300.0
    max_entries: int = 0

    @classmethod
    def from_env(cls) -> CacheConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("CACHE_ENABLED", "false"),
            ttl_seconds=float(os.getenv("CACHE_TTL_SECONDS", "300")),
            max_entries=int(os.getenv("CACHE_MAX_ENTRIES", "0")),
        )


@dataclass(frozen=True)
class LocaleConfig:
    """Locale configuration.

    Attributes:
        default_locale: Locale used when a read names none
        fallbacks: Map of locale to the locale tried next
    """

    default_locale: str = "en-US"
    fallbacks: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> LocaleConfig:
        """Load configuration from environment variables."""
        return cls(
            default_locale=os.getenv("DEFAULT_LOCALE", "en-US"),
            fallbacks=parse_fallbacks(os.getenv("LOCALE_FALLBACKS")),
        )


@dataclass(frozen=True)
class SyncConfig:
    """Sync engine configuration.

    Attributes:
        retry_limit: Delayed retries scheduled when a webhook id is not yet visible
        retry_wait_seconds: Delay before the first retry, doubled per attempt
        state_key: Reserved document id holding the sync token
        initial_sync: Run one sync cycle on startup
    """

    retry_limit: int = 2
    retry_wait_seconds: float = 2.0
    state_key: str = "sync:token"
    initial_sync: bool = True

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load configuration from environment variables."""
        return cls(
            retry_limit=int(os.getenv("SYNC_RETRY_LIMIT", "2")),
            retry_wait_seconds=float(os.getenv("SYNC_RETRY_WAIT_SECONDS", "2")),
            state_key=os.getenv("SYNC_STATE_KEY", "sync:token"),
            initial_sync=_env_bool("SYNC_ON_START", "true"),
        )


@dataclass(frozen=True)
class WebhookConfig:
    """Webhook receiver configuration.

    Attributes:
        enabled: Whether the HTTP receiver is started
        host: Bind host
        port: Bind port
        username: Basic auth username (auth disabled when unset)
        password: Basic auth password
    """

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080
    username: str | None = None
    password: str | None = None

    @property
    def auth_enabled(self) -> bool:
        return bool(self.username)

    @classmethod
    def from_env(cls) -> WebhookConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("WEBHOOK_ENABLED", "true"),
            host=os.getenv("WEBHOOK_HOST", "0.0.0.0"),
            port=int(os.getenv("WEBHOOK_PORT", "8080")),
            username=os.getenv("WEBHOOK_USERNAME") or None,
            password=os.getenv("WEBHOOK_PASSWORD") or None,
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServiceConfig:
    """Complete service configuration.

    Attributes:
        store_backend: Which storage engine holds the replica
        remote: Remote content API configuration
        storage: Local storage configuration
        cache: Document cache configuration
        locale: Locale configuration
        sync: Sync engine configuration
        webhook: Webhook receiver configuration
        observability: Logging configuration
    """

    store_backend: StoreBackend = StoreBackend.SQLITE
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    locale: LocaleConfig = field(default_factory=LocaleConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("STORE_BACKEND", "sqlite").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            valid = ", ".join(b.value for b in StoreBackend)
            raise ValueError(f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: {valid}")

        config = cls(
            store_backend=store_backend,
            remote=RemoteConfig.from_env(),
            storage=StorageConfig.from_env(),
            cache=CacheConfig.from_env(),
            locale=LocaleConfig.from_env(),
            sync=SyncConfig.from_env(),
            webhook=WebhookConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.remote.space:
            raise ValueError("CONTENT_SPACE is required")
        if not self.remote.access_token:
            raise ValueError("CONTENT_ACCESS_TOKEN is required")
        if self.store_backend == StoreBackend.SQLITE and not self.storage.sqlite_path:
            raise ValueError("SQLITE_PATH is required when STORE_BACKEND=sqlite")
        if self.sync.retry_limit < 0:
            raise ValueError("SYNC_RETRY_LIMIT must not be negative")
        if self.webhook.username and not self.webhook.password:
            raise ValueError("WEBHOOK_PASSWORD is required when WEBHOOK_USERNAME is set")
        if self.store_backend == StoreBackend.LAZY and self.cache.enabled:
            logger.warning(
                "CACHE_ENABLED is redundant, the lazy backend always caches",
                extra={"store_backend": self.store_backend.value},
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Service configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "space": self.remote.space,
                "environment": self.remote.environment,
                "base_url": self.remote.base_url,
                "sqlite_path": self.storage.sqlite_path
                if self.store_backend == StoreBackend.SQLITE
                else None,
                "cache_enabled": self.cache.enabled,
                "default_locale": self.locale.default_locale,
                "locale_fallbacks": self.locale.fallbacks,
                "sync_retry_limit": self.sync.retry_limit,
                "webhook_bind": f"{self.webhook.host}:{self.webhook.port}"
                if self.webhook.enabled
                else None,
                "webhook_auth": self.webhook.auth_enabled,
                "log_level": self.observability.log_level,
            },
        )
