"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
raffle indexer, loading and validating environment variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


def _validate_http_url(v: str | None) -> str | None:
    if v is None:
        return v
    if not v.startswith(("http://", "https://")):
        raise ValueError(f"{v!r} is not an HTTP(S) URL")
    return v


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings (optional block-header cache)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="redis://localhost:6379",
        alias="REDIS_URL",
        description="Redis connection string",
    )
    enabled: bool = Field(
        default=False,
        alias="REDIS_ENABLED",
        description="Cache immutable RPC responses (block headers) in Redis",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith("redis://"):
            raise ValueError("REDIS_URL must start with redis://")
        return v


class RpcSettings(BaseSettings):
    """Shared RPC client behaviour (applies to every chain)."""

    model_config = SettingsConfigDict(env_prefix="RPC_", extra="ignore")

    max_requests_per_second: float = Field(
        default=25,
        alias="RPC_MAX_REQUESTS_PER_SECOND",
        gt=0,
        le=10_000,
        description="Token-bucket rate limit per chain client",
    )
    max_retries: int = Field(
        default=3,
        alias="RPC_MAX_RETRIES",
        ge=1,
        le=10,
        description="Attempts per endpoint before failing over",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        alias="RPC_RETRY_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Initial backoff delay (doubles per attempt)",
    )
    request_timeout_seconds: int = Field(
        default=30,
        alias="RPC_REQUEST_TIMEOUT_SECONDS",
        ge=1,
        le=300,
        description="HTTP timeout for a single JSON-RPC request",
    )
    cache_ttl_seconds: int = Field(
        default=3600,
        alias="RPC_CACHE_TTL_SECONDS",
        ge=1,
        description="Redis TTL for cached block headers",
    )


class ChainRpcOverrides(BaseSettings):
    """Per-chain RPC endpoint overrides.

    Each field maps to the environment variable operators already use for
    that chain; unset fields fall back to the network's public endpoint.
    """

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    ethereum: str | None = Field(default=None, alias="ETHEREUM_RPC_URL")
    optimism: str | None = Field(default=None, alias="OPTIMISM_RPC_URL")
    bsc: str | None = Field(default=None, alias="BSC_RPC_URL")
    bsc_testnet: str | None = Field(default=None, alias="BSC_TESTNET_RPC_URL")
    avalanche_fuji: str | None = Field(default=None, alias="AVALANCHE_FUJI_RPC_URL")
    avalanche: str | None = Field(default=None, alias="AVALANCHE_RPC_URL")
    base: str | None = Field(default=None, alias="BASE_RPC_URL")
    base_sepolia: str | None = Field(default=None, alias="BASE_SEPOLIA_RPC_URL")
    ethereum_sepolia: str | None = Field(default=None, alias="ETHEREUM_SEPOLIA_RPC_URL")
    optimism_sepolia: str | None = Field(default=None, alias="OPTIMISM_SEPOLIA_RPC_URL")
    ronin: str | None = Field(default=None, alias="RONIN_RPC_URL")
    ronin_saigon: str | None = Field(default=None, alias="RONIN_SAIGON_RPC_URL")
    arbitrum: str | None = Field(default=None, alias="ARBITRUM_RPC_URL")
    arbitrum_sepolia: str | None = Field(default=None, alias="ARBITRUM_SEPOLIA_RPC_URL")

    @field_validator("*")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        return _validate_http_url(v)

    def url_for_env_var(self, env_var: str) -> str | None:
        """Return the override configured under ``env_var``, if any."""
        for name, field in type(self).model_fields.items():
            if field.alias == env_var:
                value: str | None = getattr(self, name)
                return value
        return None


class IndexerSettings(BaseSettings):
    """Event indexer and reconciler settings."""

    model_config = SettingsConfigDict(env_prefix="INDEXER_", extra="ignore")

    logs_chunk_size_blocks: int = Field(
        default=10_000,
        alias="INDEXER_LOGS_CHUNK_SIZE_BLOCKS",
        ge=1,
        le=500_000,
        description="Block chunk size for eth_getLogs scans",
    )
    pool_concurrency: int = Field(
        default=5,
        alias="INDEXER_POOL_CONCURRENCY",
        ge=1,
        le=100,
        description="Per-pool / per-collection indexers run concurrently at most",
    )
    reconcile_batch_size: int = Field(
        default=50,
        alias="INDEXER_RECONCILE_BATCH_SIZE",
        ge=1,
        le=1000,
        description="Pools checked per reconciler run",
    )
    external_collection_stale_hours: int = Field(
        default=24,
        alias="INDEXER_EXTERNAL_COLLECTION_STALE_HOURS",
        ge=1,
        le=24 * 30,
        description="Refresh external collections not synced within this window",
    )


class DriverSettings(BaseSettings):
    """Invocation driver (ticker) and orchestrator lease settings."""

    model_config = SettingsConfigDict(env_prefix="DRIVER_", extra="ignore")

    chain_id: int = Field(
        default=84532,
        alias="DRIVER_CHAIN_ID",
        description="Chain indexed by the orchestrator when none is given",
    )
    ticks_per_run: int = Field(
        default=4,
        alias="DRIVER_TICKS_PER_RUN",
        ge=1,
        le=60,
        description="Orchestrator invocations per trigger",
    )
    tick_interval_seconds: float = Field(
        default=10.0,
        alias="DRIVER_TICK_INTERVAL_SECONDS",
        ge=0.0,
        le=3600.0,
        description="Sleep between consecutive ticks",
    )
    call_timeout_seconds: float = Field(
        default=55.0,
        alias="DRIVER_CALL_TIMEOUT_SECONDS",
        gt=0.0,
        le=3600.0,
        description="Upper bound for a single orchestrator invocation",
    )
    lease_seconds: int = Field(
        default=90,
        alias="DRIVER_LEASE_SECONDS",
        ge=1,
        le=86_400,
        description="Orchestrator lease duration; a crashed holder's lease expires after this",
    )


class ArtworkSettings(BaseSettings):
    """Prize artwork resolver settings."""

    model_config = SettingsConfigDict(env_prefix="ARTWORK_", extra="ignore")

    request_timeout_seconds: float = Field(
        default=5.0,
        alias="ARTWORK_REQUEST_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
        description="Per-URL HTTP timeout",
    )
    ipfs_gateway_list: str = Field(
        default="https://ipfs.io,https://gateway.pinata.cloud,https://cloudflare-ipfs.com",
        alias="ARTWORK_IPFS_GATEWAYS",
        description="IPFS/IPNS gateway hosts, tried in order (comma-separated)",
    )
    arweave_gateway: str = Field(
        default="https://arweave.net",
        alias="ARTWORK_ARWEAVE_GATEWAY",
        description="Arweave gateway host",
    )

    @field_validator("ipfs_gateway_list")
    @classmethod
    def validate_gateways(cls, v: str) -> str:
        """Validate that every gateway is an HTTP(S) host."""
        for gateway in v.split(","):
            if gateway.strip():
                _validate_http_url(gateway.strip())
        return v

    @property
    def ipfs_gateways(self) -> tuple[str, ...]:
        return tuple(g.strip().rstrip("/") for g in self.ipfs_gateway_list.split(",") if g.strip())


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from raffle_indexer.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    rpc: RpcSettings = Field(
        default_factory=lambda: RpcSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    rpc_overrides: ChainRpcOverrides = Field(
        default_factory=lambda: ChainRpcOverrides(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    indexer: IndexerSettings = Field(
        default_factory=lambda: IndexerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    driver: DriverSettings = Field(
        default_factory=lambda: DriverSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    artwork: ArtworkSettings = Field(
        default_factory=lambda: ArtworkSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        overrides = {
            field.alias or name: self._redact_url(value)
            for name, field in type(self.rpc_overrides).model_fields.items()
            if (value := getattr(self.rpc_overrides, name))
        }
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url),
            "redis_enabled": str(self.redis.enabled),
            "rpc": {
                "max_requests_per_second": str(self.rpc.max_requests_per_second),
                "max_retries": str(self.rpc.max_retries),
            },
            "rpc_overrides": overrides,
            "indexer": {
                "logs_chunk_size_blocks": str(self.indexer.logs_chunk_size_blocks),
                "pool_concurrency": str(self.indexer.pool_concurrency),
                "reconcile_batch_size": str(self.indexer.reconcile_batch_size),
            },
            "driver": {
                "chain_id": str(self.driver.chain_id),
                "ticks_per_run": str(self.driver.ticks_per_run),
                "tick_interval_seconds": str(self.driver.tick_interval_seconds),
                "lease_seconds": str(self.driver.lease_seconds),
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
