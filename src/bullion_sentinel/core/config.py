"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from bullion_sentinel.core.exceptions import ConfigError
from bullion_sentinel.core.models import Product, StorageBackend

RFC3339 = "rfc3339"
"""Layout name for zone-qualified ISO-8601 timestamps (any fractional digits)."""

DEFAULT_TIMESTAMP_FORMATS = (RFC3339, "%Y-%m-%dT%H:%M:%S.%f")


class SourceConfig(BaseModel):
    """Upstream quote feed configuration."""

    model_config = ConfigDict(frozen=True)

    url: str
    request_timeout: float = 10.0
    rate_limit: int = 1
    timestamp_formats: tuple[str, ...] = DEFAULT_TIMESTAMP_FORMATS

    @field_validator("url")
    @classmethod
    def url_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_in_range(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("rate_limit must be between 1 and 10")
        return v

    @field_validator("timestamp_formats")
    @classmethod
    def at_least_one_format(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("timestamp_formats must list at least one layout")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./bullion_sentinel.db"


class IngestionConfig(BaseModel):
    """Ingestion loop cadence and batch bounds."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    interval_seconds: float = 15.0
    batch_cap: int = 8
    fetch_timeout_seconds: float = 30.0

    @field_validator("interval_seconds", "fetch_timeout_seconds")
    @classmethod
    def seconds_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval_seconds and fetch_timeout_seconds must be > 0")
        return v

    @field_validator("batch_cap")
    @classmethod
    def batch_cap_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("batch_cap must be >= 1")
        return v


def _default_products() -> tuple[Product, ...]:
    return (
        Product(id=0, name="Gram"),
        Product(id=1, name="Quarter"),
        Product(id=2, name="Half"),
        Product(id=3, name="Full"),
    )


class CatalogConfig(BaseModel):
    """Products seeded into the catalog on startup."""

    model_config = ConfigDict(frozen=True)

    products: tuple[Product, ...] = _default_products()

    @field_validator("products")
    @classmethod
    def ids_unique(cls, v: tuple[Product, ...]) -> tuple[Product, ...]:
        ids = [p.id for p in v]
        if len(ids) != len(set(ids)):
            raise ValueError("catalog product ids must be unique")
        return v


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8080


class SentinelConfig(BaseModel):
    """Root configuration for the entire bullion-sentinel system."""

    model_config = ConfigDict(frozen=True)

    source: SourceConfig
    storage: StorageConfig = StorageConfig()
    ingestion: IngestionConfig = IngestionConfig()
    catalog: CatalogConfig = CatalogConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "BULLION_SENTINEL_",
) -> SentinelConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (BULLION_SENTINEL_SOURCE__URL, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        BULLION_SENTINEL_INGESTION__BATCH_CAP=4  ->  ingestion.batch_cap = 4
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return SentinelConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("BULLION_SENTINEL_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from BULLION_SENTINEL_CONFIG not found: {env_path}",
                context={"field": "BULLION_SENTINEL_CONFIG", "value": env_path},
            )
        return p

    default = Path("bullion-sentinel.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
