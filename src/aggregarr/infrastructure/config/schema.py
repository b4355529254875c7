"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]
CacheBackend = Literal["diskcache", "redis"]


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class CacheConfig(BaseModel):
    """Persistent store configuration (backend-agnostic).

    Environment overrides use the ``CACHE_*`` names (see EnvOverrides).
    """

    model_config = ConfigDict(populate_by_name=True)

    backend: CacheBackend = Field(
        default="diskcache",
        description="Cache backend: 'diskcache' (SQLite) or 'redis'",
    )

    # Diskcache settings
    directory: Path = Field(
        default=Path("./.cache/aggregarr"),
        alias="dir",
        description="Diskcache SQLite DB path",
    )

    # Redis settings
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (only when backend=redis)",
    )

    # Shared settings
    ttl_seconds: Optional[int] = Field(
        default=None,
        description="TTL for stream rows (seconds). None = keep until evicted.",
    )
    max_concurrent: int = Field(
        default=10,
        description="Max parallel cache ops (semaphore limit)",
    )

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_directory(cls, v: Any) -> Path:
        return _normalize_path(v)

    @field_validator("ttl_seconds")
    @classmethod
    def _validate_ttl(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("ttl_seconds must be >= 0")
        return v

    @field_validator("max_concurrent")
    @classmethod
    def _validate_max_concurrent(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrent must be >= 1")
        return v


class StremioConfig(BaseModel):
    """Provider fan-out, ordering and eviction settings.

    All values configurable via YAML (stremio section) or ENV vars.
    """

    sources: list[str] = Field(
        default_factory=list,
        description="Base URLs of the upstream Stremio add-ons.",
    )
    source_timeout_ms: int = Field(
        default=2000,
        description="Per-provider fetch timeout in milliseconds.",
    )
    randomize_streams: bool = Field(
        default=False,
        description="Shuffle the output instead of listing cached streams first.",
    )
    deletion_threshold: int = Field(
        default=5,
        description="Requests per window that trigger eviction of a title.",
    )
    eviction_window_seconds: int = Field(
        default=3600,
        description="Sliding window for the request-frequency gate.",
    )
    coalesce_misses: bool = Field(
        default=False,
        description="Share one aggregation between concurrent misses for an id.",
    )

    addon_id: str = Field(default="org.stremio.combined")
    addon_name: str = Field(default="Stremio Addon Database Wrapper")
    addon_version: str = Field(default="0.1.0")
    addon_description: str = Field(
        default="Fetches results from add-ons and stores in a local database.",
    )

    @field_validator("sources", mode="before")
    @classmethod
    def _validate_sources(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [s.strip() for s in v if isinstance(s, str) and s.strip()]
        return v

    @field_validator("source_timeout_ms")
    @classmethod
    def _validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("source_timeout_ms must be > 0")
        return v

    @field_validator("deletion_threshold")
    @classmethod
    def _validate_threshold(cls, v: int) -> int:
        if v < 1:
            raise ValueError("deletion_threshold must be >= 1")
        return v

    @field_validator("eviction_window_seconds")
    @classmethod
    def _validate_window(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("eviction_window_seconds must be > 0")
        return v

    @property
    def source_timeout_seconds(self) -> float:
        return self.source_timeout_ms / 1000


class AffinityConfig(BaseModel):
    """External cache-affinity resolver for magnet locators."""

    endpoint: Optional[str] = Field(
        default=None,
        description="Resolver URL. Resolution is disabled when unset.",
    )
    api_token: Optional[str] = Field(default=None, description="Bearer token.")
    timeout_seconds: float = Field(default=10.0)

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint and self.api_token)


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (http/logging/cache/stremio/affinity).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    # General
    app_name: str = Field(default="aggregarr", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # Outgoing HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Default timeout for the shared HTTP client.",
    )
    http_user_agent: str = Field(
        default="Aggregarr/0.1.0",
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent for outgoing HTTP requests.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    stremio: StremioConfig = Field(default_factory=StremioConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    affinity: AffinityConfig = Field(default_factory=AffinityConfig)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Intended usage:
    - load.py creates EnvOverrides() to read AGGREGARR_* variables,
      converts to dict of set values, merges into YAML/defaults,
      then validates AppConfig.

    Besides the AGGREGARR_* names, the cache section honours CACHE_* and the
    stream settings honour the historical names TIMEOUT_MS, RANDOMIZE_STREAMS
    and DELETION_THRESHOLD. Provider URLs come from SOURCE_* (see load.py).
    """

    model_config = SettingsConfigDict(
        env_prefix="AGGREGARR_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    cache_backend: Optional[CacheBackend] = Field(
        default=None,
        validation_alias=AliasChoices("aggregarr_cache_backend", "cache_backend"),
    )
    cache_dir: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("aggregarr_cache_dir", "cache_dir"),
    )
    cache_redis_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "aggregarr_cache_redis_url", "cache_redis_url"
        ),
    )
    cache_ttl_seconds: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices(
            "aggregarr_cache_ttl_seconds", "cache_ttl_seconds"
        ),
    )
    cache_max_concurrent: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices(
            "aggregarr_cache_max_concurrent", "cache_max_concurrent"
        ),
    )

    source_timeout_ms: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("aggregarr_source_timeout_ms", "timeout_ms"),
    )
    randomize_streams: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("aggregarr_randomize_streams", "randomize_streams"),
    )
    deletion_threshold: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("aggregarr_deletion_threshold", "deletion_threshold"),
    )
    eviction_window_seconds: Optional[int] = None
    coalesce_misses: Optional[bool] = None

    affinity_endpoint: Optional[str] = None
    affinity_api_token: Optional[str] = None
    affinity_timeout_seconds: Optional[float] = None

    @field_validator("cache_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
