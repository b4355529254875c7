from __future__ import annotations

import os
import re
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

_SECTION_KEYS: set[str] = {"http", "logging", "cache", "stremio", "affinity"}

_SOURCE_ENV_PREFIX = "SOURCE_"
_DIGITS = re.compile(r"([0-9]+)")

# Flat key -> (section, key) used by ENV and CLI layers.
_FLAT_MAP: dict[str, tuple[str, str]] = {
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_user_agent": ("http", "user_agent"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
    "cache_backend": ("cache", "backend"),
    "cache_dir": ("cache", "dir"),
    "cache_redis_url": ("cache", "redis_url"),
    "cache_ttl_seconds": ("cache", "ttl_seconds"),
    "cache_max_concurrent": ("cache", "max_concurrent"),
    "sources": ("stremio", "sources"),
    "source_timeout_ms": ("stremio", "source_timeout_ms"),
    "randomize_streams": ("stremio", "randomize_streams"),
    "deletion_threshold": ("stremio", "deletion_threshold"),
    "eviction_window_seconds": ("stremio", "eviction_window_seconds"),
    "coalesce_misses": ("stremio", "coalesce_misses"),
    "affinity_endpoint": ("affinity", "endpoint"),
    "affinity_api_token": ("affinity", "api_token"),
    "affinity_timeout_seconds": ("affinity", "timeout_seconds"),
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """
    Recursively merge `override` into `base` and return `base`.

    Rules:
    - dict + dict => deep merge
    - otherwise => override wins
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, Mapping)
        ):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _normalize_layer(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize a layer (defaults/YAML/ENV/CLI) into the canonical *sectioned* shape.

    Canonical top-level keys:
    - app_name, environment
    - http.timeout_seconds, http.user_agent
    - logging.level, logging.format
    - cache.backend, cache.dir, cache.redis_url, cache.ttl_seconds, ...
    - stremio.sources, stremio.source_timeout_ms, stremio.deletion_threshold, ...
    - affinity.endpoint, affinity.api_token, affinity.timeout_seconds
    """
    out: dict[str, Any] = {}

    # Pass through already sectioned blocks
    for section in _SECTION_KEYS:
        if section in data and isinstance(data[section], Mapping):
            out[section] = dict(data[section])

    # General
    if "app_name" in data:
        out["app_name"] = data["app_name"]
    if "environment" in data:
        out["environment"] = data["environment"]

    for flat_key, (section, section_key) in _FLAT_MAP.items():
        if flat_key in data:
            out.setdefault(section, {})
            out[section][section_key] = data[flat_key]

    return out


def _read_yaml_config(config_path: Path) -> dict[str, Any]:
    raw = config_path.read_text(encoding="utf-8")
    parsed = yaml.safe_load(raw)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(
            f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def collect_env_sources(environ: Mapping[str, str] | None = None) -> list[str]:
    """
    Provider URLs from every non-empty ``SOURCE_*`` variable.

    Ordered by variable name with numeric parts compared as numbers, so
    SOURCE_2 comes before SOURCE_10. The prefix match is case-sensitive.
    """
    env = os.environ if environ is None else environ
    names = [
        name
        for name in env
        if name.startswith(_SOURCE_ENV_PREFIX) and env[name].strip()
    ]
    return [env[name].strip() for name in sorted(names, key=_natural_key)]


def _natural_key(name: str) -> list[tuple[int, int | str]]:
    # re.split with a group puts the digit runs at odd indices.
    return [
        (0, int(part)) if i % 2 else (1, part)
        for i, part in enumerate(_DIGITS.split(name))
        if part
    ]


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """
    Load configuration with strict precedence:
    defaults < YAML file < env vars < cli overrides

    SOURCE_* variables, when any are set, replace the configured source list.

    This function MUST NOT create files or directories (no filesystem side-effects).
    """
    cli_overrides = cli_overrides or {}

    # Load .env first so it participates as "env vars" layer.
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    base = _normalize_layer(deepcopy(DEFAULT_CONFIG))

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(config_path)
        yaml_layer = _normalize_layer(_read_yaml_config(config_path))
        _deep_merge(base, yaml_layer)

    env_layer_flat = EnvOverrides().to_update_dict()
    env_sources = collect_env_sources()
    if env_sources:
        env_layer_flat["sources"] = env_sources
    env_layer = _normalize_layer(env_layer_flat)
    _deep_merge(base, env_layer)

    cli_layer = _normalize_layer(cli_overrides)
    _deep_merge(base, cli_layer)

    # Validate final merged config (single source of truth).
    return AppConfig.model_validate(base)
