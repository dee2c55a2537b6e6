"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults, followed by environment overrides.
Configuration sections:
- CacheConfig: Size limits, TTL and sweep intervals for both caches
- FetchConfig: HTTP fetching settings
- ExtractConfig: HTML text extraction settings
- SearchConfig: Google Custom Search settings
- LoggingConfig: Logging behavior
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
import os
from typing import Any

import yaml


MIB = 1024 * 1024


@dataclass
class CacheConfig:
    """Configuration for the in-memory caches.

    Attributes:
        max_file_size: Per-entry byte cap for fetched payloads
        max_total_cache_size: Global byte cap across all live records of a store
        ttl_minutes: Lifetime of every record in both caches
        max_entries: Maximum number of live records per store
        fetch_sweep_seconds: Interval between expiry sweeps of the fetch store
        search_sweep_seconds: Interval between expiry sweeps of the search store
    """

    max_file_size: int = 4 * MIB
    max_total_cache_size: int = 100 * MIB
    ttl_minutes: int = 60
    max_entries: int = 1000
    fetch_sweep_seconds: float = 300.0
    search_sweep_seconds: float = 600.0

    @property
    def effective_file_size(self) -> int:
        """Per-entry cap clamped so a single record always fits the global budget."""
        return min(self.max_file_size, self.max_total_cache_size)


@dataclass
class FetchConfig:
    """Configuration for HTTP content fetching.

    Attributes:
        user_agent: HTTP User-Agent header string sent when the caller gives none
        trust_env: Whether to respect system proxy settings
        follow_redirects: Whether redirects are followed before streaming the body
        default_timeout_ms: Request timeout used when the caller passes none
    """

    user_agent: str = (
        "Mozilla/5.0 (compatible; search-fetch-cache/0.1; +https://github.com/)"
    )
    trust_env: bool = True
    follow_redirects: bool = True
    default_timeout_ms: int = 30000


@dataclass
class ExtractConfig:
    """Configuration for HTML text extraction.

    Attributes:
        primary: Primary extraction method ("bs4", "trafilatura", or "readability")
        fallback: List of fallback methods to try if primary yields nothing
    """

    primary: str = "bs4"
    fallback: list[str] = field(default_factory=list)


@dataclass
class SearchConfig:
    """Configuration for the Google Custom Search client.

    Attributes:
        api_key_env: Environment variable holding the API key
        cx_env: Environment variable holding the search engine id
        base_url: Custom Search JSON API endpoint
        timeout_seconds: HTTP timeout for search calls
        api_key: Optional inline API key (overrides env var)
        cx: Optional inline engine id (overrides env var)
    """

    api_key_env: str = "GOOGLE_API_KEY"
    cx_env: str = "GOOGLE_CX"
    base_url: str = "https://www.googleapis.com/customsearch/v1"
    timeout_seconds: float = 20.0
    api_key: str | None = None
    cx: str | None = None


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to the console (stderr)
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        filename: Name of the log file
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    filename: str = "cache.jsonl"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    extract: ExtractConfig = field(default_factory=ExtractConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | None = None, env: dict[str, str] | None = None) -> AppConfig:
    """Load configuration from a YAML file with defaults and env overrides."""
    raw: dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    cfg = _merge_config(AppConfig(), raw)
    _apply_env(cfg, os.environ if env is None else env)
    return cfg


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML sections into a fresh AppConfig; unknown keys are ignored."""
    for section in fields(base):
        value = raw.get(section.name)
        if not isinstance(value, dict):
            continue
        current = getattr(base, section.name)
        known = {f.name for f in fields(current)}
        updates = {k: v for k, v in value.items() if k in known}
        setattr(base, section.name, type(current)(**{**_section_dict(current), **updates}))
    return base


def _section_dict(section: Any) -> dict[str, Any]:
    if not is_dataclass(section):
        return {}
    return {f.name: getattr(section, f.name) for f in fields(section)}


def _apply_env(cfg: AppConfig, env: Any) -> None:
    max_file = _positive_int(env.get("MAX_FILE_SIZE"))
    if max_file is not None:
        cfg.cache.max_file_size = max_file
    max_total = _positive_int(env.get("MAX_TOTAL_CACHE_SIZE"))
    if max_total is not None:
        cfg.cache.max_total_cache_size = max_total


def _positive_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        parsed = int(value, 10)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def get_search_credentials(cfg: SearchConfig) -> tuple[str | None, str | None]:
    """Get API key and engine id from inline config or environment variables."""
    api_key = cfg.api_key or os.getenv(cfg.api_key_env)
    cx = cfg.cx or os.getenv(cfg.cx_env)
    return api_key, cx
