from __future__ import annotations

from search_fetch_cache.config import AppConfig, CacheConfig, SearchConfig, get_search_credentials, load_config


def test_defaults():
    cfg = AppConfig()

    assert cfg.cache.max_file_size == 4 * 1024 * 1024
    assert cfg.cache.max_total_cache_size == 100 * 1024 * 1024
    assert cfg.cache.ttl_minutes == 60
    assert cfg.cache.max_entries == 1000
    assert cfg.cache.fetch_sweep_seconds == 300
    assert cfg.cache.search_sweep_seconds == 600
    assert cfg.extract.primary == "bs4"


def test_yaml_sections_merge_over_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "cache:\n"
        "  ttl_minutes: 5\n"
        "  unknown_key: 1\n"
        "extract:\n"
        "  primary: trafilatura\n"
        "  fallback: [bs4]\n"
        "logging:\n"
        "  level: DEBUG\n",
        encoding="utf-8",
    )

    cfg = load_config(str(path), env={})

    assert cfg.cache.ttl_minutes == 5
    assert cfg.cache.max_entries == 1000
    assert cfg.extract.primary == "trafilatura"
    assert cfg.extract.fallback == ["bs4"]
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.console is True


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert load_config(str(path), env={}) == AppConfig()


def test_env_overrides_size_limits():
    cfg = load_config(env={"MAX_FILE_SIZE": "1024", "MAX_TOTAL_CACHE_SIZE": "2048"})

    assert cfg.cache.max_file_size == 1024
    assert cfg.cache.max_total_cache_size == 2048


def test_invalid_env_values_are_ignored():
    cfg = load_config(env={"MAX_FILE_SIZE": "lots", "MAX_TOTAL_CACHE_SIZE": "-5"})

    assert cfg.cache.max_file_size == CacheConfig().max_file_size
    assert cfg.cache.max_total_cache_size == CacheConfig().max_total_cache_size


def test_effective_file_size_never_exceeds_global_cap():
    assert CacheConfig(max_file_size=10, max_total_cache_size=5).effective_file_size == 5
    assert CacheConfig(max_file_size=5, max_total_cache_size=10).effective_file_size == 5


def test_search_credentials_prefer_inline_values(monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "env-key")
    monkeypatch.setenv("GOOGLE_CX", "env-cx")

    assert get_search_credentials(SearchConfig()) == ("env-key", "env-cx")
    assert get_search_credentials(SearchConfig(api_key="inline")) == ("inline", "env-cx")
