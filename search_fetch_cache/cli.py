"""
Command-line interface for the search and fetch caches.

Uses Typer to run single operations against a fresh in-memory runtime and
print their JSON payloads. Supports loading .env files for the Google API
credentials and the cache size limits.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict
import json
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console

from .api import CacheRuntime
from .config import AppConfig, load_config
from .logging_utils import setup_logging

app = typer.Typer(add_completion=False, help="Cached web search and fetch.")
console = Console()


def _load(config: Path | None, log_level: str | None) -> AppConfig:
    load_dotenv()
    cfg = load_config(str(config) if config else None)
    if log_level:
        cfg.logging.level = log_level
    setup_logging(cfg.logging, Path.cwd())
    return cfg


def _emit(payload: dict) -> None:
    console.print_json(json.dumps(payload, ensure_ascii=False, default=str))
    if payload.get("error") is True:
        raise typer.Exit(code=1)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query."),
    num_results: int | None = typer.Option(None, "--num", "-n", help="Number of results (1-10)."),
    language: str | None = typer.Option(None, "--language", help="ISO 639-1 language code."),
    region: str | None = typer.Option(None, "--region", help="ISO 3166-1 alpha-2 region code."),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
):
    """Run a Google Custom Search and print the cached summary."""
    cfg = _load(config, log_level)
    runtime = CacheRuntime(cfg)
    payload = asyncio.run(
        runtime.google_search(query, num_results=num_results, language=language, region=region)
    )
    _emit(payload)


@app.command()
def fetch(
    url: str = typer.Argument(..., help="URL to fetch."),
    method: str = typer.Option("GET", "--method", "-X"),
    header: list[str] = typer.Option([], "--header", "-H", help="Request header 'Name: value'."),
    output_size: int = typer.Option(4096, "--output-size"),
    timeout_ms: int = typer.Option(30000, "--timeout-ms"),
    include_headers: bool = typer.Option(False, "--include-headers"),
    raw: bool = typer.Option(False, "--raw", help="Return raw bytes instead of extracted text."),
    summarize: bool = typer.Option(False, "--summarize"),
    grep: str | None = typer.Option(None, "--grep", help="Pattern to search for in the text."),
    regex: bool = typer.Option(False, "--regex", help="Treat --grep as a regular expression."),
    case_sensitive: bool = typer.Option(False, "--case-sensitive"),
    context: int = typer.Option(2, "--context", "-C"),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
):
    """Fetch a URL through the cache and print the processed view."""
    cfg = _load(config, log_level)
    headers = {}
    for item in header:
        name, sep, value = item.partition(":")
        if not sep:
            raise typer.BadParameter(f"Header must look like 'Name: value', got {item!r}")
        headers[name.strip()] = value.strip()

    runtime = CacheRuntime(cfg)
    payload = asyncio.run(
        runtime.fetch_and_cache(
            url,
            method=method,
            headers=headers or None,
            output_size=output_size,
            timeout_ms=timeout_ms,
            include_headers=include_headers,
            process=not raw,
            summarize=summarize,
            search=grep,
            search_is_regex=regex,
            case_sensitive=case_sensitive,
            context=context,
        )
    )
    _emit(payload)


@app.command("show-config")
def show_config(
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
):
    """Print the effective configuration after YAML and environment overrides."""
    load_dotenv()
    cfg = load_config(str(config) if config else None)
    data = asdict(cfg)
    data["search"]["api_key"] = "***" if data["search"]["api_key"] else None
    console.print_json(json.dumps(data))


if __name__ == "__main__":
    app()
