"""
Google Custom Search client.

Produces the raw result items that SearchCacheService.store() caches.
"""

from __future__ import annotations

from typing import Any, Callable

import httpx

from .config import SearchConfig, get_search_credentials
from .errors import NetworkError, ValidationError, classify_fetch_exception


LANGUAGES = ("en", "ja", "es", "fr", "de", "zh", "ru", "ar", "pt", "it")
REGIONS = ("US", "JP", "ES", "FR", "DE", "CN", "RU", "AR", "BR", "IT")
IMAGE_SIZES = ("small", "medium", "large")
IMAGE_TYPES = ("clipart", "photo", "lineart")
IMAGE_COLORS = ("black", "white", "red", "blue", "green", "yellow")


def build_search_params(
    query: str,
    api_key: str,
    cx: str,
    language: str | None = None,
    region: str | None = None,
    num_results: int | None = None,
    start_index: int | None = None,
    image_search: bool = False,
    image_size: str | None = None,
    image_type: str | None = None,
    image_color: str | None = None,
) -> dict[str, str]:
    """Validate arguments and build the Custom Search query string."""
    if not query:
        raise ValidationError("query must not be empty")
    if num_results is not None and not 1 <= num_results <= 10:
        raise ValidationError("numResults must be between 1 and 10.")
    if start_index is not None and not 1 <= start_index <= 100 - (num_results or 10):
        raise ValidationError("startIndex must be between 1 and (100 - numResults).")
    _check_choice("language", language, LANGUAGES)
    _check_choice("region", region, REGIONS)
    _check_choice("imageSize", image_size, IMAGE_SIZES)
    _check_choice("imageType", image_type, IMAGE_TYPES)
    _check_choice("imageColor", image_color, IMAGE_COLORS)

    params = {"q": query, "key": api_key, "cx": cx}
    if language:
        params["lr"] = f"lang_{language}"
    if region:
        params["cr"] = f"country{region}"
    if num_results:
        params["num"] = str(num_results)
    if start_index:
        params["start"] = str(start_index)
    if image_search:
        params["searchType"] = "image"
    if image_size:
        params["imgSize"] = image_size
    if image_type:
        params["imgType"] = image_type
    if image_color:
        params["imgColorType"] = image_color
    return params


async def search_google(
    query: str,
    cfg: SearchConfig | None = None,
    client_factory: Callable[[], httpx.AsyncClient] | None = None,
    **options: Any,
) -> list[dict[str, Any]]:
    """Run a Custom Search query and return its raw items.

    Raises:
        ValidationError: Bad arguments or missing credentials
        NetworkError: Transport failure or a non-2xx answer
    """
    cfg = cfg or SearchConfig()
    api_key, cx = get_search_credentials(cfg)
    if not api_key or not cx:
        raise ValidationError(
            f"Google API key or CX is not set ({cfg.api_key_env} / {cfg.cx_env})."
        )
    params = build_search_params(query, api_key, cx, **options)

    factory = client_factory or (lambda: httpx.AsyncClient(timeout=cfg.timeout_seconds))
    try:
        async with factory() as client:
            resp = await client.get(cfg.base_url, params=params)
    except (httpx.HTTPError, OSError) as exc:
        raise classify_fetch_exception(exc) from exc

    if resp.status_code >= 400:
        raise NetworkError(
            f"Failed to fetch search results: HTTP {resp.status_code}: {resp.reason_phrase}"
        )
    try:
        payload = resp.json()
    except ValueError as exc:
        raise NetworkError(f"Failed to fetch search results: invalid JSON ({exc})") from exc
    return list(payload.get("items") or [])


def _check_choice(name: str, value: str | None, allowed: tuple[str, ...]) -> None:
    if value is not None and value not in allowed:
        raise ValidationError(f"{name} must be one of {', '.join(allowed)}, got {value!r}")
