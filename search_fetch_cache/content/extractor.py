"""
HTML to plain text for the `html` payload kind.

Extractors, tried in the configured order until one yields text:
1. bs4: Flatten the whole page with BeautifulSoup, scripts and styles removed (default)
2. trafilatura: Main-content extraction tuned for articles
3. readability: Mozilla's readability algorithm, flattened with bs4
"""

from __future__ import annotations

import logging
from typing import Callable

from bs4 import BeautifulSoup
import trafilatura
from readability import Document


logger = logging.getLogger("search_fetch_cache.content")

Extractor = Callable[[str], str | None]


BLOCK_TAGS = (
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figcaption", "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6",
    "header", "hr", "li", "main", "nav", "ol", "p", "pre", "section",
    "table", "title", "tr", "ul",
)


def _flatten(html: str) -> str | None:
    """Flatten markup to text without line wrapping.

    Script and style elements are dropped. Block elements and `<br>` start
    new lines; inline markup stays on its paragraph's line. Runs of
    whitespace inside a line collapse to one space and blank lines are
    removed.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(list(BLOCK_TAGS)):
        block.insert_before("\n")
        block.insert_after("\n")
    lines = (" ".join(line.split()) for line in soup.get_text().splitlines())
    text = "\n".join(line for line in lines if line)
    return text or None


def _main_content(html: str) -> str | None:
    return trafilatura.extract(html)


def _readable(html: str) -> str | None:
    return _flatten(Document(html).summary())


EXTRACTORS: dict[str, Extractor] = {
    "bs4": _flatten,
    "trafilatura": _main_content,
    "readability": _readable,
}


def extract_text(html: str, primary: str = "bs4", fallback: list[str] | None = None) -> str | None:
    """Extract plain text from HTML using a chain of extractors.

    Args:
        html: The HTML document
        primary: Name of the extractor tried first
        fallback: Extractors tried in order when the previous ones yield nothing

    Returns:
        Stripped text from the first extractor that produced any, or None

    Examples:
        >>> extract_text("<p>Hello <b>world</b></p>")
        'Hello world'
    """
    chain = [primary] + [name for name in (fallback or []) if name != primary]
    for name in chain:
        extractor = EXTRACTORS.get(name)
        if extractor is None:
            logger.warning("Unknown extractor %r skipped", name)
            continue
        text = extractor(html)
        if text:
            return text.strip()
    return None
