"""Shared text processing utilities for feed bodies and fetched pages."""

import html as htmllib
import logging
import re
import urllib.parse
from typing import Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

MIN_CONTENT_CHARS = 200

# Never visible text
_INVISIBLE_TAGS = ['script', 'style', 'noscript', 'template', 'svg', 'iframe', 'head']
# Site chrome; only dropped when no article container can be found
_CHROME_TAGS = ['nav', 'footer']
_BLOCK_TAGS = [
    'p', 'div', 'br', 'li', 'ul', 'ol', 'tr', 'table', 'section', 'article', 'blockquote',
    'pre', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'hr', 'figure', 'figcaption', 'main',
    'header', 'aside', 'form',
]
_ZERO_WIDTH = ("\u200b", "\u200c", "\u200d", "\ufeff")


def normalize_whitespace(text: str) -> str:
    """Trim each line, collapse inner runs of spaces and drop blank lines."""
    for ch in _ZERO_WIDTH:
        text = text.replace(ch, "")
    text = text.replace("\xa0", " ")
    lines = (re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def _soup(markup: str) -> BeautifulSoup:
    soup = BeautifulSoup(markup, "lxml")
    for tag in soup.find_all(_INVISIBLE_TAGS):
        tag.decompose()
    return soup


def _block_text(node) -> str:
    """Visible text of *node*, one line per block element."""
    for tag in node.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    return normalize_whitespace(node.get_text())


def html_to_text(markup: Optional[str]) -> str:
    """Convert an HTML fragment or page to readable plain text.

    Examples:
        >>> html_to_text("<p>Hello <b>world</b></p><script>x()</script>")
        'Hello world'
    """
    if not markup:
        return ""
    if '<' not in markup:
        return normalize_whitespace(htmllib.unescape(markup))
    return _block_text(_soup(markup))


def _densest_paragraph_parent(soup: BeautifulSoup):
    """The element whose direct <p> children hold the most text."""
    scores = {}
    nodes = {}
    for p in soup.find_all('p'):
        parent = p.parent
        if parent is None:
            continue
        key = id(parent)
        nodes[key] = parent
        scores[key] = scores.get(key, 0) + len(p.get_text(strip=True))
    if not scores:
        return None
    return nodes[max(scores, key=scores.get)]


def extract_readable(markup: Optional[str], min_chars: int = MIN_CONTENT_CHARS) -> Optional[str]:
    """Return the article body of a page, or None when nothing long enough is found.

    Looks for an explicit container (``<article>``, ``<main>``, ``role=main``)
    first, then the element with the densest run of paragraphs, and finally
    the whole page without its navigation and footer.
    """
    if not markup:
        return None
    soup = _soup(markup)

    containers = soup.find_all('article') or soup.find_all('main') or soup.find_all(attrs={'role': 'main'})
    if containers:
        best = max((_block_text(c) for c in containers), key=len)
        if len(best) >= min_chars:
            return best

    dense = _densest_paragraph_parent(soup)
    if dense is not None:
        text = _block_text(dense)
        if len(text) >= min_chars:
            return text

    for tag in soup.find_all(_CHROME_TAGS):
        tag.decompose()
    text = _block_text(soup)
    if len(text) < min_chars:
        logger.debug(f"Page text too short for an article body ({len(text)} chars)")
        return None
    return text


def canonical_url(url: str) -> str:
    """Strip the fragment so the same article linked twice gets one key."""
    parsed = urllib.parse.urlparse(url.strip())
    return urllib.parse.urlunparse(parsed._replace(fragment=""))


def resolve_url(href: str, base_url: str) -> str:
    """Resolve a possibly relative href against *base_url*.

    Absolute http(s) hrefs are returned unchanged; an unusable base leaves the
    href as-is.
    """
    href = href.strip()
    if href.startswith("http://") or href.startswith("https://"):
        return href
    base = urllib.parse.urlparse(base_url)
    if not base.scheme or not base.netloc:
        return href
    return urllib.parse.urljoin(base_url, href)


__all__ = [
    "MIN_CONTENT_CHARS",
    "normalize_whitespace",
    "html_to_text",
    "extract_readable",
    "canonical_url",
    "resolve_url",
]
