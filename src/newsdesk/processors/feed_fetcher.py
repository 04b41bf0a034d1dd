"""
RSS/Atom retrieval and feed discovery.

Fetches feed documents through the shared HTTP client, normalizes entries into
NewArticle records, and finds candidate feed URLs for arbitrary pages.
"""

import calendar
import datetime
import hashlib
import logging
import time
from typing import Any, Dict, List, Optional

import feedparser
from bs4 import BeautifulSoup

from ..core.errors import NetworkError, ParseError
from ..core.http_client import RetryableHTTPClient
from ..core.models import FetchedFeed, NewArticle
from ..core.text_utils import canonical_url, html_to_text, resolve_url

logger = logging.getLogger(__name__)

FEED_CONTENT_TYPES = {
    'application/rss+xml',
    'application/atom+xml',
    'application/feed+json',
    'application/rdf+xml',
}

WELL_KNOWN_FEED_PATHS = ('/feed', '/rss', '/feed.xml', '/rss.xml', '/atom.xml', '/index.xml')


def compute_external_key(entry: Dict[str, Any]) -> str:
    """Return the stable key used to detect duplicates within a feed.

    Prefers the entry guid, then its link without fragment. Entries with
    neither get a SHA-1 of title and date.
    """
    guid = (entry.get('id') or '').strip()
    if guid:
        return guid
    link = (entry.get('link') or '').strip()
    if link:
        return canonical_url(link)
    parts = [
        entry.get('title', ''),
        entry.get('published', entry.get('updated', '')),
    ]
    return hashlib.sha1("||".join(parts).encode("utf-8")).hexdigest()


def _entry_datetime(entry: Dict[str, Any]) -> Optional[datetime.datetime]:
    parsed = entry.get('published_parsed') or entry.get('updated_parsed')
    if not parsed:
        return None
    if isinstance(parsed, time.struct_time):
        # feedparser normalizes to UTC
        return datetime.datetime.fromtimestamp(calendar.timegm(parsed), tz=datetime.timezone.utc)
    return None


def _entry_content(entry: Dict[str, Any]) -> Optional[str]:
    """Prefer the full content block, fall back to the summary."""
    body = None
    content = entry.get('content')
    if content:
        body = content[0].get('value')
    if not body:
        body = entry.get('summary') or entry.get('description')
    if not body:
        return None
    text = html_to_text(body)
    return text or None


def normalize_entry(entry: Dict[str, Any]) -> NewArticle:
    title = html_to_text(entry.get('title') or '') or 'Untitled'
    return NewArticle(
        external_key=compute_external_key(entry),
        title=title,
        url=(entry.get('link') or '').strip(),
        published_at=_entry_datetime(entry),
        content=_entry_content(entry),
        author=entry.get('author') or None,
    )


def parse_feed_document(content: bytes, source: str = '') -> FetchedFeed:
    """Parse raw feed bytes into a FetchedFeed.

    Raises:
        ParseError: If the document is not a recognizable RSS/Atom feed.
    """
    parsed = feedparser.parse(content)
    if not parsed.get('version') and not parsed.entries:
        reason = parsed.get('bozo_exception') or 'not an RSS/Atom document'
        raise ParseError(f"Could not parse feed {source}: {reason}")
    if parsed.bozo:
        logger.warning(f"Feed '{source}' has parsing issues: {parsed.get('bozo_exception')}")

    meta = parsed.feed
    articles = [normalize_entry(entry) for entry in parsed.entries]
    return FetchedFeed(
        title=html_to_text(meta.get('title') or '') or None,
        articles=articles,
        site_url=meta.get('link') or None,
        description=html_to_text(meta.get('subtitle') or meta.get('description') or '') or None,
    )


def looks_like_feed(content: bytes) -> bool:
    try:
        parse_feed_document(content)
    except ParseError:
        return False
    return True


def find_feed_links(html_text: str, base_url: str) -> List[str]:
    """Return declared feed links in *html_text*, resolved against *base_url*, without duplicates."""
    soup = BeautifulSoup(html_text, "lxml")
    seen: List[str] = []
    for link in soup.find_all("link", rel="alternate"):
        mime = (link.get("type") or "").lower().split(";")[0].strip()
        href = (link.get("href") or "").strip()
        if mime not in FEED_CONTENT_TYPES or not href:
            continue
        url = resolve_url(href, base_url)
        if url not in seen:
            seen.append(url)
    return seen


class FeedFetcher:
    """Fetches and parses feeds; discovers feed URLs from web pages."""

    def __init__(self, http_client: Optional[RetryableHTTPClient] = None):
        self.http = http_client or RetryableHTTPClient()

    def fetch(self, feed_url: str) -> FetchedFeed:
        """Retrieve *feed_url* and return its normalized articles.

        Raises:
            NetworkError: Connection failure, timeout or HTTP error (after the single retry for transient ones).
            ParseError: The document is not a valid feed.
        """
        response = self.http.get(feed_url)
        fetched = parse_feed_document(response.content, feed_url)
        logger.debug(f"Fetched {len(fetched.articles)} articles from {feed_url}")
        return fetched

    def discover(self, seed_url: str) -> List[str]:
        """Return candidate feed URLs for *seed_url*; an empty list is not an error.

        Order of checks: the seed itself is a feed; declared <link> hints;
        well-known feed paths on the same site.

        Raises:
            NetworkError: The seed page itself could not be retrieved.
        """
        response = self.http.get(seed_url)
        final_url = getattr(response, 'url', None) or seed_url
        if looks_like_feed(response.content):
            return [final_url]

        html_text = response.text or ''
        candidates = find_feed_links(html_text, final_url)
        if candidates:
            logger.info(f"Discovered {len(candidates)} declared feed(s) on {final_url}")
            return candidates

        for path in WELL_KNOWN_FEED_PATHS:
            probe = resolve_url(path, final_url)
            try:
                probe_response = self.http.get(probe)
            except NetworkError as e:
                logger.debug(f"Probe {probe} failed: {e}")
                continue
            if looks_like_feed(probe_response.content):
                candidates.append(getattr(probe_response, 'url', None) or probe)
        if not candidates:
            logger.info(f"No feeds found at {final_url}")
        return candidates
