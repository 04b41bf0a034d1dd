"""
Data models for feeds, articles and browser cookies.

Timestamps are timezone-aware UTC datetimes throughout; the repository is the
only place that converts them to and from their stored text form.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from typing import Optional


def utc_now() -> datetime.datetime:
    """Current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class Feed:
    id: int
    url: str
    title: str
    last_fetched_at: Optional[datetime.datetime] = None
    site_url: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class NewFeed:
    """A feed that has been discovered or imported but not stored yet."""

    url: str
    title: str
    site_url: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class NewArticle:
    """A normalized feed item as produced by the fetcher."""

    external_key: str
    title: str
    url: str
    published_at: Optional[datetime.datetime] = None
    content: Optional[str] = None
    author: Optional[str] = None


@dataclass(frozen=True)
class Article:
    id: int
    feed_id: int
    external_key: str
    title: str
    url: str
    fetched_at: datetime.datetime
    published_at: Optional[datetime.datetime] = None
    content: Optional[str] = None
    summary: Optional[str] = None
    author: Optional[str] = None
    content_full: bool = False

    def with_changes(self, **changes) -> "Article":
        return replace(self, **changes)


@dataclass(frozen=True)
class CookieRecord:
    """A browser cookie with its expiry normalized to Unix seconds."""

    domain: str
    name: str
    value: str
    expires_at: int
    secure: bool
    source: str

    def matches(self, host: str) -> bool:
        """True when this cookie's host pattern covers *host* (suffix match on a label boundary)."""
        pattern = self.domain.lstrip(".").lower()
        target = host.lower()
        if not pattern:
            return False
        return target == pattern or target.endswith("." + pattern)


@dataclass(frozen=True)
class FetchedFeed:
    """Result of fetching one feed document."""

    title: Optional[str]
    articles: list = field(default_factory=list)
    site_url: Optional[str] = None
    description: Optional[str] = None


__all__ = [
    "utc_now",
    "Feed",
    "NewFeed",
    "NewArticle",
    "Article",
    "CookieRecord",
    "FetchedFeed",
]
