"""
Browser cookie stores read as interchangeable sources.

Two on-disk formats are supported, tried in a fixed priority order:

- Chromium ``Cookies`` database: table ``cookies``; ``expires_utc`` counts
  microseconds since 1601-01-01 UTC.
- Firefox ``cookies.sqlite`` per profile: table ``moz_cookies``; ``expiry`` is
  already Unix seconds.

Stores are only ever opened read-only. A store that is missing, stays locked
after one retry, or cannot be decoded is skipped in favour of the next one.
Only the first usable store is consulted, so cookies from different browsers
are never mixed in one answer.
"""

from __future__ import annotations

import glob
import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from ..core.errors import CookieStoreError
from ..core.models import CookieRecord

logger = logging.getLogger(__name__)

# Seconds between 1601-01-01 (Windows FILETIME epoch used by Chromium) and 1970-01-01
CHROMIUM_EPOCH_OFFSET_SECONDS = 11_644_473_600
_MICROSECONDS = 1_000_000

LOCK_RETRY_DELAY = 0.1


def chromium_to_unix(expires_utc: int) -> int:
    """Convert a Chromium ``expires_utc`` value to Unix seconds.

    Examples:
        >>> chromium_to_unix(13_380_000_000_000_000)
        1735526400
    """
    return int(expires_utc) // _MICROSECONDS - CHROMIUM_EPOCH_OFFSET_SECONDS


def unix_to_chromium(seconds: int) -> int:
    """Inverse of chromium_to_unix, used when writing test fixtures."""
    return (int(seconds) + CHROMIUM_EPOCH_OFFSET_SECONDS) * _MICROSECONDS


def host_candidates(domain: str) -> List[str]:
    """Host patterns that may carry cookies for *domain*.

    ``www.example.com`` -> www.example.com, .www.example.com, example.com, .example.com
    """
    labels = domain.lower().strip('.').split('.')
    if len(labels) == 1:
        return [labels[0], '.' + labels[0]]
    candidates = []
    for i in range(len(labels) - 1):
        suffix = '.'.join(labels[i:])
        candidates.extend([suffix, '.' + suffix])
    return candidates


def _is_locked(exc: sqlite3.Error) -> bool:
    message = str(exc).lower()
    return 'locked' in message or 'busy' in message


@runtime_checkable
class CookieSource(Protocol):
    """Protocol for one browser's cookie storage format.

    ``locate`` finds the database file (None when the browser is absent),
    ``open_readonly`` opens it without write access, and ``decode_rows``
    turns matching rows into CookieRecords with Unix-second expiries.
    ``read`` runs the three in order and raises CookieStoreError when the
    store is unusable.
    """

    name: str

    def locate(self) -> Optional[Path]:
        ...

    def open_readonly(self, path: Path) -> sqlite3.Connection:
        ...

    def decode_rows(self, conn: sqlite3.Connection, domain: str) -> List[CookieRecord]:
        ...

    def read(self, domain: str) -> List[CookieRecord]:
        ...


class SqliteCookieSource:
    """Shared read-only access for SQLite-backed cookie stores."""

    name = 'sqlite'
    query = ''

    def open_readonly(self, path: Path) -> sqlite3.Connection:
        """Open *path* with mode=ro; the owning browser keeps its own write lock."""
        uri = Path(path).resolve().as_uri() + '?mode=ro'
        try:
            return sqlite3.connect(uri, uri=True, timeout=0.5)
        except sqlite3.Error as e:
            raise CookieStoreError(f"Cannot open {self.name} cookie store {path}: {e}") from e

    def _convert_expiry(self, raw: int) -> int:
        return int(raw)

    def decode_rows(self, conn: sqlite3.Connection, domain: str) -> List[CookieRecord]:
        hosts = host_candidates(domain)
        placeholders = ','.join('?' for _ in hosts)
        rows = conn.execute(self.query.format(placeholders=placeholders), hosts).fetchall()
        records = []
        for host, name, value, expiry, secure in rows:
            if not name or not value:
                # Chromium keeps most values in encrypted_value; those rows are unusable here
                continue
            records.append(
                CookieRecord(
                    domain=host,
                    name=name,
                    value=value,
                    expires_at=self._convert_expiry(expiry or 0),
                    secure=bool(secure),
                    source=self.name,
                )
            )
        return records

    def read(self, domain: str) -> List[CookieRecord]:
        """Locate, open and decode, retrying once when the store is locked.

        Raises:
            CookieStoreError: Store missing, still locked after the retry, or undecodable.
        """
        path = self.locate()
        if path is None:
            raise CookieStoreError(f"No {self.name} cookie store found")

        for attempt in range(2):
            try:
                conn = self.open_readonly(path)
                try:
                    return self.decode_rows(conn, domain)
                finally:
                    conn.close()
            except sqlite3.Error as e:
                if _is_locked(e) and attempt == 0:
                    logger.debug(f"{self.name} cookie store {path} is locked; retrying once")
                    time.sleep(LOCK_RETRY_DELAY)
                    continue
                raise CookieStoreError(f"Cannot read {self.name} cookie store {path}: {e}") from e
        raise CookieStoreError(f"{self.name} cookie store {path} stayed locked")

    def locate(self) -> Optional[Path]:
        raise NotImplementedError


class ChromiumCookieSource(SqliteCookieSource):
    """Chrome/Chromium ``Cookies`` database at a fixed per-user path."""

    name = 'chromium'
    query = (
        "SELECT host_key, name, value, expires_utc, is_secure FROM cookies "
        "WHERE host_key IN ({placeholders})"
    )

    def __init__(self, paths: Sequence[str]):
        self.paths = [Path(os.path.expanduser(p)) for p in paths]

    def locate(self) -> Optional[Path]:
        for path in self.paths:
            if path.is_file():
                return path
        return None

    def _convert_expiry(self, raw: int) -> int:
        return chromium_to_unix(raw)


class FirefoxCookieSource(SqliteCookieSource):
    """Firefox ``cookies.sqlite``; the most recently modified profile wins."""

    name = 'firefox'
    query = (
        "SELECT host, name, value, expiry, isSecure FROM moz_cookies "
        "WHERE host IN ({placeholders})"
    )

    def __init__(self, pattern: str):
        self.pattern = os.path.expanduser(pattern)

    def locate(self) -> Optional[Path]:
        matches = [Path(p) for p in glob.glob(self.pattern) if os.path.isfile(p)]
        if not matches:
            return None
        return max(matches, key=lambda p: p.stat().st_mtime)


class CookieStoreReader:
    """Answers "which cookies would the user's browser send to this domain?"."""

    def __init__(self, sources: Iterable[CookieSource]):
        self.sources = list(sources)

    @classmethod
    def from_paths(cls, primary_paths: Sequence[str], secondary_glob: str) -> "CookieStoreReader":
        return cls([ChromiumCookieSource(primary_paths), FirefoxCookieSource(secondary_glob)])

    def cookies_for(self, domain: str, now: Optional[float] = None) -> List[CookieRecord]:
        """Return unexpired cookies whose host pattern covers *domain*.

        The first usable store answers, even with an empty list. When no store
        is usable the result is empty; that means "no authentication
        available", never an error.
        """
        now = time.time() if now is None else now
        for source in self.sources:
            try:
                records = source.read(domain)
            except CookieStoreError as e:
                logger.debug(f"Skipping cookie source {source.name}: {e}")
                continue
            matched = [r for r in records if r.matches(domain) and r.expires_at > now]
            logger.debug(f"{source.name}: {len(matched)} cookies for {domain}")
            return matched
        return []


def select_for_scheme(cookies: Iterable[CookieRecord], scheme: str) -> List[CookieRecord]:
    """Over https only secure-flagged cookies are used."""
    if scheme.lower() == 'https':
        return [c for c in cookies if c.secure]
    return list(cookies)


def build_cookie_header(cookies: Iterable[CookieRecord]) -> str:
    return '; '.join(f"{c.name}={c.value}" for c in cookies)


__all__ = [
    "CHROMIUM_EPOCH_OFFSET_SECONDS",
    "chromium_to_unix",
    "unix_to_chromium",
    "host_candidates",
    "CookieSource",
    "ChromiumCookieSource",
    "FirefoxCookieSource",
    "CookieStoreReader",
    "select_for_scheme",
    "build_cookie_header",
]
