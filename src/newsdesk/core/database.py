"""
Repository for feeds and articles backed by a single SQLite database.

- feeds: one row per subscription, unique on url
- articles: one row per feed item, unique on (feed_id, external_key); first-seen content wins
- meta: small key/value table used for the compaction cadence

Writes are serialized through one lock (single writer). Readers open their own
connections; WAL journaling gives them a consistent snapshot while a write is
in progress.
"""

import datetime
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import StorageError
from .models import Article, Feed, NewArticle, NewFeed, utc_now
from .paths import resolve_data_file

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = datetime.timedelta(days=7)
DEFAULT_COMPACT_INTERVAL = datetime.timedelta(hours=24)

# Fixed width with microseconds, so text order is time order
_TIME_FORMAT = '%Y-%m-%d %H:%M:%S.%f'
_LEGACY_TIME_FORMAT = '%Y-%m-%d %H:%M:%S'


def _to_db_time(value: Optional[datetime.datetime]) -> Optional[str]:
    """Format an aware datetime as UTC text that sorts lexically."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc).strftime(_TIME_FORMAT)


def _from_db_time(value: Optional[str]) -> Optional[datetime.datetime]:
    if not value:
        return None
    for fmt in (_TIME_FORMAT, _LEGACY_TIME_FORMAT):
        try:
            parsed = datetime.datetime.strptime(value, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=datetime.timezone.utc)
    logger.debug(f"Unparseable timestamp in database: {value!r}")
    return None


class DatabaseManager:
    """Owns the feeds/articles schema and every query against it."""

    def __init__(self, config: Dict[str, Any]):
        """Resolve the database path from config and ensure the schema exists.

        Raises:
            StorageError: If the database cannot be opened or initialized.
        """
        self.config = config
        self.db_path = str(resolve_data_file(config['database']['path'], ensure_parent=True))
        self._write_lock = threading.Lock()
        self._init_database()

    def _init_database(self):
        """Create tables and indexes if missing and switch to WAL journaling."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        try:
            cursor = conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS feeds (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    url TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    site_url TEXT,
                    description TEXT,
                    last_fetched_at TEXT
                )
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS articles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
                    external_key TEXT NOT NULL,
                    title TEXT NOT NULL,
                    url TEXT NOT NULL,
                    author TEXT,
                    published_at TEXT,
                    fetched_at TEXT NOT NULL,
                    content TEXT,
                    content_full INTEGER NOT NULL DEFAULT 0,
                    summary TEXT,
                    UNIQUE(feed_id, external_key)
                )
            ''')
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_articles_fetched_at
                ON articles(fetched_at)
            ''')
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_articles_feed_published
                ON articles(feed_id, published_at)
            ''')
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialize database {self.db_path}: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def get_connection(self, row_factory: bool = True):
        """Context manager for connections with automatic commit/rollback.

        sqlite3 errors are re-raised as StorageError so callers only deal with
        the shared error taxonomy.
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=5.0)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        conn.execute("PRAGMA foreign_keys = ON")
        if row_factory:
            conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _writer(self):
        """Serialize mutating calls: one writer at a time."""
        with self._write_lock:
            with self.get_connection() as conn:
                yield conn

    # --- feeds ---

    def add_feed(self, feed: NewFeed) -> Feed:
        """Insert a feed, or return the existing row when the URL is already subscribed."""
        with self._writer() as conn:
            cursor = conn.cursor()
            cursor.execute(
                '''
                INSERT OR IGNORE INTO feeds (url, title, site_url, description)
                VALUES (?, ?, ?, ?)
                ''',
                (feed.url, feed.title or feed.url, feed.site_url, feed.description),
            )
            cursor.execute("SELECT * FROM feeds WHERE url = ?", (feed.url,))
            row = cursor.fetchone()
        logger.info(f"Subscribed to feed '{row['title']}' ({row['url']})")
        return self._row_to_feed(row)

    def get_feeds(self) -> List[Feed]:
        with self.get_connection() as conn:
            rows = conn.execute("SELECT * FROM feeds ORDER BY title COLLATE NOCASE").fetchall()
        return [self._row_to_feed(row) for row in rows]

    def get_feed(self, feed_id: int) -> Optional[Feed]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM feeds WHERE id = ?", (feed_id,)).fetchone()
        return self._row_to_feed(row) if row else None

    def has_feed_url(self, url: str) -> bool:
        with self.get_connection(row_factory=False) as conn:
            row = conn.execute("SELECT 1 FROM feeds WHERE url = ?", (url,)).fetchone()
        return row is not None

    def mark_feed_fetched(
        self,
        feed_id: int,
        fetched_at: datetime.datetime,
        title: Optional[str] = None,
        site_url: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        """Record a successful refresh; remote metadata only replaces stored values when present."""
        with self._writer() as conn:
            conn.execute(
                '''
                UPDATE feeds
                SET last_fetched_at = ?,
                    title = COALESCE(NULLIF(TRIM(?), ''), title),
                    site_url = COALESCE(?, site_url),
                    description = COALESCE(?, description)
                WHERE id = ?
                ''',
                (_to_db_time(fetched_at), title, site_url, description, feed_id),
            )

    def delete_feed(self, feed_id: int) -> bool:
        """Remove a feed and, by cascade, all of its articles."""
        with self._writer() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM articles WHERE feed_id = ?", (feed_id,))
            articles_deleted = cursor.rowcount
            cursor.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted feed {feed_id} and {articles_deleted} articles")
        return deleted

    # --- articles ---

    def upsert_articles(
        self,
        feed_id: int,
        articles: Iterable[NewArticle],
        fetched_at: Optional[datetime.datetime] = None,
    ) -> int:
        """Insert articles not yet stored for this feed; existing matches are left untouched.

        Returns:
            Number of newly inserted rows.
        """
        fetched_text = _to_db_time(fetched_at or utc_now())
        inserted = 0
        with self._writer() as conn:
            cursor = conn.cursor()
            for article in articles:
                cursor.execute(
                    '''
                    INSERT OR IGNORE INTO articles
                    (feed_id, external_key, title, url, author, published_at, fetched_at, content)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ''',
                    (
                        feed_id,
                        article.external_key,
                        article.title,
                        article.url,
                        article.author,
                        _to_db_time(article.published_at),
                        fetched_text,
                        article.content,
                    ),
                )
                inserted += cursor.rowcount
        logger.debug(f"Feed {feed_id}: inserted {inserted} new articles")
        return inserted

    def get_articles(self, feed_id: Optional[int] = None) -> List[Article]:
        """Return articles, newest first, optionally restricted to one feed."""
        query = "SELECT * FROM articles"
        params: Tuple[Any, ...] = ()
        if feed_id is not None:
            query += " WHERE feed_id = ?"
            params = (feed_id,)
        query += " ORDER BY COALESCE(published_at, fetched_at) DESC, id DESC"
        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_article(row) for row in rows]

    def get_article(self, article_id: int) -> Optional[Article]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM articles WHERE id = ?", (article_id,)).fetchone()
        return self._row_to_article(row) if row else None

    def set_summary(self, article_id: int, summary: str) -> None:
        with self._writer() as conn:
            conn.execute("UPDATE articles SET summary = ? WHERE id = ?", (summary, article_id))

    def set_content(self, article_id: int, content: str, full: bool) -> None:
        """Replace the stored body, e.g. after fetching the full article."""
        with self._writer() as conn:
            conn.execute(
                "UPDATE articles SET content = ?, content_full = ? WHERE id = ?",
                (content, 1 if full else 0, article_id),
            )

    # --- retention ---

    def purge_expired(
        self,
        now: Optional[datetime.datetime] = None,
        window: datetime.timedelta = DEFAULT_RETENTION,
    ) -> int:
        """Delete articles whose age strictly exceeds *window*.

        An article fetched exactly ``window`` ago is kept.
        """
        cutoff = _to_db_time((now or utc_now()) - window)
        with self._writer() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM articles WHERE fetched_at < ?", (cutoff,))
            deleted = cursor.rowcount
        logger.info(f"Purged {deleted} articles fetched before {cutoff}")
        return deleted

    def compact(self, now: Optional[datetime.datetime] = None) -> None:
        """Reclaim free pages with VACUUM and record when it ran."""
        with self._write_lock:
            try:
                conn = sqlite3.connect(self.db_path, timeout=5.0, isolation_level=None)
                try:
                    conn.execute("VACUUM")
                    conn.execute(
                        "INSERT OR REPLACE INTO meta (key, value) VALUES ('last_compacted_at', ?)",
                        (_to_db_time(now or utc_now()),),
                    )
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"Compaction failed: {e}") from e
        logger.info("Compacted database")

    def last_compacted_at(self) -> Optional[datetime.datetime]:
        with self.get_connection(row_factory=False) as conn:
            row = conn.execute("SELECT value FROM meta WHERE key = 'last_compacted_at'").fetchone()
        return _from_db_time(row[0]) if row else None

    def maintain(
        self,
        now: Optional[datetime.datetime] = None,
        window: datetime.timedelta = DEFAULT_RETENTION,
        compact_interval: datetime.timedelta = DEFAULT_COMPACT_INTERVAL,
    ) -> Tuple[int, bool]:
        """Run one retention cycle: purge, then compact if the cadence has elapsed.

        Returns:
            (number of purged articles, whether compaction ran)
        """
        now = now or utc_now()
        purged = self.purge_expired(now, window)
        last = self.last_compacted_at()
        if last is None or now - last >= compact_interval:
            self.compact(now)
            return purged, True
        return purged, False

    def counts(self) -> Dict[str, int]:
        with self.get_connection(row_factory=False) as conn:
            feeds = conn.execute("SELECT COUNT(*) FROM feeds").fetchone()[0]
            articles = conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0]
        return {'feeds': feeds, 'articles': articles}

    # --- row mapping ---

    @staticmethod
    def _row_to_feed(row: sqlite3.Row) -> Feed:
        return Feed(
            id=row['id'],
            url=row['url'],
            title=row['title'],
            last_fetched_at=_from_db_time(row['last_fetched_at']),
            site_url=row['site_url'],
            description=row['description'],
        )

    @staticmethod
    def _row_to_article(row: sqlite3.Row) -> Article:
        return Article(
            id=row['id'],
            feed_id=row['feed_id'],
            external_key=row['external_key'],
            title=row['title'],
            url=row['url'],
            author=row['author'],
            published_at=_from_db_time(row['published_at']),
            fetched_at=_from_db_time(row['fetched_at']),
            content=row['content'],
            content_full=bool(row['content_full']),
            summary=row['summary'],
        )

    def close_all_connections(self):
        """Connections are opened per call; nothing to release."""
        pass
