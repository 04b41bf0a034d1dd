"""Tests for the feeds/articles repository."""

from __future__ import annotations

import datetime
import sqlite3
import sys
from pathlib import Path

import pytest

# Ensure the repository's src/ directory is importable without installation.
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from newsdesk.core.database import DatabaseManager  # noqa: E402
from newsdesk.core.models import NewArticle, NewFeed  # noqa: E402

NOW = datetime.datetime(2025, 3, 10, 12, 0, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def db(tmp_path):
    return DatabaseManager({"database": {"path": str(tmp_path / "feeds.db")}})


@pytest.fixture
def feed(db):
    return db.add_feed(NewFeed(url="https://example.com/feed.xml", title="Example"))


def _article(key: str, title: str | None = None) -> NewArticle:
    return NewArticle(external_key=key, title=title or f"Item {key}", url=f"https://example.com/{key}")


def test_add_feed_is_idempotent_per_url(db):
    first = db.add_feed(NewFeed(url="https://a.example/rss", title="A"))
    again = db.add_feed(NewFeed(url="https://a.example/rss", title="Renamed"))

    assert again.id == first.id
    assert again.title == "A"
    assert len(db.get_feeds()) == 1
    assert db.has_feed_url("https://a.example/rss")
    assert not db.has_feed_url("https://b.example/rss")


def test_upsert_inserts_only_unseen_keys(db, feed):
    """Five items where two were already stored yields exactly three new rows."""
    assert db.upsert_articles(feed.id, [_article("a"), _article("b")], NOW) == 2

    batch = [_article("a", "changed title"), _article("b"), _article("c"), _article("d"), _article("e")]
    inserted = db.upsert_articles(feed.id, batch, NOW)

    assert inserted == 3
    articles = db.get_articles(feed.id)
    assert len(articles) == 5
    keys = [a.external_key for a in articles]
    assert len(keys) == len(set(keys))
    # First-seen content wins
    assert next(a for a in articles if a.external_key == "a").title == "Item a"


def test_same_key_in_different_feeds_is_not_a_duplicate(db, feed):
    other = db.add_feed(NewFeed(url="https://other.example/rss", title="Other"))

    db.upsert_articles(feed.id, [_article("shared")], NOW)
    assert db.upsert_articles(other.id, [_article("shared")], NOW) == 1


def test_unique_constraint_is_enforced_by_schema(db, feed):
    db.upsert_articles(feed.id, [_article("x")], NOW)
    conn = sqlite3.connect(db.db_path)
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO articles (feed_id, external_key, title, url, fetched_at) VALUES (?, 'x', 't', 'u', 'n')",
                (feed.id,),
            )
    finally:
        conn.close()


def test_purge_boundary_keeps_exactly_window_old(db, feed):
    window = datetime.timedelta(days=7)
    db.upsert_articles(feed.id, [_article("old")], NOW - datetime.timedelta(days=8))
    db.upsert_articles(feed.id, [_article("edge")], NOW - window)
    db.upsert_articles(feed.id, [_article("recent")], NOW - datetime.timedelta(days=6))

    purged = db.purge_expired(NOW, window)

    assert purged == 1
    remaining = {a.external_key for a in db.get_articles()}
    assert remaining == {"edge", "recent"}
    cutoff = NOW - window
    assert all(a.fetched_at >= cutoff for a in db.get_articles())


def test_purge_sub_second_past_window_is_purged(db, feed):
    window = datetime.timedelta(days=7)
    fetched = NOW + datetime.timedelta(milliseconds=100)
    db.upsert_articles(feed.id, [_article("late")], fetched)

    assert db.purge_expired(fetched + window, window) == 0
    assert db.purge_expired(fetched + window + datetime.timedelta(milliseconds=800), window) == 1
    assert db.counts()["articles"] == 0


def test_fetched_at_round_trips_microseconds(db, feed):
    fetched = NOW + datetime.timedelta(microseconds=123456)
    db.upsert_articles(feed.id, [_article("precise")], fetched)

    assert db.get_articles()[0].fetched_at == fetched


def test_delete_feed_cascades_to_articles(db, feed):
    other = db.add_feed(NewFeed(url="https://other.example/rss", title="Other"))
    db.upsert_articles(feed.id, [_article("a"), _article("b")], NOW)
    db.upsert_articles(other.id, [_article("c")], NOW)

    assert db.delete_feed(feed.id) is True

    assert db.get_feed(feed.id) is None
    assert db.get_articles(feed.id) == []
    assert len(db.get_articles(other.id)) == 1
    assert db.delete_feed(feed.id) is False


def test_maintain_compacts_on_cadence(db, feed):
    interval = datetime.timedelta(hours=24)

    purged, compacted = db.maintain(NOW, compact_interval=interval)
    assert (purged, compacted) == (0, True)
    assert db.last_compacted_at() == NOW

    _, compacted = db.maintain(NOW + datetime.timedelta(hours=1), compact_interval=interval)
    assert compacted is False

    _, compacted = db.maintain(NOW + interval, compact_interval=interval)
    assert compacted is True


def test_mark_feed_fetched_keeps_title_when_remote_is_blank(db, feed):
    db.mark_feed_fetched(feed.id, NOW, title="  ", site_url="https://example.com")

    stored = db.get_feed(feed.id)
    assert stored.title == "Example"
    assert stored.site_url == "https://example.com"
    assert stored.last_fetched_at == NOW


def test_summary_and_content_updates(db, feed):
    db.upsert_articles(feed.id, [_article("a")], NOW)
    article = db.get_articles(feed.id)[0]

    db.set_summary(article.id, "short")
    db.set_content(article.id, "body text", full=True)

    stored = db.get_article(article.id)
    assert stored.summary == "short"
    assert stored.content == "body text"
    assert stored.content_full is True
    assert db.counts() == {"feeds": 1, "articles": 1}
