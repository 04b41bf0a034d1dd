"""
Task orchestration between background workers and the single-threaded UI loop.

The orchestrator is the only owner of ``AppState``. Workers (feed refresh,
discovery, summarization, content fetch, bookmarking) run on a thread pool and
never touch state: each posts exactly one Completed/Failed message to a queue.
``poll()`` drains that queue on the caller's thread and applies a result only
if it carries the latest attempt token issued for its target; anything older
was superseded or cancelled and is dropped.

Persistence of fresh results is handed to a one-thread writer pool (the
repository's single writer), which reports back through the same queue with
``Persisted`` messages. ``poll()`` therefore never blocks on network or disk.

``submit``, ``cancel``, ``poll`` and the other public methods must all be
called from the same thread.
"""

from __future__ import annotations

import datetime
import itertools
import logging
import queue
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Union

from .database import DEFAULT_COMPACT_INTERVAL, DEFAULT_RETENTION, DatabaseManager
from .errors import ApiError, ErrorKind, classify
from .models import Article, Feed, FetchedFeed, NewFeed, utc_now

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    REFRESH = "refresh"
    DISCOVER = "discover"
    SUMMARIZE = "summarize"
    FETCH_CONTENT = "fetch_content"
    SAVE_BOOKMARK = "save_bookmark"
    # Writer-only targets; never submitted as operations
    DELETE_FEED = "delete_feed"
    MAINTAIN = "maintain"


@dataclass(frozen=True)
class Target:
    """What an operation acts on: the kind plus the entity key (feed id, article id or URL)."""

    kind: OperationKind
    key: Any


@dataclass(frozen=True)
class Refresh:
    feed_id: int

    @property
    def target(self) -> Target:
        return Target(OperationKind.REFRESH, self.feed_id)


@dataclass(frozen=True)
class Discover:
    seed_url: str
    subscribe: bool = True

    @property
    def target(self) -> Target:
        return Target(OperationKind.DISCOVER, self.seed_url)


@dataclass(frozen=True)
class Summarize:
    article_id: int

    @property
    def target(self) -> Target:
        return Target(OperationKind.SUMMARIZE, self.article_id)


@dataclass(frozen=True)
class FetchContent:
    article_id: int

    @property
    def target(self) -> Target:
        return Target(OperationKind.FETCH_CONTENT, self.article_id)


@dataclass(frozen=True)
class SaveBookmark:
    article_id: int

    @property
    def target(self) -> Target:
        return Target(OperationKind.SAVE_BOOKMARK, self.article_id)


Operation = Union[Refresh, Discover, Summarize, FetchContent, SaveBookmark]


@dataclass(frozen=True)
class Completed:
    operation: Operation
    payload: Any
    token: int


@dataclass(frozen=True)
class Failed:
    operation: Operation
    error_kind: ErrorKind
    message: str
    token: int


OperationResult = Union[Completed, Failed]


@dataclass(frozen=True)
class Persisted:
    """Writer-thread report: *apply* runs on the poll thread with *value*, or *error* is set."""

    target: Target
    apply: Optional[Callable[[Any], None]]
    value: Any = None
    error: Optional[str] = None


@dataclass(frozen=True)
class DiscoverOutcome:
    candidates: List[str]
    feed: Optional[NewFeed] = None


class SubmitStatus(str, Enum):
    ACCEPTED = "accepted"
    IN_PROGRESS = "already in progress"
    UNKNOWN_TARGET = "unknown target"


@dataclass
class AppState:
    """Everything the render loop reads. Mutated only inside TaskOrchestrator.poll()."""

    feeds: Dict[int, Feed] = field(default_factory=dict)
    articles: Dict[int, Article] = field(default_factory=dict)
    errors: Dict[Target, str] = field(default_factory=dict)
    discovered: Dict[str, List[str]] = field(default_factory=dict)
    status_message: str = ""
    failures: int = 0

    def sorted_feeds(self) -> List[Feed]:
        return sorted(self.feeds.values(), key=lambda f: (f.title or f.url).lower())

    def feed_articles(self, feed_id: Optional[int] = None) -> List[Article]:
        """Articles newest first; all feeds when *feed_id* is None."""
        items = [a for a in self.articles.values() if feed_id is None or a.feed_id == feed_id]
        return sorted(items, key=lambda a: (a.published_at or a.fetched_at, a.id), reverse=True)

    def replace_feed_articles(self, feed_id: int, articles: List[Article]) -> None:
        for article_id in [a.id for a in self.articles.values() if a.feed_id == feed_id]:
            del self.articles[article_id]
        for article in articles:
            self.articles[article.id] = article


def _label(target: Target, state: AppState) -> str:
    if target.kind == OperationKind.REFRESH:
        feed = state.feeds.get(target.key)
        return f"Refresh of '{feed.title}'" if feed else f"Refresh of feed {target.key}"
    if target.kind == OperationKind.DISCOVER:
        return f"Discovery at {target.key}"
    names = {
        OperationKind.SUMMARIZE: "Summary",
        OperationKind.FETCH_CONTENT: "Content fetch",
        OperationKind.SAVE_BOOKMARK: "Bookmark",
    }
    return f"{names.get(target.kind, target.kind.value)} for article {target.key}"


class TaskOrchestrator:
    """Runs operations concurrently and merges their results into AppState.

    Args:
        repository: DatabaseManager used by the writer thread
        feed_fetcher: object with fetch(url) and discover(url)
        content_fetcher: object with fetch_content(url), optional
        summarizer: object with summarize(text, title=None), optional
        bookmarks: object with save_bookmark(url, title=None), optional
        max_workers: Size of the worker pool (default: 5)
        retention: Article retention window (default: 7 days)
        compact_interval: Minimum time between compactions (default: 24 hours)
        clock: Callable returning the current aware UTC datetime
    """

    def __init__(
        self,
        repository: DatabaseManager,
        feed_fetcher,
        content_fetcher=None,
        summarizer=None,
        bookmarks=None,
        max_workers: int = 5,
        retention: datetime.timedelta = DEFAULT_RETENTION,
        compact_interval: datetime.timedelta = DEFAULT_COMPACT_INTERVAL,
        clock: Callable[[], datetime.datetime] = utc_now,
    ):
        self.repository = repository
        self.feed_fetcher = feed_fetcher
        self.content_fetcher = content_fetcher
        self.summarizer = summarizer
        self.bookmarks = bookmarks
        self.retention = retention
        self.compact_interval = compact_interval
        self.clock = clock

        self.state = AppState()
        self._results: "queue.Queue[Union[OperationResult, Persisted]]" = queue.Queue()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="newsdesk-worker")
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="newsdesk-writer")
        self._tokens = itertools.count(1)
        self._latest: Dict[Target, int] = {}
        self._in_flight: Dict[Target, int] = {}
        self._running = 0
        self._pending_writes = 0

    # --- lifecycle ---

    def load(self) -> None:
        """Populate state from the repository (startup; StorageError propagates)."""
        self.state.feeds = {f.id: f for f in self.repository.get_feeds()}
        self.state.articles = {a.id: a for a in self.repository.get_articles()}
        logger.info(f"Loaded {len(self.state.feeds)} feeds and {len(self.state.articles)} articles")

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting work; queued writes are always completed."""
        self._pool.shutdown(wait=wait, cancel_futures=True)
        self._writer.shutdown(wait=True)

    # --- public contract ---

    @property
    def in_flight(self) -> FrozenSet[Target]:
        return frozenset(self._in_flight)

    def latest_token(self, target: Target) -> Optional[int]:
        return self._latest.get(target)

    def submit(self, operation: Operation) -> SubmitStatus:
        """Start *operation* on the worker pool; never blocks.

        A second submission for a target that is still in flight is rejected.
        """
        target = operation.target
        if target in self._in_flight:
            logger.debug(f"{_label(target, self.state)} already in progress")
            return SubmitStatus.IN_PROGRESS

        job = self._prepare(operation)
        if job is None:
            return SubmitStatus.UNKNOWN_TARGET

        token = next(self._tokens)
        self._latest[target] = token
        self._in_flight[target] = token
        self._running += 1
        self._pool.submit(self._run, operation, token, job)
        return SubmitStatus.ACCEPTED

    def cancel(self, target: Target) -> bool:
        """Invalidate the in-flight attempt for *target* without stopping its worker.

        Returns True if an attempt was in flight.
        """
        self._latest[target] = next(self._tokens)
        was_running = self._in_flight.pop(target, None) is not None
        if was_running:
            self.state.status_message = f"{_label(target, self.state)} cancelled"
        return was_running

    def poll(self) -> List[Target]:
        """Apply every result that is ready; returns the targets whose state changed."""
        changed: List[Target] = []
        while True:
            try:
                message = self._results.get_nowait()
            except queue.Empty:
                break

            if isinstance(message, Persisted):
                self._pending_writes -= 1
                self._apply_persisted(message)
                changed.append(message.target)
                continue

            self._running -= 1
            target = message.operation.target
            if self._latest.get(target) != message.token:
                logger.debug(f"Discarding stale result for {target} (token {message.token})")
                continue
            if self._in_flight.get(target) == message.token:
                del self._in_flight[target]

            if isinstance(message, Failed):
                self._apply_failure(target, message.message)
            else:
                self.state.errors.pop(target, None)
                self._apply_completed(message)
            changed.append(target)

        return list(dict.fromkeys(changed))

    # --- convenience for callers ---

    def refresh_all(self) -> Dict[int, SubmitStatus]:
        return {feed_id: self.submit(Refresh(feed_id)) for feed_id in list(self.state.feeds)}

    def delete_feed(self, feed_id: int) -> None:
        """Remove a feed and its articles via the writer; an in-flight refresh is cancelled."""
        self.cancel(Refresh(feed_id).target)

        def applied(deleted: bool) -> None:
            feed = self.state.feeds.pop(feed_id, None)
            self.state.replace_feed_articles(feed_id, [])
            if feed is not None:
                self.state.status_message = f"Deleted feed '{feed.title}'"

        self._persist(Target(OperationKind.DELETE_FEED, feed_id),
                      lambda: self.repository.delete_feed(feed_id), applied)

    def maintain(self, now: Optional[datetime.datetime] = None) -> None:
        """Queue a retention cycle (purge + compaction on cadence)."""
        now = now or self.clock()

        def work():
            purged, compacted = self.repository.maintain(now, self.retention, self.compact_interval)
            return purged, compacted, self.repository.get_articles()

        def applied(value) -> None:
            purged, compacted, articles = value
            self.state.articles = {a.id: a for a in articles}
            if purged:
                self.state.status_message = f"Removed {purged} articles older than {self.retention.days} days"

        self._persist(Target(OperationKind.MAINTAIN, "repository"), work, applied)

    def is_idle(self) -> bool:
        return self._running == 0 and self._pending_writes == 0 and self._results.empty()

    def wait_idle(self, timeout: Optional[float] = None, interval: float = 0.05) -> bool:
        """Poll until every worker and queued write has reported; False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            self.poll()
            if self.is_idle():
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(interval)

    # --- worker side ---

    def _prepare(self, operation: Operation) -> Optional[Callable[[], Any]]:
        """Build the worker callable, capturing the inputs it needs from current state."""
        if isinstance(operation, Refresh):
            feed = self.state.feeds.get(operation.feed_id)
            if feed is None:
                return None
            fetcher = self.feed_fetcher
            return lambda: fetcher.fetch(feed.url)

        if isinstance(operation, Discover):
            return lambda: self._discover(operation)

        article = self.state.articles.get(operation.article_id)
        if article is None:
            return None

        if isinstance(operation, Summarize):
            summarizer = self.summarizer
            text = article.content or article.title

            def summarize():
                if summarizer is None:
                    raise ApiError("Summarization is not configured", reason="config")
                return summarizer.summarize(text, article.title)
            return summarize

        if isinstance(operation, FetchContent):
            content_fetcher = self.content_fetcher

            def fetch_content():
                if content_fetcher is None:
                    raise ApiError("Content fetching is not configured", reason="config")
                return content_fetcher.fetch_content(article.url)
            return fetch_content

        if isinstance(operation, SaveBookmark):
            bookmarks = self.bookmarks

            def save():
                if bookmarks is None:
                    raise ApiError("Bookmarking is not configured", reason="config")
                return bookmarks.save_bookmark(article.url, article.title)
            return save

        return None

    def _discover(self, operation: Discover) -> DiscoverOutcome:
        candidates = self.feed_fetcher.discover(operation.seed_url)
        if not operation.subscribe or not candidates:
            return DiscoverOutcome(candidates)
        first = candidates[0]
        fetched = self.feed_fetcher.fetch(first)
        return DiscoverOutcome(
            candidates,
            NewFeed(url=first, title=fetched.title or first,
                    site_url=fetched.site_url, description=fetched.description),
        )

    def _run(self, operation: Operation, token: int, job: Callable[[], Any]) -> None:
        """Worker entry point: exactly one message per attempt, exceptions included."""
        try:
            payload = job()
        except Exception as e:
            logger.warning(f"{type(operation).__name__} failed: {e}")
            self._results.put(Failed(operation, classify(e), str(e) or type(e).__name__, token))
            return
        self._results.put(Completed(operation, payload, token))

    def _persist(self, target: Target, work: Callable[[], Any], apply: Callable[[Any], None]) -> None:
        self._pending_writes += 1
        self._writer.submit(self._run_write, target, work, apply)

    def _run_write(self, target: Target, work: Callable[[], Any], apply: Callable[[Any], None]) -> None:
        try:
            value = work()
        except Exception as e:
            logger.error(f"Storage error for {target}: {e}")
            self._results.put(Persisted(target, None, error=str(e) or type(e).__name__))
            return
        self._results.put(Persisted(target, apply, value))

    # --- apply side (poll thread only) ---

    def _apply_failure(self, target: Target, message: str) -> None:
        self.state.errors[target] = message
        self.state.failures += 1
        self.state.status_message = f"{_label(target, self.state)} failed: {message}"

    def _apply_persisted(self, message: Persisted) -> None:
        if message.error is not None:
            self.state.errors[message.target] = message.error
            self.state.status_message = f"Storage error: {message.error}"
            return
        if message.apply is not None:
            message.apply(message.value)

    def _apply_completed(self, result: Completed) -> None:
        operation = result.operation
        if isinstance(operation, Refresh):
            self._apply_refresh(operation.feed_id, result.payload)
        elif isinstance(operation, Discover):
            self._apply_discover(operation, result.payload)
        elif isinstance(operation, Summarize):
            self._apply_summary(operation.article_id, result.payload)
        elif isinstance(operation, FetchContent):
            self._apply_content(operation, result.payload)
        elif isinstance(operation, SaveBookmark):
            self.state.status_message = f"Saved bookmark for article {operation.article_id}"

    def _apply_refresh(self, feed_id: int, fetched: FetchedFeed) -> None:
        now = self.clock()
        repo = self.repository

        def store():
            if repo.get_feed(feed_id) is None:
                return None
            inserted = repo.upsert_articles(feed_id, fetched.articles, now)
            repo.mark_feed_fetched(feed_id, now, fetched.title, fetched.site_url, fetched.description)
            return repo.get_feed(feed_id), repo.get_articles(feed_id), inserted

        def applied(value) -> None:
            if value is None:
                return
            feed, articles, inserted = value
            self.state.feeds[feed.id] = feed
            self.state.replace_feed_articles(feed.id, articles)
            self.state.status_message = f"{feed.title}: {inserted} new articles"

        self._persist(Refresh(feed_id).target, store, applied)

    def _apply_discover(self, operation: Discover, outcome: DiscoverOutcome) -> None:
        self.state.discovered[operation.seed_url] = list(outcome.candidates)
        if not outcome.candidates:
            self.state.status_message = f"No feeds found at {operation.seed_url}"
            return
        if outcome.feed is None:
            self.state.status_message = f"Found {len(outcome.candidates)} feed(s) at {operation.seed_url}"
            return

        new_feed = outcome.feed

        def applied(feed: Feed) -> None:
            self.state.feeds[feed.id] = feed
            self.state.status_message = f"Subscribed to '{feed.title}'"
            self.submit(Refresh(feed.id))

        self._persist(operation.target, lambda: self.repository.add_feed(new_feed), applied)

    def _apply_summary(self, article_id: int, summary: str) -> None:
        def applied(_) -> None:
            article = self.state.articles.get(article_id)
            if article is not None:
                self.state.articles[article_id] = article.with_changes(summary=summary)
            self.state.status_message = "Summary ready"

        self._persist(Summarize(article_id).target,
                      lambda: self.repository.set_summary(article_id, summary), applied)

    def _apply_content(self, operation: FetchContent, result) -> None:
        article_id = operation.article_id
        if not result.text:
            self.state.errors[operation.target] = result.error or "No content"
            self.state.status_message = f"Could not fetch content: {result.error or 'no readable body'}"
            return

        full = not result.partial

        def applied(_) -> None:
            article = self.state.articles.get(article_id)
            if article is not None:
                self.state.articles[article_id] = article.with_changes(content=result.text, content_full=full)
            self.state.status_message = (
                "Full content fetched" if full else "Fetched page without sign-in; content may be partial"
            )

        self._persist(operation.target,
                      lambda: self.repository.set_content(article_id, result.text, full), applied)


__all__ = [
    "OperationKind",
    "Target",
    "Refresh",
    "Discover",
    "Summarize",
    "FetchContent",
    "SaveBookmark",
    "Completed",
    "Failed",
    "Persisted",
    "DiscoverOutcome",
    "SubmitStatus",
    "AppState",
    "TaskOrchestrator",
]
