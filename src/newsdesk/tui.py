"""
Interactive terminal interface.

A rich ``Live`` loop that ticks a few times per second: it drains key events
from an input thread, calls ``TaskOrchestrator.poll()``, and re-renders from
``orchestrator.state``. Nothing here performs I/O beyond submitting operations.
"""

from __future__ import annotations

import datetime
import logging
import os
import queue
import select
import sys
import termios
import threading
import time
import tty
from dataclasses import dataclass
from typing import List, Optional

from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .core.blocklist import Blocklist
from .core.models import Article, Feed, utc_now
from .core.orchestrator import (
    FetchContent,
    Refresh,
    SaveBookmark,
    Summarize,
    SubmitStatus,
    TaskOrchestrator,
)

logger = logging.getLogger(__name__)

TICK_SECONDS = 0.25
FEEDS_PANE = "feeds"
ARTICLES_PANE = "articles"

HELP_TEXT = "j/k move  tab pane  r refresh  R all  f full text  s summary  b bookmark  x cancel  d delete  q quit"


def truncate(value: str, width: int) -> str:
    if len(value) <= width:
        return value
    return value[: max(0, width - 1)] + "…"


def human_age(when: Optional[datetime.datetime], now: Optional[datetime.datetime] = None) -> str:
    if when is None:
        return "-"
    seconds = max(0, int(((now or utc_now()) - when).total_seconds()))
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


@dataclass
class ViewState:
    """Cursor positions and pane focus; independent of the orchestrator's data."""

    pane: str = FEEDS_PANE
    feed_index: int = 0
    article_index: int = 0

    def move(self, delta: int, feed_count: int, article_count: int) -> None:
        if self.pane == FEEDS_PANE:
            self.feed_index = _clamp(self.feed_index + delta, feed_count)
            self.article_index = 0
        else:
            self.article_index = _clamp(self.article_index + delta, article_count)

    def toggle_pane(self) -> None:
        self.pane = ARTICLES_PANE if self.pane == FEEDS_PANE else FEEDS_PANE

    def clamp(self, feed_count: int, article_count: int) -> None:
        self.feed_index = _clamp(self.feed_index, feed_count)
        self.article_index = _clamp(self.article_index, article_count)


def _clamp(index: int, count: int) -> int:
    if count <= 0:
        return 0
    return max(0, min(index, count - 1))


class ReaderApp:
    """Key handling and rendering over one orchestrator."""

    def __init__(
        self,
        orchestrator: TaskOrchestrator,
        blocklist: Optional[Blocklist] = None,
        refresh_interval: datetime.timedelta = datetime.timedelta(minutes=30),
    ):
        self.orchestrator = orchestrator
        self.blocklist = blocklist
        self.refresh_interval = refresh_interval
        self.view = ViewState()
        self.running = True
        self.next_refresh_at = utc_now()

    # --- selection helpers ---

    def feeds(self) -> List[Feed]:
        return self.orchestrator.state.sorted_feeds()

    def selected_feed(self) -> Optional[Feed]:
        feeds = self.feeds()
        return feeds[self.view.feed_index] if feeds else None

    def articles(self) -> List[Article]:
        feed = self.selected_feed()
        if feed is None:
            return []
        items = self.orchestrator.state.feed_articles(feed.id)
        if self.blocklist is not None:
            items = self.blocklist.filter(items)
        return items

    def selected_article(self) -> Optional[Article]:
        items = self.articles()
        return items[self.view.article_index] if items else None

    # --- input ---

    def _submit(self, operation) -> None:
        status = self.orchestrator.submit(operation)
        if status != SubmitStatus.ACCEPTED:
            self.orchestrator.state.status_message = status.value

    def handle_key(self, key: str) -> None:
        feed = self.selected_feed()
        article = self.selected_article()

        if key in ("q", "QUIT"):
            self.running = False
        elif key in ("j", "DOWN"):
            self.view.move(1, len(self.feeds()), len(self.articles()))
        elif key in ("k", "UP"):
            self.view.move(-1, len(self.feeds()), len(self.articles()))
        elif key == "TAB":
            self.view.toggle_pane()
        elif key == "r" and feed is not None:
            self._submit(Refresh(feed.id))
        elif key == "R":
            self.orchestrator.refresh_all()
            self.orchestrator.state.status_message = "Refreshing all feeds"
        elif key == "f" and article is not None:
            self._submit(FetchContent(article.id))
        elif key == "s" and article is not None:
            self._submit(Summarize(article.id))
        elif key == "b" and article is not None:
            self._submit(SaveBookmark(article.id))
        elif key == "x":
            self._cancel_selected(feed, article)
        elif key == "d" and feed is not None and self.view.pane == FEEDS_PANE:
            self.orchestrator.delete_feed(feed.id)

    def _cancel_selected(self, feed: Optional[Feed], article: Optional[Article]) -> None:
        if self.view.pane == FEEDS_PANE:
            targets = [Refresh(feed.id).target] if feed else []
        elif article is not None:
            targets = [op.target for op in (FetchContent(article.id), Summarize(article.id), SaveBookmark(article.id))]
        else:
            targets = []
        if not any(self.orchestrator.cancel(t) for t in targets):
            self.orchestrator.state.status_message = "Nothing to cancel"

    def tick(self, now: Optional[datetime.datetime] = None) -> None:
        """Auto-refresh on cadence, then apply whatever results are ready."""
        now = now or utc_now()
        if now >= self.next_refresh_at:
            self.orchestrator.refresh_all()
            self.orchestrator.maintain(now)
            self.next_refresh_at = now + self.refresh_interval
        if self.blocklist is not None:
            self.blocklist.reload()
        self.orchestrator.poll()
        self.view.clamp(len(self.feeds()), len(self.articles()))

    # --- rendering ---

    def render_feeds(self) -> Panel:
        state = self.orchestrator.state
        in_flight = self.orchestrator.in_flight
        table = Table.grid(expand=True)
        table.add_column(width=2)
        table.add_column(ratio=1)
        table.add_column(justify="right", width=4)
        for idx, feed in enumerate(self.feeds()):
            target = Refresh(feed.id).target
            if target in in_flight:
                marker = "~"
            elif target in state.errors:
                marker = "!"
            else:
                marker = ""
            count = sum(1 for a in state.articles.values() if a.feed_id == feed.id)
            style = "reverse" if idx == self.view.feed_index else ""
            table.add_row(marker, truncate(feed.title, 40), str(count), style=style)
        border = "cyan" if self.view.pane == FEEDS_PANE else "grey37"
        return Panel(table, title="Feeds", border_style=border)

    def render_articles(self) -> Panel:
        table = Table.grid(expand=True)
        table.add_column(width=5)
        table.add_column(ratio=1)
        table.add_column(width=2)
        for idx, article in enumerate(self.articles()):
            flags = ("S" if article.summary else "") + ("F" if article.content_full else "")
            style = "reverse" if idx == self.view.article_index and self.view.pane == ARTICLES_PANE else ""
            table.add_row(human_age(article.published_at or article.fetched_at),
                          truncate(article.title, 90), flags, style=style)
        border = "cyan" if self.view.pane == ARTICLES_PANE else "grey37"
        return Panel(table, title="Articles", border_style=border)

    def render_detail(self) -> Panel:
        article = self.selected_article()
        if article is None:
            return Panel(Text("No article selected", style="dim"), title="Article")
        parts = [Text(article.title, style="bold"), Text(article.url, style="blue underline")]
        if article.summary:
            parts += [Text(""), Text("Summary", style="bold green"), Text(article.summary)]
        if article.content:
            label = "Full text" if article.content_full else "Excerpt"
            parts += [Text(""), Text(label, style="bold"), Text(truncate(article.content, 4000))]
        return Panel(Group(*parts), title="Article")

    def render_status(self) -> Text:
        state = self.orchestrator.state
        busy = len(self.orchestrator.in_flight)
        left = state.status_message or HELP_TEXT
        right = f"  [{busy} running, {state.failures} failed]"
        return Text(truncate(left, 160) + right, style="black on grey70")

    def render(self) -> Layout:
        body = Layout(name="body")
        body.split_row(
            Layout(self.render_feeds(), name="feeds", ratio=1),
            Layout(name="main", ratio=3),
        )
        body["main"].split_column(
            Layout(self.render_articles(), name="articles", ratio=1),
            Layout(self.render_detail(), name="detail", ratio=1),
        )
        root = Layout(name="root")
        root.split_column(body, Layout(self.render_status(), name="status", size=1))
        return root


def key_input_worker(key_queue: "queue.Queue[str]", stop_event: threading.Event) -> None:
    """Read single keys in cbreak mode and translate the few escape sequences we use."""
    fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(fd)
    try:
        tty.setcbreak(fd)
        while not stop_event.is_set():
            ready, _, _ = select.select([fd], [], [], 0.2)
            if not ready:
                continue
            key = os.read(fd, 1).decode("utf-8", errors="ignore")
            if not key:
                continue
            if key == "\t":
                key_queue.put("TAB")
            elif key == "\x03":
                key_queue.put("QUIT")
            elif key == "\x1b":
                sequence = ""
                while select.select([fd], [], [], 0.001)[0] and len(sequence) < 6:
                    sequence += os.read(fd, 1).decode("utf-8", errors="ignore")
                if sequence == "[A":
                    key_queue.put("UP")
                elif sequence == "[B":
                    key_queue.put("DOWN")
            else:
                key_queue.put(key)
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


def run(app: ReaderApp, console: Optional[Console] = None) -> None:
    """Block until the user quits."""
    console = console or Console()
    if not sys.stdin.isatty():
        raise RuntimeError("The interactive interface needs a terminal; use 'newsdesk refresh' for headless runs")

    keys: "queue.Queue[str]" = queue.Queue()
    stop_event = threading.Event()
    reader = threading.Thread(target=key_input_worker, args=(keys, stop_event), daemon=True)
    reader.start()

    try:
        with Live(app.render(), console=console, screen=True, auto_refresh=False) as live:
            while app.running:
                while True:
                    try:
                        app.handle_key(keys.get_nowait())
                    except queue.Empty:
                        break
                app.tick()
                live.update(app.render(), refresh=True)
                time.sleep(TICK_SECONDS)
    finally:
        stop_event.set()
        reader.join(timeout=2)
