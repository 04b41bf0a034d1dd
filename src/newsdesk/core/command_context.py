"""
Command context for shared initialization across CLI commands.

Loads and validates config, opens the database, and wires the worker
components into a TaskOrchestrator so that the headless commands and the
interactive interface are assembled the same way.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import ConfigManager
from .database import DatabaseManager
from .http_client import RetryableHTTPClient
from .orchestrator import TaskOrchestrator


logger = logging.getLogger(__name__)


class CommandContext:
    """Encapsulates shared initialization logic for CLI commands.

    Example:
        ```python
        with CommandContext(config_path) as ctx:
            orchestrator = ctx.build_orchestrator()
            orchestrator.load()
        ```
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize command context with config and database.

        Args:
            config_path: Path to main config file (None = use default)

        Raises:
            ValueError: If configuration is invalid
            StorageError: If the database cannot be opened
        """
        self.config_manager = ConfigManager(config_path)

        if not self.config_manager.validate_config():
            raise ValueError("Invalid configuration. Run 'newsdesk status' for details.")

        self.config = self.config_manager.load_config()
        self.db = DatabaseManager(self.config)
        self._orchestrator: Optional[TaskOrchestrator] = None

        logger.debug(f"CommandContext initialized with config from {self.config_manager.config_path}")

    def build_orchestrator(self) -> TaskOrchestrator:
        """Create the orchestrator with feed, content, summary and bookmark workers."""
        # Imported here so that commands which only touch the database skip the openai import
        from ..processors.bookmarks import BookmarkClient
        from ..processors.content_fetcher import ContentFetcher
        from ..processors.cookie_store import CookieStoreReader
        from ..processors.feed_fetcher import FeedFetcher
        from ..processors.summarizer import Summarizer

        refresh = self.config_manager.get_refresh_settings()
        feed_http = RetryableHTTPClient(
            timeout=refresh['timeout_seconds'],
            backoff=refresh['retry_backoff_seconds'],
        )
        content_http = RetryableHTTPClient(
            timeout=refresh['content_timeout_seconds'],
            backoff=refresh['retry_backoff_seconds'],
        )
        cookie_paths = self.config_manager.get_cookie_paths()
        cookie_reader = CookieStoreReader.from_paths(
            cookie_paths['primary_paths'], cookie_paths['secondary_glob']
        )

        bookmark_token = self.config_manager.get_bookmark_token()
        bookmarks = (
            BookmarkClient(bookmark_token, self.config_manager.get_default_tags())
            if bookmark_token else None
        )

        self._orchestrator = TaskOrchestrator(
            self.db,
            FeedFetcher(feed_http),
            content_fetcher=ContentFetcher(content_http, cookie_reader),
            summarizer=Summarizer.from_config(self.config, self.config_manager.base_dir),
            bookmarks=bookmarks,
            max_workers=refresh['max_workers'],
            retention=self.config_manager.get_retention_window(),
            compact_interval=self.config_manager.get_compact_interval(),
        )
        return self._orchestrator

    def close(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.shutdown()
        self.db.close_all_connections()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
