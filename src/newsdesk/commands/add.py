"""
Add command: discover the feed behind a URL and subscribe to it.
"""

import logging
from typing import Optional

from ..core.command_context import CommandContext
from ..core.errors import ParseError
from ..core.models import Feed
from ..core.orchestrator import Discover

logger = logging.getLogger(__name__)


def run(config_path: Optional[str], url: str, timeout: Optional[float] = 60.0) -> Feed:
    """Subscribe to the first feed discovered at *url* and fetch it once.

    Raises:
        ParseError: No feed could be found at the URL.
        RuntimeError: Discovery or the first refresh failed or timed out.
    """
    with CommandContext(config_path) as ctx:
        orchestrator = ctx.build_orchestrator()
        orchestrator.load()
        known = set(orchestrator.state.feeds)

        operation = Discover(url, subscribe=True)
        orchestrator.submit(operation)
        if not orchestrator.wait_idle(timeout):
            raise RuntimeError(f"Timed out discovering feeds at {url}")

        state = orchestrator.state
        error = state.errors.get(operation.target)
        if error:
            raise RuntimeError(error)
        if not state.discovered.get(url):
            raise ParseError(f"No feed found at {url}")

        new_ids = [feed_id for feed_id in state.feeds if feed_id not in known]
        if new_ids:
            feed = state.feeds[new_ids[0]]
        else:
            # Already subscribed: report the existing feed
            candidate = state.discovered[url][0]
            feed = next(f for f in state.feeds.values() if f.url == candidate)
        logger.info(f"Subscribed to '{feed.title}' ({feed.url})")
        return feed
