"""
Headless refresh command.
Runs one refresh cycle across all feeds through the orchestrator, then a retention pass.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..core.command_context import CommandContext
from ..core.orchestrator import OperationKind

logger = logging.getLogger(__name__)


@dataclass
class RefreshReport:
    feeds: int = 0
    new_articles: int = 0
    failed: Dict[str, str] = field(default_factory=dict)
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.timed_out


def run(config_path: Optional[str], timeout: Optional[float] = None) -> RefreshReport:
    """Refresh every subscribed feed once.

    Args:
        config_path: Path to the main configuration file
        timeout: Seconds to wait for all feeds before giving up (None = no limit)

    Returns:
        RefreshReport with per-feed failure messages keyed by feed title.
    """
    logger.info("Starting headless refresh")
    with CommandContext(config_path) as ctx:
        before = ctx.db.counts()['articles']
        orchestrator = ctx.build_orchestrator()
        orchestrator.load()

        report = RefreshReport(feeds=len(orchestrator.state.feeds))
        if not report.feeds:
            logger.info("No feeds subscribed; nothing to refresh")
            return report

        orchestrator.refresh_all()
        if not orchestrator.wait_idle(timeout):
            logger.error(f"Refresh did not finish within {timeout}s")
            report.timed_out = True

        state = orchestrator.state
        for target, message in state.errors.items():
            if target.kind != OperationKind.REFRESH:
                continue
            feed = state.feeds.get(target.key)
            name = feed.title if feed else str(target.key)
            report.failed[name] = message
            logger.error(f"Feed '{name}' failed: {message}")

        report.new_articles = max(0, ctx.db.counts()['articles'] - before)

        orchestrator.maintain()
        orchestrator.wait_idle(timeout)

    logger.info(
        f"Refresh finished: {report.feeds} feeds, {report.new_articles} new articles, "
        f"{len(report.failed)} failed"
    )
    return report
