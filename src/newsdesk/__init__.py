from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from .commands import add as add_cmd
from .commands import maintenance as maintenance_cmd
from .commands import opml as opml_cmd
from .commands import refresh as refresh_cmd
from .commands.refresh import RefreshReport
from .core.config import DEFAULT_CONFIG_PATH
from .core.models import Feed

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = str(DEFAULT_CONFIG_PATH)

__all__ = [
    'refresh',
    'add',
    'import_opml',
    'export_opml',
    'purge',
    'status',
]


def refresh(timeout: Optional[float] = None, config_path: Optional[str] = None) -> RefreshReport:
    """Refresh every subscribed feed once (headless).

    Args:
        timeout: Seconds to wait for all feeds (optional)
        config_path: Path to main YAML config; defaults to the data dir config.
    """
    return refresh_cmd.run(config_path or _DEFAULT_CONFIG, timeout=timeout)


def add(url: str, config_path: Optional[str] = None) -> Feed:
    """Discover the feed behind *url* and subscribe to it."""
    return add_cmd.run(config_path or _DEFAULT_CONFIG, url)


def import_opml(path: str, config_path: Optional[str] = None) -> Tuple[int, int]:
    """Subscribe to the feeds in an OPML file; returns (added, skipped)."""
    return opml_cmd.run_import(config_path or _DEFAULT_CONFIG, path)


def export_opml(path: str, config_path: Optional[str] = None) -> int:
    return opml_cmd.run_export(config_path or _DEFAULT_CONFIG, path)


def purge(config_path: Optional[str] = None) -> Tuple[int, int]:
    """Apply retention now and compact; returns (purged, remaining)."""
    return maintenance_cmd.purge(config_path or _DEFAULT_CONFIG)


def status(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Return configuration and database status for programmatic use."""
    return maintenance_cmd.status(config_path or _DEFAULT_CONFIG)
