"""
Purge command: apply the retention window and compact the database immediately.
"""

import datetime
import logging
from typing import Any, Dict, Optional, Tuple

from ..core.command_context import CommandContext
from ..core.config import ConfigManager
from ..core.errors import StorageError
from ..core.models import utc_now
from ..core.paths import resolve_data_file

logger = logging.getLogger(__name__)


def purge(config_path: Optional[str], now: Optional[datetime.datetime] = None) -> Tuple[int, int]:
    """Delete articles older than the retention window, then VACUUM.

    Returns:
        (articles purged, articles remaining)
    """
    now = now or utc_now()
    with CommandContext(config_path) as ctx:
        window = ctx.config_manager.get_retention_window()
        purged = ctx.db.purge_expired(now, window)
        ctx.db.compact(now)
        remaining = ctx.db.counts()['articles']
    logger.info(f"Purge complete: {purged} removed, {remaining} remaining")
    return purged, remaining


def status(config_path: Optional[str]) -> Dict[str, Any]:
    """Collect configuration and database status without raising."""
    info: Dict[str, Any] = {}
    try:
        cm = ConfigManager(config_path)
        info['config_path'] = cm.config_path
        info['valid'] = cm.validate_config()
        if not info['valid']:
            return info
        config = cm.load_config()
        info['db_path'] = str(resolve_data_file(config['database']['path']))
        try:
            with CommandContext(config_path) as ctx:
                info.update(ctx.db.counts())
                last = ctx.db.last_compacted_at()
        except StorageError as e:
            logger.error(f"Database unavailable: {e}")
            info['db_error'] = str(e)
            return info
        info['last_compacted_at'] = last.isoformat() if last else None
        info['summaries_enabled'] = bool(config.get('llm'))
        info['bookmarks_enabled'] = bool(cm.get_bookmark_token())
    except Exception as e:
        info.update({'valid': False, 'error': str(e)})
    return info
