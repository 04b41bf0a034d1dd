"""Configuration management for the YAML config file."""

import datetime
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .paths import get_data_dir

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = get_data_dir() / "config"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"

DEFAULT_PRIMARY_COOKIE_PATHS = [
    "~/.config/google-chrome/Default/Cookies",
    "~/.config/chromium/Default/Cookies",
]
DEFAULT_SECONDARY_COOKIE_GLOB = "~/.mozilla/firefox/*/cookies.sqlite"

_DEFAULT_CONFIG_TEMPLATE = """# Auto-generated default configuration for newsdesk
database:
  path: "feeds.db"

llm:
  model: "gpt-4o-mini"
  model_fallback: "gpt-4o"
  api_key_env: "OPENAI_API_KEY"
  max_tokens: 400

bookmarks:
  token_env: "RAINDROP_TOKEN"
  default_tags: ["rss"]

refresh:
  interval_minutes: 30
  timeout_seconds: 10
  content_timeout_seconds: 10
  retry_backoff_seconds: 1.0
  max_workers: 5

retention:
  days: 7
  compact_interval_hours: 24

cookies:
  primary_paths:
    - "~/.config/google-chrome/Default/Cookies"
    - "~/.config/chromium/Default/Cookies"
  secondary_glob: "~/.mozilla/firefox/*/cookies.sqlite"
"""


def _write_template(path: Path, content: str) -> None:
    """Write templated YAML content to disk with a trailing newline."""
    path.write_text(content.strip() + "\n", encoding="utf-8")


class ConfigManager:
    """Manages loading and validation of the YAML configuration file."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize the manager and ensure a baseline config file exists."""
        path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()
        if not path.is_absolute():
            path = path.resolve()
        self.config_path = str(path)
        self.base_dir = str(path.parent)
        self._config = None
        self._ensure_default_config()

    def load_config(self) -> Dict[str, Any]:
        """Load the main configuration file."""
        if self._config is None:
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    self._config = yaml.safe_load(f) or {}
                logger.info(f"Loaded configuration from {self.config_path}")
            except Exception as e:
                logger.error(f"Failed to load config from {self.config_path}: {e}")
                raise

        return self._config

    def _ensure_default_config(self) -> None:
        """Create the default configuration file if it is missing."""
        config_file = Path(self.config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)
        if not config_file.exists():
            _write_template(config_file, _DEFAULT_CONFIG_TEMPLATE)
            logger.info("Created default config.yaml at %s", config_file)

    def _section(self, name: str) -> Dict[str, Any]:
        value = self.load_config().get(name)
        return value if isinstance(value, dict) else {}

    # --- typed accessors ---

    def get_refresh_settings(self) -> Dict[str, Any]:
        refresh = self._section('refresh')
        return {
            'interval_minutes': int(refresh.get('interval_minutes', 30)),
            'timeout_seconds': float(refresh.get('timeout_seconds', 10)),
            'content_timeout_seconds': float(refresh.get('content_timeout_seconds', 10)),
            'retry_backoff_seconds': float(refresh.get('retry_backoff_seconds', 1.0)),
            'max_workers': int(refresh.get('max_workers', 5)),
        }

    def get_retention_window(self) -> datetime.timedelta:
        return datetime.timedelta(days=float(self._section('retention').get('days', 7)))

    def get_compact_interval(self) -> datetime.timedelta:
        hours = float(self._section('retention').get('compact_interval_hours', 24))
        return datetime.timedelta(hours=hours)

    def get_cookie_paths(self) -> Dict[str, Any]:
        cookies = self._section('cookies')
        primary = cookies.get('primary_paths') or DEFAULT_PRIMARY_COOKIE_PATHS
        if isinstance(primary, str):
            primary = [primary]
        return {
            'primary_paths': [os.path.expanduser(p) for p in primary],
            'secondary_glob': os.path.expanduser(cookies.get('secondary_glob') or DEFAULT_SECONDARY_COOKIE_GLOB),
        }

    def get_bookmark_token(self) -> Optional[str]:
        """Bookmark service token from the environment (name configurable) or the config file."""
        bookmarks = self._section('bookmarks')
        env_var = bookmarks.get('token_env') or 'RAINDROP_TOKEN'
        return os.environ.get(env_var) or bookmarks.get('token')

    def get_default_tags(self) -> List[str]:
        tags = self._section('bookmarks').get('default_tags')
        if tags is None:
            return ['rss']
        return [str(t) for t in tags]

    def get_blocklist_path(self) -> Path:
        return Path(self.base_dir) / "blocklist.txt"

    def validate_config(self) -> bool:
        """Validate the configuration file."""
        try:
            config = self.load_config()

            database = config.get('database')
            if not isinstance(database, dict) or not database.get('path'):
                logger.error("Missing required setting 'database.path'")
                return False

            for section in ('llm', 'bookmarks', 'refresh', 'retention', 'cookies'):
                if section in config and not isinstance(config[section], dict):
                    logger.error(f"Section '{section}' must be a mapping")
                    return False

            refresh = self.get_refresh_settings()
            for key in ('timeout_seconds', 'content_timeout_seconds'):
                if refresh[key] <= 0:
                    logger.error(f"'refresh.{key}' must be positive")
                    return False
            if refresh['max_workers'] < 1:
                logger.error("'refresh.max_workers' must be at least 1")
                return False

            if self.get_retention_window() <= datetime.timedelta(0):
                logger.error("'retention.days' must be positive")
                return False

            tags = self._section('bookmarks').get('default_tags')
            if tags is not None and not isinstance(tags, list):
                logger.error("'bookmarks.default_tags' must be a list of strings")
                return False

            logger.info("Configuration validation passed")
            return True

        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            return False


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_CONFIG_DIR",
]
