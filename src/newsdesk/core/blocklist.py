"""Keyword blocklist used to hide articles from the interactive listing."""

import logging
import os
import re
from pathlib import Path
from typing import Iterable, Optional, Set

logger = logging.getLogger(__name__)

MAX_KEYWORD_LENGTH = 50
_VALID_KEYWORD = re.compile(r"^[A-Za-z0-9 \-]+$")


def normalize_keyword(line: str) -> Optional[str]:
    """Return the canonical form of a blocklist line, or None when it is unusable.

    Keywords are trimmed, lowercased and whitespace-collapsed. Only ASCII
    letters, digits, spaces and hyphens are accepted, up to 50 characters.
    """
    trimmed = line.strip()
    if not trimmed:
        return None
    if len(trimmed) > MAX_KEYWORD_LENGTH:
        logger.warning(f"Keyword exceeds {MAX_KEYWORD_LENGTH} characters, rejecting: {trimmed}")
        return None
    if not _VALID_KEYWORD.match(trimmed):
        logger.warning(
            "Keyword contains invalid characters (only letters, numbers, spaces, hyphens allowed), rejecting: %s",
            trimmed,
        )
        return None
    return " ".join(trimmed.lower().split())


class Blocklist:
    """Set of blocked keywords loaded from a text file, one per line.

    A missing file means an empty blocklist.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.keywords: Set[str] = set()
        self._mtime: Optional[float] = None
        self._load()

    def _load(self) -> None:
        keywords: Set[str] = set()
        mtime = None
        try:
            mtime = os.path.getmtime(self.path)
            with open(self.path, 'r', encoding='utf-8', errors='replace') as f:
                for line in f:
                    normalized = normalize_keyword(line)
                    if normalized:
                        keywords.add(normalized)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Error reading blocklist at {self.path}: {e}")
        self.keywords = keywords
        self._mtime = mtime

    def reload(self) -> bool:
        """Reload when the file's modification time changed; returns True if it did."""
        try:
            current = os.path.getmtime(self.path)
        except OSError:
            current = None
        if current == self._mtime:
            return False
        self._load()
        return True

    def is_blocked(self, title: str) -> bool:
        if not self.keywords or not title:
            return False
        lowered = " ".join(title.lower().split())
        return any(keyword in lowered for keyword in self.keywords)

    def filter(self, articles: Iterable) -> list:
        return [a for a in articles if not self.is_blocked(a.title)]

    def __len__(self) -> int:
        return len(self.keywords)
