"""
OPML import/export commands.

Import flattens nested outlines (folders) and subscribes to every outline that
carries an ``xmlUrl``. Export writes one flat outline per subscribed feed.
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable, List, Tuple

from ..core.command_context import CommandContext
from ..core.errors import ParseError
from ..core.models import Feed, NewFeed

logger = logging.getLogger(__name__)


def parse_opml(content: str) -> List[NewFeed]:
    """Extract feeds from an OPML document.

    Raises:
        ParseError: The document is not well-formed XML or has no <body>.
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ParseError(f"Malformed OPML: {e}") from e

    body = root.find('body')
    if root.tag != 'opml' or body is None:
        raise ParseError("Not an OPML document (missing <opml>/<body>)")

    feeds: List[NewFeed] = []
    for outline in body.iter('outline'):
        xml_url = (outline.get('xmlUrl') or '').strip()
        if not xml_url:
            continue
        title = (outline.get('text') or outline.get('title') or '').strip()
        feeds.append(
            NewFeed(
                url=xml_url,
                title=title or xml_url,
                site_url=outline.get('htmlUrl') or None,
                description=outline.get('description') or None,
            )
        )
    return feeds


def build_opml(feeds: Iterable[Feed], title: str = "newsdesk feeds") -> str:
    root = ET.Element('opml', version='2.0')
    head = ET.SubElement(root, 'head')
    ET.SubElement(head, 'title').text = title
    body = ET.SubElement(root, 'body')
    for feed in feeds:
        attrs = {'text': feed.title, 'title': feed.title, 'type': 'rss', 'xmlUrl': feed.url}
        if feed.site_url:
            attrs['htmlUrl'] = feed.site_url
        if feed.description:
            attrs['description'] = feed.description
        ET.SubElement(body, 'outline', attrs)
    ET.indent(root)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding='unicode') + '\n'


def run_import(config_path: str, path: str) -> Tuple[int, int]:
    """Subscribe to every feed listed in the OPML file at *path*.

    Returns:
        (feeds added, feeds skipped because already subscribed)

    Raises:
        ParseError: The file is not valid OPML.
    """
    content = Path(path).expanduser().read_text(encoding='utf-8')
    feeds = parse_opml(content)
    logger.info(f"Found {len(feeds)} feeds in {path}")

    added = skipped = 0
    with CommandContext(config_path) as ctx:
        for feed in feeds:
            if ctx.db.has_feed_url(feed.url):
                logger.debug(f"Already subscribed: {feed.url}")
                skipped += 1
                continue
            ctx.db.add_feed(feed)
            added += 1
    return added, skipped


def run_export(config_path: str, path: str) -> int:
    """Write all subscriptions to *path* as OPML and return the number exported."""
    with CommandContext(config_path) as ctx:
        feeds = ctx.db.get_feeds()
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(build_opml(feeds), encoding='utf-8')
    logger.info(f"Exported {len(feeds)} feeds to {target}")
    return len(feeds)
