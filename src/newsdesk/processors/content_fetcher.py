"""Full-article retrieval using the user's browser session when available."""

import logging
import urllib.parse
from dataclasses import dataclass
from typing import List, Optional

from ..core.errors import NetworkError
from ..core.http_client import RetryableHTTPClient
from ..core.models import CookieRecord
from ..core.text_utils import MIN_CONTENT_CHARS, extract_readable
from .cookie_store import CookieStoreReader, build_cookie_header, select_for_scheme

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentResult:
    """Outcome of a content fetch; always produced, even when nothing was retrieved.

    ``partial`` is False only for text obtained through an authenticated
    request. ``text`` is None when neither attempt yielded readable content,
    in which case ``error`` says why.
    """

    url: str
    text: Optional[str]
    partial: bool
    authenticated: bool
    error: Optional[str] = None


class ContentFetcher:
    """Fetch article pages, attaching browser cookies and degrading to anonymous access."""

    def __init__(
        self,
        http_client: Optional[RetryableHTTPClient] = None,
        cookie_reader: Optional[CookieStoreReader] = None,
        min_chars: int = MIN_CONTENT_CHARS,
    ):
        self.http = http_client or RetryableHTTPClient()
        self.cookies = cookie_reader
        self.min_chars = min_chars

    def _cookies_for(self, host: str, scheme: str) -> List[CookieRecord]:
        if self.cookies is None:
            return []
        try:
            found = self.cookies.cookies_for(host)
        except OSError as e:
            logger.debug(f"Cookie lookup for {host} failed: {e}")
            return []
        return select_for_scheme(found, scheme)

    def fetch_content(self, article_url: str) -> ContentResult:
        """Return the readable body of *article_url*.

        With matching cookies the page is requested with a single ``Cookie``
        header; if that fails (network error, access denied, no readable
        body) the same URL is fetched anonymously and the result marked
        partial. Failures are reported in the result, never raised.
        """
        parsed = urllib.parse.urlparse(article_url)
        host = parsed.hostname
        if parsed.scheme not in ('http', 'https') or not host:
            return ContentResult(article_url, None, partial=True, authenticated=False,
                                 error=f"Unsupported article URL: {article_url!r}")

        cookies = self._cookies_for(host, parsed.scheme)
        if cookies:
            try:
                response = self.http.get(article_url, headers={'Cookie': build_cookie_header(cookies)})
                text = extract_readable(response.text, self.min_chars)
                if text:
                    logger.info(f"Fetched full content for {article_url} with {len(cookies)} cookies")
                    return ContentResult(article_url, text, partial=False, authenticated=True)
                logger.debug(f"Authenticated fetch of {article_url} returned no readable body")
            except NetworkError as e:
                logger.debug(f"Authenticated fetch of {article_url} failed: {e}")
        else:
            logger.debug(f"No browser cookies for {host}; fetching anonymously")

        try:
            response = self.http.get(article_url)
        except NetworkError as e:
            logger.warning(f"Content fetch failed for {article_url}: {e}")
            return ContentResult(article_url, None, partial=True, authenticated=False, error=str(e))

        text = extract_readable(response.text, self.min_chars)
        if not text:
            return ContentResult(article_url, None, partial=True, authenticated=False,
                                 error="No readable content on page")
        return ContentResult(article_url, text, partial=True, authenticated=False)
