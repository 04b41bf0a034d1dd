"""Shared HTTP client with a single bounded retry and error classification."""

import logging
import threading
import time
from typing import Dict, Optional

import requests

from .errors import NetworkError

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0"

_TRANSIENT_STATUSES = (429, 500, 502, 503, 504)


class RetryableHTTPClient:
    """HTTP client that retries transient failures exactly once.

    Timeouts, connection errors and 429/5xx responses are transient: the
    request is repeated once after a fixed backoff. Other 4xx responses are
    permanent and raised immediately. Every failure surfaces as NetworkError.

    Args:
        timeout: Per-request timeout in seconds (default: 10)
        max_retries: Number of retries after the first attempt (default: 1)
        backoff: Fixed wait in seconds before a retry (default: 1.0)
        session_factory: Callable returning a requests.Session-like object
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_retries: int = 1,
        backoff: float = 1.0,
        session_factory=requests.Session,
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self._session_factory = session_factory
        self._local = threading.local()

    @property
    def session(self):
        """One session per thread; requests.Session is not safe to share across workers."""
        session = getattr(self._local, 'session', None)
        if session is None:
            session = self._session_factory()
            session.headers.update({"User-Agent": USER_AGENT})
            self._local.session = session
        return session

    def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        """GET *url*, retrying once on transient failure.

        Returns:
            The successful (2xx/3xx) response.

        Raises:
            NetworkError: On permanent HTTP errors or when the retry also fails.
        """
        timeout = timeout or self.timeout
        attempt = 0
        while True:
            try:
                return self._get_once(url, headers, timeout)
            except NetworkError as e:
                if not e.transient or attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.debug(f"Transient failure for {url} ({e}); retrying in {self.backoff}s")
                time.sleep(self.backoff)

    def _get_once(self, url: str, headers: Optional[Dict[str, str]], timeout: float) -> requests.Response:
        try:
            r = self.session.get(url, headers=headers, timeout=timeout)
        except requests.Timeout as e:
            raise NetworkError(f"Timed out after {timeout}s fetching {url}", transient=True) from e
        except requests.ConnectionError as e:
            raise NetworkError(f"Connection failed for {url}: {e}", transient=True) from e
        except requests.RequestException as e:
            raise NetworkError(f"Request failed for {url}: {e}") from e

        if r.status_code in _TRANSIENT_STATUSES:
            raise NetworkError(f"HTTP {r.status_code} from {url}", transient=True, status=r.status_code)
        if r.status_code >= 400:
            raise NetworkError(f"HTTP {r.status_code} from {url}", status=r.status_code)
        return r

    def close(self):
        """Close the calling thread's session."""
        session = getattr(self._local, 'session', None)
        if session is not None:
            session.close()
            self._local.session = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
