"""Save article links to Raindrop.io."""

import logging
from typing import List, Optional

import requests

from ..core.errors import ApiError, NetworkError

logger = logging.getLogger(__name__)

RAINDROP_API_URL = "https://api.raindrop.io/rest/v1/raindrop"


class BookmarkClient:
    """Thin client for the Raindrop "create raindrop" endpoint.

    Args:
        token: Raindrop API token (test token or OAuth access token)
        default_tags: Tags added to every saved bookmark
        timeout: Request timeout in seconds (default: 10)
        session: Optional requests.Session for connection pooling
    """

    def __init__(
        self,
        token: Optional[str],
        default_tags: Optional[List[str]] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.token = token
        self.default_tags = list(default_tags or [])
        self.timeout = timeout
        self.session = session or requests.Session()

    def save_bookmark(self, url: str, title: Optional[str] = None) -> int:
        """Create a bookmark for *url* and return the Raindrop item id.

        Raises:
            ApiError: Missing token, rejected credentials, rate limiting or server failure.
            NetworkError: The service could not be reached.
        """
        if not self.token:
            raise ApiError("Missing Raindrop token", reason="config")

        payload = {"link": url, "tags": self.default_tags, "pleaseParse": {}}
        if title:
            payload["title"] = title
        headers = {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}

        try:
            r = self.session.post(RAINDROP_API_URL, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise NetworkError(f"Raindrop timed out after {self.timeout}s", transient=True) from e
        except requests.RequestException as e:
            raise NetworkError(f"Raindrop request failed: {e}", transient=True) from e

        if r.status_code in (401, 403):
            raise ApiError("Raindrop rejected the token", reason="auth", status=r.status_code)
        if r.status_code == 429:
            raise ApiError("Raindrop rate limit reached", reason="rate_limit", status=429)
        if r.status_code >= 400:
            raise ApiError(f"Raindrop error: HTTP {r.status_code}", reason="server", status=r.status_code)

        try:
            data = r.json()
        except ValueError as e:
            raise ApiError("Raindrop returned invalid JSON", reason="server") from e
        if not data.get("result", False):
            raise ApiError(f"Raindrop did not save the bookmark: {data.get('errorMessage', 'unknown error')}")
        item = data.get("item") or {}
        logger.info(f"Saved bookmark for {url}")
        return int(item.get("_id", 0))
