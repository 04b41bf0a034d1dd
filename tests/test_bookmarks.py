"""Tests for the Raindrop bookmark client."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import requests

# Ensure the repository's src/ directory is importable without installation.
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from newsdesk.core.errors import ApiError, NetworkError  # noqa: E402
from newsdesk.processors.bookmarks import RAINDROP_API_URL, BookmarkClient  # noqa: E402


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, outcome):
        self.outcome = outcome
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append((url, json, headers))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def test_save_bookmark_posts_link_and_tags():
    session = FakeSession(FakeResponse(200, {"result": True, "item": {"_id": 987}}))
    client = BookmarkClient("rd-token", default_tags=["rss"], session=session)

    assert client.save_bookmark("https://example.com/a", title="A story") == 987

    url, payload, headers = session.requests[0]
    assert url == RAINDROP_API_URL
    assert payload["link"] == "https://example.com/a"
    assert payload["title"] == "A story"
    assert payload["tags"] == ["rss"]
    assert headers["Authorization"] == "Bearer rd-token"


@pytest.mark.parametrize("status, reason", [(401, "auth"), (403, "auth"), (429, "rate_limit"), (500, "server")])
def test_http_errors_map_to_api_error(status, reason):
    client = BookmarkClient("rd-token", session=FakeSession(FakeResponse(status)))

    with pytest.raises(ApiError) as excinfo:
        client.save_bookmark("https://example.com/a")
    assert excinfo.value.reason == reason


def test_connection_failure_is_network_error():
    client = BookmarkClient("rd-token", session=FakeSession(requests.ConnectionError("down")))

    with pytest.raises(NetworkError):
        client.save_bookmark("https://example.com/a")


def test_missing_token_fails_before_any_request():
    session = FakeSession(FakeResponse(200, {"result": True}))

    with pytest.raises(ApiError) as excinfo:
        BookmarkClient(None, session=session).save_bookmark("https://example.com/a")
    assert excinfo.value.reason == "config"
    assert session.requests == []


def test_unsuccessful_result_is_api_error():
    session = FakeSession(FakeResponse(200, {"result": False, "errorMessage": "bad link"}))

    with pytest.raises(ApiError, match="bad link"):
        BookmarkClient("rd-token", session=session).save_bookmark("https://example.com/a")
