"""Tests for the headless CLI commands and their exit codes."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

# Ensure the repository's src/ directory is importable without installation.
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from newsdesk.cli import cli  # noqa: E402
from newsdesk.core.database import DatabaseManager  # noqa: E402
from newsdesk.core.errors import NetworkError  # noqa: E402
from newsdesk.core.models import FetchedFeed, NewArticle, NewFeed  # noqa: E402
from newsdesk.processors.feed_fetcher import FeedFetcher  # noqa: E402


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    monkeypatch.setenv("NEWSDESK_DATA_DIR", str(tmp_path / "data"))
    path = tmp_path / "config.yaml"
    path.write_text(
        (
            "database:\n"
            f"  path: \"{tmp_path / 'feeds.db'}\"\n"
            "refresh:\n"
            "  max_workers: 2\n"
            "cookies:\n"
            f"  primary_paths: [\"{tmp_path / 'no-chrome'}\"]\n"
            f"  secondary_glob: \"{tmp_path / 'no-firefox' / '*.sqlite'}\"\n"
        ),
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def db(tmp_path, config_path):
    return DatabaseManager({"database": {"path": str(tmp_path / "feeds.db")}})


def fake_fetch(self, url):
    if "broken" in url:
        raise NetworkError(f"HTTP 404 from {url}", status=404)
    return FetchedFeed("Working", [NewArticle(external_key="k1", title="Hello", url="https://ok.example/1")])


def test_refresh_with_no_feeds_succeeds(config_path):
    result = CliRunner().invoke(cli, ["--config", config_path, "refresh"])

    assert result.exit_code == 0, result.output
    assert "Refreshed 0 feeds" in result.output


def test_refresh_exits_zero_when_all_feeds_succeed(config_path, db, monkeypatch):
    monkeypatch.setattr(FeedFetcher, "fetch", fake_fetch)
    db.add_feed(NewFeed(url="https://ok.example/feed", title="Working"))

    result = CliRunner().invoke(cli, ["--config", config_path, "refresh", "--timeout", "10"])

    assert result.exit_code == 0, result.output
    assert "1 new articles" in result.output
    assert db.counts()["articles"] == 1


def test_refresh_exits_nonzero_when_a_feed_fails(config_path, db, monkeypatch):
    monkeypatch.setattr(FeedFetcher, "fetch", fake_fetch)
    db.add_feed(NewFeed(url="https://ok.example/feed", title="Working"))
    db.add_feed(NewFeed(url="https://broken.example/feed", title="Broken"))

    result = CliRunner().invoke(cli, ["--config", config_path, "refresh", "--timeout", "10"])

    assert result.exit_code == 1
    assert "Broken" in result.output
    # The healthy feed is still stored
    assert db.counts()["articles"] == 1


def test_import_malformed_opml_exits_nonzero(config_path, tmp_path):
    bad = tmp_path / "bad.opml"
    bad.write_text("<opml><body><outline", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--config", config_path, "import", str(bad)])

    assert result.exit_code == 1
    assert "Could not parse" in result.output


def test_import_then_status(config_path, tmp_path):
    good = tmp_path / "good.opml"
    good.write_text(
        '<opml version="2.0"><body><outline text="A" xmlUrl="https://a.example/rss"/></body></opml>',
        encoding="utf-8",
    )

    imported = CliRunner().invoke(cli, ["--config", config_path, "import", str(good)])
    assert imported.exit_code == 0, imported.output
    assert "Imported 1 feeds" in imported.output

    status = CliRunner().invoke(cli, ["--config", config_path, "status"])
    assert status.exit_code == 0, status.output
    assert "Feeds: 1" in status.output


def test_purge_reports_counts(config_path):
    result = CliRunner().invoke(cli, ["--config", config_path, "purge"])

    assert result.exit_code == 0, result.output
    assert "Purged 0 articles" in result.output


@pytest.fixture
def unopenable_db_config(tmp_path, monkeypatch):
    monkeypatch.setenv("NEWSDESK_DATA_DIR", str(tmp_path / "data"))
    db_dir = tmp_path / "feeds.db"
    db_dir.mkdir()
    path = tmp_path / "config.yaml"
    path.write_text(f"database:\n  path: \"{db_dir}\"\n", encoding="utf-8")
    return str(path), str(db_dir)


def test_refresh_exits_nonzero_when_database_cannot_open(unopenable_db_config):
    config_path, db_dir = unopenable_db_config

    result = CliRunner().invoke(cli, ["--config", config_path, "refresh"])

    assert result.exit_code == 1
    assert "Refresh failed" in result.output
    assert db_dir in result.output


def test_status_exits_nonzero_when_database_cannot_open(unopenable_db_config):
    config_path, db_dir = unopenable_db_config

    result = CliRunner().invoke(cli, ["--config", config_path, "status"])

    assert result.exit_code == 1
    assert "Configuration is valid" in result.output
    assert "Database unavailable" in result.output
    assert db_dir in result.output
