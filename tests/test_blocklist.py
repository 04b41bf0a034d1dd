"""Tests for the keyword blocklist."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from types import SimpleNamespace

# Ensure the repository's src/ directory is importable without installation.
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from newsdesk.core.blocklist import Blocklist, normalize_keyword  # noqa: E402


def test_normalize_keyword_rules():
    assert normalize_keyword("  Crypto   News \n") == "crypto news"
    assert normalize_keyword("self-driving") == "self-driving"
    assert normalize_keyword("# comment") is None
    assert normalize_keyword("") is None
    assert normalize_keyword("x" * 51) is None


def test_missing_file_blocks_nothing(tmp_path):
    blocklist = Blocklist(tmp_path / "blocklist.txt")

    assert len(blocklist) == 0
    assert not blocklist.is_blocked("Anything at all")


def test_filter_hides_matching_titles(tmp_path):
    path = tmp_path / "blocklist.txt"
    path.write_text("Celebrity\nsports  betting\n", encoding="utf-8")
    blocklist = Blocklist(path)
    articles = [
        SimpleNamespace(title="Celebrity wedding photos"),
        SimpleNamespace(title="New rules for Sports   Betting ads"),
        SimpleNamespace(title="Budget vote delayed"),
    ]

    assert [a.title for a in blocklist.filter(articles)] == ["Budget vote delayed"]


def test_reload_only_when_modified(tmp_path):
    path = tmp_path / "blocklist.txt"
    path.write_text("alpha\n", encoding="utf-8")
    blocklist = Blocklist(path)

    assert blocklist.reload() is False

    path.write_text("alpha\nbeta\n", encoding="utf-8")
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))

    assert blocklist.reload() is True
    assert blocklist.keywords == {"alpha", "beta"}


def test_undecodable_line_is_skipped(tmp_path):
    path = tmp_path / "blocklist.txt"
    path.write_bytes(b"crypto\n\xff\xfe bad\nlottery\n")

    blocklist = Blocklist(path)

    assert blocklist.keywords == {"crypto", "lottery"}
    assert blocklist.is_blocked("Crypto markets fall")


def test_reload_survives_file_turning_undecodable(tmp_path):
    path = tmp_path / "blocklist.txt"
    path.write_text("crypto\n", encoding="utf-8")
    blocklist = Blocklist(path)

    path.write_bytes(b"\xff\xfe\nlottery\n")
    os.utime(path, (1_000_000_000, 1_000_000_000))

    assert blocklist.reload() is True
    assert blocklist.keywords == {"lottery"}
