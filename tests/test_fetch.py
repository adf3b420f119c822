"""Tests for feed acquisition (network calls are patched)."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests
from structlog.testing import capture_logs

from npm_tree_audit.ingestion import FeedConfig, FeedFetchError, fetch_bytes, fetch_feeds
from npm_tree_audit.ingestion import fetch as fetch_mod


def test_fetch_local_file(tmp_path):
    path = tmp_path / "feed.txt"
    path.write_bytes(b"foo@1.0.0\n")

    assert fetch_bytes(str(path)) == b"foo@1.0.0\n"


def test_fetch_missing_local_file(tmp_path):
    with pytest.raises(FeedFetchError):
        fetch_bytes(str(tmp_path / "absent.txt"))


def test_fetch_url(monkeypatch):
    calls = []

    def fake_get(url):
        calls.append(url)
        return SimpleNamespace(status_code=200, content=b"[]")

    monkeypatch.setattr(fetch_mod, "_http_get", fake_get)

    assert fetch_bytes("https://example.com/list.json") == b"[]"
    assert calls == ["https://example.com/list.json"]


def test_fetch_url_bad_status(monkeypatch):
    monkeypatch.setattr(
        fetch_mod, "_http_get", lambda url: SimpleNamespace(status_code=404, content=b"")
    )

    with pytest.raises(FeedFetchError, match="404"):
        fetch_bytes("https://example.com/list.json")


def test_fetch_url_network_error(monkeypatch):
    def boom(url):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(fetch_mod, "_http_get", boom)

    with pytest.raises(FeedFetchError, match="unreachable"):
        fetch_bytes("https://example.com/list.json")


def test_fetch_feeds_skips_failures_and_keeps_order(tmp_path):
    good_a = tmp_path / "a.json"
    good_a.write_bytes(b'[{"package": "foo", "version": "1.0.0"}]')
    good_b = tmp_path / "b.txt"
    good_b.write_bytes(b"bar@2.0.0\n")
    feeds = [
        FeedConfig(id="a", url=str(good_a)),
        FeedConfig(id="missing", url=str(tmp_path / "nope.json")),
        FeedConfig(id="b", url=str(good_b)),
    ]

    with capture_logs() as logs:
        payloads = fetch_feeds(feeds, max_workers=3)

    assert [payload.source for payload in payloads] == ["a", "b"]
    assert payloads[0].snapshot.location == str(good_a)
    assert len(payloads[0].snapshot.content_hash) == 64
    assert any(log["event"] == "feed.fetch_failed" for log in logs)


def test_fetch_feeds_empty():
    assert fetch_feeds([]) == []
