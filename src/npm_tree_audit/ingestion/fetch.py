"""Feed acquisition: turn configured locations into raw payloads."""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import requests
import structlog
from requests import Response
from tenacity import retry, stop_after_attempt, wait_fixed

from ..models.source_snapshot import FeedSnapshot
from .feeds_config import FeedConfig
from .normalised_feed import FeedFetchError, FeedPayload

logger = structlog.get_logger()

FETCH_TIMEOUT_SECONDS = 30

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36"
)


def _is_url(location: str) -> bool:
    return location.startswith("http://") or location.startswith("https://")


@retry(reraise=True, stop=stop_after_attempt(3), wait=wait_fixed(2))
def _http_get(url: str) -> Response:
    return requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=FETCH_TIMEOUT_SECONDS)


def fetch_bytes(location: str) -> bytes:
    """Return the raw payload at ``location`` (URL or filesystem path)."""
    if not _is_url(location):
        try:
            return Path(location).expanduser().read_bytes()
        except OSError as exc:
            raise FeedFetchError(f"Failed to read feed file {location}: {exc}") from exc

    try:
        response = _http_get(location)
    except requests.RequestException as exc:
        raise FeedFetchError(f"Failed to fetch {location}: {exc}") from exc

    if response.status_code != 200:
        raise FeedFetchError(f"Unexpected status code {response.status_code} fetching {location}")

    return response.content


def fetch_feed(feed: FeedConfig) -> FeedPayload:
    """Fetch one configured feed and label it with the feed ID."""
    content = fetch_bytes(feed.url)
    snapshot = FeedSnapshot.from_content(feed_id=feed.id, location=feed.url, content=content)
    logger.info("feed.fetched", feed=feed.id, location=feed.url, size=len(content))
    return FeedPayload(source=feed.id, content=content, snapshot=snapshot)


def _fetch_or_none(feed: FeedConfig) -> FeedPayload | None:
    try:
        return fetch_feed(feed)
    except FeedFetchError as exc:
        logger.warning("feed.fetch_failed", feed=feed.id, location=feed.url, error=str(exc))
        return None


def fetch_feeds(feeds: Sequence[FeedConfig], max_workers: int = 4) -> list[FeedPayload]:
    """Fetch feeds concurrently, keeping config order and dropping failures."""
    if not feeds:
        return []

    workers = max(1, min(max_workers, len(feeds)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(_fetch_or_none, feeds))

    return [payload for payload in results if payload is not None]
