"""Provenance of one fetched feed payload."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from hashlib import sha256


@dataclass(frozen=True)
class FeedSnapshot:
    """Capture where and when a feed payload was retrieved."""

    feed_id: str
    location: str
    content_hash: str
    retrieved_at: datetime

    def __post_init__(self) -> None:
        if not self.feed_id:
            raise ValueError("feed_id must be provided")
        if not self.location:
            raise ValueError("location must be provided")
        if not self.content_hash or len(self.content_hash) != 64:
            raise ValueError("content_hash must be a SHA-256 hex digest")
        if self.retrieved_at.tzinfo is None:
            raise ValueError("retrieved_at must be timezone-aware")

    def to_dict(self) -> dict[str, str]:
        return {
            "feed": self.feed_id,
            "location": self.location,
            "contentHash": self.content_hash,
            "retrievedAt": self.retrieved_at.isoformat().replace("+00:00", "Z"),
        }

    @classmethod
    def from_content(
        cls,
        *,
        feed_id: str,
        location: str,
        content: bytes,
        retrieved_at: datetime | None = None,
    ) -> FeedSnapshot:
        timestamp = retrieved_at or datetime.now(timezone.utc)
        digest = sha256(content).hexdigest()
        return cls(
            feed_id=feed_id,
            location=location,
            content_hash=digest,
            retrieved_at=timestamp,
        )
