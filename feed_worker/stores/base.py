"""Store contracts, one per entity kind. File-backed and SQLAlchemy-backed implementations are interchangeable.

Every method may raise PersistenceError when the backing store is unavailable.
Cleanup methods take a retention window in days and return the number of rows removed.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol

from feed_worker.domain.types import (
    AdminUser,
    BannedUser,
    EventSummaryCache,
    Feed,
    SentEventMarker,
    User,
    UserNotifySentMarker,
    UserNotifySettings,
)


class FeedStore(Protocol):
    def save(self, feed: Feed) -> None:
        """Create or update (config and run state)."""
        ...

    def delete(self, feed_id: str) -> None: ...

    def get(self, feed_id: str) -> Feed | None: ...

    def list(self) -> list[Feed]: ...


class SentEventStore(Protocol):
    """Dedup markers: (feed_id, event_id) -> marker."""

    def get_markers(self, feed_id: str, event_ids: Iterable[int]) -> dict[int, SentEventMarker]:
        """Markers among event_ids that exist for feed_id, keyed by event id."""
        ...

    def save_markers(self, markers: Iterable[SentEventMarker]) -> None:
        """Upsert; at most one marker per (feed_id, event_id)."""
        ...

    def delete_for_feed(self, feed_id: str) -> int: ...

    def cleanup_older_than(self, days: int, now: datetime | None = None) -> int: ...


class UserStore(Protocol):
    def save(self, user: User) -> None: ...

    def delete(self, discord_user_id: str) -> None: ...

    def find(self, discord_user_id: str) -> User | None: ...


class AdminStore(Protocol):
    def save(self, admin: AdminUser) -> None: ...

    def delete(self, discord_user_id: str) -> None: ...

    def find(self, discord_user_id: str) -> AdminUser | None: ...

    def list(self) -> list[AdminUser]: ...


class BanStore(Protocol):
    def save(self, ban: BannedUser) -> None: ...

    def delete(self, discord_user_id: str) -> None: ...

    def find(self, discord_user_id: str) -> BannedUser | None: ...

    def list(self) -> list[BannedUser]: ...


class SummaryCacheStore(Protocol):
    def save(self, cache: EventSummaryCache) -> None: ...

    def get(self, event_id: int) -> EventSummaryCache | None: ...

    def delete(self, event_id: int) -> None: ...

    def cleanup(self, days: int, now: datetime | None = None) -> int: ...


class UserNotifySettingsStore(Protocol):
    def save(self, settings: UserNotifySettings) -> None: ...

    def find(self, discord_user_id: str) -> UserNotifySettings | None: ...

    def list_enabled(self) -> list[UserNotifySettings]: ...

    def delete(self, discord_user_id: str) -> None: ...


class UserNotifySentStore(Protocol):
    def mark_sent(self, discord_user_id: str, event_id: int, now: datetime | None = None) -> None:
        """Idempotent: a second call for the same pair keeps a single marker."""
        ...

    def is_sent(self, discord_user_id: str, event_id: int) -> bool: ...

    def get_sent_event_ids(self, discord_user_id: str) -> set[int]: ...

    def cleanup_older_than(self, days: int, now: datetime | None = None) -> int: ...

    def list_markers(self, discord_user_id: str) -> list[UserNotifySentMarker]: ...
