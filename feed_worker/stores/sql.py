"""
SQLAlchemy-backed stores (SQLite or Postgres via DATABASE_URL).

Each call opens its own short session; any SQLAlchemyError is rolled back and re-raised
as PersistenceError so callers see one error kind regardless of backend.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from feed_worker.core.errors import PersistenceError
from feed_worker.domain.types import (
    AdminUser,
    BannedUser,
    EventSummaryCache,
    Feed,
    FeedConfig,
    FeedOrder,
    FeedState,
    SentEventMarker,
    User,
    UserNotifySentMarker,
    UserNotifySettings,
    DEFAULT_ORDER,
    ensure_utc,
    utcnow,
)
from feed_worker.models import (
    AdminRow,
    BannedUserRow,
    EventSummaryCacheRow,
    FeedRow,
    FeedSentEvent,
    UserNotifySentRow,
    UserNotifySettingsRow,
    UserRow,
)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    db = factory()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Database error: {e}") from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _cutoff(days: int, now: datetime | None) -> datetime:
    return (now or utcnow()) - timedelta(days=days)


class _SqlStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._sessions = session_factory


class SqlFeedStore(_SqlStore):
    def save(self, feed: Feed) -> None:
        c, s = feed.config, feed.state
        with session_scope(self._sessions) as db:
            db.merge(
                FeedRow(
                    id=c.id,
                    channel_id=c.channel_id,
                    schedule=c.schedule,
                    range_days=c.range_days,
                    keywords_and=list(c.keywords_and) or None,
                    keywords_or=list(c.keywords_or) or None,
                    location=list(c.location) or None,
                    hashtag=c.hashtag,
                    owner_nickname=c.owner_nickname,
                    sort_order=c.order.value,
                    min_participant_count=c.min_participant_count,
                    min_limit=c.min_limit,
                    use_ai=c.use_ai,
                    last_run_at=s.last_run_at,
                    next_run_at=s.next_run_at,
                )
            )

    def delete(self, feed_id: str) -> None:
        with session_scope(self._sessions) as db:
            db.query(FeedSentEvent).filter(FeedSentEvent.feed_id == feed_id).delete()
            db.query(FeedRow).filter(FeedRow.id == feed_id).delete()

    def get(self, feed_id: str) -> Feed | None:
        with session_scope(self._sessions) as db:
            row = db.get(FeedRow, feed_id)
            return self._to_feed(row) if row else None

    def list(self) -> list[Feed]:
        with session_scope(self._sessions) as db:
            return [self._to_feed(r) for r in db.query(FeedRow).order_by(FeedRow.id).all()]

    @staticmethod
    def _to_feed(row: FeedRow) -> Feed:
        return Feed(
            config=FeedConfig(
                id=row.id,
                channel_id=row.channel_id,
                schedule=row.schedule,
                range_days=row.range_days,
                keywords_and=tuple(row.keywords_and or ()),
                keywords_or=tuple(row.keywords_or or ()),
                location=tuple(row.location or ()),
                hashtag=row.hashtag,
                owner_nickname=row.owner_nickname,
                order=FeedOrder(row.sort_order) if row.sort_order else DEFAULT_ORDER,
                min_participant_count=row.min_participant_count,
                min_limit=row.min_limit,
                use_ai=bool(row.use_ai),
            ),
            state=FeedState(
                last_run_at=ensure_utc(row.last_run_at),
                next_run_at=ensure_utc(row.next_run_at),
            ),
        )


class SqlSentEventStore(_SqlStore):
    def get_markers(self, feed_id: str, event_ids: Iterable[int]) -> dict[int, SentEventMarker]:
        ids = list(event_ids)
        if not ids:
            return {}
        with session_scope(self._sessions) as db:
            rows = (
                db.query(FeedSentEvent)
                .filter(FeedSentEvent.feed_id == feed_id, FeedSentEvent.event_id.in_(ids))
                .all()
            )
            return {
                r.event_id: SentEventMarker(
                    feed_id=r.feed_id,
                    event_id=r.event_id,
                    updated_at=ensure_utc(r.updated_at),
                    event_updated_at=r.event_updated_at,
                )
                for r in rows
            }

    def save_markers(self, markers: Iterable[SentEventMarker]) -> None:
        with session_scope(self._sessions) as db:
            for m in markers:
                db.merge(
                    FeedSentEvent(
                        feed_id=m.feed_id,
                        event_id=m.event_id,
                        event_updated_at=m.event_updated_at,
                        updated_at=m.updated_at,
                    )
                )

    def delete_for_feed(self, feed_id: str) -> int:
        with session_scope(self._sessions) as db:
            return db.query(FeedSentEvent).filter(FeedSentEvent.feed_id == feed_id).delete()

    def cleanup_older_than(self, days: int, now: datetime | None = None) -> int:
        cutoff = _cutoff(days, now)
        with session_scope(self._sessions) as db:
            return (
                db.query(FeedSentEvent)
                .filter(FeedSentEvent.updated_at < cutoff)
                .delete(synchronize_session=False)
            )


class SqlUserStore(_SqlStore):
    def save(self, user: User) -> None:
        with session_scope(self._sessions) as db:
            db.merge(
                UserRow(
                    discord_user_id=user.discord_user_id,
                    connpass_nickname=user.connpass_nickname,
                    registered_at=user.registered_at,
                )
            )

    def delete(self, discord_user_id: str) -> None:
        with session_scope(self._sessions) as db:
            db.query(UserRow).filter(UserRow.discord_user_id == discord_user_id).delete()

    def find(self, discord_user_id: str) -> User | None:
        with session_scope(self._sessions) as db:
            row = db.get(UserRow, discord_user_id)
            if row is None:
                return None
            return User(
                discord_user_id=row.discord_user_id,
                connpass_nickname=row.connpass_nickname,
                registered_at=ensure_utc(row.registered_at),
            )


class SqlAdminStore(_SqlStore):
    def save(self, admin: AdminUser) -> None:
        with session_scope(self._sessions) as db:
            db.merge(AdminRow(discord_user_id=admin.discord_user_id, added_at=admin.added_at, added_by=admin.added_by))

    def delete(self, discord_user_id: str) -> None:
        with session_scope(self._sessions) as db:
            db.query(AdminRow).filter(AdminRow.discord_user_id == discord_user_id).delete()

    def find(self, discord_user_id: str) -> AdminUser | None:
        with session_scope(self._sessions) as db:
            row = db.get(AdminRow, discord_user_id)
            return self._to_admin(row) if row else None

    def list(self) -> list[AdminUser]:
        with session_scope(self._sessions) as db:
            return [self._to_admin(r) for r in db.query(AdminRow).order_by(AdminRow.added_at).all()]

    @staticmethod
    def _to_admin(row: AdminRow) -> AdminUser:
        return AdminUser(discord_user_id=row.discord_user_id, added_at=ensure_utc(row.added_at), added_by=row.added_by)


class SqlBanStore(_SqlStore):
    def save(self, ban: BannedUser) -> None:
        with session_scope(self._sessions) as db:
            db.merge(
                BannedUserRow(
                    discord_user_id=ban.discord_user_id,
                    banned_at=ban.banned_at,
                    banned_by=ban.banned_by,
                    reason=ban.reason,
                )
            )

    def delete(self, discord_user_id: str) -> None:
        with session_scope(self._sessions) as db:
            db.query(BannedUserRow).filter(BannedUserRow.discord_user_id == discord_user_id).delete()

    def find(self, discord_user_id: str) -> BannedUser | None:
        with session_scope(self._sessions) as db:
            row = db.get(BannedUserRow, discord_user_id)
            return self._to_ban(row) if row else None

    def list(self) -> list[BannedUser]:
        with session_scope(self._sessions) as db:
            return [self._to_ban(r) for r in db.query(BannedUserRow).order_by(BannedUserRow.banned_at).all()]

    @staticmethod
    def _to_ban(row: BannedUserRow) -> BannedUser:
        return BannedUser(
            discord_user_id=row.discord_user_id,
            banned_at=ensure_utc(row.banned_at),
            banned_by=row.banned_by,
            reason=row.reason,
        )


class SqlSummaryCacheStore(_SqlStore):
    def save(self, cache: EventSummaryCache) -> None:
        with session_scope(self._sessions) as db:
            db.merge(
                EventSummaryCacheRow(
                    event_id=cache.event_id,
                    updated_at=cache.updated_at,
                    summary=cache.summary,
                    cached_at=cache.cached_at,
                )
            )

    def get(self, event_id: int) -> EventSummaryCache | None:
        with session_scope(self._sessions) as db:
            row = db.get(EventSummaryCacheRow, event_id)
            if row is None:
                return None
            return EventSummaryCache(
                event_id=row.event_id,
                updated_at=row.updated_at,
                summary=row.summary,
                cached_at=ensure_utc(row.cached_at),
            )

    def delete(self, event_id: int) -> None:
        with session_scope(self._sessions) as db:
            db.query(EventSummaryCacheRow).filter(EventSummaryCacheRow.event_id == event_id).delete()

    def cleanup(self, days: int, now: datetime | None = None) -> int:
        cutoff = _cutoff(days, now)
        with session_scope(self._sessions) as db:
            return (
                db.query(EventSummaryCacheRow)
                .filter(EventSummaryCacheRow.cached_at < cutoff)
                .delete(synchronize_session=False)
            )


class SqlUserNotifySettingsStore(_SqlStore):
    def save(self, settings: UserNotifySettings) -> None:
        with session_scope(self._sessions) as db:
            db.merge(
                UserNotifySettingsRow(
                    discord_user_id=settings.discord_user_id,
                    enabled=settings.enabled,
                    minutes_before=settings.minutes_before,
                    updated_at=settings.updated_at,
                )
            )

    def find(self, discord_user_id: str) -> UserNotifySettings | None:
        with session_scope(self._sessions) as db:
            row = db.get(UserNotifySettingsRow, discord_user_id)
            return self._to_settings(row) if row else None

    def list_enabled(self) -> list[UserNotifySettings]:
        with session_scope(self._sessions) as db:
            rows = (
                db.query(UserNotifySettingsRow)
                .filter(UserNotifySettingsRow.enabled.is_(True))
                .order_by(UserNotifySettingsRow.discord_user_id)
                .all()
            )
            return [self._to_settings(r) for r in rows]

    def delete(self, discord_user_id: str) -> None:
        with session_scope(self._sessions) as db:
            db.query(UserNotifySettingsRow).filter(
                UserNotifySettingsRow.discord_user_id == discord_user_id
            ).delete()

    @staticmethod
    def _to_settings(row: UserNotifySettingsRow) -> UserNotifySettings:
        return UserNotifySettings(
            discord_user_id=row.discord_user_id,
            enabled=bool(row.enabled),
            minutes_before=row.minutes_before,
            updated_at=ensure_utc(row.updated_at),
        )


class SqlUserNotifySentStore(_SqlStore):
    def mark_sent(self, discord_user_id: str, event_id: int, now: datetime | None = None) -> None:
        with session_scope(self._sessions) as db:
            if db.get(UserNotifySentRow, (discord_user_id, event_id)) is not None:
                return
            db.add(UserNotifySentRow(discord_user_id=discord_user_id, event_id=event_id, notified_at=now or utcnow()))

    def is_sent(self, discord_user_id: str, event_id: int) -> bool:
        with session_scope(self._sessions) as db:
            return db.get(UserNotifySentRow, (discord_user_id, event_id)) is not None

    def get_sent_event_ids(self, discord_user_id: str) -> set[int]:
        with session_scope(self._sessions) as db:
            rows = (
                db.query(UserNotifySentRow.event_id)
                .filter(UserNotifySentRow.discord_user_id == discord_user_id)
                .all()
            )
            return {r[0] for r in rows}

    def cleanup_older_than(self, days: int, now: datetime | None = None) -> int:
        cutoff = _cutoff(days, now)
        with session_scope(self._sessions) as db:
            return (
                db.query(UserNotifySentRow)
                .filter(UserNotifySentRow.notified_at < cutoff)
                .delete(synchronize_session=False)
            )

    def list_markers(self, discord_user_id: str) -> list[UserNotifySentMarker]:
        with session_scope(self._sessions) as db:
            rows = (
                db.query(UserNotifySentRow)
                .filter(UserNotifySentRow.discord_user_id == discord_user_id)
                .order_by(UserNotifySentRow.notified_at)
                .all()
            )
            return [UserNotifySentMarker(r.discord_user_id, r.event_id, ensure_utc(r.notified_at)) for r in rows]
