"""
File-backed stores: one JSON document per store under JOB_STORE_DIR.

Each store loads its document lazily, keeps it in memory and rewrites it atomically
(write temp file, then os.replace) on every change. path=None keeps a store purely
in memory, which is what tests and one-off runs use.
"""
from __future__ import annotations

import json
import os
import tempfile
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable

from feed_worker.core.errors import PersistenceError
from feed_worker.domain.types import (
    AdminUser,
    BannedUser,
    EventSummaryCache,
    Feed,
    SentEventMarker,
    User,
    UserNotifySentMarker,
    UserNotifySettings,
    parse_datetime,
    utcnow,
)


class JsonDocument:
    """A dict persisted as one JSON file. Thread-safe; callers mutate inside `with doc.lock`."""

    def __init__(self, path: str | Path | None) -> None:
        self.path = Path(path) if path else None
        self.lock = threading.RLock()
        self._data: dict[str, Any] | None = None

    def data(self) -> dict[str, Any]:
        with self.lock:
            if self._data is None:
                self._data = self._load()
            return self._data

    def _load(self) -> dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e
        if not isinstance(raw, dict):
            raise PersistenceError(f"{self.path} does not contain a JSON object")
        return raw

    def persist(self) -> None:
        """Write the document out. On failure the cached copy is dropped, so the next read reloads what is on disk."""
        if self.path is None:
            return
        with self.lock:
            body = json.dumps(self._data or {}, ensure_ascii=False, indent=2)
            tmp = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(body)
                os.replace(tmp, self.path)
                tmp = None
            except OSError as e:
                self._data = None
                raise PersistenceError(f"Could not write {self.path}: {e}") from e
            finally:
                if tmp is not None and os.path.exists(tmp):
                    os.unlink(tmp)


def _doc(store_dir: str | Path | None, name: str) -> JsonDocument:
    return JsonDocument(Path(store_dir) / name if store_dir else None)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _cutoff(days: int, now: datetime | None) -> datetime:
    return (now or utcnow()) - timedelta(days=days)


class FileFeedStore:
    def __init__(self, store_dir: str | Path | None = None) -> None:
        self._doc = _doc(store_dir, "feeds.json")

    def _feeds(self) -> dict[str, Any]:
        return self._doc.data().setdefault("feeds", {})

    def save(self, feed: Feed) -> None:
        with self._doc.lock:
            self._feeds()[feed.id] = feed.to_dict()
            self._doc.persist()

    def delete(self, feed_id: str) -> None:
        with self._doc.lock:
            if self._feeds().pop(feed_id, None) is not None:
                self._doc.persist()

    def get(self, feed_id: str) -> Feed | None:
        with self._doc.lock:
            raw = self._feeds().get(feed_id)
            return Feed.from_dict(raw) if raw else None

    def list(self) -> list[Feed]:
        with self._doc.lock:
            return [Feed.from_dict(raw) for raw in self._feeds().values()]


class FileSentEventStore:
    """Layout: {"sent": {feed_id: {event_id: {"updated_at": iso, "event_updated_at": str}}}}."""

    def __init__(self, store_dir: str | Path | None = None) -> None:
        self._doc = _doc(store_dir, "sent_events.json")

    def _sent(self) -> dict[str, dict[str, dict[str, Any]]]:
        return self._doc.data().setdefault("sent", {})

    def get_markers(self, feed_id: str, event_ids: Iterable[int]) -> dict[int, SentEventMarker]:
        with self._doc.lock:
            rows = self._sent().get(feed_id) or {}
            out: dict[int, SentEventMarker] = {}
            for event_id in event_ids:
                row = rows.get(str(event_id))
                if row is not None:
                    out[event_id] = SentEventMarker(
                        feed_id=feed_id,
                        event_id=event_id,
                        updated_at=parse_datetime(row.get("updated_at")) or utcnow(),
                        event_updated_at=row.get("event_updated_at"),
                    )
            return out

    def save_markers(self, markers: Iterable[SentEventMarker]) -> None:
        with self._doc.lock:
            sent = self._sent()
            changed = False
            for m in markers:
                sent.setdefault(m.feed_id, {})[str(m.event_id)] = {
                    "updated_at": _iso(m.updated_at),
                    "event_updated_at": m.event_updated_at,
                }
                changed = True
            if changed:
                self._doc.persist()

    def delete_for_feed(self, feed_id: str) -> int:
        with self._doc.lock:
            removed = self._sent().pop(feed_id, None) or {}
            if removed:
                self._doc.persist()
            return len(removed)

    def cleanup_older_than(self, days: int, now: datetime | None = None) -> int:
        cutoff = _cutoff(days, now)
        deleted = 0
        with self._doc.lock:
            sent = self._sent()
            for feed_id in list(sent):
                rows = sent[feed_id]
                for event_id in list(rows):
                    updated = parse_datetime(rows[event_id].get("updated_at"))
                    if updated is None or updated < cutoff:
                        del rows[event_id]
                        deleted += 1
                if not rows:
                    del sent[feed_id]
            if deleted:
                self._doc.persist()
        return deleted


class FileUserStore:
    def __init__(self, store_dir: str | Path | None = None) -> None:
        self._doc = _doc(store_dir, "users.json")

    def _users(self) -> dict[str, Any]:
        return self._doc.data().setdefault("users", {})

    def save(self, user: User) -> None:
        with self._doc.lock:
            self._users()[user.discord_user_id] = {
                "connpass_nickname": user.connpass_nickname,
                "registered_at": _iso(user.registered_at),
            }
            self._doc.persist()

    def delete(self, discord_user_id: str) -> None:
        with self._doc.lock:
            if self._users().pop(discord_user_id, None) is not None:
                self._doc.persist()

    def find(self, discord_user_id: str) -> User | None:
        with self._doc.lock:
            row = self._users().get(discord_user_id)
        if row is None:
            return None
        return User(
            discord_user_id=discord_user_id,
            connpass_nickname=row["connpass_nickname"],
            registered_at=parse_datetime(row.get("registered_at")) or utcnow(),
        )


class FileAdminStore:
    def __init__(self, store_dir: str | Path | None = None) -> None:
        self._doc = _doc(store_dir, "admins.json")

    def _admins(self) -> dict[str, Any]:
        return self._doc.data().setdefault("admins", {})

    def save(self, admin: AdminUser) -> None:
        with self._doc.lock:
            self._admins()[admin.discord_user_id] = {
                "added_at": _iso(admin.added_at),
                "added_by": admin.added_by,
            }
            self._doc.persist()

    def delete(self, discord_user_id: str) -> None:
        with self._doc.lock:
            if self._admins().pop(discord_user_id, None) is not None:
                self._doc.persist()

    def find(self, discord_user_id: str) -> AdminUser | None:
        with self._doc.lock:
            row = self._admins().get(discord_user_id)
        return self._to_admin(discord_user_id, row) if row is not None else None

    def list(self) -> list[AdminUser]:
        with self._doc.lock:
            return [self._to_admin(uid, row) for uid, row in self._admins().items()]

    @staticmethod
    def _to_admin(uid: str, row: dict[str, Any]) -> AdminUser:
        return AdminUser(
            discord_user_id=uid,
            added_at=parse_datetime(row.get("added_at")) or utcnow(),
            added_by=row.get("added_by"),
        )


class FileBanStore:
    def __init__(self, store_dir: str | Path | None = None) -> None:
        self._doc = _doc(store_dir, "bans.json")

    def _bans(self) -> dict[str, Any]:
        return self._doc.data().setdefault("bans", {})

    def save(self, ban: BannedUser) -> None:
        with self._doc.lock:
            self._bans()[ban.discord_user_id] = {
                "banned_at": _iso(ban.banned_at),
                "banned_by": ban.banned_by,
                "reason": ban.reason,
            }
            self._doc.persist()

    def delete(self, discord_user_id: str) -> None:
        with self._doc.lock:
            if self._bans().pop(discord_user_id, None) is not None:
                self._doc.persist()

    def find(self, discord_user_id: str) -> BannedUser | None:
        with self._doc.lock:
            row = self._bans().get(discord_user_id)
        return self._to_ban(discord_user_id, row) if row is not None else None

    def list(self) -> list[BannedUser]:
        with self._doc.lock:
            return [self._to_ban(uid, row) for uid, row in self._bans().items()]

    @staticmethod
    def _to_ban(uid: str, row: dict[str, Any]) -> BannedUser:
        return BannedUser(
            discord_user_id=uid,
            banned_at=parse_datetime(row.get("banned_at")) or utcnow(),
            banned_by=row.get("banned_by"),
            reason=row.get("reason"),
        )


class FileSummaryCacheStore:
    def __init__(self, store_dir: str | Path | None = None) -> None:
        self._doc = _doc(store_dir, "summary_cache.json")

    def _entries(self) -> dict[str, Any]:
        return self._doc.data().setdefault("summaries", {})

    def save(self, cache: EventSummaryCache) -> None:
        with self._doc.lock:
            self._entries()[str(cache.event_id)] = {
                "updated_at": cache.updated_at,
                "summary": cache.summary,
                "cached_at": _iso(cache.cached_at),
            }
            self._doc.persist()

    def get(self, event_id: int) -> EventSummaryCache | None:
        with self._doc.lock:
            row = self._entries().get(str(event_id))
        if row is None:
            return None
        return EventSummaryCache(
            event_id=event_id,
            updated_at=row["updated_at"],
            summary=row["summary"],
            cached_at=parse_datetime(row.get("cached_at")) or utcnow(),
        )

    def delete(self, event_id: int) -> None:
        with self._doc.lock:
            if self._entries().pop(str(event_id), None) is not None:
                self._doc.persist()

    def cleanup(self, days: int, now: datetime | None = None) -> int:
        cutoff = _cutoff(days, now)
        with self._doc.lock:
            entries = self._entries()
            stale = [
                k for k, row in entries.items()
                if (parse_datetime(row.get("cached_at")) or cutoff) < cutoff
            ]
            for k in stale:
                del entries[k]
            if stale:
                self._doc.persist()
        return len(stale)


class FileUserNotifySettingsStore:
    def __init__(self, store_dir: str | Path | None = None) -> None:
        self._doc = _doc(store_dir, "notify_settings.json")

    def _settings(self) -> dict[str, Any]:
        return self._doc.data().setdefault("settings", {})

    def save(self, settings: UserNotifySettings) -> None:
        with self._doc.lock:
            self._settings()[settings.discord_user_id] = {
                "enabled": settings.enabled,
                "minutes_before": settings.minutes_before,
                "updated_at": _iso(settings.updated_at),
            }
            self._doc.persist()

    def find(self, discord_user_id: str) -> UserNotifySettings | None:
        with self._doc.lock:
            row = self._settings().get(discord_user_id)
        return self._to_settings(discord_user_id, row) if row is not None else None

    def list_enabled(self) -> list[UserNotifySettings]:
        with self._doc.lock:
            return [
                self._to_settings(uid, row)
                for uid, row in self._settings().items()
                if row.get("enabled")
            ]

    def delete(self, discord_user_id: str) -> None:
        with self._doc.lock:
            if self._settings().pop(discord_user_id, None) is not None:
                self._doc.persist()

    @staticmethod
    def _to_settings(uid: str, row: dict[str, Any]) -> UserNotifySettings:
        return UserNotifySettings(
            discord_user_id=uid,
            enabled=bool(row.get("enabled")),
            minutes_before=int(row.get("minutes_before") or 0),
            updated_at=parse_datetime(row.get("updated_at")) or utcnow(),
        )


class FileUserNotifySentStore:
    """Layout: {"sent": {discord_user_id: {event_id: notified_at_iso}}}."""

    def __init__(self, store_dir: str | Path | None = None) -> None:
        self._doc = _doc(store_dir, "notify_sent.json")

    def _sent(self) -> dict[str, dict[str, str]]:
        return self._doc.data().setdefault("sent", {})

    def mark_sent(self, discord_user_id: str, event_id: int, now: datetime | None = None) -> None:
        with self._doc.lock:
            rows = self._sent().setdefault(discord_user_id, {})
            if str(event_id) in rows:
                return
            rows[str(event_id)] = _iso(now or utcnow())
            self._doc.persist()

    def is_sent(self, discord_user_id: str, event_id: int) -> bool:
        with self._doc.lock:
            return str(event_id) in (self._sent().get(discord_user_id) or {})

    def get_sent_event_ids(self, discord_user_id: str) -> set[int]:
        with self._doc.lock:
            return {int(k) for k in (self._sent().get(discord_user_id) or {})}

    def list_markers(self, discord_user_id: str) -> list[UserNotifySentMarker]:
        with self._doc.lock:
            rows = dict(self._sent().get(discord_user_id) or {})
        return [
            UserNotifySentMarker(discord_user_id, int(k), parse_datetime(v) or utcnow())
            for k, v in rows.items()
        ]

    def cleanup_older_than(self, days: int, now: datetime | None = None) -> int:
        cutoff = _cutoff(days, now)
        deleted = 0
        with self._doc.lock:
            sent = self._sent()
            for uid in list(sent):
                rows = sent[uid]
                for event_id in list(rows):
                    notified = parse_datetime(rows[event_id])
                    if notified is None or notified < cutoff:
                        del rows[event_id]
                        deleted += 1
                if not rows:
                    del sent[uid]
            if deleted:
                self._doc.persist()
        return deleted
