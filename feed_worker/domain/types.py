"""
Domain records shared by the scheduler, the notification engine and the stores.

All instants are timezone-aware UTC datetimes. Records that cross the file store
boundary have to_dict/from_dict; the SQL stores map them column by column.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from feed_worker.core.constants import DEFAULT_RANGE_DAYS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes are taken as UTC (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class FeedOrder(str, enum.Enum):
    UPDATED_DESC = "updated_desc"
    STARTED_ASC = "started_asc"
    STARTED_DESC = "started_desc"

    @property
    def api_value(self) -> int:
        """connpass `order` query value."""
        return ORDER_MAP[self]


ORDER_MAP: dict[FeedOrder, int] = {
    FeedOrder.UPDATED_DESC: 1,
    FeedOrder.STARTED_ASC: 2,
    FeedOrder.STARTED_DESC: 3,
}

DEFAULT_ORDER = FeedOrder.STARTED_ASC


@dataclass(frozen=True)
class FeedConfig:
    """Subscription definition for one channel. Immutable; change it by saving a new config."""

    id: str
    channel_id: str
    schedule: str
    range_days: int = DEFAULT_RANGE_DAYS
    keywords_and: tuple[str, ...] = ()
    keywords_or: tuple[str, ...] = ()
    location: tuple[str, ...] = ()
    hashtag: str | None = None
    owner_nickname: str | None = None
    order: FeedOrder = DEFAULT_ORDER
    min_participant_count: int | None = None
    min_limit: int | None = None
    use_ai: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "schedule": self.schedule,
            "range_days": self.range_days,
            "keywords_and": list(self.keywords_and),
            "keywords_or": list(self.keywords_or),
            "location": list(self.location),
            "hashtag": self.hashtag,
            "owner_nickname": self.owner_nickname,
            "order": self.order.value,
            "min_participant_count": self.min_participant_count,
            "min_limit": self.min_limit,
            "use_ai": self.use_ai,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeedConfig:
        return cls(
            id=str(data["id"]),
            channel_id=str(data.get("channel_id") or data["id"]),
            schedule=data["schedule"],
            range_days=int(data.get("range_days") or DEFAULT_RANGE_DAYS),
            keywords_and=tuple(data.get("keywords_and") or ()),
            keywords_or=tuple(data.get("keywords_or") or ()),
            location=tuple(data.get("location") or ()),
            hashtag=data.get("hashtag") or None,
            owner_nickname=data.get("owner_nickname") or None,
            order=FeedOrder(data.get("order") or DEFAULT_ORDER.value),
            min_participant_count=data.get("min_participant_count"),
            min_limit=data.get("min_limit"),
            use_ai=bool(data.get("use_ai", False)),
        )


@dataclass
class FeedState:
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None


@dataclass
class Feed:
    config: FeedConfig
    state: FeedState = field(default_factory=FeedState)

    @property
    def id(self) -> str:
        return self.config.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "state": {
                "last_run_at": _iso(self.state.last_run_at),
                "next_run_at": _iso(self.state.next_run_at),
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Feed:
        state = data.get("state") or {}
        return cls(
            config=FeedConfig.from_dict(data["config"]),
            state=FeedState(
                last_run_at=parse_datetime(state.get("last_run_at")),
                next_run_at=parse_datetime(state.get("next_run_at")),
            ),
        )

    def copy(self) -> Feed:
        return Feed(config=self.config, state=replace(self.state))


@dataclass(frozen=True)
class SentEventMarker:
    """Proof that event_id was delivered for feed_id. One per (feed_id, event_id)."""

    feed_id: str
    event_id: int
    updated_at: datetime
    event_updated_at: str | None = None


@dataclass
class User:
    discord_user_id: str
    connpass_nickname: str
    registered_at: datetime = field(default_factory=utcnow)


@dataclass
class AdminUser:
    discord_user_id: str
    added_at: datetime = field(default_factory=utcnow)
    added_by: str | None = None


@dataclass
class BannedUser:
    discord_user_id: str
    banned_at: datetime = field(default_factory=utcnow)
    banned_by: str | None = None
    reason: str | None = None


@dataclass
class EventSummaryCache:
    event_id: int
    updated_at: str
    summary: str
    cached_at: datetime = field(default_factory=utcnow)


@dataclass
class UserNotifySettings:
    discord_user_id: str
    enabled: bool = False
    minutes_before: int = 15
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class UserNotifySentMarker:
    discord_user_id: str
    event_id: int
    notified_at: datetime


@dataclass
class ConnpassEvent:
    """One event record as returned by the connpass v2 API (events[])."""

    id: int
    title: str
    url: str = ""
    catch: str = ""
    description: str = ""
    image_url: str | None = None
    hashtag: str = ""
    started_at: str = ""
    ended_at: str = ""
    limit: int | None = None
    participant_count: int = 0
    waiting_count: int = 0
    owner_nickname: str = ""
    owner_display_name: str = ""
    place: str | None = None
    address: str | None = None
    lat: float | None = None
    lon: float | None = None
    group_id: int | None = None
    group_title: str | None = None
    group_url: str | None = None
    updated_at: str = ""

    @property
    def starts_at(self) -> datetime | None:
        return parse_datetime(self.started_at)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> ConnpassEvent:
        group = raw.get("group") or {}

        def _float(v: Any) -> float | None:
            try:
                return float(v) if v not in (None, "") else None
            except (TypeError, ValueError):
                return None

        return cls(
            id=int(raw["id"]),
            title=raw.get("title") or "",
            url=raw.get("url") or "",
            catch=raw.get("catch") or "",
            description=raw.get("description") or "",
            image_url=raw.get("image_url") or None,
            hashtag=raw.get("hash_tag") or raw.get("hashtag") or "",
            started_at=raw.get("started_at") or "",
            ended_at=raw.get("ended_at") or "",
            limit=raw.get("limit"),
            participant_count=int(raw.get("accepted") or raw.get("participant_count") or 0),
            waiting_count=int(raw.get("waiting") or raw.get("waiting_count") or 0),
            owner_nickname=raw.get("owner_nickname") or "",
            owner_display_name=raw.get("owner_display_name") or "",
            place=raw.get("place") or None,
            address=raw.get("address") or None,
            lat=_float(raw.get("lat")),
            lon=_float(raw.get("lon")),
            group_id=group.get("id"),
            group_title=group.get("title"),
            group_url=group.get("url"),
            updated_at=raw.get("updated_at") or "",
        )


@dataclass(frozen=True)
class NewEventsPayload:
    """New events of one feed run, in the feed's sort order. Never persisted."""

    feed_id: str
    channel_id: str
    events: tuple[ConnpassEvent, ...]
