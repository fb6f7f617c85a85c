"""
Search parameters for GET /events/ and their validation.

Multi-valued filters (keyword, keyword_or, prefecture, event_id) are sent as repeated
query parameters.
"""
import re
from dataclasses import dataclass, field
from typing import Any

from feed_worker.core.constants import SEARCH_PAGE_SIZE

_YMD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class EventSearchParams:
    event_ids: list[int] = field(default_factory=list)
    keyword: list[str] = field(default_factory=list)
    keyword_or: list[str] = field(default_factory=list)
    ymd_from: str | None = None
    ymd_to: str | None = None
    nickname: str | None = None
    owner_nickname: str | None = None
    prefecture: list[str] = field(default_factory=list)
    order: int | None = None
    count: int = SEARCH_PAGE_SIZE
    start: int = 1

    def validate(self) -> None:
        """Raise ValueError on out-of-range values."""
        if not 1 <= self.count <= 100:
            raise ValueError("count must be between 1 and 100")
        if self.start < 1:
            raise ValueError("start must be greater than 0")
        if self.order is not None and self.order not in (1, 2, 3):
            raise ValueError("order must be 1 (updated_at desc), 2 (started_at asc), or 3 (started_at desc)")
        if any(i <= 0 for i in self.event_ids):
            raise ValueError("event ids must be positive")
        for name in ("ymd_from", "ymd_to"):
            value = getattr(self, name)
            if value and not _YMD_RE.match(value):
                raise ValueError(f"{name} must be in YYYY-MM-DD format")

    def to_query(self) -> list[tuple[str, Any]]:
        q: list[tuple[str, Any]] = []
        q.extend(("event_id", i) for i in self.event_ids)
        q.extend(("keyword", k) for k in self.keyword if k)
        q.extend(("keyword_or", k) for k in self.keyword_or if k)
        if self.ymd_from:
            q.append(("ymd_from", self.ymd_from))
        if self.ymd_to:
            q.append(("ymd_to", self.ymd_to))
        if self.nickname:
            q.append(("nickname", self.nickname))
        if self.owner_nickname:
            q.append(("owner_nickname", self.owner_nickname))
        q.extend(("prefecture", p) for p in self.prefecture if p)
        if self.order is not None:
            q.append(("order", self.order))
        q.append(("count", self.count))
        q.append(("start", self.start))
        return q
