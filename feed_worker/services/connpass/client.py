"""connpass API v2 client: sends GET /events/ and maps failures to UpstreamError."""
import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable

import httpx

from feed_worker.core.constants import SEARCH_MAX_PAGES
from feed_worker.core.errors import UpstreamError
from feed_worker.domain.types import ConnpassEvent
from feed_worker.services.connpass.config import ConnpassConfig
from feed_worker.services.connpass.types import EventSearchParams

logger = logging.getLogger(__name__)


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class ConnpassClient:
    """Event search client. Requests are spaced at least config.rate_limit_delay apart."""

    def __init__(
        self,
        config: ConnpassConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or ConnpassConfig()
        self._transport = transport
        self._sleep = sleep
        self._clock = clock
        self._throttle_lock = threading.Lock()
        self._next_slot = 0.0

    def _throttle(self) -> None:
        """Reserve the next request slot under the lock; wait for it outside."""
        with self._throttle_lock:
            now = self._clock()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self._config.rate_limit_delay
        wait = slot - now
        if wait > 0:
            self._sleep(wait)

    def _get(self, path: str, query: list[tuple[str, Any]]) -> dict[str, Any]:
        if not self._config.is_configured():
            raise UpstreamError("connpass API key not configured. Add CONNPASS_API_KEY to .env.", retryable=False)
        url = f"{self._config.base_url}{path}"
        self._throttle()
        try:
            with httpx.Client(timeout=self._config.timeout, transport=self._transport) as c:
                r = c.get(url, params=query, headers=self._config.headers())
        except httpx.TimeoutException as e:
            raise UpstreamError(f"connpass request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"connpass request failed: {e}") from e
        if not r.is_success:
            detail = r.text[:200] if r.text else ""
            raise UpstreamError(
                f"connpass API error: {r.status_code} {detail}".strip(),
                status_code=r.status_code,
                retryable=_is_retryable_status(r.status_code),
            )
        try:
            body = r.json()
        except ValueError as e:
            raise UpstreamError("connpass returned a non-JSON body", status_code=r.status_code) from e
        if not isinstance(body, dict):
            raise UpstreamError("connpass returned an unexpected body", status_code=r.status_code)
        return body

    def search_page(self, params: EventSearchParams) -> dict[str, Any]:
        """Raw response of one page (results_returned, results_available, results_start, events)."""
        params.validate()
        return self._get("/events/", params.to_query())

    def search(self, params: EventSearchParams) -> list[ConnpassEvent]:
        """Events of one page. Raises ValueError on bad params, UpstreamError on failure."""
        body = self.search_page(params)
        return [ConnpassEvent.from_api(e) for e in body.get("events") or []]

    def search_all(self, params: EventSearchParams, *, max_pages: int = SEARCH_MAX_PAGES) -> list[ConnpassEvent]:
        """Follows start/count until results_available is reached, capped at max_pages."""
        params.validate()
        events: list[ConnpassEvent] = []
        seen: set[int] = set()
        start = params.start
        for _ in range(max_pages):
            page = replace(params, start=start)
            body = self._get("/events/", page.to_query())
            raw_events = body.get("events") or []
            for raw in raw_events:
                event = ConnpassEvent.from_api(raw)
                if event.id not in seen:
                    seen.add(event.id)
                    events.append(event)
            available = int(body.get("results_available") or 0)
            start += len(raw_events)
            if len(raw_events) < page.count or start > available:
                break
        else:
            logger.info("connpass search stopped at max_pages=%s (%s events)", max_pages, len(events))
        return events

    def get_by_id(self, event_id: int) -> ConnpassEvent | None:
        events = self.search(EventSearchParams(event_ids=[event_id], count=1))
        return events[0] if events else None
