"""
Delivery sinks. FeedSink receives a feed's new events; ReminderSink receives one user's
starting-soon events. Both send plain text: title, start time and URL per event.

Delivery failures raise DispatchError so the caller leaves the batch unmarked.
"""
import logging
from datetime import tzinfo
from typing import Protocol, Sequence
from zoneinfo import ZoneInfo

import httpx

from feed_worker.core.constants import (
    DEFAULT_SCHEDULE_TIMEZONE,
    DISCORD_API_BASE_URL,
    HTTP_TIMEOUT_SECONDS,
)
from feed_worker.core.errors import DispatchError
from feed_worker.domain.types import ConnpassEvent, NewEventsPayload

logger = logging.getLogger(__name__)

DISCORD_MESSAGE_LIMIT = 2000
MAX_EVENTS_PER_BATCH = 5


class FeedSink(Protocol):
    def handle_new_events(self, payload: NewEventsPayload) -> None:
        """Deliver payload.events (never empty). Raise DispatchError on failure."""
        ...


class ReminderSink(Protocol):
    def send_event_reminder(self, discord_user_id: str, events: Sequence[ConnpassEvent]) -> None: ...


def format_event_line(event: ConnpassEvent, tz: tzinfo) -> str:
    starts = event.starts_at
    when = starts.astimezone(tz).strftime("%Y-%m-%d %H:%M") if starts else "TBA"
    line = f"- {event.title} ({when})"
    if event.place:
        line += f" @ {event.place}"
    if event.url:
        line += f"\n  {event.url}"
    return line


def format_batch(header: str, events: Sequence[ConnpassEvent], tz: tzinfo) -> list[str]:
    """Message bodies, each within Discord's 2000-character limit."""
    lines = [format_event_line(e, tz) for e in events[:MAX_EVENTS_PER_BATCH]]
    if len(events) > MAX_EVENTS_PER_BATCH:
        lines.append(f"... and {len(events) - MAX_EVENTS_PER_BATCH} more")
    messages: list[str] = []
    current = header
    for line in lines:
        if len(current) + 1 + len(line) > DISCORD_MESSAGE_LIMIT:
            messages.append(current)
            current = line[:DISCORD_MESSAGE_LIMIT]
        else:
            current = f"{current}\n{line}"
    messages.append(current)
    return messages


class ConsoleSink:
    """Logs what would be sent. Used when no Discord token is configured."""

    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz or ZoneInfo(DEFAULT_SCHEDULE_TIMEZONE)

    def handle_new_events(self, payload: NewEventsPayload) -> None:
        for body in format_batch(f"New events for feed {payload.feed_id}:", payload.events, self._tz):
            logger.info("[channel %s] %s", payload.channel_id, body)

    def send_event_reminder(self, discord_user_id: str, events: Sequence[ConnpassEvent]) -> None:
        for body in format_batch("Starting soon:", events, self._tz):
            logger.info("[user %s] %s", discord_user_id, body)


class DiscordSink:
    """Posts channel messages through the Discord REST API with a bot token."""

    def __init__(
        self,
        bot_token: str,
        *,
        base_url: str = DISCORD_API_BASE_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        tz: tzinfo | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not bot_token:
            raise ValueError("Discord bot token is required")
        self._token = bot_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._tz = tz or ZoneInfo(DEFAULT_SCHEDULE_TIMEZONE)
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bot {self._token}", "Content-Type": "application/json"}

    def _post(self, path: str, body: dict) -> dict:
        url = f"{self._base_url}{path}"
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as c:
                r = c.post(url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise DispatchError(f"Discord request to {path} failed: {e}") from e
        if not r.is_success:
            raise DispatchError(f"Discord API error {r.status_code} on {path}: {r.text[:200] if r.text else ''}")
        try:
            return r.json() if r.content else {}
        except ValueError:
            return {}

    def send_message(self, channel_id: str, content: str) -> None:
        self._post(f"/channels/{channel_id}/messages", {"content": content})

    def handle_new_events(self, payload: NewEventsPayload) -> None:
        if not payload.events:
            return
        header = f"New events ({len(payload.events)}):"
        for body in format_batch(header, payload.events, self._tz):
            self.send_message(payload.channel_id, body)
        logger.info("Feed %s: posted %s events to channel %s", payload.feed_id, len(payload.events), payload.channel_id)


class DiscordDMSink(DiscordSink):
    """Opens (or reuses) the DM channel with a user, then posts the reminder there."""

    def __init__(self, bot_token: str, **kwargs) -> None:
        super().__init__(bot_token, **kwargs)
        self._dm_channels: dict[str, str] = {}

    def _dm_channel(self, discord_user_id: str) -> str:
        channel_id = self._dm_channels.get(discord_user_id)
        if channel_id:
            return channel_id
        body = self._post("/users/@me/channels", {"recipient_id": discord_user_id})
        channel_id = str(body.get("id") or "")
        if not channel_id:
            raise DispatchError(f"Discord did not return a DM channel for user {discord_user_id}")
        self._dm_channels[discord_user_id] = channel_id
        return channel_id

    def send_event_reminder(self, discord_user_id: str, events: Sequence[ConnpassEvent]) -> None:
        if not events:
            return
        channel_id = self._dm_channel(discord_user_id)
        for body in format_batch("Starting soon:", events, self._tz):
            self.send_message(channel_id, body)
