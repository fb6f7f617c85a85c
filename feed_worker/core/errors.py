"""
Error taxonomy for the feed scheduler and notification engine.

Every error carries enough context (feed id, user id, cron expression, HTTP status)
for an operator to tell which feed or user it belongs to.
"""
from __future__ import annotations


class FeedWorkerError(Exception):
    """Base class for all errors raised by feed_worker."""


class InvalidScheduleError(FeedWorkerError):
    """Cron expression could not be parsed. Fatal for the feed until its schedule is corrected."""

    def __init__(self, expression: str, reason: str = "") -> None:
        self.expression = expression
        self.reason = reason
        msg = f"Invalid cron expression {expression!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class UpstreamError(FeedWorkerError):
    """Event source failure. retryable=True for timeouts, transport errors, 429 and 5xx."""

    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = True) -> None:
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class PersistenceError(FeedWorkerError):
    """A store is unavailable or its data could not be read/written."""


class DispatchError(FeedWorkerError):
    """Sink failed to deliver a batch; the batch counts as undelivered."""
