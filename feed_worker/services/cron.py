"""
Cron evaluator: next trigger instant for a standard 5-field cron expression.

Pure and clock-free: the reference instant is always passed in. Built on APScheduler's
CronTrigger, with the day-of-week field translated from crontab numbering
(0 or 7 = Sunday) to APScheduler's (0 = Monday) by rewriting it as day names.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

from feed_worker.core.constants import DEFAULT_SCHEDULE_TIMEZONE, SCHEDULE_LABELS
from feed_worker.core.errors import InvalidScheduleError

# crontab day numbers -> APScheduler day names
_DOW_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_DOW_ALIASES = {name: i for i, name in enumerate(_DOW_NAMES)}


def _dow_value(token: str, expr: str) -> int:
    token = token.strip().lower()
    if token in _DOW_ALIASES:
        return _DOW_ALIASES[token]
    if not token.isdigit():
        raise InvalidScheduleError(expr, f"bad day-of-week value {token!r}")
    v = int(token)
    if not 0 <= v <= 7:
        raise InvalidScheduleError(expr, f"day-of-week {v} out of range 0-7")
    return 0 if v == 7 else v


def _expand_day_of_week(field: str, expr: str) -> set[int]:
    days: set[int] = set()
    for part in field.split(","):
        if not part:
            raise InvalidScheduleError(expr, "empty day-of-week item")
        step = 1
        if "/" in part:
            part, step_s = part.split("/", 1)
            if not step_s.isdigit() or int(step_s) == 0:
                raise InvalidScheduleError(expr, f"bad day-of-week step {step_s!r}")
            step = int(step_s)
        if part in ("*", "?"):
            lo, hi = 0, 6
        elif "-" in part:
            lo_s, hi_s = part.split("-", 1)
            lo = _dow_value(lo_s, expr)
            # "1-7" means Monday..Sunday; keep 7 as the upper bound before folding
            hi = 7 if hi_s.strip() == "7" else _dow_value(hi_s, expr)
            if lo > hi:
                raise InvalidScheduleError(expr, f"day-of-week range {part!r} is reversed")
        else:
            lo = _dow_value(part, expr)
            # "N/step" runs from N through the end of the week, Sunday (7) included
            hi = 7 if step > 1 else lo
        days.update(d % 7 for d in range(lo, hi + 1, step))
    return days


def _day_of_week_for_apscheduler(field: str, expr: str) -> str:
    if field in ("*", "?"):
        return "*"
    days = _expand_day_of_week(field, expr)
    if len(days) == 7:
        return "*"
    return ",".join(_DOW_NAMES[d] for d in sorted(days))


def _is_star(field: str) -> bool:
    # crontab treats a day field starting with "*" (including "*/n") as unrestricted
    return field.startswith("*") or field == "?"


def _trigger(expr: str, tz: tzinfo) -> CronTrigger | OrTrigger:
    """
    When both day-of-month and day-of-week are restricted, crontab fires on either
    match; CronTrigger requires both, so that case becomes an OrTrigger of the two.
    """
    if not isinstance(expr, str):
        raise InvalidScheduleError(str(expr), "expression must be a string")
    fields = expr.split()
    if len(fields) != 5:
        raise InvalidScheduleError(expr, f"expected 5 fields, got {len(fields)}")
    minute, hour, day, month, day_of_week = fields
    dow = _day_of_week_for_apscheduler(day_of_week, expr)
    try:
        if _is_star(day) or _is_star(day_of_week):
            return CronTrigger(
                second="0", minute=minute, hour=hour, day=day, month=month, day_of_week=dow, timezone=tz
            )
        return OrTrigger(
            [
                CronTrigger(second="0", minute=minute, hour=hour, day=day, month=month, timezone=tz),
                CronTrigger(second="0", minute=minute, hour=hour, month=month, day_of_week=dow, timezone=tz),
            ]
        )
    except (ValueError, TypeError) as e:
        raise InvalidScheduleError(expr, str(e)) from e


def next_trigger(expr: str, after: datetime, tz: tzinfo | str | None = None) -> datetime:
    """
    Soonest trigger of `expr` strictly after `after`, returned in UTC.
    Fields are evaluated in `tz` (default Asia/Tokyo). Raises InvalidScheduleError.
    """
    if tz is None:
        tz = ZoneInfo(DEFAULT_SCHEDULE_TIMEZONE)
    elif isinstance(tz, str):
        tz = ZoneInfo(tz)
    if after.tzinfo is None:
        after = after.replace(tzinfo=timezone.utc)
    trigger = _trigger(expr, tz)
    # CronTrigger returns the first fire time >= start (rounded up to the second)
    start = after + timedelta(microseconds=1)
    fire = trigger.get_next_fire_time(None, start)
    if fire is None:
        raise InvalidScheduleError(expr, "expression never fires")
    return fire.astimezone(timezone.utc)


def validate_schedule(expr: str) -> None:
    """Raise InvalidScheduleError if `expr` is not a usable 5-field cron expression."""
    _trigger(expr, timezone.utc)


def describe_schedule(expr: str) -> str:
    """Human-readable label for the canonical schedules; other expressions are shown as-is."""
    return SCHEDULE_LABELS.get(expr, expr)
