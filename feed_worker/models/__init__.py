from feed_worker.models.feed import FeedRow, FeedSentEvent
from feed_worker.models.summary_cache import EventSummaryCacheRow
from feed_worker.models.user import AdminRow, BannedUserRow, UserRow
from feed_worker.models.user_notify import UserNotifySentRow, UserNotifySettingsRow

__all__ = [
    "AdminRow",
    "BannedUserRow",
    "EventSummaryCacheRow",
    "FeedRow",
    "FeedSentEvent",
    "UserNotifySentRow",
    "UserNotifySettingsRow",
    "UserRow",
]
