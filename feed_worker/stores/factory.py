"""Pick the storage backend once at startup (STORAGE_TYPE) and build every store on it."""
import logging
from dataclasses import dataclass
from pathlib import Path

from feed_worker.config import Settings
from feed_worker.db.session import create_all, create_db_engine, create_session_factory
from feed_worker.stores import file, sql
from feed_worker.stores.base import (
    AdminStore,
    BanStore,
    FeedStore,
    SentEventStore,
    SummaryCacheStore,
    UserNotifySentStore,
    UserNotifySettingsStore,
    UserStore,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stores:
    feeds: FeedStore
    sent_events: SentEventStore
    users: UserStore
    admins: AdminStore
    bans: BanStore
    summary_cache: SummaryCacheStore
    notify_settings: UserNotifySettingsStore
    notify_sent: UserNotifySentStore


def build_file_stores(store_dir: str | Path | None) -> Stores:
    """store_dir=None -> in-memory only."""
    return Stores(
        feeds=file.FileFeedStore(store_dir),
        sent_events=file.FileSentEventStore(store_dir),
        users=file.FileUserStore(store_dir),
        admins=file.FileAdminStore(store_dir),
        bans=file.FileBanStore(store_dir),
        summary_cache=file.FileSummaryCacheStore(store_dir),
        notify_settings=file.FileUserNotifySettingsStore(store_dir),
        notify_sent=file.FileUserNotifySentStore(store_dir),
    )


def build_sql_stores(database_url: str, *, create_tables: bool = False) -> Stores:
    engine = create_db_engine(database_url)
    if create_tables:
        create_all(engine)
    sessions = create_session_factory(engine)
    return Stores(
        feeds=sql.SqlFeedStore(sessions),
        sent_events=sql.SqlSentEventStore(sessions),
        users=sql.SqlUserStore(sessions),
        admins=sql.SqlAdminStore(sessions),
        bans=sql.SqlBanStore(sessions),
        summary_cache=sql.SqlSummaryCacheStore(sessions),
        notify_settings=sql.SqlUserNotifySettingsStore(sessions),
        notify_sent=sql.SqlUserNotifySentStore(sessions),
    )


def build_stores(settings: Settings) -> Stores:
    if settings.storage_type == "file":
        logger.info("Storage: file (%s)", settings.job_store_dir)
        return build_file_stores(settings.job_store_dir)
    # sqlite: create tables on the fly; postgres schema comes from `alembic upgrade head`
    create_tables = settings.storage_type == "sqlite"
    if create_tables and settings.database_url.startswith("sqlite:///"):
        db_path = settings.database_url[len("sqlite:///"):]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    logger.info("Storage: %s", settings.storage_type)
    return build_sql_stores(settings.database_url, create_tables=create_tables)
