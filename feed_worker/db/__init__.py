from feed_worker.db.base import Base
from feed_worker.db.session import create_all, create_db_engine, create_session_factory
from feed_worker.db.tables import ALL_TABLE_NAMES

__all__ = [
    "Base",
    "create_all",
    "create_db_engine",
    "create_session_factory",
    "ALL_TABLE_NAMES",
]
