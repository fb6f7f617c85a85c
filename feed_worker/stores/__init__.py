from feed_worker.stores.factory import Stores, build_file_stores, build_sql_stores, build_stores

__all__ = ["Stores", "build_file_stores", "build_sql_stores", "build_stores"]
