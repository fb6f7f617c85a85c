"""connpass API v2 client and its search parameters."""
from feed_worker.services.connpass.client import ConnpassClient
from feed_worker.services.connpass.config import ConnpassConfig
from feed_worker.services.connpass.types import EventSearchParams

__all__ = [
    "ConnpassClient",
    "ConnpassConfig",
    "EventSearchParams",
]
