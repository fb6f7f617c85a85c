"""
Operator API for feeds: runtime status, reset of failed feeds, manual runs.

Reset and run require a registered admin, identified by the X-Discord-User-Id header.
"""
import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from feed_worker.core.errors import PersistenceError
from feed_worker.scheduler.feed_job import FeedScheduler
from feed_worker.stores import Stores

router = APIRouter()
logger = logging.getLogger(__name__)


def get_feed_scheduler(request: Request) -> FeedScheduler:
    return request.app.state.worker.feed_scheduler


def get_stores(request: Request) -> Stores:
    return request.app.state.worker.stores


def require_admin(
    stores: Stores = Depends(get_stores),
    x_discord_user_id: str | None = Header(None, alias="X-Discord-User-Id"),
) -> str:
    user_id = (x_discord_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=403, detail="X-Discord-User-Id header required")
    try:
        admin = stores.admins.find(user_id)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if admin is None:
        raise HTTPException(status_code=403, detail="Admin permission required")
    return user_id


def _iso(v) -> str | None:
    return v.isoformat() if v else None


@router.get("/status")
def feeds_status(scheduler: FeedScheduler = Depends(get_feed_scheduler)) -> dict[str, Any]:
    try:
        infos = scheduler.status()
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    feeds = []
    for info in infos:
        d = asdict(info)
        for key in ("retry_after", "last_run_at", "next_run_at"):
            d[key] = _iso(d[key])
        feeds.append(d)
    return {
        "feeds": feeds,
        "failed": [f["feed_id"] for f in feeds if f["status"] == "failed"],
        "in_flight": sorted(scheduler.in_flight()),
    }


@router.post("/{feed_id}/reset")
def reset_feed(
    feed_id: str,
    admin_id: str = Depends(require_admin),
    scheduler: FeedScheduler = Depends(get_feed_scheduler),
) -> dict[str, Any]:
    if not scheduler.reset_feed(feed_id):
        raise HTTPException(status_code=404, detail=f"Feed {feed_id} not found")
    logger.info("Feed %s reset by admin %s", feed_id, admin_id)
    return {"feed_id": feed_id, "status": "idle"}


@router.post("/{feed_id}/run")
def run_feed(
    feed_id: str,
    admin_id: str = Depends(require_admin),
    scheduler: FeedScheduler = Depends(get_feed_scheduler),
) -> dict[str, Any]:
    try:
        result = scheduler.run_feed(feed_id)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if result is None:
        raise HTTPException(status_code=404, detail=f"Feed {feed_id} not found")
    if result.skipped:
        raise HTTPException(status_code=409, detail=f"Feed {feed_id} is already running")
    logger.info("Feed %s run by admin %s: %s new", feed_id, admin_id, result.new_count)
    return {
        "feed_id": feed_id,
        "total": result.total,
        "new_count": result.new_count,
        "dispatched": result.dispatched,
        "error": result.error,
    }
