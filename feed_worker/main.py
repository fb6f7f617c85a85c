"""
FastAPI app entrypoint.

The lifespan builds the worker (stores, connpass client, sinks) from Settings and runs
the scheduler for the life of the app. The HTTP surface is operator-only.
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from feed_worker import __version__
from feed_worker.api.routes import feeds
from feed_worker.config import get_settings
from feed_worker.worker import Worker, build_worker

logger = logging.getLogger(__name__)


def create_app(worker: Worker | None = None, *, start_scheduler: bool = True) -> FastAPI:
    """worker=None builds one from Settings at startup; tests pass a prebuilt worker."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        w = worker or build_worker(get_settings())
        app.state.worker = w
        if start_scheduler:
            w.runner.start()
        logger.info("feed-worker ready")
        yield
        if start_scheduler:
            w.runner.stop()

    app = FastAPI(title="feed-worker", version=__version__, lifespan=lifespan)
    app.include_router(feeds.router, prefix="/feeds", tags=["feeds"])

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level)


if __name__ == "__main__":
    run()
