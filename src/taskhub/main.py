"""TaskHub main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from taskhub import __version__
from taskhub.api import router
from taskhub.api.deps import validate_auth_config
from taskhub.config import settings
from taskhub.db.base import close_db, init_db
from taskhub.queue import close_task_queue, init_task_queue
from taskhub.tasks.sweep import start_overdue_sweep, stop_overdue_sweep
from taskhub.worker import start_worker, stop_worker

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("taskhub")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting TaskHub server...")
    logger.info(f"Environment: {settings.env.value}")
    logger.info(f"Queue backend: {settings.queue_backend.value}")

    # Validate authentication configuration (fail fast if insecure)
    validate_auth_config()

    await init_db()
    logger.info("Database initialized")

    init_task_queue()
    logger.info("Task queue initialized")

    if settings.worker_enabled:
        await start_worker()
        logger.info("Queue worker started")

    if settings.overdue_sweep_enabled:
        await start_overdue_sweep()
        logger.info("Overdue sweep task started")

    yield

    logger.info("Shutting down TaskHub server...")
    await stop_overdue_sweep()
    await stop_worker()
    await close_task_queue()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="TaskHub",
    description="Task management API with queued status notifications",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "taskhub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
