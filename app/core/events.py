"""
Event handlers for application lifecycle events.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI

from app.core.config import settings

logger = logging.getLogger("edunotify")

# Collection of background tasks to manage
background_tasks: List[asyncio.Task] = []
_retry_sweeper = None


async def startup_event_handler() -> None:
    """
    Handle application startup.

    Check the database connection and start background processes.
    """
    global _retry_sweeper
    logger.info(f"Starting {settings.PROJECT_NAME}")

    try:
        from app.db.session import initialize_database
        await initialize_database()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        # Don't raise error to allow startup to continue

    if not settings.sms_gateway_configured:
        logger.warning("SMS gateway API key not configured; SMS sends will fail")

    # Start retry sweeper if enabled
    if settings.RETRY_ENABLED:
        try:
            from app.services.sms.gateway import get_gateway_client
            from app.services.sms.retry_engine import RetrySweeper
            _retry_sweeper = RetrySweeper(get_gateway_client())
            retry_task = asyncio.create_task(_retry_sweeper.start(), name="retry-sweeper")
            background_tasks.append(retry_task)
            logger.info("Retry sweeper started successfully")
        except Exception as e:
            logger.error(f"Error starting retry sweeper: {e}")

    logger.info(f"✅ {settings.PROJECT_NAME} v{settings.VERSION} startup complete")


async def shutdown_event_handler() -> None:
    """
    Handle application shutdown.

    Clean up resources and close connections properly.
    """
    logger.info(f"Shutting down {settings.PROJECT_NAME}")

    if _retry_sweeper is not None:
        await _retry_sweeper.stop()

    # Cancel all background tasks
    for task in background_tasks:
        if not task.done():
            task.cancel()
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                logger.warning(f"Task {task.get_name()} was cancelled")
    background_tasks.clear()

    try:
        from app.db.session import close_database_connections
        await close_database_connections()
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")

    logger.info("✅ Application shutdown complete")


@asynccontextmanager
async def lifespan(app: Optional[FastAPI] = None):
    """Run startup and shutdown handlers around the application's lifetime."""
    await startup_event_handler()
    try:
        yield
    finally:
        await shutdown_event_handler()
