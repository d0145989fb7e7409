"""
Application lifecycle event handlers.

Manages startup and shutdown of logging, database connections and the
background scheduler. A host process (web server, worker) calls the returned
handlers on start and stop.
"""

from typing import Awaitable, Callable

import structlog

from core.config import settings
from core.logging import configure_logging
from db.session import close_db, init_db

logger = structlog.get_logger(__name__)


def create_start_handler() -> Callable[[], Awaitable[None]]:
    """Create startup event handler."""

    async def start() -> None:
        configure_logging()
        logger.info("voting_core_starting", app=settings.APP_NAME, env=settings.APP_ENV)

        await init_db()

        if settings.ENABLE_BACKGROUND_JOBS:
            try:
                from services.background_scheduler import start_scheduler

                await start_scheduler()
            except Exception as e:
                logger.exception("background_scheduler_start_failed", error=str(e))
                logger.warning("expired_tokens_and_polls_not_processed")

        logger.info("voting_core_started")

    return start


def create_stop_handler() -> Callable[[], Awaitable[None]]:
    """Create shutdown event handler."""

    async def stop() -> None:
        logger.info("voting_core_stopping")

        try:
            from services.background_scheduler import stop_scheduler

            await stop_scheduler()
        except Exception as e:
            logger.warning("background_scheduler_stop_failed", error=str(e))

        await close_db()
        logger.info("voting_core_stopped")

    return stop
