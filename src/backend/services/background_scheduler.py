"""
Background Scheduler Service

Manages scheduled maintenance tasks using APScheduler:
- Expired voter token cleanup
- Finishing polls whose voting phase is over

Both jobs are idempotent and safe to run concurrently with normal voting.
"""

from datetime import timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from db.session import async_session_maker

logger = structlog.get_logger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def voter_token_cleanup_job() -> None:
    """Background job that deletes voter tokens with expires_at < now."""
    from services.voting_core import VotingCore

    try:
        async with async_session_maker() as db:
            deleted = await VotingCore.from_session(db).cleanup_expired_voter_tokens()
            logger.info("voter_token_cleanup_completed", deleted=deleted)
    except Exception as e:
        logger.error("voter_token_cleanup_failed", error=str(e), exc_info=True)


async def finish_expired_polls_job() -> None:
    """Background job that finishes polls whose voting phase is over."""
    from services.voting_core import VotingCore

    try:
        async with async_session_maker() as db:
            finished = await VotingCore.from_session(db).finish_expired_polls()
            if finished:
                logger.info("expired_polls_finished", count=finished)
    except Exception as e:
        logger.error("finish_expired_polls_failed", error=str(e), exc_info=True)


def get_scheduler() -> AsyncIOScheduler:
    """Get the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=timezone.utc)
    return _scheduler


async def start_scheduler() -> None:
    """Start the background scheduler with all jobs."""
    scheduler = get_scheduler()

    if scheduler.running:
        logger.info("scheduler_already_running")
        return

    scheduler.add_job(
        voter_token_cleanup_job,
        trigger=IntervalTrigger(minutes=settings.VOTER_TOKEN_CLEANUP_INTERVAL_MINUTES),
        id="voter_token_cleanup",
        name="Voter Token Cleanup",
        replace_existing=True,
        max_instances=1,
    )
    scheduler.add_job(
        finish_expired_polls_job,
        trigger=IntervalTrigger(minutes=settings.POLL_FINISH_CHECK_INTERVAL_MINUTES),
        id="finish_expired_polls",
        name="Finish Expired Polls",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.start()
    logger.info(
        "background_scheduler_started",
        token_cleanup_minutes=settings.VOTER_TOKEN_CLEANUP_INTERVAL_MINUTES,
        poll_finish_minutes=settings.POLL_FINISH_CHECK_INTERVAL_MINUTES,
    )

    # Catch up on polls that ended while the process was down
    await finish_expired_polls_job()


async def stop_scheduler() -> None:
    """Stop the background scheduler gracefully."""
    global _scheduler

    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=True)
        logger.info("background_scheduler_stopped")

    _scheduler = None
