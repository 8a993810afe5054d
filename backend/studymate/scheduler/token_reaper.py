"""Scheduled purge of expired download tokens.

Expiry is enforced at redemption time, but a token that is never redeemed
would otherwise stay in the table forever. This job deletes every token
whose expiry has passed. Deleting an already-deleted row is a no-op, so
overlapping or repeated runs are harmless.

Usage in main application startup:
    from studymate.scheduler.token_reaper import start_scheduler, shutdown_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        start_scheduler()
        yield
        shutdown_scheduler()

Or run once:
    python -m studymate.scheduler.token_reaper
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studymate.core.config import settings
from studymate.models.base import utc_now
from studymate.services.token_store import SqlTokenStore

logger = logging.getLogger(__name__)

REAPER_JOB_ID = "purge_expired_download_tokens"

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def purge_expired_tokens(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    now: Callable[[], datetime] = utc_now,
) -> int:
    """Delete expired download tokens; returns how many were removed."""
    if session_factory is None:
        from studymate.db.session import AsyncSessionLocal

        session_factory = AsyncSessionLocal

    async with session_factory() as db:
        try:
            removed = await SqlTokenStore(db).delete_expired(now())
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    if removed:
        logger.info(
            f"Purged {removed} expired download tokens",
            extra={"event_type": "download.tokens_purged", "count": removed},
        )
    return removed


async def _run_purge_job() -> None:
    """Scheduler entry point; a failed run is logged and retried next interval."""
    try:
        await purge_expired_tokens()
    except Exception as e:
        logger.exception(f"Expired token purge failed: {e}")


def start_scheduler(interval_seconds: int | None = None) -> AsyncIOScheduler:
    """Start the background scheduler with the token reaper job."""
    global _scheduler

    if _scheduler and _scheduler.running:
        logger.warning("Scheduler already running")
        return _scheduler

    interval = interval_seconds or settings.TOKEN_REAPER_INTERVAL_SECONDS

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        _run_purge_job,
        trigger=IntervalTrigger(seconds=interval),
        id=REAPER_JOB_ID,
        name="Purge expired download tokens",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()

    logger.info(f"Token reaper scheduled every {interval}s")
    return _scheduler


def shutdown_scheduler() -> None:
    """Stop the background scheduler."""
    global _scheduler

    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")

    _scheduler = None


if __name__ == "__main__":
    from studymate.core.logging_config import configure_logging

    configure_logging()
    asyncio.run(purge_expired_tokens())
