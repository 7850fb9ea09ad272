"""Periodic XP and title recalculation."""

import logging
from typing import TYPE_CHECKING, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

if TYPE_CHECKING:
    from .store import SQLiteStore

logger = logging.getLogger(__name__)

scheduler: Optional[AsyncIOScheduler] = None


async def recalculate_xp(store: "SQLiteStore") -> None:
    """Award pending titles and rebuild unified XP for all users."""
    try:
        processed = await store.recalculate_all()
        logger.info(f"Scheduled recalculation finished for {processed} users")
    except Exception as e:
        logger.error(f"Scheduled recalculation failed: {type(e).__name__}: {e}")


async def mark_inactive_users(store: "SQLiteStore") -> None:
    """Clear the online flag for users whose heartbeat has lapsed."""
    try:
        changed = await store.mark_inactive_offline()
        if changed:
            logger.info(f"Marked {changed} inactive users offline")
    except Exception as e:
        logger.error(f"Inactivity sweep failed: {type(e).__name__}: {e}")


def start_scheduler(store: "SQLiteStore", interval_minutes: int) -> AsyncIOScheduler:
    """Start the recalculation and inactivity schedulers."""
    global scheduler
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        recalculate_xp,
        'interval',
        minutes=interval_minutes,
        args=[store],
        id="recalculate_xp",
    )
    scheduler.add_job(
        mark_inactive_users,
        'interval',
        minutes=1,
        args=[store],
        id="mark_inactive_users",
    )
    scheduler.start()
    logger.info(f"XP recalculation scheduler started (every {interval_minutes} min)")
    return scheduler


def stop_scheduler() -> None:
    """Stop the scheduler."""
    global scheduler
    if scheduler is None:
        raise RuntimeError("Scheduler not started. Call start_scheduler() first.")
    scheduler.shutdown()
    scheduler = None
    logger.info("XP recalculation scheduler stopped")
