"""Internal task scheduler using APScheduler.

Runs the subscription expiry sweep within the FastAPI process.
Uses PostgreSQL advisory locks to prevent duplicate execution when
multiple instances are running.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import text

from app.config import settings
from app.core.database import async_session_maker, direct_session_maker
from app.domain.ledger_operations import ledger_ops

logger = logging.getLogger(__name__)

# Advisory lock IDs (arbitrary unique integers, one per job)
SUBSCRIPTION_SWEEP_LOCK_ID = 730514


@asynccontextmanager
async def advisory_lock(lock_id: int) -> AsyncIterator[bool]:
    """
    Acquire a PostgreSQL advisory lock for the duration of the context.

    Advisory locks are session-level, so this uses the direct connection:
    behind the transaction pooler the unlock could land on another backend.
    pg_try_advisory_lock() returns immediately; if another process holds
    the lock, we skip.
    """
    async with direct_session_maker() as session:
        result = await session.execute(
            text("SELECT pg_try_advisory_lock(:lock_id)"),
            {"lock_id": lock_id},
        )
        acquired = result.scalar()

        if not acquired:
            yield False
            return

        try:
            yield True
        finally:
            await session.execute(
                text("SELECT pg_advisory_unlock(:lock_id)"),
                {"lock_id": lock_id},
            )
            await session.commit()


async def run_subscription_sweep() -> dict[str, Any] | None:
    """
    Expire lapsed subscriptions with advisory lock protection.

    Returns the report dict if executed, None if skipped (lock held by
    another instance) or failed.
    """
    async with advisory_lock(SUBSCRIPTION_SWEEP_LOCK_ID) as acquired:
        if not acquired:
            logger.info("[scheduler] Subscription-sweep: skipped (another instance is running)")
            return None

        logger.info("[scheduler] Subscription-sweep: starting")

        try:
            async with async_session_maker() as db:
                report = await ledger_ops.expire_lapsed_subscriptions(db)
                await db.commit()

            logger.info(
                f"[scheduler] Subscription-sweep: completed "
                f"({report.expired} expired, "
                f"{report.retractions_failed} role retractions failed)"
            )
            result = asdict(report)
            result["subscription_ids"] = [str(i) for i in report.subscription_ids]
            return result

        except Exception as e:
            logger.exception(f"[scheduler] Subscription-sweep: failed with error: {e}")
            return None


class Scheduler:
    """Manages the APScheduler instance and job registration."""

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None

    def start(self) -> None:
        """Start the scheduler and register jobs."""
        if not settings.scheduler_enabled:
            logger.info("[scheduler] Disabled via SCHEDULER_ENABLED=false")
            return

        self._scheduler = AsyncIOScheduler()

        # Subscription sweep: hourly at the configured minute
        self._scheduler.add_job(
            run_subscription_sweep,
            trigger=CronTrigger(minute=settings.subscription_sweep_minute),
            id="subscription_sweep",
            name="Expire Lapsed Shop Subscriptions",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            f"[scheduler] Started with subscription-sweep hourly at "
            f":{settings.subscription_sweep_minute:02d}"
        )

    def stop(self) -> None:
        """Gracefully shut down the scheduler."""
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            logger.info("[scheduler] Stopped")


scheduler = Scheduler()
