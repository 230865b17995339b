from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from shopfloor.app.allocations.models import ImportOutcome
from shopfloor.app.allocations.repository import PostgresAllocationStore
from shopfloor.app.allocations.service import AllocationService
from shopfloor.app.config.env import (
    get_ceiling_policy,
    get_db_url,
    get_scoring_params,
    get_sync_interval_minutes,
    load_env,
)
from shopfloor.app.integration.allocation_client import AllocationApiClient


load_env()

logger = logging.getLogger(__name__)


def build_service() -> AllocationService:
    return AllocationService(
        PostgresAllocationStore(get_db_url()),
        get_scoring_params(),
        ceiling=get_ceiling_policy(),
    )


async def sync_allocations(
    service: Optional[AllocationService] = None,
    client: Optional[AllocationApiClient] = None,
) -> Optional[ImportOutcome]:
    """Pull allocation rows from the upstream backend and import them with fresh scores."""
    service = service or build_service()
    try:
        async with (client or AllocationApiClient()) as api:
            rows = await api.fetch_allocations()
        # psycopg calls are blocking
        outcome = await asyncio.to_thread(service.import_records, rows)
    except Exception as e:
        logger.exception("Allocation sync failed")
        await asyncio.to_thread(service.store.log_sync, "upstream:allocations", "failed", {"error": str(e)})
        return None
    status = "success" if outcome.skipped == 0 else "partial"
    await asyncio.to_thread(
        service.store.log_sync,
        "upstream:allocations",
        status,
        {"imported": outcome.imported, "skipped": outcome.skipped, "errors": outcome.errors},
    )
    logger.info("Allocation sync %s: %d imported, %d skipped", status, outcome.imported, outcome.skipped)
    return outcome


async def snapshot_daily_efficiency(
    day: Optional[date] = None,
    service: Optional[AllocationService] = None,
) -> int:
    """Write yesterday's (or ``day``'s) efficiency summaries to history."""
    service = service or build_service()
    # Allocation days are UTC days
    day = day or (datetime.now(timezone.utc).date() - timedelta(days=1))
    try:
        written = await asyncio.to_thread(service.snapshot_day, day)
    except Exception:
        logger.exception("Efficiency snapshot failed for %s", day)
        return 0
    logger.info("Efficiency snapshot for %s: %d rows", day, written)
    return written


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    scheduler = AsyncIOScheduler(timezone="UTC")

    # Upstream import on a fixed interval
    scheduler.add_job(sync_allocations, IntervalTrigger(minutes=get_sync_interval_minutes()))
    # Daily at 00:10 UTC: summaries for the previous day
    scheduler.add_job(snapshot_daily_efficiency, CronTrigger(hour=0, minute=10))

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    scheduler.start()
    try:
        loop.run_forever()
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        scheduler.shutdown(wait=False)


if __name__ == "__main__":
    main()
