import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from market.core.config import settings
from market.models.outbox import OutboxEvent
from worker.celery_app import celery


log = logging.getLogger(__name__)

POLL_SECONDS = 2
BATCH_SIZE = 100
LEASE_SECONDS = 600


def due_events_stmt(now: datetime):
    # pending/failed events whose backoff elapsed, plus processing ones whose lease expired
    return (
        select(OutboxEvent.id)
        .where(
            OutboxEvent.status.in_(["pending", "failed", "processing"]),
            or_(OutboxEvent.next_attempt_at.is_(None), OutboxEvent.next_attempt_at <= now),
        )
        .order_by(OutboxEvent.created_at.asc())
        .limit(BATCH_SIZE)
    )


async def _tick():
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with Session() as db:
        now = datetime.now(timezone.utc)
        ids = (await db.execute(due_events_stmt(now).with_for_update(skip_locked=True))).scalars().all()

        if not ids:
            await db.commit()
            await engine.dispose()
            return 0

        # Lease them so the next tick does not enqueue them twice
        await db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id.in_(ids))
            .values(status="processing", next_attempt_at=now + timedelta(seconds=LEASE_SECONDS))
        )
        await db.commit()

    await engine.dispose()

    log.info("tick: enqueueing %d outbox events", len(ids))
    for outbox_id in ids:
        celery.send_task("worker.tasks.process_outbox_event", args=[outbox_id], queue="outbox")

    return len(ids)


async def main():
    celery.connection().ensure_connection(max_retries=3)

    logging.basicConfig(level=settings.log_level)
    log.info("dispatcher: started")
    while True:
        try:
            await _tick()
        except Exception:
            log.exception("dispatcher: tick crashed")
        await asyncio.sleep(POLL_SECONDS)


if __name__ == "__main__":
    asyncio.run(main())
