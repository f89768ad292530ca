import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from worker.celery_app import celery
from market.core.config import settings
import market.models  # noqa: F401  # ensures Models are registered
from market.models.outbox import OutboxEvent
from market.services.mailer import ResetLinkMailer
from market.services.outbox import process_event
from market.services.storage import build_blob_store

log = logging.getLogger(__name__)


async def _process_outbox_event(outbox_id: str) -> None:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with Session() as db:
            ev = (await db.execute(
                select(OutboxEvent).where(OutboxEvent.id == outbox_id).with_for_update()
            )).scalar_one_or_none()

            # Already handled, or the lease was reclaimed by the dispatcher
            if not ev or ev.status != "processing":
                return

            await process_event(ev, blob_store=build_blob_store(), mailer=ResetLinkMailer())
            await db.commit()
            log.info("outbox %s %s -> %s", ev.id, ev.event_type, ev.status)
    finally:
        await engine.dispose()


@celery.task(name="worker.tasks.process_outbox_event", bind=True, max_retries=5)
def process_outbox_event(self, outbox_id: str) -> None:
    asyncio.run(_process_outbox_event(outbox_id))
