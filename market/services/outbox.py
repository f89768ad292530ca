from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from market.core.crypto import decrypt_json
from market.models.outbox import OutboxEvent
from market.services.mailer import MailDeliveryError, ResetLinkMailer
from market.services.storage import BlobStore

log = logging.getLogger(__name__)

IMAGES_RELEASED = "listing.images_released"
PASSWORD_RESET_REQUESTED = "user.password_reset_requested"

MAX_ATTEMPTS = 8


def backoff_seconds(attempt: int, base: int = 15, cap: int = 1800) -> int:
    # exponential, capped, with up to a third of jitter
    delay = min(cap, base * (2 ** max(0, attempt - 1)))
    return delay + random.randint(0, delay // 3)


def emit(
    db: AsyncSession,
    *,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str,
    payload: dict,
) -> OutboxEvent:
    """Queue a side effect; it is only visible to the worker once the caller commits."""
    ev = OutboxEvent(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        status="pending",
    )
    db.add(ev)
    return ev


async def handle_event(event: OutboxEvent, *, blob_store: BlobStore, mailer: ResetLinkMailer) -> None:
    if event.event_type == IMAGES_RELEASED:
        for key in event.payload.get("keys", []):
            await run_in_threadpool(blob_store.delete, key=key)
        return

    if event.event_type == PASSWORD_RESET_REQUESTED:
        data = decrypt_json(event.payload["sealed"])
        await mailer.send_reset_link(to=data["email"], username=data["username"], link=data["link"])
        return

    raise ValueError(f"Unknown outbox event type: {event.event_type}")


def mark_sent(event: OutboxEvent) -> None:
    event.status = "sent"
    event.attempts += 1
    event.last_error = None
    event.next_attempt_at = None
    event.sent_at = datetime.now(timezone.utc)


def mark_failed(event: OutboxEvent, error: Exception) -> None:
    event.attempts += 1
    event.last_error = str(error)[:2000]

    permanent = isinstance(error, MailDeliveryError) and not error.retryable
    if permanent or event.attempts >= MAX_ATTEMPTS:
        event.status = "dead"
        event.next_attempt_at = None
        log.error("outbox %s dead after %d attempts: %s", event.id, event.attempts, error)
        return

    event.status = "failed"
    event.next_attempt_at = datetime.now(timezone.utc) + timedelta(seconds=backoff_seconds(event.attempts))
    log.warning("outbox %s failed (attempt %d): %s", event.id, event.attempts, error)


async def process_event(event: OutboxEvent, *, blob_store: BlobStore, mailer: ResetLinkMailer) -> None:
    """Run one event and record the outcome on the row (caller commits)."""
    try:
        await handle_event(event, blob_store=blob_store, mailer=mailer)
    except Exception as e:
        mark_failed(event, e)
        return
    mark_sent(event)
