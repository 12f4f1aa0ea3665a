"""
Update Dedup Service - idempotency for inbound webhook updates.

Claim-then-process: an update is inserted as ``processing`` before any handler
runs. A completed update is never processed again; one stuck in processing
longer than STALE_PROCESSING_SECONDS, or marked failed, may be retried.
"""
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models.webhook_event import WebhookEvent, WebhookEventStatus

logger = get_logger(__name__)

STALE_PROCESSING_SECONDS = 120


async def try_acquire_update(db: AsyncSession, event_id: str, source: str = "telegram") -> bool:
    """True when the caller should process the update, False for a duplicate"""
    if not event_id:
        return True

    try:
        async with db.begin_nested():
            db.add(WebhookEvent(
                event_id=event_id,
                source=source,
                status=WebhookEventStatus.PROCESSING,
            ))
        # commit now so the claim survives a failure in the handlers
        await db.commit()
        return True
    except IntegrityError:
        pass

    result = await db.execute(
        select(WebhookEvent.status, WebhookEvent.updated_at)
        .where(WebhookEvent.event_id == event_id)
    )
    row = result.one_or_none()
    if row is None:
        return False

    if row.status == WebhookEventStatus.COMPLETED:
        logger.info("Skipping completed duplicate update", extra_data={"event_id": event_id})
        return False

    now = datetime.now(timezone.utc)
    retry_filter = [WebhookEvent.event_id == event_id]
    if row.status == WebhookEventStatus.FAILED:
        retry_filter.append(WebhookEvent.status == WebhookEventStatus.FAILED)
    else:
        threshold = now - timedelta(seconds=STALE_PROCESSING_SECONDS)
        retry_filter.extend([
            WebhookEvent.status == WebhookEventStatus.PROCESSING,
            WebhookEvent.updated_at < threshold,
        ])

    claimed = await db.execute(
        update(WebhookEvent)
        .where(*retry_filter)
        .values(status=WebhookEventStatus.PROCESSING, updated_at=now)
    )
    if claimed.rowcount > 0:
        await db.commit()
        logger.warning("Retrying update", extra_data={"event_id": event_id, "previous_status": row.status})
        return True

    logger.info("Skipping in-progress update", extra_data={"event_id": event_id})
    return False


async def _set_status(db: AsyncSession, event_id: str, status: str) -> None:
    if not event_id:
        return
    await db.execute(
        update(WebhookEvent)
        .where(WebhookEvent.event_id == event_id)
        .values(status=status, updated_at=datetime.now(timezone.utc))
    )
    await db.commit()


async def mark_update_completed(db: AsyncSession, event_id: str) -> None:
    await _set_status(db, event_id, WebhookEventStatus.COMPLETED)


async def mark_update_failed(db: AsyncSession, event_id: str) -> None:
    await _set_status(db, event_id, WebhookEventStatus.FAILED)
