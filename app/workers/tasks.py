"""
Celery Tasks

Periodic housekeeping (expired sessions, idempotency rows) and the document
analysis that runs after a driver finishes onboarding.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from contextlib import contextmanager

from sqlalchemy import delete as sa_delete

from app.workers.celery_app import celery_app
from app.db.database import get_task_session
from app.db.models.webhook_event import WebhookEvent, WebhookEventStatus
from app.domain.services.document_analysis_service import (
    DocumentAnalysisService,
    analyze_driver_documents as run_driver_analysis,
    find_missing_driver_fields,
)
from app.domain.services.document_storage import get_document_storage
from app.domain.services.driver_service import DriverService
from app.domain.services.hr_notification_service import HRNotificationService
from app.domain.services.telegram import get_transport
from app.core.logging import get_logger, log_async_operation, set_correlation_id
from app.state_machine.manager import SessionStore

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """
    Context manager for proper event loop handling in Celery tasks.
    Creates a new event loop and ensures proper cleanup to prevent resource leaks.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Helper to run async code in sync Celery task with proper cleanup"""
    # Set correlation ID for task tracking
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@log_async_operation("cleanup_expired_sessions")
async def _cleanup_expired_sessions() -> dict:
    async with get_task_session() as db:
        deleted = await SessionStore(db, logger=logger).cleanup_expired()
        return {"deleted": deleted}


@celery_app.task(name="app.workers.tasks.cleanup_expired_sessions")
def cleanup_expired_sessions():
    """Delete conversation sessions whose expiry has passed"""
    return run_async(_cleanup_expired_sessions())


@log_async_operation("cleanup_old_webhook_events")
async def _cleanup_old_webhook_events(days: int) -> dict:
    async with get_task_session() as db:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)

        result = await db.execute(
            sa_delete(WebhookEvent).where(
                WebhookEvent.status == WebhookEventStatus.COMPLETED,
                WebhookEvent.created_at < cutoff,
            )
        )
        deleted = result.rowcount or 0

        await db.commit()
        logger.info(
            "Cleaned up old webhook events",
            extra_data={"deleted": deleted, "cutoff_days": days},
        )
        return {"deleted": deleted}


@celery_app.task(name="app.workers.tasks.cleanup_old_webhook_events")
def cleanup_old_webhook_events(days: int = 7):
    """Prune completed idempotency rows of the Telegram webhook"""
    return run_async(_cleanup_old_webhook_events(days))


@log_async_operation("analyze_driver_documents")
async def _analyze_driver_documents(driver_id: int, service=None, notifier=None, storage=None) -> dict:
    async with get_task_session() as db:
        driver = await DriverService(db).get_by_id(driver_id)
        if driver is None:
            logger.warning("Document analysis skipped, driver not found", extra_data={"driver_id": driver_id})
            return {"driver_id": driver_id, "analyzed": 0}

        results = await run_driver_analysis(
            driver,
            service or DocumentAnalysisService(logger=logger),
            storage or get_document_storage(),
        )
        issues = find_missing_driver_fields(driver)

        notifier = notifier or HRNotificationService(get_transport(), logger=logger)
        notified = await notifier.send_analysis_summary(driver, results, issues)

        logger.info(
            "Driver documents analyzed",
            extra_data={
                "driver_id": driver_id,
                "analyzed": len(results),
                "issues": len(issues),
                "notified": notified,
            },
        )
        return {
            "driver_id": driver_id,
            "analyzed": len(results),
            "valid": sum(1 for r in results.values() if r.is_valid),
            "issues": issues,
        }


@celery_app.task(name="app.workers.tasks.analyze_driver_documents")
def analyze_driver_documents(driver_id: int):
    """Classify a new applicant's documents and post the summary to HR"""
    return run_async(_analyze_driver_documents(driver_id))
