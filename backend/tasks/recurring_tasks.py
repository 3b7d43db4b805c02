"""Celery tasks for recurring transaction materialization."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from celery_app import celery_app
from ledger.database import SessionLocal
from ledger.errors import LedgerUnavailable
from ledger.schemas import RecurringJob
from ledger.services.recurring_service import RecurringScheduler
from ledger.services.throttle import OwnerThrottle

logger = logging.getLogger(__name__)

_throttle: Optional[OwnerThrottle] = None


def get_throttle() -> OwnerThrottle:
    global _throttle
    if _throttle is None:
        _throttle = OwnerThrottle()
    return _throttle


def enqueue_job(job: RecurringJob, countdown: Optional[float] = None) -> None:
    process_recurring_transaction.apply_async(
        args=[str(job.transaction_id), job.owner_id],
        countdown=countdown,
    )


@celery_app.task(bind=True, max_retries=2, name="tasks.recurring_tasks.trigger_recurring_transactions")
def trigger_recurring_transactions(self) -> dict:
    """Daily scan: enqueue one materialization job per due template."""
    session = SessionLocal()
    try:
        jobs = RecurringScheduler(session).find_due_templates()
    except SQLAlchemyError as exc:
        logger.exception("[RECURRING_SCAN] Failed to scan due templates: %s", exc)
        raise self.retry(exc=exc, countdown=60)
    finally:
        session.close()

    enqueued = 0
    failed = 0
    for job in jobs:
        try:
            enqueue_job(job)
            enqueued += 1
        except Exception as exc:  # noqa: BLE001
            failed += 1
            logger.exception(
                "[RECURRING_SCAN] Failed to enqueue template=%s owner=%s: %s",
                job.transaction_id,
                job.owner_id,
                exc,
            )

    logger.info("[RECURRING_SCAN] due=%s enqueued=%s failed=%s", len(jobs), enqueued, failed)
    return {"due": len(jobs), "enqueued": enqueued, "failed": failed}


@celery_app.task(
    bind=True,
    autoretry_for=(LedgerUnavailable,),
    retry_backoff=True,
    max_retries=3,
    name="tasks.recurring_tasks.process_recurring_transaction",
)
def process_recurring_transaction(self, transaction_id: str, owner_id: str) -> dict:
    """Materialize one due template. Safe to retry: an already-advanced template is skipped."""
    try:
        job = RecurringJob(transaction_id=UUID(str(transaction_id)), owner_id=owner_id)
    except (ValueError, TypeError):
        logger.error("[RECURRING_JOB] Invalid job data transaction=%r owner=%r", transaction_id, owner_id)
        return {"skipped": True, "reason": "INVALID_JOB"}

    if not job.owner_id:
        logger.error("[RECURRING_JOB] Missing owner for transaction=%s", job.transaction_id)
        return {"skipped": True, "reason": "INVALID_JOB"}

    wait_seconds = get_throttle().acquire(job.owner_id)
    if wait_seconds > 0:
        logger.info(
            "[RECURRING_JOB] Owner %s throttled, re-enqueueing template=%s in %.1fs",
            job.owner_id,
            job.transaction_id,
            wait_seconds,
        )
        enqueue_job(job, countdown=wait_seconds)
        return {"skipped": True, "reason": "THROTTLED", "retry_in": wait_seconds}

    session = SessionLocal()
    try:
        occurrence = RecurringScheduler(session).materialize(job.transaction_id, job.owner_id)
    finally:
        session.close()

    if occurrence is None:
        return {"skipped": True, "reason": "NOT_ELIGIBLE"}
    return {"skipped": False, "occurrence_id": str(occurrence.id)}
