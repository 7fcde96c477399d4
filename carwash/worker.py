"""
Payment reconciliation jobs (ARQ).

eSewa only reports a payment by redirecting the customer's browser. When
that redirect is lost the order stays PENDING; these jobs ask the gateway's
status API instead and settle through the same idempotent path.
"""

import logging
import os
from datetime import datetime, timedelta

import httpx
from arq.connections import RedisSettings
from arq.cron import cron

from .config import PAYMENT_RECONCILE_AFTER_MINUTES
from .database import SessionLocal
from .domain.payments.coordinator import PaymentCoordinator
from .domain.payments.repository import PaymentRepository
from .errors import PaymentCallbackError
from .realtime import get_realtime_publisher

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """Queue connection; shares REDIS_URL / REDIS_* with the real-time channels"""
    if os.getenv("REDIS_URL"):
        return RedisSettings.from_dsn(os.environ["REDIS_URL"])

    return RedisSettings(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", "6379")),
        database=int(os.getenv("REDIS_DB", "0")),
        password=os.getenv("REDIS_PASSWORD"),
        ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
        conn_timeout=15,
        conn_retry_delay=1,
    )


def _coordinator(ctx, db) -> PaymentCoordinator:
    # Tests put doubles for the publisher and status client into the job context
    return PaymentCoordinator(
        db,
        ctx.get("publisher") or get_realtime_publisher(),
        ctx.get("status_client"),
    )


async def reconcile_payment_task(ctx, transaction_uuid: str, total_amount: float):
    """
    Settle one transaction through the gateway status API.

    Args:
        ctx: ARQ context
        transaction_uuid: Reference issued when the payment form was built
        total_amount: Amount sent to the gateway
    """
    logger.info(f"🔄 Reconciling payment {transaction_uuid} (job {ctx.get('job_id', '-')})")

    db = ctx.get("session_factory", SessionLocal)()
    try:
        status_data, result = _coordinator(ctx, db).check_status(transaction_uuid, total_amount)
        return {
            "transaction_uuid": transaction_uuid,
            "status": status_data.get("status"),
            "settled": result is not None and not result.already_processed,
        }
    except Exception as e:
        logger.error(f"❌ Reconciliation failed for {transaction_uuid}: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


async def reconcile_pending_payments_task(ctx):
    """
    Cron job: ask the gateway about every order and appointment that was sent
    to eSewa but is still unpaid after PAYMENT_RECONCILE_AFTER_MINUTES.
    """
    logger.info("Starting pending payment reconciliation")

    db = ctx.get("session_factory", SessionLocal)()
    try:
        cutoff = datetime.utcnow() - timedelta(minutes=PAYMENT_RECONCILE_AFTER_MINUTES)
        pending = [
            (attempt.transaction_uuid, attempt.amount)
            for attempt in PaymentRepository.get_stale_pending_attempts(db, cutoff)
        ]

        logger.info(f"Checking {len(pending)} pending payments")

        coordinator = _coordinator(ctx, db)
        checked = 0
        settled = 0
        failed = 0

        for transaction_uuid, amount in pending:
            try:
                _status_data, result = coordinator.check_status(transaction_uuid, amount)
                if result is not None and not result.already_processed:
                    settled += 1
                checked += 1
            except (httpx.HTTPError, PaymentCallbackError) as e:
                db.rollback()
                failed += 1
                logger.error(f"❌ Status check failed for {transaction_uuid}: {str(e)}")
                continue

        logger.info(
            f"Payment reconciliation complete: {checked} checked, {settled} settled, "
            f"{failed} failed"
        )
        return {"checked": checked, "settled": settled, "failed": failed}

    except Exception as e:
        logger.error(f"❌ Payment reconciliation failed: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


class WorkerSettings:
    functions = [reconcile_payment_task, reconcile_pending_payments_task]
    cron_jobs = [
        cron(reconcile_pending_payments_task, minute={0, 15, 30, 45}),
    ]
    redis_settings = get_redis_settings()

    max_jobs = int(os.getenv("ARQ_MAX_JOBS", "20"))
    job_timeout = int(os.getenv("ARQ_JOB_TIMEOUT", "300"))
    keep_result = int(os.getenv("ARQ_KEEP_RESULT", "3600"))
    health_check_interval = 60
    # A gateway outage should not retry forever; the next cron run picks it up
    max_tries = 3
