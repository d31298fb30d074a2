"""Celery tasks for approval step deadlines.

A single periodic sweep (Celery beat) expires every pending instance
whose current step deadline has passed. There is never one timer per
instance; an expiry that loses the race to a human decision is skipped.
"""

import logging
from typing import Any, Dict, Optional

from celery import Celery, shared_task
from sqlalchemy.exc import OperationalError

from approvalflow.core.approval import ApprovalOrchestrator
from approvalflow.core.config import get_settings
from approvalflow.core.errors import IntegrationError
from approvalflow.db.session import SessionLocal, init_engine
from approvalflow.services.directory import HttpIdentityDirectory

logger = logging.getLogger(__name__)
settings = get_settings()

# Initialize Celery
celery_app = Celery(
    "approvalflow",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "approvalflow.workers.expiry_tasks.expire_overdue_instances": {"queue": "expiry"},
    },
    task_default_queue="default",
    beat_schedule={
        "expire-overdue-approvals": {
            "task": "approvalflow.workers.expiry_tasks.expire_overdue_instances",
            "schedule": float(settings.expiry_sweep_interval_seconds),
        },
    },
)


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def expire_overdue_instances(self, limit: Optional[int] = None) -> Dict[str, Any]:
    """
    Expire pending instances past their step deadline.

    Directory outages and dropped database connections are retried;
    anything else fails the sweep until the next beat.

    Args:
        limit: Maximum instances per sweep (defaults to expiry_sweep_batch_size)

    Returns:
        Sweep summary with the expired instance ids
    """
    init_engine()
    db = SessionLocal()
    directory = HttpIdentityDirectory(settings=settings)
    try:
        orchestrator = ApprovalOrchestrator(db, directory, settings=settings)
        expired = orchestrator.expire_overdue(limit=limit)
        return {"expired": expired, "count": len(expired)}

    except (IntegrationError, OperationalError) as e:
        logger.warning(f"Expiry sweep hit a transient failure, retrying: {e}")
        raise self.retry(exc=e)

    except Exception:
        logger.exception("Expiry sweep failed")
        raise

    finally:
        directory.close()
        db.close()
