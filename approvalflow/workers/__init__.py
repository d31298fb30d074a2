"""Celery workers for the approval flow engine."""

from approvalflow.workers.expiry_tasks import (
    celery_app,
    expire_overdue_instances,
)

__all__ = [
    "celery_app",
    "expire_overdue_instances",
]
