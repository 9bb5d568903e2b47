# intake/celery_app.py

import logging

from celery import Celery
from celery.signals import task_failure, worker_process_init

from intake.config import settings

logger = logging.getLogger(__name__)

celery = Celery(
    "fiche_intake",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["intake.tasks.process_upload"],
)

# Retain connection retry behavior at startup
celery.conf.broker_connection_retry_on_startup = True

# Every ingestion task goes to the "ingestion" queue
celery.conf.task_default_queue = "ingestion"
celery.conf.task_routes = {
    "intake.tasks.*": {"queue": "ingestion"},
}

# A processing run holds one upload in memory; don't prefetch more than one
celery.conf.worker_prefetch_multiplier = 1
celery.conf.task_acks_late = True


@worker_process_init.connect
def init_worker_process(**kwargs):
    """Set up logging and tables in every worker process."""
    from intake.database import init_db
    from intake.utils.logging import configure_logging

    configure_logging(settings.log_level)
    init_db()


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, args=None, kwargs=None, **kw):
    """Log tasks that failed after exhausting their retries."""
    logger.error(
        f"Task {sender.name if sender else 'Unknown'} [{task_id or 'N/A'}] failed: {exception!r} "
        f"(args={args or []}, kwargs={kwargs or {}})"
    )
