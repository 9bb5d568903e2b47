#!/usr/bin/env python3

import logging
from typing import Optional

from intake.celery_app import celery
from intake.config import settings
from intake.database import SessionLocal
from intake.ingestion.pipeline import process_upload
from intake.storage import FileStorage
from intake.tasks.retry_config import BaseTaskWithRetry

logger = logging.getLogger(__name__)


@celery.task(base=BaseTaskWithRetry, bind=True)
def process_upload_task(self, upload_id: int, processor_id: Optional[int] = None):
    """
    Walk the stored archive of an upload and persist every product in it.

    A redelivered message means the worker that held it died mid-run and
    left the upload in "processing", so the run is forced.

    Returns the run report as a dict: final upload status, per-folder
    outcomes and, for failed runs, the fatal error.
    """
    task_id = self.request.id
    redelivered = bool((self.request.delivery_info or {}).get("redelivered"))
    logger.info(f"[{task_id}] Processing upload {upload_id} (redelivered={redelivered})")

    storage = FileStorage(settings.file_storage_path)
    with SessionLocal() as db:
        report = process_upload(
            db,
            storage,
            upload_id,
            processor_id=processor_id,
            max_depth=settings.max_archive_depth,
            force=redelivered,
        )

    logger.info(f"[{task_id}] Upload {upload_id} ended {report.status.value}: {report.committed} fiches committed")
    return report.as_dict()
