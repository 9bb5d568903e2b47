"""
Processing run: walks an upload's archive and persists every product in it.

Each folder ends as one :class:`FolderOutcome`; the run as a whole ends as a
:class:`RunReport`. Folders that are not products are only counted.
"""

import logging
from contextlib import closing
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from intake.ingestion.builder import build_records
from intake.ingestion.committer import commit_product
from intake.ingestion.errors import (
    CommitError,
    FatalIngestionError,
    ProcessingCancelled,
    ProductRejected,
    RejectionReason,
    UploadBusyError,
    UploadNotFoundError,
    UploadReadError,
)
from intake.ingestion.extractor import extract
from intake.ingestion.validator import validate_product
from intake.ingestion.walker import ArchiveFailure, FolderGroup, walk
from intake.models import Fiche, OutcomeStatus, Source, Upload, UploadStatus
from intake.storage import FileStorage, StoragePathError
from intake.utils.logging import record_outcome

logger = logging.getLogger(__name__)


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


@dataclass
class FolderOutcome:
    archive: str
    folder: str
    status: OutcomeStatus
    reason: Optional[str] = None
    detail: Optional[str] = None
    fiche_id: Optional[int] = None


@dataclass
class RunReport:
    upload_id: int
    status: UploadStatus = UploadStatus.PROCESSING
    outcomes: list[FolderOutcome] = field(default_factory=list)
    folders_seen: int = 0
    error: Optional[str] = None

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def committed(self) -> int:
        return self.count(OutcomeStatus.COMMITTED)

    def as_dict(self) -> dict:
        return {
            "upload_id": self.upload_id,
            "status": self.status.value,
            "folders_seen": self.folders_seen,
            "committed": self.committed,
            "skipped": self.count(OutcomeStatus.SKIPPED),
            "rejected": self.count(OutcomeStatus.REJECTED),
            "failed": self.count(OutcomeStatus.FAILED),
            "error": self.error,
            "outcomes": [
                {**asdict(outcome), "status": outcome.status.value} for outcome in self.outcomes
            ],
        }


def _lookups(db: Session):
    def fiche_exists(file_hash: str) -> bool:
        return db.query(Fiche.id).filter(Fiche.hash == file_hash).first() is not None

    def resolve_source(name: str) -> Optional[int]:
        row = db.query(Source.id).filter(Source.name == name).first()
        return row[0] if row else None

    return fiche_exists, resolve_source


def process_folder(db: Session, storage: FileStorage, group: FolderGroup, upload_id: int) -> Optional[FolderOutcome]:
    """
    Run extractor, validator, builder and committer on one folder.

    Returns None for folders that are not products. Per-product errors become
    outcomes; fatal errors propagate.
    """
    try:
        product = extract(group)
        if product is None:
            return None

        fiche_exists, resolve_source = _lookups(db)
        validated = validate_product(product, fiche_exists=fiche_exists, resolve_source=resolve_source)
        build = build_records(product, validated)
        fiche = commit_product(db, storage, build, upload_id)
    except ProductRejected as exc:
        status = OutcomeStatus.SKIPPED if exc.reason == RejectionReason.DUPLICATE_CONTENT else OutcomeStatus.REJECTED
        logger.warning(f"Upload {upload_id}: folder '{group.folder}' {status.value}: {exc.detail}")
        return FolderOutcome(group.archive, group.folder, status, exc.reason.value, exc.detail)
    except CommitError as exc:
        logger.error(f"Upload {upload_id}: folder '{group.folder}' failed: {exc.detail}")
        return FolderOutcome(group.archive, group.folder, OutcomeStatus.FAILED, exc.reason.value, exc.detail)

    return FolderOutcome(group.archive, group.folder, OutcomeStatus.COMMITTED, fiche_id=fiche.id)


def _record(db: Session, upload_id: int, outcome: FolderOutcome) -> None:
    record_outcome(
        db,
        upload_id,
        outcome.folder,
        outcome.status.value,
        archive=outcome.archive,
        reason=outcome.reason,
        detail=outcome.detail,
        fiche_id=outcome.fiche_id,
    )


def _set_status(db: Session, upload: Upload, status: UploadStatus) -> None:
    upload.status = status.value
    if status in (UploadStatus.COMPLETED, UploadStatus.FAILED):
        upload.processed_at = datetime.now(timezone.utc)
    db.commit()


def _read_archive(storage: FileStorage, upload: Upload) -> bytes:
    try:
        return storage.read_file(upload.path)
    except (OSError, StoragePathError) as exc:
        raise UploadReadError(f"Cannot read stored archive '{upload.path}': {exc}") from exc


def process_upload(
    db: Session,
    storage: FileStorage,
    upload_id: int,
    *,
    processor_id: Optional[int] = None,
    max_depth: int = 5,
    cancel_event: Optional[CancelToken] = None,
    force: bool = False,
) -> RunReport:
    """
    Process the stored archive of an upload into fiches.

    The upload goes to ``processing`` while the walk runs, then ``completed``
    once every folder was handled (whatever each folder's outcome) or
    ``failed`` when a fatal error stops the walk.

    Raises:
        UploadNotFoundError: no upload with this id.
        UploadBusyError: the upload is already processing and ``force`` is False.
    """
    upload = db.query(Upload).filter(Upload.id == upload_id).one_or_none()
    if upload is None:
        raise UploadNotFoundError(upload_id)
    if upload.status == UploadStatus.PROCESSING.value and not force:
        raise UploadBusyError(upload_id)

    if processor_id is not None:
        upload.processor_id = processor_id
    _set_status(db, upload, UploadStatus.PROCESSING)
    logger.info(f"Processing upload {upload_id} ({upload.file_name})")

    report = RunReport(upload_id=upload_id)
    try:
        data = _read_archive(storage, upload)

        with closing(walk(data, max_depth=max_depth)) as items:
            for item in items:
                if cancel_event is not None and cancel_event.is_set():
                    raise ProcessingCancelled(f"Processing of upload {upload_id} was cancelled")

                if isinstance(item, ArchiveFailure):
                    outcome = FolderOutcome(item.archive, "", OutcomeStatus.FAILED, item.reason.value, item.detail)
                else:
                    report.folders_seen += 1
                    outcome = process_folder(db, storage, item, upload_id)
                    if outcome is None:
                        continue

                report.outcomes.append(outcome)
                _record(db, upload_id, outcome)
    except FatalIngestionError as exc:
        db.rollback()
        logger.error(f"Processing of upload {upload_id} failed: {exc}")
        report.status = UploadStatus.FAILED
        report.error = str(exc)
        _set_status(db, upload, UploadStatus.FAILED)
        return report
    except Exception:
        db.rollback()
        logger.exception(f"Unexpected error while processing upload {upload_id}")
        _set_status(db, upload, UploadStatus.FAILED)
        raise

    report.status = UploadStatus.COMPLETED
    _set_status(db, upload, UploadStatus.COMPLETED)
    logger.info(
        f"Upload {upload_id} completed: {report.committed} committed out of {len(report.outcomes)} products "
        f"({report.folders_seen} folders seen)"
    )
    return report
