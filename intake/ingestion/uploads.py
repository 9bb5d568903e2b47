"""
Upload intake and removal.

``ingest_file`` stores a submitted archive once (content-addressed by its
SHA-256) and registers a pending Upload; ``delete_upload`` and
``delete_fiche`` remove a record subtree together with the files it owns.
"""

import logging
import posixpath
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from intake.ingestion.errors import CommitError, DuplicateUploadError, FicheNotFoundError, UploadNotFoundError
from intake.models import Fiche, Upload, UploadStatus, UploadType
from intake.storage import FileStorage
from intake.utils.file_operations import hash_bytes

logger = logging.getLogger(__name__)

UPLOADS_ROOT = "uploads"


def upload_path(file_hash: str) -> str:
    return posixpath.join(UPLOADS_ROOT, f"{file_hash}.zip")


def ingest_file(
    db: Session,
    storage: FileStorage,
    data: bytes,
    *,
    name: str,
    file_name: str,
    user_id: int,
    type: UploadType | str = UploadType.FILE,
    date: Optional[datetime] = None,
) -> int:
    """
    Register a submitted archive and store its bytes.

    Returns:
        int: id of the new pending Upload

    Raises:
        DuplicateUploadError: the same bytes were already uploaded
        CommitError: the row or the file could not be written
    """
    upload_type = UploadType(type)
    file_hash = hash_bytes(data)

    existing = db.query(Upload).filter(Upload.hash == file_hash).one_or_none()
    if existing:
        logger.info(f"Duplicate archive '{file_name}' (hash={file_hash[:10]}...), already upload {existing.id}")
        raise DuplicateUploadError(existing.id, file_hash)

    path = upload_path(file_hash)
    upload = Upload(
        name=name,
        date=date or datetime.now(timezone.utc),
        type=upload_type.value,
        file_name=file_name,
        path=path,
        hash=file_hash,
        status=UploadStatus.PENDING.value,
        user_id=user_id,
    )

    written = False
    try:
        db.add(upload)
        db.flush()
        storage.write_file(path, data)
        written = True
        db.commit()
    except (SQLAlchemyError, OSError) as exc:
        db.rollback()
        if written:
            storage.remove(path)
        raise CommitError(f"Could not store upload '{file_name}': {exc}") from exc

    logger.info(f"Stored upload {upload.id} '{file_name}' ({len(data)} bytes) at {path}")
    return upload.id


def _fiche_paths(fiche: Fiche) -> list[str]:
    paths = [fiche.path]
    for document in fiche.documents:
        paths.append(document.path)
        if document.original_path:
            paths.append(document.original_path)
    return paths


def _remove_files(storage: FileStorage, paths: list[str]) -> None:
    for path in paths:
        if not storage.remove(path):
            logger.warning(f"File {path} was already missing")
        storage.prune_empty_dirs(path)


def delete_fiche(db: Session, storage: FileStorage, fiche_id: int) -> int:
    """Delete a fiche, its documents and their files. Returns the number of files removed."""
    fiche = db.query(Fiche).filter(Fiche.id == fiche_id).one_or_none()
    if fiche is None:
        raise FicheNotFoundError(fiche_id)

    paths = _fiche_paths(fiche)
    db.delete(fiche)
    db.commit()

    _remove_files(storage, paths)
    logger.info(f"Deleted fiche {fiche_id} and {len(paths)} files")
    return len(paths)


def delete_upload(db: Session, storage: FileStorage, upload_id: int) -> int:
    """
    Delete an upload with every fiche, document and outcome it owns.

    Rows go first; files are only removed once the deletion is committed, so
    a failed delete never leaves rows pointing at missing files.
    """
    upload = db.query(Upload).filter(Upload.id == upload_id).one_or_none()
    if upload is None:
        raise UploadNotFoundError(upload_id)

    paths = [upload.path]
    for fiche in upload.fiches:
        paths.extend(_fiche_paths(fiche))

    db.delete(upload)
    db.commit()

    _remove_files(storage, paths)
    logger.info(f"Deleted upload {upload_id} and {len(paths)} files")
    return len(paths)
