"""
Persistence committer: the one place a product is written.

Rows are created and committed in a single transaction first; files are
written only once that commit succeeded. When a file write fails the
committed fiche is deleted again and the files this attempt wrote are
removed, so a failed attempt leaves neither rows nor orphan files.

A file left on disk by an interrupted earlier attempt (no row claims it and
its content is exactly what would be written) is reclaimed instead of being
reported as a collision.
"""

import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from intake.ingestion.builder import ProductBuild
from intake.ingestion.errors import CommitError, PathCollisionError
from intake.models import Document, Fiche
from intake.storage import FileStorage
from intake.utils.file_operations import hash_bytes, hash_file

logger = logging.getLogger(__name__)


def _check_paths(db: Session, storage: FileStorage, build: ProductBuild) -> list[str]:
    """
    Refuse to reuse any path claimed by a row or holding different bytes on disk.

    Returns the paths holding leftovers of an interrupted attempt.
    """
    paths = list(build.files)

    claimed = (
        db.query(Fiche.path).filter(Fiche.path.in_(paths)).first()
        or db.query(Document.path).filter(Document.path.in_(paths)).first()
        or db.query(Document.original_path).filter(Document.original_path.in_(paths)).first()
    )
    if claimed:
        raise PathCollisionError(claimed[0])

    leftovers = []
    for path in paths:
        if not storage.exists(path):
            continue
        if hash_file(storage.resolve(path)) != hash_bytes(build.files[path]):
            raise PathCollisionError(path)
        leftovers.append(path)
    return leftovers


def _create_rows(db: Session, build: ProductBuild, upload_id: int) -> Fiche:
    record = build.fiche
    fiche = Fiche(
        ref=record.ref,
        source_id=record.source_id,
        date=record.date,
        object=record.object,
        summary=record.summary,
        path=record.path,
        hash=record.hash,
        dump=record.dump,
        upload_id=upload_id,
    )
    db.add(fiche)
    db.flush()

    created: list[Document] = []
    for doc in build.documents:
        document = Document(
            fiche_id=fiche.id,
            type=doc.type,
            content=doc.content,
            meta=doc.meta,
            dump=doc.dump,
            path=doc.path,
            original_path=doc.original_path,
            hash=doc.hash,
        )
        if doc.parent_index is not None:
            # Parent messages are always earlier in the list, so already flushed
            document.message_id = created[doc.parent_index].id
        db.add(document)
        db.flush()
        created.append(document)

    return fiche


def _discard(db: Session, storage: FileStorage, fiche: Fiche, written: list[str]) -> None:
    """Undo a committed fiche whose files could not all be written."""
    db.delete(fiche)
    db.commit()

    for path in written:
        storage.remove(path)
        storage.prune_empty_dirs(path)


def commit_product(db: Session, storage: FileStorage, build: ProductBuild, upload_id: int) -> Fiche:
    """
    Persist one product.

    Raises PathCollisionError (fatal) before anything is written when a
    target path is taken, CommitError when the rows or files cannot be
    written; in that case nothing of this product remains.
    """
    leftovers = _check_paths(db, storage, build)
    ref = build.fiche.ref

    try:
        fiche = _create_rows(db, build, upload_id)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Rolled back fiche {ref}: {exc}")
        raise CommitError(f"Could not persist fiche {ref}: {exc}") from exc

    for path in leftovers:
        logger.warning(f"Reclaiming {path} left over by an interrupted attempt")
        storage.remove(path)

    written = []
    try:
        for path, data in build.files.items():
            storage.write_file(path, data)
            written.append(path)
    except OSError as exc:
        logger.error(f"Writing files of fiche {ref} failed, deleting it: {exc}")
        _discard(db, storage, fiche, written)
        raise CommitError(f"Could not write files of fiche {ref}: {exc}") from exc

    logger.info(f"Committed fiche {ref} (id={fiche.id}) with {len(build.documents)} documents")
    return fiche
