import logging
from typing import Optional

from sqlalchemy.orm import Session

from intake.models import ProcessingOutcome

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for worker processes (once)."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    else:
        root.setLevel(level)


def record_outcome(
    db: Session,
    upload_id: int,
    folder: str,
    status: str,
    archive: str = "",
    reason: Optional[str] = None,
    detail: Optional[str] = None,
    fiche_id: Optional[int] = None,
) -> ProcessingOutcome:
    """
    Store the outcome of one product folder in the outcome ledger.

    Args:
        db: Database session
        upload_id: Upload the folder was found in
        folder: Folder path inside its archive
        status: committed, skipped, rejected or failed
        archive: Nested archive label, "" for the uploaded archive
        reason: RejectionReason code for anything but committed
        detail: Human-readable explanation
        fiche_id: Created fiche, for committed folders
    """
    outcome = ProcessingOutcome(
        upload_id=upload_id,
        archive=archive,
        folder=folder,
        status=status,
        reason=reason,
        detail=detail,
        fiche_id=fiche_id,
    )
    db.add(outcome)
    db.commit()
    return outcome


def get_run_outcomes(db: Session, upload_id: int) -> list[ProcessingOutcome]:
    """Ledger rows of an upload, oldest first."""
    return (
        db.query(ProcessingOutcome)
        .filter(ProcessingOutcome.upload_id == upload_id)
        .order_by(ProcessingOutcome.id)
        .all()
    )
