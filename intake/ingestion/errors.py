"""
Exception taxonomy for archive ingestion.

Per-product errors (:class:`ProductRejected`, :class:`CommitError`) are caught
at the folder boundary and turned into outcomes; :class:`FatalIngestionError`
subclasses abort the whole processing run and flip the upload to ``failed``.
"""

import enum
from typing import Optional


class RejectionReason(str, enum.Enum):
    """Stable reason codes stored in the outcome ledger."""

    MANIFEST_UNREADABLE = "manifest_unreadable"
    MISSING_FIELD = "missing_field"
    INVALID_FIELD = "invalid_field"
    INVALID_DATE = "invalid_date"
    FILE_COUNT_MISMATCH = "file_count_mismatch"
    MISSING_SOURCE_DOCUMENT = "missing_source_document"
    INVALID_MESSAGE_META = "invalid_message_meta"
    INVALID_PARENT_META = "invalid_parent_meta"
    MISSING_PARENT_MESSAGE = "missing_parent_message"
    UNKNOWN_SOURCE = "unknown_source"
    DUPLICATE_CONTENT = "duplicate_content"
    INVALID_ORDINAL = "invalid_ordinal"
    UNREADABLE_ENTRY = "unreadable_entry"
    UNREADABLE_ARCHIVE = "unreadable_archive"
    ARCHIVE_TOO_DEEP = "archive_too_deep"
    COMMIT_FAILED = "commit_failed"


class IngestionError(Exception):
    """Base class for every error raised by the ingestion pipeline."""


class ProductRejected(IngestionError):
    """A product folder failed validation; the rest of the archive goes on."""

    def __init__(self, reason: RejectionReason, detail: str):
        super().__init__(f"{reason.value}: {detail}")
        self.reason = reason
        self.detail = detail


class CommitError(IngestionError):
    """Persisting a product failed and was rolled back."""

    reason = RejectionReason.COMMIT_FAILED

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class FatalIngestionError(IngestionError):
    """Aborts the processing run."""


class ArchiveOpenError(FatalIngestionError):
    """The uploaded archive itself cannot be opened as a ZIP."""


class UploadReadError(FatalIngestionError):
    """The stored archive of an upload cannot be read back."""


class PathCollisionError(FatalIngestionError):
    """Two records would claim the same storage path."""

    def __init__(self, path: str):
        super().__init__(f"Storage path already claimed: {path}")
        self.path = path


class ProcessingCancelled(FatalIngestionError):
    """The run was cancelled between two folders."""


class UploadNotFoundError(IngestionError):
    def __init__(self, upload_id: int):
        super().__init__(f"Upload {upload_id} not found")
        self.upload_id = upload_id


class UploadBusyError(IngestionError):
    def __init__(self, upload_id: int):
        super().__init__(f"Upload {upload_id} is already being processed")
        self.upload_id = upload_id


class DuplicateUploadError(IngestionError):
    """The same archive bytes were already submitted."""

    def __init__(self, existing_id: int, file_hash: str):
        super().__init__(f"Archive already uploaded as upload {existing_id} (hash={file_hash[:10]}...)")
        self.existing_id = existing_id
        self.hash = file_hash


class FicheNotFoundError(IngestionError):
    def __init__(self, fiche_id: int, detail: Optional[str] = None):
        super().__init__(detail or f"Fiche {fiche_id} not found")
        self.fiche_id = fiche_id
