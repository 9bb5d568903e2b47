"""
Archive ingestion pipeline.

walker -> extractor -> validator -> builder -> committer, driven per upload
by :func:`process_upload`. :func:`ingest_file` registers new archives.
"""

from intake.ingestion.pipeline import FolderOutcome, RunReport, process_upload
from intake.ingestion.uploads import delete_fiche, delete_upload, ingest_file

__all__ = ["FolderOutcome", "RunReport", "delete_fiche", "delete_upload", "ingest_file", "process_upload"]
