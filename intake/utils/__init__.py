"""
Utility functions shared by the ingestion pipeline.
"""

from intake.utils.file_operations import hash_bytes, hash_file
from intake.utils.filename_utils import extract_ordinal, sanitize_filename, strip_ordinal

__all__ = ["extract_ordinal", "hash_bytes", "hash_file", "sanitize_filename", "strip_ordinal"]
