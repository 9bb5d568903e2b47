"""
Product extractor: decides whether a folder is a product and loads its files.
"""

import logging
import posixpath
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import Optional

from intake.ingestion.errors import ProductRejected, RejectionReason
from intake.ingestion.walker import FolderGroup
from intake.utils.filename_utils import extract_ordinal

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = "data.json"
PRIMARY_SUFFIX = ".docx"
SOURCE_SUFFIXES = (".pdf", ".eml", ".xlsx")
MESSAGE_SUFFIX = ".eml"


@dataclass
class OrdinalFiles:
    """Everything loaded for one ordinal of a product."""

    source_name: str
    source: bytes
    original_name: Optional[str] = None
    original: Optional[bytes] = None
    message_name: Optional[str] = None
    message: Optional[bytes] = None


@dataclass
class ExtractedProduct:
    archive: str
    folder: str
    manifest_name: str
    manifest: bytes
    primary_name: str
    primary: bytes
    files: dict[int, OrdinalFiles] = field(default_factory=dict)

    @property
    def primary_filename(self) -> str:
        return posixpath.basename(self.primary_name)


def _first(names, predicate):
    matches = [name for name in names if predicate(name.lower())]
    if len(matches) > 1:
        logger.debug(f"Several candidates {matches}, using {matches[0]}")
    return matches[0] if matches else None


def _ordinal_of(name: str) -> int:
    ordinal = extract_ordinal(posixpath.basename(name))
    if ordinal is None or ordinal < 1:
        raise ProductRejected(
            RejectionReason.INVALID_ORDINAL,
            f"File '{posixpath.basename(name)}' does not start with a positive ordinal",
        )
    return ordinal


def _read(group: FolderGroup, name: str) -> bytes:
    try:
        return group.read(name)
    except (zipfile.BadZipFile, zlib.error, OSError, EOFError, RuntimeError) as exc:
        raise ProductRejected(RejectionReason.UNREADABLE_ENTRY, f"Cannot read '{name}': {exc}") from exc


def is_product(group: FolderGroup) -> bool:
    principal = group.principal
    return bool(
        _first(principal, lambda n: n.endswith(MANIFEST_SUFFIX))
        and _first(principal, lambda n: n.endswith(PRIMARY_SUFFIX))
        and any(name.lower().endswith(SOURCE_SUFFIXES) for name in principal)
        and group.originals
    )


def extract(group: FolderGroup) -> Optional[ExtractedProduct]:
    """
    Load one product folder, or return None when the folder is not a product.

    A product holds a manifest (``*data.json``), a primary ``.docx``, at least
    one source document (``.pdf``/``.eml``/``.xlsx``) and at least one file in
    its ``Source`` subfolder. Source documents and originals are keyed by the
    leading integer of their file name.
    """
    if not is_product(group):
        return None

    manifest_name = _first(group.principal, lambda n: n.endswith(MANIFEST_SUFFIX))
    primary_name = _first(group.principal, lambda n: n.endswith(PRIMARY_SUFFIX))

    product = ExtractedProduct(
        archive=group.archive,
        folder=group.folder,
        manifest_name=manifest_name,
        manifest=_read(group, manifest_name),
        primary_name=primary_name,
        primary=_read(group, primary_name),
    )

    for name in group.principal:
        if not name.lower().endswith(SOURCE_SUFFIXES):
            continue
        ordinal = _ordinal_of(name)
        if ordinal in product.files:
            raise ProductRejected(
                RejectionReason.INVALID_ORDINAL,
                f"Ordinal {ordinal} is used by both '{product.files[ordinal].source_name}' and '{name}'",
            )
        product.files[ordinal] = OrdinalFiles(source_name=name, source=_read(group, name))

    for name in group.originals:
        ordinal = extract_ordinal(posixpath.basename(name))
        slot = product.files.get(ordinal) if ordinal is not None else None
        if slot is None:
            logger.warning(f"Original '{name}' has no matching source document, ignoring it")
            continue

        if name.lower().endswith(MESSAGE_SUFFIX):
            slot.message_name = name
            slot.message = _read(group, name)
        else:
            slot.original_name = name
            slot.original = _read(group, name)

    logger.debug(
        f"Extracted product '{group.folder}' ({len(product.files)} source documents) from '{group.archive or '<upload>'}'"
    )
    return product
