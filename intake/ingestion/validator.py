"""
Manifest validator.

Cross-checks a product's manifest against the files that were actually
loaded, and turns every declared file into an explicit variant
(:class:`MessageEntry`, :class:`AttachmentEntry` or :class:`PlainEntry`).
The first violation raises :class:`ProductRejected`.

The only lookups are injected as callables so the validator stays free of
any session or storage handling:

* ``fiche_exists(hash) -> bool`` - is this primary document already a fiche?
* ``resolve_source(name) -> Optional[int]`` - id of the declared source.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from pydantic import ValidationError

from intake.ingestion.errors import ProductRejected, RejectionReason
from intake.ingestion.extractor import ExtractedProduct, OrdinalFiles
from intake.ingestion.manifest import (
    Manifest,
    ManifestFile,
    MessageMeta,
    ParentMessage,
    parse_manifest,
    rejection_from_error,
)
from intake.models import DocumentType
from intake.utils.file_operations import hash_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    ordinal: int
    type: str
    filename: str
    original_filename: str
    content: Optional[str]
    path: Optional[str]


@dataclass(frozen=True)
class PlainEntry(_Entry):
    meta: Optional[dict] = None


@dataclass(frozen=True)
class MessageEntry(_Entry):
    meta: MessageMeta = None


@dataclass(frozen=True)
class AttachmentEntry(_Entry):
    parent: ParentMessage = None
    meta: Optional[dict] = None


ManifestEntry = Union[PlainEntry, MessageEntry, AttachmentEntry]


@dataclass(frozen=True)
class ValidatedProduct:
    dump: str
    source_id: int
    source_name: str
    summary: str
    subject: str
    date: datetime
    primary_hash: str
    entries: tuple[ManifestEntry, ...]


def _load_json(raw: bytes):
    try:
        return json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProductRejected(RejectionReason.MANIFEST_UNREADABLE, f"Manifest is not valid JSON: {exc}") from exc


def _entry(index: int, declared: ManifestFile, loaded: OrdinalFiles) -> ManifestEntry:
    ordinal = index + 1
    common = dict(
        ordinal=ordinal,
        type=declared.type,
        filename=declared.name.filename,
        original_filename=declared.original.filename,
        content=declared.content,
        path=declared.path,
    )

    if declared.type == DocumentType.MESSAGE.value:
        if declared.meta is None:
            raise ProductRejected(RejectionReason.INVALID_MESSAGE_META, f"'files.{index}.meta' is missing")
        try:
            meta = MessageMeta.model_validate(declared.meta)
        except ValidationError as exc:
            raise rejection_from_error(exc, RejectionReason.INVALID_MESSAGE_META, f"files.{index}.meta") from exc
        return MessageEntry(meta=meta, **common)

    if declared.type == DocumentType.ATTACHMENT.value:
        if declared.parent is None:
            raise ProductRejected(RejectionReason.INVALID_PARENT_META, f"'files.{index}.parent' is missing")
        try:
            parent = ParentMessage.model_validate(declared.parent)
        except ValidationError as exc:
            raise rejection_from_error(exc, RejectionReason.INVALID_PARENT_META, f"files.{index}.parent") from exc
        if loaded.message is None:
            raise ProductRejected(
                RejectionReason.MISSING_PARENT_MESSAGE,
                f"Attachment '{declared.name.filename}' (ordinal {ordinal}) has no .eml parent message in Source",
            )
        meta = declared.meta if isinstance(declared.meta, dict) else None
        return AttachmentEntry(parent=parent, meta=meta, **common)

    meta = declared.meta if isinstance(declared.meta, dict) else None
    return PlainEntry(meta=meta, **common)


def validate_product(
    product: ExtractedProduct,
    *,
    fiche_exists: Callable[[str], bool],
    resolve_source: Callable[[str], Optional[int]],
) -> ValidatedProduct:
    manifest: Manifest = parse_manifest(_load_json(product.manifest))

    declared = len(manifest.files)
    loaded = len(product.files)
    if declared != loaded:
        raise ProductRejected(
            RejectionReason.FILE_COUNT_MISMATCH,
            f"Manifest declares {declared} file(s) but {loaded} source document(s) were found",
        )

    missing = [ordinal for ordinal in range(1, declared + 1) if ordinal not in product.files]
    if missing:
        raise ProductRejected(
            RejectionReason.MISSING_SOURCE_DOCUMENT,
            f"No source document for ordinal(s) {', '.join(str(o) for o in missing)}",
        )

    entries = tuple(_entry(index, file, product.files[index + 1]) for index, file in enumerate(manifest.files))

    source_id = resolve_source(manifest.source.name)
    if source_id is None:
        raise ProductRejected(RejectionReason.UNKNOWN_SOURCE, f"Unknown source '{manifest.source.name}'")

    primary_hash = hash_bytes(product.primary)
    if fiche_exists(primary_hash):
        raise ProductRejected(
            RejectionReason.DUPLICATE_CONTENT,
            f"'{product.primary_filename}' was already ingested (hash={primary_hash[:10]}...)",
        )

    return ValidatedProduct(
        dump=manifest.index,
        source_id=source_id,
        source_name=manifest.source.name,
        summary=manifest.summary,
        subject=manifest.subject,
        date=manifest.date_generate,
        primary_hash=primary_hash,
        entries=entries,
    )
