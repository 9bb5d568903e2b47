"""
Record builder.

Maps a validated product onto the rows and files the committer will
persist. Nothing here touches the database or the filesystem.

Layout under the storage root::

    fiches/<source>/<yyyyMMdd>/<yyyyMMdd> - <subject[:20]>/
        <primary>.docx
        <ordinal> - <rendered filename>
        originals/<ordinal> - <original filename>      (only when it differs)
        originals/<ordinal> - <parent message filename>
"""

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Optional

from intake.ingestion.errors import PathCollisionError
from intake.ingestion.extractor import ExtractedProduct, OrdinalFiles
from intake.ingestion.validator import AttachmentEntry, ManifestEntry, MessageEntry, ValidatedProduct
from intake.models import DocumentType
from intake.utils.file_operations import hash_bytes
from intake.utils.filename_utils import sanitize_filename, strip_ordinal

logger = logging.getLogger(__name__)

FICHES_ROOT = "fiches"
ORIGINALS_DIR = "originals"
SUBJECT_LENGTH = 20


@dataclass
class FicheRecord:
    ref: str
    source_id: int
    date: object
    object: str
    summary: str
    path: str
    hash: str
    dump: str


@dataclass
class DocumentRecord:
    type: str
    content: Optional[str]
    meta: Optional[dict]
    dump: dict
    path: str
    hash: str
    original_path: Optional[str] = None
    # Index (in ProductBuild.documents) of the parent message record
    parent_index: Optional[int] = None


@dataclass
class ProductBuild:
    fiche: FicheRecord
    documents: list[DocumentRecord] = field(default_factory=list)
    files: dict[str, bytes] = field(default_factory=dict)

    def add_file(self, path: str, data: bytes) -> None:
        if path in self.files:
            raise PathCollisionError(path)
        self.files[path] = data


def fiche_folder(source_name: str, date, subject: str) -> str:
    day = date.strftime("%Y%m%d")
    subject = sanitize_filename(subject[:SUBJECT_LENGTH], fallback="sans objet")
    return posixpath.join(
        FICHES_ROOT,
        sanitize_filename(source_name, fallback="source"),
        day,
        f"{day} - {subject}",
    )


def make_ref(date, primary_hash: str) -> str:
    return f"FCH-{date.strftime('%Y%m%d')}-{primary_hash[:8].upper()}"


def _numbered(base: str, ordinal: int, filename: str, subdir: Optional[str] = None) -> str:
    name = f"{ordinal} - {sanitize_filename(filename)}"
    return posixpath.join(base, subdir, name) if subdir else posixpath.join(base, name)


def _source_record(
    build: ProductBuild, base: str, entry: ManifestEntry, loaded: OrdinalFiles, meta: Optional[dict]
) -> DocumentRecord:
    path = _numbered(base, entry.ordinal, entry.filename)
    source_hash = hash_bytes(loaded.source)
    build.add_file(path, loaded.source)

    original = loaded.original
    if original is None and isinstance(entry, MessageEntry):
        # A message's as-received form is the .eml in Source
        original = loaded.message

    original_path = None
    if original is not None and hash_bytes(original) != source_hash:
        original_path = _numbered(base, entry.ordinal, entry.original_filename, ORIGINALS_DIR)
        build.add_file(original_path, original)

    return DocumentRecord(
        type=entry.type,
        content=entry.content,
        meta=meta,
        dump={"name": posixpath.basename(loaded.source_name), "path": entry.path},
        path=path,
        hash=source_hash,
        original_path=original_path,
    )


def _parent_record(build: ProductBuild, base: str, entry: AttachmentEntry, loaded: OrdinalFiles) -> DocumentRecord:
    parent = entry.parent
    filename = parent.filename or strip_ordinal(posixpath.basename(loaded.message_name))
    path = _numbered(base, entry.ordinal, filename, ORIGINALS_DIR)
    build.add_file(path, loaded.message)

    return DocumentRecord(
        type=DocumentType.MESSAGE.value,
        content=parent.content,
        meta=parent.as_meta(),
        dump={"name": posixpath.basename(loaded.message_name), "path": entry.path},
        path=path,
        hash=hash_bytes(loaded.message),
    )


def build_records(product: ExtractedProduct, validated: ValidatedProduct) -> ProductBuild:
    base = fiche_folder(validated.source_name, validated.date, validated.subject)
    primary_path = posixpath.join(base, sanitize_filename(product.primary_filename))

    build = ProductBuild(
        fiche=FicheRecord(
            ref=make_ref(validated.date, validated.primary_hash),
            source_id=validated.source_id,
            date=validated.date,
            object=validated.subject,
            summary=validated.summary,
            path=primary_path,
            hash=validated.primary_hash,
            dump=validated.dump,
        )
    )
    build.add_file(primary_path, product.primary)

    for entry in validated.entries:
        loaded = product.files[entry.ordinal]

        if isinstance(entry, AttachmentEntry):
            build.documents.append(_parent_record(build, base, entry, loaded))
            record = _source_record(build, base, entry, loaded, entry.meta)
            record.parent_index = len(build.documents) - 1
        elif isinstance(entry, MessageEntry):
            record = _source_record(build, base, entry, loaded, entry.meta.as_meta())
        else:
            record = _source_record(build, base, entry, loaded, entry.meta)
        build.documents.append(record)

    logger.debug(f"Built fiche {build.fiche.ref}: {len(build.documents)} documents, {len(build.files)} files under {base}")
    return build
