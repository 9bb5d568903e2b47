"""
Archive walker.

Opens an uploaded ZIP, groups its entries by folder and yields one
:class:`FolderGroup` per folder. ZIP entries found among a folder's direct
files are nested archives: they are read and queued on a worklist, then
walked once the current archive is exhausted. Nothing recurses, so depth is
bounded by ``max_depth`` and the caller can stop between any two items.
"""

import io
import logging
import posixpath
import zipfile
import zlib
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Iterator, Union

from intake.ingestion.errors import ArchiveOpenError, RejectionReason

logger = logging.getLogger(__name__)

ORIGINALS_DIR = "Source"
NESTED_ARCHIVE_SUFFIX = ".zip"
IGNORED_PREFIXES = ("__MACOSX/",)

# Separates nested archive entries in an archive label: "a/b.zip!/c/d.zip"
ARCHIVE_SEPARATOR = "!/"


@dataclass
class FolderGroup:
    """
    The files of one folder: direct entries and the entries of its Source subfolder.

    Entries can be read until the walk moves past the archive holding them.
    """

    archive: str
    folder: str
    principal: list[str]
    originals: list[str]
    zip_file: zipfile.ZipFile = field(repr=False)
    members: dict[str, zipfile.ZipInfo] = field(repr=False, default_factory=dict)

    def read(self, name: str) -> bytes:
        """Load one entry fully into memory, by its normalized name."""
        return self.zip_file.read(self.members[name])


@dataclass(frozen=True)
class ArchiveFailure:
    """A nested archive that could not be walked."""

    archive: str
    reason: RejectionReason
    detail: str


WalkItem = Union[FolderGroup, ArchiveFailure]


def _normalize(name: str) -> str:
    return name.replace("\\", "/").lstrip("/")


def _is_ignored(name: str) -> bool:
    base = posixpath.basename(name)
    return name.startswith(IGNORED_PREFIXES) or base == ".DS_Store"


def _index_members(zip_file: zipfile.ZipFile) -> dict[str, zipfile.ZipInfo]:
    members = {}
    for info in zip_file.infolist():
        if info.is_dir():
            continue
        name = _normalize(info.filename)
        if not name or name.endswith("/") or _is_ignored(name):
            continue
        members[name] = info
    return members


def group_entries(names) -> dict[str, tuple[list[str], list[str]]]:
    """
    Group file entry names by their parent folder.

    Returns ``{folder: (principal, originals)}`` where ``principal`` are the
    entries directly inside ``folder`` and ``originals`` the entries directly
    inside ``folder/Source``. Folders and entries are sorted so a given
    archive layout always produces the same order.
    """
    by_folder = defaultdict(list)
    for name in names:
        by_folder[posixpath.dirname(name)].append(name)

    groups = {}
    for folder in sorted(by_folder):
        originals_folder = posixpath.join(folder, ORIGINALS_DIR) if folder else ORIGINALS_DIR
        groups[folder] = (sorted(by_folder[folder]), sorted(by_folder.get(originals_folder, [])))
    return groups


def _label(parent: str, entry: str) -> str:
    return f"{parent}{ARCHIVE_SEPARATOR}{entry}" if parent else entry


def walk(data: bytes, max_depth: int = 5) -> Iterator[WalkItem]:
    """
    Walk an archive and every archive nested in it.

    Raises ArchiveOpenError (fatal) only when the top-level buffer is not a
    readable ZIP; nested archives that fail are yielded as ArchiveFailure.
    """
    worklist = deque([(data, "", 0)])

    while worklist:
        buffer, label, depth = worklist.popleft()

        try:
            zip_file = zipfile.ZipFile(io.BytesIO(buffer))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as exc:
            if not label:
                raise ArchiveOpenError(f"Cannot open archive: {exc}") from exc
            logger.warning(f"Skipping nested archive {label}: {exc}")
            yield ArchiveFailure(label, RejectionReason.UNREADABLE_ARCHIVE, f"Cannot open nested archive: {exc}")
            continue

        members = _index_members(zip_file)
        groups = group_entries(members)
        logger.info(f"Walking archive '{label or '<upload>'}': {len(members)} files in {len(groups)} folders")

        try:
            for folder, (principal, originals) in groups.items():
                yield FolderGroup(
                    archive=label,
                    folder=folder,
                    principal=principal,
                    originals=originals,
                    zip_file=zip_file,
                    members=members,
                )

                for name in principal:
                    if not name.lower().endswith(NESTED_ARCHIVE_SUFFIX):
                        continue
                    nested_label = _label(label, name)
                    if depth + 1 > max_depth:
                        logger.warning(f"Not unpacking {nested_label}: nesting deeper than {max_depth}")
                        yield ArchiveFailure(
                            nested_label,
                            RejectionReason.ARCHIVE_TOO_DEEP,
                            f"Archive nesting exceeds the limit of {max_depth}",
                        )
                        continue
                    try:
                        nested = zip_file.read(members[name])
                    except (zipfile.BadZipFile, zlib.error, OSError, EOFError, RuntimeError) as exc:
                        logger.warning(f"Cannot read nested archive {nested_label}: {exc}")
                        yield ArchiveFailure(
                            nested_label, RejectionReason.UNREADABLE_ENTRY, f"Cannot read nested archive: {exc}"
                        )
                        continue
                    worklist.append((nested, nested_label, depth + 1))
        finally:
            zip_file.close()
