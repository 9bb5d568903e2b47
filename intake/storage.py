#!/usr/bin/env python3
"""
Blob storage rooted at a configured directory.

Every path handled here is relative to the storage root and uses forward
slashes, the same form that is stored in the ``path`` columns. Paths that
would resolve outside the root are refused.
"""

import logging
import os
import posixpath
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


class StoragePathError(ValueError):
    """A relative path escapes the storage root or is not relative."""


class FileStorage:
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def __repr__(self) -> str:
        return f"FileStorage(root={str(self.root)!r})"

    def resolve(self, relative_path: str) -> Path:
        """Map a stored relative path onto the filesystem."""
        posix = PurePosixPath(relative_path)
        if not relative_path or posix.is_absolute() or ".." in posix.parts:
            raise StoragePathError(f"Invalid storage path: {relative_path!r}")

        target = (self.root / Path(*posix.parts)).resolve()
        if not target.is_relative_to(self.root):
            raise StoragePathError(f"Path escapes storage root: {relative_path!r}")
        return target

    def exists(self, relative_path: str) -> bool:
        return self.resolve(relative_path).exists()

    def mkdir(self, relative_path: str) -> Path:
        """Create a directory and its parents; a no-op if it already exists."""
        target = self.resolve(relative_path)
        target.mkdir(parents=True, exist_ok=True)
        return target

    def write_file(self, relative_path: str, data: bytes) -> Path:
        """
        Write bytes to a new file, creating parent directories.

        Raises FileExistsError instead of overwriting an existing file.
        """
        target = self.resolve(relative_path)
        parent = posixpath.dirname(relative_path)
        if parent:
            self.mkdir(parent)
        with open(target, "xb") as f:
            f.write(data)
        logger.debug(f"Wrote {len(data)} bytes to {relative_path}")
        return target

    def read_file(self, relative_path: str) -> bytes:
        return self.resolve(relative_path).read_bytes()

    def remove(self, relative_path: str) -> bool:
        """Delete one file. Returns False when it was already gone."""
        target = self.resolve(relative_path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        return True

    def prune_empty_dirs(self, relative_path: str) -> None:
        """
        Remove empty parent directories of a deleted file, up to the root.

        For fiches/SRC/20240101/20240101 - Subject/doc.docx this tries
        "20240101 - Subject", then "20240101", then "SRC", then "fiches",
        and stops at the first non-empty directory.
        """
        parent_dir = self.resolve(relative_path).parent

        while parent_dir != self.root and parent_dir.is_relative_to(self.root):
            try:
                if parent_dir.is_dir() and not os.listdir(parent_dir):
                    parent_dir.rmdir()
                else:
                    break
            except OSError:
                # Permission error or dir filled concurrently, stop
                break
            parent_dir = parent_dir.parent
