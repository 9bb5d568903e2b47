import hashlib
from pathlib import Path

CHUNK_SIZE = 65536


def hash_file(filepath: str | Path, chunk_size: int = CHUNK_SIZE) -> str:
    """
    Returns the SHA-256 hash of the file at 'filepath'.
    Reads the file in chunks to handle large files efficiently.
    """
    sha256 = hashlib.sha256()
    with open(filepath, "rb") as f:
        while True:
            data = f.read(chunk_size)
            if not data:
                break
            sha256.update(data)
    return sha256.hexdigest()


def hash_bytes(data: bytes) -> str:
    """
    Returns the SHA-256 hash of an in-memory buffer.
    Same digest as hash_file, used for uploads, fiches and originals alike.
    """
    return hashlib.sha256(data).hexdigest()
