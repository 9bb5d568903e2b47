"""
Pytest configuration and shared fixtures for fiche-intake tests.
"""

import io
import json
import os
import tempfile
import zipfile
from typing import Callable, Dict, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing intake
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["FILE_STORAGE_PATH"] = tempfile.gettempdir()
os.environ["LOG_LEVEL"] = "DEBUG"

from intake.database import Base  # noqa: E402
from intake.models import Source, User  # noqa: E402
from intake.storage import FileStorage  # noqa: E402

PRIMARY_BYTES = b"PK\x03\x04 fiche report docx"
ATTACHMENT_BYTES = b"%PDF-1.4 signed lease"
MESSAGE_BYTES = b"From: agence@example.fr\r\nTo: locataire@example.fr\r\nSubject: Bail\r\n\r\nCi-joint le bail."


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def storage(tmp_path) -> FileStorage:
    """Storage rooted in a per-test temporary directory."""
    root = tmp_path / "storage"
    root.mkdir()
    return FileStorage(root)


@pytest.fixture
def user(db_session) -> User:
    user = User(username="admin", role="admin")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def source(db_session) -> Source:
    source = Source(name="ARCHIVES")
    db_session.add(source)
    db_session.commit()
    return source


def _zip_bytes(entries: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def make_zip() -> Callable[[Dict[str, bytes]], bytes]:
    """Build an in-memory ZIP from {entry name: bytes}."""
    return _zip_bytes


def _parent_block(**overrides) -> dict:
    block = {
        "from": "agence@example.fr",
        "to": ["locataire@example.fr"],
        "date": "2024-03-01T09:30:00+01:00",
        "object": "Bail",
        "filename": "message.eml",
        "content": "Ci-joint le bail.",
    }
    block.update(overrides)
    return block


def _attachment_file(**overrides) -> dict:
    entry = {
        "type": "Attachment",
        "name": {"filename": "report.pdf"},
        "original": {"filename": "report.pdf"},
        "content": "Bail signé",
        "path": "INBOX/42",
        "parent": _parent_block(),
    }
    entry.update(overrides)
    return entry


def _message_file(**overrides) -> dict:
    entry = {
        "type": "Message",
        "name": {"filename": "courrier.pdf"},
        "original": {"filename": "courrier.eml"},
        "content": "Relance",
        "path": "INBOX/43",
        "meta": {
            "from": "agence@example.fr",
            "to": ["locataire@example.fr", "garant@example.fr"],
            "date": "2024-03-02T10:00:00+01:00",
            "object": "Relance loyer",
        },
    }
    entry.update(overrides)
    return entry


def _manifest(files=None, **overrides) -> dict:
    manifest = {
        "index": "DUMP-2024-001",
        "summary": "Signature du bail",
        "object": "Contrat de bail commercial",
        "date_generate": "2024-03-01T10:00:00Z",
        "source": {"name": "ARCHIVES"},
        "files": files if files is not None else [_attachment_file()],
    }
    manifest.update(overrides)
    return manifest


class ManifestFactory:
    """Builders for manifest dicts; every builder takes field overrides."""

    manifest = staticmethod(_manifest)
    attachment = staticmethod(_attachment_file)
    message = staticmethod(_message_file)
    parent = staticmethod(_parent_block)


@pytest.fixture
def manifests() -> ManifestFactory:
    return ManifestFactory()


def _product_entries(
    folder: str = "dump/Fiche 1",
    manifest: Optional[dict] = None,
    primary: bytes = PRIMARY_BYTES,
    source: bytes = ATTACHMENT_BYTES,
    original: Optional[bytes] = None,
    message: Optional[bytes] = MESSAGE_BYTES,
) -> Dict[str, bytes]:
    """
    Archive entries of one attachment product:

        <folder>/data.json, <folder>/report.docx, <folder>/1-report.pdf,
        <folder>/Source/1-report.pdf, <folder>/Source/1-message.eml
    """
    prefix = f"{folder}/" if folder else ""
    entries = {
        f"{prefix}data.json": json.dumps(manifest if manifest is not None else _manifest()).encode("utf-8"),
        f"{prefix}report.docx": primary,
        f"{prefix}1-report.pdf": source,
        f"{prefix}Source/1-report.pdf": original if original is not None else source,
    }
    if message is not None:
        entries[f"{prefix}Source/1-message.eml"] = message
    return entries


@pytest.fixture
def product_entries() -> Callable[..., Dict[str, bytes]]:
    return _product_entries


@pytest.fixture
def ingest(db_session, storage, user) -> Callable[..., int]:
    """Register an archive as a pending upload owned by the test user."""
    from intake.ingestion.uploads import ingest_file

    def _ingest(data: bytes, file_name: str = "dump.zip") -> int:
        return ingest_file(db_session, storage, data, name=file_name, file_name=file_name, user_id=user.id)

    return _ingest


# Markers for categorizing tests
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual functions/methods")
    config.addinivalue_line("markers", "integration: Integration tests across the ingestion pipeline")
    config.addinivalue_line("markers", "requires_db: Tests requiring database")
