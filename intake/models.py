# intake/models.py
#!/usr/bin/env python3

import enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from intake.database import Base


class UploadType(str, enum.Enum):
    FILE = "file"
    API = "api"
    FORM = "form"


class UploadStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentType(str, enum.Enum):
    MESSAGE = "Message"
    ATTACHMENT = "Attachment"


class OutcomeStatus(str, enum.Enum):
    COMMITTED = "committed"
    SKIPPED = "skipped"
    REJECTED = "rejected"
    FAILED = "failed"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False)
    role = Column(String, nullable=False, default="user")  # superAdmin / admin / user


class Source(Base):
    __tablename__ = "sources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)

    fiches = relationship("Fiche", back_populates="source")


class Upload(Base):
    __tablename__ = "uploads"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    date = Column(DateTime(timezone=True), server_default=func.now())
    type = Column(String, nullable=False, default=UploadType.FILE.value)

    # The name of the archive as it was submitted
    file_name = Column(String, nullable=False)

    # Relative to the storage root, e.g. uploads/<hash>.zip
    path = Column(String, unique=True, nullable=False)

    # SHA-256 of the archive bytes, dedup key
    hash = Column(String, unique=True, index=True, nullable=False)

    status = Column(String, nullable=False, default=UploadStatus.PENDING.value, index=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    processor_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    creator = relationship("User", foreign_keys=[user_id])
    processor = relationship("User", foreign_keys=[processor_id])
    fiches = relationship("Fiche", back_populates="upload", cascade="all, delete-orphan")
    outcomes = relationship("ProcessingOutcome", back_populates="upload", cascade="all, delete-orphan")


class Fiche(Base):
    __tablename__ = "fiches"

    id = Column(Integer, primary_key=True, index=True)
    ref = Column(String, unique=True, index=True, nullable=False)
    source_id = Column(Integer, ForeignKey("sources.id"), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    object = Column(String, nullable=False)
    summary = Column(Text, nullable=False)

    # Primary .docx document, relative to the storage root
    path = Column(String, unique=True, nullable=False)

    # SHA-256 of the primary document; a second ingestion of the same document is refused
    hash = Column(String, unique=True, index=True, nullable=False)

    # Manifest "index" the fiche was produced from
    dump = Column(String, nullable=False)

    upload_id = Column(Integer, ForeignKey("uploads.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    source = relationship("Source", back_populates="fiches")
    upload = relationship("Upload", back_populates="fiches")
    documents = relationship(
        "Document",
        back_populates="fiche",
        cascade="all, delete-orphan",
        order_by="Document.id",
    )


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    fiche_id = Column(Integer, ForeignKey("fiches.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    content = Column(Text, nullable=True)

    # {"from": ..., "to": [...], "date": ..., "object": ...} for messages
    meta = Column(JSON, nullable=True)

    # {"name": ..., "path": ...} provenance inside the dump
    dump = Column(JSON, nullable=True)

    path = Column(String, unique=True, nullable=False)

    # Only set when the as-received original differs from the stored rendition
    original_path = Column(String, unique=True, nullable=True)

    hash = Column(String, nullable=False, index=True)

    # Parent message of an attachment
    message_id = Column(Integer, ForeignKey("documents.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    fiche = relationship("Fiche", back_populates="documents")
    message = relationship("Document", remote_side=[id], backref="attachments")


class ProcessingOutcome(Base):
    """One row per product folder attempted during a processing run."""

    __tablename__ = "processing_outcomes"

    id = Column(Integer, primary_key=True, index=True)
    upload_id = Column(Integer, ForeignKey("uploads.id"), nullable=False, index=True)

    # Chain of nested archive entries leading to the folder, "" for the uploaded archive itself
    archive = Column(String, nullable=False, default="")
    folder = Column(String, nullable=False)

    status = Column(String, nullable=False)  # committed / skipped / rejected / failed
    reason = Column(String, nullable=True)  # RejectionReason code
    detail = Column(Text, nullable=True)
    fiche_id = Column(Integer, ForeignKey("fiches.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    upload = relationship("Upload", back_populates="outcomes")
