"""
Wire schema of the ``data.json`` manifest shipped with every product.

Example::

    {
      "index": "DUMP-2024-001",
      "summary": "...",
      "object": "Contrat de bail",
      "date_generate": "2024-03-01T10:00:00Z",
      "source": {"name": "ARCHIVES"},
      "files": [
        {
          "type": "Attachment",
          "name": {"filename": "bail.pdf"},
          "original": {"filename": "bail.pdf"},
          "content": "...",
          "path": "INBOX/42",
          "parent": {"from": "a@x.fr", "to": ["b@x.fr"], "date": "...",
                     "object": "Bail", "filename": "mail.eml", "content": "..."}
        }
      ]
    }
"""

from datetime import datetime
from typing import Annotated, Any, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from intake.ingestion.errors import ProductRejected, RejectionReason

NonEmptyStr = Annotated[str, Field(min_length=1)]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class FileName(_WireModel):
    filename: NonEmptyStr


class SourceRef(_WireModel):
    name: NonEmptyStr


class MessageMeta(_WireModel):
    sender: NonEmptyStr = Field(alias="from")
    recipients: list[NonEmptyStr] = Field(alias="to", min_length=1)
    date: NonEmptyStr
    subject: NonEmptyStr = Field(alias="object")

    def as_meta(self) -> dict:
        return self.model_dump(by_alias=True, include={"sender", "recipients", "date", "subject"})


class ParentMessage(MessageMeta):
    filename: Optional[str] = None
    content: Optional[str] = None


class ManifestFile(_WireModel):
    type: NonEmptyStr
    name: FileName
    original: FileName
    content: Optional[str] = None
    path: Optional[str] = None

    # Shapes depend on "type", checked by the validator
    meta: Optional[Any] = None
    parent: Optional[Any] = None


class Manifest(_WireModel):
    index: NonEmptyStr
    source: SourceRef
    summary: NonEmptyStr
    subject: NonEmptyStr = Field(alias="object")
    date_generate: datetime
    files: list[ManifestFile]

    @field_validator("index", mode="before")
    @classmethod
    def coerce_index(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("date_generate", mode="before")
    @classmethod
    def parse_date_generate(cls, v):
        if isinstance(v, str):
            try:
                return date_parser.parse(v)
            except OverflowError as exc:
                raise ValueError(f"date out of range: {v}") from exc
        return v


def _location(loc) -> str:
    return ".".join(str(part) for part in loc)


def rejection_from_error(exc: ValidationError, reason: Optional[RejectionReason] = None, prefix: str = "") -> ProductRejected:
    """
    Turn the first pydantic error into a ProductRejected.

    When ``reason`` is given it is used as is (variant blocks report one
    reason whatever the field); otherwise the reason follows the error type.
    """
    error = exc.errors()[0]
    where = _location((prefix,) + tuple(error["loc"]) if prefix else error["loc"])

    if reason is not None:
        return ProductRejected(reason, f"'{where}': {error['msg']}")
    if error["type"] == "missing":
        return ProductRejected(RejectionReason.MISSING_FIELD, f"Missing field '{where}'")
    if error["loc"] and error["loc"][0] == "date_generate":
        return ProductRejected(RejectionReason.INVALID_DATE, f"Field 'date_generate' is not a valid date: {error['msg']}")
    if error["type"] == "string_too_short":
        return ProductRejected(RejectionReason.MISSING_FIELD, f"Field '{where}' is empty")
    return ProductRejected(RejectionReason.INVALID_FIELD, f"Invalid field '{where}': {error['msg']}")


def parse_manifest(raw) -> Manifest:
    if not isinstance(raw, dict):
        raise ProductRejected(RejectionReason.MANIFEST_UNREADABLE, "Manifest is not a JSON object")
    try:
        return Manifest.model_validate(raw)
    except ValidationError as exc:
        raise rejection_from_error(exc) from exc
