"""Tests for intake/ingestion/manifest.py and intake/ingestion/validator.py."""

import json

import pytest

from intake.ingestion.errors import ProductRejected, RejectionReason
from intake.ingestion.extractor import ExtractedProduct, OrdinalFiles
from intake.ingestion.manifest import parse_manifest
from intake.ingestion.validator import AttachmentEntry, MessageEntry, PlainEntry, validate_product
from intake.utils.file_operations import hash_bytes
from tests.conftest import MESSAGE_BYTES, PRIMARY_BYTES


def _product(manifest, ordinals=(1,), message=MESSAGE_BYTES, raw=None):
    files = {
        n: OrdinalFiles(
            source_name=f"f/{n}-doc.pdf",
            source=f"doc {n}".encode(),
            original_name=f"f/Source/{n}-doc.pdf",
            original=f"doc {n}".encode(),
            message_name=f"f/Source/{n}-mail.eml" if message is not None else None,
            message=message,
        )
        for n in ordinals
    }
    return ExtractedProduct(
        archive="",
        folder="f",
        manifest_name="f/data.json",
        manifest=raw if raw is not None else json.dumps(manifest).encode("utf-8"),
        primary_name="f/report.docx",
        primary=PRIMARY_BYTES,
        files=files,
    )


def _validate(product, known=("ARCHIVES",), existing=()):
    sources = {name: i + 1 for i, name in enumerate(known)}
    return validate_product(
        product,
        fiche_exists=lambda h: h in existing,
        resolve_source=sources.get,
    )


def _reason(product, **kwargs):
    with pytest.raises(ProductRejected) as exc_info:
        _validate(product, **kwargs)
    return exc_info.value.reason


@pytest.mark.unit
class TestParseManifest:
    """Schema-level checks of data.json."""

    def test_valid_manifest(self, manifests):
        manifest = parse_manifest(manifests.manifest())

        assert manifest.index == "DUMP-2024-001"
        assert manifest.subject == "Contrat de bail commercial"
        assert manifest.date_generate.year == 2024
        assert manifest.source.name == "ARCHIVES"
        assert manifest.files[0].name.filename == "report.pdf"

    def test_integer_index_is_accepted(self, manifests):
        assert parse_manifest(manifests.manifest(index=42)).index == "42"

    def test_not_an_object(self):
        with pytest.raises(ProductRejected) as exc_info:
            parse_manifest(["a", "list"])
        assert exc_info.value.reason == RejectionReason.MANIFEST_UNREADABLE

    @pytest.mark.parametrize("field", ["index", "summary", "object", "date_generate", "source", "files"])
    def test_missing_top_level_field(self, manifests, field):
        raw = manifests.manifest()
        del raw[field]

        with pytest.raises(ProductRejected) as exc_info:
            parse_manifest(raw)

        assert exc_info.value.reason == RejectionReason.MISSING_FIELD

    def test_blank_field_counts_as_missing(self, manifests):
        with pytest.raises(ProductRejected) as exc_info:
            parse_manifest(manifests.manifest(summary="   "))
        assert exc_info.value.reason == RejectionReason.MISSING_FIELD

    def test_unparseable_date(self, manifests):
        with pytest.raises(ProductRejected) as exc_info:
            parse_manifest(manifests.manifest(date_generate="le premier mars"))
        assert exc_info.value.reason == RejectionReason.INVALID_DATE

    def test_wrong_type(self, manifests):
        with pytest.raises(ProductRejected) as exc_info:
            parse_manifest(manifests.manifest(files="report.pdf"))
        assert exc_info.value.reason == RejectionReason.INVALID_FIELD


@pytest.mark.unit
class TestValidateProduct:
    """Cross-checks between the manifest and the loaded files."""

    def test_attachment_product(self, manifests):
        validated = _validate(_product(manifests.manifest()))

        assert validated.dump == "DUMP-2024-001"
        assert validated.source_id == 1
        assert validated.source_name == "ARCHIVES"
        assert validated.primary_hash == hash_bytes(PRIMARY_BYTES)
        (entry,) = validated.entries
        assert isinstance(entry, AttachmentEntry)
        assert entry.ordinal == 1
        assert entry.parent.filename == "message.eml"
        assert entry.parent.sender == "agence@example.fr"

    def test_message_product(self, manifests):
        validated = _validate(_product(manifests.manifest(files=[manifests.message()]), message=None))

        (entry,) = validated.entries
        assert isinstance(entry, MessageEntry)
        assert entry.meta.as_meta() == {
            "from": "agence@example.fr",
            "to": ["locataire@example.fr", "garant@example.fr"],
            "date": "2024-03-02T10:00:00+01:00",
            "object": "Relance loyer",
        }

    def test_other_type_is_plain(self, manifests):
        other = {"type": "Note", "name": {"filename": "n.pdf"}, "original": {"filename": "n.pdf"}}
        validated = _validate(_product(manifests.manifest(files=[other])))

        assert isinstance(validated.entries[0], PlainEntry)

    def test_mixed_entries_keep_declaration_order(self, manifests):
        files = [manifests.message(), manifests.attachment()]

        validated = _validate(_product(manifests.manifest(files=files), ordinals=(1, 2)))

        assert [type(e) for e in validated.entries] == [MessageEntry, AttachmentEntry]
        assert [e.ordinal for e in validated.entries] == [1, 2]

    def test_invalid_json(self, manifests):
        assert _reason(_product(None, raw=b"{not json")) == RejectionReason.MANIFEST_UNREADABLE

    def test_utf8_bom_is_accepted(self, manifests):
        raw = b"\xef\xbb\xbf" + json.dumps(manifests.manifest()).encode("utf-8")
        assert _validate(_product(None, raw=raw)).dump == "DUMP-2024-001"

    def test_file_count_mismatch(self, manifests):
        product = _product(manifests.manifest(), ordinals=(1, 2))
        assert _reason(product) == RejectionReason.FILE_COUNT_MISMATCH

    def test_ordinal_gap(self, manifests):
        files = [manifests.attachment(), manifests.attachment()]
        product = _product(manifests.manifest(files=files), ordinals=(1, 3))

        with pytest.raises(ProductRejected) as exc_info:
            _validate(product)

        assert exc_info.value.reason == RejectionReason.MISSING_SOURCE_DOCUMENT
        assert "2" in exc_info.value.detail

    def test_message_without_meta(self, manifests):
        message = manifests.message()
        del message["meta"]
        product = _product(manifests.manifest(files=[message]))
        assert _reason(product) == RejectionReason.INVALID_MESSAGE_META

    def test_message_with_empty_recipients(self, manifests):
        message = manifests.message()
        message["meta"]["to"] = []
        product = _product(manifests.manifest(files=[message]))
        assert _reason(product) == RejectionReason.INVALID_MESSAGE_META

    def test_attachment_without_parent(self, manifests):
        attachment = manifests.attachment()
        del attachment["parent"]
        product = _product(manifests.manifest(files=[attachment]))
        assert _reason(product) == RejectionReason.INVALID_PARENT_META

    def test_attachment_with_incomplete_parent(self, manifests):
        attachment = manifests.attachment(parent=manifests.parent(**{"from": ""}))
        product = _product(manifests.manifest(files=[attachment]))
        assert _reason(product) == RejectionReason.INVALID_PARENT_META

    def test_attachment_without_eml(self, manifests):
        product = _product(manifests.manifest(), message=None)
        assert _reason(product) == RejectionReason.MISSING_PARENT_MESSAGE

    def test_unknown_source(self, manifests):
        product = _product(manifests.manifest(source={"name": "ELSEWHERE"}))
        assert _reason(product) == RejectionReason.UNKNOWN_SOURCE

    def test_duplicate_primary(self, manifests):
        product = _product(manifests.manifest())
        assert _reason(product, existing={hash_bytes(PRIMARY_BYTES)}) == RejectionReason.DUPLICATE_CONTENT

    def test_first_failing_check_wins(self, manifests):
        # Count mismatch is checked before the source lookup and the duplicate check
        product = _product(manifests.manifest(source={"name": "ELSEWHERE"}), ordinals=(1, 2))
        reason = _reason(product, existing={hash_bytes(PRIMARY_BYTES)})
        assert reason == RejectionReason.FILE_COUNT_MISMATCH
