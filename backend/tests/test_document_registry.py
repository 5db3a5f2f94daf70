"""Tests for the document registry: identity, versions and idempotency."""

import pytest
from sqlalchemy import func, select

from cargoledger.document_registry.service import (
    AttachmentRegistration,
    DocumentRegistry,
    derive_references,
)
from cargoledger.models.document import ContentFingerprint, Document, DocumentVersion, VersionStatus


def make_registration(**overrides) -> AttachmentRegistration:
    values = dict(
        source_email_id="email-1",
        attachment_id="att-1",
        filename="BC_87654321.pdf",
        extracted_text="BOOKING CONFIRMATION\nBooking No: 87654321\nVessel: MAERSK KOLKATA",
        document_type="booking_confirmation",
        classification_confidence=0.95,
    )
    values.update(overrides)
    return AttachmentRegistration(**values)


# ── Reference derivation (pure) ──


class TestDeriveReferences:
    def test_upstream_reference_wins(self):
        refs = derive_references(make_registration(primary_reference=" abc123 "))
        assert refs.primary_reference == "ABC123"
        assert refs.match_method == "upstream"
        assert refs.confidence == 0.95

    def test_filename_reference(self):
        refs = derive_references(make_registration())
        assert refs.primary_reference == "87654321"
        assert refs.match_method == "filename"
        assert refs.confidence == 0.9

    def test_labelled_content_reference(self):
        refs = derive_references(make_registration(
            filename="confirmation.pdf", extracted_text="Booking No: HLX998877",
        ))
        assert refs.primary_reference == "HLX998877"
        assert refs.match_method == "content_label"

    def test_type_from_filename_when_unclassified(self):
        refs = derive_references(make_registration(document_type=None, filename="CHECKLIST 87654321.pdf"))
        assert refs.document_type == "checklist"

    def test_secondary_reference(self):
        refs = derive_references(make_registration(extracted_text="Your Reference: PO-4411"))
        assert refs.secondary_reference == "PO-4411"

    def test_no_reference(self):
        refs = derive_references(make_registration(filename="scan.pdf", extracted_text="illegible"))
        assert refs.primary_reference is None


# ── Registration (DB) ──


@pytest.mark.asyncio
async def test_first_registration_creates_document_and_version(db_session, settings):
    registry = DocumentRegistry(settings)
    result = await registry.register_attachment(db_session, make_registration())

    assert result.is_new_document is True
    assert result.is_new_version is True
    assert result.is_duplicate is False
    assert result.document_type == "booking_confirmation"
    assert result.primary_reference == "87654321"

    document = await registry.get_document(db_session, result.document_id)
    await db_session.refresh(document)
    assert document.current_version_id == result.version_id
    assert document.version_count == 1
    version = await db_session.get(DocumentVersion, result.version_id)
    assert version.version_number == 1
    assert version.first_seen_email_id == "email-1"


@pytest.mark.asyncio
async def test_same_content_is_idempotent(db_session, settings):
    """Registering identical content twice yields one version and a duplicate flag."""
    registry = DocumentRegistry(settings)
    first = await registry.register_attachment(db_session, make_registration())
    second = await registry.register_attachment(
        db_session, make_registration(source_email_id="email-2", attachment_id="att-2"),
    )

    assert second.document_id == first.document_id
    assert second.version_id == first.version_id
    assert second.is_duplicate is True
    assert second.is_new_document is False

    versions = (await db_session.execute(select(func.count(DocumentVersion.id)))).scalar_one()
    assert versions == 1
    fingerprints = (await db_session.execute(select(func.count(ContentFingerprint.id)))).scalar_one()
    assert fingerprints == 2


@pytest.mark.asyncio
async def test_replaying_same_email_does_not_duplicate_fingerprint(db_session, settings):
    registry = DocumentRegistry(settings)
    await registry.register_attachment(db_session, make_registration())
    await registry.register_attachment(db_session, make_registration())

    fingerprints = (await db_session.execute(select(func.count(ContentFingerprint.id)))).scalar_one()
    assert fingerprints == 1


@pytest.mark.asyncio
async def test_new_content_creates_superseding_version(db_session, settings):
    registry = DocumentRegistry(settings)
    v1 = await registry.register_attachment(db_session, make_registration())
    v2 = await registry.register_attachment(db_session, make_registration(
        source_email_id="email-2",
        filename="BC_87654321 2ND UPDATE.pdf",
        extracted_text="BOOKING CONFIRMATION\nBooking No: 87654321\nVessel: MAERSK KINLOSS",
    ))
    v3 = await registry.register_attachment(db_session, make_registration(
        source_email_id="email-3",
        extracted_text="BOOKING CONFIRMATION\nBooking No: 87654321\nVessel: MAERSK KENSINGTON",
    ))

    assert v1.document_id == v2.document_id == v3.document_id
    document, versions = await registry.get_document_with_versions(db_session, v1.document_id)
    await db_session.refresh(document)
    assert [v.version_number for v in versions] == [1, 2, 3]
    assert versions[1].supersedes_version_id == versions[0].id
    assert versions[2].supersedes_version_id == versions[1].id
    assert versions[0].status == VersionStatus.SUPERSEDED
    assert versions[1].version_label == "2nd Update"
    assert versions[2].version_label == "Version 3"
    assert document.current_version_id == v3.version_id
    assert document.version_count == 3


@pytest.mark.asyncio
async def test_replaying_older_content_keeps_pointer(db_session, settings):
    registry = DocumentRegistry(settings)
    await registry.register_attachment(db_session, make_registration())
    latest = await registry.register_attachment(db_session, make_registration(
        source_email_id="email-2", extracted_text="Booking No: 87654321 amended",
    ))
    replay = await registry.register_attachment(db_session, make_registration(source_email_id="email-3"))

    assert replay.is_duplicate is True
    document = await registry.get_document(db_session, latest.document_id)
    await db_session.refresh(document)
    assert document.current_version_id == latest.version_id


@pytest.mark.asyncio
async def test_same_reference_different_type_is_separate_document(db_session, settings):
    registry = DocumentRegistry(settings)
    bc = await registry.register_attachment(db_session, make_registration())
    si = await registry.register_attachment(db_session, make_registration(
        document_type="si_draft",
        filename="SI 87654321.pdf",
        extracted_text="SHIPPING INSTRUCTIONS 87654321",
    ))

    assert bc.document_id != si.document_id
    assert si.document_type == "shipping_instructions"
    documents = (await db_session.execute(select(func.count(Document.id)))).scalar_one()
    assert documents == 2


@pytest.mark.asyncio
async def test_identical_content_different_reference_is_not_duplicate(db_session, settings):
    """Same bytes under two booking references are two documents, each with its own first version."""
    registry = DocumentRegistry(settings)
    payload = b"%PDF-1.4 carrier template with no booking-specific content"
    first = await registry.register_attachment(db_session, make_registration(
        content=payload, primary_reference="87654321",
    ))
    second = await registry.register_attachment(db_session, make_registration(
        source_email_id="email-2", attachment_id="att-2", filename="BC_87654322.pdf",
        content=payload, primary_reference="87654322",
    ))

    assert first.content_hash == second.content_hash
    assert second.document_id != first.document_id
    assert second.is_new_document is True
    assert second.is_new_version is True
    assert second.is_duplicate is False
    versions = (await db_session.execute(select(func.count(DocumentVersion.id)))).scalar_one()
    assert versions == 2


@pytest.mark.asyncio
async def test_no_reference_records_fingerprint_only(db_session, settings):
    registry = DocumentRegistry(settings)
    result = await registry.register_attachment(db_session, make_registration(
        filename="scan.pdf", extracted_text="illegible", document_type=None,
    ))

    assert result.document_id is None
    assert result.version_id is None
    check = await registry.check_duplicate(db_session, result.content_hash)
    assert check.is_duplicate is True
    assert check.existing_version_id is None


@pytest.mark.asyncio
async def test_extracted_fields_filled_on_duplicate(db_session, settings):
    registry = DocumentRegistry(settings)
    first = await registry.register_attachment(db_session, make_registration())
    await registry.register_attachment(db_session, make_registration(
        source_email_id="email-2", extracted_fields={"booking_number": "87654321"},
    ))

    version = await db_session.get(DocumentVersion, first.version_id)
    assert version.extracted_fields == {"booking_number": "87654321"}


@pytest.mark.asyncio
async def test_check_duplicate_unknown_hash(db_session, settings):
    registry = DocumentRegistry(settings)
    check = await registry.check_duplicate(db_session, "0" * 64)
    assert check.is_duplicate is False
