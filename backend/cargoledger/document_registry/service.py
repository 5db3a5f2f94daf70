"""DocumentRegistry: tracks unique business documents and their content versions.

Flow for one attachment:
1. Derive document type, reference, carrier and version label
2. Find or create the Document by (type, reference)
3. Find or create the DocumentVersion by (document, content hash)
4. Advance the document's current-version pointer
5. Record the attachment fingerprint against the version

Write order is version -> document pointer -> fingerprint link. Each write is
idempotent, so an interrupted unit can be replayed and converges.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.config import Settings
from cargoledger.database import insert_or_fetch
from cargoledger.document_registry.fingerprint import compute_content_fingerprint
from cargoledger.document_registry.patterns import (
    FILENAME_REFERENCE_RULES,
    LABELLED_REFERENCE_RULES,
    SECONDARY_REFERENCE_RULES,
    classify_by_filename,
    detect_carrier,
    extract_version_label,
    first_match,
    map_document_type,
    version_status_for_label,
)
from cargoledger.errors import TransientStoreError
from cargoledger.models.base import utcnow
from cargoledger.models.document import ContentFingerprint, Document, DocumentVersion, VersionStatus

logger = logging.getLogger("cargoledger.document_registry")

VERSION_ALLOCATION_ATTEMPTS = 3


@dataclass
class AttachmentRegistration:
    """One attachment as seen by the registry."""

    source_email_id: str
    attachment_id: str | None = None
    filename: str | None = None
    extracted_text: str | None = None
    content: bytes | str | None = None
    content_hash: str | None = None
    document_type: str | None = None
    classification_confidence: float | None = None
    primary_reference: str | None = None
    secondary_reference: str | None = None
    received_at: datetime | None = None
    extracted_fields: dict | None = None


@dataclass
class DerivedReferences:
    document_type: str
    primary_reference: str | None
    secondary_reference: str | None
    carrier_code: str | None
    version_label: str | None
    confidence: float
    match_method: str | None


@dataclass
class DocumentRegistrationResult:
    document_id: uuid.UUID | None
    version_id: uuid.UUID | None
    is_new_document: bool
    is_new_version: bool
    is_duplicate: bool
    content_hash: str
    document_type: str | None = None
    primary_reference: str | None = None


@dataclass
class DuplicateCheck:
    is_duplicate: bool
    existing_version_id: uuid.UUID | None = None
    existing_document_id: uuid.UUID | None = None


def derive_references(reg: AttachmentRegistration) -> DerivedReferences:
    """Resolve type, reference and version label from upstream hints, filename and text."""
    document_type = map_document_type(reg.document_type) if reg.document_type else None
    if not document_type or document_type == "other":
        document_type = classify_by_filename(reg.filename)

    carrier_code = detect_carrier(reg.filename, reg.extracted_text)
    primary = (reg.primary_reference or "").strip().upper() or None
    confidence = reg.classification_confidence if reg.classification_confidence is not None else 1.0
    method = "upstream" if primary else None

    if not primary:
        m = first_match(FILENAME_REFERENCE_RULES, reg.filename)
        if m:
            primary, confidence, method = m.value, 0.9, "filename"
            carrier_code = carrier_code or m.rule.carrier
    if not primary:
        m = first_match(LABELLED_REFERENCE_RULES, reg.extracted_text)
        if m:
            primary, confidence, method = m.value, 0.8, "content_label"
    if not primary:
        m = first_match(FILENAME_REFERENCE_RULES, reg.extracted_text)
        if m:
            primary, confidence, method = m.value, 0.7, "content"
            carrier_code = carrier_code or m.rule.carrier

    secondary = (reg.secondary_reference or "").strip().upper() or None
    if not secondary:
        m = first_match(SECONDARY_REFERENCE_RULES, reg.extracted_text)
        secondary = m.value if m else None
    if secondary == primary:
        secondary = None

    return DerivedReferences(
        document_type=document_type,
        primary_reference=primary,
        secondary_reference=secondary,
        carrier_code=carrier_code,
        version_label=extract_version_label(reg.filename, reg.extracted_text),
        confidence=confidence,
        match_method=method,
    )


class DocumentRegistry:
    """Content-addressed registry of documents and versions."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def register_attachment(
        self, db: AsyncSession, reg: AttachmentRegistration
    ) -> DocumentRegistrationResult:
        if reg.content_hash:
            content_hash = reg.content_hash
        else:
            source = reg.content if reg.content is not None else (reg.extracted_text or "")
            content_hash = compute_content_fingerprint(source)

        refs = derive_references(reg)

        if not refs.primary_reference:
            # No reference: only the fingerprint is indexed
            await self._record_fingerprint(db, content_hash, reg, None, None, None)
            logger.info(
                "No reference derivable for attachment %s (email %s), fingerprint only",
                reg.attachment_id, reg.source_email_id,
            )
            return DocumentRegistrationResult(
                document_id=None,
                version_id=None,
                is_new_document=False,
                is_new_version=False,
                is_duplicate=False,
                content_hash=content_hash,
                document_type=refs.document_type,
            )

        document, is_new_document = await self._find_or_create_document(db, refs)
        version, is_new_version = await self._find_or_create_version(
            db, document, content_hash, refs, reg
        )
        await self._advance_pointer(db, document.id, version)
        await self._record_fingerprint(
            db, content_hash, reg, version.id, refs.confidence, refs.match_method
        )

        logger.info(
            "Registered %s %s v%d (new_doc=%s new_version=%s)",
            refs.document_type, refs.primary_reference, version.version_number,
            is_new_document, is_new_version,
        )
        return DocumentRegistrationResult(
            document_id=document.id,
            version_id=version.id,
            is_new_document=is_new_document,
            is_new_version=is_new_version,
            is_duplicate=not is_new_version,
            content_hash=content_hash,
            document_type=refs.document_type,
            primary_reference=refs.primary_reference,
        )

    async def check_duplicate(self, db: AsyncSession, content_hash: str) -> DuplicateCheck:
        """Global lookup of a content hash across all documents."""
        version = (await db.execute(
            select(DocumentVersion).where(DocumentVersion.content_hash == content_hash).limit(1)
        )).scalar_one_or_none()
        if version:
            return DuplicateCheck(True, version.id, version.document_id)

        seen = (await db.execute(
            select(ContentFingerprint.id).where(ContentFingerprint.content_hash == content_hash).limit(1)
        )).scalar_one_or_none()
        return DuplicateCheck(is_duplicate=seen is not None)

    async def get_document(self, db: AsyncSession, document_id: uuid.UUID) -> Document | None:
        return await db.get(Document, document_id)

    async def get_document_with_versions(
        self, db: AsyncSession, document_id: uuid.UUID
    ) -> tuple[Document, list[DocumentVersion]] | None:
        document = await db.get(Document, document_id)
        if document is None:
            return None
        versions = (await db.execute(
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version_number)
        )).scalars().all()
        return document, list(versions)

    async def get_latest_version(
        self, db: AsyncSession, document_id: uuid.UUID
    ) -> DocumentVersion | None:
        return (await db.execute(
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version_number.desc())
            .limit(1)
        )).scalar_one_or_none()

    # ── Internal writes ──

    async def _find_or_create_document(
        self, db: AsyncSession, refs: DerivedReferences
    ) -> tuple[Document, bool]:
        lookup = select(Document).where(
            Document.document_type == refs.document_type,
            Document.primary_reference == refs.primary_reference,
        )
        existing = (await db.execute(lookup)).scalar_one_or_none()
        if existing:
            return existing, False

        document = Document(
            id=uuid.uuid4(),
            document_type=refs.document_type,
            primary_reference=refs.primary_reference,
            secondary_reference=refs.secondary_reference,
            carrier_code=refs.carrier_code,
            version_count=0,
        )
        return await insert_or_fetch(db, document, lookup)

    async def _find_or_create_version(
        self,
        db: AsyncSession,
        document: Document,
        content_hash: str,
        refs: DerivedReferences,
        reg: AttachmentRegistration,
    ) -> tuple[DocumentVersion, bool]:
        by_hash = select(DocumentVersion).where(
            DocumentVersion.document_id == document.id,
            DocumentVersion.content_hash == content_hash,
        )

        for attempt in range(VERSION_ALLOCATION_ATTEMPTS):
            existing = (await db.execute(by_hash)).scalar_one_or_none()
            if existing:
                if existing.extracted_fields is None and reg.extracted_fields:
                    existing.extracted_fields = reg.extracted_fields
                    await db.flush()
                return existing, False

            latest = await self.get_latest_version(db, document.id)
            number = (latest.version_number if latest else 0) + 1
            label = refs.version_label or f"Version {number}"
            version = DocumentVersion(
                id=uuid.uuid4(),
                document_id=document.id,
                version_number=number,
                version_label=label,
                status=VersionStatus(version_status_for_label(refs.version_label)),
                content_hash=content_hash,
                supersedes_version_id=latest.id if latest else None,
                filename=reg.filename,
                classification_confidence=reg.classification_confidence,
                extracted_fields=reg.extracted_fields,
                first_seen_email_id=reg.source_email_id,
                first_seen_attachment_id=reg.attachment_id,
                first_seen_at=reg.received_at or utcnow(),
            )
            try:
                async with db.begin_nested():
                    db.add(version)
            except IntegrityError:
                # Same hash or same number claimed by a concurrent unit
                logger.info(
                    "Version allocation conflict on document %s (attempt %d)",
                    document.id, attempt + 1,
                )
                continue

            if latest is not None and latest.status != VersionStatus.SUPERSEDED:
                latest.status = VersionStatus.SUPERSEDED
                await db.flush()
            return version, True

        raise TransientStoreError(f"Could not allocate a version for document {document.id}")

    async def _advance_pointer(
        self, db: AsyncSession, document_id: uuid.UUID, version: DocumentVersion
    ) -> None:
        """Move the current-version pointer forward. Never moves it backward."""
        latest = await self.get_latest_version(db, document_id)
        target = latest or version
        await db.execute(
            update(Document)
            .where(Document.id == document_id, Document.version_count < target.version_number)
            .values(current_version_id=target.id, version_count=target.version_number)
        )

    async def _record_fingerprint(
        self,
        db: AsyncSession,
        content_hash: str,
        reg: AttachmentRegistration,
        version_id: uuid.UUID | None,
        confidence: float | None,
        method: str | None,
    ) -> ContentFingerprint:
        lookup = select(ContentFingerprint).where(
            ContentFingerprint.content_hash == content_hash,
            ContentFingerprint.source_email_id == reg.source_email_id,
        )
        fingerprint = (await db.execute(lookup)).scalar_one_or_none()
        if fingerprint is None:
            fingerprint, _ = await insert_or_fetch(
                db,
                ContentFingerprint(
                    id=uuid.uuid4(),
                    content_hash=content_hash,
                    source_email_id=reg.source_email_id,
                    attachment_id=reg.attachment_id,
                    document_version_id=version_id,
                    match_confidence=confidence,
                    match_method=method,
                ),
                lookup,
            )
        if version_id is not None and fingerprint.document_version_id is None:
            fingerprint.document_version_id = version_id
            fingerprint.match_confidence = confidence
            fingerprint.match_method = method
            await db.flush()
        return fingerprint
