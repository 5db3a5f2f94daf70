import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from cargoledger.models.base import Base, TimestampMixin, utcnow


class VersionStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    AMENDED = "amended"
    FINAL = "final"
    SUPERSEDED = "superseded"


class Document(Base, TimestampMixin):
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("document_type", "primary_reference", name="uq_documents_type_reference"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    primary_reference: Mapped[str] = mapped_column(String(200), nullable=False)
    secondary_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    carrier_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # Plain column, not a FK: documents and versions reference each other.
    current_version_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    version_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class DocumentVersion(Base):
    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "content_hash", name="uq_document_versions_hash"),
        UniqueConstraint("document_id", "version_number", name="uq_document_versions_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False, index=True
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    version_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[VersionStatus] = mapped_column(
        SAEnum(VersionStatus, name="version_status", values_callable=lambda e: [m.value for m in e]),
        default=VersionStatus.DRAFT,
        nullable=False,
    )
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    supersedes_version_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("document_versions.id"), nullable=True
    )
    filename: Mapped[str | None] = mapped_column(String(512), nullable=True)
    classification_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    extracted_fields: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    first_seen_email_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    first_seen_attachment_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class ContentFingerprint(Base):
    """Hash index of every registered attachment, with or without a document."""

    __tablename__ = "content_fingerprints"
    __table_args__ = (
        UniqueConstraint("content_hash", "source_email_id", name="uq_content_fingerprints_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_email_id: Mapped[str] = mapped_column(String(200), nullable=False)
    attachment_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    document_version_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("document_versions.id"), nullable=True
    )
    match_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    match_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
