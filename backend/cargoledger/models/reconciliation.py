"""ORM models for document reconciliation records and field definitions."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from cargoledger.models.base import Base, TimestampMixin


class ReconciliationStatus(str, enum.Enum):
    MATCHED = "matched"
    DISCREPANCIES_FOUND = "discrepancies_found"
    BLOCKED = "blocked"
    RESOLVED = "resolved"


class ReconciliationRecord(Base, TimestampMixin):
    __tablename__ = "reconciliation_records"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False, index=True
    )
    source_document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    comparison_document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_document_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    comparison_document_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    field_comparisons: Mapped[list | None] = mapped_column(JSON, nullable=True)
    total_fields: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    matching_fields: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    discrepancy_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    critical_discrepancies: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    warning_discrepancies: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    can_proceed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    block_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ReconciliationStatus] = mapped_column(
        SAEnum(
            ReconciliationStatus,
            name="reconciliation_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )

    resolved_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class ReconciliationFieldDefinition(Base, TimestampMixin):
    __tablename__ = "reconciliation_fields"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    field_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    field_label: Mapped[str] = mapped_column(String(200), nullable=False)
    comparison_type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    applies_to: Mapped[list | None] = mapped_column(JSON, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
