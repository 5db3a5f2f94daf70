import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from cargoledger.models.base import Base, TimestampMixin, utcnow


class EmailLinkType(str, enum.Enum):
    PRIMARY = "primary"
    RELATED = "related"
    AMENDMENT = "amendment"


class Shipment(Base, TimestampMixin):
    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    bl_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # Parties
    shipper_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=True
    )
    consignee_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=True
    )
    notify_party_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=True
    )

    # Carrier and vessel
    carrier_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    carrier_scac: Mapped[str | None] = mapped_column(String(10), nullable=True)
    carrier_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    vessel_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    voyage_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vessel_imo: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Route
    port_of_loading: Mapped[str | None] = mapped_column(String(200), nullable=True)
    port_of_loading_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    port_of_discharge: Mapped[str | None] = mapped_column(String(200), nullable=True)
    port_of_discharge_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    place_of_receipt: Mapped[str | None] = mapped_column(String(200), nullable=True)
    place_of_delivery: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Dates
    etd: Mapped[date | None] = mapped_column(Date, nullable=True)
    atd: Mapped[date | None] = mapped_column(Date, nullable=True)
    eta: Mapped[date | None] = mapped_column(Date, nullable=True)
    ata: Mapped[date | None] = mapped_column(Date, nullable=True)
    si_cutoff: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    vgm_cutoff: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cargo_cutoff: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    doc_cutoff: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cargo
    container_numbers: Mapped[list | None] = mapped_column(JSON, nullable=True)
    commodity_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight_unit: Mapped[str | None] = mapped_column(String(10), nullable=True)
    total_packages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    package_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    total_volume: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Amendments and workflow projection
    amendment_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    workflow_state: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    workflow_phase: Mapped[str | None] = mapped_column(String(50), nullable=True)
    workflow_state_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    state_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ShipmentEmail(Base):
    __tablename__ = "shipment_emails"
    __table_args__ = (UniqueConstraint("shipment_id", "email_id", name="uq_shipment_emails"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False, index=True
    )
    email_id: Mapped[str] = mapped_column(String(200), nullable=False)
    thread_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email_fingerprint: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    link_type: Mapped[EmailLinkType] = mapped_column(
        SAEnum(EmailLinkType, name="email_link_type", values_callable=lambda e: [m.value for m in e]),
        default=EmailLinkType.RELATED,
        nullable=False,
    )
    linked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class ShipmentDocument(Base):
    __tablename__ = "shipment_documents"
    __table_args__ = (UniqueConstraint("shipment_id", "document_id", name="uq_shipment_documents"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False, index=True
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    document_version_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    document_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    linked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
