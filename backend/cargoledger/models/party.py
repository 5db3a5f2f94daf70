import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from cargoledger.models.base import Base, TimestampMixin, utcnow


class PartyRole(str, enum.Enum):
    SHIPPER = "shipper"
    CONSIGNEE = "consignee"
    NOTIFY_PARTY = "notify_party"
    SENDER = "sender"


class Party(Base, TimestampMixin):
    __tablename__ = "parties"
    __table_args__ = (UniqueConstraint("name", "party_type", name="uq_parties_name_type"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    party_type: Mapped[PartyRole] = mapped_column(
        SAEnum(PartyRole, name="party_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    contact_email: Mapped[str | None] = mapped_column(String(320), unique=True, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(200), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_customer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    customer_relationship: Mapped[str | None] = mapped_column(String(50), nullable=True)
    total_shipments: Mapped[int] = mapped_column(Integer, default=1, nullable=False)


class PartyEmailDomain(Base):
    """A mail domain owned by exactly one party. Domains are only ever added."""

    __tablename__ = "party_email_domains"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    party_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("parties.id"), nullable=False, index=True
    )
    domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
