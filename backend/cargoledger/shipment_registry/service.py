"""ShipmentRegistry: the single place where a booking number becomes one shipment.

Field policy:
- First write wins for every scalar field, unless the input is an amendment
- Container numbers are unioned, never removed
- Party links are filled only while empty
- Email and document links are idempotent upserts
"""

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.config import Settings
from cargoledger.database import insert_or_fetch
from cargoledger.errors import ValidationError
from cargoledger.models.document import Document
from cargoledger.models.shipment import EmailLinkType, Shipment, ShipmentDocument, ShipmentEmail
from cargoledger.schemas.extraction import ExtractedShipmentFields

logger = logging.getLogger("cargoledger.shipment_registry")

SCALAR_FIELDS = (
    "bl_number",
    "carrier_name",
    "carrier_scac",
    "carrier_code",
    "vessel_name",
    "voyage_number",
    "vessel_imo",
    "port_of_loading",
    "port_of_loading_code",
    "port_of_discharge",
    "port_of_discharge_code",
    "place_of_receipt",
    "place_of_delivery",
    "etd",
    "atd",
    "eta",
    "ata",
    "si_cutoff",
    "vgm_cutoff",
    "cargo_cutoff",
    "doc_cutoff",
    "commodity_description",
    "total_weight",
    "weight_unit",
    "total_packages",
    "package_type",
    "total_volume",
)

PARTY_LINKS = ("shipper_id", "consignee_id", "notify_party_id")


@dataclass
class ShipmentLinkage:
    email_id: str | None = None
    thread_id: str | None = None
    email_fingerprint: str | None = None
    document_id: uuid.UUID | None = None
    document_version_id: uuid.UUID | None = None
    document_type: str | None = None
    shipper_id: uuid.UUID | None = None
    consignee_id: uuid.UUID | None = None
    notify_party_id: uuid.UUID | None = None
    direction: str | None = None
    is_amendment: bool = False
    amendment_number: int | None = None


@dataclass
class ShipmentRegistrationResult:
    shipment_id: uuid.UUID
    booking_number: str
    is_new_shipment: bool
    is_amendment: bool
    amendment_number: int
    fields_updated: list[str] = field(default_factory=list)
    linked_email_id: str | None = None
    linked_document_id: uuid.UUID | None = None
    duplicate_of_email_id: str | None = None


def normalize_booking_number(booking_number: str | None) -> str:
    normalized = (booking_number or "").strip().upper()
    if not normalized:
        raise ValidationError("Booking number is required")
    return normalized


def merge_containers(existing: list | None, observed: list[str] | None) -> list[str]:
    """Union of container numbers, first-seen order preserved."""
    merged: list[str] = []
    for number in list(existing or []) + list(observed or []):
        cleaned = "".join(str(number).split()).upper()
        if cleaned and cleaned not in merged:
            merged.append(cleaned)
    return merged


class ShipmentRegistry:
    """Converges document, party and extraction signals onto one shipment."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def register(
        self,
        db: AsyncSession,
        booking_number: str,
        observed: ExtractedShipmentFields | None = None,
        linkage: ShipmentLinkage | None = None,
    ) -> ShipmentRegistrationResult:
        booking = normalize_booking_number(booking_number)
        observed = observed or ExtractedShipmentFields()
        linkage = linkage or ShipmentLinkage()

        lookup = select(Shipment).where(Shipment.booking_number == booking)
        shipment = (await db.execute(lookup)).scalar_one_or_none()
        is_new = False
        if shipment is None:
            shipment, is_new = await insert_or_fetch(
                db,
                Shipment(
                    id=uuid.uuid4(),
                    booking_number=booking,
                    container_numbers=[],
                    amendment_number=0,
                    state_version=0,
                ),
                lookup,
            )

        updated: list[str] = []
        if linkage.is_amendment:
            current = shipment.amendment_number or 0
            shipment.amendment_number = max(current + 1, linkage.amendment_number or 0)
            updated.append("amendment_number")

        for name in SCALAR_FIELDS:
            value = getattr(observed, name)
            if value is None:
                continue
            current = getattr(shipment, name)
            if current is None or (linkage.is_amendment and current != value):
                setattr(shipment, name, value)
                updated.append(name)

        containers = merge_containers(shipment.container_numbers, observed.container_numbers)
        if containers != list(shipment.container_numbers or []):
            shipment.container_numbers = containers
            updated.append("container_numbers")

        for attr in PARTY_LINKS:
            party_id = getattr(linkage, attr)
            if party_id is not None and getattr(shipment, attr) is None:
                setattr(shipment, attr, party_id)
                updated.append(attr)

        await db.flush()

        duplicate_of = await self._find_email_duplicate(db, shipment.id, linkage)
        linked_email = await self._link_email(db, shipment.id, linkage, is_new)
        linked_document = await self._link_document(db, shipment.id, linkage)

        logger.info(
            "Shipment %s (new=%s amendment=%s) updated fields: %s",
            booking, is_new, linkage.is_amendment, ", ".join(updated) or "none",
        )
        return ShipmentRegistrationResult(
            shipment_id=shipment.id,
            booking_number=booking,
            is_new_shipment=is_new,
            is_amendment=linkage.is_amendment,
            amendment_number=shipment.amendment_number,
            fields_updated=updated,
            linked_email_id=linked_email,
            linked_document_id=linked_document,
            duplicate_of_email_id=duplicate_of,
        )

    async def get_shipment(self, db: AsyncSession, shipment_id: uuid.UUID) -> Shipment | None:
        return await db.get(Shipment, shipment_id)

    async def get_by_booking_number(self, db: AsyncSession, booking_number: str) -> Shipment | None:
        booking = (booking_number or "").strip().upper()
        if not booking:
            return None
        return (await db.execute(
            select(Shipment).where(Shipment.booking_number == booking)
        )).scalar_one_or_none()

    async def get_by_bl_number(self, db: AsyncSession, bl_number: str) -> Shipment | None:
        bl = (bl_number or "").strip().upper()
        if not bl:
            return None
        return (await db.execute(
            select(Shipment).where(Shipment.bl_number == bl).limit(1)
        )).scalar_one_or_none()

    async def get_linked_emails(self, db: AsyncSession, shipment_id: uuid.UUID) -> list[ShipmentEmail]:
        rows = await db.execute(
            select(ShipmentEmail)
            .where(ShipmentEmail.shipment_id == shipment_id)
            .order_by(ShipmentEmail.linked_at)
        )
        return list(rows.scalars().all())

    async def get_linked_documents(
        self, db: AsyncSession, shipment_id: uuid.UUID, document_type: str | None = None
    ) -> list[ShipmentDocument]:
        stmt = select(ShipmentDocument).where(ShipmentDocument.shipment_id == shipment_id)
        if document_type:
            stmt = stmt.where(ShipmentDocument.document_type == document_type)
        rows = await db.execute(stmt.order_by(ShipmentDocument.linked_at))
        return list(rows.scalars().all())

    # ── Links ──

    async def _find_email_duplicate(
        self, db: AsyncSession, shipment_id: uuid.UUID, linkage: ShipmentLinkage
    ) -> str | None:
        """Earliest other email on this shipment carrying the same content fingerprint."""
        if not (linkage.email_fingerprint and linkage.email_id):
            return None
        stmt = (
            select(ShipmentEmail.email_id)
            .where(
                ShipmentEmail.shipment_id == shipment_id,
                ShipmentEmail.email_fingerprint == linkage.email_fingerprint,
                ShipmentEmail.email_id != linkage.email_id,
            )
            .order_by(ShipmentEmail.linked_at)
            .limit(1)
        )
        duplicate = (await db.execute(stmt)).scalar_one_or_none()
        if duplicate:
            logger.info(
                "Email %s repeats the content of email %s on shipment %s",
                linkage.email_id, duplicate, shipment_id,
            )
        return duplicate

    async def _link_email(
        self, db: AsyncSession, shipment_id: uuid.UUID, linkage: ShipmentLinkage, is_new: bool
    ) -> str | None:
        if not linkage.email_id:
            return None

        if linkage.is_amendment:
            link_type = EmailLinkType.AMENDMENT
        elif is_new:
            link_type = EmailLinkType.PRIMARY
        else:
            link_type = EmailLinkType.RELATED

        lookup = select(ShipmentEmail).where(
            ShipmentEmail.shipment_id == shipment_id,
            ShipmentEmail.email_id == linkage.email_id,
        )
        link = (await db.execute(lookup)).scalar_one_or_none()
        if link is None:
            link, created = await insert_or_fetch(
                db,
                ShipmentEmail(
                    id=uuid.uuid4(),
                    shipment_id=shipment_id,
                    email_id=linkage.email_id,
                    thread_id=linkage.thread_id,
                    email_fingerprint=linkage.email_fingerprint,
                    link_type=link_type,
                ),
                lookup,
            )
            if created:
                return linkage.email_id

        if link_type == EmailLinkType.AMENDMENT and link.link_type != EmailLinkType.AMENDMENT:
            link.link_type = EmailLinkType.AMENDMENT
        if link.thread_id is None and linkage.thread_id:
            link.thread_id = linkage.thread_id
        if link.email_fingerprint is None and linkage.email_fingerprint:
            link.email_fingerprint = linkage.email_fingerprint
        await db.flush()
        return linkage.email_id

    async def _link_document(
        self, db: AsyncSession, shipment_id: uuid.UUID, linkage: ShipmentLinkage
    ) -> uuid.UUID | None:
        if linkage.document_id is None:
            return None

        document = await db.get(Document, linkage.document_id)
        version_id = linkage.document_version_id
        document_type = linkage.document_type
        if document is not None:
            version_id = document.current_version_id or version_id
            document_type = document.document_type

        lookup = select(ShipmentDocument).where(
            ShipmentDocument.shipment_id == shipment_id,
            ShipmentDocument.document_id == linkage.document_id,
        )
        link = (await db.execute(lookup)).scalar_one_or_none()
        if link is None:
            link, created = await insert_or_fetch(
                db,
                ShipmentDocument(
                    id=uuid.uuid4(),
                    shipment_id=shipment_id,
                    document_id=linkage.document_id,
                    document_version_id=version_id,
                    document_type=document_type,
                ),
                lookup,
            )
            if created:
                return linkage.document_id

        if version_id is not None and link.document_version_id != version_id:
            link.document_version_id = version_id
            await db.flush()
        return linkage.document_id
