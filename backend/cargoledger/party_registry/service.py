"""PartyRegistry: resolves document parties and email senders to canonical parties.

Matching order:
1. Normalized name + role
2. Contact email
3. Email domain (sender resolution only)

Parties are never deleted. Domains are only added, and a domain belongs to at
most one party.
"""

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.config import Settings
from cargoledger.database import insert_or_fetch
from cargoledger.errors import ValidationError
from cargoledger.models.party import Party, PartyEmailDomain, PartyRole
from cargoledger.party_registry.normalize import (
    email_domain,
    matches_identifier,
    normalize_email,
    normalize_party_name,
)
from cargoledger.schemas.extraction import ExtractedShipmentFields, PartyInfo

logger = logging.getLogger("cargoledger.party_registry")

# Documents the forwarder issues to its own customer. The self organization
# may legitimately be the customer on these.
CUSTOMER_FACING_DOCUMENTS = frozenset({
    "hbl",
    "house_bl",
    "hbl_draft",
    "si_draft",
    "si_final",
    "shipping_instructions",
    "checklist",
})


@dataclass
class PartyResolution:
    party_id: uuid.UUID | None
    is_new: bool = False
    skipped: bool = False
    reason: str | None = None


@dataclass
class DocumentParties:
    resolutions: dict[str, PartyResolution] = field(default_factory=dict)

    def party_id(self, role: str) -> uuid.UUID | None:
        resolution = self.resolutions.get(role)
        return resolution.party_id if resolution else None


def _normalize_source_type(source_type: str | None) -> str:
    return (source_type or "").strip().lower().replace("-", "_")


class PartyRegistry:
    """Canonical party resolution with self-organization exclusion."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.self_identifiers = [s.lower() for s in settings.self_org_identifiers]
        self.self_domains = {d.lower() for d in settings.self_email_domains}
        self.public_domains = {d.lower() for d in settings.public_email_domains}

    def is_self_name(self, name: str | None) -> bool:
        return matches_identifier(name, self.self_identifiers)

    def is_self_domain(self, domain: str | None) -> bool:
        return bool(domain) and domain.lower() in self.self_domains

    def is_customer_facing(self, source_type: str | None) -> bool:
        return _normalize_source_type(source_type) in CUSTOMER_FACING_DOCUMENTS

    async def resolve(
        self,
        db: AsyncSession,
        party_info: PartyInfo,
        role: PartyRole | str,
        source_type: str | None = None,
        shipment_direction: str | None = None,
    ) -> PartyResolution:
        """Find or create the party described on a document."""
        role = PartyRole(role)
        name = normalize_party_name(party_info.name)
        if not name:
            raise ValidationError("Party name is required")

        customer_facing = self.is_customer_facing(source_type)
        if role in (PartyRole.SHIPPER, PartyRole.CONSIGNEE) and self.is_self_name(name) and not customer_facing:
            logger.debug("Skipping self organization as %s on %s", role.value, source_type)
            return PartyResolution(party_id=None, skipped=True, reason="self_organization")

        is_customer = customer_facing and (
            (role == PartyRole.SHIPPER and shipment_direction == "export")
            or (role == PartyRole.CONSIGNEE and shipment_direction == "import")
        )
        relationship = f"{role.value}_customer" if is_customer else None
        contact_email = normalize_email(party_info.email)

        party = await self._find_by_name(db, name, role)
        if party is None and contact_email:
            party = await self._find_by_email(db, contact_email)

        is_new = False
        if party is None:
            candidate = Party(
                id=uuid.uuid4(),
                name=name,
                party_type=role,
                contact_email=contact_email,
                address=party_info.address,
                city=party_info.city,
                country=party_info.country,
                phone=party_info.phone,
                is_customer=is_customer,
                customer_relationship=relationship,
                total_shipments=1,
            )
            lookup = select(Party).where(_identity_clause(name, role, contact_email)).limit(1)
            party, is_new = await insert_or_fetch(db, candidate, lookup)

        if not is_new:
            await self._merge_sighting(db, party, party_info, is_customer, relationship)

        await self._add_domain(db, party.id, email_domain(contact_email))
        await db.flush()

        logger.info("Resolved %s %s -> %s (new=%s)", role.value, name, party.id, is_new)
        return PartyResolution(party_id=party.id, is_new=is_new)

    async def resolve_document_parties(
        self,
        db: AsyncSession,
        fields: ExtractedShipmentFields,
        source_type: str | None,
        shipment_direction: str | None = None,
    ) -> DocumentParties:
        parties = DocumentParties()
        for role in (PartyRole.SHIPPER, PartyRole.CONSIGNEE, PartyRole.NOTIFY_PARTY):
            info: PartyInfo | None = getattr(fields, role.value)
            if info is None:
                continue
            try:
                resolution = await self.resolve(
                    db, info, role, source_type=source_type, shipment_direction=shipment_direction,
                )
            except ValidationError as e:
                # Rejected before any write; the other roles still resolve
                logger.info("Skipping %s on %s: %s", role.value, source_type, e)
                resolution = PartyResolution(party_id=None, skipped=True, reason="invalid_party")
            parties.resolutions[role.value] = resolution
        return parties

    async def resolve_sender(
        self,
        db: AsyncSession,
        email_address: str,
        display_name: str | None = None,
    ) -> PartyResolution:
        """Resolve an email sender by contact email, then by owned domain."""
        address = normalize_email(email_address)
        if not address:
            raise ValidationError(f"Invalid sender address: {email_address!r}")

        domain = email_domain(address)
        if self.is_self_domain(domain):
            return PartyResolution(party_id=None, skipped=True, reason="self_domain")

        party = await self._find_by_email(db, address)
        if party is None and domain and domain not in self.public_domains:
            owner = (await db.execute(
                select(PartyEmailDomain.party_id).where(PartyEmailDomain.domain == domain)
            )).scalar_one_or_none()
            if owner is not None:
                party = await db.get(Party, owner)

        if party is not None:
            return PartyResolution(party_id=party.id)

        name = normalize_party_name(display_name) or address.upper()
        candidate = Party(
            id=uuid.uuid4(),
            name=name,
            party_type=PartyRole.SENDER,
            contact_email=address,
            total_shipments=0,
        )
        lookup = select(Party).where(_identity_clause(name, PartyRole.SENDER, address)).limit(1)
        party, is_new = await insert_or_fetch(db, candidate, lookup)
        await self._add_domain(db, party.id, domain)
        await db.flush()

        logger.info("Resolved sender %s -> %s (new=%s)", address, party.id, is_new)
        return PartyResolution(party_id=party.id, is_new=is_new)

    async def get_party(self, db: AsyncSession, party_id: uuid.UUID) -> Party | None:
        return await db.get(Party, party_id)

    async def get_domains(self, db: AsyncSession, party_id: uuid.UUID) -> list[str]:
        rows = await db.execute(
            select(PartyEmailDomain.domain)
            .where(PartyEmailDomain.party_id == party_id)
            .order_by(PartyEmailDomain.domain)
        )
        return list(rows.scalars().all())

    # ── Internal ──

    async def _find_by_name(self, db: AsyncSession, name: str, role: PartyRole) -> Party | None:
        return (await db.execute(
            select(Party).where(Party.name == name, Party.party_type == role)
        )).scalar_one_or_none()

    async def _find_by_email(self, db: AsyncSession, email: str) -> Party | None:
        return (await db.execute(
            select(Party).where(Party.contact_email == email)
        )).scalar_one_or_none()

    async def _merge_sighting(
        self,
        db: AsyncSession,
        party: Party,
        info: PartyInfo,
        is_customer: bool,
        relationship: str | None,
    ) -> None:
        party.total_shipments = (party.total_shipments or 0) + 1
        if is_customer and not party.is_customer:
            party.is_customer = True
            party.customer_relationship = relationship
        for attr in ("address", "city", "country", "phone"):
            if getattr(party, attr) is None and getattr(info, attr):
                setattr(party, attr, getattr(info, attr))

        email = normalize_email(info.email)
        if email and party.contact_email is None and await self._find_by_email(db, email) is None:
            party.contact_email = email

    async def _add_domain(self, db: AsyncSession, party_id: uuid.UUID, domain: str | None) -> bool:
        """Attach a domain to a party. Returns False if it is unusable or owned elsewhere."""
        if not domain or domain in self.public_domains or self.is_self_domain(domain):
            return False
        lookup = select(PartyEmailDomain).where(PartyEmailDomain.domain == domain)
        existing = (await db.execute(lookup)).scalar_one_or_none()
        if existing is None:
            existing, _ = await insert_or_fetch(
                db, PartyEmailDomain(id=uuid.uuid4(), party_id=party_id, domain=domain), lookup
            )
        if existing.party_id != party_id:
            logger.info("Domain %s already belongs to party %s", domain, existing.party_id)
            return False
        return True


def _identity_clause(name: str, role: PartyRole, email: str | None):
    by_name = (Party.name == name) & (Party.party_type == role)
    if email:
        return or_(by_name, Party.contact_email == email)
    return by_name
