import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from cargoledger.models.party import PartyRole


class PartyResponse(BaseModel):
    id: uuid.UUID
    name: str
    party_type: PartyRole
    contact_email: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None
    phone: str | None = None
    is_customer: bool = False
    customer_relationship: str | None = None
    total_shipments: int = 0
    email_domains: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
