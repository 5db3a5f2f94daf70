"""Pydantic schemas for shipments and their links."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field

from cargoledger.models.shipment import EmailLinkType


class ShipmentEmailResponse(BaseModel):
    email_id: str
    thread_id: str | None = None
    email_fingerprint: str | None = None
    link_type: EmailLinkType
    linked_at: datetime | None = None

    model_config = {"from_attributes": True}


class ShipmentDocumentResponse(BaseModel):
    document_id: uuid.UUID
    document_version_id: uuid.UUID | None = None
    document_type: str | None = None
    linked_at: datetime | None = None

    model_config = {"from_attributes": True}


class ShipmentDetail(BaseModel):
    id: uuid.UUID
    booking_number: str
    bl_number: str | None = None

    shipper_id: uuid.UUID | None = None
    consignee_id: uuid.UUID | None = None
    notify_party_id: uuid.UUID | None = None

    carrier_name: str | None = None
    carrier_scac: str | None = None
    carrier_code: str | None = None
    vessel_name: str | None = None
    voyage_number: str | None = None
    vessel_imo: str | None = None

    port_of_loading: str | None = None
    port_of_loading_code: str | None = None
    port_of_discharge: str | None = None
    port_of_discharge_code: str | None = None
    place_of_receipt: str | None = None
    place_of_delivery: str | None = None

    etd: date | None = None
    atd: date | None = None
    eta: date | None = None
    ata: date | None = None
    si_cutoff: datetime | None = None
    vgm_cutoff: datetime | None = None
    cargo_cutoff: datetime | None = None
    doc_cutoff: datetime | None = None

    container_numbers: list[str] = Field(default_factory=list)
    commodity_description: str | None = None
    total_weight: float | None = None
    weight_unit: str | None = None
    total_packages: int | None = None
    package_type: str | None = None
    total_volume: float | None = None

    amendment_number: int = 0
    workflow_state: str | None = None
    workflow_phase: str | None = None
    workflow_state_updated_at: datetime | None = None

    emails: list[ShipmentEmailResponse] = Field(default_factory=list)
    documents: list[ShipmentDocumentResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
