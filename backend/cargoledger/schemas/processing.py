"""Request and response schemas for running a processing unit."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from cargoledger.schemas.extraction import ExtractedShipmentFields


class EmailInput(BaseModel):
    email_id: str = Field(..., min_length=1)
    sender: str = Field(..., description="Raw From header, e.g. 'Maersk via Ops <ops@intoglo.com>'")
    sender_name: str | None = None
    subject: str | None = None
    thread_id: str | None = None
    declared_direction: str | None = Field(None, pattern="^(inbound|outbound)$")
    email_type: str | None = Field(None, description="Upstream email classification label")
    body: str | None = Field(None, description="Plain-text body; fingerprinted to spot repeated emails")
    received_at: datetime | None = None


class AttachmentInputSchema(BaseModel):
    attachment_id: str = Field(..., min_length=1)
    filename: str | None = None
    text: str | None = None
    content_hash: str | None = None
    mime_type: str | None = None
    document_type: str | None = None
    classification_confidence: float | None = Field(None, ge=0, le=1)
    primary_reference: str | None = None


class ProcessingUnitRequest(BaseModel):
    email: EmailInput
    attachment: AttachmentInputSchema | None = None
    fields: ExtractedShipmentFields | None = None
    candidates: dict[str, Any] | None = Field(
        None, description="Raw extraction map of field -> {value, confidence}; used when fields is absent",
    )
    is_amendment: bool = False
    amendment_number: int | None = Field(None, ge=0)


class StepErrorResponse(BaseModel):
    step: str
    error_type: str
    message: str
    retryable: bool

    model_config = {"from_attributes": True}


class ProcessingResponse(BaseModel):
    success: bool
    direction: str | None = None
    shipment_direction: str | None = None
    document_id: uuid.UUID | None = None
    document_version_id: uuid.UUID | None = None
    is_duplicate: bool = False
    shipment_id: uuid.UUID | None = None
    booking_number: str | None = None
    workflow_state: str | None = None
    transition_recorded: bool = False
    email_fingerprint: str | None = None
    duplicate_of_email_id: str | None = None
    party_ids: dict[str, uuid.UUID] = Field(default_factory=dict)
    sender_party_id: uuid.UUID | None = None
    reconciliation_ids: list[uuid.UUID] = Field(default_factory=list)
    errors: list[StepErrorResponse] = Field(default_factory=list)


class BackfillRequest(BaseModel):
    units: list[ProcessingUnitRequest] = Field(..., min_length=1, max_length=500)
