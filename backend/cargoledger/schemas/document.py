"""Pydantic schemas for the document registry."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from cargoledger.models.document import VersionStatus


class DocumentVersionResponse(BaseModel):
    id: uuid.UUID
    version_number: int
    version_label: str | None = None
    status: VersionStatus
    content_hash: str
    supersedes_version_id: uuid.UUID | None = None
    filename: str | None = None
    classification_confidence: float | None = None
    extracted_fields: dict | None = None
    first_seen_email_id: str | None = None
    first_seen_attachment_id: str | None = None
    first_seen_at: datetime | None = None

    model_config = {"from_attributes": True}


class DocumentDetail(BaseModel):
    id: uuid.UUID
    document_type: str
    primary_reference: str
    secondary_reference: str | None = None
    carrier_code: str | None = None
    current_version_id: uuid.UUID | None = None
    version_count: int
    versions: list[DocumentVersionResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
