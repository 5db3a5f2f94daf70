"""Pydantic schemas for document reconciliation and the submission gate."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from cargoledger.models.reconciliation import ReconciliationStatus


class FieldComparison(BaseModel):
    field_name: str
    field_label: str
    source_value: object = None
    comparison_value: object = None
    matches: bool
    severity: str
    comparison_type: str
    message: str | None = None


class ReconciliationRecordResponse(BaseModel):
    id: uuid.UUID
    shipment_id: uuid.UUID
    source_document_type: str
    comparison_document_type: str
    source_document_id: uuid.UUID | None = None
    comparison_document_id: uuid.UUID | None = None
    field_comparisons: list[FieldComparison] = Field(default_factory=list)
    total_fields: int = 0
    matching_fields: int = 0
    discrepancy_count: int = 0
    critical_discrepancies: int = 0
    warning_discrepancies: int = 0
    can_proceed: bool
    block_reason: str | None = None
    status: ReconciliationStatus
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ReconciliationListResponse(BaseModel):
    records: list[ReconciliationRecordResponse]
    total: int


class ResolveRequest(BaseModel):
    resolved_by: str
    notes: str | None = None


class GateResponse(BaseModel):
    shipment_id: uuid.UUID
    can_proceed: bool
    status: str
    blockers: list[str] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)
    record_ids: dict[str, uuid.UUID] = Field(default_factory=dict)
