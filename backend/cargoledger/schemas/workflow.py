"""Pydantic schemas for workflow state and its history."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class WorkflowStateInfo(BaseModel):
    key: str
    label: str
    order: int
    phase: str


class StateTransitionResponse(BaseModel):
    id: uuid.UUID
    previous_state: str | None = None
    new_state: str
    document_type: str | None = None
    direction: str | None = None
    email_id: str | None = None
    document_id: uuid.UUID | None = None
    attachment_id: str | None = None
    reason: str | None = None
    actor: str | None = None
    transitioned_at: datetime

    model_config = {"from_attributes": True}


class WorkflowResponse(BaseModel):
    shipment_id: uuid.UUID
    current_state: WorkflowStateInfo | None = None
    available_transitions: list[WorkflowStateInfo] = Field(default_factory=list)
    history: list[StateTransitionResponse] = Field(default_factory=list)


class WorkflowOverrideRequest(BaseModel):
    new_state: str
    reason: str
    actor: str | None = None


class TransitionResponse(BaseModel):
    shipment_id: uuid.UUID
    previous_state: str | None = None
    new_state: str | None = None
    transition_recorded: bool
    history_id: uuid.UUID | None = None
    reason: str | None = None

    model_config = {"from_attributes": True}
