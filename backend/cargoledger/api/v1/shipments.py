"""Shipment endpoints: detail, booking lookup, workflow state and reconciliation."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.dependencies import (
    get_db,
    get_reconciliation_engine,
    get_shipment_registry,
    get_workflow_registry,
)
from cargoledger.models.shipment import Shipment
from cargoledger.reconciliation_engine.service import ReconciliationEngine
from cargoledger.schemas.reconciliation import (
    GateResponse,
    ReconciliationListResponse,
    ReconciliationRecordResponse,
)
from cargoledger.schemas.shipment import (
    ShipmentDetail,
    ShipmentDocumentResponse,
    ShipmentEmailResponse,
)
from cargoledger.schemas.workflow import (
    StateTransitionResponse,
    TransitionResponse,
    WorkflowOverrideRequest,
    WorkflowResponse,
    WorkflowStateInfo,
)
from cargoledger.shipment_registry.service import ShipmentRegistry
from cargoledger.workflow_state.service import WorkflowStateRegistry
from cargoledger.workflow_state.states import WorkflowStateDefinition

router = APIRouter()


@router.get("/by-booking/{booking_number}", response_model=ShipmentDetail)
async def get_shipment_by_booking(
    booking_number: str,
    db: AsyncSession = Depends(get_db),
    registry: ShipmentRegistry = Depends(get_shipment_registry),
) -> ShipmentDetail:
    shipment = await registry.get_by_booking_number(db, booking_number)
    if shipment is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    return await _shipment_detail(db, registry, shipment)


@router.get("/{shipment_id}", response_model=ShipmentDetail)
async def get_shipment(
    shipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    registry: ShipmentRegistry = Depends(get_shipment_registry),
) -> ShipmentDetail:
    shipment = await registry.get_shipment(db, shipment_id)
    if shipment is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    return await _shipment_detail(db, registry, shipment)


@router.get("/{shipment_id}/workflow", response_model=WorkflowResponse)
async def get_workflow(
    shipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    workflow: WorkflowStateRegistry = Depends(get_workflow_registry),
) -> WorkflowResponse:
    """Current workflow state, the states still reachable, and the full transition log."""
    current = await workflow.get_current_state(db, shipment_id)
    history = await workflow.get_state_history(db, shipment_id)
    return WorkflowResponse(
        shipment_id=shipment_id,
        current_state=_state_info(current) if current else None,
        available_transitions=[
            _state_info(s) for s in workflow.get_available_transitions(current.key if current else None)
        ],
        history=[StateTransitionResponse.model_validate(h) for h in history],
    )


@router.post("/{shipment_id}/workflow/override", response_model=TransitionResponse)
async def override_workflow_state(
    shipment_id: uuid.UUID,
    request: WorkflowOverrideRequest,
    db: AsyncSession = Depends(get_db),
    workflow: WorkflowStateRegistry = Depends(get_workflow_registry),
) -> TransitionResponse:
    result = await workflow.set_state_manually(
        db, shipment_id, request.new_state, request.reason, actor=request.actor,
    )
    return TransitionResponse.model_validate(result)


@router.get("/{shipment_id}/reconciliation", response_model=ReconciliationListResponse)
async def list_reconciliation_records(
    shipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> ReconciliationListResponse:
    records = await engine.get_records(db, shipment_id)
    return ReconciliationListResponse(
        records=[ReconciliationRecordResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get("/{shipment_id}/reconciliation/gate", response_model=GateResponse)
async def get_reconciliation_gate(
    shipment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> GateResponse:
    """Whether the shipment may proceed to submission."""
    decision = await engine.can_proceed(db, shipment_id)
    return GateResponse(
        shipment_id=shipment_id,
        can_proceed=decision.can_proceed,
        status=decision.status,
        blockers=decision.blockers,
        pending=decision.pending,
        record_ids=decision.record_ids,
    )


def _state_info(state: WorkflowStateDefinition) -> WorkflowStateInfo:
    return WorkflowStateInfo(key=state.key, label=state.label, order=state.order, phase=state.phase)


async def _shipment_detail(
    db: AsyncSession, registry: ShipmentRegistry, shipment: Shipment
) -> ShipmentDetail:
    detail = ShipmentDetail.model_validate(shipment)
    detail.emails = [
        ShipmentEmailResponse.model_validate(e) for e in await registry.get_linked_emails(db, shipment.id)
    ]
    detail.documents = [
        ShipmentDocumentResponse.model_validate(d) for d in await registry.get_linked_documents(db, shipment.id)
    ]
    return detail
