"""Run one (email, attachment) unit through the registries."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cargoledger.config import settings
from cargoledger.dependencies import (
    get_db,
    get_extraction_client,
    get_orchestrator,
    get_session_factory,
)
from cargoledger.extraction.client import ExtractionClient
from cargoledger.orchestrator.service import (
    AttachmentInput,
    EmailMetadata,
    ProcessingUnit,
    RegistryOrchestrator,
    RegistryResult,
)
from cargoledger.schemas.extraction import ExtractedShipmentFields
from cargoledger.schemas.processing import (
    BackfillRequest,
    ProcessingResponse,
    ProcessingUnitRequest,
    StepErrorResponse,
)

router = APIRouter()


@router.post("/units", response_model=ProcessingResponse)
async def process_unit(
    request: ProcessingUnitRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: RegistryOrchestrator = Depends(get_orchestrator),
) -> ProcessingResponse:
    """Register documents, parties, shipment, workflow state and reconciliation for one unit.

    Step failures are reported in ``errors``; the successful steps are still committed.
    """
    result = await orchestrator.process(db, _to_unit(request))
    return _to_response(result)


@router.post("/backfill", response_model=list[ProcessingResponse])
async def backfill_units(
    request: BackfillRequest,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    orchestrator: RegistryOrchestrator = Depends(get_orchestrator),
    extractor: ExtractionClient = Depends(get_extraction_client),
) -> list[ProcessingResponse]:
    """Extract and process a batch of historical units in order.

    Each unit commits on its own and is retried on transient failures. Claude
    calls are spaced by the configured backfill delay.
    """
    results = await orchestrator.backfill(
        session_factory, [_to_unit(u) for u in request.units], extractor,
    )
    return [_to_response(r) for r in results]


def _to_unit(request: ProcessingUnitRequest) -> ProcessingUnit:
    if request.fields is not None:
        fields = request.fields
    elif request.candidates:
        fields = ExtractedShipmentFields.from_candidates(
            request.candidates, settings.extraction_min_confidence,
        )
    else:
        fields = ExtractedShipmentFields()

    attachment = None
    if request.attachment:
        attachment = AttachmentInput(**request.attachment.model_dump())

    return ProcessingUnit(
        email=EmailMetadata(**request.email.model_dump()),
        attachment=attachment,
        fields=fields,
        is_amendment=request.is_amendment,
        amendment_number=request.amendment_number,
    )


def _to_response(result: RegistryResult) -> ProcessingResponse:
    party_ids = {}
    if result.parties:
        party_ids = {
            role: r.party_id for role, r in result.parties.resolutions.items() if r.party_id is not None
        }
    return ProcessingResponse(
        success=result.success,
        direction=result.sender.direction.value if result.sender else None,
        shipment_direction=result.shipment_direction,
        document_id=result.document.document_id if result.document else None,
        document_version_id=result.document.version_id if result.document else None,
        is_duplicate=result.document.is_duplicate if result.document else False,
        shipment_id=result.shipment.shipment_id if result.shipment else None,
        booking_number=result.shipment.booking_number if result.shipment else None,
        workflow_state=result.workflow.new_state if result.workflow else None,
        transition_recorded=result.workflow.transition_recorded if result.workflow else False,
        email_fingerprint=result.email_fingerprint,
        duplicate_of_email_id=result.duplicate_of_email_id,
        party_ids=party_ids,
        sender_party_id=result.sender_party.party_id if result.sender_party else None,
        reconciliation_ids=result.reconciliation_ids,
        errors=[StepErrorResponse.model_validate(e) for e in result.errors],
    )
