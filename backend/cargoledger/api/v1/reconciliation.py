import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.dependencies import get_db, get_reconciliation_engine
from cargoledger.reconciliation_engine.service import ReconciliationEngine
from cargoledger.schemas.reconciliation import ReconciliationRecordResponse, ResolveRequest

router = APIRouter()


@router.post("/{record_id}/resolve", response_model=ReconciliationRecordResponse)
async def resolve_discrepancies(
    record_id: uuid.UUID,
    request: ResolveRequest,
    db: AsyncSession = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> ReconciliationRecordResponse:
    """Manually accept a record's discrepancies. The comparison breakdown is kept."""
    record = await engine.resolve_discrepancies(db, record_id, request.resolved_by, request.notes)
    return ReconciliationRecordResponse.model_validate(record)
