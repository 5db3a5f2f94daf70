import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.config import settings
from cargoledger.dependencies import get_db
from cargoledger.models import Document, Party, ReconciliationRecord, ReconciliationStatus, Shipment
from cargoledger.schemas.health import HealthResponse, RegistryCounts

logger = logging.getLogger(__name__)

router = APIRouter()


async def _count(db: AsyncSession, model, *where) -> int:
    return (await db.execute(select(func.count()).select_from(model).where(*where))).scalar_one()


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Liveness plus a row count per registry. A failing store reports ``degraded``."""
    registries = None
    try:
        registries = RegistryCounts(
            documents=await _count(db, Document),
            parties=await _count(db, Party),
            shipments=await _count(db, Shipment),
            open_reconciliations=await _count(
                db,
                ReconciliationRecord,
                ReconciliationRecord.status.in_(
                    [ReconciliationStatus.DISCREPANCIES_FOUND, ReconciliationStatus.BLOCKED]
                ),
            ),
        )
    except SQLAlchemyError:
        logger.warning("Health check could not reach the registry store", exc_info=True)
        await db.rollback()

    healthy = registries is not None
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        database="healthy" if healthy else "unhealthy",
        environment=settings.environment,
        version="0.1.0",
        checked_at=datetime.now(timezone.utc),
        registries=registries,
    )
