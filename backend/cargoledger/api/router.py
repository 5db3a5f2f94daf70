from fastapi import APIRouter

from cargoledger.api.v1 import documents, health, parties, processing, reconciliation, shipments

api_router = APIRouter()

api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(processing.router, prefix="/v1/processing", tags=["processing"])
api_router.include_router(shipments.router, prefix="/v1/shipments", tags=["shipments"])
api_router.include_router(documents.router, prefix="/v1/documents", tags=["documents"])
api_router.include_router(parties.router, prefix="/v1/parties", tags=["parties"])
api_router.include_router(reconciliation.router, prefix="/v1/reconciliation", tags=["reconciliation"])
