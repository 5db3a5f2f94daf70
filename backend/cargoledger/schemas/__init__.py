from cargoledger.schemas.document import DocumentDetail, DocumentVersionResponse
from cargoledger.schemas.extraction import ExtractedShipmentFields, PartyInfo
from cargoledger.schemas.health import HealthResponse
from cargoledger.schemas.party import PartyResponse
from cargoledger.schemas.processing import BackfillRequest, ProcessingResponse, ProcessingUnitRequest
from cargoledger.schemas.reconciliation import GateResponse, ReconciliationRecordResponse
from cargoledger.schemas.shipment import ShipmentDetail
from cargoledger.schemas.workflow import WorkflowResponse

__all__ = [
    "BackfillRequest",
    "DocumentDetail",
    "DocumentVersionResponse",
    "ExtractedShipmentFields",
    "GateResponse",
    "HealthResponse",
    "PartyInfo",
    "PartyResponse",
    "ProcessingResponse",
    "ProcessingUnitRequest",
    "ReconciliationRecordResponse",
    "ShipmentDetail",
    "WorkflowResponse",
]
