from sqlalchemy.ext.asyncio import async_sessionmaker

from cargoledger.config import settings
from cargoledger.database import async_session_factory, get_db
from cargoledger.document_registry.service import DocumentRegistry
from cargoledger.extraction.client import ExtractionClient
from cargoledger.orchestrator.service import RegistryOrchestrator
from cargoledger.party_registry.service import PartyRegistry
from cargoledger.reconciliation_engine.fields import ReconciliationFieldCache
from cargoledger.reconciliation_engine.service import ReconciliationEngine
from cargoledger.shipment_registry.service import ShipmentRegistry
from cargoledger.workflow_state.service import WorkflowStateRegistry

# Re-export get_db for use in Depends()
get_db = get_db

# One field cache per process; the API owns it and hands it to the orchestrator
_field_cache = ReconciliationFieldCache(ttl_seconds=settings.reconciliation_field_cache_ttl_seconds)


def get_session_factory() -> async_sessionmaker:
    return async_session_factory


def get_field_cache() -> ReconciliationFieldCache:
    return _field_cache


def get_document_registry() -> DocumentRegistry:
    return DocumentRegistry(settings)


def get_party_registry() -> PartyRegistry:
    return PartyRegistry(settings)


def get_shipment_registry() -> ShipmentRegistry:
    return ShipmentRegistry(settings)


def get_workflow_registry() -> WorkflowStateRegistry:
    return WorkflowStateRegistry(settings)


def get_reconciliation_engine() -> ReconciliationEngine:
    return ReconciliationEngine(settings)


def get_extraction_client() -> ExtractionClient:
    return ExtractionClient(settings)


def get_orchestrator() -> RegistryOrchestrator:
    return RegistryOrchestrator(settings, get_field_cache())
