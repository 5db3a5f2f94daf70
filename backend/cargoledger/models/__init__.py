from cargoledger.models.base import Base, TimestampMixin
from cargoledger.models.document import ContentFingerprint, Document, DocumentVersion, VersionStatus
from cargoledger.models.party import Party, PartyEmailDomain, PartyRole
from cargoledger.models.shipment import EmailLinkType, Shipment, ShipmentDocument, ShipmentEmail
from cargoledger.models.workflow import WorkflowStateTransition
from cargoledger.models.reconciliation import (
    ReconciliationFieldDefinition,
    ReconciliationRecord,
    ReconciliationStatus,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "ContentFingerprint",
    "Document",
    "DocumentVersion",
    "VersionStatus",
    "Party",
    "PartyEmailDomain",
    "PartyRole",
    "EmailLinkType",
    "Shipment",
    "ShipmentDocument",
    "ShipmentEmail",
    "WorkflowStateTransition",
    "ReconciliationFieldDefinition",
    "ReconciliationRecord",
    "ReconciliationStatus",
]
