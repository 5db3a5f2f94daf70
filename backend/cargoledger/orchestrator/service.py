"""
Registry orchestrator.

Runs one (email, attachment) unit through the registries in order:

  PARALLEL:
    ├─ Document Registry (type, reference, version, content hash)
    └─ Sender identity (true sender, domain, direction)
         ↓
  Party Registry (document parties, then the sender)
         ↓
  Shipment Registry (convergence on booking number, linking)
         ↓
  Workflow State Registry (forward-only transition)
         ↓
  Reconciliation Engine (comparison pairs touched by this document)

Every step runs in its own savepoint with a store timeout. A failing step is
recorded and later steps still run when their inputs exist.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cargoledger.config import Settings
from cargoledger.database import is_transient
from cargoledger.document_registry.fingerprint import compute_email_fingerprint
from cargoledger.document_registry.patterns import map_document_type
from cargoledger.document_registry.service import (
    AttachmentRegistration,
    DocumentRegistrationResult,
    DocumentRegistry,
)
from cargoledger.errors import ExtractionUnavailable, RegistryError, TransientStoreError
from cargoledger.extraction.client import ExtractionClient
from cargoledger.party_registry.service import DocumentParties, PartyRegistry, PartyResolution
from cargoledger.reconciliation_engine.fields import COMPARISON_PAIRS, ReconciliationFieldCache
from cargoledger.reconciliation_engine.service import ReconciliationEngine
from cargoledger.schemas.extraction import ExtractedShipmentFields
from cargoledger.shipment_registry.service import (
    ShipmentLinkage,
    ShipmentRegistrationResult,
    ShipmentRegistry,
)
from cargoledger.workflow_state.direction import Direction, SenderIdentity, identify_sender
from cargoledger.workflow_state.service import (
    TransitionResult,
    TransitionSource,
    WorkflowStateRegistry,
)

logger = logging.getLogger("cargoledger.orchestrator")

T = TypeVar("T")

RECONCILED_DOCUMENT_TYPES = frozenset(
    t for pair in COMPARISON_PAIRS for t in (pair.source_document_type, pair.comparison_document_type)
)


@dataclass
class EmailMetadata:
    email_id: str
    sender: str
    sender_name: str | None = None
    subject: str | None = None
    thread_id: str | None = None
    declared_direction: str | None = None
    email_type: str | None = None
    body: str | None = None
    received_at: datetime | None = None


@dataclass
class AttachmentInput:
    attachment_id: str
    filename: str | None = None
    text: str | None = None
    content: bytes | str | None = None
    content_hash: str | None = None
    mime_type: str | None = None
    document_type: str | None = None
    classification_confidence: float | None = None
    primary_reference: str | None = None


@dataclass
class ProcessingUnit:
    email: EmailMetadata
    attachment: AttachmentInput | None = None
    fields: ExtractedShipmentFields = field(default_factory=ExtractedShipmentFields)
    is_amendment: bool = False
    amendment_number: int | None = None


@dataclass
class StepError:
    step: str
    error_type: str
    message: str
    retryable: bool = False


@dataclass
class RegistryResult:
    success: bool = True
    sender: SenderIdentity | None = None
    shipment_direction: str | None = None
    email_fingerprint: str | None = None
    document: DocumentRegistrationResult | None = None
    parties: DocumentParties | None = None
    sender_party: PartyResolution | None = None
    shipment: ShipmentRegistrationResult | None = None
    workflow: TransitionResult | None = None
    reconciliation_ids: list[uuid.UUID] = field(default_factory=list)
    errors: list[StepError] = field(default_factory=list)

    @property
    def retryable(self) -> bool:
        return any(e.retryable for e in self.errors)

    @property
    def duplicate_of_email_id(self) -> str | None:
        return self.shipment.duplicate_of_email_id if self.shipment else None


def infer_shipment_direction(
    fields: ExtractedShipmentFields,
    email_direction: Direction | str | None,
    home_country_code: str,
) -> str:
    """Export when loading at home, import when discharging at home, else by mail direction."""
    home = home_country_code.upper()
    if (fields.port_of_loading_code or "").upper().startswith(home):
        return "export"
    if (fields.port_of_discharge_code or "").upper().startswith(home):
        return "import"
    return "export" if getattr(email_direction, "value", email_direction) == "outbound" else "import"


class RegistryOrchestrator:
    """Sequences the registries for one processing unit."""

    def __init__(
        self,
        settings: Settings,
        fields_cache: ReconciliationFieldCache,
        documents: DocumentRegistry | None = None,
        parties: PartyRegistry | None = None,
        shipments: ShipmentRegistry | None = None,
        workflow: WorkflowStateRegistry | None = None,
        reconciliation: ReconciliationEngine | None = None,
    ):
        self.settings = settings
        self.fields_cache = fields_cache
        self.documents = documents or DocumentRegistry(settings)
        self.parties = parties or PartyRegistry(settings)
        self.shipments = shipments or ShipmentRegistry(settings)
        self.workflow = workflow or WorkflowStateRegistry(settings)
        self.reconciliation = reconciliation or ReconciliationEngine(settings)

    async def process(self, db: AsyncSession, unit: ProcessingUnit) -> RegistryResult:
        result = RegistryResult()
        email = unit.email
        attachment = unit.attachment

        # Step 1: document registration and sender identity in parallel
        async def _sender() -> SenderIdentity:
            return identify_sender(
                email.sender, email.declared_direction, email.subject, self.settings.self_email_domains,
            )

        async def _no_document() -> None:
            return None

        document_step = (
            self._run_step(db, result, "document", lambda: self._register_document(db, unit))
            if attachment else _no_document()
        )
        result.document, sender = await asyncio.gather(document_step, _sender())
        result.sender = sender
        if email.body:
            result.email_fingerprint = compute_email_fingerprint(
                email.subject, sender.address or email.sender, email.body,
            )
        result.shipment_direction = infer_shipment_direction(
            unit.fields, sender.direction, self.settings.home_country_code,
        )

        document_type = self._document_type(unit, result.document)

        # Step 2: parties
        result.parties = await self._run_step(
            db, result, "document_parties",
            lambda: self.parties.resolve_document_parties(
                db, unit.fields, document_type, result.shipment_direction,
            ),
        )
        if sender.address:
            result.sender_party = await self._run_step(
                db, result, "sender_party",
                lambda: self.parties.resolve_sender(db, sender.address, email.sender_name),
            )

        # Step 3: shipment
        booking_number = unit.fields.booking_number
        if not booking_number and result.document and document_type == "booking_confirmation":
            booking_number = result.document.primary_reference
        if booking_number:
            linkage = self._linkage(unit, result, document_type)
            result.shipment = await self._run_step(
                db, result, "shipment",
                lambda: self.shipments.register(db, booking_number, unit.fields, linkage),
            )

        if result.shipment is None:
            result.success = not result.errors
            return result
        shipment_id = result.shipment.shipment_id

        # Step 4: workflow
        workflow_type = self._workflow_type(unit, document_type, sender.direction)
        if workflow_type:
            source = TransitionSource(
                email_id=email.email_id,
                document_id=result.document.document_id if result.document else None,
                attachment_id=attachment.attachment_id if attachment else None,
            )
            result.workflow = await self._run_step(
                db, result, "workflow",
                lambda: self.workflow.record_transition(
                    db, shipment_id, workflow_type, sender.direction, source,
                ),
            )

        # Step 5: reconciliation
        if document_type in RECONCILED_DOCUMENT_TYPES:
            records = await self._run_step(
                db, result, "reconciliation",
                lambda: self.reconciliation.reconcile_shipment_documents(
                    db, shipment_id, self.fields_cache, document_type,
                ),
            )
            result.reconciliation_ids = [r.id for r in records or []]

        result.success = not result.errors
        logger.info(
            "Processed email %s (attachment %s): shipment=%s success=%s errors=%d",
            email.email_id, attachment.attachment_id if attachment else None,
            shipment_id, result.success, len(result.errors),
        )
        return result

    async def process_with_retry(
        self, session_factory: async_sessionmaker, unit: ProcessingUnit
    ) -> RegistryResult:
        """Re-run the whole unit with backoff while it fails only transiently.

        Every write is idempotent, so a partial earlier attempt is harmless.
        """
        attempts = max(1, self.settings.transient_retry_attempts)
        delay = self.settings.transient_retry_backoff_seconds
        result = RegistryResult()
        for attempt in range(1, attempts + 1):
            async with session_factory() as db:
                result = await self.process(db, unit)
                await db.commit()
            if result.success or not result.retryable:
                return result
            if attempt < attempts:
                logger.warning(
                    "Transient failure for email %s (attempt %d/%d), retrying in %.1fs",
                    unit.email.email_id, attempt, attempts, delay,
                )
                await asyncio.sleep(delay)
                delay *= 2
        return result

    async def backfill(
        self,
        session_factory: async_sessionmaker,
        units: Iterable[ProcessingUnit],
        extractor: ExtractionClient,
    ) -> list[RegistryResult]:
        """Extract and process units one after another, pausing between extraction calls."""
        results: list[RegistryResult] = []
        for index, unit in enumerate(units):
            if index:
                await asyncio.sleep(self.settings.backfill_delay_seconds)
            if unit.attachment and unit.attachment.text:
                await self._apply_extraction(unit, extractor)
            results.append(await self.process_with_retry(session_factory, unit))
        logger.info(
            "Backfill complete: %d units, %d failed",
            len(results), sum(1 for r in results if not r.success),
        )
        return results

    # ── Internal ──

    async def _apply_extraction(self, unit: ProcessingUnit, extractor: ExtractionClient) -> None:
        attachment = unit.attachment
        try:
            extraction = await extractor.extract(attachment.text, attachment.filename)
            fields = (
                extraction.to_fields(self.settings.extraction_min_confidence)
                if unit.fields.is_empty() else None
            )
        except ExtractionUnavailable as e:
            logger.info("No extraction for attachment %s: %s", attachment.attachment_id, e)
            return
        if extraction.document_type and not attachment.document_type:
            attachment.document_type = extraction.document_type
            attachment.classification_confidence = extraction.document_confidence
        if extraction.primary_reference and not attachment.primary_reference:
            attachment.primary_reference = extraction.primary_reference
        if fields is not None:
            unit.fields = fields

    async def _register_document(
        self, db: AsyncSession, unit: ProcessingUnit
    ) -> DocumentRegistrationResult:
        attachment = unit.attachment
        fields = None if unit.fields.is_empty() else unit.fields.model_dump(mode="json", exclude_none=True)
        return await self.documents.register_attachment(db, AttachmentRegistration(
            source_email_id=unit.email.email_id,
            attachment_id=attachment.attachment_id,
            filename=attachment.filename,
            extracted_text=attachment.text,
            content=attachment.content,
            content_hash=attachment.content_hash,
            document_type=attachment.document_type,
            classification_confidence=attachment.classification_confidence,
            primary_reference=attachment.primary_reference,
            received_at=unit.email.received_at,
            extracted_fields=fields,
        ))

    def _document_type(
        self, unit: ProcessingUnit, document: DocumentRegistrationResult | None
    ) -> str | None:
        if document and document.document_type and document.document_type != "other":
            return document.document_type
        if unit.attachment and unit.attachment.document_type:
            return map_document_type(unit.attachment.document_type) or unit.attachment.document_type
        return None

    def _workflow_type(
        self, unit: ProcessingUnit, document_type: str | None, direction: Direction
    ) -> str | None:
        """First label the state table maps: raw attachment type, registry type, then email type."""
        raw = unit.attachment.document_type if unit.attachment else None
        email_type = unit.email.email_type
        labels = [
            label for label in (raw, document_type, email_type, map_document_type(email_type)) if label
        ]
        for label in labels:
            if self.workflow.machine.state_for(label, direction.value) is not None:
                return label
        return labels[0] if labels else None

    def _linkage(self, unit: ProcessingUnit, result: RegistryResult, document_type: str | None) -> ShipmentLinkage:
        parties = result.parties or DocumentParties()
        document = result.document
        return ShipmentLinkage(
            email_id=unit.email.email_id,
            thread_id=unit.email.thread_id,
            email_fingerprint=result.email_fingerprint,
            document_id=document.document_id if document else None,
            document_version_id=document.version_id if document else None,
            document_type=document_type if document and document.document_id else None,
            shipper_id=parties.party_id("shipper"),
            consignee_id=parties.party_id("consignee"),
            notify_party_id=parties.party_id("notify_party"),
            direction=result.shipment_direction,
            is_amendment=unit.is_amendment,
            amendment_number=unit.amendment_number,
        )

    async def _run_step(
        self,
        db: AsyncSession,
        result: RegistryResult,
        step: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T | None:
        async def _in_savepoint() -> T:
            async with db.begin_nested():
                return await operation()

        try:
            return await asyncio.wait_for(_in_savepoint(), timeout=self.settings.store_timeout_seconds)
        except asyncio.TimeoutError:
            error = TransientStoreError(f"{step} timed out after {self.settings.store_timeout_seconds}s")
        except RegistryError as e:
            error = e
        except SQLAlchemyError as e:
            error = TransientStoreError(str(e)) if is_transient(e) else e

        retryable = getattr(error, "retryable", False)
        logger.warning("Step %s failed: %s", step, error)
        result.errors.append(StepError(
            step=step,
            error_type=type(error).__name__,
            message=str(error),
            retryable=retryable,
        ))
        return None
