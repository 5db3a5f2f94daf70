"""ReconciliationEngine: field-by-field comparison of two documents for one shipment.

Flow:
1. Compare every configured field with its own comparison type
2. Count matches, discrepancies, and critical / warning discrepancies
3. Gate: the action may proceed only when there are no critical discrepancies
4. Persist the full breakdown, even when the gate passes

Manual resolution opens the gate without discarding the recorded comparisons.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.config import Settings
from cargoledger.errors import NotFoundError, ValidationError
from cargoledger.field_comparator.comparators import compare
from cargoledger.models.base import utcnow
from cargoledger.models.document import Document, DocumentVersion
from cargoledger.models.reconciliation import ReconciliationRecord, ReconciliationStatus
from cargoledger.models.shipment import Shipment, ShipmentDocument
from cargoledger.reconciliation_engine.fields import (
    COMPARISON_PAIRS,
    ReconciliationFieldCache,
    ReconciliationFieldConfig,
    Severity,
)
from cargoledger.schemas.extraction import ExtractedShipmentFields

logger = logging.getLogger("cargoledger.reconciliation")

# Dates gate an action, so they must agree to the day
GATE_DATE_TOLERANCE_DAYS = 0


@dataclass
class ReconciliationOutcome:
    comparisons: list[dict] = field(default_factory=list)
    total_fields: int = 0
    matching_fields: int = 0
    discrepancy_count: int = 0
    critical_discrepancies: int = 0
    warning_discrepancies: int = 0
    can_proceed: bool = True
    block_reason: str | None = None
    status: ReconciliationStatus = ReconciliationStatus.MATCHED


@dataclass
class GateDecision:
    can_proceed: bool
    status: str
    blockers: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    record_ids: dict[str, uuid.UUID] = field(default_factory=dict)


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


def evaluate_fields(
    field_configs: list[ReconciliationFieldConfig],
    values_a: dict[str, Any],
    values_b: dict[str, Any],
    fuzzy_threshold: float = 0.85,
    numeric_tolerance_pct: float = 0.01,
) -> ReconciliationOutcome:
    """Compare two value maps field by field and decide the gate. No DB dependency."""
    outcome = ReconciliationOutcome()
    critical_labels: list[str] = []

    for config in field_configs:
        value_a = values_a.get(config.field_name)
        value_b = values_b.get(config.field_name)
        result = compare(
            value_a,
            value_b,
            config.comparison_type,
            date_tolerance_days=GATE_DATE_TOLERANCE_DAYS,
            fuzzy_threshold=fuzzy_threshold,
            numeric_tolerance_pct=numeric_tolerance_pct,
        )
        outcome.total_fields += 1
        outcome.comparisons.append({
            "field_name": config.field_name,
            "field_label": config.label,
            "source_value": _jsonable(value_a),
            "comparison_value": _jsonable(value_b),
            "matches": result.matches,
            "severity": config.severity.value,
            "comparison_type": config.comparison_type.value,
            "message": result.message,
        })

        if result.matches:
            outcome.matching_fields += 1
            continue
        outcome.discrepancy_count += 1
        if config.severity == Severity.CRITICAL:
            outcome.critical_discrepancies += 1
            critical_labels.append(config.label)
        elif config.severity == Severity.WARNING:
            outcome.warning_discrepancies += 1

    outcome.can_proceed = outcome.critical_discrepancies == 0
    if not outcome.can_proceed:
        outcome.status = ReconciliationStatus.BLOCKED
        outcome.block_reason = (
            f"{outcome.critical_discrepancies} critical discrepancies found: "
            + ", ".join(critical_labels)
        )
    elif outcome.discrepancy_count:
        outcome.status = ReconciliationStatus.DISCREPANCIES_FOUND
    return outcome


class ReconciliationEngine:
    """Document-pair reconciliation and the submission gate built on it."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def reconcile(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        field_configs: list[ReconciliationFieldConfig],
        values_a: dict[str, Any],
        values_b: dict[str, Any],
        *,
        source_document_type: str = "shipping_instructions",
        comparison_document_type: str = "checklist",
        source_document_id: uuid.UUID | None = None,
        comparison_document_id: uuid.UUID | None = None,
    ) -> ReconciliationRecord:
        if await db.get(Shipment, shipment_id) is None:
            raise NotFoundError(f"Shipment {shipment_id} not found")

        outcome = evaluate_fields(
            field_configs,
            values_a or {},
            values_b or {},
            fuzzy_threshold=self.settings.fuzzy_match_threshold,
            numeric_tolerance_pct=self.settings.numeric_tolerance_pct,
        )
        record = ReconciliationRecord(
            id=uuid.uuid4(),
            shipment_id=shipment_id,
            source_document_type=source_document_type,
            comparison_document_type=comparison_document_type,
            source_document_id=source_document_id,
            comparison_document_id=comparison_document_id,
            field_comparisons=outcome.comparisons,
            total_fields=outcome.total_fields,
            matching_fields=outcome.matching_fields,
            discrepancy_count=outcome.discrepancy_count,
            critical_discrepancies=outcome.critical_discrepancies,
            warning_discrepancies=outcome.warning_discrepancies,
            can_proceed=outcome.can_proceed,
            block_reason=outcome.block_reason,
            status=outcome.status,
        )
        db.add(record)
        await db.flush()

        logger.info(
            "Reconciled %s vs %s for shipment %s: %d/%d match, %d critical",
            source_document_type, comparison_document_type, shipment_id,
            outcome.matching_fields, outcome.total_fields, outcome.critical_discrepancies,
        )
        return record

    async def resolve_discrepancies(
        self,
        db: AsyncSession,
        record_id: uuid.UUID,
        resolved_by: str,
        notes: str | None = None,
    ) -> ReconciliationRecord:
        """Manually open the gate. Comparisons and counts are kept as recorded."""
        if not (resolved_by or "").strip():
            raise ValidationError("resolved_by is required")
        record = await db.get(ReconciliationRecord, record_id)
        if record is None:
            raise NotFoundError(f"Reconciliation record {record_id} not found")

        record.status = ReconciliationStatus.RESOLVED
        record.can_proceed = True
        record.resolved_by = resolved_by.strip()
        record.resolved_at = utcnow()
        record.resolution_notes = notes
        await db.flush()

        logger.info("Reconciliation %s resolved by %s", record_id, record.resolved_by)
        return record

    async def get_records(self, db: AsyncSession, shipment_id: uuid.UUID) -> list[ReconciliationRecord]:
        rows = await db.execute(
            select(ReconciliationRecord)
            .where(ReconciliationRecord.shipment_id == shipment_id)
            .order_by(ReconciliationRecord.created_at.desc())
        )
        return list(rows.scalars().all())

    async def can_proceed(self, db: AsyncSession, shipment_id: uuid.UUID) -> GateDecision:
        """Submission gate: required pairs must be reconciled, and nothing may block."""
        if await db.get(Shipment, shipment_id) is None:
            raise NotFoundError(f"Shipment {shipment_id} not found")

        latest: dict[str, ReconciliationRecord] = {}
        for record in await self.get_records(db, shipment_id):
            latest.setdefault(record.comparison_document_type, record)

        decision = GateDecision(can_proceed=False, status="pending")
        for pair in COMPARISON_PAIRS:
            record = latest.get(pair.comparison_document_type)
            if record is None:
                if pair.required:
                    decision.pending.append(pair.comparison_document_type)
                continue
            decision.record_ids[pair.comparison_document_type] = record.id
            if not record.can_proceed:
                decision.blockers.append(f"{pair.comparison_document_type}: {record.block_reason}")

        if decision.blockers:
            decision.status = "blocked"
        elif decision.pending:
            decision.status = "pending"
        else:
            decision.status = "open"
            decision.can_proceed = True
        return decision

    async def reconcile_shipment_documents(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        fields_cache: ReconciliationFieldCache,
        document_type: str | None = None,
    ) -> list[ReconciliationRecord]:
        """Reconcile every comparison pair whose two documents are linked to the shipment.

        With ``document_type`` given, only pairs involving that type are run.
        """
        records: list[ReconciliationRecord] = []
        for pair in COMPARISON_PAIRS:
            if document_type and document_type not in (
                pair.source_document_type, pair.comparison_document_type,
            ):
                continue
            source = await self._latest_values(db, shipment_id, pair.source_document_type)
            target = await self._latest_values(db, shipment_id, pair.comparison_document_type)
            if source is None or target is None:
                continue

            configs = await fields_cache.fields_for(db, pair.comparison_document_type)
            records.append(await self.reconcile(
                db,
                shipment_id,
                configs,
                source[1],
                target[1],
                source_document_type=pair.source_document_type,
                comparison_document_type=pair.comparison_document_type,
                source_document_id=source[0],
                comparison_document_id=target[0],
            ))
        return records

    async def _latest_values(
        self, db: AsyncSession, shipment_id: uuid.UUID, document_type: str
    ) -> tuple[uuid.UUID, dict[str, Any]] | None:
        link = (await db.execute(
            select(ShipmentDocument)
            .where(
                ShipmentDocument.shipment_id == shipment_id,
                ShipmentDocument.document_type == document_type,
            )
            .order_by(ShipmentDocument.linked_at.desc())
            .limit(1)
        )).scalar_one_or_none()
        if link is None:
            return None

        document = await db.get(Document, link.document_id)
        version_id = (document.current_version_id if document else None) or link.document_version_id
        version = await db.get(DocumentVersion, version_id) if version_id else None
        if version is None or not version.extracted_fields:
            return None

        try:
            fields = ExtractedShipmentFields.model_validate(version.extracted_fields)
        except SchemaValidationError:
            logger.warning("Stored fields for version %s do not match the schema", version.id)
            return None
        return link.document_id, fields.reconciliation_values()
