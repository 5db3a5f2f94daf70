"""Tests for document reconciliation, the submission gate and manual resolution."""

import uuid

import pytest

from cargoledger.document_registry.service import AttachmentRegistration, DocumentRegistry
from cargoledger.errors import NotFoundError, ValidationError
from cargoledger.models.reconciliation import ReconciliationFieldDefinition, ReconciliationStatus
from cargoledger.reconciliation_engine.fields import (
    DEFAULT_FIELDS,
    ReconciliationFieldCache,
    Severity,
    load_field_configs,
)
from cargoledger.reconciliation_engine.service import ReconciliationEngine, evaluate_fields
from cargoledger.schemas.extraction import ExtractedShipmentFields
from cargoledger.shipment_registry.service import ShipmentLinkage, ShipmentRegistry

CHECKLIST_FIELDS = [f for f in DEFAULT_FIELDS if "checklist" in f.applies_to]

SI_VALUES = {
    "shipper_name": "ACME EXPORTS PVT LTD",
    "shipper_address": "Plot 4, JNPT Road, Nhava Sheva",
    "consignee_name": "Zenith Imports LLC",
    "hs_code": "8471.30",
    "container_numbers": "MSKU1234567, TCLU7654321",
    "total_weight": 12500.0,
    "weight_unit": "KGS",
    "total_packages": 40,
}


# ── Field evaluation (pure) ──


class TestEvaluateFields:
    def test_all_equal_matches(self):
        outcome = evaluate_fields(CHECKLIST_FIELDS, SI_VALUES, dict(SI_VALUES))

        assert outcome.status == ReconciliationStatus.MATCHED
        assert outcome.can_proceed is True
        assert outcome.total_fields == len(CHECKLIST_FIELDS)
        assert outcome.matching_fields == outcome.total_fields
        assert outcome.block_reason is None

    def test_tolerated_differences_match(self):
        checklist = dict(SI_VALUES, shipper_name="Acme Exports Pvt. Ltd", total_weight="12,510 KGS", weight_unit="kgs")
        outcome = evaluate_fields(CHECKLIST_FIELDS, SI_VALUES, checklist)
        assert outcome.discrepancy_count == 0

    def test_critical_discrepancy_blocks(self):
        checklist = dict(SI_VALUES, total_packages=38)
        outcome = evaluate_fields(CHECKLIST_FIELDS, SI_VALUES, checklist)

        assert outcome.status == ReconciliationStatus.BLOCKED
        assert outcome.can_proceed is False
        assert outcome.critical_discrepancies == 1
        assert outcome.block_reason == "1 critical discrepancies found: Package Count"

    def test_warning_only_does_not_block(self):
        checklist = dict(SI_VALUES, shipper_address="22 Park Street, Kolkata")
        outcome = evaluate_fields(CHECKLIST_FIELDS, SI_VALUES, checklist)

        assert outcome.status == ReconciliationStatus.DISCREPANCIES_FOUND
        assert outcome.can_proceed is True
        assert outcome.warning_discrepancies == 1
        assert outcome.critical_discrepancies == 0

    def test_missing_side_is_discrepancy(self):
        checklist = dict(SI_VALUES)
        del checklist["hs_code"]
        outcome = evaluate_fields(CHECKLIST_FIELDS, SI_VALUES, checklist)

        row = next(c for c in outcome.comparisons if c["field_name"] == "hs_code")
        assert row["matches"] is False
        assert row["message"] == "One value is missing"
        assert row["comparison_value"] is None
        assert outcome.can_proceed is False

    def test_comparison_rows_are_json_ready(self):
        outcome = evaluate_fields(CHECKLIST_FIELDS, SI_VALUES, SI_VALUES)
        row = outcome.comparisons[0]
        assert set(row) == {
            "field_name", "field_label", "source_value", "comparison_value",
            "matches", "severity", "comparison_type", "message",
        }
        assert row["severity"] in {s.value for s in Severity}


# ── Field configuration cache ──


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestFieldCache:
    @pytest.mark.asyncio
    async def test_reloads_after_ttl(self):
        clock = FakeClock()
        loads = []

        async def loader(db):
            loads.append(clock.now)
            return list(DEFAULT_FIELDS)

        cache = ReconciliationFieldCache(loader, ttl_seconds=60, clock=clock)
        await cache.get(None)
        clock.now = 59
        await cache.get(None)
        assert len(loads) == 1

        clock.now = 61
        await cache.get(None)
        assert len(loads) == 2

    @pytest.mark.asyncio
    async def test_invalidate(self):
        loads = []

        async def loader(db):
            loads.append(1)
            return list(DEFAULT_FIELDS)

        cache = ReconciliationFieldCache(loader, ttl_seconds=600, clock=FakeClock())
        await cache.get(None)
        cache.invalidate()
        assert cache.is_fresh is False
        await cache.get(None)
        assert len(loads) == 2

    @pytest.mark.asyncio
    async def test_fields_for_filters_and_orders(self):
        async def loader(db):
            return list(reversed(DEFAULT_FIELDS))

        cache = ReconciliationFieldCache(loader, clock=FakeClock())
        checklist = await cache.fields_for(None, "checklist")
        house_bl = await cache.fields_for(None, "house_bl")

        assert "port_of_loading" not in {f.field_name for f in checklist}
        assert "port_of_loading" in {f.field_name for f in house_bl}
        assert [f.order for f in checklist] == sorted(f.order for f in checklist)

    @pytest.mark.asyncio
    async def test_load_falls_back_to_defaults(self, db_session):
        configs = await load_field_configs(db_session)
        assert configs == list(DEFAULT_FIELDS)

    @pytest.mark.asyncio
    async def test_load_from_store(self, db_session):
        db_session.add_all([
            ReconciliationFieldDefinition(
                field_name="hs_code", field_label="HS Code", comparison_type="exact",
                severity="critical", applies_to=["checklist"], display_order=1,
            ),
            ReconciliationFieldDefinition(
                field_name="broken", field_label="Broken", comparison_type="telepathy",
                severity="critical", display_order=2,
            ),
            ReconciliationFieldDefinition(
                field_name="retired", field_label="Retired", comparison_type="exact",
                severity="info", display_order=3, is_active=False,
            ),
        ])
        await db_session.flush()

        configs = await load_field_configs(db_session)
        assert [c.field_name for c in configs] == ["hs_code"]
        assert configs[0].applies_to == ("checklist",)


# ── Persistence, gate and resolution ──


async def make_shipment(db, settings) -> uuid.UUID:
    return (await ShipmentRegistry(settings).register(db, "HL12345678")).shipment_id


class TestReconcile:
    @pytest.mark.asyncio
    async def test_record_persisted(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        engine = ReconciliationEngine(settings)

        record = await engine.reconcile(
            db_session, shipment_id, CHECKLIST_FIELDS, SI_VALUES, dict(SI_VALUES, total_packages=38),
        )

        assert record.status == ReconciliationStatus.BLOCKED
        assert record.can_proceed is False
        assert record.critical_discrepancies == 1
        assert len(record.field_comparisons) == len(CHECKLIST_FIELDS)
        assert [r.id for r in await engine.get_records(db_session, shipment_id)] == [record.id]

    @pytest.mark.asyncio
    async def test_unknown_shipment(self, db_session, settings):
        engine = ReconciliationEngine(settings)
        with pytest.raises(NotFoundError):
            await engine.reconcile(db_session, uuid.uuid4(), CHECKLIST_FIELDS, {}, {})

    @pytest.mark.asyncio
    async def test_resolution_keeps_breakdown(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        engine = ReconciliationEngine(settings)
        record = await engine.reconcile(
            db_session, shipment_id, CHECKLIST_FIELDS, SI_VALUES, dict(SI_VALUES, total_packages=38),
        )
        comparisons = list(record.field_comparisons)

        resolved = await engine.resolve_discrepancies(
            db_session, record.id, " ops@intoglo.com ", notes="Customer confirmed 38 cartons",
        )

        assert resolved.status == ReconciliationStatus.RESOLVED
        assert resolved.can_proceed is True
        assert resolved.resolved_by == "ops@intoglo.com"
        assert resolved.resolved_at is not None
        assert resolved.field_comparisons == comparisons
        assert resolved.critical_discrepancies == 1
        assert resolved.block_reason == "1 critical discrepancies found: Package Count"

    @pytest.mark.asyncio
    async def test_resolution_requires_actor(self, db_session, settings):
        engine = ReconciliationEngine(settings)
        with pytest.raises(ValidationError):
            await engine.resolve_discrepancies(db_session, uuid.uuid4(), "  ")

    @pytest.mark.asyncio
    async def test_resolution_unknown_record(self, db_session, settings):
        engine = ReconciliationEngine(settings)
        with pytest.raises(NotFoundError):
            await engine.resolve_discrepancies(db_session, uuid.uuid4(), "ops@intoglo.com")


class TestGate:
    @pytest.mark.asyncio
    async def test_pending_without_records(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        decision = await ReconciliationEngine(settings).can_proceed(db_session, shipment_id)

        assert decision.can_proceed is False
        assert decision.status == "pending"
        assert decision.pending == ["checklist"]

    @pytest.mark.asyncio
    async def test_blocked_then_resolved(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        engine = ReconciliationEngine(settings)
        record = await engine.reconcile(
            db_session, shipment_id, CHECKLIST_FIELDS, SI_VALUES, dict(SI_VALUES, total_packages=38),
        )

        decision = await engine.can_proceed(db_session, shipment_id)
        assert decision.status == "blocked"
        assert decision.blockers == ["checklist: 1 critical discrepancies found: Package Count"]
        assert decision.record_ids == {"checklist": record.id}

        await engine.resolve_discrepancies(db_session, record.id, "ops@intoglo.com")
        decision = await engine.can_proceed(db_session, shipment_id)
        assert decision.status == "open"
        assert decision.can_proceed is True

    @pytest.mark.asyncio
    async def test_unknown_shipment(self, db_session, settings):
        with pytest.raises(NotFoundError):
            await ReconciliationEngine(settings).can_proceed(db_session, uuid.uuid4())


class TestShipmentDocuments:
    """Reconciliation driven by the documents linked to a shipment."""

    async def link(self, db, settings, shipment_id, document_type, filename, fields):
        documents = DocumentRegistry(settings)
        registered = await documents.register_attachment(db, AttachmentRegistration(
            source_email_id=f"email-{filename}",
            filename=filename,
            extracted_text=f"{document_type} 12345678 {filename}",
            document_type=document_type,
            extracted_fields=fields.model_dump(mode="json", exclude_none=True),
        ))
        await ShipmentRegistry(settings).register(
            db, "HL12345678", linkage=ShipmentLinkage(document_id=registered.document_id),
        )
        return registered.document_id

    @pytest.mark.asyncio
    async def test_si_against_checklist(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        fields = ExtractedShipmentFields(
            shipper={"name": "Acme Exports Pvt Ltd"},
            consignee={"name": "Zenith Imports LLC"},
            hs_code="847130",
            container_numbers=["MSKU1234567"],
            total_weight=12500,
            weight_unit="KGS",
            total_packages=40,
        )
        si_id = await self.link(db_session, settings, shipment_id, "si_draft", "SI_12345678.pdf", fields)
        checklist_id = await self.link(
            db_session, settings, shipment_id, "checklist", "CHECKLIST_12345678.pdf", fields,
        )

        engine = ReconciliationEngine(settings)
        cache = ReconciliationFieldCache(clock=FakeClock())
        records = await engine.reconcile_shipment_documents(db_session, shipment_id, cache)

        assert len(records) == 1
        record = records[0]
        assert record.source_document_type == "shipping_instructions"
        assert record.comparison_document_type == "checklist"
        assert record.source_document_id == si_id
        assert record.comparison_document_id == checklist_id
        assert record.status == ReconciliationStatus.MATCHED
        assert (await engine.can_proceed(db_session, shipment_id)).status == "open"

    @pytest.mark.asyncio
    async def test_missing_counterpart_skips(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        await self.link(
            db_session, settings, shipment_id, "si_draft", "SI_12345678.pdf",
            ExtractedShipmentFields(total_packages=40),
        )

        records = await ReconciliationEngine(settings).reconcile_shipment_documents(
            db_session, shipment_id, ReconciliationFieldCache(clock=FakeClock()), "shipping_instructions",
        )
        assert records == []
