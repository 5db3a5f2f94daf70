"""Tests for workflow transitions: forward-only ordering, stale reads, manual overrides."""

import uuid

import pytest

from cargoledger.errors import NotFoundError, ValidationError
from cargoledger.shipment_registry.service import ShipmentRegistry
from cargoledger.workflow_state.service import TransitionSource, WorkflowStateRegistry


async def make_shipment(db, settings, booking="HL12345678") -> uuid.UUID:
    result = await ShipmentRegistry(settings).register(db, booking)
    return result.shipment_id


# ── Transitions ──


class TestRecordTransition:
    @pytest.mark.asyncio
    async def test_first_transition(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)

        result = await registry.record_transition(
            db_session, shipment_id, "booking_confirmation", "inbound",
            TransitionSource(email_id="email-1", attachment_id="att-1"),
        )

        assert result.transition_recorded is True
        assert result.previous_state is None
        assert result.new_state == "booking_confirmation_received"
        state = await registry.get_current_state(db_session, shipment_id)
        assert state.key == "booking_confirmation_received"
        assert state.phase == "pre_shipment"

        history = await registry.get_state_history(db_session, shipment_id)
        assert len(history) == 1
        assert history[0].email_id == "email-1"
        assert history[0].direction == "inbound"

    @pytest.mark.asyncio
    async def test_projection_updated_on_loaded_shipment(self, db_session, settings):
        shipments = ShipmentRegistry(settings)
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        await registry.record_transition(db_session, shipment_id, "si_draft", "inbound")

        shipment = await shipments.get_shipment(db_session, shipment_id)
        assert shipment.workflow_state == "si_draft_received"
        assert shipment.state_version == 1

    @pytest.mark.asyncio
    async def test_forward_progression(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        await registry.record_transition(db_session, shipment_id, "booking_confirmation", "inbound")
        await registry.record_transition(db_session, shipment_id, "booking_confirmation", "outbound")
        result = await registry.record_transition(db_session, shipment_id, "checklist", "inbound")

        assert result.previous_state == "booking_confirmation_shared"
        assert result.new_state == "checklist_received"
        history = await registry.get_state_history(db_session, shipment_id)
        assert [h.new_state for h in history] == [
            "booking_confirmation_received",
            "booking_confirmation_shared",
            "checklist_received",
        ]

    @pytest.mark.asyncio
    async def test_regression_is_noop(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        await registry.record_transition(db_session, shipment_id, "checklist", "inbound")

        result = await registry.record_transition(db_session, shipment_id, "booking_confirmation", "inbound")

        assert result.transition_recorded is False
        assert result.reason == "regression"
        assert result.new_state == "checklist_received"
        assert len(await registry.get_state_history(db_session, shipment_id)) == 1

    @pytest.mark.asyncio
    async def test_same_state_is_noop(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        await registry.record_transition(db_session, shipment_id, "booking_confirmation", "inbound")

        result = await registry.record_transition(db_session, shipment_id, "booking_confirmation", "inbound")
        assert result.transition_recorded is False
        assert result.reason == "same_state"

    @pytest.mark.asyncio
    async def test_unmapped_type(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)

        result = await registry.record_transition(db_session, shipment_id, "packing_list", "inbound")
        assert result.transition_recorded is False
        assert result.reason == "no_mapping"

    @pytest.mark.asyncio
    async def test_amendment_reenters_earlier_rank(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        await registry.record_transition(db_session, shipment_id, "si_draft", "inbound")

        result = await registry.record_transition(db_session, shipment_id, "booking_amendment", "inbound")
        assert result.transition_recorded is True
        assert result.new_state == "booking_amended"

    @pytest.mark.asyncio
    async def test_missing_shipment(self, db_session, settings):
        registry = WorkflowStateRegistry(settings)
        with pytest.raises(NotFoundError):
            await registry.record_transition(db_session, uuid.uuid4(), "booking_confirmation", "inbound")


# ── Concurrency ──


class TestStaleReads:
    """A writer holding a stale read loses the claim and re-decides."""

    @pytest.mark.asyncio
    async def test_stale_regression_is_dropped(self, db_session, settings, monkeypatch):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        await registry.record_transition(db_session, shipment_id, "si_draft", "inbound")

        real_read = registry._read_projection
        calls = []

        async def stale_once(db, sid):
            calls.append(sid)
            if len(calls) == 1:
                return None, 0
            return await real_read(db, sid)

        monkeypatch.setattr(registry, "_read_projection", stale_once)
        result = await registry.record_transition(db_session, shipment_id, "booking_confirmation", "inbound")

        assert len(calls) == 2
        assert result.transition_recorded is False
        assert result.reason == "regression"
        assert len(await registry.get_state_history(db_session, shipment_id)) == 1

    @pytest.mark.asyncio
    async def test_stale_forward_move_retries(self, db_session, settings, monkeypatch):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        await registry.record_transition(db_session, shipment_id, "si_draft", "inbound")

        real_read = registry._read_projection
        calls = []

        async def stale_once(db, sid):
            calls.append(sid)
            if len(calls) == 1:
                return None, 0
            return await real_read(db, sid)

        monkeypatch.setattr(registry, "_read_projection", stale_once)
        result = await registry.record_transition(db_session, shipment_id, "checklist", "inbound")

        assert result.transition_recorded is True
        assert result.previous_state == "si_draft_received"
        history = await registry.get_state_history(db_session, shipment_id)
        assert [h.previous_state for h in history] == [None, "si_draft_received"]


# ── Manual overrides ──


class TestManualOverride:
    @pytest.mark.asyncio
    async def test_override_bypasses_ordering(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        await registry.record_transition(db_session, shipment_id, "arrival_notice", "inbound")

        result = await registry.set_state_manually(
            db_session, shipment_id, "booking_confirmation_received", "  wrong booking matched ", actor="ops@intoglo.com",
        )

        assert result.transition_recorded is True
        assert result.previous_state == "arrival_notice_received"
        history = await registry.get_state_history(db_session, shipment_id)
        assert history[-1].document_type == "manual_override"
        assert history[-1].reason == "wrong booking matched"
        assert history[-1].actor == "ops@intoglo.com"
        assert history[-1].direction is None

    @pytest.mark.asyncio
    async def test_unknown_state_rejected(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        with pytest.raises(ValidationError):
            await registry.set_state_manually(db_session, shipment_id, "teleported", "because")

    @pytest.mark.asyncio
    async def test_reason_required(self, db_session, settings):
        shipment_id = await make_shipment(db_session, settings)
        registry = WorkflowStateRegistry(settings)
        with pytest.raises(ValidationError):
            await registry.set_state_manually(db_session, shipment_id, "si_confirmed", "   ")


# ── Queries ──


class TestQueries:
    @pytest.mark.asyncio
    async def test_statistics_and_state_lookup(self, db_session, settings):
        registry = WorkflowStateRegistry(settings)
        first = await make_shipment(db_session, settings, "HL11111111")
        second = await make_shipment(db_session, settings, "HL22222222")
        await make_shipment(db_session, settings, "HL33333333")
        await registry.record_transition(db_session, first, "booking_confirmation", "inbound")
        await registry.record_transition(db_session, second, "booking_confirmation", "inbound")

        stats = await registry.get_state_statistics(db_session)
        assert stats == {"booking_confirmation_received": 2}
        by_state = await registry.get_shipments_by_state(db_session, "booking_confirmation_received")
        assert {s.id for s in by_state} == {first, second}

    def test_available_transitions(self, settings):
        registry = WorkflowStateRegistry(settings)
        after = registry.get_available_transitions("hbl_shared")
        assert after[0].key == "invoice_sent"
        assert all(s.order > 132 for s in after)
        assert len(registry.get_available_transitions(None)) == len(registry.machine.states)
