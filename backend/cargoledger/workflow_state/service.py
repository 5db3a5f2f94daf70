"""WorkflowStateRegistry: append-only transition log plus the shipment state projection.

A transition is claimed on the shipment row first, with an optimistic check
on ``state_version``, and the history row is appended in the same
transaction. Of two racing writers only one claim succeeds; the loser
re-reads and re-decides.
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.config import Settings
from cargoledger.errors import NotFoundError, TransientStoreError, ValidationError
from cargoledger.models.base import utcnow
from cargoledger.models.shipment import Shipment
from cargoledger.models.workflow import WorkflowStateTransition
from cargoledger.workflow_state.states import WORKFLOW, StateMachine, WorkflowStateDefinition

logger = logging.getLogger("cargoledger.workflow")

MANUAL_OVERRIDE = "manual_override"


@dataclass
class TransitionSource:
    email_id: str | None = None
    document_id: uuid.UUID | None = None
    attachment_id: str | None = None


@dataclass
class TransitionResult:
    shipment_id: uuid.UUID
    previous_state: str | None
    new_state: str | None
    transition_recorded: bool
    history_id: uuid.UUID | None = None
    reason: str | None = None


class WorkflowStateRegistry:
    """Forward-only workflow state machine over shipments."""

    def __init__(self, settings: Settings, machine: StateMachine = WORKFLOW):
        self.settings = settings
        self.machine = machine
        self.claim_attempts = max(1, settings.workflow_claim_attempts)

    async def record_transition(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        document_type: str,
        direction: str,
        source: TransitionSource | None = None,
    ) -> TransitionResult:
        source = source or TransitionSource()
        direction = getattr(direction, "value", direction)
        candidate = self.machine.state_for(document_type, direction)

        current, version = await self._read_projection(db, shipment_id)
        if candidate is None:
            return TransitionResult(shipment_id, current, current, False, reason="no_mapping")

        for attempt in range(self.claim_attempts):
            if not self.machine.should_transition(current, candidate.key):
                logger.debug(
                    "Transition %s -> %s not applied for shipment %s",
                    current, candidate.key, shipment_id,
                )
                reason = "same_state" if current == candidate.key else "regression"
                return TransitionResult(shipment_id, current, current, False, reason=reason)

            if await self._claim(db, shipment_id, version, candidate):
                history = await self._append_history(
                    db, shipment_id, current, candidate.key, document_type, direction, source,
                )
                logger.info(
                    "Shipment %s: %s -> %s (%s/%s)",
                    shipment_id, current, candidate.key, document_type, direction,
                )
                return TransitionResult(shipment_id, current, candidate.key, True, history.id)

            logger.info(
                "Stale state read for shipment %s (attempt %d), re-reading",
                shipment_id, attempt + 1,
            )
            current, version = await self._read_projection(db, shipment_id)

        raise TransientStoreError(f"Could not claim workflow state for shipment {shipment_id}")

    async def set_state_manually(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        new_state: str,
        reason: str,
        actor: str | None = None,
    ) -> TransitionResult:
        """Operator override: bypasses ordering but is always logged."""
        state = self.machine.get(new_state)
        if state is None:
            raise ValidationError(f"Unknown workflow state: {new_state}")
        if not (reason or "").strip():
            raise ValidationError("A reason is required for a manual state change")

        for _ in range(self.claim_attempts):
            current, version = await self._read_projection(db, shipment_id)
            if await self._claim(db, shipment_id, version, state):
                history = await self._append_history(
                    db, shipment_id, current, state.key, MANUAL_OVERRIDE, None,
                    TransitionSource(), reason=reason.strip(), actor=actor,
                )
                logger.info("Manual override for shipment %s: %s -> %s by %s", shipment_id, current, state.key, actor)
                return TransitionResult(shipment_id, current, state.key, True, history.id)

        raise TransientStoreError(f"Could not claim workflow state for shipment {shipment_id}")

    async def get_current_state(self, db: AsyncSession, shipment_id: uuid.UUID) -> WorkflowStateDefinition | None:
        current, _ = await self._read_projection(db, shipment_id)
        return self.machine.get(current)

    async def get_state_history(
        self, db: AsyncSession, shipment_id: uuid.UUID
    ) -> list[WorkflowStateTransition]:
        rows = await db.execute(
            select(WorkflowStateTransition)
            .where(WorkflowStateTransition.shipment_id == shipment_id)
            .order_by(WorkflowStateTransition.transitioned_at)
        )
        return list(rows.scalars().all())

    async def get_shipments_by_state(self, db: AsyncSession, state: str) -> list[Shipment]:
        rows = await db.execute(
            select(Shipment).where(Shipment.workflow_state == state).order_by(Shipment.updated_at.desc())
        )
        return list(rows.scalars().all())

    async def get_state_statistics(self, db: AsyncSession) -> dict[str, int]:
        rows = await db.execute(
            select(Shipment.workflow_state, func.count(Shipment.id))
            .where(Shipment.workflow_state.is_not(None))
            .group_by(Shipment.workflow_state)
        )
        return {state: count for state, count in rows.all()}

    def get_available_transitions(self, current_state: str | None) -> list[WorkflowStateDefinition]:
        return self.machine.states_after(current_state)

    # ── Internal ──

    async def _read_projection(self, db: AsyncSession, shipment_id: uuid.UUID) -> tuple[str | None, int]:
        row = (await db.execute(
            select(Shipment.workflow_state, Shipment.state_version).where(Shipment.id == shipment_id)
        )).first()
        if row is None:
            raise NotFoundError(f"Shipment {shipment_id} not found")
        return row[0], row[1] or 0

    async def _claim(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        read_version: int,
        state: WorkflowStateDefinition,
    ) -> bool:
        result = await db.execute(
            update(Shipment)
            .where(Shipment.id == shipment_id, Shipment.state_version == read_version)
            .values(
                workflow_state=state.key,
                workflow_phase=state.phase,
                workflow_state_updated_at=utcnow(),
                state_version=Shipment.state_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        # Refresh any loaded instance so the projection reads through
        await db.execute(
            select(Shipment).where(Shipment.id == shipment_id).execution_options(populate_existing=True)
        )
        return True

    async def _append_history(
        self,
        db: AsyncSession,
        shipment_id: uuid.UUID,
        previous_state: str | None,
        new_state: str,
        document_type: str,
        direction: str | None,
        source: TransitionSource,
        reason: str | None = None,
        actor: str | None = None,
    ) -> WorkflowStateTransition:
        history = WorkflowStateTransition(
            id=uuid.uuid4(),
            shipment_id=shipment_id,
            previous_state=previous_state,
            new_state=new_state,
            document_type=document_type,
            direction=direction,
            email_id=source.email_id,
            document_id=source.document_id,
            attachment_id=source.attachment_id,
            reason=reason,
            actor=actor,
        )
        db.add(history)
        await db.flush()
        return history
