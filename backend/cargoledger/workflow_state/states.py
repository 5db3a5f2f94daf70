"""Workflow state table and ordering rules.

The table is data: each state has a unique integer rank, a phase, the
document types that trigger it and the mail direction it applies to. The
table is validated when this module is imported.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class WorkflowPhase:
    key: str
    label: str
    order: int


@dataclass(frozen=True)
class WorkflowStateDefinition:
    key: str
    label: str
    order: int
    phase: str
    document_types: tuple[str, ...]
    direction: str
    amendment: bool = False


WORKFLOW_PHASES: tuple[WorkflowPhase, ...] = (
    WorkflowPhase("pre_shipment", "Pre-Departure", 1),
    WorkflowPhase("in_transit", "In Transit", 2),
    WorkflowPhase("arrival", "Arrival", 3),
    WorkflowPhase("delivery", "Delivery", 4),
)

WORKFLOW_STATES: tuple[WorkflowStateDefinition, ...] = (
    # Pre-shipment
    WorkflowStateDefinition("booking_confirmation_received", "BC Received", 10, "pre_shipment",
                            ("booking_confirmation",), "inbound"),
    WorkflowStateDefinition("booking_amended", "Booking Amended", 12, "pre_shipment",
                            ("booking_amendment",), "inbound", amendment=True),
    WorkflowStateDefinition("booking_confirmation_shared", "BC Shared", 15, "pre_shipment",
                            ("booking_confirmation", "booking_amendment"), "outbound"),
    WorkflowStateDefinition("si_draft_received", "SI Draft Received", 30, "pre_shipment",
                            ("shipping_instructions", "si_draft"), "inbound"),
    WorkflowStateDefinition("si_draft_sent", "SI Draft Sent", 32, "pre_shipment",
                            ("shipping_instructions", "si_draft", "si_final"), "outbound"),
    WorkflowStateDefinition("si_amended", "SI Amended", 34, "pre_shipment",
                            ("si_amendment",), "outbound", amendment=True),
    WorkflowStateDefinition("checklist_received", "Checklist Received", 40, "pre_shipment",
                            ("checklist",), "inbound"),
    WorkflowStateDefinition("checklist_shared", "Checklist Shared", 42, "pre_shipment",
                            ("checklist",), "outbound"),
    WorkflowStateDefinition("shipping_bill_received", "LEO/SB Received", 48, "pre_shipment",
                            ("shipping_bill", "leo_copy"), "inbound"),
    WorkflowStateDefinition("si_confirmed", "SI Confirmed", 60, "pre_shipment",
                            ("si_confirmation",), "inbound"),
    WorkflowStateDefinition("vgm_submitted", "VGM Submitted", 65, "pre_shipment",
                            ("vgm_confirmation", "vgm"), "inbound"),
    # In transit
    WorkflowStateDefinition("sob_received", "SOB Received", 80, "in_transit",
                            ("sob_confirmation",), "inbound"),
    WorkflowStateDefinition("bl_received", "BL Received", 119, "in_transit",
                            ("draft_bl", "final_bl"), "inbound"),
    WorkflowStateDefinition("hbl_draft_sent", "HBL Draft Sent", 120, "in_transit",
                            ("draft_bl", "hbl_draft"), "outbound"),
    WorkflowStateDefinition("hbl_shared", "HBL Shared", 132, "in_transit",
                            ("final_bl", "house_bl", "hbl"), "outbound"),
    WorkflowStateDefinition("invoice_sent", "Invoice Sent", 135, "in_transit",
                            ("invoice", "debit_note"), "outbound"),
    # Arrival
    WorkflowStateDefinition("entry_draft_received", "Entry Draft Received", 153, "arrival",
                            ("customs_entry", "entry_draft"), "inbound"),
    WorkflowStateDefinition("entry_draft_shared", "Entry Draft Shared", 156, "arrival",
                            ("customs_entry", "entry_draft"), "outbound"),
    WorkflowStateDefinition("entry_summary_received", "Entry Summary Received", 168, "arrival",
                            ("entry_summary",), "inbound"),
    WorkflowStateDefinition("entry_summary_shared", "Entry Summary Shared", 172, "arrival",
                            ("entry_summary",), "outbound"),
    WorkflowStateDefinition("arrival_notice_received", "AN Received", 180, "arrival",
                            ("arrival_notice",), "inbound"),
    WorkflowStateDefinition("arrival_notice_shared", "AN Shared", 185, "arrival",
                            ("arrival_notice",), "outbound"),
    WorkflowStateDefinition("cargo_released", "Cargo Released", 192, "arrival",
                            ("container_release", "freight_release"), "inbound"),
    WorkflowStateDefinition("duty_invoice_received", "Duty Invoice Received", 195, "arrival",
                            ("duty_invoice",), "inbound"),
    WorkflowStateDefinition("duty_summary_shared", "Duty Invoice Shared", 200, "arrival",
                            ("duty_invoice",), "outbound"),
    # Delivery
    WorkflowStateDefinition("delivery_order_received", "DO Received", 205, "delivery",
                            ("delivery_order",), "inbound"),
    WorkflowStateDefinition("delivery_order_shared", "DO Shared", 210, "delivery",
                            ("delivery_order",), "outbound"),
    WorkflowStateDefinition("container_released", "Container Released", 220, "delivery",
                            ("container_release",), "outbound"),
    WorkflowStateDefinition("pod_received", "POD Received", 235, "delivery",
                            ("pod_proof_of_delivery", "proof_of_delivery"), "inbound"),
    WorkflowStateDefinition("pod_shared", "POD Shared", 240, "delivery",
                            ("pod_proof_of_delivery", "proof_of_delivery"), "outbound"),
)


def normalize_document_type(document_type: str | None) -> str:
    return (document_type or "").strip().lower().replace("-", "_").replace(" ", "_")


@dataclass
class StateMachine:
    """Validated view over a state table.

    Raises ValueError on duplicate keys, duplicate ranks, unknown phases or a
    (document type, direction) pair claimed by two states.
    """

    states: tuple[WorkflowStateDefinition, ...]
    phases: tuple[WorkflowPhase, ...] = WORKFLOW_PHASES
    _by_key: dict[str, WorkflowStateDefinition] = field(init=False, repr=False)
    _by_trigger: dict[tuple[str, str], WorkflowStateDefinition] = field(init=False, repr=False)

    def __post_init__(self):
        phase_keys = {p.key for p in self.phases}
        self._by_key = {}
        self._by_trigger = {}
        ranks: dict[int, str] = {}

        for state in self.states:
            if state.key in self._by_key:
                raise ValueError(f"Duplicate workflow state key: {state.key}")
            if state.order in ranks:
                raise ValueError(
                    f"Duplicate workflow rank {state.order}: {ranks[state.order]} and {state.key}"
                )
            if state.phase not in phase_keys:
                raise ValueError(f"Unknown phase {state.phase!r} for state {state.key}")
            if state.direction not in ("inbound", "outbound"):
                raise ValueError(f"Invalid direction {state.direction!r} for state {state.key}")
            self._by_key[state.key] = state
            ranks[state.order] = state.key

            for doc_type in state.document_types:
                trigger = (doc_type, state.direction)
                if trigger in self._by_trigger:
                    raise ValueError(
                        f"{doc_type}/{state.direction} maps to both "
                        f"{self._by_trigger[trigger].key} and {state.key}"
                    )
                self._by_trigger[trigger] = state

    def get(self, key: str | None) -> WorkflowStateDefinition | None:
        return self._by_key.get(key) if key else None

    def is_known(self, key: str | None) -> bool:
        return self.get(key) is not None

    def rank(self, key: str | None) -> int:
        state = self.get(key)
        return state.order if state else 0

    def state_for(self, document_type: str | None, direction: str | None) -> WorkflowStateDefinition | None:
        return self._by_trigger.get((normalize_document_type(document_type), str(direction or "")))

    def should_transition(self, current: str | None, candidate: str) -> bool:
        """Forward-only ordering, with amendment states allowed to re-enter earlier ranks."""
        if candidate == current:
            return False
        state = self.get(candidate)
        if state is None:
            return False
        return state.amendment or state.order > self.rank(current)

    def states_after(self, current: str | None) -> list[WorkflowStateDefinition]:
        current_rank = self.rank(current)
        return sorted((s for s in self.states if s.order > current_rank), key=lambda s: s.order)

    def states_for_phase(self, phase: str) -> list[WorkflowStateDefinition]:
        return sorted((s for s in self.states if s.phase == phase), key=lambda s: s.order)

    @property
    def max_order(self) -> int:
        return max(s.order for s in self.states)


WORKFLOW = StateMachine(WORKFLOW_STATES)
