"""Reconciliation field configuration, comparison pairs and the field cache."""

import enum
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cargoledger.field_comparator.comparators import ComparisonType
from cargoledger.models.reconciliation import ReconciliationFieldDefinition

logger = logging.getLogger("cargoledger.reconciliation")


class Severity(str, enum.Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


BOTH = ("checklist", "house_bl")


@dataclass(frozen=True)
class ReconciliationFieldConfig:
    field_name: str
    label: str
    comparison_type: ComparisonType
    severity: Severity
    applies_to: tuple[str, ...] = BOTH
    order: int = 0


@dataclass(frozen=True)
class ComparisonPair:
    source_document_type: str
    comparison_document_type: str
    required: bool


COMPARISON_PAIRS: tuple[ComparisonPair, ...] = (
    ComparisonPair("shipping_instructions", "checklist", required=True),
    ComparisonPair("shipping_instructions", "house_bl", required=False),
)


def _f(name, label, ctype, severity, order, applies_to=BOTH) -> ReconciliationFieldConfig:
    return ReconciliationFieldConfig(name, label, ComparisonType(ctype), Severity(severity), applies_to, order)


DEFAULT_FIELDS: tuple[ReconciliationFieldConfig, ...] = (
    _f("shipper_name", "Shipper Name", "fuzzy", "critical", 10),
    _f("shipper_address", "Shipper Address", "fuzzy", "warning", 20),
    _f("consignee_name", "Consignee Name", "fuzzy", "critical", 30),
    _f("consignee_address", "Consignee Address", "fuzzy", "warning", 40),
    _f("notify_party_name", "Notify Party", "fuzzy", "warning", 50),
    _f("notify_party_address", "Notify Party Address", "fuzzy", "info", 60),
    _f("cargo_description", "Cargo Description", "fuzzy", "warning", 70),
    _f("hs_code", "HS Code", "case_insensitive", "critical", 80),
    _f("marks_numbers", "Marks & Numbers", "contains", "info", 90),
    _f("container_numbers", "Container Numbers", "contains", "critical", 100),
    _f("seal_numbers", "Seal Numbers", "contains", "warning", 110),
    _f("total_weight", "Gross Weight", "numeric", "critical", 120),
    _f("weight_unit", "Weight Unit", "case_insensitive", "warning", 130),
    _f("total_packages", "Package Count", "numeric", "critical", 140),
    _f("package_type", "Package Type", "fuzzy", "warning", 150),
    _f("total_volume", "Volume", "numeric", "warning", 160),
    _f("port_of_loading", "Port of Loading", "fuzzy", "critical", 170, ("house_bl",)),
    _f("port_of_discharge", "Port of Discharge", "fuzzy", "critical", 180, ("house_bl",)),
    _f("etd", "ETD", "date", "warning", 190, ("house_bl",)),
)


def _from_row(row: ReconciliationFieldDefinition) -> ReconciliationFieldConfig | None:
    try:
        ctype = ComparisonType(row.comparison_type)
        severity = Severity(row.severity)
    except ValueError:
        logger.warning("Skipping misconfigured reconciliation field %s", row.field_name)
        return None
    return ReconciliationFieldConfig(
        field_name=row.field_name,
        label=row.field_label,
        comparison_type=ctype,
        severity=severity,
        applies_to=tuple(row.applies_to or BOTH),
        order=row.display_order,
    )


async def load_field_configs(db: AsyncSession) -> list[ReconciliationFieldConfig]:
    """Active field definitions from the store, or the built-in defaults if none exist."""
    rows = (await db.execute(
        select(ReconciliationFieldDefinition)
        .where(ReconciliationFieldDefinition.is_active.is_(True))
        .order_by(ReconciliationFieldDefinition.display_order)
    )).scalars().all()
    configs = [c for c in (_from_row(r) for r in rows) if c is not None]
    return configs or list(DEFAULT_FIELDS)


class ReconciliationFieldCache:
    """Time-boxed read-through cache of field configuration.

    Owned and passed around by the caller; there is no module-level instance.
    """

    def __init__(
        self,
        loader: Callable[[AsyncSession], Awaitable[list[ReconciliationFieldConfig]]] = load_field_configs,
        ttl_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loader = loader
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._fields: list[ReconciliationFieldConfig] | None = None
        self._expires_at = 0.0

    @property
    def is_fresh(self) -> bool:
        return self._fields is not None and self.clock() < self._expires_at

    async def get(self, db: AsyncSession) -> list[ReconciliationFieldConfig]:
        if not self.is_fresh:
            return await self.refresh(db)
        return self._fields

    async def refresh(self, db: AsyncSession) -> list[ReconciliationFieldConfig]:
        self._fields = await self.loader(db)
        self._expires_at = self.clock() + self.ttl_seconds
        logger.debug("Loaded %d reconciliation fields", len(self._fields))
        return self._fields

    def invalidate(self) -> None:
        self._fields = None
        self._expires_at = 0.0

    async def fields_for(
        self, db: AsyncSession, comparison_document_type: str
    ) -> list[ReconciliationFieldConfig]:
        fields = await self.get(db)
        return sorted(
            (f for f in fields if comparison_document_type in f.applies_to),
            key=lambda f: f.order,
        )
