"""Closed, versioned schema for AI-extracted shipment fields."""

import logging
import re
from datetime import date, datetime
from typing import Any

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cargoledger.field_comparator.comparators import parse_date, parse_number

logger = logging.getLogger("cargoledger.extraction")

EXTRACTION_SCHEMA_VERSION = 1

_PARTY_ROLES = ("shipper", "consignee", "notify_party")
_PARTY_ATTRS = ("name", "address", "city", "country", "email", "phone")


class PartyInfo(BaseModel):
    """Party block as it appears on a shipping document."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Company or person name")
    address: str | None = None
    city: str | None = None
    country: str | None = None
    email: str | None = None
    phone: str | None = None


class ExtractedShipmentFields(BaseModel):
    """Every field the pipeline accepts from extraction. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    schema_version: int = EXTRACTION_SCHEMA_VERSION

    # Identifiers
    booking_number: str | None = None
    bl_number: str | None = None

    # Parties
    shipper: PartyInfo | None = None
    consignee: PartyInfo | None = None
    notify_party: PartyInfo | None = None

    # Carrier and vessel
    carrier_name: str | None = None
    carrier_scac: str | None = None
    carrier_code: str | None = None
    vessel_name: str | None = None
    voyage_number: str | None = None
    vessel_imo: str | None = None

    # Route
    port_of_loading: str | None = None
    port_of_loading_code: str | None = None
    port_of_discharge: str | None = None
    port_of_discharge_code: str | None = None
    place_of_receipt: str | None = None
    place_of_delivery: str | None = None

    # Dates
    etd: date | None = None
    atd: date | None = None
    eta: date | None = None
    ata: date | None = None
    si_cutoff: datetime | None = None
    vgm_cutoff: datetime | None = None
    cargo_cutoff: datetime | None = None
    doc_cutoff: datetime | None = None

    # Cargo
    container_numbers: list[str] = Field(default_factory=list)
    seal_numbers: list[str] = Field(default_factory=list)
    commodity_description: str | None = None
    hs_code: str | None = None
    marks_numbers: str | None = None
    total_weight: float | None = None
    weight_unit: str | None = None
    total_packages: int | None = None
    package_type: str | None = None
    total_volume: float | None = None

    @field_validator("schema_version")
    @classmethod
    def _known_version(cls, v: int) -> int:
        if v != EXTRACTION_SCHEMA_VERSION:
            raise ValueError(f"unsupported extraction schema version {v}")
        return v

    @field_validator("etd", "atd", "eta", "ata", mode="before")
    @classmethod
    def _parse_day(cls, v: Any):
        if v is None or isinstance(v, date):
            return v
        parsed = parse_date(v)
        if parsed is None:
            raise ValueError(f"unparseable date {v!r}")
        return parsed

    @field_validator("si_cutoff", "vgm_cutoff", "cargo_cutoff", "doc_cutoff", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: Any):
        if v is None or isinstance(v, datetime):
            return v
        if isinstance(v, date):
            return datetime(v.year, v.month, v.day)
        try:
            return datetime.fromisoformat(str(v).strip())
        except ValueError:
            pass
        try:
            return date_parser.parse(str(v), dayfirst=True)
        except (ValueError, OverflowError) as e:
            raise ValueError(f"unparseable timestamp {v!r}") from e

    @field_validator("total_weight", "total_volume", mode="before")
    @classmethod
    def _parse_float(cls, v: Any):
        if v is None or isinstance(v, (int, float)):
            return v
        parsed = parse_number(v)
        if parsed is None:
            raise ValueError(f"unparseable number {v!r}")
        return parsed

    @field_validator("total_packages", mode="before")
    @classmethod
    def _parse_int(cls, v: Any):
        if v is None or isinstance(v, int):
            return v
        parsed = parse_number(v)
        if parsed is None:
            raise ValueError(f"unparseable count {v!r}")
        return int(parsed)

    @field_validator("container_numbers", "seal_numbers", mode="before")
    @classmethod
    def _split_numbers(cls, v: Any):
        if v is None:
            return []
        if isinstance(v, str):
            v = re.split(r"[,;\n]", v)
        return [re.sub(r"\s+", "", str(item)).upper() for item in v if item and str(item).strip()]

    @field_validator("booking_number", "bl_number", mode="before")
    @classmethod
    def _strip_reference(cls, v: Any):
        if v is None:
            return None
        text = str(v).strip().upper()
        return text or None

    @classmethod
    def from_candidates(
        cls, candidates: dict[str, Any], min_confidence: float = 0.0
    ) -> "ExtractedShipmentFields":
        """Build the schema from an extraction candidate map.

        Each candidate is either a bare value or ``{"value": ..., "confidence": ...}``.
        Flat party keys such as ``shipper_name`` are folded into party blocks.
        Low-confidence, unknown and unparseable candidates are dropped.
        """
        if candidates is not None and not isinstance(candidates, dict):
            raise TypeError(f"Candidate map must be an object, got {type(candidates).__name__}")
        flat: dict[str, Any] = {}
        parties: dict[str, dict[str, Any]] = {}

        for key, candidate in (candidates or {}).items():
            value, confidence = _unwrap(candidate)
            if value is None or value == "" or value == []:
                continue
            if confidence is not None and confidence < min_confidence:
                logger.debug("Dropping low-confidence candidate %s (%.2f)", key, confidence)
                continue

            role, attr = _split_party_key(key)
            if role:
                parties.setdefault(role, {})[attr] = value
            elif key in cls.model_fields and key != "schema_version":
                flat[key] = value
            else:
                logger.debug("Ignoring unknown extraction field %s", key)

        for role, attrs in parties.items():
            if "name" in attrs or role not in flat:
                flat[role] = attrs

        accepted: dict[str, Any] = {}
        for key, value in flat.items():
            try:
                cls.model_validate({**accepted, key: value})
            except (ValidationError, TypeError):
                logger.info("Dropping invalid extraction field %s=%r", key, value)
                continue
            accepted[key] = value

        return cls.model_validate(accepted)

    def reconciliation_values(self) -> dict[str, Any]:
        """Flatten into the field names used by document reconciliation."""
        values: dict[str, Any] = {
            "cargo_description": self.commodity_description,
            "hs_code": self.hs_code,
            "marks_numbers": self.marks_numbers,
            "container_numbers": ", ".join(self.container_numbers) or None,
            "seal_numbers": ", ".join(self.seal_numbers) or None,
            "total_weight": self.total_weight,
            "weight_unit": self.weight_unit,
            "total_packages": self.total_packages,
            "package_type": self.package_type,
            "total_volume": self.total_volume,
            "port_of_loading": self.port_of_loading,
            "port_of_discharge": self.port_of_discharge,
            "vessel_name": self.vessel_name,
            "voyage_number": self.voyage_number,
            "etd": self.etd,
        }
        for role in _PARTY_ROLES:
            party: PartyInfo | None = getattr(self, role)
            values[f"{role}_name"] = party.name if party else None
            values[f"{role}_address"] = party.address if party else None
        return values

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_defaults=True, exclude={"schema_version"})


def _unwrap(candidate: Any) -> tuple[Any, float | None]:
    """Split a candidate into value and confidence.

    A confidence that is not a number makes the whole candidate unusable and
    comes back as ``(None, None)``.
    """
    if not (isinstance(candidate, dict) and "value" in candidate):
        return candidate, None
    confidence = candidate.get("confidence")
    if confidence is None:
        return candidate["value"], None
    if isinstance(confidence, bool):
        return None, None
    try:
        return candidate["value"], float(confidence)
    except (TypeError, ValueError):
        return None, None


def _split_party_key(key: str) -> tuple[str | None, str | None]:
    for role in _PARTY_ROLES:
        prefix = f"{role}_"
        if key.startswith(prefix) and key[len(prefix):] in _PARTY_ATTRS:
            return role, key[len(prefix):]
    return None, None
