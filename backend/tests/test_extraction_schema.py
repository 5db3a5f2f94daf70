"""Tests for the closed extraction schema."""

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from cargoledger.schemas.extraction import (
    EXTRACTION_SCHEMA_VERSION,
    ExtractedShipmentFields,
    PartyInfo,
)


class TestSchema:
    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            ExtractedShipmentFields(booking_number="123", favourite_colour="blue")

    def test_unknown_schema_version_rejected(self):
        with pytest.raises(ValidationError):
            ExtractedShipmentFields(schema_version=EXTRACTION_SCHEMA_VERSION + 1)

    def test_references_normalized(self):
        fields = ExtractedShipmentFields(booking_number="  hl12345678 ", bl_number="")
        assert fields.booking_number == "HL12345678"
        assert fields.bl_number is None

    def test_container_numbers_split(self):
        fields = ExtractedShipmentFields(container_numbers="msku 1234567; TCLU7654321")
        assert fields.container_numbers == ["MSKU1234567", "TCLU7654321"]

    def test_dates_and_numbers_parsed(self):
        fields = ExtractedShipmentFields(
            etd="15/01/2025",
            si_cutoff="2025-01-10T18:00:00",
            total_weight="12,500.50 KGS",
            total_packages="40 CTNS",
        )
        assert fields.etd == date(2025, 1, 15)
        assert fields.si_cutoff == datetime(2025, 1, 10, 18, 0)
        assert fields.total_weight == 12500.5
        assert fields.total_packages == 40

    def test_party_requires_name(self):
        with pytest.raises(ValidationError):
            PartyInfo(name="")

    def test_is_empty(self):
        assert ExtractedShipmentFields().is_empty() is True
        assert ExtractedShipmentFields(vessel_name="MAERSK KOLKATA").is_empty() is False

    def test_stored_form_validates_again(self):
        fields = ExtractedShipmentFields(
            booking_number="262822342",
            etd=date(2025, 3, 4),
            vgm_cutoff=datetime(2025, 3, 1, 12, 0),
            shipper=PartyInfo(name="ACME EXPORTS"),
        )
        stored = fields.model_dump(mode="json", exclude_none=True)
        assert ExtractedShipmentFields.model_validate(stored) == fields


class TestFromCandidates:
    """Candidate maps from extraction are validated field by field."""

    def test_unwraps_value_confidence(self):
        fields = ExtractedShipmentFields.from_candidates({
            "booking_number": {"value": "262822342", "confidence": 0.95},
            "vessel_name": {"value": "MAERSK KOLKATA", "confidence": 0.9},
        })
        assert fields.booking_number == "262822342"
        assert fields.vessel_name == "MAERSK KOLKATA"

    def test_low_confidence_dropped(self):
        fields = ExtractedShipmentFields.from_candidates(
            {
                "booking_number": {"value": "262822342", "confidence": 0.95},
                "vessel_name": {"value": "GUESSED", "confidence": 0.2},
            },
            min_confidence=0.5,
        )
        assert fields.booking_number == "262822342"
        assert fields.vessel_name is None

    def test_flat_party_keys_folded(self):
        fields = ExtractedShipmentFields.from_candidates({
            "shipper_name": {"value": "Acme Exports", "confidence": 0.9},
            "shipper_address": {"value": "Mumbai", "confidence": 0.9},
            "consignee_name": "Zenith Imports",
        })
        assert fields.shipper.name == "Acme Exports"
        assert fields.shipper.address == "Mumbai"
        assert fields.consignee.name == "Zenith Imports"

    def test_unparseable_and_unknown_dropped(self):
        fields = ExtractedShipmentFields.from_candidates({
            "etd": {"value": "sometime soon", "confidence": 0.9},
            "total_weight": {"value": "heavy", "confidence": 0.9},
            "favourite_colour": "blue",
            "eta": {"value": "2025-02-01", "confidence": 0.9},
        })
        assert fields.etd is None
        assert fields.total_weight is None
        assert fields.eta == date(2025, 2, 1)

    def test_party_without_name_dropped(self):
        fields = ExtractedShipmentFields.from_candidates({
            "notify_party_address": {"value": "Somewhere", "confidence": 0.9},
        })
        assert fields.notify_party is None

    def test_non_numeric_confidence_drops_candidate(self):
        fields = ExtractedShipmentFields.from_candidates(
            {
                "booking_number": {"value": "ABC123", "confidence": "high"},
                "vessel_name": {"value": "MAERSK KOLKATA", "confidence": {"score": 0.9}},
                "voyage_number": {"value": "412W", "confidence": True},
                "bl_number": {"value": "hlcumum123", "confidence": "0.8"},
            },
            min_confidence=0.5,
        )
        assert fields.booking_number is None
        assert fields.vessel_name is None
        assert fields.voyage_number is None
        assert fields.bl_number == "HLCUMUM123"

    def test_wrong_shape_value_dropped(self):
        fields = ExtractedShipmentFields.from_candidates({
            "container_numbers": {"value": 42, "confidence": 0.9},
            "booking_number": {"value": "262822342", "confidence": 0.9},
        })
        assert fields.container_numbers == []
        assert fields.booking_number == "262822342"


class TestReconciliationValues:
    def test_flattened_names(self):
        fields = ExtractedShipmentFields(
            shipper=PartyInfo(name="ACME", address="Mumbai"),
            commodity_description="Cotton shirts",
            container_numbers=["MSKU1234567", "TCLU7654321"],
        )
        values = fields.reconciliation_values()
        assert values["shipper_name"] == "ACME"
        assert values["shipper_address"] == "Mumbai"
        assert values["consignee_name"] is None
        assert values["cargo_description"] == "Cotton shirts"
        assert values["container_numbers"] == "MSKU1234567, TCLU7654321"
        assert values["seal_numbers"] is None
