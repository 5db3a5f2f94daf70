"""
Claude extraction boundary.

Sends attachment text to Claude and returns:
- a document-type label with confidence
- a candidate map of field name -> {value, confidence}

Anything unusable comes back as ExtractionUnavailable, which callers treat
as "no new information".
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import anthropic

from cargoledger.config import Settings
from cargoledger.errors import ExtractionUnavailable
from cargoledger.schemas.extraction import ExtractedShipmentFields

logger = logging.getLogger("cargoledger.extraction")

EXTRACTION_SYSTEM_PROMPT = """You are an ocean-freight document specialist. You classify shipping documents and extract shipment fields from them.

For every field you report, give the value exactly as written in the document and a confidence between 0 and 1. Omit fields that are not present. Dates use ISO 8601 (YYYY-MM-DD).

Respond with valid JSON only, no additional text."""

EXTRACTION_SCHEMA = """{
  "document_type": "booking_confirmation | booking_amendment | si_draft | si_final | checklist | shipping_bill | si_confirmation | vgm_confirmation | sob_confirmation | draft_bl | final_bl | hbl_draft | house_bl | invoice | customs_entry | entry_summary | arrival_notice | duty_invoice | delivery_order | container_release | proof_of_delivery | other",
  "document_confidence": 0.0,
  "primary_reference": "string or null",
  "fields": {
    "booking_number": {"value": "string", "confidence": 0.0},
    "bl_number": {"value": "string", "confidence": 0.0},
    "shipper_name": {"value": "string", "confidence": 0.0},
    "shipper_address": {"value": "string", "confidence": 0.0},
    "consignee_name": {"value": "string", "confidence": 0.0},
    "consignee_address": {"value": "string", "confidence": 0.0},
    "notify_party_name": {"value": "string", "confidence": 0.0},
    "carrier_name": {"value": "string", "confidence": 0.0},
    "vessel_name": {"value": "string", "confidence": 0.0},
    "voyage_number": {"value": "string", "confidence": 0.0},
    "port_of_loading": {"value": "string", "confidence": 0.0},
    "port_of_loading_code": {"value": "UN/LOCODE", "confidence": 0.0},
    "port_of_discharge": {"value": "string", "confidence": 0.0},
    "port_of_discharge_code": {"value": "UN/LOCODE", "confidence": 0.0},
    "etd": {"value": "YYYY-MM-DD", "confidence": 0.0},
    "eta": {"value": "YYYY-MM-DD", "confidence": 0.0},
    "si_cutoff": {"value": "ISO 8601 timestamp", "confidence": 0.0},
    "vgm_cutoff": {"value": "ISO 8601 timestamp", "confidence": 0.0},
    "container_numbers": {"value": ["string"], "confidence": 0.0},
    "commodity_description": {"value": "string", "confidence": 0.0},
    "hs_code": {"value": "string", "confidence": 0.0},
    "total_weight": {"value": 0, "confidence": 0.0},
    "weight_unit": {"value": "KGS", "confidence": 0.0},
    "total_packages": {"value": 0, "confidence": 0.0},
    "package_type": {"value": "string", "confidence": 0.0}
  }
}"""


@dataclass
class ExtractionResult:
    document_type: str | None
    document_confidence: float | None
    primary_reference: str | None = None
    candidates: dict[str, Any] = field(default_factory=dict)

    def to_fields(self, min_confidence: float = 0.0) -> ExtractedShipmentFields:
        try:
            return ExtractedShipmentFields.from_candidates(self.candidates, min_confidence)
        except (TypeError, ValueError) as e:
            raise ExtractionUnavailable(f"Extraction fields were unusable: {e}") from e


def _parse_json_response(response_text: str) -> dict:
    """Parse JSON from a Claude response, handling markdown code blocks."""
    text = response_text.strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    try:
        data = json.loads(text)
    except (json.JSONDecodeError, IndexError) as e:
        logger.warning("Claude response was not valid JSON: %s", e)
        raise ExtractionUnavailable(f"Claude response was not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionUnavailable("Claude response was not a JSON object")
    return data


def _text_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_extraction(data: dict) -> ExtractionResult:
    candidates = data.get("fields") or {}
    if not isinstance(candidates, dict):
        raise ExtractionUnavailable("Extraction 'fields' was not an object")

    confidence = data.get("document_confidence")
    try:
        confidence = float(confidence) if confidence is not None else None
    except (TypeError, ValueError):
        confidence = None

    document_type = _text_or_none(data.get("document_type"))
    if document_type == "other":
        document_type = None

    if not candidates and not document_type:
        raise ExtractionUnavailable("Extraction returned no document type and no fields")

    return ExtractionResult(
        document_type=document_type,
        document_confidence=confidence,
        primary_reference=_text_or_none(data.get("primary_reference")),
        candidates=candidates,
    )


class ExtractionClient:
    def __init__(self, settings: Settings, client: anthropic.AsyncAnthropic | None = None):
        self.client = client or anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        self.model = settings.claude_model
        self.max_tokens = settings.claude_max_tokens
        self.timeout = settings.extraction_timeout_seconds
        self.min_confidence = settings.extraction_min_confidence

    async def extract(self, text: str, filename: str | None = None) -> ExtractionResult:
        """Classify one attachment and extract shipment field candidates.

        Args:
            text: Attachment text, as produced by the upstream text extractor.
            filename: Original filename, used as a classification hint.

        Returns:
            ExtractionResult with the raw candidate map.
        """
        if not (text or "").strip():
            raise ExtractionUnavailable("No text to extract from")

        header = f"Filename: {filename}\n\n" if filename else ""
        prompt = (
            "Classify this shipping document and extract its fields into the following JSON structure:\n\n"
            f"{EXTRACTION_SCHEMA}\n\n{header}Document content:\n\n{text}"
        )

        try:
            message = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=EXTRACTION_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": [{"type": "text", "text": prompt}]}],
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExtractionUnavailable(f"Extraction timed out after {self.timeout}s") from e
        except anthropic.APIError as e:
            logger.warning("Claude extraction failed: %s", e)
            raise ExtractionUnavailable(f"Claude API error: {e}") from e

        if not message.content:
            raise ExtractionUnavailable("Claude returned an empty response")

        return parse_extraction(_parse_json_response(message.content[0].text))
