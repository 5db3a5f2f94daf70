"""Declared priority lists of regex rules for reference, version and type detection.

Every list is evaluated by :func:`first_match`: rules are tried in order and
the first rule whose pattern matches wins. No DB dependency.
"""

import re
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class PatternRule:
    name: str
    pattern: re.Pattern
    extractor: Callable[[re.Match], str]
    carrier: str | None = None


@dataclass(frozen=True)
class RuleMatch:
    rule: PatternRule
    value: str


def first_match(rules: list[PatternRule], text: str | None) -> RuleMatch | None:
    if not text:
        return None
    for rule in rules:
        m = rule.pattern.search(text)
        if m:
            value = rule.extractor(m)
            if value:
                return RuleMatch(rule=rule, value=value)
    return None


def _group(index: int = 1, upper: bool = True) -> Callable[[re.Match], str]:
    def extract(m: re.Match) -> str:
        value = m.group(index) or m.group(0)
        return value.upper() if upper else value
    return extract


def _const(value: str) -> Callable[[re.Match], str]:
    return lambda m: value


def _ordinal_label(m: re.Match) -> str:
    return f"{m.group(1)}{m.group(2).lower()} {m.group(3).capitalize()}"


# ── Carriers ──

CARRIER_RULES: list[PatternRule] = [
    PatternRule("hapag", re.compile(r"\b(HLCU|Hapag|Hapag-Lloyd)\b", re.I), _const("HLCU")),
    PatternRule("maersk", re.compile(r"\b(MAEU|Maersk)\b", re.I), _const("MAEU")),
    PatternRule("cma_cgm", re.compile(r"\b(CMDU|CMA-CGM|CMA CGM)\b", re.I), _const("CMDU")),
    PatternRule("msc", re.compile(r"\b(MSCU|MSC)\b", re.I), _const("MSCU")),
    PatternRule("evergreen", re.compile(r"\b(EGLV|Evergreen)\b", re.I), _const("EGLV")),
    PatternRule("cosco", re.compile(r"\b(COSU|COSCO)\b", re.I), _const("COSU")),
    PatternRule("one", re.compile(r"\b(ONEY|Ocean Network Express)\b", re.I), _const("ONEY")),
    PatternRule("yang_ming", re.compile(r"\b(YMLU|Yang Ming)\b", re.I), _const("YMLU")),
]

# ── Version labels ──
# Ordinal and keyword labels precede generic V2 / REV 1 forms.

VERSION_RULES: list[PatternRule] = [
    PatternRule(
        "ordinal_update",
        re.compile(r"(?<![A-Za-z0-9])(\d+)(ST|ND|RD|TH)[-_\s]*(UPDATE|AMENDMENT|REVISION)(?![A-Za-z])", re.I),
        _ordinal_label,
    ),
    PatternRule("original", re.compile(r"(?<![A-Za-z])ORIGINAL(?![A-Za-z])", re.I), _const("Original")),
    PatternRule("final", re.compile(r"(?<![A-Za-z])FINAL(?![A-Za-z])", re.I), _const("Final")),
    PatternRule(
        "draft",
        re.compile(r"(?<![A-Za-z])DRAFT(?:[-_\s]*(\d+))?", re.I),
        lambda m: f"Draft {m.group(1)}" if m.group(1) else "Draft",
    ),
    PatternRule(
        "version",
        re.compile(r"(?<![A-Za-z])(?:V|VERSION)[-_\s]*(\d+)(?!\d)", re.I),
        lambda m: f"Version {m.group(1)}",
    ),
    PatternRule(
        "revision",
        re.compile(r"(?<![A-Za-z])REV(?:ISION)?[-_\s]*(\d+)(?!\d)", re.I),
        lambda m: f"Revision {m.group(1)}",
    ),
]

# ── References ──

FILENAME_REFERENCE_RULES: list[PatternRule] = [
    PatternRule("hapag_booking", re.compile(r"\bHL[-\s]?(\d{8})\b", re.I), _group(), carrier="HLCU"),
    PatternRule("hapag_bl", re.compile(r"\b(HLCU[A-Z]{3}\d{9})\b", re.I), _group(), carrier="HLCU"),
    PatternRule("maersk_bl", re.compile(r"\b(MAEU\d{9})\b", re.I), _group(), carrier="MAEU"),
    PatternRule("maersk_booking", re.compile(r"\bMAEU?[-\s]?(\d{9,10})\b", re.I), _group(), carrier="MAEU"),
    PatternRule("eight_digit", re.compile(r"(?<![\d])(\d{8})(?![\d])"), _group()),
    PatternRule("invoice", re.compile(r"\bINV[A-Z]*[-_]?(\d+)", re.I), _group()),
    PatternRule("alnum_booking", re.compile(r"\b([A-Z]{2,4}\d{6,12})\b"), _group()),
]

LABELLED_REFERENCE_RULES: list[PatternRule] = [
    PatternRule("our_reference", re.compile(r"Our\s*Reference[:\s]+([A-Z0-9-]+)", re.I), _group()),
    PatternRule("booking_no", re.compile(r"Booking\s*(?:Number|No\.?|#)[:\s]+([A-Z0-9-]+)", re.I), _group()),
    PatternRule("bl_no", re.compile(r"B/?L\s*(?:Number|No\.?|#)[:\s]+([A-Z0-9-]+)", re.I), _group()),
    PatternRule("invoice_no", re.compile(r"Invoice\s*(?:Number|No\.?|#)[:\s]+([A-Z0-9-]+)", re.I), _group()),
    PatternRule("reference", re.compile(r"(?<!Your\s)Reference[:\s]+([A-Z0-9-]+)", re.I), _group()),
]

SECONDARY_REFERENCE_RULES: list[PatternRule] = [
    PatternRule("your_reference", re.compile(r"Your\s*Reference[:\s]+([A-Z0-9-]+)", re.I), _group()),
]

# ── Document types ──

DOCUMENT_TYPE_MAP: dict[str, str] = {
    "booking_confirmation": "booking_confirmation",
    "booking_amendment": "booking_confirmation",
    "shipping_instructions": "shipping_instructions",
    "shipping_instruction": "shipping_instructions",
    "si_draft": "shipping_instructions",
    "si_final": "shipping_instructions",
    "si_confirmation": "shipping_instructions",
    "si_amendment": "shipping_instructions",
    "draft_bl": "draft_bl",
    "bl_draft": "draft_bl",
    "final_bl": "final_bl",
    "bill_of_lading": "final_bl",
    "house_bl": "house_bl",
    "hbl": "house_bl",
    "hbl_draft": "house_bl",
    "seaway_bill": "house_bl",
    "master_bl": "master_bl",
    "arrival_notice": "arrival_notice",
    "delivery_order": "delivery_order",
    "release_order": "delivery_order",
    "invoice": "invoice",
    "commercial_invoice": "invoice",
    "freight_invoice": "invoice",
    "proforma_invoice": "invoice",
    "duty_invoice": "invoice",
    "packing_list": "packing_list",
    "vgm": "vgm",
    "vgm_declaration": "vgm",
    "vgm_confirmation": "vgm",
    "entry_summary": "customs_entry",
    "entry_draft": "customs_entry",
    "customs_declaration": "customs_entry",
    "customs_entry": "customs_entry",
    "isf": "customs_entry",
    "certificate_of_origin": "certificate",
    "fumigation_certificate": "certificate",
    "phytosanitary_certificate": "certificate",
    "insurance_certificate": "certificate",
    "checklist": "checklist",
    "shipping_bill": "checklist",
}

FILENAME_TYPE_RULES: list[PatternRule] = [
    PatternRule("booking_confirmation", re.compile(r"BOOKING.*CONFIRM", re.I), _const("booking_confirmation")),
    PatternRule("bc_number", re.compile(r"\bBC\s*\d+", re.I), _const("booking_confirmation")),
    PatternRule("shipping_instructions", re.compile(r"SHIPPING.*INSTRUCT", re.I), _const("shipping_instructions")),
    PatternRule("checklist", re.compile(r"CHECK\s*LIST", re.I), _const("checklist")),
    PatternRule("arrival_notice", re.compile(r"ARRIVAL.*NOTICE", re.I), _const("arrival_notice")),
    PatternRule("an_number", re.compile(r"\bAN[-_]\d+", re.I), _const("arrival_notice")),
    PatternRule("house_bl", re.compile(r"HOUSE.*B/?L", re.I), _const("house_bl")),
    PatternRule("hbl", re.compile(r"\bHBL[-_]", re.I), _const("house_bl")),
    PatternRule("master_bl", re.compile(r"MASTER.*B/?L", re.I), _const("master_bl")),
    PatternRule("mbl", re.compile(r"\bMBL[-_]", re.I), _const("master_bl")),
    PatternRule("draft_bl", re.compile(r"DRAFT.*B/?L", re.I), _const("draft_bl")),
    PatternRule("final_bl", re.compile(r"FINAL.*B/?L", re.I), _const("final_bl")),
    PatternRule("delivery_order", re.compile(r"DELIVERY.*ORDER", re.I), _const("delivery_order")),
    PatternRule("do_number", re.compile(r"\bDO[-_]\d+", re.I), _const("delivery_order")),
    PatternRule("invoice", re.compile(r"INVOICE", re.I), _const("invoice")),
    PatternRule("inv_number", re.compile(r"\bINV[-_P]\d+", re.I), _const("invoice")),
    PatternRule("packing_list", re.compile(r"PACKING.*LIST", re.I), _const("packing_list")),
    PatternRule("vgm", re.compile(r"\bVGM\b", re.I), _const("vgm")),
    PatternRule("entry_summary", re.compile(r"ENTRY.*SUMMARY", re.I), _const("customs_entry")),
    PatternRule("form_7501", re.compile(r"\b7501\b"), _const("customs_entry")),
    PatternRule("certificate", re.compile(r"CERTIFICATE", re.I), _const("certificate")),
]


def map_document_type(label: str | None) -> str | None:
    """Map a classification label onto a registry document type."""
    if not label:
        return None
    key = label.strip().lower().replace("-", "_").replace(" ", "_")
    return DOCUMENT_TYPE_MAP.get(key)


def classify_by_filename(filename: str | None) -> str:
    m = first_match(FILENAME_TYPE_RULES, filename)
    return m.value if m else "other"


def detect_carrier(*texts: str | None) -> str | None:
    m = first_match(CARRIER_RULES, " ".join(t for t in texts if t))
    return m.value if m else None


def extract_version_label(*texts: str | None) -> str | None:
    m = first_match(VERSION_RULES, " ".join(t for t in texts if t))
    return m.value if m else None


def version_status_for_label(label: str | None) -> str:
    lowered = (label or "").lower()
    if "final" in lowered:
        return "final"
    if "submitted" in lowered:
        return "submitted"
    if "approved" in lowered:
        return "approved"
    if "amendment" in lowered or "update" in lowered or "revision" in lowered:
        return "amended"
    return "draft"
