"""Mail direction detection. Pure functions, no DB or Claude dependency.

Self-domain mailboxes relay a lot of carrier mail, so the declared direction
of a self-sent message is only trusted when neither the forwarding header nor
the subject line points at a carrier.
"""

import enum
import re
from dataclasses import dataclass

from cargoledger.document_registry.patterns import PatternRule, first_match

_VIA_RE = re.compile(r"^['\"]?(.+?)['\"]?\s+via\s+", re.I)
_ADDRESS_RE = re.compile(r"<([^>]+)>")


class Direction(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


CARRIER_SENDER_KEYWORDS = (
    "maersk", "hapag", "hlag", "cma-cgm", "cma cgm", "cosco", "coscon",
    "evergreen", "msc", "one-line", "yangming", "oocl", "zim", "pil", "apl",
    "noreply", "no-reply", "donotreply", "please-no-reply", "iris-", "website",
    "cenfact", "in.export", "in.import", "export", "import", "booking", "service.hlag",
)


def _carrier(name: str, pattern: str) -> PatternRule:
    return PatternRule(name, re.compile(pattern, re.I), lambda m: m.group(0))


CARRIER_SUBJECT_RULES: list[PatternRule] = [
    _carrier("maersk", r"\bmaersk\b"),
    _carrier("hapag", r"\bhapag"),
    _carrier("cma_cgm", r"\bcma.?cgm\b"),
    _carrier("cosco", r"\bcosco\b"),
    _carrier("evergreen", r"\bevergreen\b"),
    _carrier("msc", r"\bmsc\b"),
    _carrier("one", r"\bone.?line\b"),
    _carrier("yang_ming", r"\byangming\b"),
    _carrier("oocl", r"\boocl\b"),
    _carrier("zim", r"\bzim\b"),
    _carrier("booking_confirmation", r"booking\s*confirmation"),
    _carrier("booking_amendment", r"booking\s*amendment"),
    _carrier("shipment_notice", r"shipment\s*notice"),
]

CARRIER_BOOKING_RULES: list[PatternRule] = [
    _carrier("maersk_booking", r"\b26\d{7}\b"),
    _carrier("cosco_booking", r"\bCOSU\d{6,}"),
    _carrier("cma_booking", r"\b(AMC|CEI|EID|CAD)\d{6,}"),
    _carrier("hapag_booking", r"\bHL(CU|CL)?\d{6,}"),
]


@dataclass
class SenderIdentity:
    raw: str
    address: str | None
    true_sender: str | None
    domain: str | None
    is_self: bool
    direction: Direction


def extract_true_sender(sender: str | None) -> str | None:
    """Original author of a "X via Group <addr>" forwarded message, if any."""
    m = _VIA_RE.match((sender or "").strip())
    return m.group(1).strip() if m else None


def extract_address(sender: str | None) -> str | None:
    text = (sender or "").strip()
    m = _ADDRESS_RE.search(text)
    address = (m.group(1) if m else text).strip().lower()
    return address if "@" in address else None


def is_self_address(address: str | None, self_domains) -> bool:
    if not address or "@" not in address:
        return False
    domain = address.rsplit("@", 1)[1].lower()
    return domain in {d.lower() for d in self_domains}


def detect_direction(
    sender: str | None,
    declared_direction: str | None,
    subject: str | None,
    self_domains,
) -> Direction:
    true_sender = extract_true_sender(sender)
    if true_sender:
        lowered = true_sender.lower()
        if any(kw in lowered for kw in CARRIER_SENDER_KEYWORDS):
            return Direction.INBOUND

    if is_self_address(extract_address(sender), self_domains):
        if first_match(CARRIER_SUBJECT_RULES, subject) or first_match(CARRIER_BOOKING_RULES, subject):
            return Direction.INBOUND
        declared = (declared_direction or "").strip().lower()
        if declared == Direction.INBOUND.value:
            return Direction.INBOUND
        return Direction.OUTBOUND

    return Direction.INBOUND


def identify_sender(
    sender: str | None,
    declared_direction: str | None,
    subject: str | None,
    self_domains,
) -> SenderIdentity:
    address = extract_address(sender)
    return SenderIdentity(
        raw=sender or "",
        address=address,
        true_sender=extract_true_sender(sender),
        domain=address.rsplit("@", 1)[1] if address else None,
        is_self=is_self_address(address, self_domains),
        direction=detect_direction(sender, declared_direction, subject, self_domains),
    )
