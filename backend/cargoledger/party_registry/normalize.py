"""Party name and email normalization helpers. Pure functions."""

import re

_DISALLOWED_RE = re.compile(r"[^\w\s.\-&,]")


def normalize_party_name(name: str | None) -> str:
    """Canonical party name: trimmed, single-spaced, punctuation-limited, uppercase."""
    if not name:
        return ""
    text = " ".join(name.split())
    text = _DISALLOWED_RE.sub("", text)
    return " ".join(text.split()).upper()


def normalize_email(email: str | None) -> str | None:
    if not email:
        return None
    m = re.search(r"<([^>]+)>", email)
    address = (m.group(1) if m else email).strip().lower()
    return address if "@" in address else None


def email_domain(email: str | None) -> str | None:
    address = normalize_email(email)
    if not address:
        return None
    return address.rsplit("@", 1)[1] or None


def matches_identifier(name: str | None, identifiers: list[str]) -> bool:
    lowered = (name or "").lower()
    return any(ident.lower() in lowered for ident in identifiers)
