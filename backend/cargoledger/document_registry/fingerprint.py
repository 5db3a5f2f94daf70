"""Content fingerprints for exact-duplicate detection. Pure functions."""

import hashlib
import re
import unicodedata

_REPLY_PREFIX_RE = re.compile(r"^((re|fw|fwd)\s*:\s*)+", re.IGNORECASE)


def normalize_text(text: str) -> str:
    """Canonical text form: NFC, LF line endings, trimmed non-empty lines, single spaces."""
    text = unicodedata.normalize("NFC", text).replace("\r\n", "\n").replace("\r", "\n")
    lines = (" ".join(line.split()) for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def compute_content_fingerprint(content: str | bytes) -> str:
    """SHA-256 hex digest. Bytes are hashed raw, text after normalization."""
    if isinstance(content, bytes):
        payload = content
    else:
        payload = normalize_text(content).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def clean_subject(subject: str | None) -> str:
    return _REPLY_PREFIX_RE.sub("", (subject or "").strip()).strip()


def compute_email_fingerprint(subject: str | None, sender: str | None, body: str | None) -> str:
    """Short fingerprint of an email: clean subject, sender, first 500 body chars."""
    parts = [clean_subject(subject), (sender or "").strip().lower(), (body or "")[:500]]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:32]
